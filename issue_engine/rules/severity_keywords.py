"""
Severity Classification
=======================
Maps error messages and backend statuses to a severity.

Classification Strategy:
    1. CONFIGURED KEYWORDS FIRST — case-insensitive substring match against
       RuleSettings.critical_error_keywords → Critical
    2. REGEX PATTERNS SECOND — crash-shaped messages the keyword list may
       not spell out (uncaught exceptions, null dereferences) → Critical
    3. Everything else → High

Backend statuses:
    success set → no failure; critical set or HTTP >= 500 → Critical;
    anything else non-empty → High.
"""
import re
from dataclasses import dataclass
from typing import Any, Iterable, Optional


@dataclass(frozen=True)
class SeverityResult:
    """Immutable result of classifying a message."""
    severity: str
    matched: Optional[str] = None


_CRASH_PATTERNS: list[re.Pattern] = [
    re.compile(r"\bUncaught\b",                     re.I),
    re.compile(r"of (null|undefined)\b",            re.I),
    re.compile(r"\b\w+ is not a function\b",        re.I),
    re.compile(r"Maximum call stack size exceeded", re.I),
]

_DIGITS = re.compile(r"\d+")
_HEX = re.compile(r"\b0x[0-9a-f]+\b", re.I)
_SPACES = re.compile(r"\s+")


def classify_error_severity(message: str, keywords: Iterable[str]) -> SeverityResult:
    """
    Classify an error message.

    Parameters
    ----------
    message : str
        Error text (ERROR event message or console arguments).
    keywords : Iterable[str]
        Critical keywords from configuration.

    Returns
    -------
    SeverityResult
        Critical with the matching keyword/pattern, or High.
    """
    text = message or ""
    lowered = text.lower()

    # --- Pass 1: configured keywords ---
    for kw in keywords:
        if kw and kw.lower() in lowered:
            return SeverityResult("Critical", kw)

    # --- Pass 2: regex ---
    for pattern in _CRASH_PATTERNS:
        if pattern.search(text):
            return SeverityResult("Critical", pattern.pattern)

    return SeverityResult("High")


def classify_backend_status(
    status: Any,
    success_statuses: Iterable[str],
    critical_statuses: Iterable[str],
) -> Optional[str]:
    """Return None for a successful status, else the failure severity."""
    if status is None or status == "":
        return None
    if isinstance(status, int) or (isinstance(status, str) and status.isdigit()):
        code = int(status)
        if 200 <= code < 400:
            return None
        return "Critical" if code >= 500 else "High"

    normalized = str(status).strip().upper()
    if normalized in {s.upper() for s in success_statuses}:
        return None
    if normalized in {s.upper() for s in critical_statuses}:
        return "Critical"
    return "High"


def normalize_message(message: str, limit: int = 120) -> str:
    """Collapse numbers, hex ids and whitespace so repeats of one error share a key."""
    text = _HEX.sub("#", message or "")
    text = _DIGITS.sub("#", text)
    text = _SPACES.sub(" ", text).strip().lower()
    return text[:limit]
