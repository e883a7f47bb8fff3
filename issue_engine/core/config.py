"""
Configuration
=============
Loads environment variables from .env file using python-dotenv.

Environment Variables:
    LOG_ROOT             — Directory holding features/ and screenshots/ (default: logs)
    ISSUES_OUTPUT_PATH   — Report destination (default: docs/issues/issues.json)
    ANALYSIS_WORKERS     — Features analysed in parallel (default: 4)
    RULES_CONFIG_PATH    — Optional YAML file overriding RuleSettings fields
    ENGINE_LOG_DIR       — Where engine_YYYYMMDD.log is written (default: engine_logs)
    ENGINE_LOG_LEVEL     — Root log level name (default: INFO)
    API_CORS_ORIGINS     — Comma-separated browser origins allowed to call the API
                           (default: none, CORS disabled)
    API_HOST / API_PORT  — uvicorn bind address (default: 127.0.0.1:8000)
    RULE_<FIELD>         — Per-field override, e.g. RULE_API_TIMEOUT_MS=5000
                           (list fields take comma-separated values)

Window Philosophy:
    Detection windows are analyzer settings, not instrumentation constants.
    The browser logger delays its screenshots by 1500ms/1800ms; those delays
    say nothing about how close two clicks must be to count as a double bind.
    Defaults below come from observed batches and are expected to be
    recalibrated per deployment through YAML or env overrides.

Precedence:
    dataclass defaults < YAML file < RULE_* environment variables
"""
import os
import logging
from dataclasses import dataclass, fields, replace
from typing import Mapping, Optional

import yaml
from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

LOG_ROOT = os.getenv("LOG_ROOT", "logs")
ISSUES_OUTPUT_PATH = os.getenv("ISSUES_OUTPUT_PATH", os.path.join("docs", "issues", "issues.json"))
ANALYSIS_WORKERS = int(os.getenv("ANALYSIS_WORKERS", 4))
RULES_CONFIG_PATH = os.getenv("RULES_CONFIG_PATH")
ENGINE_LOG_DIR = os.getenv("ENGINE_LOG_DIR", "engine_logs")
ENGINE_LOG_LEVEL = os.getenv("ENGINE_LOG_LEVEL", "INFO").upper()
API_CORS_ORIGINS = [o.strip() for o in os.getenv("API_CORS_ORIGINS", "").split(",") if o.strip()]
API_HOST = os.getenv("API_HOST", "127.0.0.1")
API_PORT = int(os.getenv("API_PORT", 8000))

_ENV_PREFIX = "RULE_"


@dataclass(frozen=True)
class RuleSettings:
    """Thresholds and keyword lists consumed by the rule catalog."""

    # Correlation: untraced events attach to a click at most this much earlier
    attach_window_ms: int = 5000

    # R01
    critical_error_keywords: tuple[str, ...] = (
        "ReferenceError",
        "TypeError",
        "SyntaxError",
        "is not defined",
        "Cannot read propert",
        "Uncaught",
        "fatal",
    )

    # R02
    unknown_feature_id: str = "UNKNOWN"

    # R03
    duplicate_bind_window_ms: int = 10

    # R04
    search_element_pattern: str = "SEARCH"

    # R05
    api_timeout_ms: int = 3000
    action_element_pattern: str = "SEARCH|SAVE|UPDATE|REGIST|ISSUE|EXEC|SEND|COMMIT"

    # R06
    back_element_pattern: str = "BACK"
    rapid_back_window_ms: int = 100
    rapid_back_min_clicks: int = 3

    # R07
    duplicate_load_window_ms: int = 1000

    # R08
    backend_success_statuses: tuple[str, ...] = ("SUCCESS", "OK")
    backend_critical_statuses: tuple[str, ...] = ("ERROR", "FATAL", "EXCEPTION", "TIMEOUT")

    # R09
    clear_element_pattern: str = "CLEAR"

    # R10
    min_click_events: int = 5
    min_backend_events: int = 2


def _coerce(value, default):
    """Convert a raw YAML/env value to the type of the field default."""
    if isinstance(default, tuple):
        if isinstance(value, str):
            return tuple(part.strip() for part in value.split(",") if part.strip())
        return tuple(str(v) for v in value)
    if isinstance(default, int):
        return int(value)
    return str(value)


def load_rule_settings(
    path: Optional[str] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> RuleSettings:
    """
    Build RuleSettings from defaults, an optional YAML file and RULE_* env vars.

    Parameters
    ----------
    path : str | None
        YAML file path; falls back to RULES_CONFIG_PATH.
    environ : Mapping | None
        Environment mapping (defaults to os.environ).

    Returns
    -------
    RuleSettings
        Frozen settings object. Unknown YAML keys are logged and ignored.
    """
    env = os.environ if environ is None else environ
    settings = RuleSettings()
    defaults = {f.name: getattr(settings, f.name) for f in fields(RuleSettings)}

    overrides: dict = {}
    yaml_path = path or RULES_CONFIG_PATH
    if yaml_path:
        with open(yaml_path, "r", encoding="utf-8") as fh:
            data = yaml.safe_load(fh) or {}
        if not isinstance(data, dict):
            raise ValueError(f"Rule config {yaml_path} must be a mapping, got {type(data).__name__}")
        for key, value in data.items():
            if key not in defaults:
                logger.warning("Ignoring unknown rule setting '%s' in %s", key, yaml_path)
                continue
            overrides[key] = _coerce(value, defaults[key])

    for name, default in defaults.items():
        raw = env.get(f"{_ENV_PREFIX}{name.upper()}")
        if raw is not None and raw != "":
            overrides[name] = _coerce(raw, default)

    if overrides:
        logger.info("Rule settings overridden: %s", ", ".join(sorted(overrides)))
    return replace(settings, **overrides)
