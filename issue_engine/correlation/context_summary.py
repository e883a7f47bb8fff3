"""
Context Summarizer
==================
Derives a compact description of the conditions around an interaction.

Only two events contribute:
    - the first event carrying a `context` object → mode, origin, url, heading
    - the first UI_CLICK → one "click" fragment (element id + up to three
      non-empty form values, each truncated to 20 characters; control
      metadata such as elementType/buttonLabel is not a form value)

Absent fragments are omitted; nothing is emitted as an empty placeholder.
"""
import re
from typing import Any, Optional

from issue_engine.core.constants import EventType
from issue_engine.models.event import Event
from issue_engine.models.interaction import ContextFragment, ContextSummary, CorrelatedView, Interaction

MAX_INPUT_VALUES = 3
MAX_VALUE_CHARS = 20

# JSF view-state / component ids carry no meaning for a reviewer
_NOISE_PARAM = re.compile(r"^(j_idt|faces)", re.IGNORECASE)

# inputValues keys that describe the control rather than carry user input
DESCRIPTIVE_KEYS = frozenset({"elementType", "buttonLabel", "tagName", "label", "elementText"})


def _context_fragments(ctx: dict[str, Any]) -> list[ContextFragment]:
    fragments: list[ContextFragment] = []

    mode = str(ctx.get("screenMode") or "").strip()
    if mode and mode.lower() != "unknown":
        fragments.append(ContextFragment(label="mode", text=mode))

    origin = str(ctx.get("callerScreen") or "").strip()
    if origin:
        fragments.append(ContextFragment(label="origin", text=origin))

    params = ctx.get("urlParams")
    if isinstance(params, dict):
        pairs = [
            f"{k}={v}"
            for k, v in params.items()
            if not _NOISE_PARAM.match(str(k)) and v not in (None, "")
        ]
        if pairs:
            fragments.append(ContextFragment(label="url", text="{ " + ", ".join(pairs) + " }"))

    page = ctx.get("pageContext") if isinstance(ctx.get("pageContext"), dict) else {}
    heading = str(page.get("headingText") or ctx.get("headingText") or "").strip()
    if heading:
        fragments.append(ContextFragment(label="heading", text=heading))

    return fragments


def sample_input_values(input_values: dict[str, Any], limit: int = MAX_INPUT_VALUES) -> list[tuple[str, str]]:
    """Non-empty scalar input values, formSnapshot flattened, in insertion order."""
    flat: list[tuple[str, Any]] = []
    for key, value in input_values.items():
        if isinstance(value, dict):
            flat.extend(value.items())
        else:
            flat.append((key, value))

    sampled: list[tuple[str, str]] = []
    for key, value in flat:
        if value is None or isinstance(value, (dict, list)):
            continue
        text = str(value)
        if not text:
            continue
        sampled.append((str(key), text[:MAX_VALUE_CHARS]))
        if len(sampled) == limit:
            break
    return sampled


def form_snapshot(event: Event) -> Optional[dict[str, Any]]:
    snap = event.input_values.get("formSnapshot")
    if not isinstance(snap, dict):
        snap = event.payload.get("formSnapshot")
    return snap if isinstance(snap, dict) else None


def form_values(click: Event, limit: int = MAX_INPUT_VALUES) -> list[tuple[str, str]]:
    """User-entered values of a click: the form snapshot when recorded, else inputValues minus control metadata."""
    snap = form_snapshot(click)
    if snap is not None:
        return sample_input_values(snap, limit)
    values = {k: v for k, v in click.input_values.items() if k not in DESCRIPTIVE_KEYS}
    return sample_input_values(values, limit)


def _click_fragment(click: Event) -> Optional[ContextFragment]:
    element = click.element_id
    values = form_values(click)
    if not element and not values:
        return None
    text = element
    if values:
        rendered = "{ " + ", ".join(f"{k}={v}" for k, v in values) + " }"
        text = f"{element} {rendered}" if element else rendered
    return ContextFragment(label="click", text=text)


def summarize(interaction: Interaction) -> ContextSummary:
    fragments: list[ContextFragment] = []

    ctx_event = next((e for e in interaction.events if e.context is not None), None)
    if ctx_event is not None:
        fragments.extend(_context_fragments(ctx_event.context))

    click = next((e for e in interaction.events if e.type == EventType.UI_CLICK), None)
    if click is not None:
        frag = _click_fragment(click)
        if frag is not None:
            fragments.append(frag)

    return ContextSummary(fragments=fragments)


def summarize_view(view: CorrelatedView) -> CorrelatedView:
    """Return a copy of the view with every interaction's summary filled in."""
    interactions = [
        i.model_copy(update={"context_summary": summarize(i)})
        for i in view.interactions
    ]
    return view.model_copy(update={"interactions": interactions})
