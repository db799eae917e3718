"""Template Engine — formats structured data into plain-text messages.

Each vertical registers renderer functions under a message kind; the engine
dispatches on the kind. A generic fallback handles any unregistered kind by
listing the context as ``Key: value`` lines.

This is useful for:
- Deterministic testing (no free-form text assembly at call sites)
- One place to change message wording
"""

from datetime import date, datetime
from typing import Any, Callable, Dict, Optional


# ---------------------------------------------------------------------------
# Formatting helpers
# ---------------------------------------------------------------------------

def fmt_text(value: Any, empty: str = "-") -> str:
    """Stringify, showing ``empty`` for None or blank values."""
    if value is None:
        return empty
    text = str(value).strip()
    return text or empty


def fmt_date(value: Any, empty: str = "-") -> str:
    """``YYYY-MM-DD`` for dates, datetimes and ISO strings."""
    if value is None or value == "":
        return empty
    if isinstance(value, (date, datetime)):
        return value.isoformat()[:10]
    text = str(value)
    return text[:10] if len(text) >= 10 else text


# ---------------------------------------------------------------------------
# Generic fallback renderer
# ---------------------------------------------------------------------------

def render_generic(kind: str, context: Dict[str, Any]) -> str:
    """Fallback: one ``Key: value`` line per public context entry."""
    lines = [kind]
    for key, value in context.items():
        if key.startswith("_"):
            continue
        lines.append(f"{key.replace('_', ' ').capitalize()}: {fmt_text(value)}")
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# Renderer type and registry
# ---------------------------------------------------------------------------

MessageRenderer = Callable[[Dict[str, Any]], str]

_RENDERERS: Dict[str, MessageRenderer] = {}


def register_renderer(kind: str, renderer: MessageRenderer) -> None:
    """Register a renderer for one message kind.

    Example::

        def render_overdue(context):
            return f"Task {context['task_title']} is overdue"

        register_renderer("followup_overdue", render_overdue)
    """
    _RENDERERS[kind] = renderer


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------

class TemplateEngine:
    """Formats message contexts into text.

    Usage::

        text = TemplateEngine.render("followup_stale", {"assignee_name": "Aina", ...})
    """

    @staticmethod
    def render(kind: str, context: Optional[Dict[str, Any]] = None) -> str:
        context = context or {}
        renderer = _RENDERERS.get(kind)
        if renderer is None:
            return render_generic(kind, context)
        return renderer(context)

    @staticmethod
    def list_kinds() -> list[str]:
        """Return the message kinds with registered renderers."""
        return list(_RENDERERS.keys())
