"""WhatsApp follow-up links for task owners.

Builds a ``wa.me`` link with a pre-filled message. Phone numbers are
normalised to international form, assuming Malaysian local numbers.
"""

import re
from typing import Mapping
from urllib.parse import quote

from core.engine.template_engine import TemplateEngine
from patterns.domain_config import FollowUpConfig
import verticals.agency.renderer  # noqa: F401

_SEPARATORS = re.compile(r"[\s-]")


def normalize_phone(phone: str | None, config: FollowUpConfig | None = None) -> str:
    """``012-345 6789`` -> ``+60123456789``; empty input -> ``""``."""
    config = config or FollowUpConfig()
    p = _SEPARATORS.sub("", phone or "")
    if not p:
        return ""
    if p.startswith("+"):
        return p
    country = config.country_prefix.lstrip("+")
    if p.startswith("0"):
        return config.country_prefix + p[1:]
    if p.startswith(country):
        return "+" + p
    return p


def wa_link(phone: str | None, message: str, config: FollowUpConfig | None = None) -> str | None:
    """``https://wa.me/<digits>?text=<message>``, or None without a phone."""
    config = config or FollowUpConfig()
    number = normalize_phone(phone, config).replace("+", "")
    if not number:
        return None
    return f"{config.wa_base_url}/{number}?text={quote(message, safe='')}"


def followup_context(
    task: Mapping,
    assignee: Mapping | None,
    project: Mapping | None,
    client: Mapping | None,
    service_type: str | None = None,
) -> dict:
    return {
        "assignee_name": (assignee or {}).get("name"),
        "client_name": (client or {}).get("name"),
        "project_name": (project or {}).get("name"),
        "service_type": service_type,
        "task_title": task.get("title"),
        "status": task.get("status"),
        "blocked_reason": task.get("blocked_reason"),
        "due_date": task.get("due_date"),
        "last_update_at": task.get("last_update_at"),
    }


def build_followup(
    kind: str,
    task: Mapping,
    assignee: Mapping | None,
    project: Mapping | None,
    client: Mapping | None,
    service_type: str | None = None,
    config: FollowUpConfig | None = None,
) -> dict:
    """Message text plus link for one task. ``link`` is None when the owner has no phone."""
    message = TemplateEngine.render(
        kind, followup_context(task, assignee, project, client, service_type)
    )
    return {
        "kind": kind,
        "message": message,
        "link": wa_link((assignee or {}).get("phone"), message, config),
    }
