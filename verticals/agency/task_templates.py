"""Auto-generated task templates per service type.

Expanding a service yields its template titles, repeated once per unit,
each as a TODO task. Due dates are spread linearly between the project's
start and due date by the task's position in the batch.
"""

from datetime import date, datetime, timedelta, timezone
from enum import Enum
from typing import Any, Iterable, Mapping

from patterns.domain_config import ServiceConfig
from patterns.workflow_states import TaskStatus
from verticals.agency.classification import as_date


class ServiceType(str, Enum):
    META_ADS = "META_ADS"
    TIKTOK_ADS = "TIKTOK_ADS"
    META_VIDEO = "META_VIDEO"
    TIKTOK_VIDEO = "TIKTOK_VIDEO"
    UGC_VIDEO = "UGC_VIDEO"
    TIKTOK_LIVE = "TIKTOK_LIVE"
    WEBSITE_DEV = "WEBSITE_DEV"


SERVICE_LABELS: dict[str, str] = {
    ServiceType.META_ADS.value: "Meta Ads",
    ServiceType.TIKTOK_ADS.value: "TikTok Ads",
    ServiceType.META_VIDEO.value: "Meta Video",
    ServiceType.TIKTOK_VIDEO.value: "TikTok Video",
    ServiceType.UGC_VIDEO.value: "UGC Video",
    ServiceType.TIKTOK_LIVE.value: "TikTok Live",
    ServiceType.WEBSITE_DEV.value: "Website Dev",
}

TASK_TEMPLATES: dict[str, list[str]] = {
    ServiceType.META_ADS.value: [
        "Setup campaign objective & structure",
        "Audience research + targeting",
        "Creative brief + angle list",
        "Launch campaign",
        "Daily monitoring + optimization",
        "Weekly report update",
    ],
    ServiceType.TIKTOK_ADS.value: [
        "Setup TikTok Ads account / pixel",
        "Campaign structure + targeting",
        "Creative angles + hooks list",
        "Launch campaign",
        "Optimization + testing",
        "Weekly report update",
    ],
    ServiceType.META_VIDEO.value: [
        "Draft script / storyboard",
        "Shoot / collect footage",
        "Edit (cut, captions, music)",
        "Review + revisions",
        "Final export + deliver",
    ],
    ServiceType.TIKTOK_VIDEO.value: [
        "Draft hook + script",
        "Shoot / collect footage",
        "Edit TikTok style (captions, pacing)",
        "Review + revisions",
        "Final export + deliver",
    ],
    ServiceType.UGC_VIDEO.value: [
        "UGC brief + talking points",
        "Talent/creator coordination",
        "Shoot / collect UGC footage",
        "Edit + captions",
        "Review + revisions",
        "Final export + deliver",
    ],
    ServiceType.TIKTOK_LIVE.value: [
        "Live plan (slot, flow, offers)",
        "Prepare assets (banner, pricing, scripts)",
        "Setup studio (lighting, audio, phone)",
        "Dry run + checklist",
        "Go live + moderation",
        "Post-live recap + next actions",
    ],
    ServiceType.WEBSITE_DEV.value: [
        "Collect requirements (pages, features, copy)",
        "Get domain / hosting / DNS access",
        "Sitemap + page structure",
        "Prepare assets (logo, images) + copy",
        "UI/wireframe approval",
        "Develop pages (Home/About/Services/Contact)",
        "Setup forms (lead/contact) + notifications",
        "SEO basics (title/meta, sitemap, robots)",
        "Performance + mobile responsiveness check",
        "UAT (client testing) + fixes",
        "Deploy / go-live + handover",
    ],
}


def service_label(service_type: str) -> str:
    return SERVICE_LABELS.get(service_type, service_type)


def coerce_quantity(value: Any, limits: ServiceConfig | None = None) -> int:
    """Whole units in ``[min_quantity, max_quantity]``; junk or non-positive -> min."""
    limits = limits or ServiceConfig()
    try:
        qty = int(value)
    except (TypeError, ValueError, OverflowError):
        return limits.min_quantity
    if qty < limits.min_quantity:
        return limits.min_quantity
    return min(qty, limits.max_quantity)


def task_title(base: str, service_type: str, unit_index: int | None = None) -> str:
    label = service_label(service_type)
    if unit_index:
        return f"[{label} #{unit_index}] {base}"
    return f"[{label}] {base}"


def interpolate_due_date(
    position: int,
    total: int,
    start_date: Any,
    due_date: Any,
) -> date | None:
    """Due date for the task at ``position`` of ``total``.

    No due date -> None. No usable start, or due not after start -> the due
    date itself. A single task lands on the due date.
    """
    due = as_date(due_date)
    if due is None:
        return None
    start = as_date(start_date)
    if start is None or due <= start:
        return due

    fraction = 1.0 if total <= 1 else position / (total - 1)
    start_at = datetime(start.year, start.month, start.day, tzinfo=timezone.utc)
    span = (due - start).days * 86400
    # Partial days truncate to the calendar date they fall on.
    return (start_at + timedelta(seconds=round(span * fraction))).date()


def template_count(service: Mapping, limits: ServiceConfig | None = None) -> int:
    titles = TASK_TEMPLATES.get(service.get("type") or "", [])
    return len(titles) * coerce_quantity(service.get("quantity"), limits)


def expand_service_templates(
    service: Mapping,
    project: Mapping,
    default_assignee: str,
    *,
    position: int = 0,
    batch_total: int | None = None,
    now: datetime | None = None,
    limits: ServiceConfig | None = None,
) -> list[dict]:
    """Task records for one service.

    ``position`` and ``batch_total`` place this service inside a larger batch
    so due dates spread across the whole project; by default the service is
    its own batch. Unknown service types expand to nothing.
    """
    limits = limits or ServiceConfig()
    service_type = service.get("type") or ""
    titles = TASK_TEMPLATES.get(service_type, [])
    units = coerce_quantity(service.get("quantity"), limits)
    total = batch_total if batch_total is not None else len(titles) * units
    stamp = now or datetime.now(timezone.utc)

    tasks = []
    cursor = position
    for unit in range(1, units + 1):
        for base in titles:
            tasks.append({
                "project_id": project.get("id"),
                "service_id": service.get("id"),
                "title": task_title(base, service_type, unit if units > 1 else None),
                "status": TaskStatus.TODO.value,
                "priority": limits.default_task_priority,
                "due_date": interpolate_due_date(
                    cursor, total, project.get("start_date"), project.get("due_date")
                ),
                "assignee_user_id": default_assignee,
                "blocked_reason": None,
                "last_update_at": stamp,
            })
            cursor += 1
    return tasks


def expand_project_templates(
    services: Iterable[Mapping],
    project: Mapping,
    default_assignee: str,
    *,
    now: datetime | None = None,
    limits: ServiceConfig | None = None,
) -> list[dict]:
    """Expand every service of a project as one batch, in order."""
    services = list(services)
    stamp = now or datetime.now(timezone.utc)
    batch_total = sum(template_count(s, limits) for s in services)

    tasks: list[dict] = []
    for service in services:
        tasks.extend(
            expand_service_templates(
                service,
                project,
                default_assignee,
                position=len(tasks),
                batch_total=batch_total,
                now=stamp,
                limits=limits,
            )
        )
    return tasks
