"""Filter, search, and sort compositions over classified rows.

Everything here is pure and deterministic: the same rows and clock always
give the same view.
"""

from enum import Enum
from typing import Callable, Iterable, Mapping

from verticals.agency.classification import (
    ReferenceClock,
    Rollup,
    is_blocked,
    is_done,
    is_overdue,
    is_stale,
)


class TaskTab(str, Enum):
    ALL = "ALL"
    OPEN = "OPEN"
    OVERDUE = "OVERDUE"
    STALE = "STALE"
    BLOCKED = "BLOCKED"
    DONE = "DONE"


def tab_predicate(tab: TaskTab, clock: ReferenceClock) -> Callable[[Mapping], bool]:
    if tab is TaskTab.OPEN:
        return lambda t: not is_done(t)
    if tab is TaskTab.OVERDUE:
        return lambda t: is_overdue(t, clock)
    if tab is TaskTab.STALE:
        return lambda t: is_stale(t, clock)
    if tab is TaskTab.BLOCKED:
        return is_blocked
    if tab is TaskTab.DONE:
        return is_done
    return lambda t: True


def tab_counts(tasks: Iterable[Mapping], clock: ReferenceClock) -> dict[str, int]:
    tasks = list(tasks)
    return {tab.value: sum(1 for t in tasks if tab_predicate(tab, clock)(t)) for tab in TaskTab}


def task_matches(
    task: Mapping,
    needle: str,
    assignee_names: Mapping[str, str],
    service_types: Mapping[str, str],
) -> bool:
    """Case-insensitive substring match on title, status, blocked reason, assignee, service type."""
    haystack = (
        task.get("title") or "",
        task.get("status") or "",
        task.get("blocked_reason") or "",
        assignee_names.get(task.get("assignee_user_id") or "", ""),
        service_types.get(task.get("service_id") or "", ""),
    )
    return any(needle in field.lower() for field in haystack)


def filter_tasks(
    tasks: Iterable[Mapping],
    clock: ReferenceClock,
    tab: TaskTab = TaskTab.ALL,
    query: str | None = None,
    service_id: str | None = None,
    assignee_names: Mapping[str, str] | None = None,
    service_types: Mapping[str, str] | None = None,
) -> list[Mapping]:
    """Apply service scope, then tab, then free-text search. Input order is kept."""
    rows = list(tasks)

    if service_id:
        rows = [t for t in rows if t.get("service_id") == service_id]

    if tab is not TaskTab.ALL:
        keep = tab_predicate(tab, clock)
        rows = [t for t in rows if keep(t)]

    needle = (query or "").strip().lower()
    if needle:
        rows = [
            t for t in rows
            if task_matches(t, needle, assignee_names or {}, service_types or {})
        ]

    return rows


def project_matches(project: Mapping, query: str | None) -> bool:
    """Needle over project name, status, and priority."""
    needle = (query or "").strip().lower()
    if not needle:
        return True
    return any(
        needle in (project.get(field) or "").lower()
        for field in ("name", "status", "priority")
    )


def worst_first_key(rollup: Rollup) -> tuple[int, int, int, int]:
    """Sort key: most overdue, then most stale, then most blocked, then least complete."""
    return (-rollup.overdue, -rollup.stale, -rollup.blocked, rollup.pct)


def sort_worst_first(rows: Iterable[dict], rollup_field: str = "rollup") -> list[dict]:
    """Stable sort of rows that each carry a Rollup under ``rollup_field``."""
    return sorted(rows, key=lambda row: worst_first_key(row[rollup_field]))
