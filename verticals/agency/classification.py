"""Task risk and progress classification.

Pure functions over task rows (dicts as returned by the record store).
Every evaluation pass takes a ReferenceClock snapshot so that all tasks in
one view are judged against the same ``today`` and stale cutoff.

Malformed or missing dates never raise: the task is simply left out of
the overdue/stale counts.
"""

from collections import defaultdict
from dataclasses import asdict, dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Any, Iterable, Mapping

from patterns.domain_config import RiskConfig
from patterns.workflow_states import ProjectStatus, TaskStatus


# ---------------------------------------------------------------------------
# Value coercion
# ---------------------------------------------------------------------------

def as_date(value: Any) -> date | None:
    """Calendar date of a date, datetime or ISO string; None if unusable."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str) and len(value) >= 10:
        try:
            return date.fromisoformat(value[:10])
        except ValueError:
            return None
    return None


def as_datetime(value: Any) -> datetime | None:
    """Aware UTC datetime of a datetime or ISO string; naive values are taken as UTC."""
    if value is None:
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value:
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
    else:
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


# ---------------------------------------------------------------------------
# Reference clock
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ReferenceClock:
    """The instants one evaluation pass is judged against."""

    now: datetime
    today: date
    stale_cutoff: datetime

    @classmethod
    def at(cls, now: datetime | None = None, risk: RiskConfig | None = None) -> "ReferenceClock":
        risk = risk or RiskConfig()
        current = as_datetime(now) if now is not None else datetime.now(timezone.utc)
        return cls(
            now=current,
            today=current.date(),
            stale_cutoff=current - timedelta(days=risk.stale_after_days),
        )


# ---------------------------------------------------------------------------
# Per-task predicates
# ---------------------------------------------------------------------------

def is_done(task: Mapping) -> bool:
    return task.get("status") == TaskStatus.DONE.value


def is_blocked(task: Mapping) -> bool:
    return task.get("status") == TaskStatus.BLOCKED.value


def _at_risk_candidate(task: Mapping) -> bool:
    # Blocked is an acknowledged state; it supersedes the passive risk flags.
    return not is_done(task) and not is_blocked(task)


def is_overdue(task: Mapping, clock: ReferenceClock) -> bool:
    """Open, not blocked, and due before today (day granularity)."""
    if not _at_risk_candidate(task):
        return False
    due = as_date(task.get("due_date"))
    return due is not None and due < clock.today


def is_stale(task: Mapping, clock: ReferenceClock) -> bool:
    """Open, not blocked, and untouched since the stale cutoff (inclusive)."""
    if not _at_risk_candidate(task):
        return False
    updated = as_datetime(task.get("last_update_at"))
    return updated is not None and updated <= clock.stale_cutoff


@dataclass(frozen=True)
class TaskFlags:
    done: bool
    blocked: bool
    overdue: bool
    stale: bool

    def to_dict(self) -> dict:
        return asdict(self)


def classify_task(task: Mapping, clock: ReferenceClock) -> TaskFlags:
    """All four flags for one task. Overdue and stale may both be set."""
    return TaskFlags(
        done=is_done(task),
        blocked=is_blocked(task),
        overdue=is_overdue(task, clock),
        stale=is_stale(task, clock),
    )


# ---------------------------------------------------------------------------
# Rollups
# ---------------------------------------------------------------------------

def percent(part: int, whole: int) -> int:
    """Integer percentage rounded half-up; 0 when ``whole`` is 0."""
    if whole <= 0:
        return 0
    return (200 * part + whole) // (2 * whole)


@dataclass
class Rollup:
    """Counts for one scope (service, project, or client)."""

    total: int = 0
    done: int = 0
    blocked: int = 0
    overdue: int = 0
    stale: int = 0

    @property
    def open(self) -> int:
        return self.total - self.done

    @property
    def pct(self) -> int:
        return percent(self.done, self.total)

    def add(self, flags: TaskFlags) -> None:
        self.total += 1
        self.done += flags.done
        self.blocked += flags.blocked
        self.overdue += flags.overdue
        self.stale += flags.stale

    def to_dict(self) -> dict:
        return {
            "total": self.total,
            "done": self.done,
            "open": self.open,
            "blocked": self.blocked,
            "overdue": self.overdue,
            "stale": self.stale,
            "pct": self.pct,
        }


def compute_rollup(tasks: Iterable[Mapping], clock: ReferenceClock) -> Rollup:
    """Aggregate counts over ``tasks``; scope them before calling."""
    rollup = Rollup()
    for task in tasks:
        rollup.add(classify_task(task, clock))
    return rollup


def rollup_by(
    tasks: Iterable[Mapping],
    key: str,
    clock: ReferenceClock,
    scope_ids: Iterable[str] = (),
) -> dict[str, Rollup]:
    """One rollup per distinct ``task[key]``.

    Every id in ``scope_ids`` gets an entry even with no tasks; tasks whose
    key is empty are skipped.
    """
    rollups: dict[str, Rollup] = {sid: Rollup() for sid in scope_ids}
    for task in tasks:
        sid = task.get(key)
        if not sid:
            continue
        rollups.setdefault(sid, Rollup()).add(classify_task(task, clock))
    return rollups


def rollup_by_service(tasks: Iterable[Mapping], services: Iterable[Mapping], clock: ReferenceClock) -> dict[str, Rollup]:
    """Per-service rollups for the given services. Tasks of other services are ignored."""
    service_ids = [s["id"] for s in services]
    known = set(service_ids)
    scoped = [t for t in tasks if t.get("service_id") in known]
    return rollup_by(scoped, "service_id", clock, service_ids)


def rollup_by_project(tasks: Iterable[Mapping], projects: Iterable[Mapping], clock: ReferenceClock) -> dict[str, Rollup]:
    project_ids = [p["id"] for p in projects]
    known = set(project_ids)
    scoped = [t for t in tasks if t.get("project_id") in known]
    return rollup_by(scoped, "project_id", clock, project_ids)


def rollup_for_client(
    client_id: str,
    projects: Iterable[Mapping],
    tasks: Iterable[Mapping],
    clock: ReferenceClock,
) -> Rollup:
    """Rollup over every task of every project that belongs to ``client_id``."""
    project_ids = {p["id"] for p in projects if p.get("client_id") == client_id}
    return compute_rollup((t for t in tasks if t.get("project_id") in project_ids), clock)


# ---------------------------------------------------------------------------
# Risk badge
# ---------------------------------------------------------------------------

HIGH_RISK = "High risk"
MEDIUM_RISK = "Medium risk"
BLOCKED = "Blocked"
ON_TRACK = "On track"


def risk_badge(overdue: int, stale: int, blocked: int) -> str:
    """First match wins: overdue, then stale, then blocked."""
    if overdue > 0:
        return HIGH_RISK
    if stale > 0:
        return MEDIUM_RISK
    if blocked > 0:
        return BLOCKED
    return ON_TRACK


def rollup_badge(rollup: Rollup) -> str:
    return risk_badge(rollup.overdue, rollup.stale, rollup.blocked)


# ---------------------------------------------------------------------------
# Follow-up cooldown
# ---------------------------------------------------------------------------

def can_remind(last_reminded_at: Any, clock: ReferenceClock, cooldown_hours: int = 24) -> bool:
    """True if never reminded, or the last reminder is at least ``cooldown_hours`` old.

    An unreadable timestamp counts as never reminded.
    """
    last = as_datetime(last_reminded_at)
    if last is None:
        return True
    return clock.now - last >= timedelta(hours=cooldown_hours)


# ---------------------------------------------------------------------------
# Client dashboard figures
# ---------------------------------------------------------------------------

def project_is_overdue(project: Mapping, clock: ReferenceClock) -> bool:
    """A project still in progress past its own due date."""
    if project.get("status") == ProjectStatus.DONE.value:
        return False
    due = as_date(project.get("due_date"))
    return due is not None and due < clock.today


def client_project_counts(projects: Iterable[Mapping], clock: ReferenceClock) -> dict:
    projects = list(projects)
    done = sum(1 for p in projects if p.get("status") == ProjectStatus.DONE.value)
    return {
        "total": len(projects),
        "in_progress": len(projects) - done,
        "done": done,
        "overdue": sum(1 for p in projects if project_is_overdue(p, clock)),
    }


def service_totals(services: Iterable[Mapping]) -> list[tuple[str, int]]:
    """Summed quantity per service type, largest first."""
    totals: dict[str, int] = defaultdict(int)
    for s in services:
        qty = s.get("quantity")
        totals[s.get("type") or "-"] += qty if isinstance(qty, int) else 0
    return sorted(totals.items(), key=lambda pair: pair[1], reverse=True)
