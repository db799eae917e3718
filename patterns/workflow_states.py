"""Enum-based workflow state machine pattern.

Defines workflow states as Python enums with explicit transition validation.
The state definitions are independent of the storage layer: transitions
produce a patch dict that the caller persists.

Example domain: agency task and project lifecycles.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Iterable


# ---------------------------------------------------------------------------
# State definitions
# ---------------------------------------------------------------------------

class TaskStatus(str, Enum):
    """Task workflow states."""

    TODO = "TODO"
    IN_PROGRESS = "IN_PROGRESS"
    BLOCKED = "BLOCKED"
    DONE = "DONE"


class ProjectStatus(str, Enum):
    """Project states, derived from task statuses."""

    IN_PROGRESS = "IN_PROGRESS"
    DONE = "DONE"

    @property
    def label(self) -> str:
        return "COMPLETED" if self is ProjectStatus.DONE else self.value


# ---------------------------------------------------------------------------
# Transition rules
# ---------------------------------------------------------------------------

# Fully connected: every status may move to every other status.
_TASK_TRANSITIONS: dict[TaskStatus, list[TaskStatus]] = {
    state: [other for other in TaskStatus if other is not state]
    for state in TaskStatus
}


class TransitionError(ValueError):
    """A transition was requested that cannot be committed."""


def parse_task_status(value: Any) -> TaskStatus:
    """Coerce a raw status value. Raises TransitionError for unknown values."""
    try:
        return TaskStatus(value)
    except ValueError:
        allowed = [s.value for s in TaskStatus]
        raise TransitionError(f"Unknown task status {value!r}. Allowed: {allowed}") from None


def can_transition(from_state: TaskStatus, to_state: TaskStatus) -> bool:
    """Check if a transition is allowed. Re-selecting the same state is a no-op commit."""
    return to_state is from_state or to_state in _TASK_TRANSITIONS.get(from_state, [])


# ---------------------------------------------------------------------------
# Transition records
# ---------------------------------------------------------------------------

@dataclass
class WorkflowTransition:
    """Record of a single committed state transition."""

    task_id: str
    from_state: str
    to_state: str
    timestamp: datetime
    patch: dict[str, Any] = field(default_factory=dict)


@dataclass
class BlockedReasonEdit:
    """Edit buffer for moving a task to BLOCKED.

    Selecting BLOCKED opens the buffer (pre-filled with any existing reason);
    nothing is written until commit() is called with a non-empty reason.

    Usage::

        edit = BlockedReasonEdit.open(task)
        edit.draft_reason = "Waiting for client assets"
        transition = edit.commit()
    """

    task_id: str
    prev_status: TaskStatus
    draft_reason: str = ""

    @classmethod
    def open(cls, task: dict) -> "BlockedReasonEdit":
        return cls(
            task_id=str(task["id"]),
            prev_status=parse_task_status(task.get("status")),
            draft_reason=task.get("blocked_reason") or "",
        )

    def commit(self, now: datetime | None = None) -> WorkflowTransition:
        """Validate the draft and build the BLOCKED transition.

        Raises TransitionError if the reason is empty or whitespace only.
        """
        reason = (self.draft_reason or "").strip()
        if not reason:
            raise TransitionError("Blocked reason is required when status is BLOCKED.")

        ts = now or datetime.now(timezone.utc)
        return WorkflowTransition(
            task_id=self.task_id,
            from_state=self.prev_status.value,
            to_state=TaskStatus.BLOCKED.value,
            timestamp=ts,
            patch={
                "status": TaskStatus.BLOCKED.value,
                "blocked_reason": reason,
                "last_update_at": ts,
            },
        )


def plan_task_transition(
    task: dict,
    to_state: TaskStatus | str,
    blocked_reason: str | None = None,
    now: datetime | None = None,
) -> WorkflowTransition:
    """Build the transition (and its patch) for moving ``task`` to ``to_state``.

    BLOCKED goes through BlockedReasonEdit; leaving BLOCKED clears the reason.
    Every transition refreshes ``last_update_at``.

    Raises TransitionError if the transition is not allowed.
    """
    target = parse_task_status(to_state)
    current = parse_task_status(task.get("status"))

    if not can_transition(current, target):
        allowed = [s.value for s in _TASK_TRANSITIONS.get(current, [])]
        raise TransitionError(
            f"Cannot transition from {current.value} to {target.value}. Allowed: {allowed}"
        )

    if target is TaskStatus.BLOCKED:
        edit = BlockedReasonEdit.open(task)
        edit.draft_reason = blocked_reason or ""
        return edit.commit(now)

    ts = now or datetime.now(timezone.utc)
    patch: dict[str, Any] = {"status": target.value, "last_update_at": ts}
    if current is TaskStatus.BLOCKED:
        patch["blocked_reason"] = None

    return WorkflowTransition(
        task_id=str(task["id"]),
        from_state=current.value,
        to_state=target.value,
        timestamp=ts,
        patch=patch,
    )


# ---------------------------------------------------------------------------
# Project status derivation
# ---------------------------------------------------------------------------

def derive_project_status(task_statuses: Iterable[str]) -> ProjectStatus | None:
    """Project status implied by its tasks, or None when it has no tasks."""
    statuses = list(task_statuses)
    if not statuses:
        return None
    done = sum(1 for s in statuses if s == TaskStatus.DONE.value)
    return ProjectStatus.DONE if done == len(statuses) else ProjectStatus.IN_PROGRESS
