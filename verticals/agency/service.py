"""Tracker service — the operations behind each dashboard screen.

Reads rows through TrackerStore, runs them through the classification
engine, and performs the few writes the tracker allows: task status
transitions, reassignment, reminders, project/client/team CRUD, and the
project status sync that follows every task change.

Validation and permission checks happen before any write. Store failures
propagate as DataStoreError; nothing is retried.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Optional

from fastapi import Depends

from core.exceptions import PermissionDenied, RecordNotFound, ValidationFailed
from core.logging import get_logger
from core.resilience import InFlightGuard, scope_key
from patterns.domain_config import TrackerConfig
from patterns.workflow_states import (
    ProjectStatus,
    TaskStatus,
    TransitionError,
    derive_project_status,
    plan_task_transition,
)
from verticals.agency import renderer
from verticals.agency.classification import (
    ReferenceClock,
    as_date,
    can_remind,
    classify_task,
    client_project_counts,
    compute_rollup,
    is_overdue,
    is_stale,
    rollup_badge,
    rollup_by_project,
    rollup_by_service,
    rollup_for_client,
    service_totals,
)
from verticals.agency.config import config as tracker_config
from verticals.agency.followups import build_followup
from verticals.agency.repository import TrackerStore, get_tracker_store
from verticals.agency.rules import (
    check_admin_role,
    check_default_assignee,
    check_has_services,
    check_required_fields,
    check_team_member_change,
    evaluate_rules,
)
from verticals.agency.task_templates import coerce_quantity, expand_project_templates
from verticals.agency.views import (
    TaskTab,
    filter_tasks,
    project_matches,
    sort_worst_first,
    tab_counts,
)

logger = get_logger(__name__)

# Shared across requests so that overlapping syncs of one project skip.
PROJECT_SYNC_GUARD = InFlightGuard()


@dataclass
class SyncResult:
    project_id: str
    skipped: bool = False
    changed: bool = False
    status: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "project_id": self.project_id,
            "skipped": self.skipped,
            "changed": self.changed,
            "status": self.status,
        }


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _plain(value: Any) -> Any:
    return value.value if isinstance(value, Enum) else value


class TrackerService:
    """Tracker operations over one store (one session, one request).

    Usage::

        service = TrackerService(store)
        task = await service.transition_task(task, "DONE")
    """

    def __init__(
        self,
        store: TrackerStore,
        config: TrackerConfig | None = None,
        sync_guard: InFlightGuard | None = None,
        now: Callable[[], datetime] = _utcnow,
    ):
        self.store = store
        self.config = config or TrackerConfig.default()
        self.sync_guard = sync_guard if sync_guard is not None else PROJECT_SYNC_GUARD
        self._now = now

    def clock(self) -> ReferenceClock:
        """Fresh reference instants for one evaluation pass."""
        return ReferenceClock.at(self._now(), self.config.risk)

    # ------------------------------------------------------------------
    # Permissions
    # ------------------------------------------------------------------

    async def actor(self, user_id: str | None) -> dict | None:
        return await self.store.find_team_user(user_id)

    def require_session(self, user_id: str | None) -> str:
        if not user_id:
            raise PermissionDenied("Session is not valid; sign in again.")
        return user_id

    async def require_admin(self, user_id: str | None, action: str) -> dict:
        user = await self.actor(user_id)
        result = check_admin_role(user, action)
        if not result.passed:
            logger.info("admin_check_failed", user_id=user_id, action=action)
            raise PermissionDenied(result.message)
        return user

    # ------------------------------------------------------------------
    # Project status sync
    # ------------------------------------------------------------------

    async def sync_project_status(self, project_id: str) -> SyncResult:
        """Reconcile a project's status with its tasks.

        Re-reads every task of the project. No tasks -> no change. Writes
        only when the derived status differs. A call made while another
        sync of the same project is in flight is skipped.
        """
        with self.sync_guard.hold(scope_key("project_sync", project_id)) as acquired:
            if not acquired:
                logger.debug("project_sync_skipped", project_id=project_id)
                return SyncResult(project_id=project_id, skipped=True)

            tasks = await self.store.tasks_for_project(project_id)
            derived = derive_project_status(t.get("status") for t in tasks)
            if derived is None:
                return SyncResult(project_id=project_id)

            project = await self.store.get("projects", "id", project_id)
            if project.get("status") == derived.value:
                return SyncResult(project_id=project_id, status=derived.value)

            await self.store.update("projects", "id", project_id, {"status": derived.value})
            logger.info(
                "project_status_synced",
                project_id=project_id,
                old_status=project.get("status"),
                new_status=derived.value,
            )
            return SyncResult(project_id=project_id, changed=True, status=derived.value)

    # ------------------------------------------------------------------
    # Task mutations
    # ------------------------------------------------------------------

    async def get_task(self, task_id: str) -> dict:
        return await self.store.get("tasks", "id", task_id)

    async def transition_task(
        self,
        task: dict,
        next_status: TaskStatus | str,
        blocked_reason: str | None = None,
    ) -> dict:
        """Move a task to ``next_status`` and sync its project.

        BLOCKED requires a non-empty reason; leaving BLOCKED clears it.
        Rejected transitions write nothing.
        """
        try:
            transition = plan_task_transition(task, next_status, blocked_reason, now=self._now())
        except TransitionError as exc:
            raise ValidationFailed(str(exc)) from exc

        await self.store.update("tasks", "id", task["id"], transition.patch)
        logger.info(
            "task_transitioned",
            task_id=task["id"],
            from_status=transition.from_state,
            to_status=transition.to_state,
        )
        await self.sync_project_status(task["project_id"])
        return await self.get_task(task["id"])

    async def reassign_task(self, actor_id: str | None, task: dict, assignee_user_id: str) -> dict:
        """Admin only: hand the task to another team member."""
        await self.require_admin(actor_id, "assign PIC")
        if not await self.store.find_team_user(assignee_user_id):
            raise ValidationFailed(f"Unknown team member: {assignee_user_id}")

        await self.store.update(
            "tasks", "id", task["id"],
            {"assignee_user_id": assignee_user_id, "last_update_at": self._now()},
        )
        return await self.get_task(task["id"])

    async def mark_reminded(self, task_id: str) -> dict:
        """Record that a follow-up was sent. Not gated by the cooldown."""
        if not await self.store.update("tasks", "id", task_id, {"last_reminded_at": self._now()}):
            raise RecordNotFound("tasks", task_id)
        return await self.get_task(task_id)

    # ------------------------------------------------------------------
    # Clients
    # ------------------------------------------------------------------

    async def list_clients(self) -> list[dict]:
        clients = await self.store.fetch_ordered("clients", "name")
        projects = await self.store.fetch_ordered("projects", "created_at")
        clock = self.clock()

        rows = []
        for client in clients:
            owned = [p for p in projects if p.get("client_id") == client["id"]]
            rows.append({**client, "projects": client_project_counts(owned, clock)})
        return rows

    async def create_client(self, name: str) -> dict:
        result = check_required_fields({"name": name}, ["name"])
        if not result.passed:
            raise ValidationFailed(result.message)
        client = await self.store.insert("clients", {"name": name.strip()})
        logger.info("client_created", client_id=client["id"])
        return client

    async def client_detail(self, client_id: str, query: str | None = None) -> dict:
        """Client summary plus its projects, worst first."""
        client = await self.store.get("clients", "id", client_id)
        projects = await self.store.fetch_by_equality("projects", "client_id", client_id)
        projects.sort(key=lambda p: p.get("created_at") or "", reverse=True)
        tasks = await self.store.fetch_by_membership("tasks", "project_id", [p["id"] for p in projects])
        clock = self.clock()

        summary = rollup_for_client(client_id, projects, tasks, clock)
        per_project = rollup_by_project(tasks, projects, clock)
        rows = [
            {"project": p, "rollup": per_project[p["id"]], "risk": rollup_badge(per_project[p["id"]])}
            for p in projects
            if project_matches(p, query)
        ]

        return {
            "client": client,
            "projects": client_project_counts(projects, clock),
            "summary": summary.to_dict(),
            "risk": rollup_badge(summary),
            "project_rows": [
                {**row, "rollup": row["rollup"].to_dict()} for row in sort_worst_first(rows)
            ],
        }

    async def dashboard(self) -> list[dict]:
        """One card per client: project counts and service quantity totals."""
        clients = await self.store.fetch_ordered("clients", "name")
        projects = await self.store.fetch_ordered("projects", "due_date")
        services = await self.store.fetch_ordered("services", "created_at")
        clock = self.clock()

        project_client = {p["id"]: p["client_id"] for p in projects}
        cards = []
        for client in clients:
            owned = [p for p in projects if p["client_id"] == client["id"]]
            client_services = [s for s in services if project_client.get(s["project_id"]) == client["id"]]
            cards.append({
                "client": client,
                "projects": client_project_counts(owned, clock),
                "service_totals": [
                    {"type": service_type, "total": total}
                    for service_type, total in service_totals(client_services)
                ],
            })
        return cards

    # ------------------------------------------------------------------
    # Projects
    # ------------------------------------------------------------------

    async def list_projects(self, actor_id: str | None) -> list[dict]:
        """Admins see every project; staff see projects holding one of their tasks."""
        user = await self.actor(actor_id)
        if user is None:
            raise PermissionDenied("Unknown user; sign in again.")

        projects = await self.store.fetch_ordered("projects", "created_at", descending=True)
        if user.get("role") != "ADMIN":
            involved = await self.store.project_ids_for_assignee(user["user_id"])
            projects = [p for p in projects if p["id"] in involved]

        tasks = await self.store.fetch_by_membership("tasks", "project_id", [p["id"] for p in projects])
        client_ids = list({p["client_id"] for p in projects})
        clients = {c["id"]: c for c in await self.store.fetch_by_membership("clients", "id", client_ids)}
        clock = self.clock()
        rollups = rollup_by_project(tasks, projects, clock)

        return [
            {
                "project": p,
                "client_name": clients.get(p["client_id"], {}).get("name"),
                "rollup": rollups[p["id"]].to_dict(),
                "risk": rollup_badge(rollups[p["id"]]),
            }
            for p in projects
        ]

    def _service_payload(self, services: list, keep_ids: bool = False) -> list[dict]:
        limits = self.config.services
        payload = []
        for s in services:
            record = {
                "type": _plain(s.get("type")),
                "quantity": coerce_quantity(s.get("quantity"), limits),
                "notes": (s.get("notes") or "").strip() or None,
            }
            if keep_ids and s.get("id"):
                record["id"] = s["id"]
            payload.append(record)
        return payload

    async def create_project(self, actor_id: str | None, data: dict[str, Any]) -> dict:
        """Insert a project, its services, and optionally its template tasks."""
        self.require_session(actor_id)

        auto_create = data.get("auto_create_tasks", self.config.auto_create_tasks)
        checks = evaluate_rules(
            check_required_fields(data, ["client_id", "name"]),
            check_has_services(data.get("services")),
            check_default_assignee(auto_create, data.get("default_assignee")),
        )
        if not checks.all_passed:
            raise ValidationFailed(checks.message)

        project = await self.store.insert("projects", {
            "client_id": data["client_id"],
            "owner_user_id": actor_id,
            "name": data["name"].strip(),
            "status": ProjectStatus.IN_PROGRESS.value,
            "priority": _plain(data.get("priority")) or "MEDIUM",
            "start_date": as_date(data.get("start_date")),
            "due_date": as_date(data.get("due_date")),
        })
        services = await self.store.insert_many(
            "services",
            [{**s, "project_id": project["id"]} for s in self._service_payload(data["services"])],
        )

        tasks: list[dict] = []
        if auto_create:
            drafts = expand_project_templates(
                services, project, data["default_assignee"],
                now=self._now(), limits=self.config.services,
            )
            if drafts:
                tasks = await self.store.insert_many("tasks", drafts)

        logger.info(
            "project_created",
            project_id=project["id"],
            services=len(services),
            tasks=len(tasks),
        )
        return {"project": project, "services": services, "tasks": tasks}

    async def update_project(self, actor_id: str | None, project_id: str, data: dict[str, Any]) -> dict:
        """Admin only: update fields and reconcile the service list in one transaction.

        Services sent with their id are updated in place, so their tasks stay
        attached. Tasks of removed services lose their service link.
        """
        await self.require_admin(actor_id, "edit project")
        checks = evaluate_rules(
            check_required_fields(data, ["client_id", "name"]),
            check_has_services(data.get("services")),
        )
        if not checks.all_passed:
            raise ValidationFailed(checks.message)

        await self.store.get("projects", "id", project_id)
        patch = {
            "client_id": data["client_id"],
            "name": data["name"].strip(),
            "priority": _plain(data.get("priority")) or "MEDIUM",
            "start_date": as_date(data.get("start_date")),
            "due_date": as_date(data.get("due_date")),
        }
        if data.get("status"):
            try:
                patch["status"] = ProjectStatus(_plain(data["status"])).value
            except ValueError:
                raise ValidationFailed(f"Unknown project status {data['status']!r}") from None

        before = {s["id"] for s in await self.store.services_for_project(project_id)}
        await self.store.update("projects", "id", project_id, patch)
        services = await self.store.reconcile_where(
            "services", "project_id", project_id,
            self._service_payload(data["services"], keep_ids=True),
        )
        removed = before - {s["id"] for s in services}
        for service_id in removed:
            await self.store.update("tasks", "service_id", service_id, {"service_id": None})
        logger.info(
            "project_updated",
            project_id=project_id,
            services=len(services),
            removed_services=len(removed),
        )
        return {"project": await self.store.get("projects", "id", project_id), "services": services}

    async def delete_project(self, actor_id: str | None, project_id: str) -> None:
        await self.require_admin(actor_id, "delete project")
        await self.store.get("projects", "id", project_id)
        await self.store.delete("tasks", "project_id", project_id)
        await self.store.delete("services", "project_id", project_id)
        await self.store.delete("projects", "id", project_id)
        logger.info("project_deleted", project_id=project_id)

    async def project_detail(
        self,
        project_id: str,
        tab: TaskTab = TaskTab.ALL,
        query: str | None = None,
        service_id: str | None = None,
    ) -> dict:
        """Everything the project screen shows. Syncs the project status first."""
        sync = await self.sync_project_status(project_id)
        project = await self.store.get("projects", "id", project_id)
        client = (await self.store.fetch_by_equality("clients", "id", project["client_id"]) or [None])[0]
        services = await self.store.services_for_project(project_id)
        tasks = await self.store.tasks_for_project(project_id)
        tasks.sort(key=lambda t: (t.get("status") or "", t.get("due_date") or "9999-99-99"))
        team = await self.store.team_by_id()
        clock = self.clock()

        service_types = {s["id"]: s["type"] for s in services}
        assignee_names = {uid: u.get("name") or "" for uid, u in team.items()}
        rollup = compute_rollup(tasks, clock)
        per_service = rollup_by_service(tasks, services, clock)

        visible = filter_tasks(
            tasks, clock, tab=tab, query=query, service_id=service_id,
            assignee_names=assignee_names, service_types=service_types,
        )
        rows = []
        for task in visible:
            assignee = team.get(task.get("assignee_user_id"))
            rows.append({
                "task": task,
                "flags": classify_task(task, clock).to_dict(),
                "assignee_name": (assignee or {}).get("name"),
                "service_type": service_types.get(task.get("service_id")),
                "followup": build_followup(
                    renderer.TASK_STATUS_CHECK, task, assignee, project, client,
                    service_types.get(task.get("service_id")), self.config.follow_up,
                ),
            })

        return {
            "project": {**project, "status_label": ProjectStatus(project["status"]).label},
            "client": client,
            "sync": sync.to_dict(),
            "rollup": rollup.to_dict(),
            "risk": rollup_badge(rollup),
            "services": [
                {**s, "rollup": per_service[s["id"]].to_dict(), "risk": rollup_badge(per_service[s["id"]])}
                for s in services
            ],
            "tab_counts": tab_counts(tasks, clock),
            "tasks": rows,
        }

    # ------------------------------------------------------------------
    # Follow-ups
    # ------------------------------------------------------------------

    async def follow_ups(self) -> dict:
        """Overdue tasks (earliest due first) and stale tasks (oldest update first)."""
        clock = self.clock()
        by_due = await self.store.fetch_ordered("tasks", "due_date")
        by_update = await self.store.fetch_ordered("tasks", "last_update_at")
        overdue = [t for t in by_due if is_overdue(t, clock)]
        stale = [t for t in by_update if is_stale(t, clock)]

        project_ids = {t["project_id"] for t in overdue + stale}
        projects = {p["id"]: p for p in await self.store.fetch_by_membership("projects", "id", project_ids)}
        client_ids = {p["client_id"] for p in projects.values()}
        clients = {c["id"]: c for c in await self.store.fetch_by_membership("clients", "id", client_ids)}
        team = await self.store.team_by_id()
        cooldown = self.config.risk.remind_cooldown_hours

        def row(task: dict, kind: str) -> dict:
            project = projects.get(task["project_id"])
            client = clients.get((project or {}).get("client_id"))
            assignee = team.get(task.get("assignee_user_id"))
            return {
                "task": task,
                "project_name": (project or {}).get("name"),
                "client_name": (client or {}).get("name"),
                "assignee_name": (assignee or {}).get("name"),
                "can_remind": can_remind(task.get("last_reminded_at"), clock, cooldown),
                "followup": build_followup(kind, task, assignee, project, client, config=self.config.follow_up),
            }

        return {
            "overdue": [row(t, renderer.FOLLOWUP_OVERDUE) for t in overdue],
            "stale": [row(t, renderer.FOLLOWUP_STALE) for t in stale],
        }

    # ------------------------------------------------------------------
    # Team
    # ------------------------------------------------------------------

    async def list_team(self, actor_id: str | None) -> list[dict]:
        await self.require_admin(actor_id, "manage team")
        return await self.store.fetch_ordered("team_users", "created_at", descending=True)

    async def add_team_user(self, actor_id: str | None, data: dict[str, Any]) -> dict:
        await self.require_admin(actor_id, "manage team")
        result = check_required_fields(data, ["user_id", "name"])
        if not result.passed:
            raise ValidationFailed(result.message)
        user = await self.store.insert("team_users", {
            "user_id": data["user_id"].strip(),
            "name": data["name"].strip(),
            "phone": (data.get("phone") or "").strip() or None,
            "role": _plain(data.get("role")) or "STAFF",
        })
        logger.info("team_user_added", target_user_id=user["user_id"], role=user["role"])
        return user

    async def update_team_user(self, actor_id: str | None, user_id: str, patch: dict[str, Any]) -> dict:
        await self.require_admin(actor_id, "manage team")
        guard = check_team_member_change(actor_id, user_id, patch)
        if not guard.passed:
            raise ValidationFailed(guard.message)
        patch = {k: _plain(v) for k, v in patch.items() if v is not None}
        if patch:
            await self.store.update("team_users", "user_id", user_id, patch)
        return await self.store.get("team_users", "user_id", user_id)

    async def delete_team_user(self, actor_id: str | None, user_id: str) -> None:
        await self.require_admin(actor_id, "manage team")
        guard = check_team_member_change(actor_id, user_id, deleting=True)
        if not guard.passed:
            raise ValidationFailed(guard.message)
        if not await self.store.delete("team_users", "user_id", user_id):
            raise RecordNotFound("team_users", user_id)
        logger.info("team_user_deleted", target_user_id=user_id)


# ---------------------------------------------------------------------------
# FastAPI dependency factory
# ---------------------------------------------------------------------------

def get_tracker_service(
    store: TrackerStore = Depends(get_tracker_store),
) -> TrackerService:
    """FastAPI dependency for TrackerService."""
    return TrackerService(store, config=tracker_config)
