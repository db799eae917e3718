"""Test the tracker service against a SQLite store."""
import asyncio
from datetime import date, datetime, timedelta, timezone

import pytest

from core.exceptions import DataStoreError, PermissionDenied, RecordNotFound, ValidationFailed
from core.resilience import InFlightGuard, scope_key
from verticals.agency.classification import as_datetime
from verticals.agency.repository import TrackerStore
from verticals.agency.service import TrackerService
from verticals.agency.views import TaskTab

NOW = datetime(2024, 6, 10, 12, 0, tzinfo=timezone.utc)


async def make_project(tracker, actor="admin", **overrides):
    data = {
        "client_id": tracker.client_id,
        "name": "Raya Campaign",
        "priority": "HIGH",
        "start_date": "2024-06-01",
        "due_date": "2024-06-30",
        "services": [{"type": "META_ADS", "quantity": 1}],
        "auto_create_tasks": True,
        "default_assignee": "staff1",
    }
    data.update(overrides)
    return await tracker.service.create_project(actor, data)


class CountingStore(TrackerStore):
    """Records every update call."""

    def __init__(self, session):
        super().__init__(session)
        self.updates = []

    async def update(self, table, key_field, key_value, patch):
        self.updates.append((table, key_value, patch))
        return await super().update(table, key_field, key_value, patch)


class SlowStore:
    """Holds tasks_for_project open until released."""

    def __init__(self):
        self.release = asyncio.Event()
        self.calls = 0

    async def tasks_for_project(self, project_id):
        self.calls += 1
        await self.release.wait()
        return []


# ============================================================================
# Project creation
# ============================================================================

@pytest.mark.asyncio
async def test_create_project_expands_templates(tracker):
    result = await make_project(
        tracker, services=[{"type": "META_VIDEO", "quantity": 2}, {"type": "META_ADS", "quantity": 0}]
    )
    project = result["project"]
    assert project["status"] == "IN_PROGRESS"
    assert project["owner_user_id"] == "admin"
    assert project["start_date"] == "2024-06-01"
    assert [s["quantity"] for s in result["services"]] == [2, 1]
    assert len(result["tasks"]) == 2 * 5 + 6
    assert {t["assignee_user_id"] for t in result["tasks"]} == {"staff1"}
    assert {t["status"] for t in result["tasks"]} == {"TODO"}
    assert result["tasks"][0]["due_date"] == "2024-06-01"
    assert result["tasks"][-1]["due_date"] == "2024-06-30"


@pytest.mark.asyncio
async def test_create_project_without_templates(tracker):
    result = await make_project(tracker, auto_create_tasks=False, default_assignee=None)
    assert result["tasks"] == []
    assert len(result["services"]) == 1


@pytest.mark.asyncio
async def test_create_project_validation(tracker):
    with pytest.raises(ValidationFailed):
        await make_project(tracker, services=[])
    with pytest.raises(ValidationFailed):
        await make_project(tracker, default_assignee=None)
    with pytest.raises(ValidationFailed):
        await make_project(tracker, name="  ")
    with pytest.raises(PermissionDenied):
        await make_project(tracker, actor=None)
    assert await tracker.store.fetch_ordered("projects", "created_at") == []


# ============================================================================
# Transitions and project status sync
# ============================================================================

@pytest.mark.asyncio
async def test_all_done_completes_project(tracker):
    result = await make_project(tracker)
    project_id = result["project"]["id"]

    for task in result["tasks"]:
        await tracker.service.transition_task(task, "DONE")

    project = await tracker.store.get("projects", "id", project_id)
    assert project["status"] == "DONE"

    again = await tracker.service.sync_project_status(project_id)
    assert again.changed is False
    assert again.status == "DONE"

    await tracker.service.transition_task(result["tasks"][0], "TODO")
    project = await tracker.store.get("projects", "id", project_id)
    assert project["status"] == "IN_PROGRESS"


@pytest.mark.asyncio
async def test_sync_writes_only_on_change(tracker):
    result = await make_project(tracker)
    project_id = result["project"]["id"]
    await tracker.store.update("tasks", "project_id", project_id, {"status": "DONE"})

    store = CountingStore(tracker.store.session)
    service = TrackerService(store, sync_guard=InFlightGuard(), now=lambda: NOW)

    first = await service.sync_project_status(project_id)
    assert first.changed is True
    assert len(store.updates) == 1

    second = await service.sync_project_status(project_id)
    assert second.changed is False
    assert len(store.updates) == 1


@pytest.mark.asyncio
async def test_sync_ignores_project_without_tasks(tracker):
    result = await make_project(tracker, auto_create_tasks=False, default_assignee=None)
    project_id = result["project"]["id"]
    await tracker.store.update("projects", "id", project_id, {"status": "DONE"})

    outcome = await tracker.service.sync_project_status(project_id)
    assert outcome.changed is False
    assert outcome.status is None
    project = await tracker.store.get("projects", "id", project_id)
    assert project["status"] == "DONE"


@pytest.mark.asyncio
async def test_sync_skips_while_in_flight():
    store = SlowStore()
    guard = InFlightGuard()
    service = TrackerService(store, sync_guard=guard, now=lambda: NOW)

    first = asyncio.create_task(service.sync_project_status("p1"))
    await asyncio.sleep(0)
    assert guard.is_held(scope_key("project_sync", "p1"))

    second = await service.sync_project_status("p1")
    assert second.skipped is True

    store.release.set()
    outcome = await first
    assert outcome.skipped is False
    assert store.calls == 1
    assert guard.held_count == 0


@pytest.mark.asyncio
async def test_blocked_without_reason_is_rejected(tracker):
    task = (await make_project(tracker))["tasks"][0]

    with pytest.raises(ValidationFailed):
        await tracker.service.transition_task(task, "BLOCKED", "   ")

    stored = await tracker.service.get_task(task["id"])
    assert stored["status"] == "TODO"
    assert stored["blocked_reason"] is None


@pytest.mark.asyncio
async def test_unblocking_clears_reason(tracker):
    task = (await make_project(tracker))["tasks"][0]

    blocked = await tracker.service.transition_task(task, "BLOCKED", " waiting on client ")
    assert blocked["status"] == "BLOCKED"
    assert blocked["blocked_reason"] == "waiting on client"

    resumed = await tracker.service.transition_task(blocked, "IN_PROGRESS")
    assert resumed["status"] == "IN_PROGRESS"
    assert resumed["blocked_reason"] is None
    assert as_datetime(resumed["last_update_at"]) == NOW


@pytest.mark.asyncio
async def test_unknown_status_is_rejected(tracker):
    task = (await make_project(tracker))["tasks"][0]
    with pytest.raises(ValidationFailed):
        await tracker.service.transition_task(task, "ARCHIVED")


# ============================================================================
# Assignee and reminders
# ============================================================================

@pytest.mark.asyncio
async def test_reassign_task(tracker):
    task = (await make_project(tracker))["tasks"][0]

    with pytest.raises(PermissionDenied):
        await tracker.service.reassign_task("staff1", task, "staff2")
    with pytest.raises(ValidationFailed):
        await tracker.service.reassign_task("admin", task, "ghost")

    updated = await tracker.service.reassign_task("admin", task, "staff2")
    assert updated["assignee_user_id"] == "staff2"


@pytest.mark.asyncio
async def test_mark_reminded(tracker):
    task = (await make_project(tracker))["tasks"][0]
    updated = await tracker.service.mark_reminded(task["id"])
    assert as_datetime(updated["last_reminded_at"]) == NOW

    with pytest.raises(RecordNotFound):
        await tracker.service.mark_reminded("missing")


# ============================================================================
# Follow-ups
# ============================================================================

@pytest.mark.asyncio
async def test_follow_ups(tracker):
    tasks = (await make_project(tracker, start_date="2024-05-01", due_date="2024-05-11"))["tasks"]
    service = tracker.service

    await service.transition_task(tasks[0], "BLOCKED", "No brief yet")
    await service.transition_task(tasks[4], "DONE")
    await tracker.store.update(
        "tasks", "id", tasks[5]["id"], {"last_update_at": NOW - timedelta(days=4)}
    )
    await service.mark_reminded(tasks[1]["id"])

    lists = await service.follow_ups()
    overdue_ids = [row["task"]["id"] for row in lists["overdue"]]
    stale_ids = [row["task"]["id"] for row in lists["stale"]]
    assert overdue_ids == [tasks[1]["id"], tasks[2]["id"], tasks[3]["id"], tasks[5]["id"]]
    assert stale_ids == [tasks[5]["id"]]

    first = lists["overdue"][0]
    assert first["can_remind"] is False
    assert lists["overdue"][1]["can_remind"] is True
    assert first["client_name"] == "Kedai Kopi"
    assert first["assignee_name"] == "Aina"
    assert first["followup"]["link"].startswith("https://wa.me/60123456789?text=")
    assert "overdue" in first["followup"]["message"]


# ============================================================================
# Views
# ============================================================================

@pytest.mark.asyncio
async def test_project_detail(tracker):
    result = await make_project(
        tracker, services=[{"type": "META_ADS", "quantity": 1}, {"type": "META_VIDEO", "quantity": 1}]
    )
    project_id = result["project"]["id"]
    await tracker.service.transition_task(result["tasks"][0], "BLOCKED", "Waiting for login")

    detail = await tracker.service.project_detail(project_id)
    assert detail["project"]["status_label"] == "IN_PROGRESS"
    assert detail["rollup"]["total"] == 11
    assert detail["rollup"]["blocked"] == 1
    assert detail["tab_counts"]["BLOCKED"] == 1
    assert sorted(s["rollup"]["total"] for s in detail["services"]) == [5, 6]
    assert detail["client"]["name"] == "Kedai Kopi"

    blocked = await tracker.service.project_detail(project_id, tab=TaskTab.BLOCKED)
    assert len(blocked["tasks"]) == 1
    row = blocked["tasks"][0]
    assert row["flags"]["blocked"] is True
    assert row["assignee_name"] == "Aina"
    assert "BLOCKED reason: Waiting for login" in row["followup"]["message"]

    searched = await tracker.service.project_detail(project_id, query="meta video")
    assert len(searched["tasks"]) == 5


@pytest.mark.asyncio
async def test_project_detail_missing(tracker):
    with pytest.raises(RecordNotFound):
        await tracker.service.project_detail("missing")


@pytest.mark.asyncio
async def test_list_projects_visibility(tracker):
    await make_project(tracker)

    assert len(await tracker.service.list_projects("admin")) == 1
    rows = await tracker.service.list_projects("staff1")
    assert len(rows) == 1
    assert rows[0]["client_name"] == "Kedai Kopi"
    assert rows[0]["rollup"]["total"] == 6
    assert await tracker.service.list_projects("staff2") == []
    with pytest.raises(PermissionDenied):
        await tracker.service.list_projects("ghost")


@pytest.mark.asyncio
async def test_client_views(tracker):
    await make_project(tracker)
    await tracker.service.create_client("Empty Client")

    clients = await tracker.service.list_clients()
    assert [c["name"] for c in clients] == ["Empty Client", "Kedai Kopi"]
    assert clients[1]["projects"]["total"] == 1

    detail = await tracker.service.client_detail(tracker.client_id)
    assert detail["summary"]["total"] == 6
    assert len(detail["project_rows"]) == 1
    assert detail["project_rows"][0]["risk"] == detail["risk"]
    filtered = await tracker.service.client_detail(tracker.client_id, query="christmas")
    assert filtered["project_rows"] == []

    cards = await tracker.service.dashboard()
    kopi = next(card for card in cards if card["client"]["id"] == tracker.client_id)
    assert kopi["service_totals"] == [{"type": "META_ADS", "total": 1}]

    with pytest.raises(ValidationFailed):
        await tracker.service.create_client("   ")


# ============================================================================
# Project edits
# ============================================================================

@pytest.mark.asyncio
async def test_update_project_replaces_services(tracker):
    project_id = (await make_project(tracker))["project"]["id"]
    data = {
        "client_id": tracker.client_id,
        "name": "Raya Campaign v2",
        "priority": "LOW",
        "status": "DONE",
        "services": [{"type": "UGC_VIDEO", "quantity": "2", "notes": "  "}],
    }

    with pytest.raises(PermissionDenied):
        await tracker.service.update_project("staff1", project_id, data)

    updated = await tracker.service.update_project("admin", project_id, data)
    assert updated["project"]["name"] == "Raya Campaign v2"
    assert updated["project"]["status"] == "DONE"
    services = await tracker.store.services_for_project(project_id)
    assert [(s["type"], s["quantity"], s["notes"]) for s in services] == [("UGC_VIDEO", 2, None)]
    tasks = await tracker.store.tasks_for_project(project_id)
    assert {t["service_id"] for t in tasks} == {None}

    with pytest.raises(ValidationFailed):
        await tracker.service.update_project("admin", project_id, {**data, "status": "ARCHIVED"})
    with pytest.raises(ValidationFailed):
        await tracker.service.update_project("admin", project_id, {**data, "services": []})


@pytest.mark.asyncio
async def test_update_project_keeps_service_links(tracker):
    created = await make_project(
        tracker, services=[{"type": "META_ADS", "quantity": 1}, {"type": "META_VIDEO", "quantity": 1}]
    )
    project_id = created["project"]["id"]
    ads, video = created["services"]
    base = {"client_id": tracker.client_id, "name": "Renamed"}

    await tracker.service.update_project("admin", project_id, {
        **base,
        "services": [
            {"id": ads["id"], "type": "META_ADS", "quantity": 1},
            {"id": video["id"], "type": "META_VIDEO", "quantity": 1},
        ],
    })
    detail = await tracker.service.project_detail(project_id)
    totals = {s["id"]: s["rollup"]["total"] for s in detail["services"]}
    assert totals == {ads["id"]: 6, video["id"]: 5}

    updated = await tracker.service.update_project("admin", project_id, {
        **base,
        "services": [
            {"id": ads["id"], "type": "META_ADS", "quantity": 3, "notes": "Raya push"},
            {"id": "someone-elses-service", "type": "TIKTOK_LIVE", "quantity": 1},
        ],
    })
    kept, added = updated["services"]
    assert kept["id"] == ads["id"]
    assert (kept["quantity"], kept["notes"]) == (3, "Raya push")
    assert added["type"] == "TIKTOK_LIVE"
    assert added["id"] not in (ads["id"], video["id"], "someone-elses-service")

    detail = await tracker.service.project_detail(project_id)
    totals = {s["id"]: s["rollup"]["total"] for s in detail["services"]}
    assert totals == {ads["id"]: 6, added["id"]: 0}
    assert detail["rollup"]["total"] == 11
    filtered = await tracker.service.project_detail(project_id, service_id=ads["id"])
    assert len(filtered["tasks"]) == 6
    unlinked = [t for t in await tracker.store.tasks_for_project(project_id) if t["service_id"] is None]
    assert len(unlinked) == 5


@pytest.mark.asyncio
async def test_mixed_progress_stays_in_progress(tracker):
    created = await make_project(tracker, auto_create_tasks=False, default_assignee=None)
    project_id = created["project"]["id"]
    base = {
        "project_id": project_id,
        "service_id": created["services"][0]["id"],
        "assignee_user_id": "staff1",
        "last_update_at": NOW,
    }
    await tracker.store.insert_many("tasks", [
        {**base, "title": "Brief", "status": "DONE"},
        {**base, "title": "Audience", "status": "DONE"},
        {**base, "title": "Launch", "status": "TODO", "due_date": date(2024, 6, 1)},
        {**base, "title": "Report", "status": "BLOCKED", "due_date": date(2024, 6, 1),
         "blocked_reason": "No ads account access"},
    ])

    sync = await tracker.service.sync_project_status(project_id)
    assert sync.changed is False
    assert sync.status == "IN_PROGRESS"

    detail = await tracker.service.project_detail(project_id)
    rollup = detail["rollup"]
    assert rollup["total"] == 4
    assert rollup["done"] == 2
    assert rollup["pct"] == 50
    assert rollup["overdue"] == 1
    assert rollup["blocked"] == 1
    assert rollup["stale"] == 0
    assert detail["risk"] == "High risk"
    assert detail["project"]["status"] == "IN_PROGRESS"


@pytest.mark.asyncio
async def test_delete_project(tracker):
    project_id = (await make_project(tracker))["project"]["id"]

    with pytest.raises(PermissionDenied):
        await tracker.service.delete_project("staff1", project_id)

    await tracker.service.delete_project("admin", project_id)
    with pytest.raises(RecordNotFound):
        await tracker.store.get("projects", "id", project_id)
    assert await tracker.store.tasks_for_project(project_id) == []


# ============================================================================
# Team
# ============================================================================

@pytest.mark.asyncio
async def test_team_management(tracker):
    service = tracker.service

    with pytest.raises(PermissionDenied):
        await service.list_team("staff1")

    added = await service.add_team_user("admin", {"user_id": "staff3", "name": " Siti ", "phone": ""})
    assert added["name"] == "Siti"
    assert added["phone"] is None
    assert added["role"] == "STAFF"
    assert len(await service.list_team("admin")) == 4

    promoted = await service.update_team_user("admin", "staff2", {"role": "ADMIN"})
    assert promoted["role"] == "ADMIN"

    with pytest.raises(ValidationFailed):
        await service.update_team_user("admin", "admin", {"role": "STAFF"})
    with pytest.raises(ValidationFailed):
        await service.delete_team_user("admin", "admin")

    await service.delete_team_user("admin", "staff3")
    assert await tracker.store.find_team_user("staff3") is None
    with pytest.raises(RecordNotFound):
        await service.delete_team_user("admin", "staff3")


@pytest.mark.asyncio
async def test_store_errors_surface(tracker):
    with pytest.raises(DataStoreError):
        await tracker.store.fetch_ordered("invoices", "created_at")
    with pytest.raises(DataStoreError):
        await tracker.store.fetch_by_equality("tasks", "no_such_column", "x")
    assert await tracker.store.fetch_by_membership("tasks", "id", []) == []
