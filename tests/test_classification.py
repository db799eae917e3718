"""Test task classification, rollups, and risk badges."""
from datetime import date, datetime, timedelta, timezone

import pytest

from patterns.domain_config import RiskConfig
from verticals.agency.classification import (
    BLOCKED,
    HIGH_RISK,
    MEDIUM_RISK,
    ON_TRACK,
    ReferenceClock,
    as_date,
    as_datetime,
    can_remind,
    classify_task,
    client_project_counts,
    compute_rollup,
    is_overdue,
    is_stale,
    percent,
    risk_badge,
    rollup_badge,
    rollup_by_project,
    rollup_by_service,
    rollup_for_client,
    service_totals,
)

NOW = datetime(2024, 6, 10, 12, 0, tzinfo=timezone.utc)
CLOCK = ReferenceClock.at(NOW)


def make_task(**fields):
    task = {
        "id": "t1",
        "project_id": "p1",
        "service_id": "s1",
        "status": "TODO",
        "due_date": None,
        "last_update_at": NOW.isoformat(),
        "blocked_reason": None,
    }
    task.update(fields)
    return task


def test_reference_clock():
    assert CLOCK.today == date(2024, 6, 10)
    assert CLOCK.stale_cutoff == NOW - timedelta(days=3)


def test_reference_clock_custom_window():
    clock = ReferenceClock.at(NOW, RiskConfig(stale_after_days=5))
    assert clock.stale_cutoff == NOW - timedelta(days=5)


def test_as_date_handles_strings_and_junk():
    assert as_date("2024-06-09") == date(2024, 6, 9)
    assert as_date("2024-06-09T23:00:00+00:00") == date(2024, 6, 9)
    assert as_date("not a date") is None
    assert as_date(None) is None


def test_as_datetime_naive_is_utc():
    parsed = as_datetime("2024-06-01T08:00:00")
    assert parsed.tzinfo is not None
    assert parsed == datetime(2024, 6, 1, 8, tzinfo=timezone.utc)
    assert as_datetime("garbage") is None


def test_overdue_is_day_granular():
    assert is_overdue(make_task(due_date="2024-06-09"), CLOCK)
    assert not is_overdue(make_task(due_date="2024-06-10"), CLOCK)
    assert not is_overdue(make_task(due_date=None), CLOCK)


def test_stale_boundary_is_inclusive():
    at_cutoff = make_task(last_update_at=CLOCK.stale_cutoff.isoformat())
    after_cutoff = make_task(last_update_at=(CLOCK.stale_cutoff + timedelta(seconds=1)).isoformat())
    assert is_stale(at_cutoff, CLOCK)
    assert not is_stale(after_cutoff, CLOCK)


def test_blocked_and_done_never_at_risk():
    old = (NOW - timedelta(days=30)).isoformat()
    for status in ("BLOCKED", "DONE"):
        task = make_task(status=status, due_date="2024-01-01", last_update_at=old)
        assert not is_overdue(task, CLOCK)
        assert not is_stale(task, CLOCK)


def test_overdue_and_stale_can_both_hold():
    task = make_task(due_date="2024-06-01", last_update_at=(NOW - timedelta(days=4)).isoformat())
    flags = classify_task(task, CLOCK)
    assert flags.overdue and flags.stale
    assert not flags.done and not flags.blocked


def test_malformed_dates_are_not_flagged():
    task = make_task(due_date="soon", last_update_at="yesterday-ish")
    flags = classify_task(task, CLOCK)
    assert not flags.overdue
    assert not flags.stale


@pytest.mark.parametrize("part,whole,expected", [
    (0, 0, 0),
    (1, 2, 50),
    (1, 3, 33),
    (2, 3, 67),
    (1, 8, 13),
    (3, 3, 100),
])
def test_percent_rounds_half_up(part, whole, expected):
    assert percent(part, whole) == expected


def test_rollup_counts():
    tasks = [
        make_task(id="a", status="DONE"),
        make_task(id="b", status="BLOCKED", blocked_reason="waiting"),
        make_task(id="c", due_date="2024-06-01"),
        make_task(id="d", last_update_at=(NOW - timedelta(days=5)).isoformat()),
    ]
    rollup = compute_rollup(tasks, CLOCK)
    assert rollup.total == 4
    assert rollup.done == 1
    assert rollup.open == 3
    assert rollup.blocked == 1
    assert rollup.overdue == 1
    assert rollup.stale == 1
    assert rollup.pct == 25
    assert rollup_badge(rollup) == HIGH_RISK


def test_empty_rollup():
    rollup = compute_rollup([], CLOCK)
    assert rollup.to_dict() == {
        "total": 0, "done": 0, "open": 0, "blocked": 0, "overdue": 0, "stale": 0, "pct": 0,
    }
    assert rollup_badge(rollup) == ON_TRACK


def test_risk_badge_precedence():
    assert risk_badge(1, 1, 1) == HIGH_RISK
    assert risk_badge(0, 2, 1) == MEDIUM_RISK
    assert risk_badge(0, 0, 1) == BLOCKED
    assert risk_badge(0, 0, 0) == ON_TRACK


def test_rollup_by_service_includes_empty_services():
    services = [{"id": "s1"}, {"id": "s2"}]
    tasks = [make_task(id="a", service_id="s1"), make_task(id="b", service_id=None)]
    rollups = rollup_by_service(tasks, services, CLOCK)
    assert rollups["s1"].total == 1
    assert rollups["s2"].total == 0


def test_client_rollup_scopes_through_projects():
    projects = [
        {"id": "p1", "client_id": "c1"},
        {"id": "p2", "client_id": "c1"},
        {"id": "p3", "client_id": "c2"},
    ]
    tasks = [
        make_task(id="a", project_id="p1", status="DONE"),
        make_task(id="b", project_id="p2"),
        make_task(id="c", project_id="p3", status="DONE"),
    ]
    rollup = rollup_for_client("c1", projects, tasks, CLOCK)
    assert rollup.total == 2
    assert rollup.pct == 50

    per_project = rollup_by_project(tasks, projects, CLOCK)
    assert per_project["p3"].done == 1


def test_can_remind_cooldown():
    assert can_remind(None, CLOCK)
    assert can_remind("bogus", CLOCK)
    assert not can_remind((NOW - timedelta(hours=23)).isoformat(), CLOCK)
    assert can_remind((NOW - timedelta(hours=24)).isoformat(), CLOCK)
    assert can_remind((NOW - timedelta(hours=3)).isoformat(), CLOCK, cooldown_hours=2)


def test_client_project_counts():
    projects = [
        {"id": "p1", "status": "DONE", "due_date": "2024-01-01"},
        {"id": "p2", "status": "IN_PROGRESS", "due_date": "2024-06-01"},
        {"id": "p3", "status": "IN_PROGRESS", "due_date": None},
    ]
    assert client_project_counts(projects, CLOCK) == {
        "total": 3, "in_progress": 2, "done": 1, "overdue": 1,
    }


def test_service_totals_largest_first():
    services = [
        {"type": "META_ADS", "quantity": 2},
        {"type": "UGC_VIDEO", "quantity": 5},
        {"type": "META_ADS", "quantity": 1},
    ]
    assert service_totals(services) == [("UGC_VIDEO", 5), ("META_ADS", 3)]
