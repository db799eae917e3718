"""Agency tracker store — async record access for the five tracker tables.

Extends RecordStore with the lookups the tracker service repeats: tasks of
a project, services of a project, team members by id, and the projects a
staff member is involved in.
"""

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from core.database import get_session
from patterns.repository import RecordStore
from verticals.agency.models.db_models import TABLES


# ---------------------------------------------------------------------------
# Tracker store
# ---------------------------------------------------------------------------

class TrackerStore(RecordStore):
    """Record store bound to the tracker tables."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, TABLES)

    async def tasks_for_project(self, project_id: str) -> list[dict]:
        return await self.fetch_by_equality("tasks", "project_id", project_id)

    async def services_for_project(self, project_id: str) -> list[dict]:
        rows = await self.fetch_by_equality("services", "project_id", project_id)
        return sorted(rows, key=lambda s: s.get("created_at") or "")

    async def team_by_id(self) -> dict[str, dict]:
        rows = await self.fetch_ordered("team_users", "name")
        return {u["user_id"]: u for u in rows}

    async def find_team_user(self, user_id: str | None) -> dict | None:
        if not user_id:
            return None
        rows = await self.fetch_by_equality("team_users", "user_id", user_id)
        return rows[0] if rows else None

    async def project_ids_for_assignee(self, user_id: str) -> set[str]:
        rows = await self.fetch_by_equality("tasks", "assignee_user_id", user_id)
        return {t["project_id"] for t in rows}


# ---------------------------------------------------------------------------
# FastAPI dependency factory
# ---------------------------------------------------------------------------

def get_tracker_store(
    session: AsyncSession = Depends(get_session),
) -> TrackerStore:
    """FastAPI dependency for TrackerStore."""
    return TrackerStore(session)
