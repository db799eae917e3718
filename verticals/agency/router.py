"""Agency API router — dashboard, clients, projects, tasks, follow-ups, team.

Follows the standard router pattern:
- Acting user from the X-User-ID header via middleware
- TrackerService injection via FastAPI Depends
- Domain errors surface through the app's TrackerError handler
"""

from typing import Optional

from fastapi import APIRouter, Depends

from api.middleware import get_current_user_id
from verticals.agency.models.schemas import (
    ClientCreate,
    ProjectCreate,
    ProjectUpdate,
    SyncResponse,
    TaskAssigneeChange,
    TaskStatusChange,
    TeamUserCreate,
    TeamUserUpdate,
)
from verticals.agency.service import TrackerService, get_tracker_service
from verticals.agency.views import TaskTab

router = APIRouter()


# ============================================================================
# Dashboard & Clients
# ============================================================================

@router.get("/dashboard")
async def dashboard(service: TrackerService = Depends(get_tracker_service)):
    """One card per client with project counts and service totals."""
    return {"data": await service.dashboard()}


@router.get("/clients")
async def list_clients(service: TrackerService = Depends(get_tracker_service)):
    return {"data": await service.list_clients()}


@router.post("/clients", status_code=201)
async def create_client(
    data: ClientCreate,
    service: TrackerService = Depends(get_tracker_service),
):
    return await service.create_client(data.name)


@router.get("/clients/{client_id}")
async def get_client(
    client_id: str,
    query: Optional[str] = None,
    service: TrackerService = Depends(get_tracker_service),
):
    """Client summary and its projects, worst first."""
    return await service.client_detail(client_id, query=query)


# ============================================================================
# Projects
# ============================================================================

@router.get("/projects")
async def list_projects(service: TrackerService = Depends(get_tracker_service)):
    """Projects visible to the acting user, with rollups."""
    return {"data": await service.list_projects(get_current_user_id())}


@router.post("/projects", status_code=201)
async def create_project(
    data: ProjectCreate,
    service: TrackerService = Depends(get_tracker_service),
):
    """Create a project with its services; optionally expand template tasks."""
    return await service.create_project(get_current_user_id(), data.model_dump())


@router.get("/projects/{project_id}")
async def get_project(
    project_id: str,
    tab: TaskTab = TaskTab.ALL,
    query: Optional[str] = None,
    service_id: Optional[str] = None,
    service: TrackerService = Depends(get_tracker_service),
):
    """Project detail. Loading it reconciles the project status first."""
    return await service.project_detail(project_id, tab=tab, query=query, service_id=service_id)


@router.put("/projects/{project_id}")
async def update_project(
    project_id: str,
    data: ProjectUpdate,
    service: TrackerService = Depends(get_tracker_service),
):
    return await service.update_project(get_current_user_id(), project_id, data.model_dump())


@router.delete("/projects/{project_id}", status_code=204)
async def delete_project(
    project_id: str,
    service: TrackerService = Depends(get_tracker_service),
):
    await service.delete_project(get_current_user_id(), project_id)


@router.post("/projects/{project_id}/sync", response_model=SyncResponse)
async def sync_project(
    project_id: str,
    service: TrackerService = Depends(get_tracker_service),
):
    result = await service.sync_project_status(project_id)
    return result.to_dict()


# ============================================================================
# Tasks
# ============================================================================

@router.patch("/tasks/{task_id}/status")
async def change_task_status(
    task_id: str,
    data: TaskStatusChange,
    service: TrackerService = Depends(get_tracker_service),
):
    """Move a task to a new status. BLOCKED needs a reason."""
    service.require_session(get_current_user_id())
    task = await service.get_task(task_id)
    return await service.transition_task(task, data.status, data.blocked_reason)


@router.patch("/tasks/{task_id}/assignee")
async def change_task_assignee(
    task_id: str,
    data: TaskAssigneeChange,
    service: TrackerService = Depends(get_tracker_service),
):
    task = await service.get_task(task_id)
    return await service.reassign_task(get_current_user_id(), task, data.assignee_user_id)


@router.post("/tasks/{task_id}/reminded")
async def mark_task_reminded(
    task_id: str,
    service: TrackerService = Depends(get_tracker_service),
):
    service.require_session(get_current_user_id())
    return await service.mark_reminded(task_id)


# ============================================================================
# Follow-ups
# ============================================================================

@router.get("/follow-ups")
async def follow_ups(service: TrackerService = Depends(get_tracker_service)):
    """Overdue and stale tasks with WhatsApp follow-up links."""
    return await service.follow_ups()


# ============================================================================
# Team
# ============================================================================

@router.get("/team")
async def list_team(service: TrackerService = Depends(get_tracker_service)):
    return {"data": await service.list_team(get_current_user_id())}


@router.post("/team", status_code=201)
async def add_team_user(
    data: TeamUserCreate,
    service: TrackerService = Depends(get_tracker_service),
):
    return await service.add_team_user(get_current_user_id(), data.model_dump())


@router.patch("/team/{user_id}")
async def update_team_user(
    user_id: str,
    data: TeamUserUpdate,
    service: TrackerService = Depends(get_tracker_service),
):
    return await service.update_team_user(
        get_current_user_id(), user_id, data.model_dump(exclude_unset=True)
    )


@router.delete("/team/{user_id}", status_code=204)
async def delete_team_user(
    user_id: str,
    service: TrackerService = Depends(get_tracker_service),
):
    await service.delete_team_user(get_current_user_id(), user_id)
