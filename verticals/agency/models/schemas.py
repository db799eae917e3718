"""Pydantic schemas for API request/response validation."""

from datetime import date
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from patterns.workflow_states import TaskStatus
from verticals.agency.task_templates import ServiceType


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class Priority(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class Role(str, Enum):
    ADMIN = "ADMIN"
    STAFF = "STAFF"


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------

class ClientCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)


class ServiceDraft(BaseModel):
    # Set when editing an existing service; omitted for new ones.
    id: Optional[str] = None
    type: ServiceType = ServiceType.META_ADS
    # Clamped to 1..999 on write; anything smaller becomes 1.
    quantity: int = 1
    notes: Optional[str] = None


class ProjectCreate(BaseModel):
    client_id: str
    name: str = Field(..., min_length=1, max_length=300)
    priority: Priority = Priority.MEDIUM
    start_date: Optional[date] = None
    due_date: Optional[date] = None
    services: list[ServiceDraft] = Field(default_factory=list)
    auto_create_tasks: bool = True
    default_assignee: Optional[str] = None


class ProjectUpdate(BaseModel):
    client_id: str
    name: str = Field(..., min_length=1, max_length=300)
    priority: Priority = Priority.MEDIUM
    status: Optional[str] = None
    start_date: Optional[date] = None
    due_date: Optional[date] = None
    services: list[ServiceDraft] = Field(default_factory=list)


class TaskStatusChange(BaseModel):
    status: TaskStatus
    blocked_reason: Optional[str] = None


class TaskAssigneeChange(BaseModel):
    assignee_user_id: str


class TeamUserCreate(BaseModel):
    user_id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1, max_length=200)
    phone: Optional[str] = None
    role: Role = Role.STAFF


class TeamUserUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    phone: Optional[str] = None
    role: Optional[Role] = None


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------

class SyncResponse(BaseModel):
    project_id: str
    skipped: bool
    changed: bool
    status: Optional[str] = None
