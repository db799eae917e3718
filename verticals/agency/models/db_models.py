"""SQLAlchemy models for the agency tracker vertical.

Each model inherits from Base and uses RecordMixin (or AuditMixin for team
users, which are keyed by the auth user id). The to_dict() method provides
the row shape the record store hands to the classification engine.
"""

from datetime import date, datetime

from sqlalchemy import String, Integer, Text, Date, DateTime, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column

from core.models.base import AuditMixin, Base, RecordMixin, iso


class Client(RecordMixin, Base):
    """A client of the agency."""

    __tablename__ = "clients"

    name: Mapped[str] = mapped_column(String(200), nullable=False, index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "created_at": iso(self.created_at),
        }


class TeamUser(AuditMixin, Base):
    """A staff member who can own tasks."""

    __tablename__ = "team_users"

    user_id: Mapped[str] = mapped_column(String(36), primary_key=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    phone: Mapped[str | None] = mapped_column(String(32), nullable=True)
    role: Mapped[str] = mapped_column(String(10), nullable=False, default="STAFF")

    def to_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "name": self.name,
            "phone": self.phone,
            "role": self.role,
            "created_at": iso(self.created_at),
        }


class Project(RecordMixin, Base):
    """A piece of client work made up of services and tasks."""

    __tablename__ = "projects"

    client_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("clients.id", ondelete="CASCADE"), nullable=False, index=True
    )
    owner_user_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    name: Mapped[str] = mapped_column(String(300), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="IN_PROGRESS")
    priority: Mapped[str] = mapped_column(String(10), nullable=False, default="MEDIUM")
    start_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    due_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "client_id": self.client_id,
            "owner_user_id": self.owner_user_id,
            "name": self.name,
            "status": self.status,
            "priority": self.priority,
            "start_date": iso(self.start_date),
            "due_date": iso(self.due_date),
            "created_at": iso(self.created_at),
        }


class Service(RecordMixin, Base):
    """A deliverable line on a project, e.g. 3x TikTok videos."""

    __tablename__ = "services"

    project_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True
    )
    type: Mapped[str] = mapped_column(String(30), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "project_id": self.project_id,
            "type": self.type,
            "quantity": self.quantity,
            "notes": self.notes,
            "created_at": iso(self.created_at),
        }


class Task(RecordMixin, Base):
    """A unit of work owned by one team member."""

    __tablename__ = "tasks"

    project_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True
    )
    service_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("services.id", ondelete="SET NULL"), nullable=True, index=True
    )
    assignee_user_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="TODO")
    priority: Mapped[str] = mapped_column(String(10), nullable=False, default="MEDIUM")
    due_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    last_update_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    last_reminded_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    blocked_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "project_id": self.project_id,
            "service_id": self.service_id,
            "assignee_user_id": self.assignee_user_id,
            "title": self.title,
            "status": self.status,
            "priority": self.priority,
            "due_date": iso(self.due_date),
            "last_update_at": iso(self.last_update_at),
            "last_reminded_at": iso(self.last_reminded_at),
            "blocked_reason": self.blocked_reason,
        }


TABLES: dict[str, type[Base]] = {
    "clients": Client,
    "team_users": TeamUser,
    "projects": Project,
    "services": Service,
    "tasks": Task,
}
