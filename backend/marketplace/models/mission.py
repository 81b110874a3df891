from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from sqlalchemy import Column, DateTime, JSON, String, Text, UniqueConstraint
from sqlmodel import Field, SQLModel


class MissionType(str, Enum):
    photography = "photography"
    videography = "videography"
    drone = "drone"
    event = "event"
    product = "product"
    portrait = "portrait"
    landscape = "landscape"


class MissionStatus(str, Enum):
    open = "open"
    assigned = "assigned"
    in_progress = "in_progress"
    completed = "completed"
    cancelled = "cancelled"
    rejected = "rejected"


class MissionPriority(str, Enum):
    low = "low"
    medium = "medium"
    high = "high"
    urgent = "urgent"


class ApplicationStatus(str, Enum):
    pending = "pending"
    accepted = "accepted"
    rejected = "rejected"


class Mission(SQLModel, table=True):
    __tablename__ = "missions"

    id: Optional[int] = Field(default=None, primary_key=True)
    title: str = Field(max_length=100)
    description: str = Field(sa_column=Column(Text, nullable=False))
    type: MissionType = Field(sa_column=Column(String(32), nullable=False, index=True))
    address: str = Field(max_length=255)
    city: str = Field(max_length=100, index=True)
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    scheduled_date: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    duration_hours: float = Field(nullable=False)
    budget_min: float = Field(nullable=False)
    budget_max: float = Field(nullable=False)
    requirements: list[str] = Field(
        default_factory=list,
        sa_column=Column(JSON, nullable=False, server_default="[]"),
    )
    equipment: list[str] = Field(
        default_factory=list,
        sa_column=Column(JSON, nullable=False, server_default="[]"),
    )
    tags: list[str] = Field(
        default_factory=list,
        sa_column=Column(JSON, nullable=False, server_default="[]"),
    )
    created_by_id: int = Field(foreign_key="users.id", nullable=False, index=True)
    assigned_to_id: Optional[int] = Field(default=None, foreign_key="users.id", index=True)
    status: MissionStatus = Field(
        sa_column=Column(String(16), nullable=False, server_default=MissionStatus.open.value, index=True),
        default=MissionStatus.open,
    )
    priority: MissionPriority = Field(
        sa_column=Column(String(16), nullable=False, server_default=MissionPriority.medium.value),
        default=MissionPriority.medium,
    )
    final_budget: Optional[float] = None
    accepted_at: Optional[datetime] = Field(
        default=None,
        sa_column=Column(DateTime(timezone=True), nullable=True),
    )
    started_at: Optional[datetime] = Field(
        default=None,
        sa_column=Column(DateTime(timezone=True), nullable=True),
    )
    completed_at: Optional[datetime] = Field(
        default=None,
        sa_column=Column(DateTime(timezone=True), nullable=True),
    )
    notes: Optional[str] = Field(default=None, sa_column=Column(Text, nullable=True))
    deliverables: list[int] = Field(
        default_factory=list,
        sa_column=Column(JSON, nullable=False, server_default="[]"),
    )
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True), nullable=False, index=True),
    )
    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )


class MissionApplication(SQLModel, table=True):
    __tablename__ = "mission_applications"
    __table_args__ = (UniqueConstraint("mission_id", "partner_id", name="uq_mission_application_partner"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    mission_id: int = Field(foreign_key="missions.id", nullable=False, index=True)
    partner_id: int = Field(foreign_key="users.id", nullable=False, index=True)
    proposed_budget: float = Field(nullable=False)
    message: Optional[str] = Field(default=None, sa_column=Column(Text, nullable=True))
    portfolio: list[str] = Field(
        default_factory=list,
        sa_column=Column(JSON, nullable=False, server_default="[]"),
    )
    status: ApplicationStatus = Field(
        sa_column=Column(String(16), nullable=False, server_default=ApplicationStatus.pending.value),
        default=ApplicationStatus.pending,
    )
    applied_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )
