from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from sqlalchemy import Column, DateTime, JSON, String, Text
from sqlmodel import Field, SQLModel


class NotificationType(str, Enum):
    system = "system"
    upload = "upload"
    payment = "payment"
    account = "account"
    promotion = "promotion"


class NotificationPriority(str, Enum):
    low = "low"
    medium = "medium"
    high = "high"
    urgent = "urgent"


class Notification(SQLModel, table=True):
    __tablename__ = "notifications"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="users.id", nullable=False, index=True)
    title: str = Field(max_length=100)
    message: str = Field(sa_column=Column(Text, nullable=False))
    type: NotificationType = Field(
        sa_column=Column(String(32), nullable=False, server_default=NotificationType.system.value),
        default=NotificationType.system,
    )
    priority: NotificationPriority = Field(
        sa_column=Column(String(16), nullable=False, server_default=NotificationPriority.medium.value),
        default=NotificationPriority.medium,
    )
    is_read: bool = Field(default=False, nullable=False, index=True)
    read_at: Optional[datetime] = Field(
        default=None,
        sa_column=Column(DateTime(timezone=True), nullable=True),
    )
    data: dict[str, Any] = Field(
        default_factory=dict,
        sa_column=Column(JSON, nullable=False, server_default="{}"),
    )
    action_url: Optional[str] = Field(default=None, max_length=2048)
    action_text: Optional[str] = Field(default=None, max_length=64)
    expires_at: Optional[datetime] = Field(
        default=None,
        sa_column=Column(DateTime(timezone=True), nullable=True),
    )
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True), nullable=False, index=True),
    )
    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )
