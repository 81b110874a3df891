from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from marketplace.models.notification import NotificationPriority, NotificationType
from marketplace.schemas.query import ListEnvelope, Record


class NotificationCreate(BaseModel):
    user_id: int
    title: str = Field(min_length=1, max_length=100)
    message: str = Field(min_length=1, max_length=500)
    type: NotificationType = NotificationType.system
    priority: NotificationPriority = NotificationPriority.medium
    data: dict[str, Any] = Field(default_factory=dict)
    action_url: Optional[str] = None
    action_text: Optional[str] = Field(default=None, max_length=64)
    expires_at: Optional[datetime] = None


class SystemNotificationCreate(BaseModel):
    title: str = Field(min_length=1, max_length=100)
    message: str = Field(min_length=1, max_length=500)
    priority: NotificationPriority = NotificationPriority.medium
    data: dict[str, Any] = Field(default_factory=dict)
    action_url: Optional[str] = None
    action_text: Optional[str] = Field(default=None, max_length=64)


class NotificationRead(BaseModel):
    id: int
    user_id: int
    title: str
    message: str
    type: NotificationType
    priority: NotificationPriority
    is_read: bool
    read_at: Optional[datetime] = None
    data: dict[str, Any] = Field(default_factory=dict)
    action_url: Optional[str] = None
    action_text: Optional[str] = None
    expires_at: Optional[datetime] = None
    created_at: datetime

    class Config:
        from_attributes = True


class NotificationListEnvelope(ListEnvelope[Record]):
    model_config = ConfigDict(populate_by_name=True)

    unread_count: int = Field(alias="unreadCount")


class NotificationCountResponse(BaseModel):
    unread_count: int


class NotificationStats(BaseModel):
    total: int
    unread: int
    byType: List[dict[str, Any]] = Field(default_factory=list)
