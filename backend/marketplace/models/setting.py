from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from sqlalchemy import Column, DateTime, JSON, String
from sqlmodel import Field, SQLModel


class SettingType(str, Enum):
    string = "string"
    number = "number"
    boolean = "boolean"
    object = "object"
    array = "array"


class SettingCategory(str, Enum):
    general = "general"
    ui = "ui"
    payment = "payment"
    upload = "upload"
    notification = "notification"
    security = "security"


class Setting(SQLModel, table=True):
    """An admin-editable, typed key/value pair."""

    __tablename__ = "settings"

    id: Optional[int] = Field(default=None, primary_key=True)
    key: str = Field(sa_column=Column(String(100), nullable=False, unique=True, index=True))
    value: Any = Field(default=None, sa_column=Column(JSON, nullable=True))
    type: SettingType = Field(sa_column=Column(String(16), nullable=False))
    category: SettingCategory = Field(
        sa_column=Column(String(32), nullable=False, server_default=SettingCategory.general.value, index=True),
        default=SettingCategory.general,
    )
    description: Optional[str] = Field(default=None, max_length=500)
    is_public: bool = Field(default=False, nullable=False)
    is_editable: bool = Field(default=True, nullable=False)
    validation: dict[str, Any] = Field(
        default_factory=dict,
        sa_column=Column(JSON, nullable=False, server_default="{}"),
    )
    last_modified_by_id: Optional[int] = Field(default=None, foreign_key="users.id")
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True), nullable=False, index=True),
    )
    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )
