from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from sqlalchemy import Column, DateTime, String
from sqlmodel import Field, SQLModel


class UserRole(str, Enum):
    user = "user"
    partner = "partner"
    admin = "admin"
    master = "master"


STAFF_ROLES = (UserRole.admin, UserRole.master)


class User(SQLModel, table=True):
    __tablename__ = "users"

    id: Optional[int] = Field(default=None, primary_key=True)
    first_name: str = Field(max_length=50)
    last_name: str = Field(max_length=50)
    email: str = Field(index=True, unique=True, nullable=False)
    hashed_password: str
    role: UserRole = Field(
        sa_column=Column(String(32), nullable=False, server_default=UserRole.user.value, index=True),
        default=UserRole.user,
    )
    is_active: bool = Field(default=True)
    phone: Optional[str] = Field(default=None, max_length=32)
    country: Optional[str] = Field(default=None, max_length=64)
    total_uploads: int = Field(default=0, nullable=False)
    total_earnings: float = Field(default=0, nullable=False)
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )
    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )

    @property
    def is_staff(self) -> bool:
        return self.role in STAFF_ROLES

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()
