from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from sqlalchemy import Column, DateTime, JSON, String, Text
from sqlmodel import Field, SQLModel


class UploadCategory(str, Enum):
    photography = "photography"
    video = "video"
    graphics = "graphics"
    illustration = "illustration"
    other = "other"


class UploadFileType(str, Enum):
    image = "image"
    video = "video"


class UploadStatus(str, Enum):
    pending = "pending"
    approved = "approved"
    rejected = "rejected"
    suspended = "suspended"


class Upload(SQLModel, table=True):
    __tablename__ = "uploads"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="users.id", nullable=False, index=True)
    title: str = Field(max_length=100)
    description: Optional[str] = Field(default=None, sa_column=Column(Text, nullable=True))
    tags: list[str] = Field(
        default_factory=list,
        sa_column=Column(JSON, nullable=False, server_default="[]"),
    )
    category: UploadCategory = Field(sa_column=Column(String(32), nullable=False, index=True))
    file_type: UploadFileType = Field(sa_column=Column(String(16), nullable=False))
    original_file_url: str = Field(max_length=2048)
    watermarked_file_url: Optional[str] = Field(default=None, max_length=2048)
    thumbnail_url: Optional[str] = Field(default=None, max_length=2048)
    preview_url: Optional[str] = Field(default=None, max_length=2048)
    file_size: int = Field(default=0, nullable=False)
    width: Optional[int] = None
    height: Optional[int] = None
    duration: Optional[float] = None
    price: float = Field(default=0, nullable=False, index=True)
    status: UploadStatus = Field(
        sa_column=Column(String(16), nullable=False, server_default=UploadStatus.pending.value, index=True),
        default=UploadStatus.pending,
    )
    rejection_reason: Optional[str] = Field(default=None, max_length=500)
    reviewed_by_id: Optional[int] = Field(default=None, foreign_key="users.id")
    reviewed_at: Optional[datetime] = Field(
        default=None,
        sa_column=Column(DateTime(timezone=True), nullable=True),
    )
    downloads: int = Field(default=0, nullable=False)
    views: int = Field(default=0, nullable=False)
    likes: int = Field(default=0, nullable=False)
    featured: bool = Field(default=False, nullable=False)
    total_earnings: float = Field(default=0, nullable=False)
    total_sales: int = Field(default=0, nullable=False)
    last_sale_at: Optional[datetime] = Field(
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

    def record_sale(self, amount: float) -> None:
        self.total_sales += 1
        self.total_earnings += amount
        self.downloads += 1
        self.last_sale_at = datetime.now(timezone.utc)
