from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from marketplace.models.upload import UploadCategory, UploadFileType, UploadStatus


class UploadBase(BaseModel):
    title: str = Field(min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=1000)
    tags: List[str] = Field(default_factory=list)
    category: UploadCategory
    price: float = Field(default=0, ge=0)


class UploadCreate(UploadBase):
    file_type: UploadFileType
    original_file_url: str = Field(min_length=1, max_length=2048)
    watermarked_file_url: Optional[str] = None
    thumbnail_url: Optional[str] = None
    preview_url: Optional[str] = None
    file_size: int = Field(default=0, ge=0)
    width: Optional[int] = Field(default=None, ge=0)
    height: Optional[int] = Field(default=None, ge=0)
    duration: Optional[float] = Field(default=None, ge=0)


class UploadUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=1000)
    tags: Optional[List[str]] = None
    category: Optional[UploadCategory] = None
    price: Optional[float] = Field(default=None, ge=0)
    status: Optional[UploadStatus] = None
    featured: Optional[bool] = None


class UploadReject(BaseModel):
    reason: str = Field(min_length=1, max_length=500)


class UploadRead(UploadBase):
    id: int
    user_id: int
    file_type: UploadFileType
    watermarked_file_url: Optional[str] = None
    thumbnail_url: Optional[str] = None
    preview_url: Optional[str] = None
    file_size: int
    width: Optional[int] = None
    height: Optional[int] = None
    duration: Optional[float] = None
    status: UploadStatus
    rejection_reason: Optional[str] = None
    reviewed_by_id: Optional[int] = None
    reviewed_at: Optional[datetime] = None
    downloads: int
    views: int
    likes: int
    featured: bool
    total_sales: int
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True
