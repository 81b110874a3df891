from typing import Any, List, Optional

from pydantic import BaseModel, Field


class Message(BaseModel):
    message: str


class CountResponse(BaseModel):
    count: int


class BulkActionRequest(BaseModel):
    action: str
    ids: List[int] = Field(min_length=1)
    reason: Optional[str] = None


class BulkActionResponse(BaseModel):
    action: str
    affected: int


class StatsResponse(BaseModel):
    overview: dict[str, Any]
    categories: List[dict[str, Any]] = Field(default_factory=list)
    recentActivity: List[dict[str, Any]] = Field(default_factory=list)
    generatedAt: Any = None
