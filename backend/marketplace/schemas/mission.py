from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, model_validator

from marketplace.models.mission import ApplicationStatus, MissionPriority, MissionStatus, MissionType


class MissionCreate(BaseModel):
    title: str = Field(min_length=1, max_length=100)
    description: str = Field(min_length=1, max_length=2000)
    type: MissionType
    address: str = Field(min_length=1, max_length=255)
    city: str = Field(min_length=1, max_length=100)
    latitude: Optional[float] = Field(default=None, ge=-90, le=90)
    longitude: Optional[float] = Field(default=None, ge=-180, le=180)
    scheduled_date: datetime
    duration_hours: float = Field(gt=0)
    budget_min: float = Field(ge=0)
    budget_max: float = Field(ge=0)
    requirements: List[str] = Field(default_factory=list)
    equipment: List[str] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)
    priority: MissionPriority = MissionPriority.medium

    @model_validator(mode="after")
    def _check_budget(self):
        if self.budget_min > self.budget_max:
            raise ValueError("budget_min cannot exceed budget_max")
        return self


class MissionApply(BaseModel):
    proposed_budget: float = Field(ge=0)
    message: Optional[str] = Field(default=None, max_length=1000)
    portfolio: List[str] = Field(default_factory=list)


class MissionComplete(BaseModel):
    deliverables: List[int] = Field(default_factory=list)
    notes: Optional[str] = Field(default=None, max_length=1000)


class MissionCancel(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=500)


class MissionApplicationRead(BaseModel):
    id: int
    mission_id: int
    partner_id: int
    proposed_budget: float
    message: Optional[str] = None
    portfolio: List[str] = Field(default_factory=list)
    status: ApplicationStatus
    applied_at: datetime

    class Config:
        from_attributes = True


class MissionRead(BaseModel):
    id: int
    title: str
    description: str
    type: MissionType
    address: str
    city: str
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    scheduled_date: datetime
    duration_hours: float
    budget_min: float
    budget_max: float
    requirements: List[str] = Field(default_factory=list)
    equipment: List[str] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)
    created_by_id: int
    assigned_to_id: Optional[int] = None
    status: MissionStatus
    priority: MissionPriority
    final_budget: Optional[float] = None
    accepted_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    notes: Optional[str] = None
    deliverables: List[int] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class MissionDetail(MissionRead):
    applications: List[MissionApplicationRead] = Field(default_factory=list)
