from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from marketplace.models.setting import SettingCategory, SettingType
from marketplace.schemas.query import ListEnvelope, Record


class SettingCreate(BaseModel):
    key: str = Field(min_length=1, max_length=100, pattern=r"^[A-Za-z0-9_.]+$")
    value: Any
    type: SettingType
    category: SettingCategory = SettingCategory.general
    description: Optional[str] = Field(default=None, max_length=500)
    is_public: bool = False
    is_editable: bool = True
    validation: dict[str, Any] = Field(default_factory=dict)


class SettingUpdate(BaseModel):
    value: Any = None
    description: Optional[str] = Field(default=None, max_length=500)
    is_public: Optional[bool] = None
    validation: Optional[dict[str, Any]] = None


class SettingValueItem(BaseModel):
    key: str
    value: Any


class SettingsBulkUpdate(BaseModel):
    settings: List[SettingValueItem] = Field(min_length=1)


class SettingsImport(BaseModel):
    settings: List[SettingCreate] = Field(min_length=1)
    overwrite: bool = False


class SettingsReset(BaseModel):
    confirm: bool = False
    category: Optional[SettingCategory] = None


class SettingRead(BaseModel):
    id: int
    key: str
    value: Any = None
    type: SettingType
    category: SettingCategory
    description: Optional[str] = None
    is_public: bool
    is_editable: bool
    validation: dict[str, Any] = Field(default_factory=dict)
    last_modified_by_id: Optional[int] = None
    updated_at: datetime

    class Config:
        from_attributes = True


class SettingListEnvelope(ListEnvelope[Record]):
    model_config = ConfigDict(populate_by_name=True)

    categories: List[str] = Field(default_factory=list)
