from typing import Any, Optional

from fastapi import APIRouter, Request, status

from marketplace.api.deps import MasterUser, SessionDep, SettingsCacheDep, StaffUser
from marketplace.models.setting import Setting, SettingCategory
from marketplace.models.user import UserRole
from marketplace.schemas.common import CountResponse
from marketplace.schemas.setting import (
    SettingCreate,
    SettingListEnvelope,
    SettingRead,
    SettingsBulkUpdate,
    SettingsImport,
    SettingsReset,
    SettingUpdate,
)
from marketplace.services import app_settings as app_settings_service
from marketplace.services import resources

router = APIRouter()


@router.get("/public")
async def read_public_settings(session: SessionDep) -> dict[str, Any]:
    return await app_settings_service.public_settings(session)


@router.get("/category/{category}", response_model=list[SettingRead])
async def read_settings_by_category(
    category: SettingCategory,
    session: SessionDep,
    current_user: StaffUser,
) -> list[Setting]:
    return await app_settings_service.list_by_category(
        session,
        category,
        include_private=current_user.role == UserRole.master,
    )


@router.get("/", response_model=SettingListEnvelope)
async def list_settings(request: Request, session: SessionDep, _: MasterUser) -> dict[str, Any]:
    return await app_settings_service.list_settings(session, request.query_params)


@router.post("/", response_model=SettingRead, status_code=status.HTTP_201_CREATED)
async def create_setting(
    setting_in: SettingCreate,
    session: SessionDep,
    cache: SettingsCacheDep,
    current_user: MasterUser,
) -> Setting:
    return await app_settings_service.create_setting(session, cache, data=setting_in.model_dump(), actor=current_user)


@router.put("/bulk")
async def bulk_update_settings(
    payload: SettingsBulkUpdate,
    session: SessionDep,
    cache: SettingsCacheDep,
    current_user: MasterUser,
) -> dict[str, Any]:
    return await app_settings_service.bulk_update(
        session,
        cache,
        items=[item.model_dump() for item in payload.settings],
        actor=current_user,
    )


@router.post("/initialize", response_model=CountResponse)
async def initialize_settings(session: SessionDep, cache: SettingsCacheDep, _: MasterUser) -> CountResponse:
    return CountResponse(count=await app_settings_service.initialize_defaults(session, cache))


@router.get("/export")
async def export_settings(
    session: SessionDep,
    _: MasterUser,
    category: Optional[SettingCategory] = None,
    include_private: bool = False,
) -> dict[str, Any]:
    exported = await app_settings_service.export_settings(
        session,
        category=category,
        include_private=include_private,
    )
    return {"settings": exported, "count": len(exported)}


@router.post("/import")
async def import_settings(
    payload: SettingsImport,
    session: SessionDep,
    cache: SettingsCacheDep,
    current_user: MasterUser,
) -> dict[str, Any]:
    return await app_settings_service.import_settings(
        session,
        cache,
        items=[item.model_dump() for item in payload.settings],
        overwrite=payload.overwrite,
        actor=current_user,
    )


@router.post("/reset", response_model=CountResponse)
async def reset_settings(
    payload: SettingsReset,
    session: SessionDep,
    cache: SettingsCacheDep,
    _: MasterUser,
) -> CountResponse:
    if not payload.confirm:
        raise resources.TransitionError("Reset must be confirmed", code="confirmation_required")
    return CountResponse(count=await app_settings_service.reset_to_defaults(session, cache, category=payload.category))


@router.get("/{key}", response_model=SettingRead)
async def read_setting(key: str, session: SessionDep, _: MasterUser) -> Setting:
    return await app_settings_service.get_setting(session, key)


@router.put("/{key}", response_model=SettingRead)
async def update_setting(
    key: str,
    setting_in: SettingUpdate,
    session: SessionDep,
    cache: SettingsCacheDep,
    current_user: StaffUser,
) -> Setting:
    return await app_settings_service.update_setting(
        session,
        cache,
        key=key,
        changes=setting_in.model_dump(exclude_unset=True),
        actor=current_user,
    )


@router.delete("/{key}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_setting(key: str, session: SessionDep, cache: SettingsCacheDep, _: MasterUser) -> None:
    await app_settings_service.delete_setting(session, cache, key=key)
