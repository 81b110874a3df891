from typing import Any

from fastapi import APIRouter, Request, status

from marketplace.api.deps import CurrentUser, OptionalUser, SessionDep, SettingsCacheDep, StaffUser
from marketplace.models.upload import Upload
from marketplace.schemas.common import BulkActionRequest, BulkActionResponse, StatsResponse
from marketplace.schemas.query import ListEnvelope, Record, SearchEnvelope
from marketplace.schemas.upload import UploadCreate, UploadRead, UploadReject, UploadUpdate
from marketplace.services import uploads as uploads_service

router = APIRouter()


@router.get("/", response_model=ListEnvelope[Record])
async def list_uploads(
    request: Request, session: SessionDep, cache: SettingsCacheDep, current_user: StaffUser
) -> dict[str, Any]:
    return await uploads_service.list_uploads(session, request.query_params, viewer=current_user, cache=cache)


@router.get("/search", response_model=SearchEnvelope[Record])
async def search_uploads(request: Request, session: SessionDep, cache: SettingsCacheDep) -> dict[str, Any]:
    return await uploads_service.search_uploads(session, request.query_params, cache)


@router.get("/filter", response_model=ListEnvelope[Record])
async def filter_uploads(
    request: Request, session: SessionDep, cache: SettingsCacheDep, viewer: OptionalUser
) -> dict[str, Any]:
    return await uploads_service.list_uploads(session, request.query_params, viewer=viewer, cache=cache)


@router.get("/pending/review", response_model=ListEnvelope[Record])
async def pending_uploads(request: Request, session: SessionDep, _: StaffUser) -> dict[str, Any]:
    return await uploads_service.pending_uploads(session, request.query_params)


@router.get("/stats/overview", response_model=StatsResponse)
async def upload_stats(session: SessionDep, _: StaffUser) -> dict[str, Any]:
    return await uploads_service.upload_stats(session)


@router.post("/bulk", response_model=BulkActionResponse)
async def bulk_uploads(payload: BulkActionRequest, session: SessionDep, current_user: StaffUser) -> BulkActionResponse:
    affected = await uploads_service.bulk_action(
        session,
        action=payload.action,
        upload_ids=payload.ids,
        reviewer=current_user,
        reason=payload.reason,
    )
    return BulkActionResponse(action=payload.action, affected=affected)


@router.post("/", response_model=UploadRead, status_code=status.HTTP_201_CREATED)
async def create_upload(
    upload_in: UploadCreate,
    session: SessionDep,
    cache: SettingsCacheDep,
    current_user: CurrentUser,
) -> Upload:
    return await uploads_service.create_upload(session, cache, owner=current_user, data=upload_in.model_dump())


@router.get("/{upload_id}", response_model=UploadRead)
async def read_upload(upload_id: int, session: SessionDep, viewer: OptionalUser) -> Upload:
    return await uploads_service.get_upload_for_viewer(session, upload_id=upload_id, viewer=viewer)


@router.put("/{upload_id}", response_model=UploadRead)
async def update_upload(
    upload_id: int,
    upload_in: UploadUpdate,
    session: SessionDep,
    current_user: CurrentUser,
) -> Upload:
    return await uploads_service.update_upload(
        session,
        upload_id=upload_id,
        actor=current_user,
        changes=upload_in.model_dump(exclude_unset=True),
    )


@router.delete("/{upload_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_upload(upload_id: int, session: SessionDep, current_user: CurrentUser) -> None:
    await uploads_service.delete_upload(session, upload_id=upload_id, actor=current_user)


@router.patch("/{upload_id}/approve", response_model=UploadRead)
async def approve_upload(upload_id: int, session: SessionDep, current_user: StaffUser) -> Upload:
    return await uploads_service.review_upload(session, upload_id=upload_id, reviewer=current_user, approve=True)


@router.patch("/{upload_id}/reject", response_model=UploadRead)
async def reject_upload(
    upload_id: int,
    payload: UploadReject,
    session: SessionDep,
    current_user: StaffUser,
) -> Upload:
    return await uploads_service.review_upload(
        session,
        upload_id=upload_id,
        reviewer=current_user,
        approve=False,
        reason=payload.reason,
    )


@router.patch("/{upload_id}/featured", response_model=UploadRead)
async def toggle_featured(upload_id: int, session: SessionDep, _: StaffUser) -> Upload:
    return await uploads_service.toggle_featured(session, upload_id=upload_id)
