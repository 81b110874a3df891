from typing import Any

from fastapi import APIRouter, Query, Request, status

from marketplace.api.deps import CurrentUser, MasterUser, SessionDep, StaffUser
from marketplace.models.user import User, UserRole
from marketplace.schemas.common import BulkActionRequest, BulkActionResponse
from marketplace.schemas.query import ListEnvelope, Record, SearchEnvelope
from marketplace.schemas.user import UserRead, UserRoleUpdate, UserUpdate
from marketplace.services import resources
from marketplace.services import users as users_service

router = APIRouter()


@router.get("/me", response_model=UserRead)
async def read_users_me(current_user: CurrentUser) -> User:
    return current_user


@router.patch("/me", response_model=UserRead)
async def update_users_me(user_in: UserUpdate, session: SessionDep, current_user: CurrentUser) -> User:
    return await users_service.update_profile(session, current_user, user_in.model_dump(exclude_unset=True))


@router.get("/", response_model=ListEnvelope[Record])
async def list_users(request: Request, session: SessionDep, _: StaffUser) -> dict[str, Any]:
    return await resources.list_resources(session, users_service.USER_QUERY, request.query_params)


@router.get("/search", response_model=SearchEnvelope[Record])
async def search_users(request: Request, session: SessionDep, _: StaffUser) -> dict[str, Any]:
    return await resources.search_resources(session, users_service.USER_QUERY, request.query_params)


@router.get("/by-email", response_model=UserRead)
async def read_user_by_email(session: SessionDep, _: StaffUser, email: str = Query(min_length=3)) -> User:
    user = await users_service.get_user_by_email(session, email)
    if user is None:
        raise resources.ResourceNotFound(User, email)
    return user


@router.get("/role/{role}", response_model=ListEnvelope[Record])
async def list_users_by_role(role: UserRole, request: Request, session: SessionDep, _: StaffUser) -> dict[str, Any]:
    return await resources.list_resources(
        session,
        users_service.USER_QUERY,
        request.query_params,
        scope=(User.role == role.value,),
    )


@router.post("/bulk", response_model=BulkActionResponse)
async def bulk_users(payload: BulkActionRequest, session: SessionDep, _: MasterUser) -> BulkActionResponse:
    affected = await users_service.bulk_action(session, action=payload.action, user_ids=payload.ids)
    return BulkActionResponse(action=payload.action, affected=affected)


@router.get("/{user_id}", response_model=UserRead)
async def read_user(user_id: int, session: SessionDep, _: StaffUser) -> User:
    return await resources.get_resource(session, User, user_id)


@router.get("/{user_id}/stats")
async def read_user_stats(user_id: int, session: SessionDep, _: StaffUser) -> dict[str, Any]:
    return await users_service.user_stats(session, user_id=user_id)


@router.patch("/{user_id}/role", response_model=UserRead)
async def change_user_role(user_id: int, payload: UserRoleUpdate, session: SessionDep, _: MasterUser) -> User:
    return await users_service.change_role(session, user_id=user_id, role=payload.role)


@router.post("/{user_id}/activate", response_model=UserRead)
async def activate_user(user_id: int, session: SessionDep, _: StaffUser) -> User:
    return await users_service.set_active(session, user_id=user_id, is_active=True)


@router.post("/{user_id}/deactivate", response_model=UserRead)
async def deactivate_user(user_id: int, session: SessionDep, current_user: StaffUser) -> User:
    if user_id == current_user.id:
        raise resources.TransitionError("You cannot deactivate your own account", code="cannot_deactivate_self")
    return await users_service.set_active(session, user_id=user_id, is_active=False)


@router.delete("/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_user(user_id: int, session: SessionDep, current_user: StaffUser) -> None:
    if user_id == current_user.id:
        raise resources.TransitionError("You cannot delete your own account", code="cannot_delete_self")
    await users_service.delete_user(session, user_id=user_id)
