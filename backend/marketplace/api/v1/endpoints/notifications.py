from typing import Any

from fastapi import APIRouter, Query, Request, status

from marketplace.api.deps import CurrentUser, MasterUser, SessionDep, StaffUser
from marketplace.models.notification import Notification, NotificationType
from marketplace.models.user import User
from marketplace.schemas.common import BulkActionRequest, BulkActionResponse, CountResponse
from marketplace.schemas.notification import (
    NotificationCountResponse,
    NotificationCreate,
    NotificationListEnvelope,
    NotificationRead,
    NotificationStats,
    SystemNotificationCreate,
)
from marketplace.services import notifications as notifications_service
from marketplace.services import resources

router = APIRouter()


@router.get("/", response_model=NotificationListEnvelope)
async def list_notifications(request: Request, session: SessionDep, current_user: CurrentUser) -> dict[str, Any]:
    return await notifications_service.list_for_user(session, user_id=current_user.id, params=request.query_params)


@router.get("/unread-count", response_model=NotificationCountResponse)
async def unread_notifications_count(session: SessionDep, current_user: CurrentUser) -> NotificationCountResponse:
    count = await notifications_service.unread_count(session, user_id=current_user.id)
    return NotificationCountResponse(unread_count=count)


@router.patch("/read-all", response_model=CountResponse)
async def mark_all_notifications_read(session: SessionDep, current_user: CurrentUser) -> CountResponse:
    count = await notifications_service.mark_all_read(session, user_id=current_user.id)
    return CountResponse(count=count)


@router.delete("/read", response_model=CountResponse)
async def delete_read_notifications(session: SessionDep, current_user: CurrentUser) -> CountResponse:
    count = await notifications_service.delete_read(session, user_id=current_user.id)
    return CountResponse(count=count)


@router.post("/", response_model=NotificationRead, status_code=status.HTTP_201_CREATED)
async def create_notification(payload: NotificationCreate, session: SessionDep, _: StaffUser) -> Notification:
    await resources.get_resource(session, User, payload.user_id)
    notification = await notifications_service.create_notification(
        session,
        user_id=payload.user_id,
        title=payload.title,
        message=payload.message,
        notification_type=payload.type,
        priority=payload.priority,
        data=payload.data,
        action_url=payload.action_url,
        action_text=payload.action_text,
        expires_at=payload.expires_at,
    )
    await session.commit()
    await session.refresh(notification)
    return notification


@router.post("/system", response_model=CountResponse, status_code=status.HTTP_201_CREATED)
async def send_system_notification(payload: SystemNotificationCreate, session: SessionDep, _: MasterUser) -> CountResponse:
    count = await notifications_service.broadcast(
        session,
        title=payload.title,
        message=payload.message,
        notification_type=NotificationType.system,
        priority=payload.priority,
        data=payload.data,
        action_url=payload.action_url,
        action_text=payload.action_text,
    )
    return CountResponse(count=count)


@router.get("/stats/overview", response_model=NotificationStats)
async def notification_stats(session: SessionDep, _: StaffUser) -> dict[str, Any]:
    return await notifications_service.stats(session)


@router.post("/bulk", response_model=BulkActionResponse)
async def bulk_notifications(payload: BulkActionRequest, session: SessionDep, _: StaffUser) -> BulkActionResponse:
    affected = await notifications_service.bulk_action(session, action=payload.action, notification_ids=payload.ids)
    return BulkActionResponse(action=payload.action, affected=affected)


@router.delete("/cleanup/old", response_model=CountResponse)
async def cleanup_old_notifications(
    session: SessionDep,
    _: StaffUser,
    days_old: int = Query(default=30, ge=1),
) -> CountResponse:
    count = await notifications_service.cleanup_old(session, days_old=days_old)
    return CountResponse(count=count)


@router.get("/{notification_id}", response_model=NotificationRead)
async def read_notification(notification_id: int, session: SessionDep, current_user: CurrentUser) -> Notification:
    return await notifications_service.get_for_user(session, user_id=current_user.id, notification_id=notification_id)


@router.patch("/{notification_id}/read", response_model=NotificationRead)
async def mark_notification_read(notification_id: int, session: SessionDep, current_user: CurrentUser) -> Notification:
    return await notifications_service.mark_read(session, user_id=current_user.id, notification_id=notification_id)


@router.delete("/{notification_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_notification(notification_id: int, session: SessionDep, current_user: CurrentUser) -> None:
    await notifications_service.delete_for_user(session, user_id=current_user.id, notification_id=notification_id)
