import logging
from collections.abc import Iterable, Mapping
from datetime import datetime, timedelta, timezone
from typing import Any

from sqlalchemy import case, delete, func, update
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from marketplace.db.query import ResourceQueryConfig
from marketplace.models.notification import Notification, NotificationPriority, NotificationType
from marketplace.models.user import STAFF_ROLES, User, UserRole
from marketplace.services import resources

logger = logging.getLogger(__name__)

NOTIFICATION_QUERY = ResourceQueryConfig(
    model=Notification,
    searchable_fields=("title", "message"),
    default_limit=20,
)


async def create_notification(
    session: AsyncSession,
    *,
    user_id: int,
    title: str,
    message: str,
    notification_type: NotificationType = NotificationType.system,
    priority: NotificationPriority = NotificationPriority.medium,
    data: Mapping[str, Any] | None = None,
    action_url: str | None = None,
    action_text: str | None = None,
    expires_at: datetime | None = None,
) -> Notification:
    """Stage a notification in the current transaction; the caller commits."""
    notification = Notification(
        user_id=user_id,
        title=title,
        message=message,
        type=notification_type,
        priority=priority,
        data=dict(data or {}),
        action_url=action_url,
        action_text=action_text,
        expires_at=expires_at,
    )
    session.add(notification)
    await session.flush()
    return notification


async def notify_users(
    session: AsyncSession,
    user_ids: Iterable[int],
    *,
    title: str,
    message: str,
    notification_type: NotificationType = NotificationType.system,
    priority: NotificationPriority = NotificationPriority.medium,
    data: Mapping[str, Any] | None = None,
    action_url: str | None = None,
    action_text: str | None = None,
) -> int:
    count = 0
    for user_id in dict.fromkeys(user_ids):
        session.add(
            Notification(
                user_id=user_id,
                title=title,
                message=message,
                type=notification_type,
                priority=priority,
                data=dict(data or {}),
                action_url=action_url,
                action_text=action_text,
            )
        )
        count += 1
    if count:
        await session.flush()
    logger.info("Queued %s '%s' notifications", count, notification_type.value)
    return count


async def _active_user_ids(session: AsyncSession, roles: Iterable[UserRole] | None = None) -> list[int]:
    stmt = select(User.id).where(User.is_active.is_(True))
    if roles is not None:
        stmt = stmt.where(User.role.in_([role.value for role in roles]))
    result = await session.exec(stmt)
    return list(result.all())


async def notify_staff(session: AsyncSession, **kwargs: Any) -> int:
    user_ids = await _active_user_ids(session, STAFF_ROLES)
    return await notify_users(session, user_ids, **kwargs)


async def notify_partners(session: AsyncSession, **kwargs: Any) -> int:
    user_ids = await _active_user_ids(session, (UserRole.partner,))
    return await notify_users(session, user_ids, **kwargs)


async def broadcast(session: AsyncSession, **kwargs: Any) -> int:
    """Send one notification to every active user and commit."""
    user_ids = await _active_user_ids(session)
    count = await notify_users(session, user_ids, **kwargs)
    await session.commit()
    return count


async def list_for_user(session: AsyncSession, *, user_id: int, params: Any) -> dict[str, Any]:
    envelope = await resources.list_resources(
        session,
        NOTIFICATION_QUERY,
        params,
        scope=(Notification.user_id == user_id,),
    )
    envelope["unread_count"] = await unread_count(session, user_id=user_id)
    return envelope


async def unread_count(session: AsyncSession, *, user_id: int) -> int:
    stmt = select(func.count()).select_from(Notification).where(
        Notification.user_id == user_id,
        Notification.is_read.is_(False),
    )
    result = await session.exec(stmt)
    return result.one()


async def get_for_user(session: AsyncSession, *, user_id: int, notification_id: int) -> Notification:
    """Return the notification, raising ``AccessDenied`` when it belongs to someone else."""
    notification = await resources.get_resource(session, Notification, notification_id)
    if notification.user_id != user_id:
        raise resources.AccessDenied("Not allowed to access this notification")
    return notification


async def mark_read(session: AsyncSession, *, user_id: int, notification_id: int) -> Notification:
    notification = await get_for_user(session, user_id=user_id, notification_id=notification_id)
    if not notification.is_read:
        now = datetime.now(timezone.utc)
        resources.apply_changes(notification, {"is_read": True, "read_at": now})
        session.add(notification)
        await session.commit()
        await session.refresh(notification)
    return notification


async def delete_for_user(session: AsyncSession, *, user_id: int, notification_id: int) -> None:
    notification = await get_for_user(session, user_id=user_id, notification_id=notification_id)
    await session.delete(notification)
    await session.commit()


async def mark_all_read(session: AsyncSession, *, user_id: int) -> int:
    now = datetime.now(timezone.utc)
    stmt = (
        update(Notification)
        .where(Notification.user_id == user_id, Notification.is_read.is_(False))
        .values(is_read=True, read_at=now, updated_at=now)
    )
    result = await session.exec(stmt)
    await session.commit()
    return result.rowcount or 0


async def delete_read(session: AsyncSession, *, user_id: int) -> int:
    stmt = delete(Notification).where(Notification.user_id == user_id, Notification.is_read.is_(True))
    result = await session.exec(stmt)
    await session.commit()
    return result.rowcount or 0


async def bulk_action(session: AsyncSession, *, action: str, notification_ids: list[int]) -> int:
    """Apply ``markRead``, ``markUnread`` or ``delete`` to many notifications."""
    if not notification_ids:
        return 0
    now = datetime.now(timezone.utc)
    target = Notification.id.in_(notification_ids)
    if action == "markRead":
        stmt = update(Notification).where(target).values(is_read=True, read_at=now, updated_at=now)
    elif action == "markUnread":
        stmt = update(Notification).where(target).values(is_read=False, read_at=None, updated_at=now)
    elif action == "delete":
        stmt = delete(Notification).where(target)
    else:
        raise resources.TransitionError(f"Unsupported bulk action '{action}'", code="unsupported_action")
    result = await session.exec(stmt)
    await session.commit()
    return result.rowcount or 0


async def cleanup_old(session: AsyncSession, *, days_old: int = 30) -> int:
    """Delete read notifications older than ``days_old`` days."""
    cutoff = datetime.now(timezone.utc) - timedelta(days=days_old)
    stmt = delete(Notification).where(Notification.is_read.is_(True), Notification.created_at < cutoff)
    result = await session.exec(stmt)
    await session.commit()
    deleted = result.rowcount or 0
    logger.info("Removed %s read notifications older than %s days", deleted, days_old)
    return deleted


async def stats(session: AsyncSession) -> dict[str, Any]:
    by_type_stmt = (
        select(
            Notification.type,
            func.count().label("count"),
            func.sum(case((Notification.is_read.is_(False), 1), else_=0)).label("unread"),
        )
        .group_by(Notification.type)
        .order_by(func.count().desc())
    )
    rows = (await session.exec(by_type_stmt)).all()
    by_type = [{"type": row[0], "count": row[1], "unread": int(row[2] or 0)} for row in rows]
    return {
        "total": sum(item["count"] for item in by_type),
        "unread": sum(item["unread"] for item in by_type),
        "byType": by_type,
    }
