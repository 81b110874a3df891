import logging
from typing import Any

from sqlalchemy import delete, func, update
from sqlalchemy.exc import IntegrityError
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from marketplace.core.config import settings
from marketplace.core.security import get_password_hash, verify_password
from marketplace.db.query import ResourceQueryConfig
from marketplace.models.upload import Upload
from marketplace.models.user import User, UserRole
from marketplace.services import resources
from marketplace.services import revenue as revenue_service

logger = logging.getLogger(__name__)

USER_QUERY = ResourceQueryConfig(
    model=User,
    searchable_fields=("first_name", "last_name", "email"),
    hidden_fields=frozenset({"hashed_password"}),
)


class EmailAlreadyRegistered(ValueError):
    code = "email_exists"


def normalize_email(email: str) -> str:
    return email.strip().lower()


async def get_user_by_email(session: AsyncSession, email: str) -> User | None:
    result = await session.exec(select(User).where(User.email == normalize_email(email)))
    return result.one_or_none()


async def create_user(
    session: AsyncSession,
    *,
    first_name: str,
    last_name: str,
    email: str,
    password: str,
    role: UserRole | None = None,
    **extra: Any,
) -> User:
    """Create an account; the first account ever created becomes master."""
    email = normalize_email(email)
    if await get_user_by_email(session, email):
        raise EmailAlreadyRegistered("Email already registered")

    if role is None:
        count = (await session.exec(select(func.count()).select_from(User))).one()
        role = UserRole.master if count == 0 else UserRole.user

    user = User(
        first_name=first_name,
        last_name=last_name,
        email=email,
        hashed_password=get_password_hash(password),
        role=role,
        **extra,
    )
    session.add(user)
    try:
        await session.commit()
    except IntegrityError as exc:  # pragma: no cover - concurrent registration
        await session.rollback()
        raise EmailAlreadyRegistered("Email already registered") from exc
    await session.refresh(user)
    return user


async def authenticate(session: AsyncSession, *, email: str, password: str) -> User | None:
    user = await get_user_by_email(session, email)
    if user is None or not verify_password(password, user.hashed_password):
        return None
    return user


async def ensure_superuser(session: AsyncSession) -> None:
    """Create the configured master account if it does not exist yet."""
    if not settings.FIRST_SUPERUSER_EMAIL or not settings.FIRST_SUPERUSER_PASSWORD:
        return
    if await get_user_by_email(session, settings.FIRST_SUPERUSER_EMAIL):
        return
    await create_user(
        session,
        first_name="Master",
        last_name="Admin",
        email=settings.FIRST_SUPERUSER_EMAIL,
        password=settings.FIRST_SUPERUSER_PASSWORD,
        role=UserRole.master,
    )
    logger.info("Created initial master account %s", settings.FIRST_SUPERUSER_EMAIL)


async def update_profile(session: AsyncSession, user: User, changes: dict[str, Any]) -> User:
    password = changes.pop("password", None)
    if password:
        changes["hashed_password"] = get_password_hash(password)
    resources.apply_changes(user, changes)
    session.add(user)
    await session.commit()
    await session.refresh(user)
    return user


async def change_role(session: AsyncSession, *, user_id: int, role: UserRole) -> User:
    """Promote or demote a user. Master accounts are never created or changed here."""
    user = await resources.get_resource(session, User, user_id)
    if user.role == UserRole.master:
        raise resources.AccessDenied("You can't change the role of a master user")
    if role == UserRole.master:
        raise resources.AccessDenied("You can't promote a user to master")
    if user.role == role:
        raise resources.TransitionError("User is already in this role", code="role_unchanged")
    resources.apply_changes(user, {"role": role})
    session.add(user)
    await session.commit()
    await session.refresh(user)
    logger.info("User %s role changed to %s", user.id, role.value)
    return user


async def set_active(session: AsyncSession, *, user_id: int, is_active: bool) -> User:
    user = await resources.get_resource(session, User, user_id)
    if user.role == UserRole.master and not is_active:
        raise resources.AccessDenied("Master accounts cannot be deactivated")
    resources.apply_changes(user, {"is_active": is_active})
    session.add(user)
    await session.commit()
    await session.refresh(user)
    return user


async def delete_user(session: AsyncSession, *, user_id: int) -> None:
    user = await resources.get_resource(session, User, user_id)
    if user.role == UserRole.master:
        raise resources.AccessDenied("Master accounts cannot be deleted")
    await session.delete(user)
    await session.commit()


async def bulk_action(session: AsyncSession, *, action: str, user_ids: list[int]) -> int:
    """Activate, deactivate or delete many users. Master accounts are left untouched."""
    if not user_ids:
        return 0
    target = (User.id.in_(user_ids), User.role != UserRole.master.value)
    if action == "activate":
        stmt = update(User).where(*target).values(is_active=True)
    elif action == "deactivate":
        stmt = update(User).where(*target).values(is_active=False)
    elif action == "delete":
        stmt = delete(User).where(*target)
    else:
        raise resources.TransitionError(f"Unsupported bulk action '{action}'", code="unsupported_action")
    result = await session.exec(stmt)
    await session.commit()
    return result.rowcount or 0


async def user_stats(session: AsyncSession, *, user_id: int) -> dict[str, Any]:
    user = await resources.get_resource(session, User, user_id)

    by_status_stmt = (
        select(
            Upload.status,
            func.count().label("count"),
            func.coalesce(func.sum(Upload.views), 0).label("views"),
            func.coalesce(func.sum(Upload.downloads), 0).label("downloads"),
            func.coalesce(func.sum(Upload.total_earnings), 0).label("earnings"),
        )
        .where(Upload.user_id == user_id)
        .group_by(Upload.status)
    )
    uploads = [
        {
            "status": row[0],
            "count": row[1],
            "totalViews": int(row[2]),
            "totalDownloads": int(row[3]),
            "totalEarnings": round(float(row[4]), 2),
        }
        for row in (await session.exec(by_status_stmt)).all()
    ]

    recent_stmt = (
        select(Upload.id, Upload.title, Upload.status, Upload.views, Upload.downloads, Upload.created_at)
        .where(Upload.user_id == user_id)
        .order_by(Upload.created_at.desc())
        .limit(5)
    )
    recent = [dict(row._mapping) for row in (await session.exec(recent_stmt)).all()]

    return {
        "user": {
            "id": user.id,
            "fullName": user.full_name,
            "email": user.email,
            "role": user.role,
            "isActive": user.is_active,
            "joinDate": user.created_at,
        },
        "uploads": uploads,
        "recentUploads": recent,
        "summary": {
            "totalUploads": user.total_uploads,
            "totalEarnings": user.total_earnings,
        },
        "earnings": await revenue_service.earnings_summary(session, user_id=user_id),
    }
