import dataclasses
import logging
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import case, delete, func, update
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from marketplace.db.query import ResourceQueryConfig
from marketplace.models.notification import NotificationPriority, NotificationType
from marketplace.models.upload import Upload, UploadStatus
from marketplace.models.user import User
from marketplace.schemas.query import SortField
from marketplace.services import app_settings as app_settings_service
from marketplace.services import notifications as notifications_service
from marketplace.services import resources

logger = logging.getLogger(__name__)

UPLOAD_QUERY = ResourceQueryConfig(
    model=Upload,
    searchable_fields=("title", "description", "tags"),
)

PENDING_QUERY = ResourceQueryConfig(
    model=Upload,
    searchable_fields=UPLOAD_QUERY.searchable_fields,
    default_limit=20,
    default_sort=(SortField(field="created_at"),),
)

# Fields an owner may change while the upload is still pending.
OWNER_EDITABLE_FIELDS = frozenset({"title", "description", "tags", "category", "price"})


def normalize_tags(tags: list[str] | None) -> list[str]:
    cleaned: list[str] = []
    for tag in tags or []:
        value = tag.strip().lower()
        if value and value not in cleaned:
            cleaned.append(value)
    return cleaned


def visibility_scope(viewer: User | None) -> tuple:
    """Anonymous users and non-staff only ever see approved uploads."""
    if viewer is not None and viewer.is_staff:
        return ()
    return (Upload.status == UploadStatus.approved.value,)


def _can_manage(upload: Upload, actor: User) -> bool:
    return actor.is_staff or upload.user_id == actor.id


async def _catalog_query(
    session: AsyncSession, cache: app_settings_service.SettingsCache | None
) -> ResourceQueryConfig:
    if cache is None:
        return UPLOAD_QUERY
    limit = await app_settings_service.get_items_per_page(session, cache)
    return dataclasses.replace(UPLOAD_QUERY, default_limit=limit)


async def list_uploads(
    session: AsyncSession,
    params: Any,
    *,
    viewer: User | None,
    cache: app_settings_service.SettingsCache | None = None,
) -> dict[str, Any]:
    """Uploads visible to ``viewer``; pages default to the ``items_per_page`` setting."""
    config = await _catalog_query(session, cache)
    return await resources.list_resources(session, config, params, scope=visibility_scope(viewer))


async def search_uploads(
    session: AsyncSession, params: Any, cache: app_settings_service.SettingsCache | None = None
) -> dict[str, Any]:
    config = await _catalog_query(session, cache)
    return await resources.search_resources(session, config, params, scope=visibility_scope(None))


async def pending_uploads(session: AsyncSession, params: Any) -> dict[str, Any]:
    """Pending uploads for review, oldest first unless a sort is given."""
    return await resources.list_resources(
        session,
        PENDING_QUERY,
        params,
        scope=(Upload.status == UploadStatus.pending.value,),
    )


async def get_upload_for_viewer(session: AsyncSession, *, upload_id: int, viewer: User | None) -> Upload:
    """Fetch an upload, hiding unreviewed ones from everyone but the owner and staff.

    Each view by someone other than the owner increments the view counter.
    """
    upload = await resources.get_resource(session, Upload, upload_id)
    is_owner = viewer is not None and upload.user_id == viewer.id
    if upload.status != UploadStatus.approved and not is_owner and not (viewer and viewer.is_staff):
        raise resources.ResourceNotFound(Upload, upload_id)
    if not is_owner:
        await session.exec(update(Upload).where(Upload.id == upload.id).values(views=Upload.views + 1))
        await session.commit()
        await session.refresh(upload)
    return upload


async def create_upload(
    session: AsyncSession,
    cache: app_settings_service.SettingsCache,
    *,
    owner: User,
    data: dict[str, Any],
) -> Upload:
    auto_approve = await app_settings_service.uploads_auto_approved(session, cache)
    upload = Upload(
        **{**data, "tags": normalize_tags(data.get("tags"))},
        user_id=owner.id,
        status=UploadStatus.approved if auto_approve else UploadStatus.pending,
    )
    session.add(upload)
    owner.total_uploads += 1
    session.add(owner)
    await session.flush()

    if upload.status == UploadStatus.pending:
        await notifications_service.notify_staff(
            session,
            title="New Upload Pending Review",
            message=f"{owner.full_name} uploaded \"{upload.title}\" and it needs review",
            notification_type=NotificationType.upload,
            data={"uploadId": upload.id, "userId": owner.id},
            action_url=f"/admin/uploads/{upload.id}",
            action_text="Review",
        )
    await session.commit()
    await session.refresh(upload)
    return upload


async def update_upload(
    session: AsyncSession,
    *,
    upload_id: int,
    actor: User,
    changes: dict[str, Any],
) -> Upload:
    upload = await resources.get_resource(session, Upload, upload_id)
    if not _can_manage(upload, actor):
        raise resources.AccessDenied("Not allowed to modify this upload")
    if not actor.is_staff:
        if upload.status != UploadStatus.pending:
            raise resources.TransitionError("Reviewed uploads can no longer be edited", code="cannot_edit_reviewed")
        changes = {key: value for key, value in changes.items() if key in OWNER_EDITABLE_FIELDS}
    if "tags" in changes:
        changes["tags"] = normalize_tags(changes["tags"])
    resources.apply_changes(upload, changes)
    session.add(upload)
    await session.commit()
    await session.refresh(upload)
    return upload


async def delete_upload(session: AsyncSession, *, upload_id: int, actor: User) -> None:
    upload = await resources.get_resource(session, Upload, upload_id)
    if not _can_manage(upload, actor):
        raise resources.AccessDenied("Not allowed to delete this upload")
    owner = await session.get(User, upload.user_id)
    if owner is not None and owner.total_uploads > 0:
        owner.total_uploads -= 1
        session.add(owner)
    await session.delete(upload)
    await session.commit()


async def review_upload(
    session: AsyncSession,
    *,
    upload_id: int,
    reviewer: User,
    approve: bool,
    reason: str | None = None,
) -> Upload:
    """Approve or reject a pending upload and notify its owner."""
    upload = await resources.get_resource(session, Upload, upload_id)
    if upload.status != UploadStatus.pending:
        raise resources.TransitionError("Upload has already been reviewed", code="already_reviewed")
    if not approve and not (reason and reason.strip()):
        raise resources.TransitionError("A rejection reason is required", code="rejection_reason_required")

    changes: dict[str, Any] = {
        "status": UploadStatus.approved if approve else UploadStatus.rejected,
        "reviewed_by_id": reviewer.id,
        "reviewed_at": datetime.now(timezone.utc),
        "rejection_reason": None if approve else reason.strip(),
    }
    resources.apply_changes(upload, changes)
    session.add(upload)
    await _notify_review(session, [upload], approve=approve, reason=reason)
    await session.commit()
    await session.refresh(upload)
    return upload


async def _notify_review(session: AsyncSession, uploads: list[Upload], *, approve: bool, reason: str | None) -> None:
    for upload in uploads:
        if approve:
            title = "Upload Approved"
            message = f"Your upload \"{upload.title}\" has been approved and is now live"
            priority = NotificationPriority.medium
        else:
            title = "Upload Rejected"
            message = f"Your upload \"{upload.title}\" has been rejected. Reason: {reason}"
            priority = NotificationPriority.high
        await notifications_service.create_notification(
            session,
            user_id=upload.user_id,
            title=title,
            message=message,
            notification_type=NotificationType.upload,
            priority=priority,
            data={"uploadId": upload.id},
        )


async def toggle_featured(session: AsyncSession, *, upload_id: int) -> Upload:
    return await resources.toggle_field(session, Upload, upload_id, "featured")


async def bulk_action(
    session: AsyncSession,
    *,
    action: str,
    upload_ids: list[int],
    reviewer: User,
    reason: str | None = None,
) -> int:
    """Apply a review or catalog action to many uploads; returns the affected count."""
    if not upload_ids:
        return 0
    target = Upload.id.in_(upload_ids)
    now = datetime.now(timezone.utc)

    if action in ("approve", "reject"):
        if action == "reject" and not (reason and reason.strip()):
            raise resources.TransitionError("A rejection reason is required", code="rejection_reason_required")
        result = await session.exec(
            select(Upload).where(target, Upload.status == UploadStatus.pending.value)
        )
        pending = list(result.all())
        approve = action == "approve"
        for upload in pending:
            resources.apply_changes(
                upload,
                {
                    "status": UploadStatus.approved if approve else UploadStatus.rejected,
                    "reviewed_by_id": reviewer.id,
                    "reviewed_at": now,
                    "rejection_reason": None if approve else reason.strip(),
                },
            )
            session.add(upload)
        await _notify_review(session, pending, approve=approve, reason=reason)
        await session.commit()
        return len(pending)

    if action == "feature":
        stmt = (
            update(Upload)
            .where(target, Upload.status == UploadStatus.approved.value)
            .values(featured=True, updated_at=now)
        )
    elif action == "unfeature":
        stmt = update(Upload).where(target).values(featured=False, updated_at=now)
    elif action == "delete":
        owners = await session.exec(
            select(Upload.user_id, func.count()).where(target).group_by(Upload.user_id)
        )
        for owner_id, removed in owners.all():
            await session.exec(
                update(User)
                .where(User.id == owner_id)
                .values(
                    total_uploads=case(
                        (User.total_uploads > removed, User.total_uploads - removed),
                        else_=0,
                    )
                )
            )
        stmt = delete(Upload).where(target)
    else:
        raise resources.TransitionError(f"Unsupported bulk action '{action}'", code="unsupported_action")
    result = await session.exec(stmt)
    await session.commit()
    logger.info("Bulk %s affected %s uploads", action, result.rowcount)
    return result.rowcount or 0


async def upload_stats(session: AsyncSession) -> dict[str, Any]:
    def status_count(status: UploadStatus):
        return func.sum(case((Upload.status == status.value, 1), else_=0))

    return await resources.resource_stats(
        session,
        Upload,
        aggregates={
            "pending": status_count(UploadStatus.pending),
            "approved": status_count(UploadStatus.approved),
            "rejected": status_count(UploadStatus.rejected),
            "featured": func.sum(case((Upload.featured.is_(True), 1), else_=0)),
            "total_views": func.sum(Upload.views),
            "total_downloads": func.sum(Upload.downloads),
            "total_earnings": func.sum(Upload.total_earnings),
            "average_price": func.avg(Upload.price),
        },
    )
