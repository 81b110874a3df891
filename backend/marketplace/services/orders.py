import logging
import time
from datetime import datetime, timedelta, timezone
from typing import Any

from sqlalchemy import func
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from marketplace.core.config import settings
from marketplace.db.query import ResourceQueryConfig
from marketplace.models.notification import NotificationPriority, NotificationType
from marketplace.models.order import Order, OrderItem, OrderStatus, PaymentMethod, PaymentStatus
from marketplace.models.upload import Upload, UploadStatus
from marketplace.models.user import User
from marketplace.services import app_settings as app_settings_service
from marketplace.services import notifications as notifications_service
from marketplace.services import resources
from marketplace.services import revenue as revenue_service

logger = logging.getLogger(__name__)

ORDER_QUERY = ResourceQueryConfig(
    model=Order,
    searchable_fields=("order_number",),
    default_limit=20,
)

DOWNLOADABLE_STATUSES = (OrderStatus.paid, OrderStatus.completed)


async def _next_order_number(session: AsyncSession) -> str:
    count = (await session.exec(select(func.count()).select_from(Order))).one()
    return f"ORD-{int(time.time() * 1000)}-{count + 1:04d}"


async def order_items(session: AsyncSession, order_id: int) -> list[OrderItem]:
    result = await session.exec(select(OrderItem).where(OrderItem.order_id == order_id).order_by(OrderItem.id))
    return list(result.all())


async def with_items(session: AsyncSession, order: Order) -> dict[str, Any]:
    """Order fields plus its line items, ready for the response schema."""
    return {**order.model_dump(), "items": [item.model_dump() for item in await order_items(session, order.id)]}


async def create_order(
    session: AsyncSession,
    *,
    customer: User,
    upload_ids: list[int],
    payment_method: PaymentMethod,
    billing_address: dict[str, Any] | None = None,
    notes: str | None = None,
) -> Order:
    """Create a pending order for approved uploads, copying their current prices."""
    unique_ids = list(dict.fromkeys(upload_ids))
    if not unique_ids:
        raise resources.TransitionError("An order needs at least one item", code="empty_order")

    result = await session.exec(select(Upload).where(Upload.id.in_(unique_ids)))
    uploads = {upload.id: upload for upload in result.all()}
    for upload_id in unique_ids:
        upload = uploads.get(upload_id)
        if upload is None:
            raise resources.ResourceNotFound(Upload, upload_id)
        if upload.status != UploadStatus.approved:
            raise resources.TransitionError(
                f"Upload '{upload.title}' is not available for purchase",
                code="upload_not_available",
            )

    order = Order(
        order_number=await _next_order_number(session),
        customer_id=customer.id,
        payment_method=payment_method,
        billing_address=billing_address or {},
        notes=notes,
        total_amount=round(sum(uploads[upload_id].price for upload_id in unique_ids), 2),
    )
    session.add(order)
    await session.flush()

    expires_at = datetime.now(timezone.utc) + timedelta(days=settings.DOWNLOAD_LINK_TTL_DAYS)
    for upload_id in unique_ids:
        session.add(
            OrderItem(
                order_id=order.id,
                upload_id=upload_id,
                price=uploads[upload_id].price,
                download_expires_at=expires_at,
            )
        )
    await session.commit()
    await session.refresh(order)
    logger.info("Created order %s for user %s", order.order_number, customer.id)
    return order


async def list_own_orders(session: AsyncSession, params: Any, *, customer: User) -> dict[str, Any]:
    return await resources.list_resources(session, ORDER_QUERY, params, scope=(Order.customer_id == customer.id,))


async def list_all_orders(session: AsyncSession, params: Any) -> dict[str, Any]:
    return await resources.list_resources(session, ORDER_QUERY, params)


async def get_order(session: AsyncSession, *, order_id: int, viewer: User) -> Order:
    order = await resources.get_resource(session, Order, order_id)
    if order.customer_id != viewer.id and not viewer.is_staff:
        raise resources.AccessDenied("Not allowed to access this order")
    return order


async def process_payment(
    session: AsyncSession,
    cache: app_settings_service.SettingsCache,
    *,
    order_id: int,
    customer: User,
    payment_reference: str,
) -> Order:
    """Mark a pending order as paid and settle every line item.

    Each item gets a download link, the seller gets an ``upload_sale`` revenue
    net of the configured commission, and both sides are notified.
    """
    order = await resources.get_resource(session, Order, order_id)
    if order.customer_id != customer.id:
        raise resources.AccessDenied("Not allowed to pay for this order")
    if order.status != OrderStatus.pending:
        raise resources.TransitionError("Order cannot be paid", code="order_cannot_be_paid")

    commission_rate = await app_settings_service.get_commission_rate(session, cache)
    resources.apply_changes(
        order,
        {
            "status": OrderStatus.paid,
            "payment_status": PaymentStatus.completed,
            "payment_reference": payment_reference,
        },
    )
    session.add(order)

    for item in await order_items(session, order.id):
        item.download_url = f"{settings.API_V1_STR}/orders/{order.id}/download/{item.id}"
        session.add(item)
        upload = await session.get(Upload, item.upload_id)
        if upload is None:
            continue
        revenue = await revenue_service.record_upload_sale(
            session,
            order=order,
            upload=upload,
            amount=item.price,
            commission_rate=commission_rate,
        )
        upload.record_sale(revenue.net_amount)
        session.add(upload)
        seller = await session.get(User, upload.user_id)
        if seller is not None:
            seller.total_earnings = round(seller.total_earnings + revenue.net_amount, 2)
            session.add(seller)
        await notifications_service.create_notification(
            session,
            user_id=upload.user_id,
            title="New Sale!",
            message=f"Your upload \"{upload.title}\" was purchased",
            notification_type=NotificationType.payment,
            priority=NotificationPriority.high,
            data={"orderId": order.id, "uploadId": upload.id, "amount": revenue.net_amount},
        )

    await notifications_service.create_notification(
        session,
        user_id=customer.id,
        title="Payment Successful",
        message=f"Your payment for order {order.order_number} was processed successfully",
        notification_type=NotificationType.payment,
        data={"orderId": order.id, "amount": order.total_amount},
        action_url=f"/orders/{order.id}",
        action_text="View Order",
    )
    await session.commit()
    await session.refresh(order)
    logger.info("Order %s paid with reference %s", order.order_number, payment_reference)
    return order


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


async def download_item(session: AsyncSession, *, order_id: int, item_id: int, customer: User) -> dict[str, Any]:
    order = await resources.get_resource(session, Order, order_id)
    if order.customer_id != customer.id:
        raise resources.AccessDenied("Not allowed to download from this order")
    if order.status not in DOWNLOADABLE_STATUSES:
        raise resources.TransitionError("Order has not been paid", code="order_not_paid")

    item = await session.get(OrderItem, item_id)
    if item is None or item.order_id != order.id:
        raise resources.ResourceNotFound(OrderItem, item_id)
    if _as_utc(item.download_expires_at) < datetime.now(timezone.utc):
        raise resources.TransitionError("Download link has expired", code="download_expired")

    upload = await resources.get_resource(session, Upload, item.upload_id)
    if not item.downloaded:
        item.downloaded = True
        item.downloaded_at = datetime.now(timezone.utc)
        session.add(item)
        await session.commit()

    return {
        "download_url": upload.original_file_url,
        "filename": upload.title,
        "expires_at": item.download_expires_at,
    }


async def update_status(
    session: AsyncSession,
    *,
    order_id: int,
    status: OrderStatus,
    notes: str | None = None,
) -> Order:
    order = await resources.get_resource(session, Order, order_id)
    changes: dict[str, Any] = {"status": status}
    if notes:
        changes["notes"] = notes
    now = datetime.now(timezone.utc)
    if status == OrderStatus.completed and order.completed_at is None:
        changes["completed_at"] = now
    if status == OrderStatus.cancelled and order.cancelled_at is None:
        changes["cancelled_at"] = now
    resources.apply_changes(order, changes)
    session.add(order)
    await notifications_service.create_notification(
        session,
        user_id=order.customer_id,
        title="Order Status Updated",
        message=f"Your order {order.order_number} status has been updated to {status.value}",
        data={"orderId": order.id, "newStatus": status.value},
    )
    await session.commit()
    await session.refresh(order)
    return order
