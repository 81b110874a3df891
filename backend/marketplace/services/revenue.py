import logging
from typing import Any

from sqlalchemy import func
from sqlalchemy import select as sa_select
from sqlmodel.ext.asyncio.session import AsyncSession

from marketplace.core.config import settings
from marketplace.models.mission import Mission
from marketplace.models.order import Order
from marketplace.models.revenue import Revenue, RevenueStatus, RevenueType
from marketplace.models.upload import Upload

logger = logging.getLogger(__name__)

EARNING_TYPES = (RevenueType.upload_sale.value, RevenueType.mission_payment.value, RevenueType.bonus.value)


async def record_upload_sale(
    session: AsyncSession,
    *,
    order: Order,
    upload: Upload,
    amount: float,
    commission_rate: float,
) -> Revenue:
    """Stage the seller's revenue for one sold upload; the caller commits."""
    revenue = Revenue(
        user_id=upload.user_id,
        type=RevenueType.upload_sale,
        amount=amount,
        currency=settings.CURRENCY,
        status=RevenueStatus.completed,
        description=f"Sale of '{upload.title}' in order {order.order_number}",
        order_id=order.id,
        upload_id=upload.id,
    )
    revenue.apply_commission(commission_rate)
    session.add(revenue)
    await session.flush()
    logger.info(
        "Recorded sale revenue %.2f (net %.2f) for user %s on order %s",
        revenue.amount,
        revenue.net_amount,
        revenue.user_id,
        order.order_number,
    )
    return revenue


async def record_mission_payment(
    session: AsyncSession,
    *,
    mission: Mission,
) -> Revenue:
    """Stage a pending payout for the partner who completed ``mission``.

    Mission payouts carry no platform commission and wait for manual approval.
    """
    amount = mission.final_budget if mission.final_budget is not None else mission.budget_max
    revenue = Revenue(
        user_id=mission.assigned_to_id,
        type=RevenueType.mission_payment,
        amount=amount,
        currency=settings.CURRENCY,
        status=RevenueStatus.pending,
        description=f"Payment for mission '{mission.title}'",
        mission_id=mission.id,
    )
    revenue.apply_commission(0)
    session.add(revenue)
    await session.flush()
    logger.info("Recorded pending mission payment %.2f for user %s", revenue.amount, revenue.user_id)
    return revenue


async def earnings_summary(session: AsyncSession, *, user_id: int) -> dict[str, Any]:
    """Completed earnings for ``user_id`` (sales, mission payments and bonuses)."""
    stmt = sa_select(
        func.count().label("total_transactions"),
        func.coalesce(func.sum(Revenue.net_amount), 0).label("total_earnings"),
        func.coalesce(func.sum(Revenue.amount), 0).label("total_gross"),
        func.coalesce(func.sum(Revenue.commission_amount), 0).label("total_commission"),
    ).where(
        Revenue.user_id == user_id,
        Revenue.status == RevenueStatus.completed.value,
        Revenue.type.in_(EARNING_TYPES),
    )
    row = (await session.exec(stmt)).one()
    return {
        "totalTransactions": row.total_transactions,
        "totalEarnings": round(float(row.total_earnings), 2),
        "totalGross": round(float(row.total_gross), 2),
        "totalCommission": round(float(row.total_commission), 2),
    }
