from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from sqlalchemy import Column, DateTime, String
from sqlmodel import Field, SQLModel


class RevenueType(str, Enum):
    upload_sale = "upload_sale"
    mission_payment = "mission_payment"
    commission = "commission"
    bonus = "bonus"
    refund = "refund"


class RevenueStatus(str, Enum):
    pending = "pending"
    completed = "completed"
    cancelled = "cancelled"
    failed = "failed"


class Revenue(SQLModel, table=True):
    __tablename__ = "revenues"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="users.id", nullable=False, index=True)
    type: RevenueType = Field(sa_column=Column(String(32), nullable=False, index=True))
    amount: float = Field(nullable=False)
    currency: str = Field(default="SAR", max_length=8)
    status: RevenueStatus = Field(
        sa_column=Column(String(16), nullable=False, server_default=RevenueStatus.pending.value),
        default=RevenueStatus.pending,
    )
    description: Optional[str] = Field(default=None, max_length=500)
    order_id: Optional[int] = Field(default=None, foreign_key="orders.id")
    mission_id: Optional[int] = Field(default=None, foreign_key="missions.id")
    upload_id: Optional[int] = Field(default=None, foreign_key="uploads.id")
    commission_rate: float = Field(default=0, nullable=False)
    commission_amount: float = Field(default=0, nullable=False)
    net_amount: float = Field(default=0, nullable=False)
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True), nullable=False, index=True),
    )

    def apply_commission(self, rate: float) -> None:
        self.commission_rate = rate
        self.commission_amount = round(self.amount * rate, 2)
        self.net_amount = max(0.0, round(self.amount - self.commission_amount, 2))
