from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from sqlalchemy import Column, DateTime, JSON, String, Text
from sqlmodel import Field, SQLModel


class OrderStatus(str, Enum):
    pending = "pending"
    paid = "paid"
    completed = "completed"
    cancelled = "cancelled"
    refunded = "refunded"


class PaymentStatus(str, Enum):
    pending = "pending"
    processing = "processing"
    completed = "completed"
    failed = "failed"
    refunded = "refunded"


class PaymentMethod(str, Enum):
    credit_card = "credit_card"
    paypal = "paypal"
    bank_transfer = "bank_transfer"
    wallet = "wallet"


class Order(SQLModel, table=True):
    __tablename__ = "orders"

    id: Optional[int] = Field(default=None, primary_key=True)
    order_number: str = Field(max_length=64, unique=True, index=True)
    customer_id: int = Field(foreign_key="users.id", nullable=False, index=True)
    total_amount: float = Field(default=0, nullable=False)
    status: OrderStatus = Field(
        sa_column=Column(String(16), nullable=False, server_default=OrderStatus.pending.value, index=True),
        default=OrderStatus.pending,
    )
    payment_method: PaymentMethod = Field(sa_column=Column(String(32), nullable=False))
    payment_status: PaymentStatus = Field(
        sa_column=Column(String(16), nullable=False, server_default=PaymentStatus.pending.value),
        default=PaymentStatus.pending,
    )
    payment_reference: Optional[str] = Field(default=None, max_length=255)
    billing_address: dict[str, Any] = Field(
        default_factory=dict,
        sa_column=Column(JSON, nullable=False, server_default="{}"),
    )
    notes: Optional[str] = Field(default=None, sa_column=Column(Text, nullable=True))
    completed_at: Optional[datetime] = Field(
        default=None,
        sa_column=Column(DateTime(timezone=True), nullable=True),
    )
    cancelled_at: Optional[datetime] = Field(
        default=None,
        sa_column=Column(DateTime(timezone=True), nullable=True),
    )
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True), nullable=False, index=True),
    )
    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )


class OrderItem(SQLModel, table=True):
    __tablename__ = "order_items"

    id: Optional[int] = Field(default=None, primary_key=True)
    order_id: int = Field(foreign_key="orders.id", nullable=False, index=True)
    upload_id: int = Field(foreign_key="uploads.id", nullable=False, index=True)
    price: float = Field(nullable=False)
    download_url: Optional[str] = Field(default=None, max_length=2048)
    download_expires_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    downloaded: bool = Field(default=False, nullable=False)
    downloaded_at: Optional[datetime] = Field(
        default=None,
        sa_column=Column(DateTime(timezone=True), nullable=True),
    )
