from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel, Field

from marketplace.models.order import OrderStatus, PaymentMethod, PaymentStatus


class OrderCreate(BaseModel):
    upload_ids: List[int] = Field(min_length=1)
    payment_method: PaymentMethod
    billing_address: dict[str, Any] = Field(default_factory=dict)
    notes: Optional[str] = Field(default=None, max_length=1000)


class OrderPayment(BaseModel):
    payment_reference: str = Field(min_length=1, max_length=255)


class OrderStatusUpdate(BaseModel):
    status: OrderStatus
    notes: Optional[str] = Field(default=None, max_length=1000)


class OrderItemRead(BaseModel):
    id: int
    upload_id: int
    price: float
    download_url: Optional[str] = None
    download_expires_at: datetime
    downloaded: bool
    downloaded_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class OrderRead(BaseModel):
    id: int
    order_number: str
    customer_id: int
    total_amount: float
    status: OrderStatus
    payment_method: PaymentMethod
    payment_status: PaymentStatus
    payment_reference: Optional[str] = None
    billing_address: dict[str, Any] = Field(default_factory=dict)
    notes: Optional[str] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime
    items: List[OrderItemRead] = Field(default_factory=list)

    class Config:
        from_attributes = True


class DownloadLink(BaseModel):
    download_url: str
    filename: str
    expires_at: datetime
