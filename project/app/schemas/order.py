# app/schemas/order.py

from pydantic import BaseModel, Field
from typing import List, Literal, Optional, Union
from datetime import datetime

from app.schemas.common import Pagination

# statuses the storefront uses, the ledger itself stores plain strings
ORDER_STATUSES = (
    "pending",
    "confirmed",
    "processing",
    "shipped",
    "out_for_delivery",
    "delivered",
    "cancelled",
    "return_requested",
    "returned",
)
PaymentStatus = Literal["pending", "paid", "failed", "refunded"]


# ────────────── Responses ──────────────
class OrderItemOut(BaseModel):
    id: int
    product_id: Optional[str] = None
    name: str
    quantity: int
    price: float
    seller_id: Optional[int] = None

    model_config = {"from_attributes": True}


class StatusEntryOut(BaseModel):
    status: str
    timestamp: datetime
    note: Optional[str] = None
    by: Optional[int] = None

    model_config = {"from_attributes": True}


class OrderOut(BaseModel):
    id: int
    order_number: str
    customer_id: int
    status: str
    payment_status: str
    payment_id: Optional[str] = None
    total: float
    carrier: Optional[str] = None
    tracking_number: Optional[str] = None
    delivered_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    cancelled_by: Optional[str] = None
    return_reason: Optional[str] = None
    created_at: Optional[datetime] = None
    items: List[OrderItemOut] = []
    status_history: List[StatusEntryOut] = []

    model_config = {"from_attributes": True}


class OrderPage(BaseModel):
    items: List[OrderOut]
    pagination: Pagination


# ────────────── Requests ──────────────
class StatusUpdate(BaseModel):
    status: str = Field(..., min_length=1)
    note: Optional[str] = None


class CancelRequest(BaseModel):
    reason: str = Field(..., min_length=1)


class ReturnRequest(BaseModel):
    reason: str = Field(..., min_length=1)


class PaymentCallback(BaseModel):
    """Gateway callback already decoded and verified by the payment adapter."""
    code: str                                # PAYMENT_SUCCESS, PAYMENT_ERROR, ...
    order_number: str
    transaction_id: Optional[str] = None


class PaymentCallbackResult(BaseModel):
    order_number: str
    confirmed: bool
    status: str
    payment_status: str


# ────────────── List filters ──────────────
# exactly one variant per query, combinations are not representable
class AllOrders(BaseModel):
    kind: Literal["all"] = "all"


class ByStatus(BaseModel):
    kind: Literal["status"] = "status"
    status: str


class ByPaymentStatus(BaseModel):
    kind: Literal["payment_status"] = "payment_status"
    payment_status: PaymentStatus


class ByCustomer(BaseModel):
    kind: Literal["customer"] = "customer"
    customer_id: int


OrderFilter = Union[AllOrders, ByStatus, ByPaymentStatus, ByCustomer]
