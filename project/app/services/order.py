# app/services/order.py

from datetime import datetime, timedelta, timezone

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from app.config import settings
from app.models.order import Order as OrderModel, OrderItem, OrderStatusEntry
from app.models.user import User
from app.schemas.common import Pagination
from app.schemas.order import (
    ORDER_STATUSES,
    AllOrders,
    ByCustomer,
    ByPaymentStatus,
    ByStatus,
    OrderFilter,
)
from app.schemas.user import Actor
from app.services.notify import NotificationSender
from app.services.rewards import loyalty_tier_for
from app.services.shipping import ShipmentRegistrar
from app.utils.database import AsyncSessionLocal, utcnow
from app.utils.errors import Conflict, Forbidden, NotFound, ValidationError
from app.utils.log import Log

# legal next statuses, used when ORDER_STRICT_TRANSITIONS is on
TRANSITIONS = {
    "pending": {"confirmed", "cancelled"},
    "confirmed": {"processing", "cancelled"},
    "processing": {"shipped", "cancelled"},
    "shipped": {"out_for_delivery", "delivered"},
    "out_for_delivery": {"delivered"},
    "delivered": {"return_requested"},
    "return_requested": {"returned", "delivered"},
    "cancelled": set(),
    "returned": set(),
}
CANCELLABLE = ("pending", "confirmed")
RETURN_WINDOW = timedelta(days=7)


def can_transition(current: str, new: str) -> bool:
    return new in TRANSITIONS.get(current, set())


def apply_status(order: OrderModel, new_status: str, by: int | None = None,
                 note: str | None = None, strict: bool | None = None) -> bool:
    """
    Appends a history entry and moves order.status to new_status.

    Returns False (and changes nothing) when the order already has that status.
    Raises ValidationError for unknown statuses or illegal transitions in strict mode.
    """
    if strict is None:
        strict = settings.strict_transitions

    new_status = (new_status or "").strip()
    if not new_status:
        raise ValidationError("Status is required")
    if new_status == order.status:
        return False

    if strict:
        if new_status not in ORDER_STATUSES:
            raise ValidationError(f"Unknown order status '{new_status}'")
        if not can_transition(order.status, new_status):
            raise ValidationError(f"Cannot transition from {order.status} to {new_status}")

    now = utcnow()
    order.status_history.append(OrderStatusEntry(
        seq=len(order.status_history),
        status=new_status,
        timestamp=now,
        note=note,
        by=by,
    ))
    order.status = new_status

    if new_status == "delivered":
        order.delivered_at = now
    elif new_status == "cancelled":
        order.cancelled_at = now
    return True


async def _load_order(db: AsyncSession, log: Log, order_id: int) -> OrderModel:
    order = await db.get(OrderModel, order_id)
    if order is None:
        await log.log_error("order", "Order not found", {"id": order_id})
        raise NotFound("Order not found")
    return order


async def _flush_history(db: AsyncSession, log: Log, order: OrderModel) -> None:
    """
    Flushes a new history entry. A concurrent writer that took the same seq trips
    uq_order_status_history_seq; the session is rolled back and Conflict raised.
    """
    order_id = order.id
    try:
        await db.flush()
    except IntegrityError:
        await db.rollback()
        await log.log_warning("order", "Concurrent status update", {"id": order_id})
        raise Conflict("Order was updated concurrently, reload and retry")


def _is_seller_of(order: OrderModel, actor: Actor) -> bool:
    return any(item.seller_id == actor.id for item in order.items)


def _check_read_access(order: OrderModel, actor: Actor) -> None:
    if actor.role == "admin":
        return
    if actor.role == "seller" and _is_seller_of(order, actor):
        return
    if actor.role == "customer" and order.customer_id == actor.id:
        return
    raise Forbidden("Access denied")


async def next_order_number(db: AsyncSession) -> str:
    """BKC + year + month + running number within the month, e.g. BKC20250300042."""
    now = utcnow()
    month_start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    count = await db.scalar(
        select(func.count()).select_from(OrderModel).where(OrderModel.created_at >= month_start)
    )
    return f"BKC{now:%Y%m}{(count or 0) + 1:05d}"


async def open_order(
    db: AsyncSession,
    log: Log,
    customer_id: int,
    items: list[dict],
    payment_method: str = "cod",
    shipping_address: dict | None = None,
    order_number: str | None = None,
) -> OrderModel:
    """
    Persists a checked-out order in `pending` with its first history entry.
    items: [{"name", "quantity", "price", "product_id"?, "seller_id"?}, ...]
    """
    if not items:
        raise ValidationError("Order must have at least one item")
    for item in items:
        if item.get("quantity", 0) < 1:
            raise ValidationError("Quantity must be at least 1")
        if item.get("price", 0) < 0:
            raise ValidationError("Price cannot be negative")

    now = utcnow()
    order = OrderModel(
        order_number=order_number or await next_order_number(db),
        customer_id=customer_id,
        status="pending",
        payment_status="pending",
        payment_method=payment_method,
        total=round(sum(i["price"] * i["quantity"] for i in items), 2),
        shipping_address=shipping_address,
        created_at=now,
        items=[OrderItem(**item) for item in items],
        status_history=[OrderStatusEntry(seq=0, status="pending", timestamp=now, by=customer_id)],
    )
    db.add(order)
    await db.flush()

    await log.log_info("order", "Order created", {"id": order.id, "order_number": order.order_number})
    return order


# ────────────── Status ledger ──────────────
async def advance_status(
    db: AsyncSession,
    log: Log,
    order_id: int,
    new_status: str,
    actor: Actor,
    note: str | None = None,
) -> OrderModel:
    """
    Admin or seller status update. A repeated status is a no-op without a history entry.
    Sellers may only touch orders that contain one of their items.
    """
    order = await _load_order(db, log, order_id)

    if actor.role == "customer":
        raise Forbidden("Customers cannot change order status")
    if actor.role == "seller" and not _is_seller_of(order, actor):
        raise Forbidden("Order does not contain your products")

    previous = order.status
    changed = apply_status(order, new_status, by=actor.id, note=note)
    if changed:
        await _flush_history(db, log, order)
        await log.log_info("order", "Order status changed", {
            "id": order.id, "from": previous, "to": order.status, "by": actor.id,
        })
    else:
        await log.log_info("order", "Order status unchanged", {"id": order.id, "status": order.status})
    return order


async def cancel_order(db: AsyncSession, log: Log, order_id: int, actor: Actor, reason: str) -> OrderModel:
    """Customer cancellation of their own order while it is still pending or confirmed."""
    order = await _load_order(db, log, order_id)

    if actor.role == "customer" and order.customer_id != actor.id:
        raise Forbidden("You can only cancel your own orders")
    if actor.role == "seller":
        raise Forbidden("Sellers cannot cancel orders")
    if order.status not in CANCELLABLE:
        raise ValidationError("Order cannot be cancelled at this stage")
    if not (reason or "").strip():
        raise ValidationError("Cancellation reason is required")

    apply_status(order, "cancelled", by=actor.id, note=reason)
    order.cancellation_reason = reason
    order.cancelled_by = actor.role
    await _flush_history(db, log, order)

    await log.log_info("order", "Order cancelled", {"id": order.id, "by": actor.id, "role": actor.role})
    return order


async def request_return(
    db: AsyncSession,
    log: Log,
    order_id: int,
    actor: Actor,
    reason: str,
    now: datetime | None = None,
) -> OrderModel:
    """
    Customer return request for their own delivered order, at most 7 days after delivery.
    Moves the order to `return_requested`; a second request while one is open is rejected.
    """
    if actor.role != "customer":
        raise Forbidden("Only customers can request a return")

    order = await _load_order(db, log, order_id)
    # other customers' orders look missing
    if order.customer_id != actor.id:
        raise NotFound("Order not found")

    if not (reason or "").strip():
        raise ValidationError("Reason is required")
    if order.status == "return_requested":
        raise ValidationError("A return request already exists for this order")
    if order.status != "delivered":
        raise ValidationError("Order must be delivered to request return")

    delivered_at = order.delivered_at or order.status_history[-1].timestamp
    if delivered_at.tzinfo is None:
        delivered_at = delivered_at.replace(tzinfo=timezone.utc)
    if (now or utcnow()) - delivered_at > RETURN_WINDOW:
        raise ValidationError("Return window has expired (7 days from delivery)")

    apply_status(order, "return_requested", by=actor.id, note=reason)
    order.return_reason = reason
    await _flush_history(db, log, order)

    await log.log_info("order", "Return requested", {"id": order.id, "by": actor.id})
    return order


# ────────────── Payment ──────────────
async def _load_by_number(db: AsyncSession, log: Log, order_number: str) -> OrderModel:
    result = await db.execute(select(OrderModel).where(OrderModel.order_number == order_number))
    order = result.scalar_one_or_none()
    if order is None:
        await log.log_error("payment", "Order not found for callback", {"order_number": order_number})
        raise NotFound("Order not found")
    return order


async def confirm_payment(
    db: AsyncSession,
    log: Log,
    order_number: str,
    transaction_id: str | None = None,
) -> tuple[OrderModel, bool]:
    """
    Successful gateway callback. Returns (order, confirmed_now).

    An order that is already paid (or still sits in `confirmed`) is left untouched, so a
    replayed callback neither moves the status back nor triggers the side effects twice,
    even after the order has moved on to processing or shipping.
    """
    order = await _load_by_number(db, log, order_number)
    if order.payment_status == "paid" or order.status == "confirmed":
        await log.log_info("payment", "Payment callback replay ignored", {"order_number": order_number})
        return order, False

    apply_status(order, "confirmed", note="Payment confirmed")
    order.payment_status = "paid"
    order.payment_id = transaction_id

    customer = await db.get(User, order.customer_id)
    if customer is not None:
        customer.total_spent = (customer.total_spent or 0) + (order.total or 0)
        customer.loyalty_tier = loyalty_tier_for(customer.total_spent)

    await db.flush()
    await log.log_info("payment", "Payment confirmed", {
        "order_number": order_number, "transaction_id": transaction_id,
    })
    return order, True


async def fail_payment(db: AsyncSession, log: Log, order_number: str, code: str) -> OrderModel:
    """Unsuccessful callback: only a pending payment is marked failed."""
    order = await _load_by_number(db, log, order_number)
    if order.payment_status == "pending":
        order.payment_status = "failed"
        await db.flush()
    await log.log_warning("payment", "Payment failed", {"order_number": order_number, "code": code})
    return order


async def dispatch_payment_side_effects(
    order_id: int,
    notifier: NotificationSender,
    registrar: ShipmentRegistrar,
    log: Log,
    session_factory=AsyncSessionLocal,
) -> None:
    """
    Best-effort follow-up of a confirmed payment, run after the confirmation is committed:
    the confirmation notification and the carrier shipment. Each failure is logged and
    swallowed, the confirmed status is never rolled back.
    """
    async with session_factory() as db:
        order = await db.get(OrderModel, order_id)
        if order is None:
            await log.log_error("payment", "Order vanished before side effects", {"id": order_id})
            return

        customer = await db.get(User, order.customer_id)
        if customer is not None:
            try:
                sent = await notifier.send(customer.email, customer.name, order)
                if not sent:
                    await log.log_warning("notify", "Confirmation not sent", {"order_number": order.order_number})
            except Exception as e:
                await log.log_error("notify", f"Confirmation failed: {e}", {"order_number": order.order_number})

        try:
            shipment = await registrar.create(order, order.shipping_address)
        except Exception as e:
            await log.log_error("shipping", f"Shipment creation failed: {e}", {"order_number": order.order_number})
            return

        tracking_number = (shipment or {}).get("trackingNumber")
        if not tracking_number:
            await log.log_warning("shipping", "Shipment created without tracking number",
                                  {"order_number": order.order_number})
            return

        order.tracking_number = tracking_number
        order.carrier = shipment.get("carrier") or order.carrier
        await db.commit()
        await log.log_info("shipping", "Shipment registered", {
            "order_number": order.order_number, "tracking_number": tracking_number,
        })


# ────────────── Reads ──────────────
def order_filter_from_query(
    status: str | None = None,
    payment_status: str | None = None,
    customer_id: int | None = None,
) -> OrderFilter:
    """Builds the single filter variant for a list request; more than one criterion is rejected."""
    given = [v for v in (status, payment_status, customer_id) if v is not None]
    if len(given) > 1:
        raise ValidationError("Only one of status, payment_status, customer_id may be given")
    if status is not None:
        return ByStatus(status=status)
    if payment_status is not None:
        try:
            return ByPaymentStatus(payment_status=payment_status)
        except ValueError:
            raise ValidationError(f"Unknown payment status '{payment_status}'")
    if customer_id is not None:
        return ByCustomer(customer_id=customer_id)
    return AllOrders()


def _filter_clause(order_filter: OrderFilter):
    if isinstance(order_filter, ByStatus):
        return OrderModel.status == order_filter.status
    if isinstance(order_filter, ByPaymentStatus):
        return OrderModel.payment_status == order_filter.payment_status
    if isinstance(order_filter, ByCustomer):
        return OrderModel.customer_id == order_filter.customer_id
    return None


def _visibility_clause(actor: Actor):
    if actor.role == "admin":
        return None
    if actor.role == "seller":
        return OrderModel.id.in_(select(OrderItem.order_id).where(OrderItem.seller_id == actor.id))
    return OrderModel.customer_id == actor.id


async def read_orders(
    db: AsyncSession,
    log: Log,
    actor: Actor,
    order_filter: OrderFilter | None = None,
    page: int = 1,
    limit: int = 20,
) -> dict:
    """
    Page of orders visible to the actor, newest first:
    {"items": [...], "pagination": {page, limit, total, pages}}
    """
    order_filter = order_filter or AllOrders()
    if actor.role == "customer" and isinstance(order_filter, ByCustomer) and order_filter.customer_id != actor.id:
        raise Forbidden("Access denied")

    clauses = [c for c in (_filter_clause(order_filter), _visibility_clause(actor)) if c is not None]

    count_query = select(func.count()).select_from(OrderModel)
    list_query = select(OrderModel)
    for clause in clauses:
        count_query = count_query.where(clause)
        list_query = list_query.where(clause)

    total = await db.scalar(count_query)
    result = await db.execute(
        list_query.order_by(OrderModel.created_at.desc(), OrderModel.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    orders = result.scalars().all()

    await log.log_info("order", f"{len(orders)} orders loaded", {"filter": order_filter, "actor": actor.id})
    return {"items": orders, "pagination": Pagination.build(page, limit, total or 0)}


async def read_order(db: AsyncSession, log: Log, order_id: int, actor: Actor) -> OrderModel:
    order = await _load_order(db, log, order_id)
    _check_read_access(order, actor)
    return order
