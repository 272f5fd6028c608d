# app/routes/order.py

from fastapi import APIRouter, BackgroundTasks, Depends, Query, Request, status
from typing import Optional

from app.routes.auth import get_current_actor
from app.schemas.order import (
    CancelRequest,
    OrderOut,
    OrderPage,
    PaymentCallback,
    PaymentCallbackResult,
    ReturnRequest,
    StatusUpdate,
)
from app.schemas.user import Actor
from app.services.notify import LogNotificationSender
from app.services.order import (
    advance_status,
    cancel_order,
    confirm_payment,
    dispatch_payment_side_effects,
    fail_payment,
    order_filter_from_query,
    read_order,
    read_orders,
    request_return,
)
from app.services.shipping import HttpShipmentRegistrar

router = APIRouter()


def get_notifier(request: Request):
    return getattr(request.app.state, "notifier", None) or LogNotificationSender(request.app.state.log)


def get_registrar(request: Request):
    return getattr(request.app.state, "registrar", None) or HttpShipmentRegistrar()


# ────────────── READ ALL ──────────────
@router.get(
    "/",
    response_model=OrderPage,
    status_code=status.HTTP_200_OK,
    summary="List orders visible to the caller",
    response_description="Page of orders with pagination envelope",
    responses={
        200: {"description": "Orders loaded"},
        400: {"description": "More than one filter or unknown payment status"},
        401: {"description": "Missing or invalid token"},
        403: {"description": "Customer asked for someone else's orders"},
        500: {"description": "Internal server error"},
    },
)
async def list_orders(
    request: Request,
    status_filter: Optional[str] = Query(None, alias="status"),
    payment_status: Optional[str] = None,
    customer_id: Optional[int] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    actor: Actor = Depends(get_current_actor),
):
    log = request.app.state.log
    try:
        order_filter = order_filter_from_query(status_filter, payment_status, customer_id)
        return await read_orders(request.state.db, log, actor, order_filter, page, limit)
    except Exception as e:
        await log.log_error("order", f"Order list error: {e}", {"actor": actor.id})
        raise


# ────────────── READ ONE ──────────────
@router.get(
    "/{id}",
    response_model=OrderOut,
    status_code=status.HTTP_200_OK,
    summary="Get an order with its status history",
    responses={
        200: {"description": "Order found"},
        401: {"description": "Missing or invalid token"},
        403: {"description": "Order not visible to the caller"},
        404: {"description": "Order not found"},
        500: {"description": "Internal server error"},
    },
)
async def get_order(id: int, request: Request, actor: Actor = Depends(get_current_actor)):
    try:
        return await read_order(request.state.db, request.app.state.log, id, actor)
    except Exception as e:
        await request.app.state.log.log_error("order", f"Order read error: {e}", {"id": id})
        raise


# ────────────── STATUS ──────────────
@router.put(
    "/{id}/status",
    response_model=OrderOut,
    status_code=status.HTTP_200_OK,
    summary="Advance the order status (admin, seller)",
    responses={
        200: {"description": "Status updated, or unchanged when it was already set"},
        400: {"description": "Illegal transition or unknown status"},
        401: {"description": "Missing or invalid token"},
        403: {"description": "Customer, or seller without items in this order"},
        404: {"description": "Order not found"},
        409: {"description": "Order was updated concurrently"},
        500: {"description": "Internal server error"},
    },
)
async def update_order_status(
    id: int,
    body: StatusUpdate,
    request: Request,
    actor: Actor = Depends(get_current_actor),
):
    db = request.state.db
    try:
        order = await advance_status(db, request.app.state.log, id, body.status, actor, body.note)
        await db.commit()
        return order
    except Exception as e:
        await request.app.state.log.log_error("order", f"Status update error: {e}", {"id": id})
        raise


# ────────────── CANCEL ──────────────
@router.post(
    "/{id}/cancel",
    response_model=OrderOut,
    status_code=status.HTTP_200_OK,
    summary="Cancel an order that is still pending or confirmed",
    responses={
        200: {"description": "Order cancelled"},
        400: {"description": "Order can no longer be cancelled"},
        401: {"description": "Missing or invalid token"},
        403: {"description": "Not the caller's order"},
        404: {"description": "Order not found"},
        409: {"description": "Order was updated concurrently"},
        500: {"description": "Internal server error"},
    },
)
async def cancel(id: int, body: CancelRequest, request: Request, actor: Actor = Depends(get_current_actor)):
    db = request.state.db
    try:
        order = await cancel_order(db, request.app.state.log, id, actor, body.reason)
        await db.commit()
        return order
    except Exception as e:
        await request.app.state.log.log_error("order", f"Cancel error: {e}", {"id": id})
        raise


# ────────────── RETURN ──────────────
@router.post(
    "/{id}/return",
    response_model=OrderOut,
    status_code=status.HTTP_200_OK,
    summary="Request a return of a delivered order (customer)",
    responses={
        200: {"description": "Return requested"},
        400: {"description": "Not delivered, return window expired, or a request is already open"},
        401: {"description": "Missing or invalid token"},
        403: {"description": "Only customers can request a return"},
        404: {"description": "Order not found"},
        409: {"description": "Order was updated concurrently"},
        500: {"description": "Internal server error"},
    },
)
async def return_order(id: int, body: ReturnRequest, request: Request, actor: Actor = Depends(get_current_actor)):
    db = request.state.db
    try:
        order = await request_return(db, request.app.state.log, id, actor, body.reason)
        await db.commit()
        return order
    except Exception as e:
        await request.app.state.log.log_error("order", f"Return request error: {e}", {"id": id})
        raise


# ────────────── PAYMENT CALLBACK ──────────────
@router.post(
    "/payment/callback",
    response_model=PaymentCallbackResult,
    status_code=status.HTTP_200_OK,
    summary="Payment gateway callback",
    responses={
        200: {"description": "Callback processed"},
        404: {"description": "Unknown order number"},
        500: {"description": "Internal server error"},
    },
)
async def payment_callback(
    body: PaymentCallback,
    request: Request,
    background_tasks: BackgroundTasks,
    notifier=Depends(get_notifier),
    registrar=Depends(get_registrar),
):
    """
    On PAYMENT_SUCCESS the order is confirmed and committed first; the notification
    and the shipment registration run afterwards and cannot undo the confirmation.
    """
    db = request.state.db
    log = request.app.state.log
    try:
        if body.code != "PAYMENT_SUCCESS":
            order = await fail_payment(db, log, body.order_number, body.code)
            await db.commit()
            confirmed = False
        else:
            order, confirmed = await confirm_payment(db, log, body.order_number, body.transaction_id)
            await db.commit()
            if confirmed:
                background_tasks.add_task(
                    dispatch_payment_side_effects,
                    order.id,
                    notifier,
                    registrar,
                    log,
                    request.app.state.session_factory,
                )
        return {
            "order_number": order.order_number,
            "confirmed": confirmed,
            "status": order.status,
            "payment_status": order.payment_status,
        }
    except Exception as e:
        await log.log_error("payment", f"Callback error: {e}", {"order_number": body.order_number})
        raise
