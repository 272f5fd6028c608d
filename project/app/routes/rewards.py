# app/routes/rewards.py

from fastapi import APIRouter, Depends, Query, Request, status

from app.routes.auth import admin_required, get_current_actor
from app.schemas.reward import (
    CreditRequest,
    RedeemRequest,
    RedeemResponse,
    RewardsOverview,
    RewardTransactionOut,
)
from app.schemas.user import Actor
from app.services.rewards import credit, read_rewards, redeem

router = APIRouter()


@router.get(
    "/",
    response_model=RewardsOverview,
    status_code=status.HTTP_200_OK,
    summary="Points balance, tier and transaction history",
    responses={
        200: {"description": "Rewards loaded"},
        401: {"description": "Missing or invalid token"},
        404: {"description": "User not found"},
        500: {"description": "Internal server error"},
    },
)
async def get_rewards(
    request: Request,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    actor: Actor = Depends(get_current_actor),
):
    try:
        return await read_rewards(request.state.db, actor.id, page, limit)
    except Exception as e:
        await request.app.state.log.log_error("rewards", f"Rewards read error: {e}", {"user_id": actor.id})
        raise


@router.post(
    "/redeem",
    response_model=RedeemResponse,
    status_code=status.HTTP_200_OK,
    summary="Redeem points for a discount (10 points = 1 currency unit)",
    responses={
        200: {"description": "Points redeemed"},
        400: {"description": "Invalid amount or insufficient points"},
        401: {"description": "Missing or invalid token"},
        500: {"description": "Internal server error"},
    },
)
async def redeem_points(body: RedeemRequest, request: Request, actor: Actor = Depends(get_current_actor)):
    db = request.state.db
    try:
        transaction, discount = await redeem(db, request.app.state.log, actor.id, body.points, body.order_id)
        await db.commit()
        return {
            "points_redeemed": body.points,
            "discount_value": discount,
            "remaining_points": transaction.balance,
            "transaction": RewardTransactionOut.model_validate(transaction),
        }
    except Exception as e:
        await request.app.state.log.log_error("rewards", f"Redeem error: {e}", {"user_id": actor.id})
        raise


@router.post(
    "/credit",
    response_model=RewardTransactionOut,
    status_code=status.HTTP_201_CREATED,
    summary="Credit points to a user (admin)",
    responses={
        201: {"description": "Points credited"},
        400: {"description": "Points must be positive"},
        401: {"description": "Missing or invalid token"},
        403: {"description": "Administrator required"},
        404: {"description": "User not found"},
        500: {"description": "Internal server error"},
    },
)
async def credit_points(body: CreditRequest, request: Request, actor: Actor = Depends(admin_required)):
    db = request.state.db
    try:
        transaction = await credit(
            db, request.app.state.log, body.user_id, body.points, body.source, body.description, body.order_id
        )
        await db.commit()
        return transaction
    except Exception as e:
        await request.app.state.log.log_error("rewards", f"Credit error: {e}", {"user_id": body.user_id})
        raise
