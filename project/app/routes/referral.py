# app/routes/referral.py

from fastapi import APIRouter, Depends, Request, status

from app.routes.auth import admin_required, get_current_actor
from app.schemas.referral import (
    ApplyCodeRequest,
    ApplyCodeResponse,
    ReferralOut,
    ReferralSummary,
    SettleRequest,
    SettleResponse,
)
from app.schemas.user import Actor
from app.services.referral import apply_code, referral_summary, settle

router = APIRouter()


@router.get(
    "/",
    response_model=ReferralSummary,
    status_code=status.HTTP_200_OK,
    summary="Own referral code, referrals made and totals",
    responses={
        200: {"description": "Summary loaded"},
        401: {"description": "Missing or invalid token"},
        404: {"description": "User not found"},
        500: {"description": "Internal server error"},
    },
)
async def get_referrals(request: Request, actor: Actor = Depends(get_current_actor)):
    try:
        return await referral_summary(request.state.db, actor.id)
    except Exception as e:
        await request.app.state.log.log_error("referral", f"Summary error: {e}", {"user_id": actor.id})
        raise


@router.post(
    "/apply",
    response_model=ApplyCodeResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Apply someone's referral code to the calling account",
    responses={
        201: {"description": "Referral created"},
        400: {"description": "Empty code or own code"},
        401: {"description": "Missing or invalid token"},
        404: {"description": "Invalid referral code"},
        409: {"description": "Account already referred"},
        500: {"description": "Internal server error"},
    },
)
async def apply_referral(body: ApplyCodeRequest, request: Request, actor: Actor = Depends(get_current_actor)):
    db = request.state.db
    try:
        referral = await apply_code(db, request.app.state.log, body.referral_code, actor.id)
        await db.commit()
        return {
            "discount": referral.referred_reward_value,
            "referral": ReferralOut.from_model(referral),
        }
    except Exception as e:
        await request.app.state.log.log_error("referral", f"Apply error: {e}", {"user_id": actor.id})
        raise


@router.post(
    "/{id}/settle",
    response_model=SettleResponse,
    status_code=status.HTTP_200_OK,
    summary="Complete a referral and pay the referrer (admin)",
    responses={
        200: {"description": "Settled, or already settled (settled=false)"},
        401: {"description": "Missing or invalid token"},
        403: {"description": "Administrator required"},
        404: {"description": "Referral not found"},
        500: {"description": "Internal server error"},
    },
)
async def settle_referral(
    id: int,
    request: Request,
    body: SettleRequest | None = None,
    actor: Actor = Depends(admin_required),
):
    db = request.state.db
    body = body or SettleRequest()
    try:
        referral, settled = await settle(db, request.app.state.log, id, body.order_id, body.order_amount)
        await db.commit()
        return {"settled": settled, "referral": ReferralOut.from_model(referral)}
    except Exception as e:
        await request.app.state.log.log_error("referral", f"Settle error: {e}", {"id": id})
        raise
