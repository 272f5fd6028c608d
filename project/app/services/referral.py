# app/services/referral.py

from sqlalchemy import update, func, case
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from app.config import settings
from app.models.referral import Referral
from app.models.user import User
from app.services import rewards
from app.utils.database import utcnow
from app.utils.errors import AlreadyReferred, NotFound, SelfReferral, ValidationError
from app.utils.log import Log

CODE_PREFIX = "BKC"
SUMMARY_LIMIT = 50


def normalize_code(code: str | None) -> str:
    return (code or "").strip().upper()


def referral_code_for(user: User) -> str:
    """
    The user's own code: the explicitly assigned affiliate code, otherwise
    BKC + the id in hex, zero-padded to six digits. Distinct ids never share a code.
    """
    if user.affiliate_code:
        return user.affiliate_code
    return CODE_PREFIX + f"{user.id:06X}"


async def assign_code(db: AsyncSession, user: User) -> str:
    """Stores the derived code on a freshly flushed user so it can be looked up later."""
    if not user.affiliate_code:
        user.affiliate_code = referral_code_for(user)
        await db.flush()
    return user.affiliate_code


async def apply_code(db: AsyncSession, log: Log, code: str, new_user_id: int) -> Referral:
    """
    Links new_user_id to the owner of `code` with a pending referral.

    Errors:
    - ValidationError: empty code
    - NotFound: unknown code (or unknown new user)
    - SelfReferral: the code belongs to new_user_id
    - AlreadyReferred: new_user_id already has a referral
    """
    normalized = normalize_code(code)
    if not normalized:
        raise ValidationError("Missing referral code")

    referrer = (await db.execute(select(User).where(User.affiliate_code == normalized))).scalar_one_or_none()
    if referrer is None:
        await log.log_warning("referral", "Invalid referral code", {"code": normalized})
        raise NotFound("Invalid referral code")

    if referrer.id == new_user_id:
        await log.log_warning("referral", "Self referral rejected", {"user_id": new_user_id})
        raise SelfReferral()

    new_user = await db.get(User, new_user_id)
    if new_user is None:
        raise NotFound("User not found")

    existing = await db.scalar(select(Referral.id).where(Referral.referred_id == new_user_id))
    if existing is not None:
        await log.log_warning("referral", "User already referred", {"user_id": new_user_id})
        raise AlreadyReferred()

    referral = Referral(
        referrer_id=referrer.id,
        referred_id=new_user_id,
        referral_code=normalized,
        status="pending",
        referrer_reward_type="points",
        referrer_reward_value=settings.REFERRER_REWARD_POINTS,
        referrer_reward_claimed=False,
        referred_reward_type="discount",
        referred_reward_value=settings.REFERRED_REWARD_DISCOUNT,
        referred_reward_claimed=False,
        created_at=utcnow(),
    )
    db.add(referral)
    try:
        await db.flush()
    except IntegrityError:
        # a concurrent insert for the same user tripped the unique index
        await db.rollback()
        await log.log_warning("referral", "Concurrent referral insert", {"user_id": new_user_id})
        raise AlreadyReferred()

    new_user.referred_by = referrer.id
    referrer.referral_count = (referrer.referral_count or 0) + 1
    await db.flush()

    await log.log_info("referral", "Referral applied", {
        "referral_id": referral.id, "referrer_id": referrer.id, "referred_id": new_user_id,
    })
    return referral


async def settle(
    db: AsyncSession,
    log: Log,
    referral_id: int,
    order_id: int | None = None,
    order_amount: float | None = None,
) -> tuple[Referral, bool]:
    """
    pending -> completed, then pays the referrer reward into the loyalty ledger.

    Returns (referral, settled). The status flip is a conditional UPDATE, so a second or
    concurrent call finds no pending row and returns settled=False without crediting.
    """
    referral = await db.get(Referral, referral_id)
    if referral is None:
        raise NotFound("Referral not found")

    now = utcnow()
    commission = round(order_amount * settings.REFERRAL_COMMISSION_RATE) if order_amount else 0
    result = await db.execute(
        update(Referral)
        .where(Referral.id == referral_id, Referral.status == "pending")
        .values(
            status="completed",
            completed_at=now,
            qualifying_order_id=order_id,
            order_amount=order_amount,
            commission_earned=commission,
            referrer_reward_claimed=True,
            referrer_reward_claimed_at=now,
        )
        .returning(Referral.id)
    )
    if result.scalar_one_or_none() is None:
        await log.log_info("referral", "Referral already settled", {"referral_id": referral_id})
        return referral, False

    await rewards.credit(
        db,
        log,
        referral.referrer_id,
        referral.referrer_reward_value,
        source="referral",
        description="Referral reward",
        order_id=order_id,
    )
    await db.refresh(referral)

    await log.log_info("referral", "Referral settled", {
        "referral_id": referral_id, "referrer_id": referral.referrer_id, "points": referral.referrer_reward_value,
    })
    return referral, True


async def settle_for_referred_user(
    db: AsyncSession,
    log: Log,
    referred_user_id: int,
    order_id: int | None = None,
    order_amount: float | None = None,
) -> tuple[Referral | None, bool]:
    """Settles the pending referral of a referred user, if any."""
    referral_id = await db.scalar(
        select(Referral.id).where(Referral.referred_id == referred_user_id, Referral.status == "pending")
    )
    if referral_id is None:
        return None, False
    return await settle(db, log, referral_id, order_id, order_amount)


async def referral_summary(db: AsyncSession, user_id: int) -> dict:
    """Own code, the 50 most recent referrals made and aggregate counters."""
    user = await db.get(User, user_id)
    if user is None:
        raise NotFound("User not found")

    result = await db.execute(
        select(Referral)
        .where(Referral.referrer_id == user_id)
        .order_by(Referral.created_at.desc(), Referral.id.desc())
        .limit(SUMMARY_LIMIT)
    )
    referrals = result.scalars().all()

    is_completed = Referral.status == "completed"
    stats = (await db.execute(
        select(
            func.count(Referral.id),
            func.coalesce(func.sum(case((is_completed, 1), else_=0)), 0),
            func.coalesce(func.sum(case((Referral.status == "pending", 1), else_=0)), 0),
            func.coalesce(func.sum(case((is_completed, Referral.referrer_reward_value), else_=0)), 0),
        ).where(Referral.referrer_id == user_id)
    )).one()
    total, completed, pending, total_earned = stats

    return {
        "referral_code": referral_code_for(user),
        "referrals": [
            {
                "id": r.id,
                "referred_user": {
                    "name": (r.referred.name if r.referred else None) or "User",
                    "email": (r.referred.email if r.referred else None) or "",
                },
                "status": r.status,
                "reward": r.referrer_reward_value or settings.REFERRER_REWARD_POINTS,
                "created_at": r.created_at,
            }
            for r in referrals
        ],
        "total_earned": int(total_earned),
        "stats": {"total": total, "completed": int(completed), "pending": int(pending)},
    }
