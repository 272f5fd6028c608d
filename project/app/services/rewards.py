# app/services/rewards.py

from datetime import timedelta

from sqlalchemy import update, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from app.config import settings
from app.models.reward import RewardTransaction
from app.models.user import User
from app.schemas.common import Pagination
from app.utils.database import utcnow
from app.utils.errors import InsufficientBalance, NotFound, ValidationError
from app.utils.log import Log

EARNED_POINTS_TTL = timedelta(days=365)

TIERS = (
    (50000, "platinum"),
    (25000, "gold"),
    (10000, "silver"),
)


def loyalty_tier_for(total_spent: float) -> str:
    for threshold, tier in TIERS:
        if total_spent >= threshold:
            return tier
    return "bronze"


def discount_for(points: int) -> int:
    """Currency units a redemption is worth, rounded down."""
    return points // settings.POINTS_PER_CURRENCY_UNIT


def _check_points(points) -> None:
    if not isinstance(points, int) or isinstance(points, bool) or points <= 0:
        raise ValidationError("Invalid points amount")


async def credit(
    db: AsyncSession,
    log: Log,
    user_id: int,
    points: int,
    source: str,
    description: str | None = None,
    order_id: int | None = None,
) -> RewardTransaction:
    """
    Adds points to the user balance and records an `earned` transaction.

    The increment is done in SQL so concurrent credits cannot overwrite each other;
    the snapshot stored on the transaction is the balance returned by that same statement.
    Nothing is committed here, the caller owns the transaction.
    """
    _check_points(points)

    result = await db.execute(
        update(User)
        .where(User.id == user_id)
        .values(loyalty_points=User.loyalty_points + points)
        .returning(User.loyalty_points)
    )
    balance = result.scalar_one_or_none()
    if balance is None:
        await log.log_error("rewards", "User not found for credit", {"user_id": user_id})
        raise NotFound("User not found")

    now = utcnow()
    transaction = RewardTransaction(
        user_id=user_id,
        type="earned",
        points=points,
        balance=balance,
        source=source,
        description=description or f"{points} points earned ({source})",
        order_id=order_id,
        expires_at=now + EARNED_POINTS_TTL,
        created_at=now,
    )
    db.add(transaction)
    await db.flush()

    await log.log_info("rewards", "Points credited", {"user_id": user_id, "points": points, "balance": balance})
    return transaction


async def redeem(
    db: AsyncSession,
    log: Log,
    user_id: int,
    points: int,
    order_id: int | None = None,
) -> tuple[RewardTransaction, int]:
    """
    Spends points and returns (transaction, discount value).

    The decrement is conditional on the balance covering it, so the sufficiency check
    and the write are one statement. When no row matches, nothing has been changed.
    """
    _check_points(points)

    result = await db.execute(
        update(User)
        .where(User.id == user_id, User.loyalty_points >= points)
        .values(loyalty_points=User.loyalty_points - points)
        .returning(User.loyalty_points)
    )
    balance = result.scalar_one_or_none()
    if balance is None:
        available = await db.scalar(select(User.loyalty_points).where(User.id == user_id))
        if available is None:
            await log.log_error("rewards", "User not found for redeem", {"user_id": user_id})
            raise NotFound("User not found")
        await log.log_warning("rewards", "Insufficient points", {
            "user_id": user_id, "requested": points, "available": available,
        })
        raise InsufficientBalance(available=available, requested=points)

    transaction = RewardTransaction(
        user_id=user_id,
        type="redeemed",
        points=points,
        balance=balance,
        source="redemption",
        description="Redeemed for order discount" if order_id else "Points redeemed",
        order_id=order_id,
        created_at=utcnow(),
    )
    db.add(transaction)
    await db.flush()

    discount = discount_for(points)
    await log.log_info("rewards", "Points redeemed", {
        "user_id": user_id, "points": points, "balance": balance, "discount": discount,
    })
    return transaction, discount


async def read_rewards(db: AsyncSession, user_id: int, page: int = 1, limit: int = 20) -> dict:
    """Balance, tier and a page of the transaction history, newest first."""
    user = await db.get(User, user_id)
    if user is None:
        raise NotFound("User not found")

    total = await db.scalar(
        select(func.count()).select_from(RewardTransaction).where(RewardTransaction.user_id == user_id)
    )
    result = await db.execute(
        select(RewardTransaction)
        .where(RewardTransaction.user_id == user_id)
        .order_by(RewardTransaction.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    return {
        "points": user.loyalty_points or 0,
        "tier": user.loyalty_tier or "bronze",
        "total_spent": user.total_spent or 0,
        "transactions": result.scalars().all(),
        "pagination": Pagination.build(page, limit, total or 0),
    }


async def latest_snapshot(db: AsyncSession, user_id: int) -> int:
    """Balance implied by the ledger: the snapshot of the most recent transaction, 0 when empty."""
    snapshot = await db.scalar(
        select(RewardTransaction.balance)
        .where(RewardTransaction.user_id == user_id)
        .order_by(RewardTransaction.id.desc())
        .limit(1)
    )
    return snapshot or 0
