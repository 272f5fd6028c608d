# tests/test_referral.py

import pytest
from sqlalchemy import func, select

from app.models.referral import Referral
from app.models.reward import RewardTransaction
from app.models.user import User
from app.services.referral import (
    apply_code,
    assign_code,
    referral_code_for,
    referral_summary,
    settle,
    settle_for_referred_user,
)
from app.utils.errors import AlreadyReferred, NotFound, SelfReferral, ValidationError


@pytest.fixture
async def referrer(make_user):
    return await make_user("nikhil@example.com", affiliate_code="BKC9F3A21")


@pytest.fixture
async def newcomer(make_user):
    return await make_user("divya@example.com")


def test_code_is_derived_from_id():
    assert referral_code_for(User(id=0x9F3A21)) == "BKC9F3A21"
    assert referral_code_for(User(id=0x1234ABCDEF)) == "BKC1234ABCDEF"
    assert referral_code_for(User(id=5)) != referral_code_for(User(id=0x1000005))
    assert referral_code_for(User(id=5, affiliate_code="BKCFRIEND")) == "BKCFRIEND"


async def test_assign_code_stores_derived_code(db, newcomer):
    code = await assign_code(db, newcomer)

    assert code == f"BKC{newcomer.id:06X}"
    assert newcomer.affiliate_code == code
    assert await assign_code(db, newcomer) == code


async def test_apply_code_creates_pending_referral(db, log, referrer, newcomer):
    referral = await apply_code(db, log, "BKC9F3A21", newcomer.id)

    assert referral.status == "pending"
    assert referral.referrer_id == referrer.id
    assert referral.referred_id == newcomer.id
    assert (referral.referrer_reward_type, referral.referrer_reward_value) == ("points", 100)
    assert referral.referrer_reward_claimed is False
    assert (referral.referred_reward_type, referral.referred_reward_value) == ("discount", 100)
    assert referral.referred_reward_claimed is False
    assert newcomer.referred_by == referrer.id
    assert referrer.referral_count == 1


async def test_code_lookup_is_case_insensitive(db, log, referrer, newcomer):
    referral = await apply_code(db, log, "  bkc9f3a21 ", newcomer.id)

    assert referral.referral_code == "BKC9F3A21"


async def test_second_referral_is_rejected(db, log, referrer, newcomer, make_user):
    another = await make_user("arjun@example.com", affiliate_code="BKC000777")
    await apply_code(db, log, "BKC9F3A21", newcomer.id)
    await db.commit()

    with pytest.raises(AlreadyReferred):
        await apply_code(db, log, "BKC000777", newcomer.id)

    rows = await db.scalar(select(func.count()).select_from(Referral).where(Referral.referred_id == newcomer.id))
    assert rows == 1
    assert another.referral_count == 0


async def test_own_code_is_rejected(db, log, referrer):
    with pytest.raises(SelfReferral):
        await apply_code(db, log, "BKC9F3A21", referrer.id)


async def test_bad_codes(db, log, newcomer):
    with pytest.raises(ValidationError):
        await apply_code(db, log, "   ", newcomer.id)
    with pytest.raises(NotFound):
        await apply_code(db, log, "BKCNOPE00", newcomer.id)


async def test_settle_credits_referrer_once(db, log, referrer, newcomer):
    referral = await apply_code(db, log, "BKC9F3A21", newcomer.id)
    await db.commit()

    settled_referral, settled = await settle(db, log, referral.id, order_id=None, order_amount=1999.0)
    await db.commit()
    assert settled is True
    assert settled_referral.status == "completed"
    assert settled_referral.referrer_reward_claimed is True
    assert settled_referral.completed_at is not None
    assert settled_referral.commission_earned == 100

    _, settled_again = await settle(db, log, referral.id)
    assert settled_again is False

    await db.refresh(referrer)
    assert referrer.loyalty_points == 100
    transactions = (await db.execute(
        select(RewardTransaction).where(RewardTransaction.user_id == referrer.id)
    )).scalars().all()
    assert [(t.type, t.points, t.source, t.balance) for t in transactions] == [("earned", 100, "referral", 100)]


async def test_settle_unknown_referral(db, log):
    with pytest.raises(NotFound):
        await settle(db, log, 31337)


async def test_settle_for_referred_user(db, log, referrer, newcomer, make_user):
    loner = await make_user("solo@example.com")
    await apply_code(db, log, "BKC9F3A21", newcomer.id)

    referral, settled = await settle_for_referred_user(db, log, newcomer.id)
    assert settled is True
    assert referral.referred_id == newcomer.id

    assert await settle_for_referred_user(db, log, loner.id) == (None, False)


async def test_referral_summary(db, log, session_factory, referrer, newcomer, make_user):
    second = await make_user("farah@example.com", name="Farah")
    first_referral = await apply_code(db, log, "BKC9F3A21", newcomer.id)
    await apply_code(db, log, "BKC9F3A21", second.id)
    await settle(db, log, first_referral.id)
    await db.commit()

    async with session_factory() as fresh:
        summary = await referral_summary(fresh, referrer.id)

    assert summary["referral_code"] == "BKC9F3A21"
    assert summary["stats"] == {"total": 2, "completed": 1, "pending": 1}
    assert summary["total_earned"] == 100
    assert {r["referred_user"]["email"] for r in summary["referrals"]} == {"divya@example.com", "farah@example.com"}
    assert all(r["reward"] == 100 for r in summary["referrals"])
