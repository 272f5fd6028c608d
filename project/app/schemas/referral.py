# app/schemas/referral.py

from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import datetime


class Reward(BaseModel):
    type: str
    value: int
    claimed: bool
    claimed_at: Optional[datetime] = None


class ReferralOut(BaseModel):
    id: int
    referrer_id: int
    referred_id: int
    referral_code: str
    status: str
    referrer_reward: Reward
    referred_reward: Reward
    qualifying_order_id: Optional[int] = None
    commission_earned: float = 0
    completed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_model(cls, referral) -> "ReferralOut":
        return cls(
            id=referral.id,
            referrer_id=referral.referrer_id,
            referred_id=referral.referred_id,
            referral_code=referral.referral_code,
            status=referral.status,
            referrer_reward=Reward(
                type=referral.referrer_reward_type,
                value=referral.referrer_reward_value,
                claimed=referral.referrer_reward_claimed,
                claimed_at=referral.referrer_reward_claimed_at,
            ),
            referred_reward=Reward(
                type=referral.referred_reward_type,
                value=referral.referred_reward_value,
                claimed=referral.referred_reward_claimed,
                claimed_at=referral.referred_reward_claimed_at,
            ),
            qualifying_order_id=referral.qualifying_order_id,
            commission_earned=referral.commission_earned or 0,
            completed_at=referral.completed_at,
            created_at=referral.created_at,
        )


class ReferredUser(BaseModel):
    name: str
    email: str


class ReferralListItem(BaseModel):
    id: int
    referred_user: ReferredUser
    status: str
    reward: int
    created_at: Optional[datetime] = None


class ReferralStats(BaseModel):
    total: int = 0
    completed: int = 0
    pending: int = 0


class ReferralSummary(BaseModel):
    referral_code: str
    referrals: List[ReferralListItem]
    total_earned: int
    stats: ReferralStats


class ApplyCodeRequest(BaseModel):
    referral_code: str = Field(..., min_length=1)


class ApplyCodeResponse(BaseModel):
    message: str = "Referral applied successfully"
    discount: int
    referral: ReferralOut


class SettleRequest(BaseModel):
    order_id: Optional[int] = None
    order_amount: Optional[float] = Field(None, ge=0)


class SettleResponse(BaseModel):
    settled: bool
    referral: ReferralOut
