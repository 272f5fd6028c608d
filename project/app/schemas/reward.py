# app/schemas/reward.py

from pydantic import BaseModel, Field
from typing import List, Literal, Optional
from datetime import datetime

from app.schemas.common import Pagination

RewardSource = Literal["purchase", "referral", "review", "signup", "redemption", "admin", "refund"]


class RewardTransactionOut(BaseModel):
    id: int
    type: Literal["earned", "redeemed"]
    points: int
    balance: int
    source: str
    description: str
    order_id: Optional[int] = None
    expires_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class RewardsOverview(BaseModel):
    points: int
    tier: str
    total_spent: float
    transactions: List[RewardTransactionOut]
    pagination: Pagination


class RedeemRequest(BaseModel):
    points: int = Field(..., description="Points to redeem, must be positive")
    order_id: Optional[int] = None


class RedeemResponse(BaseModel):
    points_redeemed: int
    discount_value: int
    remaining_points: int
    transaction: RewardTransactionOut


class CreditRequest(BaseModel):
    user_id: int
    points: int
    source: RewardSource = "admin"
    description: Optional[str] = None
    order_id: Optional[int] = None
