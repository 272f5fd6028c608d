# app/models/reward.py

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, CheckConstraint
from app.utils.database import Base, utcnow

class RewardTransaction(Base):
    __tablename__ = "reward_transactions"
    __table_args__ = (
        CheckConstraint("points > 0", name="ck_reward_transactions_points_positive"),
        CheckConstraint("balance >= 0", name="ck_reward_transactions_balance_non_negative"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    type = Column(String, nullable=False)                  # earned | redeemed
    points = Column(Integer, nullable=False)               # always positive, sign comes from type
    balance = Column(Integer, nullable=False)              # user balance right after this transaction
    source = Column(String, nullable=False)                # purchase | referral | review | signup | redemption | admin | refund
    description = Column(String, nullable=False)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=True)
    expires_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, index=True)
