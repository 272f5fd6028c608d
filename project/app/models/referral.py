# app/models/referral.py

from sqlalchemy import Column, Integer, String, Float, Boolean, DateTime, ForeignKey, CheckConstraint
from sqlalchemy.orm import relationship
from app.utils.database import Base, utcnow

class Referral(Base):
    __tablename__ = "referrals"
    __table_args__ = (
        CheckConstraint("referrer_id <> referred_id", name="ck_referrals_not_self"),
    )

    id = Column(Integer, primary_key=True, index=True)
    referrer_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    # a user can be referred only once
    referred_id = Column(Integer, ForeignKey("users.id"), nullable=False, unique=True)
    referral_code = Column(String, nullable=False, index=True)
    status = Column(String, nullable=False, default="pending", index=True)   # pending | completed

    referrer_reward_type = Column(String, nullable=False, default="points")
    referrer_reward_value = Column(Integer, nullable=False, default=100)
    referrer_reward_claimed = Column(Boolean, nullable=False, default=False)
    referrer_reward_claimed_at = Column(DateTime(timezone=True), nullable=True)

    referred_reward_type = Column(String, nullable=False, default="discount")
    referred_reward_value = Column(Integer, nullable=False, default=100)
    referred_reward_claimed = Column(Boolean, nullable=False, default=False)
    referred_reward_claimed_at = Column(DateTime(timezone=True), nullable=True)

    qualifying_order_id = Column(Integer, ForeignKey("orders.id"), nullable=True)
    order_amount = Column(Float, nullable=True)
    commission_earned = Column(Float, nullable=False, default=0)

    completed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, index=True)

    referrer = relationship("User", foreign_keys=[referrer_id], lazy="selectin")
    referred = relationship("User", foreign_keys=[referred_id], lazy="selectin")
