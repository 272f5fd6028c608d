# app/models/user.py

from sqlalchemy import Column, Integer, String, Float, DateTime, ForeignKey, CheckConstraint
from app.utils.database import Base, utcnow

class User(Base):
    __tablename__ = "users"
    __table_args__ = (
        CheckConstraint("loyalty_points >= 0", name="ck_users_loyalty_points_non_negative"),
    )

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=True)
    email = Column(String, unique=True, nullable=False)
    password = Column(String, nullable=True)                   # hashed
    role = Column(String, nullable=False, default="customer")  # customer | seller | admin

    # loyalty program, balance is the cached latest reward snapshot
    loyalty_points = Column(Integer, nullable=False, default=0)
    loyalty_tier = Column(String, nullable=False, default="bronze")
    total_spent = Column(Float, nullable=False, default=0)

    # referral program
    affiliate_code = Column(String, unique=True, nullable=True)
    referred_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    referral_count = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), default=utcnow)
