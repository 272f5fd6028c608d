# app/models/pincode.py

from sqlalchemy import Column, Integer, String, Float, Boolean, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from app.utils.database import Base, utcnow

class Pincode(Base):
    __tablename__ = "pincodes"

    id = Column(Integer, primary_key=True, index=True)
    pincode = Column(String(6), unique=True, nullable=False)
    city = Column(String, nullable=False, index=True)
    state = Column(String, nullable=False, index=True)
    country = Column(String, nullable=False, default="India")

    is_serviceable = Column(Boolean, nullable=False, default=True)
    cod_available = Column(Boolean, nullable=False, default=True)
    express_delivery = Column(Boolean, nullable=False, default=False)

    standard_days = Column(Integer, nullable=False, default=5)      # whole days
    express_days = Column(Integer, nullable=False, default=2)
    delivery_charge = Column(Float, nullable=False, default=40)
    express_charge = Column(Float, nullable=False, default=99)
    free_delivery_above = Column(Float, nullable=False, default=499)

    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    slots = relationship(
        "PincodeSlot",
        lazy="selectin",
        cascade="all, delete-orphan",
        order_by="PincodeSlot.id",
    )


class PincodeSlot(Base):
    __tablename__ = "pincode_slots"

    id = Column(Integer, primary_key=True, index=True)
    pincode_id = Column(Integer, ForeignKey("pincodes.id"), nullable=False, index=True)
    label = Column(String, nullable=False)          # Morning, Afternoon, ...
    start_hour = Column(Integer, nullable=False)
    end_hour = Column(Integer, nullable=False)
    cutoff_hour = Column(Integer, nullable=False)   # order before this hour to get the slot on the nearest day
    extra_charge = Column(Float, nullable=False, default=0)
