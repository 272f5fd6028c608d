# app/models/order.py

from sqlalchemy import Column, Integer, String, Float, Text, DateTime, ForeignKey, JSON, UniqueConstraint
from sqlalchemy.orm import relationship
from app.utils.database import Base, utcnow

class Order(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    order_number = Column(String, unique=True, nullable=False)      # shown to the customer and gateways
    customer_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    status = Column(String, nullable=False, default="pending", index=True)
    payment_status = Column(String, nullable=False, default="pending")  # pending | paid | failed | refunded
    payment_method = Column(String, nullable=True)
    payment_id = Column(String, nullable=True)

    total = Column(Float, nullable=False, default=0)
    shipping_address = Column(JSON, nullable=True)

    carrier = Column(String, nullable=True)
    tracking_number = Column(String, nullable=True, index=True)

    delivered_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    cancellation_reason = Column(Text, nullable=True)
    cancelled_by = Column(String, nullable=True)                     # customer | seller | admin | system
    return_reason = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow)

    customer = relationship("User", lazy="selectin")
    items = relationship(
        "OrderItem",
        back_populates="order",
        lazy="selectin",
        cascade="all, delete-orphan",
        order_by="OrderItem.id",
    )
    status_history = relationship(
        "OrderStatusEntry",
        back_populates="order",
        lazy="selectin",
        cascade="all, delete-orphan",
        order_by="OrderStatusEntry.seq",
    )


class OrderItem(Base):
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)
    product_id = Column(String, nullable=True)
    name = Column(String, nullable=False)
    quantity = Column(Integer, nullable=False, default=1)
    price = Column(Float, nullable=False, default=0)                # unit price
    seller_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)

    order = relationship("Order", back_populates="items")


class OrderStatusEntry(Base):
    """One row per status change. Rows are only ever inserted."""
    __tablename__ = "order_status_history"
    __table_args__ = (
        UniqueConstraint("order_id", "seq", name="uq_order_status_history_seq"),
    )

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)
    seq = Column(Integer, nullable=False)
    status = Column(String, nullable=False)
    timestamp = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    note = Column(Text, nullable=True)
    by = Column(Integer, ForeignKey("users.id"), nullable=True)

    order = relationship("Order", back_populates="status_history")
