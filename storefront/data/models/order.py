from datetime import datetime, timezone

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Integer, Numeric, String
from sqlalchemy.orm import relationship

from storefront.data.database import Base
from storefront.domain.order_status import OrderStatus


def _now():
    return datetime.now(timezone.utc)


_STATUSES = ", ".join(f"'{s.value}'" for s in OrderStatus)


class OrderModel(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    status = Column(String(20), nullable=False, default=OrderStatus.PENDING.value)
    # suma z pozycji snapshotu, nigdy od klienta
    total_amount = Column(Numeric(12, 2), nullable=False)
    shipping_address = Column(String(500), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_now)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_now, onupdate=_now)

    items = relationship(
        "OrderItemModel",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItemModel.id",
    )
    user = relationship("UserModel")

    __table_args__ = (
        CheckConstraint(f"status IN ({_STATUSES})", name="ck_orders_status"),
    )
