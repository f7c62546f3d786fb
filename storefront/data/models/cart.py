# storefront/data/models/cart.py
import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from storefront.data.database import Base


def _now():
    return datetime.now(timezone.utc)


class CartModel(Base):
    __tablename__ = "carts"

    # id nieprzezroczysty, klient-gość dostaje go w nagłówku X-Cart-Id
    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    # NULL = koszyk gościa, unique = max jeden koszyk na użytkownika
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True, unique=True)

    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_now)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_now, onupdate=_now)

    items = relationship(
        "CartItemModel",
        back_populates="cart",
        cascade="all, delete-orphan",
        order_by="CartItemModel.id",
    )
