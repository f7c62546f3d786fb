from sqlalchemy import CheckConstraint, Column, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import relationship

from storefront.data.database import Base


class CartItemModel(Base):
    __tablename__ = "cart_items"

    id = Column(Integer, primary_key=True)
    cart_id = Column(String(36), ForeignKey("carts.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)

    # cena nie jest trzymana w koszyku, liczona z katalogu przy odczycie i przy checkout
    quantity = Column(Integer, nullable=False)

    cart = relationship("CartModel", back_populates="items")

    __table_args__ = (
        UniqueConstraint("cart_id", "product_id", name="u_cart_product"),
        CheckConstraint("quantity >= 1", name="ck_cart_items_quantity_positive"),
    )
