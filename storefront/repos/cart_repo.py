# storefront/repos/cart_repo.py
from sqlalchemy import delete, select, update
from sqlalchemy.orm import Session

from storefront.data.models.cart import CartModel
from storefront.data.models.cart_item import CartItemModel


class CartRepo:
    """
    Dostęp do koszyków. Repo nie commituje, granica transakcji to unit_of_work w serwisie.
    """

    def __init__(self, db: Session):
        self.db = db

    def get_cart_by_user(self, user_id: int, for_update: bool = False) -> CartModel | None:
        stmt = (
            select(CartModel)
            .where(CartModel.user_id == user_id)
            .execution_options(populate_existing=True)
        )
        if for_update:
            stmt = stmt.with_for_update()
        return self.db.execute(stmt).scalar_one_or_none()

    def get_guest_cart(self, cart_id: str, for_update: bool = False) -> CartModel | None:
        # tylko koszyk bez właściciela jest koszykiem gościa
        stmt = (
            select(CartModel)
            .where(CartModel.id == cart_id, CartModel.user_id.is_(None))
            .execution_options(populate_existing=True)
        )
        if for_update:
            stmt = stmt.with_for_update()
        return self.db.execute(stmt).scalar_one_or_none()

    def get_cart_items(self, cart_id: str) -> list[CartItemModel]:
        return list(
            self.db.execute(
                select(CartItemModel)
                .where(CartItemModel.cart_id == cart_id)
                .order_by(CartItemModel.id)
            ).scalars()
        )

    def get_cart_item(self, cart_id: str, product_id: int) -> CartItemModel | None:
        return self.db.execute(
            select(CartItemModel).where(
                CartItemModel.cart_id == cart_id,
                CartItemModel.product_id == product_id,
            )
        ).scalar_one_or_none()

    def create_cart(self, cart: CartModel) -> CartModel:
        self.db.add(cart)
        self.db.flush()
        return cart

    def add_cart_item(self, item: CartItemModel) -> CartItemModel:
        self.db.add(item)
        self.db.flush()
        return item

    def delete_cart_item(self, cart_id: str, product_id: int) -> int:
        result = self.db.execute(
            delete(CartItemModel).where(
                CartItemModel.cart_id == cart_id,
                CartItemModel.product_id == product_id,
            )
        )
        return result.rowcount

    def delete_cart(self, cart_id: str) -> int:
        self.db.execute(delete(CartItemModel).where(CartItemModel.cart_id == cart_id))
        result = self.db.execute(delete(CartModel).where(CartModel.id == cart_id))
        return result.rowcount

    def update_cart_version(self, cart_id: str, old_version: int, new_data: dict) -> int:
        """Optimistic locking: zapis tylko gdy wersja się nie zmieniła."""
        result = self.db.execute(
            update(CartModel)
            .where(CartModel.id == cart_id, CartModel.version == old_version)
            .values(**new_data)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    def claim_guest_cart(self, cart_id: str, user_id: int) -> int:
        # warunkowo: tylko jeśli koszyk nadal nie ma właściciela
        result = self.db.execute(
            update(CartModel)
            .where(CartModel.id == cart_id, CartModel.user_id.is_(None))
            .values(user_id=user_id, version=CartModel.version + 1)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount
