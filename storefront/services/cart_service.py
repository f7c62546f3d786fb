# storefront/services/cart_service.py
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import set_committed_value

from storefront.data.models.cart import CartModel
from storefront.data.models.cart_item import CartItemModel
from storefront.data.unit_of_work import unit_of_work
from storefront.domain.errors import ConflictError, NotFoundError, ValidationError
from storefront.repos.cart_repo import CartRepo
from storefront.repos.inventory_repo import InventoryRepo
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


class CartService:
    """
    Serwis obsługujący Use Case'y dla domeny Cart.
    Koszyk należy do użytkownika (user_id) albo do gościa (tylko cart_id, user_id = NULL).
    """

    def __init__(self, db: Session):
        self.db = db
        self.repo = CartRepo(db)
        self.inventory = InventoryRepo(db)

    # =====================================================
    # QUERY
    # =====================================================
    def get_cart(self, user_id: int | None = None, cart_id: str | None = None) -> Dict[str, Any]:
        cart = self._resolve_cart(user_id, cart_id)

        if not cart:
            return {"cart_id": None, "user_id": user_id, "items": [], "total": Decimal("0.00")}

        return self._cart_view(cart)

    # =====================================================
    # COMMANDS
    # =====================================================
    def add_product(
        self,
        product_id: int,
        quantity: int,
        user_id: int | None = None,
        cart_id: str | None = None,
    ) -> Dict[str, Any]:
        """
        Use Case: Dodanie produktu do koszyka.
        Tworzy koszyk przy pierwszym produkcie, istniejąca pozycja dostaje sumę ilości.
        """
        if quantity <= 0:
            raise ValidationError("Quantity must be at least 1.")

        if not self.inventory.get_product(product_id):
            raise NotFoundError("Product not found.")

        try:
            with unit_of_work(self.db):
                cart = self._resolve_cart(user_id, cart_id, for_update=True)

                if not cart:
                    cart = self.repo.create_cart(CartModel(user_id=user_id))
                    logger.info(f"Created cart {cart.id} (user={user_id})")

                existing_item = self.repo.get_cart_item(cart.id, product_id)

                if existing_item:
                    existing_item.quantity += quantity
                else:
                    self.repo.add_cart_item(
                        CartItemModel(cart_id=cart.id, product_id=product_id, quantity=quantity)
                    )

                self._bump_version(cart)
        except IntegrityError as e:
            # np. dwa równoległe pierwsze dodania tworzą dwa koszyki tego samego usera
            logger.warning(f"Cart write conflict for user={user_id} cart={cart_id}: {e.orig}")
            raise ConflictError("Cart was modified concurrently, please retry.") from e

        logger.info(f"Product {product_id} x{quantity} added to cart {cart.id}")
        return self._cart_view(cart)

    def update_quantity(
        self,
        product_id: int,
        quantity: int,
        user_id: int | None = None,
        cart_id: str | None = None,
    ) -> Dict[str, Any]:
        if quantity <= 0:
            raise ValidationError("Quantity must be at least 1.")

        with unit_of_work(self.db):
            cart = self._require_cart(user_id, cart_id)

            item = self.repo.get_cart_item(cart.id, product_id)
            if not item:
                raise NotFoundError("Item not found in cart.")

            item.quantity = quantity
            self._bump_version(cart)

        return self._cart_view(cart)

    def remove_product(
        self,
        product_id: int,
        user_id: int | None = None,
        cart_id: str | None = None,
    ) -> Dict[str, Any]:
        with unit_of_work(self.db):
            cart = self._require_cart(user_id, cart_id)

            if self.repo.delete_cart_item(cart.id, product_id) == 0:
                raise NotFoundError("Item not found in cart.")

            self._bump_version(cart)

        logger.info(f"Product {product_id} removed from cart {cart.id}")
        return self._cart_view(cart)

    def merge_guest_cart(self, guest_cart_id: str | None, user_id: int) -> Dict[str, Any] | None:
        """
        Use Case: Scalenie koszyka gościa z koszykiem użytkownika przy logowaniu.

        - brak koszyka gościa (albo już scalony i usunięty) -> no-op
        - użytkownik bez koszyka -> przejęcie koszyka gościa (zmiana właściciela)
        - użytkownik z koszykiem -> sumowanie ilości / dopisanie pozycji, usunięcie koszyka gościa
        """
        if not guest_cart_id:
            return None

        # drugie podejście tylko gdy przejęcie przegrało z równoległym utworzeniem koszyka usera
        for attempt in range(2):
            try:
                with unit_of_work(self.db):
                    merged = self._merge(guest_cart_id, user_id)
                break
            except IntegrityError as e:
                if attempt == 1:
                    raise ConflictError("Cart was modified concurrently, please retry.") from e
                logger.warning(f"Cart merge for user {user_id} raced, retrying: {e.orig}")

        if not merged:
            return None

        return self.get_cart(user_id=user_id)

    # =====================================================
    # HELPERS
    # =====================================================
    def _merge(self, guest_cart_id: str, user_id: int) -> bool:
        guest = self.repo.get_guest_cart(guest_cart_id, for_update=True)
        if not guest:
            logger.info(f"No guest cart {guest_cart_id} to merge for user {user_id}")
            return False

        user_cart = self.repo.get_cart_by_user(user_id, for_update=True)

        if not user_cart:
            if self.repo.claim_guest_cart(guest.id, user_id) == 0:
                return False
            logger.info(f"Guest cart {guest.id} assigned to user {user_id}")
            return True

        user_items = {i.product_id: i for i in self.repo.get_cart_items(user_cart.id)}

        for guest_item in self.repo.get_cart_items(guest.id):
            user_item = user_items.get(guest_item.product_id)
            if user_item:
                user_item.quantity += guest_item.quantity
            else:
                self.repo.add_cart_item(
                    CartItemModel(
                        cart_id=user_cart.id,
                        product_id=guest_item.product_id,
                        quantity=guest_item.quantity,
                    )
                )

        self._bump_version(user_cart)
        self.repo.delete_cart(guest.id)

        logger.info(f"Guest cart {guest.id} merged into cart {user_cart.id} of user {user_id}")
        return True

    def _resolve_cart(self, user_id: int | None, cart_id: str | None, for_update: bool = False):
        if user_id is not None:
            return self.repo.get_cart_by_user(user_id, for_update=for_update)
        if cart_id:
            return self.repo.get_guest_cart(cart_id, for_update=for_update)
        return None

    def _require_cart(self, user_id: int | None, cart_id: str | None) -> CartModel:
        cart = self._resolve_cart(user_id, cart_id, for_update=True)
        if not cart:
            raise NotFoundError("Cart not found.")
        return cart

    def _bump_version(self, cart: CartModel) -> None:
        # Optimistic locking
        rowcount = self.repo.update_cart_version(
            cart_id=cart.id,
            old_version=cart.version,
            new_data={
                "version": cart.version + 1,
                "updated_at": datetime.now(timezone.utc),
            },
        )

        if rowcount == 0:
            raise ConflictError("Cart was modified concurrently, please retry.")

        # wersja zapisana w bazie SQL-em, obiekt nie może być przez to "dirty"
        set_committed_value(cart, "version", cart.version + 1)

    def _cart_view(self, cart: CartModel) -> Dict[str, Any]:
        items = self.repo.get_cart_items(cart.id)
        products = self.inventory.get_products([i.product_id for i in items])

        lines = []
        total = Decimal("0.00")
        for i in items:
            product = products.get(i.product_id)
            # produkt usunięty z katalogu: pozycja zostaje, checkout zwróci ProductMissing
            price = product.price if product else None
            subtotal = price * i.quantity if price is not None else None
            if subtotal is not None:
                total += subtotal
            lines.append(
                {
                    "product_id": i.product_id,
                    "name": product.name if product else None,
                    "price": price,
                    "quantity": i.quantity,
                    "subtotal": subtotal,
                }
            )

        return {
            "cart_id": cart.id,
            "user_id": cart.user_id,
            "items": lines,
            "total": total,
        }
