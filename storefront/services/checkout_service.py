# storefront/services/checkout_service.py
from decimal import Decimal
from typing import Any, Dict

from sqlalchemy.orm import Session

from storefront.data.models.order import OrderModel
from storefront.data.models.order_item import OrderItemModel
from storefront.data.unit_of_work import unit_of_work
from storefront.domain.errors import (
    ConflictError,
    EmptyCart,
    InsufficientStock,
    ProductMissing,
    ValidationError,
)
from storefront.domain.order_status import OrderStatus
from storefront.repos.cart_repo import CartRepo
from storefront.repos.inventory_repo import InventoryRepo
from storefront.repos.order_repo import OrderRepo
from storefront.services.order_service import order_to_dict
from storefront.utils.logging import get_logger
from storefront.utils.retry import storage_retry
from storefront.utils.settings import CHECKOUT_TIMEOUT_MS

logger = get_logger(__name__)


class CheckoutService:
    """
    Zamiana koszyka w zamówienie jako jedna transakcja.
    Dekrement stocku, utworzenie zamówienia i usunięcie koszyka commitowane razem albo wcale.
    """

    def __init__(self, db: Session, timeout_ms: int = CHECKOUT_TIMEOUT_MS):
        self.db = db
        self.timeout_ms = timeout_ms
        self.carts = CartRepo(db)
        self.inventory = InventoryRepo(db)
        self.orders = OrderRepo(db)

    @storage_retry()
    def checkout(self, user_id: int, shipping_address: str) -> Dict[str, Any]:
        """
        Use Case: Złożenie zamówienia z koszyka użytkownika.

        1. koszyk użytkownika (pusty / brak -> EmptyCart)
        2. produkty jednym zapytaniem (FOR UPDATE)
        3. brak produktu -> ProductMissing
        4. stock < ilość -> InsufficientStock
        5. snapshot pozycji + suma
        6. warunkowy dekrement stocku, insert zamówienia (pending), usunięcie koszyka
        Każdy błąd w 3-6 wycofuje całą transakcję.
        """
        address = (shipping_address or "").strip()
        if not address:
            raise ValidationError("Shipping address is required.")

        with unit_of_work(self.db, timeout_ms=self.timeout_ms):
            cart = self.carts.get_cart_by_user(user_id, for_update=True)
            items = self.carts.get_cart_items(cart.id) if cart else []

            if not items:
                raise EmptyCart()

            products = self.inventory.get_products(
                [i.product_id for i in items],
                for_update=True,
            )

            ordered_items = []
            for item in items:
                product = products.get(item.product_id)

                if not product:
                    # produkt usunięty z katalogu, gdy leżał w koszyku
                    raise ProductMissing(item.product_id)

                if product.stock < item.quantity:
                    raise InsufficientStock(product.name, product.stock, item.quantity)

                ordered_items.append(
                    OrderItemModel(
                        product_id=product.id,
                        name=product.name,
                        unit_price=product.price,
                        quantity=item.quantity,
                    )
                )

            total = sum((i.unit_price * i.quantity for i in ordered_items), Decimal("0.00"))

            for ordered in ordered_items:
                # warunek stock >= ilość sprawdza baza, nie aplikacja
                if not self.inventory.try_reserve(ordered.product_id, ordered.quantity):
                    available = self.inventory.current_stock(ordered.product_id)
                    logger.warning(
                        f"Concurrent stock change for product {ordered.product_id}: "
                        f"available={available}, requested={ordered.quantity}"
                    )
                    raise InsufficientStock(ordered.name, available, ordered.quantity)

            order = self.orders.create_order(
                OrderModel(
                    user_id=user_id,
                    items=ordered_items,
                    total_amount=total,
                    shipping_address=address,
                    status=OrderStatus.PENDING.value,
                )
            )

            if self.carts.delete_cart(cart.id) == 0:
                raise ConflictError("Cart was checked out concurrently.")

        logger.info(f"Order {order.id} created for user {user_id}, total {total}")

        return order_to_dict(order)
