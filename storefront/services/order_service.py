# storefront/services/order_service.py
import math
from typing import Any, Dict, List

from sqlalchemy.orm import Session

from storefront.data.models.order import OrderModel
from storefront.data.unit_of_work import unit_of_work
from storefront.domain.errors import AuthorizationError, ConflictError, NotFoundError, ValidationError
from storefront.domain.order_status import OrderStatus, TransitionAuthority, ensure_transition
from storefront.repos.order_repo import OrderRepo
from storefront.services.notification_service import NotificationService
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


def order_to_dict(order: OrderModel) -> Dict[str, Any]:
    return {
        "id": order.id,
        "user_id": order.user_id,
        "status": order.status,
        "total_amount": order.total_amount,
        "shipping_address": order.shipping_address,
        "created_at": order.created_at,
        "items": [
            {
                "product_id": i.product_id,
                "name": i.name,
                "unit_price": i.unit_price,
                "quantity": i.quantity,
                "subtotal": i.subtotal,
            }
            for i in order.items
        ],
    }


class OrderService:
    """
    Serwis odpowiedzialny za odczyt zamówień i administracyjne zmiany statusu.
    Tworzenie zamówienia jest w CheckoutService, przejścia płatności w PaymentEventProcessor.
    """

    def __init__(self, db: Session, notifier: NotificationService | None = None):
        self.db = db
        self.repo = OrderRepo(db)
        self.notifier = notifier or NotificationService()

    def list_orders(self, user_id: int) -> List[Dict[str, Any]]:
        return [order_to_dict(o) for o in self.repo.list_by_user(user_id)]

    def get_order(self, order_id: int, user_id: int) -> Dict[str, Any]:
        """
        Use Case: Pobranie zamówienia (Query).
        """
        order = self.repo.get_order(order_id)

        if not order:
            raise NotFoundError("Order not found.")

        if order.user_id != user_id:
            raise AuthorizationError("You do not have access to this order.")

        return order_to_dict(order)

    def list_all(self, page: int = 1, limit: int = 10, status: str | None = None) -> Dict[str, Any]:
        if page < 1 or not 1 <= limit <= 100:
            raise ValidationError("Invalid pagination parameters.")

        orders, total = self.repo.list_orders((page - 1) * limit, limit, status)

        return {
            "orders": [order_to_dict(o) for o in orders],
            "pagination": {
                "current_page": page,
                "total_pages": math.ceil(total / limit),
                "total_orders": total,
                "limit": limit,
            },
        }

    def update_status(self, order_id: int, new_status: str) -> Dict[str, Any]:
        """
        Use Case: Administracyjna zmiana statusu.
        Dozwolone: processing -> shipped -> delivered oraz dowolny nieterminalny -> cancelled.
        """
        try:
            new_status = OrderStatus(new_status)
        except ValueError:
            raise ValidationError(f"Unknown order status: {new_status}.")

        with unit_of_work(self.db):
            order = self.repo.get_order(order_id, for_update=True)
            if not order:
                raise NotFoundError("Order not found.")

            previous = order.status
            target = ensure_transition(previous, new_status, TransitionAuthority.ADMIN)

            # compare-and-set, równoległa zmiana statusu wygrywa tylko raz
            if self.repo.transition_status(order.id, previous, target.value) == 0:
                raise ConflictError("Order was modified concurrently, please retry.")

        order = self.repo.get_order(order_id)
        logger.info(f"Order {order_id} status changed {previous} -> {order.status}")

        user = order.user
        if user and user.email:
            self.notifier.send_order_status_update(user.email, user.username, order.id, order.status)

        return order_to_dict(order)
