# storefront/services/payment_service.py
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict

import stripe
from sqlalchemy.orm import Session

from storefront.domain.errors import AuthorizationError, ConflictError, NotFoundError, PaymentProviderError
from storefront.domain.order_status import OrderStatus
from storefront.repos.order_repo import OrderRepo
from storefront.services.payment_client import PaymentClient
from storefront.utils.logging import get_logger
from storefront.utils.settings import PAYMENT_CURRENCY

logger = get_logger(__name__)


def to_minor_units(amount: Decimal) -> int:
    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


class PaymentService:
    def __init__(self, db: Session, client: PaymentClient | None = None):
        self.repo = OrderRepo(db)
        self.client = client or PaymentClient()

    def create_intent(self, order_id: int, user_id: int, idempotency_key: str | None = None) -> Dict[str, Any]:
        """
        Use Case: Utworzenie intencji płatności dla zamówienia.
        Kwota liczona z zamówienia, order_id idzie w metadata (po nim webhook znajduje zamówienie).
        """
        order = self.repo.get_order(order_id)

        if not order:
            raise NotFoundError("Order not found.")

        if order.user_id != user_id:
            raise AuthorizationError("You do not have access to this order.")

        if order.status != OrderStatus.PENDING.value:
            raise ConflictError(f"Order is {order.status}, payment is only possible for pending orders.")

        amount = to_minor_units(order.total_amount)

        try:
            intent = self.client.create_payment_intent(
                amount=amount,
                currency=PAYMENT_CURRENCY,
                order_id=order.id,
                idempotency_key=idempotency_key or f"order-{order.id}-intent",
            )
        except stripe.StripeError as e:
            logger.error(f"Payment intent creation failed for order {order.id}: {e}")
            raise PaymentProviderError() from e

        return {
            "client_secret": intent["client_secret"],
            "payment_intent_id": intent.get("id"),
            "amount": amount,
            "currency": PAYMENT_CURRENCY,
        }
