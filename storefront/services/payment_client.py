# storefront/services/payment_client.py
import stripe

from storefront.utils.logging import get_logger
from storefront.utils.retry import payment_retry
from storefront.utils.settings import PAYMENT_SECRET_KEY

logger = get_logger(__name__)


class PaymentClient:
    def __init__(self, secret_key: str | None = None):
        self.secret_key = PAYMENT_SECRET_KEY if secret_key is None else secret_key

    # ponowienie jest bezpieczne, bo zawsze idzie z idempotency_key
    @payment_retry()
    def create_payment_intent(self, amount: int, currency: str, order_id: int, idempotency_key: str) -> dict:
        logger.info(f"PaymentClient create intent order={order_id} amount={amount} {currency}")

        intent = stripe.PaymentIntent.create(
            amount=amount,
            currency=currency,
            metadata={"order_id": str(order_id)},
            automatic_payment_methods={"enabled": True},
            idempotency_key=idempotency_key,
            api_key=self.secret_key,
        )
        return {"id": intent.id, "client_secret": intent.client_secret}
