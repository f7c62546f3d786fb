# storefront/services/payment_events.py
"""
Przetwarzanie zdarzeń od dostawcy płatności (webhook Stripe).

Dostawca dostarcza zdarzenia at-least-once, więc to samo zdarzenie może przyjść
kilka razy, również równolegle. Idempotencja:
- tabela processed_payment_events (event_id -> już przetworzone)
- compare-and-set statusu (tylko z pending)

Odpowiedź dla dostawcy to zawsze ack, poza błędem podpisu i nieparsowalnym payloadem.
Nieznany typ, brak zamówienia, zły order_id albo nieoczekiwany kształt danych są
logowane i potwierdzane, inaczej dostawca ponawiałby dostarczanie bez końca.
"""
import json
from typing import Any, Dict

import stripe
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from storefront.data.unit_of_work import unit_of_work
from storefront.domain.errors import DomainError, InvalidSignature, MalformedEvent
from storefront.domain.order_status import OrderStatus, TransitionAuthority, can_transition
from storefront.repos.order_repo import OrderRepo
from storefront.repos.payment_event_repo import PaymentEventRepo
from storefront.services.notification_service import NotificationService
from storefront.utils.logging import get_logger
from storefront.utils.settings import PAYMENT_SIGNATURE_TOLERANCE_SECONDS, PAYMENT_WEBHOOK_SECRET

logger = get_logger(__name__)

SIGNATURE_HEADER = "Stripe-Signature"

# typ zdarzenia -> status docelowy (krótkie nazwy to starsze aliasy)
EVENT_TRANSITIONS = {
    "payment_intent.succeeded": OrderStatus.PROCESSING,
    "payment_succeeded": OrderStatus.PROCESSING,
    "payment_intent.payment_failed": OrderStatus.PAYMENT_FAILED,
    "payment_failed": OrderStatus.PAYMENT_FAILED,
}

ACK = {"received": True}


class WebhookVerifier:
    """Weryfikacja nagłówka Stripe-Signature przez SDK (stripe.Webhook)."""

    def __init__(self, secret: str | None = None, tolerance: int = PAYMENT_SIGNATURE_TOLERANCE_SECONDS):
        self.secret = PAYMENT_WEBHOOK_SECRET if secret is None else secret
        self.tolerance = tolerance

    def construct_event(self, payload: bytes, header: str | None) -> Dict[str, Any]:
        if not self.secret:
            logger.error("Payment webhook secret (PAYMENT_WEBHOOK_SECRET) is not configured.")
            raise DomainError("Webhook secret not configured.")

        if not header:
            raise InvalidSignature("Missing signature header.")

        try:
            stripe.Webhook.construct_event(payload, header, self.secret, tolerance=self.tolerance)
        except stripe.SignatureVerificationError as e:
            raise InvalidSignature(str(e)) from e
        except ValueError as e:
            # JSONDecodeError / UnicodeDecodeError
            raise MalformedEvent("Event payload is not valid JSON.") from e
        except (AttributeError, TypeError) as e:
            # Event.construct_from wymaga obiektu JSON na najwyższym poziomie
            raise MalformedEvent("Event payload must be a JSON object.") from e

        # dalej pracujemy na zwykłym dict, nie na StripeObject
        event = json.loads(payload)

        if not isinstance(event, dict) or not isinstance(event.get("id"), str) or not isinstance(event.get("type"), str):
            raise MalformedEvent("Event payload must contain string 'id' and 'type'.")

        return event


def _as_dict(value) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _payment_object(event: Dict[str, Any]) -> Dict[str, Any]:
    return _as_dict(_as_dict(event.get("data")).get("object"))


def _order_reference(payment_object: Dict[str, Any]) -> int | None:
    metadata = _as_dict(payment_object.get("metadata"))
    raw = metadata.get("order_id", metadata.get("orderId"))

    if isinstance(raw, bool):
        return None
    if isinstance(raw, int):
        return raw
    if isinstance(raw, str) and raw.strip().isdigit():
        return int(raw.strip())
    return None


def _failure_reason(payment_object: Dict[str, Any]) -> str | None:
    error = payment_object.get("last_payment_error")
    if isinstance(error, dict):
        return error.get("message")
    if isinstance(error, str):
        return error
    return None


class PaymentEventProcessor:
    def __init__(
        self,
        db: Session,
        notifier: NotificationService | None = None,
        verifier: WebhookVerifier | None = None,
    ):
        self.db = db
        self.orders = OrderRepo(db)
        self.events = PaymentEventRepo(db)
        self.notifier = notifier or NotificationService()
        self.verifier = verifier or WebhookVerifier()

    def handle(self, payload: bytes, signature_header: str | None) -> Dict[str, Any]:
        try:
            event = self.verifier.construct_event(payload, signature_header)
        except InvalidSignature as e:
            logger.error(f"Payment webhook signature verification failed: {e}")
            raise

        return self.process_event(event)

    def process_event(self, event: Dict[str, Any]) -> Dict[str, Any]:
        event_id = event["id"]
        event_type = event["type"]

        target = EVENT_TRANSITIONS.get(event_type)
        if target is None:
            logger.info(f"Unhandled payment event type {event_type} ({event_id})")
            return ACK

        payment_object = _payment_object(event)
        order_id = _order_reference(payment_object)

        if order_id is None:
            logger.error(f"Payment event {event_id} has an invalid order reference: {payment_object.get('metadata')}")
            return ACK

        if target is OrderStatus.PAYMENT_FAILED:
            reason = _failure_reason(payment_object)
            # stock nie jest przywracany automatycznie
            logger.warning(f"Payment failed for order {order_id}: {reason}")
        else:
            logger.info(f"Payment succeeded for order {order_id}")

        try:
            recipient = self._apply(event_id, event_type, order_id, target)
        except IntegrityError:
            # równoległa dostawa tego samego zdarzenia zapisała marker pierwsza
            logger.info(f"Payment event {event_id} is processed by a concurrent delivery")
            return ACK

        if recipient and target is OrderStatus.PROCESSING:
            self.notifier.send_order_confirmation(recipient, order_id)

        return ACK

    def _apply(self, event_id: str, event_type: str, order_id: int, target: OrderStatus) -> str | None:
        """
        Marker idempotencji + przejście statusu jako jeden read-modify-write.
        Zwraca email właściciela, gdy przejście faktycznie nastąpiło.
        """
        with unit_of_work(self.db):
            if not self.events.mark_processed(event_id, event_type, order_id):
                logger.info(f"Payment event {event_id} already processed, skipping")
                return None

            order = self.orders.get_order(order_id, for_update=True)
            if not order:
                logger.error(f"Order {order_id} from payment event {event_id} not found")
                return None

            if not can_transition(order.status, target, TransitionAuthority.PAYMENT):
                logger.warning(
                    f"Order {order_id} is {order.status}, ignoring {event_type} ({event_id})"
                )
                return None

            if self.orders.transition_status(order_id, OrderStatus.PENDING.value, target.value) == 0:
                logger.warning(f"Order {order_id} left pending concurrently, ignoring {event_id}")
                return None

            logger.info(f"Order {order_id} status changed pending -> {target.value}")
            return order.user.email if order.user else None
