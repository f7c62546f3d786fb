import json
import time

import pytest

from storefront.api.routers.webhooks import get_verifier
from storefront.data.models import OrderModel, ProcessedPaymentEventModel, ProductModel
from storefront.domain.errors import DomainError, InvalidSignature, MalformedEvent
from storefront.repos.payment_event_repo import PaymentEventRepo
from storefront.services import notification_service
from storefront.services.checkout_service import CheckoutService
from storefront.services.notification_service import NotificationService
from storefront.services.payment_events import PaymentEventProcessor, WebhookVerifier

from conftest import WEBHOOK_SECRET, stripe_signature_header


def _event(event_id, event_type, order_ref, **metadata):
    metadata = metadata or {"order_id": str(order_ref)}
    return {
        "id": event_id,
        "type": event_type,
        "data": {"object": {"id": "pi_123", "metadata": metadata}},
    }


@pytest.fixture()
def place_order(db, make_user, make_product, make_cart):
    def _place(stock=5, quantity=2):
        user = make_user()
        product = make_product("Lamp", "12.00", stock=stock)
        make_cart(user, [(product, quantity)])
        order = CheckoutService(db).checkout(user.id, "1 Main St")
        return order, user, product

    return _place


@pytest.fixture()
def processor(db, notifier):
    return PaymentEventProcessor(db, notifier=notifier, verifier=WebhookVerifier(secret=WEBHOOK_SECRET))


def _status(session, order_id):
    return session.get(OrderModel, order_id).status


def _markers(session):
    return session.query(ProcessedPaymentEventModel).count()


def test_success_event_moves_order_to_processing_and_notifies(processor, place_order, fresh_session, notifier):
    order, user, _ = place_order()

    ack = processor.process_event(_event("evt_1", "payment_intent.succeeded", order["id"]))

    assert ack == {"received": True}
    assert _status(fresh_session(), order["id"]) == "processing"
    assert notifier.of_kind("order_confirmation") == [("order_confirmation", user.email, order["id"])]


def test_duplicate_delivery_transitions_and_notifies_once(processor, place_order, fresh_session, notifier):
    order, _, _ = place_order()
    event = _event("evt_dup", "payment_intent.succeeded", order["id"])

    processor.process_event(event)
    processor.process_event(event)

    check = fresh_session()
    assert _status(check, order["id"]) == "processing"
    assert _markers(check) == 1
    assert len(notifier.of_kind("order_confirmation")) == 1


def test_two_distinct_success_events_transition_once(processor, place_order, fresh_session, notifier):
    order, _, _ = place_order()

    processor.process_event(_event("evt_a", "payment_intent.succeeded", order["id"]))
    processor.process_event(_event("evt_b", "payment_succeeded", order["id"]))

    check = fresh_session()
    assert _status(check, order["id"]) == "processing"
    assert _markers(check) == 2
    assert len(notifier.of_kind("order_confirmation")) == 1


def test_failure_event_keeps_stock_decremented(processor, place_order, fresh_session, notifier):
    order, _, product = place_order(stock=5, quantity=2)

    processor.process_event(_event("evt_f", "payment_intent.payment_failed", order["id"]))

    check = fresh_session()
    assert _status(check, order["id"]) == "payment_failed"
    assert check.get(ProductModel, product.id).stock == 3
    assert notifier.sent == []


def test_late_failure_after_success_is_ignored(processor, place_order, fresh_session):
    order, _, _ = place_order()

    processor.process_event(_event("evt_ok", "payment_intent.succeeded", order["id"]))
    processor.process_event(_event("evt_late", "payment_intent.payment_failed", order["id"]))

    assert _status(fresh_session(), order["id"]) == "processing"


def test_legacy_order_id_key_is_accepted(processor, place_order, fresh_session):
    order, _, _ = place_order()

    processor.process_event(_event("evt_legacy", "payment_succeeded", None, orderId=order["id"]))

    assert _status(fresh_session(), order["id"]) == "processing"


@pytest.mark.parametrize(
    "event",
    [
        _event("evt_unknown", "charge.refunded", 1),
        _event("evt_noref", "payment_intent.succeeded", None, note="x"),
        _event("evt_badref", "payment_intent.succeeded", None, order_id="abc"),
        _event("evt_missing", "payment_intent.succeeded", 424242),
    ],
    ids=["unknown-type", "no-reference", "non-numeric-reference", "missing-order"],
)
def test_unusable_events_are_acknowledged(processor, event, notifier):
    assert processor.process_event(event) == {"received": True}
    assert notifier.sent == []


def test_verifier_accepts_valid_signature(sign_event):
    event = _event("evt_sig", "payment_intent.succeeded", 1)
    body, header = sign_event(event)

    assert WebhookVerifier(secret=WEBHOOK_SECRET).construct_event(body, header) == event


def test_verifier_accepts_any_matching_v1_signature(sign_event):
    body, header = sign_event(_event("evt_rot", "payment_intent.succeeded", 1))
    header = header.replace("v1=", "v1=deadbeef,v1=")

    assert WebhookVerifier(secret=WEBHOOK_SECRET).construct_event(body, header)["id"] == "evt_rot"


@pytest.mark.parametrize(
    "mangle",
    [
        lambda body, header: (body, None),
        lambda body, header: (body, "garbage"),
        lambda body, header: (body + b" ", header),
        lambda body, header: (body, header.replace("t=", "t=1")),
    ],
    ids=["missing", "unparseable", "tampered-body", "tampered-timestamp"],
)
def test_verifier_rejects_bad_signatures(sign_event, mangle):
    body, header = mangle(*sign_event(_event("evt_bad", "payment_intent.succeeded", 1)))

    with pytest.raises(InvalidSignature):
        WebhookVerifier(secret=WEBHOOK_SECRET).construct_event(body, header)


def test_verifier_rejects_wrong_secret(sign_event):
    body, header = sign_event(_event("evt_ws", "payment_intent.succeeded", 1), secret="whsec_other")

    with pytest.raises(InvalidSignature):
        WebhookVerifier(secret=WEBHOOK_SECRET).construct_event(body, header)


def test_verifier_rejects_stale_timestamp(sign_event):
    old = int(time.time()) - 3600
    body, header = sign_event(_event("evt_old", "payment_intent.succeeded", 1), timestamp=old)

    with pytest.raises(InvalidSignature):
        WebhookVerifier(secret=WEBHOOK_SECRET).construct_event(body, header)


@pytest.mark.parametrize("body", [b"not json", b"[1, 2]", json.dumps({"type": "x"}).encode()])
def test_verifier_rejects_malformed_payload(body):
    header = stripe_signature_header(body)

    with pytest.raises(MalformedEvent):
        WebhookVerifier(secret=WEBHOOK_SECRET).construct_event(body, header)


def test_verifier_without_secret_is_a_server_error(sign_event):
    body, header = sign_event(_event("evt_ns", "payment_intent.succeeded", 1))

    with pytest.raises(DomainError) as exc:
        WebhookVerifier(secret="").construct_event(body, header)
    assert exc.value.status_code == 500


def test_webhook_endpoint_acks_and_applies(client, place_order, sign_event, fresh_session):
    order, _, _ = place_order()
    body, header = sign_event(_event("evt_http", "payment_intent.succeeded", order["id"]))

    resp = client.post("/webhooks/payments", content=body, headers={"Stripe-Signature": header})

    assert resp.status_code == 200
    assert resp.json() == {"received": True}
    assert _status(fresh_session(), order["id"]) == "processing"


def test_webhook_endpoint_rejects_bad_signature(client, place_order, sign_event, fresh_session):
    order, _, _ = place_order()
    body, _ = sign_event(_event("evt_forged", "payment_intent.succeeded", order["id"]))

    resp = client.post("/webhooks/payments", content=body, headers={"Stripe-Signature": "t=1,v1=00"})

    assert resp.status_code == 400
    check = fresh_session()
    assert _status(check, order["id"]) == "pending"
    assert _markers(check) == 0


def test_webhook_endpoint_missing_secret_returns_500(app, client, sign_event):
    app.dependency_overrides[get_verifier] = lambda: WebhookVerifier(secret="")
    body, header = sign_event(_event("evt_cfg", "payment_intent.succeeded", 1))

    resp = client.post("/webhooks/payments", content=body, headers={"Stripe-Signature": header})

    assert resp.status_code == 500


class _BrokenTask:
    name = "broken"

    def delay(self, *args):
        raise ConnectionError("broker down")


def test_broker_failure_does_not_fail_the_ack(db, place_order, fresh_session, monkeypatch):
    monkeypatch.setattr(notification_service, "send_order_confirmation_task", _BrokenTask())
    order, _, _ = place_order()
    processor = PaymentEventProcessor(db, notifier=NotificationService(), verifier=WebhookVerifier(secret=WEBHOOK_SECRET))

    ack = processor.process_event(_event("evt_nb", "payment_intent.succeeded", order["id"]))

    assert ack == {"received": True}
    assert _status(fresh_session(), order["id"]) == "processing"


def test_submit_reports_enqueue_failure():
    assert NotificationService._submit(_BrokenTask(), "a@example.com", 1) is False


@pytest.mark.parametrize(
    "data",
    [
        "oops",
        ["oops"],
        {"object": "oops"},
        {"object": {"metadata": "oops"}},
        {"object": {"metadata": ["order_id", 1]}},
    ],
    ids=["data-string", "data-list", "object-string", "metadata-string", "metadata-list"],
)
def test_signed_event_with_unexpected_shape_is_acknowledged(client, sign_event, data, notifier):
    event = {"id": "evt_shape", "type": "payment_intent.payment_failed", "data": data}
    body, header = sign_event(event)

    resp = client.post("/webhooks/payments", content=body, headers={"Stripe-Signature": header})

    assert resp.status_code == 200
    assert resp.json() == {"received": True}
    assert notifier.sent == []


@pytest.mark.parametrize("last_error", ["card declined", ["card declined"], None, {"code": "x"}])
def test_failure_reason_in_any_shape_still_applies_transition(client, place_order, sign_event, fresh_session, last_error):
    order, _, _ = place_order()
    event = _event("evt_reason", "payment_intent.payment_failed", order["id"])
    event["data"]["object"]["last_payment_error"] = last_error
    body, header = sign_event(event)

    resp = client.post("/webhooks/payments", content=body, headers={"Stripe-Signature": header})

    assert resp.status_code == 200
    assert _status(fresh_session(), order["id"]) == "payment_failed"


def test_concurrent_duplicate_delivery_is_acknowledged_once(
    db, session_factory, place_order, fresh_session, notifier, monkeypatch
):
    order, user, _ = place_order()
    event = _event("evt_race", "payment_intent.succeeded", order["id"])
    other = session_factory()
    delivered = []

    def racing_is_processed(self, event_id):
        # druga dostawa zapisuje marker i commituje pomiędzy odczytem a insertem pierwszej
        if not delivered:
            delivered.append(event_id)
            PaymentEventProcessor(other, notifier=notifier, verifier=WebhookVerifier(secret=WEBHOOK_SECRET)).process_event(event)
        return False

    monkeypatch.setattr(PaymentEventRepo, "is_processed", racing_is_processed)

    ack = PaymentEventProcessor(db, notifier=notifier, verifier=WebhookVerifier(secret=WEBHOOK_SECRET)).process_event(event)
    other.close()

    assert ack == {"received": True}
    check = fresh_session()
    assert _status(check, order["id"]) == "processing"
    assert _markers(check) == 1
    assert notifier.of_kind("order_confirmation") == [("order_confirmation", user.email, order["id"])]
