# storefront/api/routers/webhooks.py
from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from storefront.api.deps import get_notifier, http_error
from storefront.data.database import get_db
from storefront.domain.errors import DomainError
from storefront.domain.schemas import WebhookAck
from storefront.services.notification_service import NotificationService
from storefront.services.payment_events import SIGNATURE_HEADER, PaymentEventProcessor, WebhookVerifier

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


def get_verifier() -> WebhookVerifier:
    return WebhookVerifier()


@router.post("/payments", response_model=WebhookAck)
async def payment_webhook(
    request: Request,
    db: Session = Depends(get_db),
    notifier: NotificationService = Depends(get_notifier),
    verifier: WebhookVerifier = Depends(get_verifier),
):
    # podpis liczony z surowego body, nie z JSON-a po parsowaniu
    payload = await request.body()
    signature = request.headers.get(SIGNATURE_HEADER)

    processor = PaymentEventProcessor(db, notifier=notifier, verifier=verifier)
    try:
        return await run_in_threadpool(processor.handle, payload, signature)
    except DomainError as e:
        raise http_error(e)
