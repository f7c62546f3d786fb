# storefront/api/routers/payments.py
from fastapi import APIRouter, Depends, Header
from sqlalchemy.orm import Session

from storefront.api.deps import get_current_user_id, get_payment_client, http_error
from storefront.data.database import get_db
from storefront.domain.errors import DomainError
from storefront.domain.schemas import PaymentIntentIn, PaymentIntentOut
from storefront.services.payment_client import PaymentClient
from storefront.services.payment_service import PaymentService

router = APIRouter(prefix="/payments", tags=["payments"])


@router.post("/intents", response_model=PaymentIntentOut)
def create_intent(
    payload: PaymentIntentIn,
    idempotency_key: str | None = Header(default=None),
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    client: PaymentClient = Depends(get_payment_client),
):
    svc = PaymentService(db, client=client)
    try:
        return svc.create_intent(payload.order_id, user_id, idempotency_key=idempotency_key)
    except DomainError as e:
        raise http_error(e)
