# storefront/api/routers/orders.py
from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from storefront.api.deps import get_current_user_id, http_error
from storefront.data.database import get_db
from storefront.domain.errors import DomainError
from storefront.domain.schemas import CheckoutIn, OrderOut
from storefront.services.checkout_service import CheckoutService
from storefront.services.order_service import OrderService
from storefront.utils.logging import get_logger

router = APIRouter(prefix="/orders", tags=["orders"])

logger = get_logger(__name__)


@router.post("", response_model=OrderOut, status_code=201)
def create_order(
    payload: CheckoutIn,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """
    Checkout: tworzy zamówienie z koszyka użytkownika.
    Stock, zamówienie i usunięcie koszyka w jednej transakcji.
    """
    svc = CheckoutService(db)
    try:
        return svc.checkout(user_id, payload.shipping_address)
    except DomainError as e:
        logger.warning(f"Checkout failed for user {user_id}: {e}")
        raise http_error(e)


@router.get("", response_model=List[OrderOut])
def list_orders(
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    return OrderService(db).list_orders(user_id)


@router.get("/{order_id}", response_model=OrderOut)
def get_order(
    order_id: int,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """
    Pobiera szczegóły zamówienia.
    """
    svc = OrderService(db)
    try:
        return svc.get_order(order_id, user_id)
    except DomainError as e:
        raise http_error(e)
