# storefront/api/routers/admin.py
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from storefront.api.deps import get_admin_user_id, get_notifier, http_error
from storefront.data.database import get_db
from storefront.domain.errors import DomainError
from storefront.domain.order_status import OrderStatus
from storefront.domain.schemas import OrderOut, OrderPageOut, OrderStatusIn
from storefront.services.notification_service import NotificationService
from storefront.services.order_service import OrderService

router = APIRouter(prefix="/admin", tags=["admin"], dependencies=[Depends(get_admin_user_id)])


@router.get("/orders", response_model=OrderPageOut)
def list_orders(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    status: OrderStatus | None = Query(None),
    db: Session = Depends(get_db),
):
    svc = OrderService(db)
    try:
        return svc.list_all(page=page, limit=limit, status=status.value if status else None)
    except DomainError as e:
        raise http_error(e)


@router.patch("/orders/{order_id}", response_model=OrderOut)
def update_order_status(
    order_id: int,
    payload: OrderStatusIn,
    db: Session = Depends(get_db),
    notifier: NotificationService = Depends(get_notifier),
):
    svc = OrderService(db, notifier=notifier)
    try:
        return svc.update_status(order_id, payload.status.value)
    except DomainError as e:
        raise http_error(e)
