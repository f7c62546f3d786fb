# storefront/api/routers/carts.py
from fastapi import APIRouter, Depends, Header, Response
from sqlalchemy.orm import Session

from storefront.api.deps import get_optional_user_id, http_error
from storefront.data.database import get_db
from storefront.domain.errors import DomainError
from storefront.domain.schemas import CartOut, ItemIn, QuantityIn
from storefront.services.cart_service import CartService

router = APIRouter(prefix="/cart", tags=["cart"])

CART_ID_HEADER = "X-Cart-Id"


def get_service(db: Session):
    return CartService(db)


def _with_cart_header(response: Response, cart: dict, user_id: int | None) -> dict:
    # gość musi odesłać ten id przy kolejnych requestach
    if user_id is None and cart["cart_id"]:
        response.headers[CART_ID_HEADER] = cart["cart_id"]
    return cart


@router.get("", response_model=CartOut)
def get_cart(
    response: Response,
    user_id: int | None = Depends(get_optional_user_id),
    x_cart_id: str | None = Header(default=None),
    db: Session = Depends(get_db),
):
    svc = get_service(db)
    cart = svc.get_cart(user_id=user_id, cart_id=x_cart_id)
    return _with_cart_header(response, cart, user_id)


@router.post("/items", response_model=CartOut)
def add_item(
    payload: ItemIn,
    response: Response,
    user_id: int | None = Depends(get_optional_user_id),
    x_cart_id: str | None = Header(default=None),
    db: Session = Depends(get_db),
):
    svc = get_service(db)
    try:
        cart = svc.add_product(
            product_id=payload.product_id,
            quantity=payload.quantity,
            user_id=user_id,
            cart_id=x_cart_id,
        )
    except DomainError as e:
        raise http_error(e)
    return _with_cart_header(response, cart, user_id)


@router.put("/items/{product_id}", response_model=CartOut)
def update_item(
    product_id: int,
    payload: QuantityIn,
    response: Response,
    user_id: int | None = Depends(get_optional_user_id),
    x_cart_id: str | None = Header(default=None),
    db: Session = Depends(get_db),
):
    svc = get_service(db)
    try:
        cart = svc.update_quantity(product_id, payload.quantity, user_id=user_id, cart_id=x_cart_id)
    except DomainError as e:
        raise http_error(e)
    return _with_cart_header(response, cart, user_id)


@router.delete("/items/{product_id}", response_model=CartOut)
def remove_item(
    product_id: int,
    response: Response,
    user_id: int | None = Depends(get_optional_user_id),
    x_cart_id: str | None = Header(default=None),
    db: Session = Depends(get_db),
):
    svc = get_service(db)
    try:
        cart = svc.remove_product(product_id, user_id=user_id, cart_id=x_cart_id)
    except DomainError as e:
        raise http_error(e)
    return _with_cart_header(response, cart, user_id)
