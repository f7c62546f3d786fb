# storefront/domain/schemas.py
from datetime import datetime
from decimal import Decimal
from typing import List, Literal

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from storefront.domain.order_status import OrderStatus


class ItemIn(BaseModel):
    """Schema dla dodawania produktu do koszyka."""

    product_id: int = Field(..., gt=0, description="ID produktu (musi być > 0)")
    quantity: int = Field(..., ge=1, description="Ilość produktu (min. 1)")


class QuantityIn(BaseModel):
    quantity: int = Field(..., ge=1)


class CartItemOut(BaseModel):
    product_id: int
    name: str | None = None
    price: Decimal | None = None
    quantity: int
    subtotal: Decimal | None = None


class CartOut(BaseModel):
    """Schema dla koszyka (response)."""

    cart_id: str | None = None
    user_id: int | None = None
    items: List[CartItemOut]
    total: Decimal

    model_config = ConfigDict(from_attributes=True)


class CheckoutIn(BaseModel):
    shipping_address: str = Field(..., min_length=1, max_length=500)


class OrderItemOut(BaseModel):
    product_id: int
    name: str
    unit_price: Decimal
    quantity: int
    subtotal: Decimal


class OrderOut(BaseModel):
    """Schema dla zamówienia (response)."""

    id: int
    user_id: int
    status: OrderStatus
    total_amount: Decimal
    shipping_address: str
    created_at: datetime
    items: List[OrderItemOut]

    model_config = ConfigDict(from_attributes=True)


class PaginationOut(BaseModel):
    current_page: int
    total_pages: int
    total_orders: int
    limit: int


class OrderPageOut(BaseModel):
    orders: List[OrderOut]
    pagination: PaginationOut


class OrderStatusIn(BaseModel):
    status: OrderStatus


class PaymentIntentIn(BaseModel):
    order_id: int = Field(..., gt=0)


class PaymentIntentOut(BaseModel):
    client_secret: str
    payment_intent_id: str | None = None
    amount: int
    currency: str


class WebhookAck(BaseModel):
    received: Literal[True] = True


class SignupIn(BaseModel):
    username: str = Field(..., min_length=3, max_length=50)
    email: EmailStr
    password: str = Field(..., min_length=8)


class EmailIn(BaseModel):
    email: EmailStr


class NewPasswordIn(BaseModel):
    new_password: str = Field(..., min_length=8)
    confirm_new_password: str = Field(..., min_length=8)


class ChangePasswordIn(BaseModel):
    old_password: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=8)
    confirm_new_password: str = Field(..., min_length=8)


class LoginIn(BaseModel):
    username: str
    password: str


class LoginOut(BaseModel):
    message: str
    token: str


class MessageOut(BaseModel):
    message: str
