# storefront/domain/order_status.py
from enum import Enum

from storefront.domain.errors import InvalidStatusTransition


class OrderStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    PAYMENT_FAILED = "payment_failed"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class TransitionAuthority(str, Enum):
    PAYMENT = "payment"
    ADMIN = "admin"


TERMINAL_STATUSES = frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED})

# (z, do) -> kto może wykonać przejście
_TRANSITIONS = {
    (OrderStatus.PENDING, OrderStatus.PROCESSING): TransitionAuthority.PAYMENT,
    (OrderStatus.PENDING, OrderStatus.PAYMENT_FAILED): TransitionAuthority.PAYMENT,
    (OrderStatus.PROCESSING, OrderStatus.SHIPPED): TransitionAuthority.ADMIN,
    (OrderStatus.SHIPPED, OrderStatus.DELIVERED): TransitionAuthority.ADMIN,
}

for _status in OrderStatus:
    if _status not in TERMINAL_STATUSES and _status is not OrderStatus.CANCELLED:
        _TRANSITIONS[(_status, OrderStatus.CANCELLED)] = TransitionAuthority.ADMIN


def can_transition(current, target, authority: TransitionAuthority) -> bool:
    try:
        current, target = OrderStatus(current), OrderStatus(target)
    except ValueError:
        return False
    return _TRANSITIONS.get((current, target)) is authority


def ensure_transition(current, target, authority: TransitionAuthority) -> OrderStatus:
    """
    Sprawdza przejście i zwraca docelowy status.
    Rzuca InvalidStatusTransition dla przejść spoza tabeli (w tym ze stanów terminalnych).
    """
    if not can_transition(current, target, authority):
        raise InvalidStatusTransition(str(_value(current)), str(_value(target)))
    return OrderStatus(target)


def _value(status):
    return status.value if isinstance(status, OrderStatus) else status
