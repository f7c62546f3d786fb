# storefront/domain/errors.py
"""
Błędy domenowe. Każdy błąd niesie status HTTP, na który mapuje go router.
"""


class DomainError(Exception):
    status_code = 500

    def __init__(self, message: str | None = None):
        super().__init__(message or self.default_message())

    def default_message(self) -> str:
        return "An internal error occurred."


class ValidationError(DomainError):
    status_code = 400


class AuthenticationError(DomainError):
    status_code = 401

    def default_message(self) -> str:
        return "Incorrect credentials."


class AuthorizationError(DomainError):
    status_code = 403

    def default_message(self) -> str:
        return "Access denied."


class NotFoundError(DomainError):
    status_code = 404


class ConflictError(DomainError):
    status_code = 409


class SecurityError(DomainError):
    status_code = 400


class TransientStorageError(DomainError):
    """Connection loss or timeout in the datastore. Safe to retry the whole unit of work."""

    status_code = 503


class EmptyCart(ValidationError):
    def default_message(self) -> str:
        return "Your cart is empty."


class MalformedEvent(ValidationError):
    pass


class InvalidOrExpiredToken(ValidationError):
    def default_message(self) -> str:
        return "Token is invalid or has expired."


class ProductMissing(NotFoundError):
    def __init__(self, product_id: int):
        self.product_id = product_id
        super().__init__(f"Product with ID {product_id} could not be found.")


class InsufficientStock(ConflictError):
    def __init__(self, product_name: str, available: int, requested: int):
        self.product_name = product_name
        self.available = available
        self.requested = requested
        super().__init__(
            f'Not enough stock for "{product_name}". '
            f"Available: {available}, Requested: {requested}."
        )


class InvalidStatusTransition(ConflictError):
    def __init__(self, current: str, target: str):
        self.current = current
        self.target = target
        super().__init__(f"Cannot change order status from {current} to {target}.")


class InvalidSignature(SecurityError):
    def default_message(self) -> str:
        return "Webhook signature verification failed."


class PaymentProviderError(DomainError):
    status_code = 502

    def default_message(self) -> str:
        return "Could not create payment intent."
