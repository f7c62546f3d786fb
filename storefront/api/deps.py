# storefront/api/deps.py
from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session
import redis

from storefront.data.database import get_db
from storefront.domain.errors import AuthenticationError, AuthorizationError, DomainError, TransientStorageError
from storefront.repos.user_repo import UserRepo
from storefront.services.auth_service import decode_access_token
from storefront.services.notification_service import NotificationService
from storefront.services.payment_client import PaymentClient
from storefront.services.token_store import TokenStore
from storefront.utils.logging import get_logger
from storefront.utils.settings import REDIS_URL

logger = get_logger(__name__)

_bearer = HTTPBearer(auto_error=False)
_redis_client = None


def http_error(e: DomainError) -> HTTPException:
    # szczegóły błędów bazy nie wychodzą do klienta
    if isinstance(e, TransientStorageError):
        return HTTPException(status_code=e.status_code, detail="A temporary storage error occurred. Please retry.")
    return HTTPException(status_code=e.status_code, detail=str(e))


def get_redis() -> redis.Redis:
    global _redis_client
    if _redis_client is None:
        _redis_client = redis.Redis.from_url(REDIS_URL, decode_responses=True)
    return _redis_client


def get_token_store(client: redis.Redis = Depends(get_redis)) -> TokenStore:
    return TokenStore(client=client)


def get_notifier() -> NotificationService:
    return NotificationService()


def get_payment_client() -> PaymentClient:
    return PaymentClient()


def get_current_user_id(credentials: HTTPAuthorizationCredentials | None = Depends(_bearer)) -> int:
    if credentials is None:
        raise HTTPException(status_code=401, detail="Not authenticated")
    try:
        return decode_access_token(credentials.credentials)
    except AuthenticationError as e:
        raise http_error(e)


def get_optional_user_id(credentials: HTTPAuthorizationCredentials | None = Depends(_bearer)) -> int | None:
    # koszyk działa też dla gości: brak albo zły token = gość
    if credentials is None:
        return None
    try:
        return decode_access_token(credentials.credentials)
    except AuthenticationError:
        return None


def get_admin_user_id(
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
) -> int:
    user = UserRepo(db).get_user(user_id)
    if not user or not user.is_admin:
        logger.warning(f"User {user_id} denied access to admin route")
        raise http_error(AuthorizationError("Admin privileges required."))
    return user_id
