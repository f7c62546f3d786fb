# storefront/api/routers/auth.py
from fastapi import APIRouter, Depends, Header, Path, Query
from sqlalchemy.orm import Session

from storefront.api.deps import get_current_user_id, get_notifier, get_token_store, http_error
from storefront.data.database import get_db
from storefront.domain.errors import DomainError
from storefront.domain.schemas import ChangePasswordIn, EmailIn, LoginIn, LoginOut, MessageOut, NewPasswordIn, SignupIn
from storefront.services.auth_service import AuthService
from storefront.services.notification_service import NotificationService
from storefront.services.token_store import TokenStore

router = APIRouter(prefix="/auth", tags=["auth"])

TOKEN_PATTERN = r"^[a-f0-9]{64}$"


def get_service(
    db: Session = Depends(get_db),
    tokens: TokenStore = Depends(get_token_store),
    notifier: NotificationService = Depends(get_notifier),
) -> AuthService:
    return AuthService(db, tokens, notifier=notifier)


@router.post("/signup", response_model=MessageOut)
def signup(payload: SignupIn, svc: AuthService = Depends(get_service)):
    try:
        return svc.signup(payload.username, payload.email, payload.password)
    except DomainError as e:
        raise http_error(e)


@router.get("/verify-email", response_model=MessageOut)
def verify_email(
    token: str = Query(..., pattern=TOKEN_PATTERN),
    svc: AuthService = Depends(get_service),
):
    try:
        return svc.verify_email(token)
    except DomainError as e:
        raise http_error(e)


@router.post("/resend-email", response_model=MessageOut)
def resend_email(payload: EmailIn, svc: AuthService = Depends(get_service)):
    try:
        return svc.resend_verification(payload.email)
    except DomainError as e:
        raise http_error(e)


@router.post("/forgot-password", response_model=MessageOut)
def forgot_password(payload: EmailIn, svc: AuthService = Depends(get_service)):
    return svc.forgot_password(payload.email)


@router.post("/new-password/{token}", response_model=MessageOut)
def new_password(
    payload: NewPasswordIn,
    token: str = Path(..., pattern=TOKEN_PATTERN),
    svc: AuthService = Depends(get_service),
):
    try:
        return svc.reset_password(token, payload.new_password, payload.confirm_new_password)
    except DomainError as e:
        raise http_error(e)


@router.post("/login", response_model=LoginOut)
def login(
    payload: LoginIn,
    x_cart_id: str | None = Header(default=None),
    svc: AuthService = Depends(get_service),
):
    """
    Logowanie. Nagłówek X-Cart-Id (koszyk gościa) jest scalany z koszykiem użytkownika.
    """
    try:
        return svc.login(payload.username, payload.password, guest_cart_id=x_cart_id)
    except DomainError as e:
        raise http_error(e)


@router.post("/change-password", response_model=MessageOut)
def change_password(
    payload: ChangePasswordIn,
    user_id: int = Depends(get_current_user_id),
    svc: AuthService = Depends(get_service),
):
    try:
        return svc.change_password(user_id, payload.old_password, payload.new_password, payload.confirm_new_password)
    except DomainError as e:
        raise http_error(e)
