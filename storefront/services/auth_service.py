# storefront/services/auth_service.py
import hashlib
import hmac
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any, Dict

import jwt
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from storefront.data.models.user import UserModel
from storefront.data.unit_of_work import unit_of_work
from storefront.domain.errors import AuthenticationError, ConflictError, NotFoundError, ValidationError
from storefront.repos.user_repo import UserRepo
from storefront.services.cart_service import CartService
from storefront.services.notification_service import NotificationService
from storefront.services.token_store import TokenStore
from storefront.utils.logging import get_logger
from storefront.utils.settings import (
    ACCESS_TOKEN_TTL_SECONDS,
    JWT_ALGORITHM,
    JWT_SECRET,
    PASSWORD_HASH_ITERATIONS,
)

logger = get_logger(__name__)

_HASH_SCHEME = "pbkdf2_sha256"


def hash_password(password: str, salt: str | None = None, iterations: int = PASSWORD_HASH_ITERATIONS) -> str:
    salt = salt or secrets.token_hex(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt.encode("utf-8"), iterations).hex()
    return f"{_HASH_SCHEME}${iterations}${salt}${digest}"


def verify_password(password: str, encoded: str) -> bool:
    try:
        scheme, iterations, salt, digest = encoded.split("$", 3)
    except ValueError:
        return False
    if scheme != _HASH_SCHEME:
        return False
    candidate = hash_password(password, salt=salt, iterations=int(iterations)).rsplit("$", 1)[1]
    return hmac.compare_digest(candidate, digest)


def create_access_token(user: UserModel) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user.id),
        "username": user.username,
        "iat": now,
        "exp": now + timedelta(seconds=ACCESS_TOKEN_TTL_SECONDS),
    }
    return jwt.encode(payload, JWT_SECRET, algorithm=JWT_ALGORITHM)


def decode_access_token(token: str) -> int:
    try:
        payload = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
        return int(payload["sub"])
    except (jwt.PyJWTError, KeyError, ValueError):
        raise AuthenticationError("Invalid authentication credentials.")


class AuthService:
    """
    Rejestracja z weryfikacją email, logowanie (z scaleniem koszyka gościa) i reset hasła.
    Użytkownik powstaje w bazie dopiero po weryfikacji, do tego czasu dane leżą w Redisie.
    """

    def __init__(self, db: Session, tokens: TokenStore, notifier: NotificationService | None = None):
        self.db = db
        self.repo = UserRepo(db)
        self.tokens = tokens
        self.notifier = notifier or NotificationService()

    def signup(self, username: str, email: str, password: str) -> Dict[str, Any]:
        email = email.strip().lower()

        if self.repo.exists(username, email):
            raise ConflictError("A user with this email or username already exists.")

        token = self.tokens.create_verification(
            email,
            {"username": username, "email": email, "password_hash": hash_password(password)},
        )
        self.notifier.send_verification_email(email, token)

        return {"message": "Verification email sent. Please check your inbox."}

    def verify_email(self, token: str) -> Dict[str, Any]:
        # GETDEL: ten sam link nie zadziała dwa razy
        data = self.tokens.consume_verification(token)

        try:
            with unit_of_work(self.db):
                user = self.repo.create_user(
                    UserModel(
                        username=data["username"],
                        email=data["email"],
                        password_hash=data["password_hash"],
                    )
                )
        except IntegrityError:
            # ktoś zarejestrował ten email/username między signup a weryfikacją
            raise ConflictError("This email or username is already registered.")

        self.tokens.release_email_index(data["email"], token)
        logger.info(f"User {user.id} ({user.username}) registered")

        return {"message": "Email verified and user registered. Login to access your account."}

    def resend_verification(self, email: str) -> Dict[str, Any]:
        email = email.strip().lower()

        if self.repo.get_by_email(email):
            raise ConflictError("This email address has already been verified. Please log in.")

        old_token, data = self.tokens.pending_verification(email)
        if not old_token:
            raise NotFoundError(
                "No pending verification found for this email. "
                "The original registration may have expired. Please sign up again."
            )

        token = self.tokens.rotate_verification(email, old_token, data)
        self.notifier.send_verification_email(email, token, resend=True)

        return {"message": "A new verification email has been sent. Please check your inbox."}

    def forgot_password(self, email: str) -> Dict[str, Any]:
        email = email.strip().lower()

        if self.repo.get_by_email(email):
            token = self.tokens.create_reset(email)
            self.notifier.send_password_reset(email, token)

        # zawsze ta sama odpowiedź (brak enumeracji użytkowników)
        return {"message": "If an account with that email exists, a password reset link has been sent."}

    def reset_password(self, token: str, new_password: str, confirm_password: str) -> Dict[str, Any]:
        if new_password != confirm_password:
            raise ValidationError("Passwords do not match.")

        email = self.tokens.consume_reset(token)

        with unit_of_work(self.db):
            if self.repo.update_password(email, hash_password(new_password)) == 0:
                raise NotFoundError("User associated with this token not found.")

        logger.info(f"Password reset for {email}")
        return {"message": "Your password has been reset successfully."}

    def change_password(self, user_id: int, old_password: str, new_password: str, confirm_password: str) -> Dict[str, Any]:
        """
        Use Case: Zmiana hasła zalogowanego użytkownika (wymaga starego hasła).
        """
        user = self.repo.get_user(user_id)
        if not user:
            raise NotFoundError("User not found.")

        if not verify_password(old_password, user.password_hash):
            raise AuthenticationError("Incorrect old password.")

        if new_password != confirm_password:
            raise ValidationError("New passwords do not match.")

        if old_password == new_password:
            raise ValidationError("New password cannot be the same as the old password.")

        with unit_of_work(self.db):
            if self.repo.set_password(user_id, hash_password(new_password)) == 0:
                raise NotFoundError("User not found.")

        logger.info(f"Password changed for user {user_id}")
        return {"message": "Password updated successfully."}

    def login(self, username: str, password: str, guest_cart_id: str | None = None) -> Dict[str, Any]:
        user = self.repo.get_by_username(username)

        if not user or not verify_password(password, user.password_hash):
            raise AuthenticationError()

        if guest_cart_id:
            CartService(self.db).merge_guest_cart(guest_cart_id, user.id)

        return {
            "message": f"Welcome user {user.username}",
            "token": create_access_token(user),
        }
