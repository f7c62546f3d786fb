# storefront/services/notification_service.py
import smtplib
from email.message import EmailMessage

from storefront.celery_worker import celery_app
from storefront.utils.logging import get_logger
from storefront.utils.settings import (
    APP_URL,
    SMTP_FROM,
    SMTP_HOST,
    SMTP_PASSWORD,
    SMTP_PORT,
    SMTP_USER,
)

logger = get_logger(__name__)

_EMAIL_RETRY = dict(
    autoretry_for=(smtplib.SMTPException, OSError),
    retry_backoff=True,
    retry_backoff_max=600,
    retry_jitter=True,
    max_retries=5,
)


class NotificationService:
    """
    Serwis do wysyłania powiadomień.
    Używa Celery: zlecenie jest fire-and-forget, task ma własną politykę retry.
    Błąd samego zlecenia (np. broker niedostępny) jest logowany i nie przerywa wywołującego.
    """

    def send_order_confirmation(self, email: str, order_id: int) -> bool:
        return self._submit(send_order_confirmation_task, email, order_id)

    def send_order_status_update(self, email: str, username: str, order_id: int, status: str) -> bool:
        return self._submit(send_order_status_task, email, username, order_id, status)

    def send_verification_email(self, email: str, token: str, resend: bool = False) -> bool:
        return self._submit(send_verification_email_task, email, token, resend)

    def send_password_reset(self, email: str, token: str) -> bool:
        return self._submit(send_password_reset_task, email, token)

    @staticmethod
    def _submit(task, *args) -> bool:
        try:
            task.delay(*args)
            return True
        except Exception as e:
            logger.error(f"Failed to enqueue {task.name}: {e}")
            return False


def _send_mail(to: str, subject: str, html: str) -> None:
    msg = EmailMessage()
    msg["From"] = SMTP_FROM
    msg["To"] = to
    msg["Subject"] = subject
    msg.set_content(html, subtype="html")

    with smtplib.SMTP(SMTP_HOST, SMTP_PORT, timeout=10) as smtp:
        smtp.starttls()
        if SMTP_USER:
            smtp.login(SMTP_USER, SMTP_PASSWORD)
        smtp.send_message(msg)


def _button(link: str, label: str) -> str:
    return (
        f'<p><a href="{link}" style="display:inline-block;padding:12px 24px;'
        f'background:#003366;color:#fff;text-decoration:none;border-radius:5px;'
        f'font-weight:bold;">{label}</a></p>'
    )


@celery_app.task(name="storefront.services.notification_service.send_order_confirmation_task", **_EMAIL_RETRY)
def send_order_confirmation_task(email: str, order_id: int):
    _send_mail(
        email,
        f"Order Confirmation - Order ID: {order_id}",
        f"<p>Thank you for your order! Your order ID is <b>{order_id}</b>.</p>",
    )
    logger.info(f"[NOTIFICATION] Confirmation email sent to {email} for order {order_id}")
    return {"email": email, "order_id": order_id, "status": "sent"}


@celery_app.task(name="storefront.services.notification_service.send_order_status_task", **_EMAIL_RETRY)
def send_order_status_task(email: str, username: str, order_id: int, status: str):
    _send_mail(
        email,
        f"Your Order Status has been Updated: {status}",
        f"<p>Hello {username},</p>"
        f"<p>The status of your order (ID: {order_id}) has been updated to <strong>{status}</strong>.</p>"
        f"<p>Thank you for shopping with us!</p>",
    )
    logger.info(f"[NOTIFICATION] Status email ({status}) sent to {email} for order {order_id}")
    return {"email": email, "order_id": order_id, "status": "sent"}


@celery_app.task(name="storefront.services.notification_service.send_verification_email_task", **_EMAIL_RETRY)
def send_verification_email_task(email: str, token: str, resend: bool = False):
    link = f"{APP_URL}/auth/verify-email?token={token}"
    subject = "Verify your email (New Link)" if resend else "Verify your email"
    _send_mail(
        email,
        subject,
        "<p>Click the button below to verify your email:</p>"
        + _button(link, "Verify email")
        + '<p style="margin-top:32px;color:#555;font-size:14px;">'
        "If you did not sign up, you can safely ignore this email.</p>",
    )
    logger.info(f"[NOTIFICATION] Verification email sent to {email}")
    return {"email": email, "status": "sent"}


@celery_app.task(name="storefront.services.notification_service.send_password_reset_task", **_EMAIL_RETRY)
def send_password_reset_task(email: str, token: str):
    link = f"{APP_URL}/reset-password/{token}"
    _send_mail(
        email,
        "Password Reset Request",
        "<p>You requested a password reset. Click the button below to set a new password:</p>"
        + _button(link, "Reset Password")
        + '<p style="margin-top:32px;color:#555;font-size:14px;">'
        "This link will expire in 15 minutes. If you did not request this, "
        "you can safely ignore this email.</p>",
    )
    logger.info(f"[NOTIFICATION] Password reset email sent to {email}")
    return {"email": email, "status": "sent"}
