"""Outbound signup email: welcome, email verification, payment confirmation.

Services never send mail themselves. They return Notification objects and
the router hands them to `dispatch` as a FastAPI background task, so a
message only goes out after the request transaction committed.

Delivery is best-effort: when SMTP is not configured the message is
logged and skipped, and delivery failures are logged, never raised.
"""

import logging
import smtplib
from dataclasses import dataclass, field
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

from signup.config import settings

logger = logging.getLogger("signup.notifier")

WELCOME = "welcome"
EMAIL_VERIFICATION = "email_verification"
PAYMENT_CONFIRMATION = "payment_confirmation"


@dataclass
class Notification:
    kind: str
    to: str
    context: dict = field(default_factory=dict)


# ── Builders ────────────────────────────────────────────────

def welcome(email: str, first_name: str) -> Notification:
    return Notification(WELCOME, email, {"first_name": first_name})


def email_verification(email: str, first_name: str, token: str) -> Notification:
    link = f"{settings.frontend_base_url.rstrip('/')}/verify-email?token={token}"
    return Notification(
        EMAIL_VERIFICATION,
        email,
        {"first_name": first_name, "verification_link": link},
    )


def payment_confirmation(
    email: str, customer_name: str, amount: float, order_number: str
) -> Notification:
    return Notification(
        PAYMENT_CONFIRMATION,
        email,
        {"customer_name": customer_name, "amount": amount, "order_number": order_number},
    )


# ── Rendering ───────────────────────────────────────────────

def render(notification: Notification) -> tuple[str, str]:
    """Return (subject, html body) for a notification."""
    ctx = notification.context

    if notification.kind == WELCOME:
        return (
            "Welcome aboard",
            f"<p>Hi {ctx['first_name']},</p>"
            "<p>Your account has been created. We're glad to have you.</p>",
        )

    if notification.kind == EMAIL_VERIFICATION:
        minutes = settings.email_verification_ttl_minutes
        return (
            "Verify your email address",
            f"<p>Hi {ctx['first_name']},</p>"
            f"<p>Please confirm your email address: "
            f"<a href=\"{ctx['verification_link']}\">{ctx['verification_link']}</a></p>"
            f"<p>This link expires in {minutes} minutes.</p>",
        )

    if notification.kind == PAYMENT_CONFIRMATION:
        return (
            f"Payment received for order {ctx['order_number']}",
            f"<p>Hi {ctx['customer_name']},</p>"
            f"<p>We received your payment of ${ctx['amount']:.2f} "
            f"for order {ctx['order_number']}.</p>",
        )

    raise ValueError(f"Unknown notification kind: {notification.kind}")


# ── Delivery ────────────────────────────────────────────────

def _send_email(to_addr: str, subject: str, html: str) -> None:
    msg = MIMEMultipart("alternative")
    msg["Subject"] = subject
    msg["From"] = settings.mail_from
    msg["To"] = to_addr
    msg.attach(MIMEText(html, "html"))

    with smtplib.SMTP(settings.smtp_host, settings.smtp_port, timeout=10) as server:
        server.starttls()
        if settings.smtp_password:
            server.login(settings.smtp_username, settings.smtp_password)
        server.sendmail(settings.mail_from, [to_addr], msg.as_string())


def dispatch(notification: Notification) -> None:
    """Deliver one notification. Never raises."""
    try:
        subject, html = render(notification)

        # Skip in dev if no SMTP server configured
        if not settings.smtp_host:
            logger.info(
                "SMTP not configured; skipping %s email to %s",
                notification.kind,
                notification.to,
            )
            return

        _send_email(notification.to, subject, html)
        logger.info("Sent %s email to %s", notification.kind, notification.to)
    except Exception:
        logger.exception(
            "Failed sending %s email to %s", notification.kind, notification.to
        )
