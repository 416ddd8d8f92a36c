# Overview: Outbound email over SMTP, with a log-only fallback when SMTP is not configured.

from __future__ import annotations

import logging
import smtplib
import ssl
from dataclasses import dataclass
from datetime import datetime
from email.message import EmailMessage
from email.utils import formataddr

from flask import current_app, render_template

from ..models import User, SaleOrder
from rentmarket.time_utils import to_utc_z

logger = logging.getLogger(__name__)

TRANSPORT_SMTP = "smtp"
TRANSPORT_CONSOLE = "console"

_SMTP_EXCEPTIONS = (smtplib.SMTPException, OSError, ssl.SSLError)


@dataclass
class EmailResult:
    ok: bool
    transport: str
    error: str | None = None


def _build_message(to: str, subject: str, html: str, text: str | None) -> EmailMessage:
    cfg = current_app.config
    msg = EmailMessage()
    msg["From"] = formataddr((cfg.get("FROM_NAME") or "RentMarket", cfg.get("FROM_EMAIL")))
    msg["To"] = to
    msg["Subject"] = subject
    msg.set_content(text or "This message requires an HTML-capable email client.")
    msg.add_alternative(html, subtype="html")
    return msg


def send_email(*, to: str, subject: str, html: str, text: str | None = None) -> EmailResult:
    """
    Deliver one message. Never raises for delivery problems: failures are
    logged and reported through EmailResult.

    With SMTP_HOST unset the message is written to the log and counts as
    delivered.
    """
    cfg = current_app.config
    host = cfg.get("SMTP_HOST")
    if not host:
        logger.info("SMTP not configured; email to %s not sent. Subject: %s\n%s", to, subject, text or "")
        return EmailResult(ok=True, transport=TRANSPORT_CONSOLE)

    msg = _build_message(to, subject, html, text)
    port = int(cfg.get("SMTP_PORT") or 465)
    timeout = int(cfg.get("SMTP_TIMEOUT_SECONDS") or 30)
    try:
        if cfg.get("SMTP_SECURE"):
            server = smtplib.SMTP_SSL(host, port, timeout=timeout, context=ssl.create_default_context())
        else:
            server = smtplib.SMTP(host, port, timeout=timeout)
        with server:
            if not cfg.get("SMTP_SECURE"):
                server.ehlo()
                if server.has_extn("starttls"):
                    server.starttls(context=ssl.create_default_context())
                    server.ehlo()
            if cfg.get("SMTP_USER"):
                server.login(cfg["SMTP_USER"], cfg.get("SMTP_PASS") or "")
            server.send_message(msg)
    except _SMTP_EXCEPTIONS as exc:
        logger.exception("Failed to send email to %s (%s)", to, subject)
        return EmailResult(ok=False, transport=TRANSPORT_SMTP, error=str(exc) or exc.__class__.__name__)

    logger.info("Email sent to %s: %s", to, subject)
    return EmailResult(ok=True, transport=TRANSPORT_SMTP)


def _app_url() -> str:
    return (current_app.config.get("APP_URL") or "").rstrip("/")


def send_verification_email(user: User, token: str) -> EmailResult:
    link = f"{_app_url()}/verify-email?token={token}"
    html = render_template("email/verification.html", user=user, link=link)
    text = f"Hello {user.first_name}, verify your RentMarket account: {link} (valid for 24 hours)."
    return send_email(to=user.email, subject="Verify your email address", html=html, text=text)


def send_password_reset_email(user: User, token: str) -> EmailResult:
    link = f"{_app_url()}/reset-password?token={token}"
    html = render_template("email/password_reset.html", user=user, link=link)
    text = f"Hello {user.first_name}, reset your RentMarket password: {link} (valid for 1 hour)."
    return send_email(to=user.email, subject="Reset your password", html=html, text=text)


def send_welcome_email(user: User) -> EmailResult:
    html = render_template("email/welcome.html", user=user, app_url=_app_url())
    text = f"Welcome to RentMarket, {user.first_name}! Your email is verified."
    return send_email(to=user.email, subject="Welcome to RentMarket", html=html, text=text)


def format_expiry(expiry: datetime) -> str:
    return expiry.strftime("%d %B %Y, %I:%M %p UTC")


def send_rental_expiry_email(user: User, order: SaleOrder, product_names: list[str]) -> EmailResult:
    products = ", ".join(product_names)
    expiry = format_expiry(order.end_date)
    html = render_template(
        "email/rental_expiry.html",
        user=user,
        order=order,
        product_names=product_names,
        expiry=expiry,
        expiry_iso=to_utc_z(order.end_date),
        orders_url=f"{_app_url()}/orders",
    )
    text = (
        f"Hello {user.full_name}, your rental period for {products} "
        f"(Order: {order.order_number}) is ending at {expiry}. "
        "Please return the item on time to avoid late fees."
    )
    subject = f"Rental Ending Soon: {product_names[0]}" if len(product_names) == 1 else f"Rental Ending Soon: Order {order.order_number}"
    return send_email(to=user.email, subject=subject, html=html, text=text)
