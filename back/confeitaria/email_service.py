"""
Email service for sending transactional emails.
Uses the Resend HTTP API when RESEND_API_KEY is set, SMTP otherwise.
"""

import logging
from datetime import datetime
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from html import escape
from typing import Optional

import aiosmtplib
import httpx

from .settings import settings

logger = logging.getLogger(__name__)


def _sender(from_email: Optional[str], from_name: Optional[str]) -> str:
    from_email = from_email or settings.email_from
    from_name = from_name or settings.email_from_name
    return f"{from_name} <{from_email}>" if from_name else from_email


async def _send_via_resend(sender: str, to_email: str, subject: str, html_content: str,
                           text_content: Optional[str]) -> None:
    body = {"from": sender, "to": [to_email], "subject": subject, "html": html_content}
    if text_content:
        body["text"] = text_content
    async with httpx.AsyncClient(timeout=10) as client:
        response = await client.post(
            settings.resend_api_url,
            json=body,
            headers={"Authorization": f"Bearer {settings.resend_api_key}"},
        )
        response.raise_for_status()
        logger.info(f"Resend accepted email {response.json().get('id')}")


async def _send_via_smtp(sender: str, to_email: str, subject: str, html_content: str,
                         text_content: Optional[str]) -> None:
    message = MIMEMultipart("alternative")
    message["Subject"] = subject
    message["From"] = sender
    message["To"] = to_email
    if text_content:
        message.attach(MIMEText(text_content, "plain"))
    message.attach(MIMEText(html_content, "html"))

    # Port 465 speaks TLS from the start, 587 upgrades with STARTTLS
    tls_kwargs = {"use_tls": True} if settings.smtp_port == 465 else {
        "start_tls": True if settings.smtp_port == 587 else settings.smtp_use_tls
    }
    await aiosmtplib.send(
        message,
        hostname=settings.smtp_host,
        port=settings.smtp_port,
        username=settings.smtp_user,
        password=settings.smtp_password,
        **tls_kwargs,
    )


async def send_email(
    to_email: str,
    subject: str,
    html_content: str,
    text_content: Optional[str] = None,
    from_email: Optional[str] = None,
    from_name: Optional[str] = None,
) -> bool:
    """
    Send an email.

    Args:
        to_email: Recipient email address
        subject: Email subject
        html_content: HTML email body
        text_content: Plain text email body (optional)
        from_email: Sender email (defaults to settings.email_from)
        from_name: Sender name (defaults to settings.email_from_name)

    Returns:
        True if email sent successfully, False otherwise
    """
    if not settings.email_configured:
        logger.warning("Email delivery not configured (RESEND_API_KEY or SMTP credentials)")
        return False

    sender = _sender(from_email, from_name)
    try:
        if settings.resend_api_key:
            await _send_via_resend(sender, to_email, subject, html_content, text_content)
        else:
            await _send_via_smtp(sender, to_email, subject, html_content, text_content)
        logger.info(f"Email sent successfully to {to_email}")
        return True
    except (aiosmtplib.SMTPException, httpx.HTTPError, OSError) as e:
        logger.error(f"Failed to send email to {to_email}: {e}")
        return False


async def send_welcome_email(
    to_email: str,
    full_name: str,
    password: str,
    plan: str,
    payment_date: datetime,
    expires_at: datetime,
    offer_name: str | None = None,
) -> bool:
    """Send login credentials and subscription details to a freshly provisioned account."""
    app_name = settings.app_name
    subject = f"Welcome to {app_name} - your subscription is active!"
    offer_line = f"<p><strong>Offer:</strong> {escape(offer_name)}</p>" if offer_name else ""

    html_content = f"""
    <!DOCTYPE html>
    <html>
    <head>
        <meta charset="utf-8">
        <style>
            body {{ font-family: Arial, sans-serif; line-height: 1.6; color: #333; }}
            .container {{ max-width: 600px; margin: 0 auto; padding: 20px; }}
            .box {{ background-color: #f5f5f5; padding: 20px; border-radius: 8px; margin: 20px 0; }}
            .button {{ display: inline-block; padding: 12px 24px; background-color: #667eea; color: white; text-decoration: none; border-radius: 5px; margin: 20px 0; }}
        </style>
    </head>
    <body>
        <div class="container">
            <h1>Welcome to {escape(app_name)}!</h1>
            <p>Hello, {escape(full_name)}! Your payment was approved and your account was created.</p>
            <div class="box">
                <h3>Subscription</h3>
                <p><strong>Plan:</strong> {escape(plan)}</p>
                <p><strong>Payment date:</strong> {payment_date:%d/%m/%Y}</p>
                <p><strong>Valid until:</strong> {expires_at:%d/%m/%Y}</p>
                {offer_line}
            </div>
            <div class="box">
                <h3>Your login</h3>
                <p><strong>Email:</strong> {escape(to_email)}</p>
                <p><strong>Password:</strong> {escape(password)}</p>
            </div>
            <p>Please change your password after the first login.</p>
            <p style="text-align: center;">
                <a href="{settings.login_url}" class="button">Log in now</a>
            </p>
            <hr>
            <p style="color: #666; font-size: 12px;">This is an automated message, please do not reply.</p>
        </div>
    </body>
    </html>
    """

    text_content = f"""
    Welcome to {app_name}!

    Plan: {plan}
    Payment date: {payment_date:%d/%m/%Y}
    Valid until: {expires_at:%d/%m/%Y}

    Email: {to_email}
    Password: {password}

    Log in at {settings.login_url} and change your password after the first login.
    """

    return await send_email(to_email, subject, html_content, text_content)
