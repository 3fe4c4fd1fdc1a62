"""
Email Service using Resend
Provides email functionality using MJML templates for responsive design
"""

import logging
from typing import Optional, Union

import resend
from mjml import mjml_to_html

from .config import EMAIL_FROM_ADDRESS, RESEND_API_KEY
from .email_templates import (
    audit_alert_template,
    booking_cancelled_template,
    booking_confirmation_template,
    booking_reminder_template,
    generic_notification_template,
    payment_template,
    waitlist_slot_template,
)

logger = logging.getLogger(__name__)

resend.api_key = RESEND_API_KEY


class EmailError(Exception):
    """Raised when an email cannot be compiled or delivered"""


def compile_mjml_to_html(mjml_content: str) -> str:
    """Compile MJML markup to HTML"""
    try:
        result = mjml_to_html(mjml_content)
    except Exception as e:
        logger.error(f"MJML compilation error: {e}")
        raise EmailError(f"Failed to compile MJML template: {str(e)}") from e

    if isinstance(result, dict):
        if result.get("errors"):
            logger.warning(f"MJML compilation warnings: {result['errors']}")
        return result.get("html", "")
    return getattr(result, "html", None) or str(result)


def send_email(
    to: Union[str, list[str]],
    subject: str,
    mjml_content: str,
    from_address: Optional[str] = None,
) -> dict:
    """
    Send an email through Resend

    Args:
        to: Recipient email(s)
        subject: Email subject line
        mjml_content: MJML template content (will be compiled to HTML)
        from_address: Optional custom from address

    Returns:
        Resend response dict
    """
    if not RESEND_API_KEY:
        logger.error("❌ No email service configured - RESEND_API_KEY missing")
        raise EmailError("Email service not configured")

    html_content = compile_mjml_to_html(mjml_content)
    recipients = [to] if isinstance(to, str) else to

    try:
        logger.info(f"📧 Sending email via Resend to: {to}")
        response = resend.Emails.send(
            {
                "from": from_address or EMAIL_FROM_ADDRESS,
                "to": recipients,
                "subject": subject,
                "html": html_content,
            }
        )
        logger.info(f"✅ Email sent successfully via Resend: {response}")
        return response
    except Exception as e:
        logger.error(f"❌ Email send error to {recipients}: {e}")
        raise EmailError(f"Failed to send email: {str(e)}") from e


# ============================================
# Notification emails
# ============================================


def render_notification_email(notification_type: str, title: str, message: str, data: Optional[dict]) -> str:
    """Pick the MJML template for a notification type"""
    data = data or {}

    if notification_type in ("BOOKING_CONFIRMATION", "BOOKING_UPDATE"):
        return booking_confirmation_template(
            title, message, data.get("service_name"), data.get("start_time"), data.get("price")
        )
    if notification_type == "BOOKING_REMINDER":
        return booking_reminder_template(title, message, data.get("service_name"), data.get("start_time"))
    if notification_type == "BOOKING_CANCELLED":
        return booking_cancelled_template(title, message, data.get("reason"), bool(data.get("refunded")))
    if notification_type == "PAYMENT":
        return payment_template(title, message, data.get("amount"), data.get("currency"), data.get("status"))
    if notification_type == "WAITLIST_SLOT_AVAILABLE":
        return waitlist_slot_template(title, message, data.get("service_name"), data.get("date"))
    if notification_type == "AUDIT_ALERT":
        return audit_alert_template(title, message, data.get("category"), data.get("component"))
    return generic_notification_template(title, message)


def send_notification_email(
    to: str, notification_type: str, title: str, message: str, data: Optional[dict] = None
) -> dict:
    mjml_content = render_notification_email(notification_type, title, message, data)
    return send_email(to=to, subject=title, mjml_content=mjml_content)
