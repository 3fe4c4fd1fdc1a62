"""
Twilio SMS sender
Sends notification texts through the Twilio REST API
"""

import logging
from typing import Optional

import httpx

from ...config import TWILIO_ACCOUNT_SID, TWILIO_AUTH_TOKEN, TWILIO_FROM_NUMBER

logger = logging.getLogger(__name__)

MAX_SMS_LENGTH = 1600


def sms_configured() -> bool:
    return bool(TWILIO_ACCOUNT_SID and TWILIO_AUTH_TOKEN and TWILIO_FROM_NUMBER)


def send_sms(to_phone: Optional[str], message_body: str) -> tuple[bool, Optional[str]]:
    """
    Send SMS via Twilio

    Args:
        to_phone: Recipient phone number in E.164 format
        message_body: SMS message content, truncated to Twilio's limit

    Returns:
        Tuple of (success: bool, error_message: Optional[str])
    """
    if not to_phone:
        return False, "No phone number provided"

    if not to_phone.startswith("+"):
        logger.warning(f"Phone number not in E.164 format: {to_phone}")
        return False, "Phone number must be in E.164 format (e.g., +1234567890)"

    if not sms_configured():
        logger.debug("Twilio credentials not configured, skipping SMS")
        return False, "SMS not configured"

    try:
        logger.info(f"🚀 Sending SMS to Twilio API for {to_phone}")
        response = httpx.post(
            f"https://api.twilio.com/2010-04-01/Accounts/{TWILIO_ACCOUNT_SID}/Messages.json",
            auth=(TWILIO_ACCOUNT_SID, TWILIO_AUTH_TOKEN),
            data={"To": to_phone, "From": TWILIO_FROM_NUMBER, "Body": message_body[:MAX_SMS_LENGTH]},
            timeout=10.0,
        )
    except httpx.HTTPError as e:
        logger.error(f"Twilio API error: {str(e)}")
        return False, str(e)

    if response.status_code in (200, 201):
        logger.info(f"✅ SMS sent to {to_phone} (SID: {response.json().get('sid')})")
        return True, None

    try:
        error_data = response.json()
    except ValueError:
        error_data = {}
    error_message = error_data.get("message", f"HTTP {response.status_code}")
    logger.error(f"❌ Twilio API error [{error_data.get('code')}]: {error_message}")
    return False, error_message
