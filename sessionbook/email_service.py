"""
Email Service using Resend
Transactional booking emails (request confirmation).
"""

import html
import logging
from typing import Optional, Union

import resend

from .config import EMAIL_FROM_ADDRESS, FRONTEND_URL, RESEND_API_KEY

logger = logging.getLogger(__name__)

resend.api_key = RESEND_API_KEY


def reference_code(request_id: str) -> str:
    """Short reference shown to clients: first 8 characters of the id, uppercased"""
    return request_id[:8].upper()


async def send_email(
    to: Union[str, list[str]],
    subject: str,
    html_content: str,
    from_address: Optional[str] = None,
) -> dict:
    """
    Send an email through Resend

    Args:
        to: Recipient email(s)
        subject: Email subject line
        html_content: Rendered HTML body
        from_address: Optional custom from address

    Returns:
        Send response dict
    """
    recipients = [to] if isinstance(to, str) else to
    sender = from_address or EMAIL_FROM_ADDRESS

    if not RESEND_API_KEY:
        logger.error("❌ No email service configured - RESEND_API_KEY missing")
        raise Exception("Email service not configured")

    try:
        logger.info(f"📧 Sending email via Resend to: {recipients}")
        response = resend.Emails.send(
            {
                "from": sender,
                "to": recipients,
                "subject": subject,
                "html": html_content,
            }
        )
        logger.info(f"✅ Email sent successfully via Resend: {response}")
        return response
    except Exception as e:
        logger.error(f"❌ Email send error to {recipients}: {e}")
        raise Exception(f"Failed to send email: {str(e)}") from e


def confirmation_email_template(name: str, request_id: str) -> str:
    code = reference_code(request_id)
    return f"""
<div style="font-family: Arial, sans-serif; max-width: 560px; margin: 0 auto;">
  <h2>Your request has been received</h2>
  <p>Hello {html.escape(name)},</p>
  <p>Thank you for your request. We will review it and get back to you shortly.</p>
  <p>Your reference code is <strong>{code}</strong>.</p>
  <p><a href="{FRONTEND_URL}/request/confirmation/{request_id}">View your request</a></p>
</div>
"""


async def send_request_confirmation(to: str, name: str, request_id: str) -> dict:
    """Send the booking confirmation email with the request's reference code"""
    return await send_email(
        to=to,
        subject=f"Your Request Confirmation ({reference_code(request_id)})",
        html_content=confirmation_email_template(name, request_id),
    )
