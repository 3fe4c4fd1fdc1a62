"""
MJML Email Templates
Booking, payment, waitlist and audit emails rendered through one base layout
"""

from html import escape
from typing import Optional

from .config import FRONTEND_URL

# Vibewell theme colors - Rose/Stone color scheme
THEME = {
    "primary": "#e11d48",
    "primary_dark": "#be123c",
    "primary_light": "#ffe4e6",
    "background": "#fafaf9",
    "card_bg": "#ffffff",
    "text_primary": "#1c1917",
    "text_secondary": "#44403c",
    "text_muted": "#78716c",
    "border": "#e7e5e4",
    "success": "#16a34a",
    "warning": "#f59e0b",
    "danger": "#dc2626",
}

LOGO_URL = f"{FRONTEND_URL}/static/vibewell-logo.png"


def get_base_template(
    title: str,
    preview_text: str,
    content_sections: str,
    cta_url: Optional[str] = None,
    cta_label: Optional[str] = None,
) -> str:
    """Base MJML template wrapper for all emails"""
    title = escape(title)
    preview_text = escape(preview_text)

    cta_section = ""
    if cta_url and cta_label:
        cta_section = f"""
        <mj-section padding="20px 0">
          <mj-column>
            <mj-button
              href="{cta_url}"
              background-color="{THEME['primary']}"
              color="#ffffff"
              font-weight="600"
              border-radius="8px"
              padding="18px 40px"
              font-size="16px">
              {cta_label}
            </mj-button>
          </mj-column>
        </mj-section>
        """

    return f"""
    <mjml>
      <mj-head>
        <mj-title>{title}</mj-title>
        <mj-preview>{preview_text}</mj-preview>
        <mj-attributes>
          <mj-all font-family="-apple-system, BlinkMacSystemFont, 'Segoe UI', 'Helvetica Neue', Arial, sans-serif" />
          <mj-text font-size="16px" line-height="1.6" color="{THEME['text_secondary']}" />
        </mj-attributes>
      </mj-head>
      <mj-body background-color="{THEME['background']}">
        <mj-section background-color="#ffffff" padding="32px 20px">
          <mj-column>
            <mj-image src="{LOGO_URL}" alt="Vibewell" width="140px" href="{FRONTEND_URL}" padding="0" />
          </mj-column>
        </mj-section>

        <mj-section background-color="#ffffff" padding="0 40px 48px 40px">
          <mj-column>
            <mj-divider border-color="{THEME['border']}" border-width="1px" padding="0 0 32px 0" />
            <mj-text font-size="24px" font-weight="600" color="{THEME['text_primary']}" line-height="1.3" padding="0 0 16px 0">
              {title}
            </mj-text>

            {content_sections}
          </mj-column>
        </mj-section>

        {cta_section}

        <mj-section padding="32px 20px">
          <mj-column>
            <mj-text align="center" font-size="13px" color="#a8a29e" padding="0">
              You're receiving this because you have a Vibewell account.
              <a href="{FRONTEND_URL}/settings/notifications" style="color: {THEME['text_muted']};">Manage notifications</a>
            </mj-text>
          </mj-column>
        </mj-section>
      </mj-body>
    </mjml>
    """


def _details_table(rows: dict[str, object]) -> str:
    cells = "".join(
        f"""
          <tr>
            <td style="padding: 6px 0; color: {THEME['text_muted']};">{escape(str(label))}</td>
            <td style="padding: 6px 0; text-align: right; color: {THEME['text_primary']};">{escape(str(value))}</td>
          </tr>"""
        for label, value in rows.items()
        if value is not None
    )
    if not cells:
        return ""
    return f"""
    <mj-table padding="8px 0 16px 0">
      {cells}
    </mj-table>
    """


def _message_block(message: str) -> str:
    return f"""
    <mj-text padding="0 0 16px 0">
      {escape(message)}
    </mj-text>
    """


def booking_confirmation_template(
    title: str, message: str, service_name: Optional[str], start_time: Optional[str], price: Optional[float]
) -> str:
    content = _message_block(message) + _details_table(
        {
            "Service": service_name,
            "When": start_time,
            "Price": f"${price:.2f}" if price is not None else None,
        }
    )
    return get_base_template(
        title=title,
        preview_text="Your Vibewell appointment is booked",
        content_sections=content,
        cta_url=f"{FRONTEND_URL}/bookings",
        cta_label="View Booking",
    )


def booking_reminder_template(title: str, message: str, service_name: Optional[str], start_time: Optional[str]) -> str:
    content = f"""
    <mj-text color="{THEME['text_muted']}" padding="0 0 16px 0">
      Just a friendly reminder about your upcoming appointment.
    </mj-text>
    """ + _message_block(message) + _details_table({"Service": service_name, "When": start_time})
    return get_base_template(
        title=title,
        preview_text="Your appointment is coming up",
        content_sections=content,
        cta_url=f"{FRONTEND_URL}/bookings",
        cta_label="View Booking",
    )


def booking_cancelled_template(title: str, message: str, reason: Optional[str], refunded: bool) -> str:
    content = _message_block(message) + _details_table({"Reason": reason})
    if refunded:
        content += f"""
    <mj-text color="{THEME['success']}" padding="0 0 16px 0">
      A refund has been issued to your original payment method.
    </mj-text>
    """
    return get_base_template(
        title=title,
        preview_text="Your appointment was cancelled",
        content_sections=content,
        cta_url=f"{FRONTEND_URL}/explore",
        cta_label="Find Another Time",
    )


def payment_template(
    title: str, message: str, amount: Optional[float], currency: Optional[str], status: Optional[str]
) -> str:
    content = _message_block(message) + _details_table(
        {
            "Amount": f"{amount:.2f} {(currency or '').upper()}" if amount is not None else None,
            "Status": status,
        }
    )
    return get_base_template(
        title=title,
        preview_text=title,
        content_sections=content,
        cta_url=f"{FRONTEND_URL}/payments",
        cta_label="Payment History",
    )


def waitlist_slot_template(title: str, message: str, service_name: Optional[str], date: Optional[str]) -> str:
    content = _message_block(message) + _details_table({"Service": service_name, "Date": date})
    content += f"""
    <mj-text color="{THEME['warning']}" padding="0 0 16px 0">
      Slots are offered to one person at a time, so book soon to keep your place.
    </mj-text>
    """
    return get_base_template(
        title=title,
        preview_text="A slot you were waiting for is available",
        content_sections=content,
        cta_url=f"{FRONTEND_URL}/bookings/new",
        cta_label="Book Now",
    )


def audit_alert_template(title: str, message: str, category: Optional[str], component: Optional[str]) -> str:
    content = f"""
    <mj-text color="{THEME['danger']}" font-weight="600" padding="0 0 16px 0">
      A critical audit issue needs attention.
    </mj-text>
    """ + _message_block(message) + _details_table({"Category": category, "Component": component})
    return get_base_template(
        title=title,
        preview_text=title,
        content_sections=content,
        cta_url=f"{FRONTEND_URL}/admin/audit",
        cta_label="Open Audit Dashboard",
    )


def generic_notification_template(title: str, message: str) -> str:
    return get_base_template(
        title=title,
        preview_text=title,
        content_sections=_message_block(message),
        cta_url=f"{FRONTEND_URL}/notifications",
        cta_label="Open Vibewell",
    )
