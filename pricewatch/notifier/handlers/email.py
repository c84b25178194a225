"""Email notification handler using aiosmtplib."""
import logging
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import make_msgid
from typing import Optional
from urllib.parse import urlencode

import aiosmtplib

from pricewatch.shared.config import SMTPSettings
from pricewatch.shared.schemas import NotificationResult, PriceAlertNotification

logger = logging.getLogger(__name__)


class EmailHandler:
    """Sends price drop emails via SMTP."""

    def __init__(self, settings: Optional[SMTPSettings] = None):
        settings = settings or SMTPSettings()
        self.smtp_host = settings.host
        self.smtp_port = settings.port
        self.smtp_user = settings.user
        self.smtp_password = settings.password
        self.from_email = settings.from_email or settings.user
        self.frontend_url = settings.frontend_url.rstrip("/")

    @property
    def configured(self) -> bool:
        return bool(self.smtp_user and self.smtp_password)

    def _search_link(self, notification: PriceAlertNotification) -> str:
        origin, _, destination = notification.route.partition("-")
        query = urlencode({
            "origin": origin,
            "destination": destination,
            "departure": notification.departure_date.isoformat() if notification.departure_date else "",
            "return": notification.return_date.isoformat() if notification.return_date else "",
        })
        return f"{self.frontend_url}/search?{query}"

    @staticmethod
    def _travel_dates(notification: PriceAlertNotification) -> str:
        if not notification.departure_date:
            return "Flexible dates"
        if not notification.return_date:
            return f"{notification.departure_date:%a %d %b %Y} (one way)"
        return f"{notification.departure_date:%a %d %b %Y} to {notification.return_date:%a %d %b %Y}"

    def _render_text(self, notification: PriceAlertNotification, route: str) -> str:
        currency = notification.currency
        lines = [
            f"Good news: the price for your {notification.type.value} alert has dropped.",
            "",
            f"{route}, {self._travel_dates(notification)}",
            f"Current price: {notification.triggered_price:,.2f} {currency}",
            f"Your target: {notification.target_price:,.2f} {currency}",
        ]
        if notification.savings and notification.savings > 0:
            lines.append(
                f"You save {notification.savings:,.2f} {currency} "
                f"({notification.savings_percent:.1f}% off {notification.original_price:,.2f} {currency})"
            )
        lines += [
            "",
            f"See offers: {self._search_link(notification)}",
            f"Manage your alerts: {self.frontend_url}/alerts",
        ]
        return "\n".join(lines)

    def _render_html(self, notification: PriceAlertNotification, route: str) -> str:
        currency = notification.currency
        was = notification.original_price or notification.target_price
        savings_row = ""
        if notification.savings and notification.savings > 0:
            savings_row = (
                '<tr><td style="padding:4px 0;color:#15803d;font-weight:bold;">'
                f"You save {notification.savings:,.2f} {currency} ({notification.savings_percent:.0f}%)"
                "</td></tr>"
            )

        return f"""<html>
<body style="margin:0;padding:24px;background:#eef2f7;font-family:Helvetica,Arial,sans-serif;">
  <table width="100%" cellpadding="0" cellspacing="0" style="max-width:560px;margin:auto;background:#ffffff;">
    <tr><td style="padding:24px;background:#0f766e;color:#ffffff;font-size:22px;">{route}</td></tr>
    <tr><td style="padding:24px;">
      <table width="100%" cellpadding="0" cellspacing="0">
        <tr><td style="padding:4px 0;color:#475569;">{self._travel_dates(notification)}</td></tr>
        <tr><td style="padding:4px 0;color:#94a3b8;text-decoration:line-through;">{was:,.2f} {currency}</td></tr>
        <tr><td style="padding:4px 0;font-size:30px;font-weight:bold;">{notification.triggered_price:,.2f} {currency}</td></tr>
        {savings_row}
      </table>
      <p style="margin:24px 0;">
        <a href="{self._search_link(notification)}"
           style="background:#0f766e;color:#ffffff;padding:12px 24px;text-decoration:none;">View offers</a>
      </p>
      <p style="font-size:12px;color:#64748b;">
        Sent because you asked to be told when this price fell to {notification.target_price:,.2f} {currency}.
        <a href="{self.frontend_url}/alerts" style="color:#64748b;">Manage alerts</a>
      </p>
    </td></tr>
  </table>
</body>
</html>"""

    def _create_email(self, notification: PriceAlertNotification) -> MIMEMultipart:
        """Build the multipart message for one triggered alert."""
        route = notification.route.replace("-", " → ")

        msg = MIMEMultipart("alternative")
        msg["Subject"] = f"Price Drop Alert! {route}"
        msg["From"] = self.from_email
        msg["To"] = notification.email_address
        msg["Message-ID"] = make_msgid(domain="pricewatch")
        msg.attach(MIMEText(self._render_text(notification, route), "plain"))
        msg.attach(MIMEText(self._render_html(notification, route), "html"))
        return msg

    async def send(self, notification: PriceAlertNotification) -> NotificationResult:
        """Send email notification."""
        if not self.configured:
            logger.warning("SMTP credentials not configured, skipping email")
            return NotificationResult(success=False, error="SMTP not configured")

        if not notification.email_address:
            logger.warning(f"No email address for user {notification.user_id}")
            return NotificationResult(success=False, error="missing email address")

        try:
            msg = self._create_email(notification)

            await aiosmtplib.send(
                msg,
                hostname=self.smtp_host,
                port=self.smtp_port,
                username=self.smtp_user,
                password=self.smtp_password,
                start_tls=True
            )

            logger.info(f"Email sent to {notification.email_address} for alert {notification.alert_id}")
            return NotificationResult(success=True, reference=msg["Message-ID"])

        except Exception as e:
            logger.error(f"Failed to send email to {notification.email_address}: {e}")
            return NotificationResult(success=False, error=str(e))
