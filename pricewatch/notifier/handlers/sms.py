"""SMS notification handler using Twilio."""
import asyncio
import logging
from typing import Optional

from twilio.rest import Client as TwilioClient

from pricewatch.shared.config import TwilioSettings
from pricewatch.shared.schemas import NotificationResult, PriceAlertNotification

logger = logging.getLogger(__name__)


class SMSHandler:
    """Sends SMS notifications via Twilio."""

    def __init__(self, settings: Optional[TwilioSettings] = None, client: Optional[TwilioClient] = None):
        settings = settings or TwilioSettings()
        self.from_number = settings.phone_number

        self._client = client
        if self._client is None and settings.account_sid and settings.auth_token:
            self._client = TwilioClient(settings.account_sid, settings.auth_token)

    def _create_message(self, notification: PriceAlertNotification) -> str:
        """Create SMS message text."""
        text = (
            f"Price drop! {notification.route}: "
            f"{notification.triggered_price:,.2f} {notification.currency} "
            f"(target {notification.target_price:,.2f})"
        )
        if notification.savings_percent is not None and notification.savings_percent > 0:
            text += f", save {notification.savings_percent:.1f}%"
        return text

    async def send(self, notification: PriceAlertNotification) -> NotificationResult:
        """Send SMS notification."""
        if not self._client:
            logger.warning("Twilio not configured, skipping SMS")
            return NotificationResult(success=False, error="Twilio not configured")

        if not notification.phone_number:
            logger.warning(f"No phone number for user {notification.user_id}")
            return NotificationResult(success=False, error="missing phone number")

        try:
            # Twilio's client is blocking
            loop = asyncio.get_running_loop()
            message = await loop.run_in_executor(
                None,
                lambda: self._client.messages.create(
                    body=self._create_message(notification),
                    from_=self.from_number,
                    to=notification.phone_number
                )
            )

            logger.info(
                f"SMS sent to {notification.phone_number} for alert {notification.alert_id} "
                f"(SID: {message.sid})"
            )
            return NotificationResult(success=True, reference=message.sid)

        except Exception as e:
            logger.error(f"Failed to send SMS to {notification.phone_number}: {e}")
            return NotificationResult(success=False, error=str(e))
