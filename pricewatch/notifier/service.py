"""Dispatches triggered price alerts to the user's notification channels."""
import logging
import time
from abc import ABC, abstractmethod
from typing import Optional

from pricewatch.shared.metrics import NOTIFICATIONS_SENT
from pricewatch.shared.schemas import NotificationResult, PriceAlertNotification
from pricewatch.evaluator.models import PriceAlert
from .handlers import EmailHandler, SMSHandler

logger = logging.getLogger(__name__)


def build_notification(
    alert: PriceAlert,
    triggered_price: float,
    original_price: Optional[float] = None,
) -> PriceAlertNotification:
    """Notification event for a triggered alert."""
    prefs = alert.notifications
    return PriceAlertNotification(
        alert_id=alert.id,
        user_id=alert.user_id,
        type=alert.type,
        route=alert.route,
        departure_date=alert.departure_date,
        return_date=alert.return_date,
        email_address=prefs.email_address,
        phone_number=prefs.phone_number,
        channels=prefs.channels(),
        target_price=alert.target_price,
        triggered_price=triggered_price,
        original_price=original_price if original_price is not None else alert.original_price,
        currency=alert.currency,
    )


class Notifier(ABC):
    """Notification collaborator used by the tracker."""

    @abstractmethod
    async def send_price_alert(
        self,
        alert: PriceAlert,
        triggered_price: float,
        original_price: Optional[float] = None,
    ) -> NotificationResult:
        """Deliver a price alert. ``success`` means the delivery was acknowledged."""
        pass

    async def start(self) -> None:
        pass

    async def stop(self) -> None:
        pass


class NotificationService(Notifier):
    """Sends directly through the email and SMS handlers."""

    def __init__(self, email_handler: Optional[EmailHandler] = None, sms_handler: Optional[SMSHandler] = None):
        self.email_handler = email_handler or EmailHandler()
        self.sms_handler = sms_handler or SMSHandler()

    async def send_price_alert(self, alert, triggered_price, original_price=None) -> NotificationResult:
        notification = build_notification(alert, triggered_price, original_price)
        references = []
        errors = []

        for channel in notification.channels:
            start_time = time.time()
            if channel == "email":
                result = await self.email_handler.send(notification)
            elif channel == "sms":
                result = await self.sms_handler.send(notification)
            else:
                logger.info(f"No {channel} handler configured, skipping for alert {alert.id}")
                NOTIFICATIONS_SENT.labels(channel=channel, status="skipped").inc()
                continue

            status = "success" if result.success else "failed"
            NOTIFICATIONS_SENT.labels(channel=channel, status=status).inc()
            logger.debug(f"{channel} notification for {alert.id} took {time.time() - start_time:.2f}s")

            if result.success:
                references.append(f"{channel}:{result.reference}")
            else:
                errors.append(f"{channel}: {result.error}")

        if references:
            return NotificationResult(success=True, reference=",".join(references))

        error = "; ".join(errors) or "no deliverable channel"
        logger.warning(f"Notification for alert {alert.id} not delivered: {error}")
        return NotificationResult(success=False, error=error)
