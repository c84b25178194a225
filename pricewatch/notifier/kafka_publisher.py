"""Hands triggered alerts to a downstream delivery service over Kafka."""
import logging
from typing import Optional

from pricewatch.shared.kafka import EventProducer
from pricewatch.shared.metrics import NOTIFICATIONS_SENT
from pricewatch.shared.schemas import NotificationResult
from .service import Notifier, build_notification

logger = logging.getLogger(__name__)


class KafkaNotificationPublisher(Notifier):
    """Publishes a notification event; the broker ack is the acknowledgement."""

    def __init__(self, producer: EventProducer, topic: str):
        self.producer = producer
        self.topic = topic

    async def start(self) -> None:
        if not self.producer.started:
            await self.producer.start()

    async def stop(self) -> None:
        await self.producer.stop()

    async def send_price_alert(self, alert, triggered_price, original_price: Optional[float] = None) -> NotificationResult:
        notification = build_notification(alert, triggered_price, original_price)
        try:
            metadata = await self.producer.send(self.topic, value=notification, key=alert.id)
        except Exception as e:
            NOTIFICATIONS_SENT.labels(channel="kafka", status="failed").inc()
            return NotificationResult(success=False, error=str(e))

        NOTIFICATIONS_SENT.labels(channel="kafka", status="success").inc()
        reference = f"{metadata.topic}:{metadata.partition}:{metadata.offset}"
        logger.info(f"Published notification for alert {alert.id} ({reference})")
        return NotificationResult(success=True, reference=reference)
