"""Notification collaborators for triggered price alerts."""
from .handlers import EmailHandler, SMSHandler
from .kafka_publisher import KafkaNotificationPublisher
from .service import NotificationService, Notifier, build_notification

__all__ = [
    "EmailHandler",
    "SMSHandler",
    "KafkaNotificationPublisher",
    "NotificationService",
    "Notifier",
    "build_notification",
]
