"""Alert evaluation: the price alert state machine and its persistence."""
from .models import AlertCondition, AlertStatus, CabinClass, ConditionMode, NotificationPreferences, PriceAlert
from .store import AlertStats, AlertStore, CachedAlertStore, InMemoryAlertStore, SQLAlchemyAlertStore

__all__ = [
    "AlertCondition",
    "AlertStatus",
    "CabinClass",
    "ConditionMode",
    "NotificationPreferences",
    "PriceAlert",
    "AlertStats",
    "AlertStore",
    "CachedAlertStore",
    "InMemoryAlertStore",
    "SQLAlchemyAlertStore",
]
