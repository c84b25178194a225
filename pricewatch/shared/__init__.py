"""Shared utilities for the price tracking service."""
from .config import get_settings, Settings
from .schemas import (
    AlertType,
    Trend,
    DealRating,
    FlightSearchParams,
    HotelSearchParams,
    FlightResult,
    HotelResult,
    PriceSnapshot,
    AggregatedPrices,
    PriceHistorySummary,
    DealAssessment,
    NotificationResult,
    PriceAlertNotification,
    utcnow,
)
from .errors import (
    PriceWatchError,
    ValidationError,
    ProviderError,
    RateLimitedError,
    ProviderTimeoutError,
    NetworkError,
    ProviderAuthError,
    ProviderNotFoundError,
    ProviderServerError,
    PersistenceError,
    AlertStateError,
    InvalidTransitionError,
    AlertDeletedError,
)
from .metrics import get_metrics, get_metrics_content_type

__all__ = [
    "get_settings",
    "Settings",
    "AlertType",
    "Trend",
    "DealRating",
    "FlightSearchParams",
    "HotelSearchParams",
    "FlightResult",
    "HotelResult",
    "PriceSnapshot",
    "AggregatedPrices",
    "PriceHistorySummary",
    "DealAssessment",
    "NotificationResult",
    "PriceAlertNotification",
    "utcnow",
    "PriceWatchError",
    "ValidationError",
    "ProviderError",
    "RateLimitedError",
    "ProviderTimeoutError",
    "NetworkError",
    "ProviderAuthError",
    "ProviderNotFoundError",
    "ProviderServerError",
    "PersistenceError",
    "AlertStateError",
    "InvalidTransitionError",
    "AlertDeletedError",
    "get_metrics",
    "get_metrics_content_type",
]
