"""Providers package."""
from .base import BasePriceProvider, ProviderConfig
from .rate_limit import FixedWindowRateLimiter
from .expedia import ExpediaProvider
from .skyscanner import SkyscannerProvider
from .booking import BookingProvider
from .hotels_com import HotelsComProvider
from .affiliates import AgodaProvider, KayakProvider, TripProvider
from .registry import ProviderRegistry, build_providers, default_registry

__all__ = [
    "BasePriceProvider",
    "ProviderConfig",
    "FixedWindowRateLimiter",
    "ExpediaProvider",
    "SkyscannerProvider",
    "BookingProvider",
    "HotelsComProvider",
    "AgodaProvider",
    "KayakProvider",
    "TripProvider",
    "ProviderRegistry",
    "build_providers",
    "default_registry",
]
