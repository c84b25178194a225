"""Price ingestion: provider adapters, aggregation and rolling history."""
from .aggregator import PriceAggregator, assess_deal, calculate_trend
from .history import InMemoryPriceHistory, PriceHistory, RedisPriceHistory, history_key

__all__ = [
    "PriceAggregator",
    "assess_deal",
    "calculate_trend",
    "InMemoryPriceHistory",
    "PriceHistory",
    "RedisPriceHistory",
    "history_key",
]
