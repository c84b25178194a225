"""Tracking scheduler and service entrypoint."""
from .scheduler import PriceTracker, TickReport

__all__ = ["PriceTracker", "TickReport"]
