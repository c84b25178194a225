"""Travel price tracking: provider polling, price history and alert triggering."""

__version__ = "1.0.0"
