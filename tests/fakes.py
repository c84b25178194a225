"""Test doubles shared across the suite."""
import asyncio
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional

from pricewatch.ingestor.providers.base import FLIGHTS, HOTELS, BasePriceProvider
from pricewatch.notifier.service import Notifier
from pricewatch.shared.schemas import FlightResult, HotelResult, NotificationResult


class FakeClock:
    """Monotonic clock whose sleep advances time instantly."""

    def __init__(self, start: float = 0.0):
        self.now = start
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds
        await asyncio.sleep(0)


class FakeProvider(BasePriceProvider):
    """In-process provider returning canned prices or raising a canned error."""

    display_name = "Fake"

    def __init__(
        self,
        provider_id: str,
        flights: Optional[List[float]] = None,
        hotels: Optional[List[float]] = None,
        error: Optional[Exception] = None,
        supports=(FLIGHTS, HOTELS),
        gate: Optional[asyncio.Event] = None,
        delay: float = 0.0,
    ):
        self.id = provider_id
        self.display_name = provider_id
        self.supports = frozenset(supports)
        self.flights = flights or []
        self.hotels = hotels or []
        self.error = error
        self.gate = gate
        self.delay = delay
        self.calls = 0
        self.in_flight = 0
        self.max_in_flight = 0

    async def _run(self):
        self.calls += 1
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.gate is not None:
                await self.gate.wait()
            if self.delay:
                await asyncio.sleep(self.delay)
            if self.error is not None:
                raise self.error
        finally:
            self.in_flight -= 1

    async def _search_flights(self, params) -> List[FlightResult]:
        await self._run()
        return [
            FlightResult(id=f"{self.id}-{i}", provider=self.id, price=price)
            for i, price in enumerate(self.flights)
        ]

    async def _search_hotels(self, params) -> List[HotelResult]:
        await self._run()
        return [
            HotelResult(id=f"{self.id}-{i}", provider=self.id, price=price)
            for i, price in enumerate(self.hotels)
        ]

    def booking_url(self, result) -> str:
        return f"https://example.test/{result.id}"

    async def close(self) -> None:
        pass


class FakeNotifier(Notifier):
    """Records dispatches; replays queued outcomes, then succeeds."""

    def __init__(self, outcomes: Optional[List[Any]] = None):
        self.outcomes = list(outcomes or [])
        self.calls: List[Dict[str, Any]] = []

    async def send_price_alert(self, alert, triggered_price, original_price=None) -> NotificationResult:
        self.calls.append({
            "alert_id": alert.id,
            "triggered_price": triggered_price,
            "original_price": original_price,
        })
        outcome = self.outcomes.pop(0) if self.outcomes else True
        if isinstance(outcome, Exception):
            raise outcome
        if outcome:
            return NotificationResult(success=True, reference=f"ref-{len(self.calls)}")
        return NotificationResult(success=False, error="smtp down")


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


def alert_data(**overrides) -> Dict[str, Any]:
    data = {
        "user_id": "user-1",
        "type": "flight",
        "origin": "JFK",
        "destination": "LHR",
        "departure_date": date(2026, 12, 1),
        "return_date": date(2026, 12, 10),
        "target_price": 500.0,
        "alert_when": {"mode": "below"},
        "notifications": {"email": True, "email_address": "traveler@example.com"},
    }
    data.update(overrides)
    return data

