"""Fans a search out to every provider and folds results into price history."""
import asyncio
import logging
import time
import uuid
from typing import Any, List, Optional, Sequence

from pricewatch.shared.errors import PersistenceError, PriceWatchError
from pricewatch.shared.metrics import PROVIDER_ERRORS, PROVIDER_LATENCY, PROVIDER_REQUESTS, SNAPSHOTS_RECORDED
from pricewatch.shared.schemas import (
    AggregatedPrices,
    AlertType,
    DealAssessment,
    DealRating,
    FlightSearchParams,
    HotelSearchParams,
    PriceHistorySummary,
    PriceSnapshot,
    Savings,
    Trend,
)
from .history import InMemoryPriceHistory, PriceHistory, history_key
from .providers.base import FLIGHTS, HOTELS, BasePriceProvider

logger = logging.getLogger(__name__)

TREND_WINDOW = 7


def calculate_trend(prices: Sequence[float]) -> Trend:
    """Compare the last 7 prices against the 7 before them."""
    if not prices:
        return Trend.STABLE
    recent = list(prices[-TREND_WINDOW:])
    older = list(prices[-2 * TREND_WINDOW:-TREND_WINDOW])
    if not older:
        return Trend.STABLE

    recent_avg = sum(recent) / len(recent)
    older_avg = sum(older) / len(older)
    if recent_avg <= older_avg * 0.95:
        return Trend.FALLING
    if recent_avg >= older_avg * 1.05:
        return Trend.RISING
    return Trend.STABLE


def assess_deal(price: float, average: Optional[float]) -> DealAssessment:
    """Rate a price against its historical average."""
    if not average:
        return DealAssessment(
            is_deal=False,
            rating=DealRating.UNKNOWN,
            recommendation="Not enough historical data",
            current_price=price,
        )

    savings = average - price
    percentage = savings / average * 100

    if percentage > 20:
        is_deal, rating = True, DealRating.EXCELLENT
        recommendation = "Excellent deal! Book now"
    elif percentage > 10:
        is_deal, rating = True, DealRating.GOOD
        recommendation = "Good deal - consider booking soon"
    elif percentage < -10:
        is_deal, rating = False, DealRating.POOR
        recommendation = "Price is above average - wait or set an alert"
    else:
        is_deal, rating = False, DealRating.FAIR
        recommendation = "Fair price - consider setting an alert"

    return DealAssessment(
        is_deal=is_deal,
        rating=rating,
        recommendation=recommendation,
        savings=Savings(amount=round(savings), percentage=round(percentage)),
        current_price=price,
        historical_average=average,
    )


class PriceAggregator:
    """Merges provider results for one logical search."""

    def __init__(self, providers: List[BasePriceProvider], history: Optional[PriceHistory] = None):
        self.providers = providers
        self.history = history or InMemoryPriceHistory()

    async def search_flights(self, params: FlightSearchParams) -> AggregatedPrices:
        providers = [p for p in self.providers if p.supports_flights()]
        return await self._aggregate(
            AlertType.FLIGHT,
            params.identifier,
            providers,
            FLIGHTS,
            lambda p: p.search_flights(params),
        )

    async def search_hotels(self, params: HotelSearchParams) -> AggregatedPrices:
        providers = [p for p in self.providers if p.supports_hotels()]
        return await self._aggregate(
            AlertType.HOTEL,
            params.identifier,
            providers,
            HOTELS,
            lambda p: p.search_hotels(params),
        )

    async def _aggregate(self, type_, identifier, providers, operation, call) -> AggregatedPrices:
        search_id = f"{type_.value}_{uuid.uuid4().hex[:12]}"

        outcomes = await asyncio.gather(
            *[self._call_provider(p, operation, call) for p in providers]
        )

        results: List[Any] = []
        sources: List[str] = []
        failed: List[str] = []
        for provider, outcome in zip(providers, outcomes):
            if outcome is None:
                failed.append(provider.id)
                continue
            if outcome:
                sources.append(provider.id)
                results.extend(outcome)

        results.sort(key=lambda r: r.price)
        aggregated = AggregatedPrices(
            search_id=search_id,
            type=type_,
            identifier=identifier,
            results=results,
            sources=sources,
            failed_sources=failed,
            total_results=len(results),
        )

        if results:
            prices = [r.price for r in results]
            aggregated.lowest = prices[0]
            aggregated.highest = prices[-1]
            aggregated.average = sum(prices) / len(prices)
            aggregated.currency = results[0].currency
            await self._record(type_, identifier, aggregated)
        elif failed and len(failed) == len(providers):
            logger.warning(f"All providers failed for {type_.value} {identifier}")
        else:
            logger.info(f"No results for {type_.value} {identifier}")

        return aggregated

    async def _call_provider(self, provider: BasePriceProvider, operation: str, call) -> Optional[List[Any]]:
        """Run one provider search. Returns None when the provider failed."""
        start = time.perf_counter()
        try:
            found = await call(provider)
        except PriceWatchError as e:
            kind = e.code
            logger.error(f"Error fetching {operation} from {provider.name}: {e}")
        except Exception as e:
            kind = e.__class__.__name__
            logger.exception(f"Unexpected error fetching {operation} from {provider.name}: {e}")
        else:
            PROVIDER_REQUESTS.labels(provider=provider.id, operation=operation, outcome="success").inc()
            PROVIDER_LATENCY.labels(provider=provider.id).observe(time.perf_counter() - start)
            return found

        PROVIDER_REQUESTS.labels(provider=provider.id, operation=operation, outcome="error").inc()
        PROVIDER_ERRORS.labels(provider=provider.id, kind=kind).inc()
        PROVIDER_LATENCY.labels(provider=provider.id).observe(time.perf_counter() - start)
        return None

    async def _record(self, type_: AlertType, identifier: str, aggregated: AggregatedPrices) -> None:
        snapshot = PriceSnapshot(
            price=aggregated.lowest,
            currency=aggregated.currency,
            timestamp=aggregated.timestamp,
            payload={
                "search_id": aggregated.search_id,
                "total_results": aggregated.total_results,
                "sources": aggregated.sources,
                "highest": aggregated.highest,
                "average": aggregated.average,
            },
        )
        try:
            await self.history.append(history_key(type_.value, identifier), snapshot)
        except PersistenceError as e:
            logger.error(f"Failed to record price snapshot for {identifier}: {e}")
            return
        SNAPSHOTS_RECORDED.labels(type=type_.value).inc()

    async def get_price_history(self, identifier: str, type_: AlertType, days: int = 30) -> PriceHistorySummary:
        """Summarize the newest ``days`` snapshots of a route or location."""
        type_ = AlertType(type_)
        data = await self.history.get(history_key(type_.value, identifier), limit=days)
        summary = PriceHistorySummary(identifier=identifier, type=type_, days=days, data=data)
        if data:
            prices = [s.price for s in data]
            summary.average = sum(prices) / len(prices)
            summary.lowest = min(prices)
            summary.highest = max(prices)
            summary.trend = calculate_trend(prices)
        return summary

    async def assess_current_price(self, identifier: str, type_: AlertType, price: float) -> DealAssessment:
        """Rate ``price`` against the buffered history of a route."""
        summary = await self.get_price_history(identifier, type_, days=self.history.max_length)
        return assess_deal(price, summary.average)

    async def close(self) -> None:
        for provider in self.providers:
            await provider.close()
        await self.history.close()


