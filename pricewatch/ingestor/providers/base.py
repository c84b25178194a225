"""Base provider interface for travel price sources."""
import asyncio
import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Dict, FrozenSet, List, Optional

import httpx
from pydantic import BaseModel

from pricewatch.shared.errors import (
    NetworkError,
    ProviderAuthError,
    ProviderError,
    ProviderNotFoundError,
    ProviderServerError,
    ProviderTimeoutError,
    RateLimitedError,
    ValidationError,
)
from pricewatch.shared.metrics import RATE_LIMIT_WAITS
from pricewatch.shared.schemas import (
    Baggage,
    FlightEndpoint,
    FlightResult,
    FlightSearchParams,
    HotelFees,
    HotelLocation,
    HotelPolicies,
    HotelResult,
    HotelRoom,
    HotelSearchParams,
)
from .rate_limit import Clock, FixedWindowRateLimiter, Sleep

logger = logging.getLogger(__name__)

FLIGHTS = "flights"
HOTELS = "hotels"

DEFAULT_RETRY_AFTER = 60.0


class ProviderConfig(BaseModel):
    """Runtime configuration for one provider instance."""
    api_key: str = ""
    base_url: Optional[str] = None
    timeout: Optional[float] = None
    rate_limit_requests: int = 100
    rate_limit_window: float = 60.0
    affiliate_id: str = ""


class BasePriceProvider(ABC):
    """
    Abstract base class for price providers.

    Subclasses declare which searches they support and implement the
    ``_search_*`` hooks. Every outbound request goes through ``_request``,
    which applies the rate limit and timeout and maps transport/HTTP
    failures onto the provider error types.
    """

    id: str = "base"
    display_name: str = "Base"
    base_url: str = ""
    commission: float = 0.0
    default_timeout: float = 30.0
    supports: FrozenSet[str] = frozenset()

    def __init__(
        self,
        config: Optional[ProviderConfig] = None,
        client: Optional[httpx.AsyncClient] = None,
        clock: Clock = time.monotonic,
        sleep: Sleep = asyncio.sleep,
    ):
        self.config = config or ProviderConfig()
        self.api_key = self.config.api_key
        self.affiliate_id = self.config.affiliate_id
        self.base_url = self.config.base_url or self.base_url
        self.timeout = self.config.timeout or self.default_timeout
        self.rate_limiter = FixedWindowRateLimiter(
            self.config.rate_limit_requests,
            self.config.rate_limit_window,
            clock=clock,
            sleep=sleep,
            name=self.id,
        )
        self._sleep = sleep
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=self.timeout)

    @property
    def name(self) -> str:
        return self.display_name

    def supports_flights(self) -> bool:
        return FLIGHTS in self.supports

    def supports_hotels(self) -> bool:
        return HOTELS in self.supports

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    # ------------------------------------------------------------------
    # Public search contract
    # ------------------------------------------------------------------

    async def search_flights(self, params: FlightSearchParams) -> List[FlightResult]:
        """Search flights and return standardized results."""
        if not self.supports_flights():
            raise ProviderError(self.name, "flight search not supported")
        self.validate_flight_params(params)
        return await self._search_flights(params)

    async def search_hotels(self, params: HotelSearchParams) -> List[HotelResult]:
        """Search hotels and return standardized results."""
        if not self.supports_hotels():
            raise ProviderError(self.name, "hotel search not supported")
        self.validate_hotel_params(params)
        return await self._search_hotels(params)

    async def _search_flights(self, params: FlightSearchParams) -> List[FlightResult]:
        raise ProviderError(self.name, "flight search not implemented")

    async def _search_hotels(self, params: HotelSearchParams) -> List[HotelResult]:
        raise ProviderError(self.name, "hotel search not implemented")

    @abstractmethod
    def booking_url(self, result: BaseModel) -> str:
        """Deep link to book a result on the provider's site."""
        pass

    def validate_flight_params(self, params: FlightSearchParams) -> None:
        if not params.origin:
            raise ValidationError("Origin is required")
        if not params.destination:
            raise ValidationError("Destination is required")
        if not params.departure_date:
            raise ValidationError("Departure date is required")

    def validate_hotel_params(self, params: HotelSearchParams) -> None:
        if not params.location:
            raise ValidationError("Location is required")

    # ------------------------------------------------------------------
    # HTTP plumbing
    # ------------------------------------------------------------------

    async def _request(self, method: str, path: str, **kwargs) -> Any:
        """Issue one rate-limited, time-bounded request and decode the JSON body."""
        waited = await self.rate_limiter.acquire()
        if waited:
            RATE_LIMIT_WAITS.labels(provider=self.id).inc()

        url = path if path.startswith("http") else f"{self.base_url}{path}"
        try:
            response = await asyncio.wait_for(
                self._client.request(method, url, timeout=self.timeout, **kwargs),
                timeout=self.timeout,
            )
        except (asyncio.TimeoutError, httpx.TimeoutException) as e:
            raise ProviderTimeoutError(self.name, self.timeout) from e
        except httpx.ConnectError as e:
            raise NetworkError(self.name, cause=e) from e
        except httpx.HTTPError as e:
            raise ProviderError(self.name, cause=e) from e

        if response.is_error:
            self._raise_for_status(response)

        try:
            return response.json()
        except ValueError as e:
            raise ProviderError(self.name, "invalid JSON response", cause=e) from e

    def _raise_for_status(self, response: httpx.Response) -> None:
        status = response.status_code

        if status == 429:
            retry_after = _parse_retry_after(response.headers.get("Retry-After"))
            self.rate_limiter.defer(retry_after)
            raise RateLimitedError(self.name, retry_after)

        if status in (401, 403):
            raise ProviderAuthError(self.name, "API authentication failed")

        if status == 404:
            raise ProviderNotFoundError(self.name, "Resource not found")

        if status >= 500:
            raise ProviderServerError(self.name, status)

        raise ProviderError(self.name, f"HTTP {status}: {response.text[:300]}")

    # ------------------------------------------------------------------
    # Standardization
    # ------------------------------------------------------------------

    def standardize_flight(self, raw: Dict[str, Any]) -> FlightResult:
        """Map an intermediate flight dict onto the canonical result."""
        stops = raw.get("stops") or 0
        return FlightResult(
            id=str(raw.get("id")),
            provider=self.id,
            price=float(raw["price"]),
            currency=raw.get("currency") or "USD",
            airline=raw.get("airline"),
            flight_number=raw.get("flight_number"),
            departure=FlightEndpoint(
                airport=raw.get("departure_airport"),
                time=raw.get("departure_time"),
                terminal=raw.get("departure_terminal"),
            ),
            arrival=FlightEndpoint(
                airport=raw.get("arrival_airport"),
                time=raw.get("arrival_time"),
                terminal=raw.get("arrival_terminal"),
            ),
            duration=raw.get("duration"),
            stops=stops,
            is_direct=stops == 0,
            baggage=Baggage(
                included=raw.get("baggage_included") or False,
                carry_on=raw.get("carry_on_bags") or 1,
                checked=raw.get("checked_bags") or 0,
            ),
            cancellation=raw.get("cancellation_policy") or "unknown",
            amenities=raw.get("amenities") or [],
            raw=raw.get("raw") or {},
        )

    def standardize_hotel(self, raw: Dict[str, Any]) -> HotelResult:
        """Map an intermediate hotel dict onto the canonical result."""
        return HotelResult(
            id=str(raw.get("id")),
            provider=self.id,
            price=float(raw["price"]),
            currency=raw.get("currency") or "USD",
            name=raw.get("name"),
            stars=raw.get("stars") or 0,
            rating=raw.get("rating") or 0,
            reviews=raw.get("review_count") or 0,
            location=HotelLocation(
                address=raw.get("address"),
                city=raw.get("city"),
                coordinates=raw.get("coordinates"),
                neighborhood=raw.get("neighborhood"),
            ),
            amenities=raw.get("amenities") or [],
            images=raw.get("images") or [],
            room=HotelRoom(
                type=raw.get("room_type"),
                beds=raw.get("bed_count"),
                max_guests=raw.get("max_guests"),
            ),
            policies=HotelPolicies(
                free_cancellation=raw.get("free_cancellation") or False,
                breakfast_included=raw.get("breakfast_included") or False,
                pay_at_property=raw.get("pay_at_property") or False,
            ),
            fees=HotelFees(
                resort_fee=raw.get("resort_fee") or 0,
                cleaning_fee=raw.get("cleaning_fee") or 0,
                city_tax=raw.get("city_tax") or 0,
            ),
            raw=raw.get("raw") or {},
        )


def _parse_retry_after(value: Optional[str]) -> float:
    if not value:
        return DEFAULT_RETRY_AFTER
    try:
        return max(0.0, float(value))
    except ValueError:
        return DEFAULT_RETRY_AFTER
