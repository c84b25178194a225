"""Skyscanner provider using the live-pricing session API."""
import logging
from typing import Any, Dict, List, Optional

from pricewatch.shared.schemas import FlightResult, FlightSearchParams
from .base import FLIGHTS, BasePriceProvider

logger = logging.getLogger(__name__)


class SkyscannerProvider(BasePriceProvider):
    """Creates a pricing session and polls it until results are complete."""

    id = "skyscanner"
    display_name = "Skyscanner"
    base_url = "https://partners.api.skyscanner.net/apiservices"
    commission = 0.10
    default_timeout = 45.0  # Skyscanner can be slow
    supports = frozenset({FLIGHTS})

    poll_interval = 2.0
    max_polls = 3

    async def _search_flights(self, params: FlightSearchParams) -> List[FlightResult]:
        try:
            session = await self._request(
                "POST",
                "/pricing/v1.0",
                headers={"api-key": self.api_key},
                data={
                    "country": "US",
                    "currency": "USD",
                    "locale": "en-US",
                    "originplace": params.origin,
                    "destinationplace": params.destination,
                    "outbounddate": params.departure_date.isoformat(),
                    "inbounddate": params.return_date.isoformat() if params.return_date else "",
                    "adults": str(params.passengers or 1),
                    "cabinclass": params.cabin_class,
                },
            )
        except Exception as e:
            logger.error(f"Skyscanner API error while creating session: {e}")
            raise

        token = session.get("sessionToken") if isinstance(session, dict) else None
        if not token:
            logger.warning(f"Unexpected response format from {self.name}")
            return []

        itineraries = await self._poll(token)
        results = []
        for itinerary in itineraries:
            try:
                results.append(self.standardize_flight(self._map_itinerary(itinerary)))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping malformed Skyscanner itinerary: {e}")
        return results

    async def _poll(self, token: str) -> List[Dict[str, Any]]:
        itineraries: List[Dict[str, Any]] = []
        for _ in range(self.max_polls):
            await self._sleep(self.poll_interval)
            data = await self._request(
                "GET",
                f"/pricing/v1.0/{token}",
                headers={"api-key": self.api_key},
            )
            if not isinstance(data, dict):
                logger.warning(f"Unexpected Skyscanner poll response for session {token}")
                continue
            itineraries = data.get("itineraries") or []
            if data.get("status") == "UpdatesComplete":
                break
        return itineraries

    def _map_itinerary(self, itinerary: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "id": itinerary["id"],
            "airline": itinerary.get("carrier"),
            "flight_number": itinerary.get("flightNumber"),
            "price": itinerary["price"],
            "currency": itinerary.get("currency"),
            "departure_airport": itinerary.get("origin"),
            "departure_time": itinerary.get("departure"),
            "arrival_airport": itinerary.get("destination"),
            "arrival_time": itinerary.get("arrival"),
            "duration": itinerary.get("duration"),
            "stops": itinerary.get("stops") or 0,
            "raw": itinerary,
        }

    def booking_url(self, result: FlightResult) -> str:
        link: Optional[str] = result.raw.get("deeplink") if result.raw else None
        return link or f"https://www.skyscanner.com/transport/flights/?aid={self.affiliate_id}"
