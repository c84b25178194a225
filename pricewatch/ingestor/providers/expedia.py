"""Expedia provider for flight offers."""
import logging
from typing import Any, Dict, List

from pricewatch.shared.errors import ValidationError
from pricewatch.shared.schemas import FlightResult, FlightSearchParams, HotelResult, HotelSearchParams
from .base import FLIGHTS, HOTELS, BasePriceProvider

logger = logging.getLogger(__name__)


class ExpediaProvider(BasePriceProvider):
    """Fetches flight offers from the Expedia partner API."""

    id = "expedia"
    display_name = "Expedia"
    base_url = "https://api.expedia.com/v3"
    commission = 0.12
    supports = frozenset({FLIGHTS, HOTELS})

    async def _search_flights(self, params: FlightSearchParams) -> List[FlightResult]:
        try:
            data = await self._request(
                "POST",
                "/flights/search",
                headers={
                    "Authorization": f"Bearer {self.api_key}",
                    "Content-Type": "application/json",
                },
                json={
                    "origin": params.origin,
                    "destination": params.destination,
                    "departureDate": params.departure_date.isoformat(),
                    "returnDate": params.return_date.isoformat() if params.return_date else None,
                    "adults": params.passengers or 1,
                    "cabinClass": params.cabin_class.upper(),
                },
            )
        except Exception as e:
            logger.error(f"Expedia API error during searchFlights: {e}")
            raise

        flights = data.get("flights") if isinstance(data, dict) else None
        if not isinstance(flights, list):
            logger.warning(f"Unexpected response format from {self.name}")
            return []

        results = []
        for flight in flights:
            try:
                results.append(self.standardize_flight(self._map_offer(flight)))
            except (KeyError, IndexError, TypeError, ValueError) as e:
                logger.warning(f"Skipping malformed Expedia offer: {e}")
        return results

    async def _search_hotels(self, params: HotelSearchParams) -> List[HotelResult]:
        logger.info("Expedia hotel search not yet implemented")
        return []

    def _map_offer(self, flight: Dict[str, Any]) -> Dict[str, Any]:
        segments = flight["segments"]
        first, last = segments[0], segments[-1]
        return {
            "id": flight["offerId"],
            "airline": first.get("carrierCode"),
            "flight_number": first.get("flightNumber"),
            "price": flight["price"]["total"],
            "currency": flight["price"].get("currency"),
            "departure_airport": first["departure"].get("iataCode"),
            "departure_time": first["departure"].get("at"),
            "arrival_airport": last["arrival"].get("iataCode"),
            "arrival_time": last["arrival"].get("at"),
            "duration": sum(seg.get("duration") or 0 for seg in segments),
            "stops": len(segments) - 1,
            "baggage_included": (flight.get("baggageAllowance") or {}).get("included", False),
            "raw": flight,
        }

    def booking_url(self, result: FlightResult) -> str:
        if not result.id:
            raise ValidationError("Result ID is required for booking URL")
        return f"https://www.expedia.com/Flight-Information?offerId={result.id}&aid={self.affiliate_id}"
