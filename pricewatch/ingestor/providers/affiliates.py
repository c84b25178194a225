"""Affiliate providers without a live search integration yet."""
import logging
from typing import List

from pricewatch.shared.errors import ValidationError
from pricewatch.shared.schemas import FlightResult, FlightSearchParams, HotelResult, HotelSearchParams
from .base import FLIGHTS, HOTELS, BasePriceProvider

logger = logging.getLogger(__name__)


class KayakProvider(BasePriceProvider):
    id = "kayak"
    display_name = "Kayak"
    base_url = "https://api.kayak.com/v1"
    commission = 0.08
    supports = frozenset({FLIGHTS, HOTELS})

    async def _search_flights(self, params: FlightSearchParams) -> List[FlightResult]:
        logger.info("Kayak flight search not yet implemented")
        return []

    async def _search_hotels(self, params: HotelSearchParams) -> List[HotelResult]:
        logger.info("Kayak hotel search not yet implemented")
        return []

    def booking_url(self, result: FlightResult) -> str:
        if not result.id:
            raise ValidationError("Result ID is required for booking URL")
        return f"https://www.kayak.com/book/flight?p={result.id}&aid={self.affiliate_id}"


class AgodaProvider(BasePriceProvider):
    id = "agoda"
    display_name = "Agoda"
    base_url = "https://affiliateapi.agoda.com/affiliateservice/v1"
    commission = 0.13
    supports = frozenset({HOTELS})

    async def _search_hotels(self, params: HotelSearchParams) -> List[HotelResult]:
        logger.info("Agoda hotel search not yet implemented")
        return []

    def booking_url(self, result: HotelResult) -> str:
        if not result.id:
            raise ValidationError("Hotel ID is required for booking URL")
        return f"https://www.agoda.com/hotel/{result.id}?affiliateId={self.affiliate_id}"


class TripProvider(BasePriceProvider):
    id = "trip"
    display_name = "Trip.com"
    base_url = "https://openapi.trip.com/affiliate"
    commission = 0.11
    supports = frozenset({FLIGHTS, HOTELS})

    async def _search_flights(self, params: FlightSearchParams) -> List[FlightResult]:
        logger.info("Trip.com flight search not yet implemented")
        return []

    async def _search_hotels(self, params: HotelSearchParams) -> List[HotelResult]:
        logger.info("Trip.com hotel search not yet implemented")
        return []

    def booking_url(self, result: FlightResult) -> str:
        if not result.id:
            raise ValidationError("Result ID is required for booking URL")
        return f"https://www.trip.com/booking/redirect?affiliateId={self.affiliate_id}&resultId={result.id}"
