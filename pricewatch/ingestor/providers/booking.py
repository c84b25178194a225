"""Booking.com provider for hotel rates."""
import base64
import logging
from typing import Any, Dict, List

from pricewatch.shared.errors import ValidationError
from pricewatch.shared.schemas import HotelResult, HotelSearchParams
from .base import HOTELS, BasePriceProvider

logger = logging.getLogger(__name__)


class BookingProvider(BasePriceProvider):
    """Fetches hotel rates from the Booking.com distribution API."""

    id = "booking"
    display_name = "Booking.com"
    base_url = "https://distribution-xml.booking.com/json/bookings"
    commission = 0.15
    supports = frozenset({HOTELS})

    def validate_hotel_params(self, params: HotelSearchParams) -> None:
        if not params.check_in or not params.check_out:
            raise ValidationError("Check-in and check-out dates are required")

    async def _search_hotels(self, params: HotelSearchParams) -> List[HotelResult]:
        credentials = base64.b64encode(f"{self.api_key}:".encode()).decode()
        try:
            data = await self._request(
                "GET",
                ".getHotels",
                headers={
                    "Authorization": f"Basic {credentials}",
                    "Content-Type": "application/json",
                },
                params={
                    "checkin": params.check_in.isoformat(),
                    "checkout": params.check_out.isoformat(),
                    "city_ids": params.city_id or params.location,
                    "room1": f"A{params.adults},{params.children}",
                    "rows": "20",
                    "output": "hotel_details,room_details",
                },
            )
        except Exception as e:
            logger.error(f"Booking.com API error during searchHotels: {e}")
            raise

        hotels = data.get("result") if isinstance(data, dict) else None
        if not isinstance(hotels, list):
            logger.warning(f"Unexpected response format from {self.name}")
            return []

        results = []
        for hotel in hotels:
            try:
                results.append(self.standardize_hotel(self._map_hotel(hotel)))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping malformed Booking.com hotel: {e}")
        return results

    def _map_hotel(self, hotel: Dict[str, Any]) -> Dict[str, Any]:
        facilities = hotel.get("hotel_facilities")
        return {
            "id": hotel["hotel_id"],
            "name": hotel.get("hotel_name"),
            "price": hotel["min_rate"],
            "currency": hotel.get("currencycode"),
            "stars": hotel.get("class"),
            "rating": hotel.get("review_score"),
            "review_count": hotel.get("review_nr"),
            "address": hotel.get("address"),
            "city": hotel.get("city"),
            "amenities": facilities.split(",") if facilities else [],
            "free_cancellation": hotel.get("cancellation_policy") == "free_cancellation",
            "raw": hotel,
        }

    def booking_url(self, result: HotelResult) -> str:
        hotel_id = result.raw.get("hotel_id") if result.raw else None
        if not hotel_id:
            raise ValidationError("Hotel ID is required for booking URL")
        return f"https://www.booking.com/hotel/{hotel_id}.html?aid={self.affiliate_id}"
