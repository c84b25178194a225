"""Hotels.com provider via RapidAPI."""
import logging
from datetime import date
from typing import Any, Dict, List, Optional
from urllib.parse import quote

from pricewatch.shared.errors import ValidationError
from pricewatch.shared.schemas import HotelResult, HotelSearchParams
from .base import HOTELS, BasePriceProvider

logger = logging.getLogger(__name__)


class HotelsComProvider(BasePriceProvider):
    """Resolves a region id for the location, then lists properties."""

    id = "hotels"
    display_name = "Hotels.com"
    base_url = "https://hotels4.p.rapidapi.com"
    commission = 0.14
    supports = frozenset({HOTELS})

    def _headers(self) -> Dict[str, str]:
        return {
            "X-RapidAPI-Key": self.api_key,
            "X-RapidAPI-Host": "hotels4.p.rapidapi.com",
        }

    async def _search_hotels(self, params: HotelSearchParams) -> List[HotelResult]:
        try:
            dest = await self._request(
                "GET",
                f"/locations/v3/search?q={quote(params.location)}",
                headers=self._headers(),
            )
            regions = dest.get("sr") if isinstance(dest, dict) else None
            region_id = regions[0].get("gaiaId") if regions else None
            if not region_id:
                logger.warning(f"No destination found for location: {params.location}")
                return []

            data = await self._request(
                "POST",
                "/properties/v2/list",
                headers=self._headers(),
                json={
                    "destination": {"regionId": region_id},
                    "checkInDate": _date_parts(params.check_in),
                    "checkOutDate": _date_parts(params.check_out),
                    "rooms": [{"adults": params.adults, "children": []}],
                },
            )
        except Exception as e:
            logger.error(f"Hotels.com API error during searchHotels: {e}")
            raise

        body = data if isinstance(data, dict) else {}
        properties = ((body.get("data") or {}).get("propertySearch") or {}).get("properties")
        if not isinstance(properties, list):
            logger.warning(f"Unexpected response format from {self.name}")
            return []

        results = []
        for hotel in properties:
            try:
                mapped = self._map_property(hotel)
                if mapped["price"] is None:
                    continue
                results.append(self.standardize_hotel(mapped))
            except (AttributeError, KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping malformed Hotels.com property: {e}")
        return results

    def _map_property(self, hotel: Dict[str, Any]) -> Dict[str, Any]:
        lead = (hotel.get("price") or {}).get("lead") or {}
        reviews = hotel.get("reviews") or {}
        image = hotel.get("propertyImage") or {}
        image_url = (image.get("image") or {}).get("url")
        return {
            "id": hotel.get("id"),
            "name": hotel.get("name"),
            "price": lead.get("amount"),
            "currency": (lead.get("currencyInfo") or {}).get("code") or lead.get("currency"),
            "stars": hotel.get("star"),
            "rating": reviews.get("score"),
            "review_count": reviews.get("total"),
            "address": image.get("description"),
            "amenities": [a.get("name") for a in hotel.get("amenities") or [] if a.get("name")],
            "images": [image_url] if image_url else [],
            "raw": hotel,
        }

    def booking_url(self, result: HotelResult) -> str:
        if not result.id:
            raise ValidationError("Hotel ID is required for booking URL")
        return f"https://www.hotels.com/ho{result.id}/?aid={self.affiliate_id}"


def _date_parts(value: Optional[date]) -> Optional[Dict[str, int]]:
    if value is None:
        return None
    return {"day": value.day, "month": value.month, "year": value.year}
