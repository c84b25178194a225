"""Shared Pydantic schemas for provider results, searches and notifications."""
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


def utcnow() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


class AlertType(str, Enum):
    """Kinds of travel search an alert can watch."""
    FLIGHT = "flight"
    HOTEL = "hotel"
    CAR = "car"
    PACKAGE = "package"


class Trend(str, Enum):
    FALLING = "falling"
    RISING = "rising"
    STABLE = "stable"


class DealRating(str, Enum):
    EXCELLENT = "excellent"
    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"
    UNKNOWN = "unknown"


# ============================================
# Search parameters
# ============================================

class FlightSearchParams(BaseModel):
    """Parameters for a flight price search."""
    origin: Optional[str] = None
    destination: Optional[str] = None
    departure_date: Optional[date] = None
    return_date: Optional[date] = None
    adults: int = 1
    children: int = 0
    infants: int = 0
    cabin_class: str = "economy"

    @property
    def passengers(self) -> int:
        return self.adults + self.children

    @property
    def identifier(self) -> str:
        return f"{(self.origin or '').upper()}-{(self.destination or '').upper()}"


class HotelSearchParams(BaseModel):
    """Parameters for a hotel price search."""
    location: Optional[str] = None
    city_id: Optional[str] = None
    check_in: Optional[date] = None
    check_out: Optional[date] = None
    adults: int = 2
    children: int = 0
    rooms: int = 1

    @property
    def identifier(self) -> str:
        return self.location or ""

    @property
    def nights(self) -> Optional[int]:
        if self.check_in and self.check_out:
            return (self.check_out - self.check_in).days
        return None


# ============================================
# Canonical provider results
# ============================================

class FlightEndpoint(BaseModel):
    airport: Optional[str] = None
    time: Optional[str] = None
    terminal: Optional[str] = None


class Baggage(BaseModel):
    included: bool = False
    carry_on: int = 1
    checked: int = 0


class FlightResult(BaseModel):
    """A flight offer in the provider-agnostic shape."""
    id: str
    provider: str
    price: float
    currency: str = "USD"
    airline: Optional[str] = None
    flight_number: Optional[str] = None
    departure: FlightEndpoint = Field(default_factory=FlightEndpoint)
    arrival: FlightEndpoint = Field(default_factory=FlightEndpoint)
    duration: Optional[int] = None
    stops: int = 0
    is_direct: bool = True
    baggage: Baggage = Field(default_factory=Baggage)
    cancellation: str = "unknown"
    amenities: List[str] = Field(default_factory=list)
    raw: Dict[str, Any] = Field(default_factory=dict)


class HotelLocation(BaseModel):
    address: Optional[str] = None
    city: Optional[str] = None
    coordinates: Optional[Dict[str, float]] = None
    neighborhood: Optional[str] = None


class HotelRoom(BaseModel):
    type: Optional[str] = None
    beds: Optional[int] = None
    max_guests: Optional[int] = None


class HotelPolicies(BaseModel):
    free_cancellation: bool = False
    breakfast_included: bool = False
    pay_at_property: bool = False


class HotelFees(BaseModel):
    resort_fee: float = 0
    cleaning_fee: float = 0
    city_tax: float = 0


class HotelResult(BaseModel):
    """A hotel offer in the provider-agnostic shape."""
    id: str
    provider: str
    price: float
    currency: str = "USD"
    name: Optional[str] = None
    stars: float = 0
    rating: float = 0
    reviews: int = 0
    location: HotelLocation = Field(default_factory=HotelLocation)
    amenities: List[str] = Field(default_factory=list)
    images: List[str] = Field(default_factory=list)
    room: HotelRoom = Field(default_factory=HotelRoom)
    policies: HotelPolicies = Field(default_factory=HotelPolicies)
    fees: HotelFees = Field(default_factory=HotelFees)
    raw: Dict[str, Any] = Field(default_factory=dict)


# ============================================
# Aggregation
# ============================================

class PriceSnapshot(BaseModel):
    """One timestamped price observation."""
    price: float
    currency: str = "USD"
    timestamp: datetime = Field(default_factory=utcnow)
    source: str = "aggregate"
    payload: Dict[str, Any] = Field(default_factory=dict)


class AggregatedPrices(BaseModel):
    """Merged results of one logical search across all providers."""
    search_id: str
    type: AlertType
    identifier: str
    timestamp: datetime = Field(default_factory=utcnow)
    results: List[Any] = Field(default_factory=list)
    sources: List[str] = Field(default_factory=list)
    failed_sources: List[str] = Field(default_factory=list)
    total_results: int = 0
    lowest: Optional[float] = None
    highest: Optional[float] = None
    average: Optional[float] = None
    currency: str = "USD"

    @property
    def has_price(self) -> bool:
        return self.lowest is not None


class PriceHistorySummary(BaseModel):
    identifier: str
    type: AlertType
    days: int
    data: List[PriceSnapshot] = Field(default_factory=list)
    average: Optional[float] = None
    lowest: Optional[float] = None
    highest: Optional[float] = None
    trend: Trend = Trend.STABLE


class Savings(BaseModel):
    amount: float = 0
    percentage: float = 0


class DealAssessment(BaseModel):
    is_deal: bool
    rating: DealRating
    recommendation: str
    savings: Savings = Field(default_factory=Savings)
    current_price: Optional[float] = None
    historical_average: Optional[float] = None


# ============================================
# Notifications
# ============================================

class NotificationResult(BaseModel):
    """Acknowledgement returned by a notification collaborator."""
    success: bool
    reference: Optional[str] = None
    error: Optional[str] = None


class PriceAlertNotification(BaseModel):
    """Notification event for a triggered alert."""
    alert_id: str
    user_id: str
    type: AlertType
    route: str
    departure_date: Optional[date] = None
    return_date: Optional[date] = None
    email_address: Optional[str] = None
    phone_number: Optional[str] = None
    channels: List[str] = Field(default_factory=lambda: ["email"])
    target_price: float
    triggered_price: float
    original_price: Optional[float] = None
    currency: str = "USD"
    timestamp: datetime = Field(default_factory=utcnow)

    @property
    def savings(self) -> Optional[float]:
        if self.original_price is None:
            return None
        return self.original_price - self.triggered_price

    @property
    def savings_percent(self) -> Optional[float]:
        if not self.original_price:
            return None
        return (self.original_price - self.triggered_price) / self.original_price * 100
