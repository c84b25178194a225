"""Price alert model and its lifecycle state machine."""
import enum
import logging
import uuid
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from pricewatch.shared.errors import AlertDeletedError, AlertStateError, InvalidTransitionError
from pricewatch.shared.schemas import AlertType, utcnow

logger = logging.getLogger(__name__)

DEFAULT_EXPIRY_DAYS = 30


class AlertStatus(str, enum.Enum):
    """Alert lifecycle states."""
    ACTIVE = "active"
    PAUSED = "paused"
    TRIGGERED = "triggered"
    EXPIRED = "expired"
    DELETED = "deleted"


class ConditionMode(str, enum.Enum):
    """Alert condition types."""
    BELOW = "below"
    DROP_BY_PERCENTAGE = "drop_by_percentage"
    DROP_BY_AMOUNT = "drop_by_amount"


class CabinClass(str, enum.Enum):
    ECONOMY = "economy"
    PREMIUM_ECONOMY = "premium_economy"
    BUSINESS = "business"
    FIRST = "first"


# Triggered alerts are never re-armed automatically.
ALLOWED_TRANSITIONS: Dict[AlertStatus, frozenset] = {
    AlertStatus.ACTIVE: frozenset({AlertStatus.PAUSED, AlertStatus.TRIGGERED, AlertStatus.EXPIRED, AlertStatus.DELETED}),
    AlertStatus.PAUSED: frozenset({AlertStatus.ACTIVE, AlertStatus.EXPIRED, AlertStatus.DELETED}),
    AlertStatus.TRIGGERED: frozenset({AlertStatus.DELETED}),
    AlertStatus.EXPIRED: frozenset({AlertStatus.DELETED}),
    AlertStatus.DELETED: frozenset(),
}


def can_transition(current: AlertStatus, target: AlertStatus) -> bool:
    return current == target or target in ALLOWED_TRANSITIONS[current]


class AlertCondition(BaseModel):
    """When an alert fires."""
    mode: ConditionMode = ConditionMode.BELOW
    percentage: Optional[float] = None
    amount: Optional[float] = None

    @property
    def has_threshold(self) -> bool:
        if self.mode == ConditionMode.DROP_BY_PERCENTAGE:
            return bool(self.percentage)
        if self.mode == ConditionMode.DROP_BY_AMOUNT:
            return bool(self.amount)
        return True


class NotificationPreferences(BaseModel):
    email: bool = True
    push: bool = False
    sms: bool = False
    email_address: Optional[str] = None
    phone_number: Optional[str] = None

    def channels(self) -> List[str]:
        return [name for name in ("email", "push", "sms") if getattr(self, name)]


class PriceHistoryEntry(BaseModel):
    price: float
    timestamp: datetime = Field(default_factory=utcnow)
    source: str = "aggregate"


class PriceAlert(BaseModel):
    """
    A user's watch on a travel search.

    Status moves only along ``ALLOWED_TRANSITIONS``. Once deleted, every
    attribute assignment raises ``AlertDeletedError``.
    """

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    user_id: str

    type: AlertType = AlertType.FLIGHT
    origin: Optional[str] = None
    origin_code: Optional[str] = None
    destination: Optional[str] = None
    destination_code: Optional[str] = None

    departure_date: Optional[date] = None
    return_date: Optional[date] = None
    flexible_dates: bool = False
    date_flexibility: int = 3  # +/- days

    adults: int = 1
    children: int = 0
    infants: int = 0
    cabin_class: CabinClass = CabinClass.ECONOMY

    target_price: float
    current_price: Optional[float] = None
    original_price: Optional[float] = None
    currency: str = "USD"
    alert_when: AlertCondition = Field(default_factory=AlertCondition)

    notifications: NotificationPreferences = Field(default_factory=NotificationPreferences)

    status: AlertStatus = AlertStatus.ACTIVE
    price_history: List[PriceHistoryEntry] = Field(default_factory=list)

    triggered_at: Optional[datetime] = None
    triggered_price: Optional[float] = None
    notification_sent: bool = False
    notification_sent_at: Optional[datetime] = None

    expires_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    last_checked_at: Optional[datetime] = None
    check_count: int = 0

    notes: str = ""
    tags: List[str] = Field(default_factory=list)

    @field_validator(
        "triggered_at", "notification_sent_at", "expires_at", "created_at", "updated_at", "last_checked_at"
    )
    @classmethod
    def _assume_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @model_validator(mode="after")
    def _fill_defaults(self) -> "PriceAlert":
        # Bypasses the deleted guard when loading stored alerts
        if self.original_price is None:
            self.__dict__["original_price"] = self.target_price
        if self.expires_at is None:
            self.__dict__["expires_at"] = self.created_at + timedelta(days=DEFAULT_EXPIRY_DAYS)
        return self

    def __setattr__(self, name: str, value: Any) -> None:
        if self.__dict__.get("status") == AlertStatus.DELETED:
            raise AlertDeletedError(self.id)
        super().__setattr__(name, value)

    # ------------------------------------------------------------------
    # State machine
    # ------------------------------------------------------------------

    @property
    def is_deleted(self) -> bool:
        return self.status == AlertStatus.DELETED

    def _move(self, target: AlertStatus, now: datetime) -> None:
        if self.is_deleted:
            raise AlertDeletedError(self.id)
        if not can_transition(self.status, target):
            raise InvalidTransitionError(self.id, self.status.value, target.value)
        self.updated_at = now
        self.status = target

    def check_expiry(self, now: Optional[datetime] = None) -> bool:
        """Expire an active or paused alert whose expiry has passed."""
        now = now or utcnow()
        if self.status in (AlertStatus.ACTIVE, AlertStatus.PAUSED) and self.expires_at and now > self.expires_at:
            self._move(AlertStatus.EXPIRED, now)
            logger.info(f"Alert {self.id} expired")
            return True
        return self.status == AlertStatus.EXPIRED

    def check_price(self, current_price: float, source: str = "aggregate", now: Optional[datetime] = None) -> bool:
        """
        Record an observed price and evaluate the trigger condition.

        Returns True only when this call moved the alert to triggered.
        """
        if self.is_deleted:
            raise AlertDeletedError(self.id)
        now = now or utcnow()
        if self.check_expiry(now):
            return False

        self.price_history.append(PriceHistoryEntry(price=current_price, timestamp=now, source=source))
        self.check_count += 1
        self.last_checked_at = now
        self.current_price = current_price
        self.updated_at = now

        if self.condition_met(current_price) and self.status == AlertStatus.ACTIVE:
            self._move(AlertStatus.TRIGGERED, now)
            self.triggered_at = now
            self.triggered_price = current_price
            logger.info(f"Alert {self.id} triggered at {current_price} {self.currency} (target {self.target_price})")
            return True
        return False

    def condition_met(self, current_price: float) -> bool:
        condition = self.alert_when
        if condition.mode == ConditionMode.BELOW:
            return current_price <= self.target_price

        if condition.mode == ConditionMode.DROP_BY_PERCENTAGE:
            if not self.original_price or not condition.percentage:
                return False
            drop_percent = (self.original_price - current_price) / self.original_price * 100
            return drop_percent >= condition.percentage

        if condition.mode == ConditionMode.DROP_BY_AMOUNT:
            if not self.original_price or not condition.amount:
                return False
            return self.original_price - current_price >= condition.amount

        return False

    def pause(self, now: Optional[datetime] = None) -> "PriceAlert":
        if self.status == AlertStatus.PAUSED:
            return self
        self._move(AlertStatus.PAUSED, now or utcnow())
        return self

    def resume(self, now: Optional[datetime] = None) -> "PriceAlert":
        now = now or utcnow()
        if self.status == AlertStatus.ACTIVE:
            return self
        if self.status == AlertStatus.PAUSED and self.check_expiry(now):
            raise InvalidTransitionError(self.id, AlertStatus.EXPIRED.value, AlertStatus.ACTIVE.value)
        self._move(AlertStatus.ACTIVE, now)
        return self

    def delete(self, now: Optional[datetime] = None) -> "PriceAlert":
        if self.is_deleted:
            return self
        self._move(AlertStatus.DELETED, now or utcnow())
        return self

    def mark_notification_sent(self, now: Optional[datetime] = None) -> "PriceAlert":
        if self.is_deleted:
            raise AlertDeletedError(self.id)
        if self.status != AlertStatus.TRIGGERED:
            raise AlertStateError(f"alert {self.id} has not been triggered")
        now = now or utcnow()
        self.notification_sent = True
        self.notification_sent_at = now
        self.updated_at = now
        return self

    # ------------------------------------------------------------------
    # Derived views
    # ------------------------------------------------------------------

    @property
    def route(self) -> str:
        """Aggregator identifier: ``ORIGIN-DEST`` for flights, the location otherwise."""
        if self.type == AlertType.FLIGHT:
            origin = self.origin_code or self.origin or ""
            destination = self.destination_code or self.destination or ""
            return f"{origin.upper()}-{destination.upper()}"
        return self.destination or ""

    @property
    def awaiting_notification(self) -> bool:
        return self.status == AlertStatus.TRIGGERED and not self.notification_sent

    def lowest_price(self) -> Optional[float]:
        if not self.price_history:
            return None
        return min(h.price for h in self.price_history)

    def highest_price(self) -> Optional[float]:
        if not self.price_history:
            return None
        return max(h.price for h in self.price_history)

    def average_price(self) -> Optional[float]:
        if not self.price_history:
            return None
        return sum(h.price for h in self.price_history) / len(self.price_history)

    def price_change_percentage(self) -> float:
        if not self.original_price or not self.current_price:
            return 0.0
        return (self.current_price - self.original_price) / self.original_price * 100

    def price_trend(self) -> str:
        if len(self.price_history) < 2:
            return "stable"
        recent = self.price_history[-5:]
        first, last = recent[0].price, recent[-1].price
        if last < first * 0.95:
            return "decreasing"
        if last > first * 1.05:
            return "increasing"
        return "stable"

    def summary(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type.value,
            "route": f"{self.origin} → {self.destination}",
            "departure_date": self.departure_date,
            "target_price": self.target_price,
            "current_price": self.current_price,
            "currency": self.currency,
            "status": self.status.value,
            "price_change": self.price_change_percentage(),
            "trend": self.price_trend(),
            "created_at": self.created_at,
        }
