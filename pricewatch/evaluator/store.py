"""Alert persistence: repository interface plus in-memory, SQL and cached stores."""
import enum
import logging
from abc import ABC, abstractmethod
from datetime import date, datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional

from pydantic import BaseModel, Field
from sqlalchemy.exc import SQLAlchemyError

from pricewatch.shared.errors import (
    AlertDeletedError,
    InvalidTransitionError,
    PersistenceError,
    ValidationError,
)
from pricewatch.shared.schemas import AlertType, utcnow
from .db import JSON_FIELDS, PriceAlertRow
from .models import AlertStatus, PriceAlert, can_transition

logger = logging.getLogger(__name__)

IMMUTABLE_FIELDS = frozenset({"id", "user_id", "created_at"})


class AlertStats(BaseModel):
    total: int = 0
    active: int = 0
    triggered: int = 0
    paused: int = 0
    expired: int = 0
    by_type: Dict[str, int] = Field(default_factory=dict)


def validate_alert(alert: PriceAlert) -> None:
    """Raise ValidationError listing every missing or invalid field."""
    errors = []
    if not alert.user_id:
        errors.append("User ID is required")
    if alert.type != AlertType.HOTEL and not alert.origin:
        errors.append("Origin is required")
    if not alert.destination:
        errors.append("Destination is required" if alert.type != AlertType.HOTEL else "Location is required")
    if not alert.departure_date:
        errors.append("Departure date is required")
    if not alert.target_price or alert.target_price <= 0:
        errors.append("Valid target price is required")
    if errors:
        raise ValidationError(f"Validation failed: {', '.join(errors)}", {"errors": errors})


def build_alert(data: Dict[str, Any], expiry_days: int) -> PriceAlert:
    """Create and validate a new alert from caller data."""
    data = dict(data)
    try:
        alert = PriceAlert.model_validate(data)
    except ValueError as e:
        raise ValidationError(f"Validation failed: {e}") from e

    if data.get("expires_at") is None:
        alert.expires_at = alert.created_at + timedelta(days=expiry_days)
    validate_alert(alert)

    if not alert.alert_when.has_threshold:
        logger.warning(
            f"Alert {alert.id} uses {alert.alert_when.mode.value} without a threshold and will never trigger"
        )
    return alert


def apply_patch(alert: PriceAlert, patch: Dict[str, Any], now: Optional[datetime] = None) -> PriceAlert:
    """Return a validated copy of ``alert`` with ``patch`` applied."""
    if alert.is_deleted:
        raise AlertDeletedError(alert.id)

    changes = {k: v for k, v in patch.items() if k not in IMMUTABLE_FIELDS}
    if "status" in changes:
        target = AlertStatus(changes["status"])
        if not can_transition(alert.status, target):
            raise InvalidTransitionError(alert.id, alert.status.value, target.value)

    data = alert.model_dump()
    data.update(changes)
    data["updated_at"] = now or utcnow()
    try:
        return PriceAlert.model_validate(data)
    except ValueError as e:
        raise ValidationError(f"Invalid update for alert {alert.id}: {e}") from e


def matches_route(
    alert: PriceAlert,
    origin: Optional[str],
    destination: str,
    type_: Optional[AlertType] = None,
    departure_date: Optional[date] = None,
) -> bool:
    if alert.status != AlertStatus.ACTIVE:
        return False
    if origin is not None and alert.origin != origin:
        return False
    if alert.destination != destination:
        return False
    if type_ and alert.type != AlertType(type_):
        return False
    if departure_date and alert.departure_date:
        diff_days = abs((alert.departure_date - departure_date).days)
        if alert.flexible_dates:
            return diff_days <= alert.date_flexibility
        return diff_days == 0
    return True


def compute_stats(alerts: Iterable[PriceAlert]) -> AlertStats:
    stats = AlertStats()
    for alert in alerts:
        stats.total += 1
        if alert.status == AlertStatus.ACTIVE:
            stats.active += 1
        elif alert.status == AlertStatus.TRIGGERED:
            stats.triggered += 1
        elif alert.status == AlertStatus.PAUSED:
            stats.paused += 1
        elif alert.status == AlertStatus.EXPIRED:
            stats.expired += 1
        stats.by_type[alert.type.value] = stats.by_type.get(alert.type.value, 0) + 1
    return stats


class AlertStore(ABC):
    """Async repository for price alerts."""

    def __init__(self, expiry_days: int = 30):
        self.expiry_days = expiry_days

    @abstractmethod
    async def create(self, data: Dict[str, Any]) -> PriceAlert:
        pass

    @abstractmethod
    async def find_by_id(self, alert_id: str) -> Optional[PriceAlert]:
        pass

    @abstractmethod
    async def find_by_user(
        self,
        user_id: str,
        status: Optional[AlertStatus] = None,
        type: Optional[AlertType] = None,
        limit: Optional[int] = 50,
        offset: int = 0,
    ) -> List[PriceAlert]:
        """Non-deleted alerts of a user, newest first."""
        pass

    @abstractmethod
    async def find_active_alerts(self, now: Optional[datetime] = None) -> List[PriceAlert]:
        """Active alerts, expiring (and persisting) any whose expiry has passed."""
        pass

    @abstractmethod
    async def find_pending_notifications(self) -> List[PriceAlert]:
        """Triggered alerts whose notification has not been acknowledged."""
        pass

    @abstractmethod
    async def find_alerts_for_route(
        self,
        origin: Optional[str],
        destination: str,
        type: Optional[AlertType] = None,
        departure_date: Optional[date] = None,
    ) -> List[PriceAlert]:
        pass

    @abstractmethod
    async def update(self, alert_id: str, patch: Dict[str, Any]) -> Optional[PriceAlert]:
        pass

    @abstractmethod
    async def delete(self, alert_id: str) -> bool:
        pass

    async def get_stats(self, user_id: str) -> AlertStats:
        return compute_stats(await self.find_by_user(user_id, limit=None))

    async def close(self) -> None:
        pass


class InMemoryAlertStore(AlertStore):
    """Process-local store. All alerts are lost on restart."""

    def __init__(self, expiry_days: int = 30):
        super().__init__(expiry_days)
        self._alerts: Dict[str, PriceAlert] = {}
        self._by_user: Dict[str, set] = {}
        self._active: set = set()

    def _put(self, alert: PriceAlert) -> PriceAlert:
        self._alerts[alert.id] = alert
        self._by_user.setdefault(alert.user_id, set()).add(alert.id)
        if alert.status == AlertStatus.ACTIVE:
            self._active.add(alert.id)
        else:
            self._active.discard(alert.id)
        return alert.model_copy(deep=True)

    async def create(self, data: Dict[str, Any]) -> PriceAlert:
        alert = build_alert(data, self.expiry_days)
        logger.info(f"Created {alert.type.value} alert {alert.id} for user {alert.user_id}")
        return self._put(alert)

    async def find_by_id(self, alert_id: str) -> Optional[PriceAlert]:
        alert = self._alerts.get(alert_id)
        return alert.model_copy(deep=True) if alert else None

    async def find_by_user(self, user_id, status=None, type=None, limit=50, offset=0) -> List[PriceAlert]:
        alerts = [
            self._alerts[i] for i in self._by_user.get(user_id, ())
            if self._alerts[i].status != AlertStatus.DELETED
        ]
        if status:
            alerts = [a for a in alerts if a.status == AlertStatus(status)]
        if type:
            alerts = [a for a in alerts if a.type == AlertType(type)]
        alerts.sort(key=lambda a: a.created_at, reverse=True)
        end = offset + limit if limit is not None else None
        return [a.model_copy(deep=True) for a in alerts[offset:end]]

    async def find_active_alerts(self, now: Optional[datetime] = None) -> List[PriceAlert]:
        now = now or utcnow()
        active = []
        for alert_id in list(self._active):
            alert = self._alerts[alert_id]
            if alert.check_expiry(now):
                self._active.discard(alert_id)
                continue
            if alert.status == AlertStatus.ACTIVE:
                active.append(alert.model_copy(deep=True))
        return active

    async def find_pending_notifications(self) -> List[PriceAlert]:
        return [a.model_copy(deep=True) for a in self._alerts.values() if a.awaiting_notification]

    async def find_alerts_for_route(self, origin, destination, type=None, departure_date=None) -> List[PriceAlert]:
        return [
            a.model_copy(deep=True) for a in self._alerts.values()
            if matches_route(a, origin, destination, type, departure_date)
        ]

    async def update(self, alert_id: str, patch: Dict[str, Any]) -> Optional[PriceAlert]:
        alert = self._alerts.get(alert_id)
        if not alert:
            return None
        return self._put(apply_patch(alert, patch))

    async def delete(self, alert_id: str) -> bool:
        alert = self._alerts.get(alert_id)
        if not alert:
            return False
        alert.delete()
        self._active.discard(alert_id)
        logger.info(f"Deleted alert {alert_id}")
        return True


def _row_values(alert: PriceAlert) -> Dict[str, Any]:
    dumped = alert.model_dump(mode="json", include=set(JSON_FIELDS))
    values = {}
    for column in PriceAlertRow.__table__.columns:
        if column.name in JSON_FIELDS:
            values[column.name] = dumped[column.name]
            continue
        value = getattr(alert, column.name)
        values[column.name] = value.value if isinstance(value, enum.Enum) else value
    return values


def _from_row(row: PriceAlertRow) -> PriceAlert:
    return PriceAlert.model_validate(
        {column.name: getattr(row, column.name) for column in PriceAlertRow.__table__.columns}
    )


class SQLAlchemyAlertStore(AlertStore):
    """Alerts persisted in the ``price_alerts`` table."""

    def __init__(self, session_factory, expiry_days: int = 30):
        super().__init__(expiry_days)
        self.session_factory = session_factory

    def _fail(self, session, action: str, error: SQLAlchemyError):
        session.rollback()
        logger.error(f"Failed to {action}: {error}")
        raise PersistenceError(f"Failed to {action}: {error}") from error

    async def create(self, data: Dict[str, Any]) -> PriceAlert:
        alert = build_alert(data, self.expiry_days)
        session = self.session_factory()
        try:
            session.add(PriceAlertRow(**_row_values(alert)))
            session.commit()
        except SQLAlchemyError as e:
            self._fail(session, f"create alert {alert.id}", e)
        finally:
            session.close()
        logger.info(f"Created {alert.type.value} alert {alert.id} for user {alert.user_id}")
        return alert

    async def find_by_id(self, alert_id: str) -> Optional[PriceAlert]:
        session = self.session_factory()
        try:
            row = session.get(PriceAlertRow, alert_id)
            return _from_row(row) if row else None
        except SQLAlchemyError as e:
            self._fail(session, f"load alert {alert_id}", e)
        finally:
            session.close()

    async def find_by_user(self, user_id, status=None, type=None, limit=50, offset=0) -> List[PriceAlert]:
        session = self.session_factory()
        try:
            query = session.query(PriceAlertRow).filter(
                PriceAlertRow.user_id == user_id,
                PriceAlertRow.status != AlertStatus.DELETED.value,
            )
            if status:
                query = query.filter(PriceAlertRow.status == AlertStatus(status).value)
            if type:
                query = query.filter(PriceAlertRow.type == AlertType(type).value)
            query = query.order_by(PriceAlertRow.created_at.desc()).offset(offset)
            if limit is not None:
                query = query.limit(limit)
            return [_from_row(row) for row in query.all()]
        except SQLAlchemyError as e:
            self._fail(session, f"load alerts for user {user_id}", e)
        finally:
            session.close()

    async def find_active_alerts(self, now: Optional[datetime] = None) -> List[PriceAlert]:
        now = now or utcnow()
        session = self.session_factory()
        try:
            rows = session.query(PriceAlertRow).filter(PriceAlertRow.status == AlertStatus.ACTIVE.value).all()
            active = []
            expired = 0
            for row in rows:
                alert = _from_row(row)
                if alert.check_expiry(now):
                    row.status = alert.status.value
                    row.updated_at = alert.updated_at
                    expired += 1
                    continue
                active.append(alert)
            if expired:
                session.commit()
                logger.info(f"Expired {expired} alerts")
            return active
        except SQLAlchemyError as e:
            self._fail(session, "load active alerts", e)
        finally:
            session.close()

    async def find_pending_notifications(self) -> List[PriceAlert]:
        session = self.session_factory()
        try:
            rows = session.query(PriceAlertRow).filter(
                PriceAlertRow.status == AlertStatus.TRIGGERED.value,
                PriceAlertRow.notification_sent.is_(False),
            ).all()
            return [_from_row(row) for row in rows]
        except SQLAlchemyError as e:
            self._fail(session, "load pending notifications", e)
        finally:
            session.close()

    async def find_alerts_for_route(self, origin, destination, type=None, departure_date=None) -> List[PriceAlert]:
        session = self.session_factory()
        try:
            query = session.query(PriceAlertRow).filter(
                PriceAlertRow.status == AlertStatus.ACTIVE.value,
                PriceAlertRow.destination == destination,
            )
            if origin is not None:
                query = query.filter(PriceAlertRow.origin == origin)
            if type:
                query = query.filter(PriceAlertRow.type == AlertType(type).value)
            alerts = [_from_row(row) for row in query.all()]
        except SQLAlchemyError as e:
            self._fail(session, f"load alerts for {origin}-{destination}", e)
        finally:
            session.close()
        return [a for a in alerts if matches_route(a, origin, destination, type, departure_date)]

    async def update(self, alert_id: str, patch: Dict[str, Any]) -> Optional[PriceAlert]:
        session = self.session_factory()
        try:
            row = session.get(PriceAlertRow, alert_id)
            if not row:
                return None
            updated = apply_patch(_from_row(row), patch)
            for name, value in _row_values(updated).items():
                setattr(row, name, value)
            session.commit()
            return updated
        except SQLAlchemyError as e:
            self._fail(session, f"update alert {alert_id}", e)
        finally:
            session.close()

    async def delete(self, alert_id: str) -> bool:
        session = self.session_factory()
        try:
            row = session.get(PriceAlertRow, alert_id)
            if not row:
                return False
            if row.status != AlertStatus.DELETED.value:
                row.status = AlertStatus.DELETED.value
                row.updated_at = utcnow()
                session.commit()
                logger.info(f"Deleted alert {alert_id}")
            return True
        except SQLAlchemyError as e:
            self._fail(session, f"delete alert {alert_id}", e)
        finally:
            session.close()


class CachedAlertStore(AlertStore):
    """
    Write-through cache in front of another store.

    Writes go to the backend first and only reach the cache once they
    succeed; id lookups are served from the cache when possible.
    """

    def __init__(self, backend: AlertStore):
        super().__init__(backend.expiry_days)
        self.backend = backend
        self._cache: Dict[str, PriceAlert] = {}

    def _remember(self, alert: Optional[PriceAlert]) -> Optional[PriceAlert]:
        if alert is None:
            return None
        self._cache[alert.id] = alert
        return alert.model_copy(deep=True)

    def _remember_all(self, alerts: List[PriceAlert]) -> List[PriceAlert]:
        return [self._remember(a) for a in alerts]

    def invalidate(self, alert_id: Optional[str] = None) -> None:
        if alert_id is None:
            self._cache.clear()
        else:
            self._cache.pop(alert_id, None)

    async def create(self, data: Dict[str, Any]) -> PriceAlert:
        return self._remember(await self.backend.create(data))

    async def find_by_id(self, alert_id: str) -> Optional[PriceAlert]:
        cached = self._cache.get(alert_id)
        if cached is not None:
            return cached.model_copy(deep=True)
        return self._remember(await self.backend.find_by_id(alert_id))

    async def find_by_user(self, user_id, status=None, type=None, limit=50, offset=0) -> List[PriceAlert]:
        return self._remember_all(await self.backend.find_by_user(user_id, status, type, limit, offset))

    async def find_active_alerts(self, now: Optional[datetime] = None) -> List[PriceAlert]:
        # Expiries happen in the backend; drop stale active copies first.
        for alert_id in [i for i, a in self._cache.items() if a.status == AlertStatus.ACTIVE]:
            self._cache.pop(alert_id)
        return self._remember_all(await self.backend.find_active_alerts(now))

    async def find_pending_notifications(self) -> List[PriceAlert]:
        return self._remember_all(await self.backend.find_pending_notifications())

    async def find_alerts_for_route(self, origin, destination, type=None, departure_date=None) -> List[PriceAlert]:
        return self._remember_all(
            await self.backend.find_alerts_for_route(origin, destination, type, departure_date)
        )

    async def update(self, alert_id: str, patch: Dict[str, Any]) -> Optional[PriceAlert]:
        try:
            updated = await self.backend.update(alert_id, patch)
        except PersistenceError:
            self.invalidate(alert_id)
            raise
        if updated is None:
            self.invalidate(alert_id)
        return self._remember(updated)

    async def delete(self, alert_id: str) -> bool:
        deleted = await self.backend.delete(alert_id)
        self.invalidate(alert_id)
        return deleted

    async def close(self) -> None:
        self._cache.clear()
        await self.backend.close()
