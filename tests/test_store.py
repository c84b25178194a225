import logging
from datetime import date, timedelta

import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from pricewatch.evaluator.db import Base, get_session_factory, init_db
from pricewatch.evaluator.models import AlertStatus
from pricewatch.evaluator.store import CachedAlertStore, InMemoryAlertStore, SQLAlchemyAlertStore
from pricewatch.shared.errors import AlertDeletedError, InvalidTransitionError, PersistenceError, ValidationError
from pricewatch.shared.schemas import AlertType

from .fakes import alert_data, utc

T0 = utc(2026, 10, 1)


def sqlite_engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    return init_db(engine)


@pytest.fixture(params=["memory", "sql", "cached"])
def store(request):
    if request.param == "memory":
        return InMemoryAlertStore()
    backend = SQLAlchemyAlertStore(get_session_factory(sqlite_engine()))
    if request.param == "cached":
        return CachedAlertStore(backend)
    return backend


async def create_at(store, minutes: int, **overrides):
    overrides.setdefault("created_at", T0 + timedelta(minutes=minutes))
    return await store.create(alert_data(**overrides))


class TestCreate:

    async def test_create_assigns_defaults(self, store):
        alert = await create_at(store, 0)

        assert alert.id
        assert alert.status == AlertStatus.ACTIVE
        assert alert.original_price == 500
        assert alert.expires_at == T0 + timedelta(days=30)
        assert alert.check_count == 0

    async def test_round_trip(self, store):
        created = await create_at(
            store, 0,
            alert_when={"mode": "drop_by_percentage", "percentage": 15},
            tags=["winter"],
            flexible_dates=True,
        )
        loaded = await store.find_by_id(created.id)

        assert loaded == created
        assert loaded.departure_date == date(2026, 12, 1)
        assert loaded.alert_when.percentage == 15
        assert loaded.notifications.email_address == "traveler@example.com"

    async def test_custom_expiry_days(self):
        store = InMemoryAlertStore(expiry_days=7)
        alert = await create_at(store, 0)
        assert alert.expires_at == T0 + timedelta(days=7)

    @pytest.mark.parametrize("overrides, message", [
        ({"origin": None}, "Origin is required"),
        ({"destination": None}, "Destination is required"),
        ({"departure_date": None}, "Departure date is required"),
        ({"target_price": 0}, "Valid target price is required"),
    ])
    async def test_validation(self, store, overrides, message):
        with pytest.raises(ValidationError) as exc:
            await store.create(alert_data(**overrides))
        assert message in exc.value.details["errors"]

    async def test_hotel_alert_needs_no_origin(self, store):
        alert = await create_at(store, 0, type="hotel", origin=None, destination="Paris")
        assert alert.type == AlertType.HOTEL

    async def test_malformed_input(self, store):
        with pytest.raises(ValidationError):
            await store.create({"user_id": "u", "target_price": "cheap"})

    async def test_missing_threshold_warns(self, store, caplog):
        with caplog.at_level(logging.WARNING):
            await create_at(store, 0, alert_when={"mode": "drop_by_amount"})
        assert "will never trigger" in caplog.text


class TestQueries:

    async def test_find_by_user_newest_first_without_deleted(self, store):
        first = await create_at(store, 0)
        second = await create_at(store, 1, type="hotel", origin=None, destination="Paris")
        third = await create_at(store, 2)
        await create_at(store, 3, user_id="someone-else")
        await store.delete(second.id)

        alerts = await store.find_by_user("user-1")
        assert [a.id for a in alerts] == [third.id, first.id]

    async def test_find_by_user_filters_and_pages(self, store):
        ids = [(await create_at(store, i)).id for i in range(5)]
        hotel = await create_at(store, 10, type="hotel", origin=None, destination="Rome")
        await store.update(ids[0], {"status": "paused"})

        assert [a.id for a in await store.find_by_user("user-1", type=AlertType.HOTEL)] == [hotel.id]
        assert [a.id for a in await store.find_by_user("user-1", status="paused")] == [ids[0]]
        page = await store.find_by_user("user-1", limit=2, offset=1)
        assert [a.id for a in page] == [ids[4], ids[3]]

    async def test_find_active_expires_lazily(self, store, now):
        live = await create_at(store, 0)
        stale = await create_at(store, 1, expires_at=now - timedelta(hours=1))
        paused = await create_at(store, 2)
        await store.update(paused.id, {"status": "paused"})

        active = await store.find_active_alerts(now)

        assert [a.id for a in active] == [live.id]
        assert (await store.find_by_id(stale.id)).status == AlertStatus.EXPIRED

    async def test_pending_notifications(self, store, now):
        alert = await create_at(store, 0)
        assert await store.find_pending_notifications() == []

        await store.update(alert.id, {"status": "triggered", "triggered_price": 450, "triggered_at": now})
        pending = await store.find_pending_notifications()
        assert [a.id for a in pending] == [alert.id]

        await store.update(alert.id, {"notification_sent": True, "notification_sent_at": now})
        assert await store.find_pending_notifications() == []

    async def test_find_alerts_for_route(self, store):
        exact = await create_at(store, 0, departure_date=date(2026, 12, 1))
        flexible = await create_at(store, 1, departure_date=date(2026, 12, 3), flexible_dates=True)
        await create_at(store, 2, departure_date=date(2026, 12, 9), flexible_dates=True)
        await create_at(store, 3, destination="CDG")

        found = await store.find_alerts_for_route("JFK", "LHR", AlertType.FLIGHT, date(2026, 12, 1))
        assert sorted(a.id for a in found) == sorted([exact.id, flexible.id])

        any_date = await store.find_alerts_for_route("JFK", "LHR")
        assert len(any_date) == 3

    async def test_stats(self, store, now):
        await create_at(store, 0)
        paused = await create_at(store, 1)
        triggered = await create_at(store, 2, type="hotel", origin=None, destination="Oslo")
        await store.update(paused.id, {"status": "paused"})
        await store.update(triggered.id, {"status": "triggered"})

        stats = await store.get_stats("user-1")
        assert stats.total == 3
        assert stats.active == 1
        assert stats.paused == 1
        assert stats.triggered == 1
        assert stats.by_type == {"flight": 2, "hotel": 1}


class TestUpdateAndDelete:

    async def test_update_ignores_immutable_fields(self, store):
        alert = await create_at(store, 0)
        updated = await store.update(alert.id, {"user_id": "mallory", "created_at": T0, "notes": "aisle"})

        assert updated.user_id == "user-1"
        assert updated.notes == "aisle"
        assert updated.updated_at >= alert.updated_at
        assert (await store.find_by_id(alert.id)).notes == "aisle"

    async def test_update_rejects_illegal_transition(self, store):
        alert = await create_at(store, 0)
        await store.update(alert.id, {"status": "triggered"})
        with pytest.raises(InvalidTransitionError):
            await store.update(alert.id, {"status": "active"})

    async def test_update_unknown_alert(self, store):
        assert await store.update("missing", {"notes": "x"}) is None

    async def test_delete_is_soft_and_idempotent(self, store):
        alert = await create_at(store, 0)

        assert await store.delete(alert.id) is True
        assert await store.delete(alert.id) is True
        assert await store.delete("missing") is False

        deleted = await store.find_by_id(alert.id)
        assert deleted.status == AlertStatus.DELETED
        with pytest.raises(AlertDeletedError):
            await store.update(alert.id, {"notes": "revive"})
        assert await store.find_active_alerts() == []

    async def test_returned_alerts_are_copies(self, store):
        alert = await create_at(store, 0)
        alert.notes = "local change"
        loaded = await store.find_by_id(alert.id)
        loaded.check_price(100)
        assert (await store.find_by_id(alert.id)).notes == ""
        assert (await store.find_by_id(alert.id)).check_count == 0


class TestSQLFailures:

    async def test_database_errors_become_persistence_errors(self):
        engine = sqlite_engine()
        store = SQLAlchemyAlertStore(get_session_factory(engine))
        alert = await store.create(alert_data())
        Base.metadata.drop_all(engine)

        with pytest.raises(PersistenceError):
            await store.find_by_id(alert.id)
        with pytest.raises(PersistenceError):
            await store.find_active_alerts()

    async def test_cache_is_dropped_when_backend_write_fails(self):
        engine = sqlite_engine()
        store = CachedAlertStore(SQLAlchemyAlertStore(get_session_factory(engine)))
        alert = await store.create(alert_data())
        Base.metadata.drop_all(engine)

        with pytest.raises(PersistenceError):
            await store.update(alert.id, {"notes": "x"})
        with pytest.raises(PersistenceError):
            await store.find_by_id(alert.id)
