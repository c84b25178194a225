import asyncio
from datetime import timedelta

import pytest

from pricewatch.evaluator.models import AlertStatus
from pricewatch.evaluator.store import InMemoryAlertStore
from pricewatch.ingestor import InMemoryPriceHistory, PriceAggregator
from pricewatch.ingestor.providers.base import FLIGHTS
from pricewatch.shared.config import TrackerSettings
from pricewatch.shared.errors import PersistenceError, ProviderServerError
from pricewatch.tracker import PriceTracker

from .fakes import FakeNotifier, FakeProvider, alert_data


class FlakyStore(InMemoryAlertStore):
    """Fails writes for selected alert ids."""

    def __init__(self):
        super().__init__()
        self.broken = set()

    async def update(self, alert_id, patch):
        if alert_id in self.broken:
            raise PersistenceError(f"disk full while updating {alert_id}")
        return await super().update(alert_id, patch)


def make_tracker(store, providers, notifier=None, **settings):
    settings.setdefault("run_on_startup", False)
    aggregator = PriceAggregator(providers, InMemoryPriceHistory())
    return PriceTracker(store, aggregator, notifier or FakeNotifier(), TrackerSettings(**settings))


@pytest.fixture
def store():
    return InMemoryAlertStore()


async def test_price_below_target_triggers_and_notifies(store, now):
    alert = await store.create(alert_data(created_at=now))
    notifier = FakeNotifier()
    tracker = make_tracker(store, [FakeProvider("a", flights=[480, 530])], notifier)

    report = await tracker.run_tick(now)

    assert (report.checked, report.triggered, report.notified) == (1, 1, 1)
    stored = await store.find_by_id(alert.id)
    assert stored.status == AlertStatus.TRIGGERED
    assert stored.triggered_price == 480
    assert stored.triggered_at == now
    assert stored.notification_sent is True
    assert stored.notification_sent_at == now
    assert stored.check_count == 1
    assert [h.price for h in stored.price_history] == [480]
    assert notifier.calls == [{"alert_id": alert.id, "triggered_price": 480, "original_price": 500}]


async def test_triggered_alert_is_not_notified_twice(store, now, later):
    await store.create(alert_data(created_at=now))
    notifier = FakeNotifier()
    tracker = make_tracker(store, [FakeProvider("a", flights=[480])], notifier)

    await tracker.run_tick(now)
    report = await tracker.run_tick(later)

    assert report.checked == 0
    assert report.retried_notifications == 0
    assert len(notifier.calls) == 1


async def test_price_above_target_is_recorded(store, now):
    alert = await store.create(alert_data(created_at=now))
    tracker = make_tracker(store, [FakeProvider("a", flights=[620])])

    report = await tracker.run_tick(now)

    assert (report.checked, report.triggered) == (1, 0)
    stored = await store.find_by_id(alert.id)
    assert stored.status == AlertStatus.ACTIVE
    assert stored.current_price == 620
    assert stored.last_checked_at == now


async def test_failed_dispatch_is_retried_next_tick(store, now, later):
    alert = await store.create(alert_data(created_at=now))
    notifier = FakeNotifier([False])
    tracker = make_tracker(store, [FakeProvider("a", flights=[480])], notifier)

    first = await tracker.run_tick(now)
    stored = await store.find_by_id(alert.id)
    assert (first.triggered, first.notified) == (1, 0)
    assert stored.status == AlertStatus.TRIGGERED
    assert stored.notification_sent is False

    second = await tracker.run_tick(later)
    assert (second.retried_notifications, second.notified) == (1, 1)
    assert (await store.find_by_id(alert.id)).notification_sent is True

    third = await tracker.run_tick(later + timedelta(hours=6))
    assert third.retried_notifications == 0
    assert len(notifier.calls) == 2
    assert notifier.calls[1]["triggered_price"] == 480


async def test_dispatch_exception_keeps_trigger_and_retries(store, now, later):
    alert = await store.create(alert_data(created_at=now))
    notifier = FakeNotifier([RuntimeError("smtp exploded")])
    tracker = make_tracker(store, [FakeProvider("a", flights=[480])], notifier)

    first = await tracker.run_tick(now)
    assert first.failed == 1
    stored = await store.find_by_id(alert.id)
    assert stored.status == AlertStatus.TRIGGERED
    assert stored.triggered_price == 480
    assert stored.notification_sent is False

    second = await tracker.run_tick(later)
    assert second.notified == 1
    assert len(notifier.calls) == 2


async def test_one_failing_alert_does_not_stop_the_batch(now):
    store = FlakyStore()
    broken = await store.create(alert_data(created_at=now))
    healthy = await store.create(alert_data(created_at=now, target_price=600))
    store.broken.add(broken.id)
    tracker = make_tracker(store, [FakeProvider("a", flights=[550])])

    report = await tracker.run_tick(now)

    assert report.failed == 1
    assert report.checked == 1
    assert report.triggered == 1
    assert (await store.find_by_id(healthy.id)).status == AlertStatus.TRIGGERED
    assert (await store.find_by_id(broken.id)).check_count == 0


async def test_all_providers_failing_means_no_price(store, now):
    alert = await store.create(alert_data(created_at=now))
    tracker = make_tracker(store, [FakeProvider("a", error=ProviderServerError("a", 503))])

    report = await tracker.run_tick(now)

    assert report.no_price == 1
    stored = await store.find_by_id(alert.id)
    assert stored.last_checked_at == now
    assert stored.check_count == 0
    assert stored.status == AlertStatus.ACTIVE


@pytest.mark.parametrize("alert_type", ["car", "package"])
async def test_unsupported_types_have_no_price(store, now, alert_type):
    alert = await store.create(alert_data(created_at=now, type=alert_type))
    provider = FakeProvider("a", flights=[100], hotels=[100])
    tracker = make_tracker(store, [provider])

    report = await tracker.run_tick(now)

    assert report.no_price == 1
    assert provider.calls == 0
    assert (await store.find_by_id(alert.id)).check_count == 0


async def test_hotel_alert_uses_hotel_search(store, now):
    alert = await store.create(alert_data(
        created_at=now, type="hotel", origin=None, destination="Paris", target_price=200,
    ))
    flights_only = FakeProvider("f", flights=[50], supports=(FLIGHTS,))
    hotels = FakeProvider("h", hotels=[180, 240])
    tracker = make_tracker(store, [flights_only, hotels])

    report = await tracker.run_tick(now)

    assert report.triggered == 1
    assert flights_only.calls == 0
    assert (await store.find_by_id(alert.id)).triggered_price == 180


async def test_flight_search_prefers_airport_codes(store, now):
    await store.create(alert_data(
        created_at=now, origin="New York", origin_code="JFK", destination="London", destination_code="LHR",
    ))
    history = InMemoryPriceHistory()
    tracker = PriceTracker(
        store,
        PriceAggregator([FakeProvider("a", flights=[700])], history),
        FakeNotifier(),
        TrackerSettings(run_on_startup=False),
    )

    await tracker.run_tick(now)

    assert history.keys() == ["flight:JFK-LHR"]


async def test_expired_alerts_are_skipped(store, now):
    alert = await store.create(alert_data(created_at=now - timedelta(days=40)))
    provider = FakeProvider("a", flights=[100])
    tracker = make_tracker(store, [provider])

    report = await tracker.run_tick(now)

    assert report.checked == 0
    assert provider.calls == 0
    assert (await store.find_by_id(alert.id)).status == AlertStatus.EXPIRED


async def test_paused_alerts_are_not_checked(store, now):
    alert = await store.create(alert_data(created_at=now))
    await store.update(alert.id, {"status": "paused"})
    provider = FakeProvider("a", flights=[100])
    tracker = make_tracker(store, [provider])

    report = await tracker.run_tick(now)

    assert report.checked == 0
    assert provider.calls == 0


async def test_store_failure_ends_tick(now):
    store = InMemoryAlertStore()

    async def unavailable(now=None):
        raise PersistenceError("database is locked")

    store.find_active_alerts = unavailable
    tracker = make_tracker(store, [FakeProvider("a", flights=[100])])

    report = await tracker.run_tick(now)

    assert report.failed == 1
    assert tracker.last_report is report


async def test_overlapping_tick_is_skipped(store, now):
    await store.create(alert_data(created_at=now))
    gate = asyncio.Event()
    tracker = make_tracker(store, [FakeProvider("a", flights=[600], gate=gate)])

    first = asyncio.create_task(tracker.run_tick(now))
    while not tracker.tick_in_flight:
        await asyncio.sleep(0)

    skipped = await tracker.run_tick(now)
    assert skipped.skipped_overlap is True
    assert skipped.checked == 0

    gate.set()
    report = await first
    assert report.skipped_overlap is False
    assert report.checked == 1
    assert tracker.tick_count == 1


async def test_concurrency_is_bounded(store, now):
    for _ in range(6):
        await store.create(alert_data(created_at=now, target_price=100))
    provider = FakeProvider("a", flights=[300], delay=0.01)
    tracker = make_tracker(store, [provider], max_concurrency=2)

    report = await tracker.run_tick(now)

    assert report.checked == 6
    assert provider.max_in_flight == 2


async def test_start_and_stop(store):
    tracker = make_tracker(store, [], check_interval="0 */6 * * *")

    await tracker.start()
    stats = tracker.stats()
    assert stats["running"] is True
    assert stats["next_run_time"] is not None

    await tracker.stop()
    assert tracker.running is False
    assert tracker.stats()["next_run_time"] is None


async def test_stop_waits_for_startup_tick(store, now):
    await store.create(alert_data(created_at=now))
    gate = asyncio.Event()
    tracker = make_tracker(store, [FakeProvider("a", flights=[600], gate=gate)], run_on_startup=True)

    await tracker.start()
    while not tracker.tick_in_flight:
        await asyncio.sleep(0)

    stopping = asyncio.create_task(tracker.stop())
    await asyncio.sleep(0.01)
    assert not stopping.done()

    gate.set()
    await stopping
    assert tracker.last_report.checked == 1


async def test_pause_during_price_check_is_kept(store, now):
    alert = await store.create(alert_data(created_at=now))
    gate = asyncio.Event()
    provider = FakeProvider("a", flights=[480], gate=gate)
    notifier = FakeNotifier()
    tracker = make_tracker(store, [provider], notifier)

    tick = asyncio.create_task(tracker.run_tick(now))
    while provider.in_flight == 0:
        await asyncio.sleep(0)

    await store.update(alert.id, {"status": AlertStatus.PAUSED})
    gate.set()
    report = await tick

    assert (report.checked, report.triggered, report.superseded) == (0, 0, 1)
    stored = await store.find_by_id(alert.id)
    assert stored.status == AlertStatus.PAUSED
    assert stored.triggered_price is None
    assert stored.check_count == 0
    assert notifier.calls == []


async def test_target_change_during_price_check_is_honoured(store, now):
    alert = await store.create(alert_data(created_at=now))
    gate = asyncio.Event()
    provider = FakeProvider("a", flights=[480], gate=gate)
    tracker = make_tracker(store, [provider])

    tick = asyncio.create_task(tracker.run_tick(now))
    while provider.in_flight == 0:
        await asyncio.sleep(0)

    await store.update(alert.id, {"target_price": 400})
    gate.set()
    report = await tick

    assert (report.checked, report.triggered) == (1, 0)
    stored = await store.find_by_id(alert.id)
    assert stored.status == AlertStatus.ACTIVE
    assert stored.target_price == 400
    assert stored.current_price == 480


async def test_no_tick_runs_after_stop(store, now):
    alert = await store.create(alert_data(created_at=now))
    provider = FakeProvider("a", flights=[480])
    tracker = make_tracker(store, [provider])

    await tracker.start()
    pending_tick = asyncio.create_task(tracker.run_tick(now))
    await tracker.stop()
    report = await pending_tick

    assert report.skipped_stopping is True
    assert provider.calls == 0
    assert (await store.find_by_id(alert.id)).check_count == 0

    await tracker.start()
    assert (await tracker.run_tick(now)).checked == 1
    await tracker.stop()
