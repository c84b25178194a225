"""Periodic sweep over active alerts: fetch prices, evaluate, notify."""
import asyncio
import logging
import time
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from pricewatch.evaluator.models import AlertStatus, PriceAlert
from pricewatch.evaluator.store import AlertStore
from pricewatch.ingestor.aggregator import PriceAggregator
from pricewatch.notifier.service import Notifier
from pricewatch.shared.config import TrackerSettings
from pricewatch.shared.errors import PersistenceError
from pricewatch.shared.metrics import ACTIVE_ALERTS, ALERTS_CHECKED, ALERTS_TRIGGERED, TICK_DURATION
from pricewatch.shared.schemas import AlertType, FlightSearchParams, HotelSearchParams, utcnow

logger = logging.getLogger(__name__)

OBSERVATION_FIELDS = ("current_price", "price_history", "check_count", "last_checked_at")

# Written only when the check itself moved the alert to triggered.
TRIGGER_FIELDS = ("status", "triggered_at", "triggered_price")


@dataclass
class TickReport:
    """Outcome counters for one tick."""
    started_at: datetime = field(default_factory=utcnow)
    finished_at: Optional[datetime] = None
    checked: int = 0
    triggered: int = 0
    notified: int = 0
    no_price: int = 0
    expired: int = 0
    failed: int = 0
    retried_notifications: int = 0
    superseded: int = 0
    skipped_overlap: bool = False
    skipped_stopping: bool = False

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["started_at"] = self.started_at.isoformat()
        data["finished_at"] = self.finished_at.isoformat() if self.finished_at else None
        return data


class PriceTracker:
    """
    Runs one tick at a time on a cron schedule.

    Each alert is processed in isolation: a failure is logged and counted,
    and the rest of the batch continues. Triggered alerts whose notification
    was not acknowledged are retried once per tick.
    """

    def __init__(
        self,
        store: AlertStore,
        aggregator: PriceAggregator,
        notifier: Notifier,
        settings: Optional[TrackerSettings] = None,
    ):
        self.store = store
        self.aggregator = aggregator
        self.notifier = notifier
        self.settings = settings or TrackerSettings()
        self.max_concurrency = max(1, self.settings.max_concurrency)

        self._tick_lock = asyncio.Lock()
        self._scheduler: Optional[AsyncIOScheduler] = None
        self._startup_task: Optional[asyncio.Task] = None
        self._stopping = False
        self.tick_count = 0
        self.last_report: Optional[TickReport] = None

    @property
    def running(self) -> bool:
        return self._scheduler is not None

    @property
    def tick_in_flight(self) -> bool:
        return self._tick_lock.locked()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Schedule ticks and optionally run one immediately."""
        if self.running:
            logger.info("Price tracker already running")
            return

        self._stopping = False
        self._scheduler = AsyncIOScheduler()
        self._scheduler.add_job(
            self.run_tick,
            CronTrigger.from_crontab(self.settings.check_interval),
            id="price_check",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        self._scheduler.start()
        logger.info(f"Price tracker started (schedule: {self.settings.check_interval})")

        if self.settings.run_on_startup:
            self._startup_task = asyncio.create_task(self.run_tick())

    async def stop(self) -> None:
        """Stop scheduling new ticks and wait for the in-flight one."""
        self._stopping = True
        if self._scheduler:
            self._scheduler.shutdown(wait=False)
            self._scheduler = None
            logger.info("Stopping price tracker...")

        if self._startup_task:
            await asyncio.gather(self._startup_task, return_exceptions=True)
            self._startup_task = None

        async with self._tick_lock:
            pass
        logger.info("Price tracker stopped")

    def stats(self) -> Dict[str, Any]:
        next_run = None
        if self._scheduler:
            job = self._scheduler.get_job("price_check")
            if job and job.next_run_time:
                next_run = job.next_run_time.isoformat()
        return {
            "running": self.running,
            "tick_in_flight": self.tick_in_flight,
            "check_interval": self.settings.check_interval,
            "max_concurrency": self.max_concurrency,
            "ticks": self.tick_count,
            "next_run_time": next_run,
            "last_tick": self.last_report.to_dict() if self.last_report else None,
        }

    # ------------------------------------------------------------------
    # Tick
    # ------------------------------------------------------------------

    async def run_tick(self, now: Optional[datetime] = None) -> TickReport:
        """Check every active alert once and retry pending notifications."""
        if self._stopping:
            logger.info("Price tracker is stopping, skipping this tick")
            return TickReport(skipped_stopping=True, finished_at=utcnow())

        if self._tick_lock.locked():
            logger.warning("Previous price check still running, skipping this tick")
            return TickReport(skipped_overlap=True, finished_at=utcnow())

        async with self._tick_lock:
            start_time = time.perf_counter()
            now = now or utcnow()
            report = TickReport(started_at=now)

            try:
                alerts = await self.store.find_active_alerts(now)
                pending = await self.store.find_pending_notifications()
            except PersistenceError as e:
                logger.error(f"Could not load alerts for price check: {e}")
                report.failed += 1
                return self._finish(report, start_time)

            ACTIVE_ALERTS.set(len(alerts))
            logger.info(f"Checking {len(alerts)} active alerts ({len(pending)} pending notifications)...")

            semaphore = asyncio.Semaphore(self.max_concurrency)

            async def bounded(handler, alert: PriceAlert):
                async with semaphore:
                    await handler(alert, report, now)

            await asyncio.gather(
                *[bounded(self.retry_notification, alert) for alert in pending],
                *[bounded(self.check_alert, alert) for alert in alerts],
            )

            logger.info(
                f"Price check completed: {report.checked} checked, {report.triggered} triggered, "
                f"{report.notified} notified, {report.no_price} without price, "
                f"{report.expired} expired, {report.superseded} superseded, {report.failed} failed"
            )
            return self._finish(report, start_time)

    def _finish(self, report: TickReport, start_time: float) -> TickReport:
        report.finished_at = utcnow()
        TICK_DURATION.observe(time.perf_counter() - start_time)
        self.tick_count += 1
        self.last_report = report
        return report

    async def check_alert(self, alert: PriceAlert, report: TickReport, now: datetime) -> None:
        """Process one alert; never raises."""
        try:
            await self._check_alert(alert, report, now)
        except Exception as e:
            report.failed += 1
            ALERTS_CHECKED.labels(result="failed").inc()
            logger.exception(f"Error checking alert {alert.id}: {e}")

    async def _check_alert(self, alert: PriceAlert, report: TickReport, now: datetime) -> None:
        if alert.check_expiry(now):
            await self.store.update(alert.id, {"status": alert.status})
            report.expired += 1
            ALERTS_CHECKED.labels(result="expired").inc()
            return

        current_price = await self.resolve_current_price(alert)
        if current_price is None:
            logger.info(f"Could not get price for alert {alert.id}")
            await self.store.update(alert.id, {"last_checked_at": now})
            report.no_price += 1
            ALERTS_CHECKED.labels(result="no_price").inc()
            return

        # The price lookup yields; evaluate against the stored alert, not the tick's copy.
        latest = await self.store.find_by_id(alert.id)
        if latest is None or latest.status != AlertStatus.ACTIVE:
            state = latest.status.value if latest else "missing"
            logger.info(f"Alert {alert.id} became {state} during the price check, discarding price")
            report.superseded += 1
            ALERTS_CHECKED.labels(result="superseded").inc()
            return
        alert = latest

        triggered = alert.check_price(current_price, now=now)
        fields = OBSERVATION_FIELDS + TRIGGER_FIELDS if triggered else OBSERVATION_FIELDS
        await self.store.update(alert.id, {name: getattr(alert, name) for name in fields})
        report.checked += 1

        if not triggered:
            ALERTS_CHECKED.labels(result="checked").inc()
            return

        report.triggered += 1
        ALERTS_CHECKED.labels(result="triggered").inc()
        ALERTS_TRIGGERED.labels(type=alert.type.value).inc()
        if not alert.notification_sent:
            await self._notify(alert, report, now)

    async def retry_notification(self, alert: PriceAlert, report: TickReport, now: datetime) -> None:
        """Re-dispatch a triggered alert whose notification was never acknowledged."""
        report.retried_notifications += 1
        try:
            await self._notify(alert, report, now)
        except Exception as e:
            report.failed += 1
            logger.exception(f"Error retrying notification for alert {alert.id}: {e}")

    async def _notify(self, alert: PriceAlert, report: TickReport, now: datetime) -> bool:
        result = await self.notifier.send_price_alert(alert, alert.triggered_price, alert.original_price)
        if not result.success:
            logger.warning(f"Notification for alert {alert.id} failed, will retry next tick: {result.error}")
            return False

        alert.mark_notification_sent(now)
        await self.store.update(alert.id, {
            "notification_sent": alert.notification_sent,
            "notification_sent_at": alert.notification_sent_at,
        })
        report.notified += 1
        logger.info(f"Alert notification sent for {alert.id} ({result.reference})")
        return True

    async def resolve_current_price(self, alert: PriceAlert) -> Optional[float]:
        """Lowest aggregated price for the alert's search, or None."""
        if alert.type == AlertType.FLIGHT:
            params = FlightSearchParams(
                origin=alert.origin_code or alert.origin,
                destination=alert.destination_code or alert.destination,
                departure_date=alert.departure_date,
                return_date=alert.return_date,
                adults=alert.adults,
                children=alert.children,
                infants=alert.infants,
                cabin_class=alert.cabin_class.value,
            )
            result = await self.aggregator.search_flights(params)
            return result.lowest

        if alert.type == AlertType.HOTEL:
            params = HotelSearchParams(
                location=alert.destination,
                check_in=alert.departure_date,
                check_out=alert.return_date,
                adults=alert.adults,
                children=alert.children,
            )
            result = await self.aggregator.search_hotels(params)
            return result.lowest

        logger.info(f"Price checking not implemented for type: {alert.type.value}")
        return None
