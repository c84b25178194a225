"""Tracker Service - Periodically checks travel prices for active alerts."""
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import List, Optional

from fastapi import FastAPI, Response

from pricewatch import __version__
from pricewatch.evaluator.db import create_db_engine, get_session_factory, init_db
from pricewatch.evaluator.store import AlertStore, CachedAlertStore, InMemoryAlertStore, SQLAlchemyAlertStore
from pricewatch.ingestor.aggregator import PriceAggregator
from pricewatch.ingestor.history import InMemoryPriceHistory, PriceHistory, RedisPriceHistory
from pricewatch.ingestor.providers import BasePriceProvider, build_providers, default_registry
from pricewatch.notifier import EmailHandler, KafkaNotificationPublisher, NotificationService, Notifier, SMSHandler
from pricewatch.shared import get_metrics, get_metrics_content_type, get_settings, utcnow
from pricewatch.shared.config import Settings
from pricewatch.shared.kafka import EventProducer
from pricewatch.shared.metrics import SERVICE_INFO
from .scheduler import PriceTracker

logger = logging.getLogger(__name__)


@dataclass
class Services:
    store: AlertStore
    providers: List[BasePriceProvider]
    aggregator: PriceAggregator
    notifier: Notifier
    tracker: PriceTracker


def create_store(settings: Settings) -> AlertStore:
    expiry_days = settings.tracker.default_expiry_days
    if settings.tracker.store_backend == "memory":
        logger.warning("Using in-memory alert store; alerts are lost on restart")
        return InMemoryAlertStore(expiry_days)
    engine = init_db(create_db_engine(settings.database))
    return CachedAlertStore(SQLAlchemyAlertStore(get_session_factory(engine), expiry_days))


def create_history(settings: Settings) -> PriceHistory:
    if settings.history.backend == "redis":
        return RedisPriceHistory(
            settings.redis.url,
            max_length=settings.history.max_length,
            prefix=settings.redis.history_key_prefix,
        )
    return InMemoryPriceHistory(settings.history.max_length)


def create_notifier(settings: Settings) -> Notifier:
    if settings.notifier.backend == "kafka":
        producer = EventProducer(settings.kafka.bootstrap_servers)
        return KafkaNotificationPublisher(producer, settings.kafka.notifications_topic)
    return NotificationService(EmailHandler(settings.smtp), SMSHandler(settings.twilio))


def create_services(settings: Settings) -> Services:
    """Wire store, providers, aggregator, notifier and tracker from settings."""
    store = create_store(settings)
    providers = build_providers(settings.providers)
    aggregator = PriceAggregator(providers, create_history(settings))
    notifier = create_notifier(settings)
    tracker = PriceTracker(store, aggregator, notifier, settings.tracker)
    return Services(store, providers, aggregator, notifier, tracker)


settings = get_settings()

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

services: Optional[Services] = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start the scheduler with the app and drain it on shutdown."""
    global services

    SERVICE_INFO.info({
        'name': 'tracker',
        'version': __version__,
        'environment': settings.environment
    })

    services = create_services(settings)
    await services.notifier.start()
    await services.tracker.start()
    logger.info(f"Tracker service started with {len(services.providers)} providers")

    yield

    await services.tracker.stop()
    await services.notifier.stop()
    await services.aggregator.close()
    await services.store.close()
    logger.info("Tracker service stopped")


app = FastAPI(
    title="Price Tracker Service",
    description="Checks travel prices for active alerts and notifies on price drops",
    version=__version__,
    lifespan=lifespan
)


@app.get("/health")
async def health_check():
    """Liveness plus whether the scheduler is running."""
    return {
        "status": "healthy",
        "tracker_running": bool(services and services.tracker.running),
        "timestamp": utcnow().isoformat()
    }


@app.get("/metrics")
async def metrics():
    """Prometheus exposition of tick and provider counters."""
    return Response(
        content=get_metrics(),
        media_type=get_metrics_content_type()
    )


@app.get("/stats")
async def stats():
    """Scheduler state and the last tick's counters."""
    if not services:
        return {"running": False}
    return services.tracker.stats()


@app.get("/providers")
async def list_providers():
    """Built-in providers and which of them are enabled."""
    enabled = {p.id for p in services.providers} if services else set()
    providers = default_registry().available()
    for provider in providers:
        provider["enabled"] = provider["id"] in enabled
    return {"providers": providers, "count": len(providers)}


def main():
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8004)


if __name__ == "__main__":
    main()
