from fastapi.testclient import TestClient

from pricewatch.evaluator.store import CachedAlertStore, InMemoryAlertStore
from pricewatch.ingestor import InMemoryPriceHistory
from pricewatch.notifier import KafkaNotificationPublisher, NotificationService
from pricewatch.shared.config import (
    DatabaseSettings,
    NotifierSettings,
    ProviderSettings,
    Settings,
    TrackerSettings,
)
from pricewatch.tracker import PriceTracker
from pricewatch.tracker.main import app, create_notifier, create_services, create_store


def make_settings(**overrides) -> Settings:
    values = {
        "tracker": TrackerSettings(store_backend="memory", run_on_startup=False),
        "providers": ProviderSettings(enabled="expedia,booking"),
    }
    values.update(overrides)
    return Settings(**values)


async def test_create_services_wires_components():
    services = create_services(make_settings())

    assert isinstance(services.store, InMemoryAlertStore)
    assert [p.id for p in services.providers] == ["expedia", "booking"]
    assert isinstance(services.aggregator.history, InMemoryPriceHistory)
    assert isinstance(services.notifier, NotificationService)
    assert isinstance(services.tracker, PriceTracker)
    assert services.tracker.store is services.store

    await services.aggregator.close()


def test_sql_store_is_cached():
    store = create_store(make_settings(
        tracker=TrackerSettings(store_backend="sql"),
        database=DatabaseSettings(url="sqlite://"),
    ))
    assert isinstance(store, CachedAlertStore)


def test_kafka_notifier():
    notifier = create_notifier(make_settings(notifier=NotifierSettings(backend="kafka")))
    assert isinstance(notifier, KafkaNotificationPublisher)
    assert notifier.topic == "price-alert-notifications"


def test_health_and_providers_endpoints():
    client = TestClient(app)

    health = client.get("/health")
    assert health.status_code == 200
    assert health.json()["status"] == "healthy"

    providers = client.get("/providers").json()
    assert providers["count"] == 7
    assert {p["id"] for p in providers["providers"]} >= {"expedia", "skyscanner", "booking"}

    metrics = client.get("/metrics")
    assert metrics.status_code == 200
    assert "pricewatch_" in metrics.text
