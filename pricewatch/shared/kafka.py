"""Kafka producer for handing notification events to a delivery service."""
import json
import logging
from datetime import date, datetime
from typing import Any, Optional, Union

from aiokafka import AIOKafkaProducer
from aiokafka.structs import RecordMetadata
from pydantic import BaseModel

logger = logging.getLogger(__name__)


def encode_value(value: Any) -> bytes:
    """JSON-encode an event; pydantic models use their own dump."""
    if isinstance(value, BaseModel):
        return value.model_dump_json().encode("utf-8")
    return json.dumps(value, default=_encode_default).encode("utf-8")


def encode_key(key: Optional[str]) -> Optional[bytes]:
    return key.encode("utf-8") if key else None


def _encode_default(obj: Any) -> str:
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    raise TypeError(f"{type(obj).__name__} is not JSON serializable")


class EventProducer:
    """Publishes events and waits until every in-sync replica has them."""

    def __init__(self, bootstrap_servers: str, client_id: str = "pricewatch-tracker"):
        self.bootstrap_servers = bootstrap_servers
        self.client_id = client_id
        self._producer: Optional[AIOKafkaProducer] = None

    @property
    def started(self) -> bool:
        return self._producer is not None

    async def start(self):
        """Connect to the cluster."""
        producer = AIOKafkaProducer(
            bootstrap_servers=self.bootstrap_servers,
            client_id=self.client_id,
            value_serializer=encode_value,
            key_serializer=encode_key,
            acks="all",
            enable_idempotence=True,
            retry_backoff_ms=100,
        )
        await producer.start()
        self._producer = producer
        logger.info(f"Kafka producer {self.client_id} connected to {self.bootstrap_servers}")

    async def stop(self):
        """Flush pending sends and disconnect."""
        if self._producer:
            producer, self._producer = self._producer, None
            await producer.stop()
            logger.info(f"Kafka producer {self.client_id} stopped")

    async def send(
        self,
        topic: str,
        value: Union[BaseModel, dict],
        key: Optional[str] = None,
    ) -> RecordMetadata:
        """Publish one event and return the broker's record metadata."""
        if not self._producer:
            raise RuntimeError("Kafka producer is not started")

        metadata = await self._producer.send_and_wait(topic, value=value, key=key)
        logger.debug(f"Published {key or 'event'} to {topic} at offset {metadata.offset}")
        return metadata
