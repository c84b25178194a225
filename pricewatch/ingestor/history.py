"""Rolling per-route price history buffers."""
import logging
from abc import ABC, abstractmethod
from collections import deque
from typing import Deque, Dict, List, Optional

import redis.asyncio as redis

from pricewatch.shared.errors import PersistenceError
from pricewatch.shared.schemas import PriceSnapshot

logger = logging.getLogger(__name__)


def history_key(type_: str, identifier: str) -> str:
    """Key of a route's buffer, e.g. ``flight:JFK-LHR``."""
    return f"{type_}:{identifier}"


class PriceHistory(ABC):
    """Bounded FIFO of aggregate snapshots per route key."""

    def __init__(self, max_length: int = 90):
        if max_length < 1:
            raise ValueError("max_length must be >= 1")
        self.max_length = max_length

    @abstractmethod
    async def append(self, key: str, snapshot: PriceSnapshot) -> None:
        pass

    @abstractmethod
    async def get(self, key: str, limit: Optional[int] = None) -> List[PriceSnapshot]:
        """Oldest-first snapshots; the newest ``limit`` when given."""
        pass

    async def close(self) -> None:
        pass


class InMemoryPriceHistory(PriceHistory):
    """Process-local buffers; lost on restart."""

    def __init__(self, max_length: int = 90):
        super().__init__(max_length)
        self._data: Dict[str, Deque[PriceSnapshot]] = {}

    async def append(self, key: str, snapshot: PriceSnapshot) -> None:
        if key not in self._data:
            self._data[key] = deque(maxlen=self.max_length)
        self._data[key].append(snapshot)

    async def get(self, key: str, limit: Optional[int] = None) -> List[PriceSnapshot]:
        data = list(self._data.get(key, ()))
        if limit is not None:
            data = data[-limit:] if limit > 0 else []
        return data

    def keys(self) -> List[str]:
        return list(self._data.keys())


class RedisPriceHistory(PriceHistory):
    """Buffers stored as Redis lists, trimmed to ``max_length`` on write."""

    def __init__(self, redis_url: str, max_length: int = 90, prefix: str = "price-history",
                 client: Optional[redis.Redis] = None):
        super().__init__(max_length)
        self.redis_url = redis_url
        self.prefix = prefix
        self._redis: Optional[redis.Redis] = client

    async def connect(self):
        """Connect to Redis."""
        if self._redis is None:
            self._redis = redis.from_url(self.redis_url)
            logger.info("Connected to Redis")

    async def close(self) -> None:
        if self._redis:
            await self._redis.aclose()
            self._redis = None

    def _key(self, key: str) -> str:
        return f"{self.prefix}:{key}"

    async def append(self, key: str, snapshot: PriceSnapshot) -> None:
        await self.connect()
        redis_key = self._key(key)
        try:
            async with self._redis.pipeline(transaction=True) as pipe:
                pipe.rpush(redis_key, snapshot.model_dump_json())
                pipe.ltrim(redis_key, -self.max_length, -1)
                await pipe.execute()
        except redis.RedisError as e:
            raise PersistenceError(f"Failed to append price history for {key}: {e}") from e

    async def get(self, key: str, limit: Optional[int] = None) -> List[PriceSnapshot]:
        await self.connect()
        if limit is not None and limit <= 0:
            return []
        start = -limit if limit is not None else 0
        try:
            raw = await self._redis.lrange(self._key(key), start, -1)
        except redis.RedisError as e:
            raise PersistenceError(f"Failed to read price history for {key}: {e}") from e
        return [PriceSnapshot.model_validate_json(item) for item in raw]
