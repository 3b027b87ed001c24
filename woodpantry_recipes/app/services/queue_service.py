"""
Redis transport for the import-request side of event-driven ingestion.

Requests go onto a Redis list with a raw LPUSH; the external extraction
pipeline consumes the list with its own worker. When no broker is configured
a null publisher stands in so callers never branch on it.
"""
import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Optional

from redis import Redis

from woodpantry_recipes.app.core.config import Settings
from woodpantry_recipes.app.schemas.events import TOPIC_IMPORT_REQUESTED, ImportRequestedEvent

logger = logging.getLogger(__name__)


def get_redis_connection(redis_url: str) -> Redis:
    return Redis.from_url(redis_url, decode_responses=False)


def topic_key(exchange: str, routing_key: str) -> str:
    return f"{exchange}:{routing_key}"


class ImportRequestPublisher(ABC):
    enabled = True

    @abstractmethod
    async def publish_import_requested(self, event: ImportRequestedEvent) -> None:  # pragma: no cover - interface
        raise NotImplementedError


class RedisImportRequestPublisher(ImportRequestPublisher):
    def __init__(self, conn: Redis, exchange: str, logger: Optional[logging.Logger] = None) -> None:
        self._conn = conn
        self.key = topic_key(exchange, TOPIC_IMPORT_REQUESTED)
        self._logger = logger or logging.getLogger(__name__)

    async def publish_import_requested(self, event: ImportRequestedEvent) -> None:
        body = event.model_dump_json().encode("utf-8")
        await asyncio.to_thread(self._conn.lpush, self.key, body)
        self._logger.info("Published import request for job %s to %s", event.job_id, self.key)


class NullImportRequestPublisher(ImportRequestPublisher):
    enabled = False

    async def publish_import_requested(self, event: ImportRequestedEvent) -> None:
        logger.debug("Messaging disabled; dropping import request for job %s", event.job_id)


def build_publisher(settings: Settings, conn: Optional[Redis] = None) -> ImportRequestPublisher:
    if not settings.redis_url:
        return NullImportRequestPublisher()
    return RedisImportRequestPublisher(conn or get_redis_connection(settings.redis_url), settings.event_exchange)
