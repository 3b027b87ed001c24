"""
Consumer for import results emitted by the external extraction pipeline.

Messages are read with the reliable-queue pattern: BLMOVE parks each message
on ``<queue>:processing:<consumer>`` while it is handled, LREM acknowledges it,
and a requeue puts it back on the main list. Each consumer owns its processing
list, so anything left there when that consumer starts was in flight during its
own crash and is redelivered. Consumers sharing a queue need distinct names.
"""
import enum
import json
import logging
import socket
import threading
import time
from abc import ABC, abstractmethod
from typing import Callable, Optional

from pydantic import ValidationError
from redis import Redis
from redis.exceptions import RedisError
from sqlalchemy.orm import Session

from woodpantry_recipes.app.core.config import Settings
from woodpantry_recipes.app.core.errors import JobNotFoundError, UnsupportedEventStatusError
from woodpantry_recipes.app.schemas.events import ImportResultEvent
from woodpantry_recipes.app.services.ingestion_service import IngestionService
from woodpantry_recipes.app.services.queue_service import get_redis_connection

logger = logging.getLogger(__name__)


class Delivery(str, enum.Enum):
    ACK = "ack"
    DROP = "drop"
    REQUEUE = "requeue"


class ImportResultSubscriber(ABC):
    enabled = True

    @abstractmethod
    def start(self) -> None:  # pragma: no cover - interface
        raise NotImplementedError

    @abstractmethod
    def stop(self) -> None:  # pragma: no cover - interface
        raise NotImplementedError


class NullImportResultSubscriber(ImportResultSubscriber):
    enabled = False

    def start(self) -> None:
        logger.info("Messaging disabled; import result subscriber not started")

    def stop(self) -> None:
        return None


class RedisImportResultSubscriber(ImportResultSubscriber):
    def __init__(
        self,
        conn: Redis,
        queue: str,
        service: IngestionService,
        session_factory: Callable[[], Session],
        requeue_delay_seconds: float = 1.0,
        poll_timeout_seconds: float = 1.0,
        consumer_name: Optional[str] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._conn = conn
        self.queue = queue
        self.consumer_name = consumer_name or socket.gethostname()
        self.processing_queue = f"{queue}:processing:{self.consumer_name}"
        self._service = service
        self._session_factory = session_factory
        self._requeue_delay = requeue_delay_seconds
        self._poll_timeout = poll_timeout_seconds
        self._logger = logger or logging.getLogger(__name__)
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def dispatch(self, body: bytes) -> Delivery:
        """Apply one message to its job and decide what happens to the message."""
        try:
            event = ImportResultEvent.model_validate(json.loads(body))
        except (ValueError, ValidationError) as exc:
            self._logger.error("Dropping undecodable import result: %s", exc)
            return Delivery.DROP

        db = self._session_factory()
        try:
            self._service.handle_import_result(db, event)
        except JobNotFoundError:
            self._logger.warning("Dropping import result for unknown job %s", event.job_id)
            return Delivery.DROP
        except UnsupportedEventStatusError as exc:
            self._logger.error("Dropping import result for job %s: %s", event.job_id, exc)
            return Delivery.DROP
        except Exception:
            self._logger.exception("Failed to apply import result for job %s; requeueing", event.job_id)
            return Delivery.REQUEUE
        finally:
            db.close()
        return Delivery.ACK

    def recover_in_flight(self) -> int:
        moved = 0
        while self._conn.lmove(self.processing_queue, self.queue, "RIGHT", "RIGHT") is not None:
            moved += 1
        if moved:
            self._logger.warning("Requeued %d in-flight import results from %s", moved, self.processing_queue)
        return moved

    def process_one(self, timeout: Optional[float] = None) -> Optional[Delivery]:
        body = self._conn.blmove(
            self.queue,
            self.processing_queue,
            self._poll_timeout if timeout is None else timeout,
            src="RIGHT",
            dest="LEFT",
        )
        if body is None:
            return None

        outcome = self.dispatch(body)
        if outcome is Delivery.REQUEUE:
            time.sleep(self._requeue_delay)
            pipe = self._conn.pipeline()
            pipe.lrem(self.processing_queue, 1, body)
            pipe.rpush(self.queue, body)
            pipe.execute()
        else:
            self._conn.lrem(self.processing_queue, 1, body)
        return outcome

    def run(self) -> None:
        self._logger.info("Import result subscriber %s listening on %s", self.consumer_name, self.queue)
        self.recover_in_flight()
        while not self._stop.is_set():
            try:
                self.process_one()
            except RedisError as exc:
                self._logger.error("Redis error in import result subscriber: %s", exc)
                self._stop.wait(5)
        self._logger.info("Import result subscriber stopped")

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self.run, name="import-result-subscriber", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=self._poll_timeout + 5)
            self._thread = None


def build_subscriber(
    settings: Settings,
    service: IngestionService,
    session_factory: Callable[[], Session],
    conn: Optional[Redis] = None,
) -> ImportResultSubscriber:
    if not settings.redis_url:
        return NullImportResultSubscriber()
    return RedisImportResultSubscriber(
        conn or get_redis_connection(settings.redis_url),
        settings.import_result_queue,
        service,
        session_factory,
        consumer_name=settings.import_result_consumer_name,
    )
