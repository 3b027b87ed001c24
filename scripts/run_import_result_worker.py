#!/usr/bin/env python
"""
Standalone consumer for recipe import results.

Use this when the API runs with IMPORT_RESULT_SUBSCRIBER_ENABLED=false, or to
add consumers alongside it:
    python scripts/run_import_result_worker.py
"""
import logging
import signal
import socket
import sys
import time

from woodpantry_recipes.app.core.config import get_settings
from woodpantry_recipes.app.core.logging_setup import configure_logging
from woodpantry_recipes.app.db.session import SessionLocal
from woodpantry_recipes.app.main import build_ingestion_service
from woodpantry_recipes.app.services.import_result_subscriber import RedisImportResultSubscriber
from woodpantry_recipes.app.services.queue_service import get_redis_connection

logger = logging.getLogger("import_result_worker")


def setup_cleanup():
    """Setup cleanup handlers for graceful shutdown."""
    def signal_handler(sig, frame):
        logger.info("Received signal %s, shutting down gracefully", sig)
        sys.exit(0)

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)


def main():
    settings = get_settings()
    configure_logging(settings.log_level)
    if not settings.redis_url:
        logger.error("REDIS_URL is not set; nothing to consume")
        sys.exit(1)

    service = build_ingestion_service(settings)
    # the API process on this host defaults to the bare hostname
    consumer_name = settings.import_result_consumer_name or f"{socket.gethostname()}-worker"
    logger.info("Starting import result worker %s on %s", consumer_name, settings.import_result_queue)

    max_restarts = 10
    restart_count = 0

    while restart_count < max_restarts:
        try:
            subscriber = RedisImportResultSubscriber(
                get_redis_connection(settings.redis_url),
                settings.import_result_queue,
                service,
                SessionLocal,
                consumer_name=consumer_name,
            )
            subscriber.run()
            logger.info("Worker stopped normally")
            break
        except KeyboardInterrupt:
            logger.info("Worker interrupted by user")
            break
        except Exception as exc:
            restart_count += 1
            logger.exception("Worker crashed (restart %d/%d): %s", restart_count, max_restarts, exc)
            if restart_count >= max_restarts:
                logger.error("Worker exceeded max restarts (%d), exiting", max_restarts)
                raise
            time.sleep(5)
            logger.info("Restarting worker...")


if __name__ == "__main__":
    setup_cleanup()
    main()
