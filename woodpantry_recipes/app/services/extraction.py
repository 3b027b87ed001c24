import logging
from abc import ABC, abstractmethod
from typing import Optional

from woodpantry_recipes.app.core.config import Settings
from woodpantry_recipes.app.core.errors import ConfigurationError, ExtractionError, PublishError
from woodpantry_recipes.app.db import models
from woodpantry_recipes.app.schemas.events import ImportRequestedEvent
from woodpantry_recipes.app.schemas.ingestion import StagedRecipe
from woodpantry_recipes.app.services.llm_client import LLMExtractor
from woodpantry_recipes.app.services.queue_service import ImportRequestPublisher


class ExtractionStrategy(ABC):
    """Turns a job's raw input into a StagedRecipe.

    ``extract`` returns the recipe when it is available immediately, or None
    when the result will arrive later as an import-result event.
    """

    name = "base"

    @abstractmethod
    async def extract(self, job: models.IngestionJob) -> Optional[StagedRecipe]:  # pragma: no cover - interface
        raise NotImplementedError


class SyncExtractionStrategy(ExtractionStrategy):
    name = "sync"

    def __init__(self, extractor: Optional[LLMExtractor], logger: Optional[logging.Logger] = None) -> None:
        self._extractor = extractor
        self._logger = logger or logging.getLogger(__name__)

    async def extract(self, job: models.IngestionJob) -> Optional[StagedRecipe]:
        if self._extractor is None:
            raise ExtractionError("llm extractor is not configured", job_id=job.id)
        self._logger.info("Extracting job %s inline", job.id)
        return await self._extractor.extract(job.raw_input)


class AsyncExtractionStrategy(ExtractionStrategy):
    name = "async"

    def __init__(self, publisher: ImportRequestPublisher, logger: Optional[logging.Logger] = None) -> None:
        self._publisher = publisher
        self._logger = logger or logging.getLogger(__name__)

    async def extract(self, job: models.IngestionJob) -> Optional[StagedRecipe]:
        event = ImportRequestedEvent(job_id=job.id, job_type=job.type, raw_input=job.raw_input)
        try:
            await self._publisher.publish_import_requested(event)
        except Exception as exc:
            raise PublishError(f"publish import request for job {job.id}: {exc}", job_id=job.id) from exc
        self._logger.info("Job %s handed to the extraction pipeline", job.id)
        return None


def build_strategy(
    settings: Settings,
    publisher: ImportRequestPublisher,
    extractor: Optional[LLMExtractor] = None,
) -> ExtractionStrategy:
    mode = settings.ingestion_strategy
    if mode == "auto":
        mode = "async" if publisher.enabled else "sync"
    if mode == "async":
        if not publisher.enabled:
            raise ConfigurationError("INGESTION_STRATEGY=async requires REDIS_URL")
        return AsyncExtractionStrategy(publisher)
    return SyncExtractionStrategy(extractor)
