"""
Orchestrates the staged ingestion lifecycle.

    pending -> processing -> staged | failed
    staged  -> confirmed

Extraction happens through an ExtractionStrategy, so this module never cares
whether the recipe comes back inline or later as an import-result event.
"""
import asyncio
import logging
from typing import Optional

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from woodpantry_recipes.app.core.errors import (
    ExtractionError,
    InvalidInputError,
    JobConflictError,
    JobNotFoundError,
    UnsupportedEventStatusError,
)
from woodpantry_recipes.app.db import models
from woodpantry_recipes.app.db.models import IngestionJobStatus, IngestionJobType
from woodpantry_recipes.app.schemas.events import RESULT_STATUS_FAILED, RESULT_STATUS_STAGED, ImportResultEvent
from woodpantry_recipes.app.schemas.ingestion import StagedRecipe
from woodpantry_recipes.app.services import ingestion_job_service
from woodpantry_recipes.app.services.commit_service import commit_staged_recipe
from woodpantry_recipes.app.services.extraction import ExtractionStrategy
from woodpantry_recipes.app.services.ingredient_resolver import IngredientResolver


class IngestionService:
    def __init__(
        self,
        strategy: ExtractionStrategy,
        resolver: Optional[IngredientResolver] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.strategy = strategy
        self.resolver = resolver
        self._logger = logger or logging.getLogger(__name__)

    def create_job(
        self,
        db: Session,
        raw_input: str,
        job_type: str = IngestionJobType.TEXT_BLOB.value,
    ) -> models.IngestionJob:
        if not raw_input or not raw_input.strip():
            raise InvalidInputError("raw input must not be empty")
        if job_type not in {t.value for t in IngestionJobType}:
            raise InvalidInputError(f"unknown job type {job_type!r}")
        job = ingestion_job_service.create_job(db, raw_input, job_type)
        self._logger.info("Created ingestion job %s (%s)", job.id, job.type)
        return job

    async def submit(
        self,
        db: Session,
        raw_input: str,
        job_type: str = IngestionJobType.TEXT_BLOB.value,
    ) -> models.IngestionJob:
        job = self.create_job(db, raw_input, job_type)
        return await self.begin_extraction(db, job)

    async def begin_extraction(self, db: Session, job: models.IngestionJob) -> models.IngestionJob:
        if not ingestion_job_service.mark_processing(db, job):
            self._logger.warning("Job %s is %s; not starting extraction", job.id, job.status)
            return job

        self._logger.info("Extraction started for job %s via %s strategy", job.id, self.strategy.name)
        try:
            staged = await self.strategy.extract(job)
        except asyncio.CancelledError:
            self._logger.warning("Extraction cancelled for job %s", job.id)
            ingestion_job_service.mark_failed(db, job, "extraction_cancelled", "Extraction was cancelled.")
            raise
        except ExtractionError as exc:
            self._logger.warning("Extraction failed for job %s: %s", job.id, exc)
            ingestion_job_service.mark_failed(db, job, exc.error_code, str(exc))
            return job
        except Exception as exc:
            self._logger.exception("Unexpected extraction error for job %s", job.id)
            ingestion_job_service.mark_failed(db, job, ExtractionError.error_code, str(exc))
            return job

        if staged is None:
            return job

        if ingestion_job_service.mark_staged(db, job, staged):
            self._logger.info("Job %s staged: %r", job.id, staged.title)
        else:
            self._logger.warning("Job %s moved to %s during extraction; result discarded", job.id, job.status)
        return job

    def get_job(self, db: Session, job_id: str) -> models.IngestionJob:
        job = ingestion_job_service.get_job(db, job_id)
        if job is None:
            raise JobNotFoundError(f"ingestion job {job_id} not found", job_id=job_id)
        return job

    def handle_import_result(self, db: Session, event: ImportResultEvent) -> models.IngestionJob:
        """Apply an import-result event from the extraction pipeline.

        Raises JobNotFoundError for unknown jobs and UnsupportedEventStatusError
        for statuses other than staged/failed; neither mutates anything. A failed
        result withdraws a pending, processing or staged job. A staged result only
        applies to jobs still awaiting one. Anything else is a redelivery and is
        ignored.
        """
        job = ingestion_job_service.get_job(db, event.job_id)
        if job is None:
            raise JobNotFoundError(f"import result for unknown job {event.job_id}", job_id=event.job_id)
        if event.status not in (RESULT_STATUS_STAGED, RESULT_STATUS_FAILED):
            raise UnsupportedEventStatusError(
                f"unsupported import result status {event.status!r}",
                job_id=event.job_id,
            )
        if event.status == RESULT_STATUS_FAILED:
            moved = ingestion_job_service.mark_failed(
                db,
                job,
                ExtractionError.error_code,
                event.error or "Extraction pipeline reported failure.",
                allowed_from=ingestion_job_service.FAILABLE_BY_RESULT,
            )
            if moved:
                self._logger.info("Job %s failed by extraction pipeline: %s", job.id, event.error)
            else:
                self._logger.info("Ignoring failed result for job %s already %s", job.id, job.status)
            return job

        if job.status not in {s.value for s in ingestion_job_service.AWAITING_RESULT}:
            self._logger.info("Ignoring staged result for job %s already %s", job.id, job.status)
            return job

        if not event.staged_data:
            ingestion_job_service.mark_failed(db, job, "invalid_staged_data", "Import result had no staged_data.")
            self._logger.error("Import result for job %s had no staged_data", job.id)
            return job
        try:
            staged = StagedRecipe.model_validate(event.staged_data)
        except ValidationError as exc:
            ingestion_job_service.mark_failed(db, job, "invalid_staged_data", f"Invalid staged_data: {exc.error_count()} errors")
            self._logger.error("Import result for job %s had invalid staged_data: %s", job.id, exc)
            return job

        if ingestion_job_service.mark_staged(db, job, staged):
            self._logger.info("Job %s staged from import result: %r", job.id, staged.title)
        else:
            self._logger.warning("Job %s moved to %s before import result applied; result discarded", job.id, job.status)
        return job

    async def confirm(self, db: Session, job_id: str) -> models.Recipe:
        job = self.get_job(db, job_id)
        if job.status != IngestionJobStatus.STAGED.value:
            raise JobConflictError(f"job {job_id} is {job.status}, not staged", job_id=job_id)

        recipe = await commit_staged_recipe(db, job, self.resolver, self._logger)

        # The recipe is durable at this point; a failure below is only reported.
        try:
            if not ingestion_job_service.mark_confirmed(db, job):
                self._logger.error("Recipe %s committed but job %s was no longer staged", recipe.id, job.id)
        except SQLAlchemyError:
            db.rollback()
            self._logger.exception("Recipe %s committed but job %s could not be marked confirmed", recipe.id, job.id)
        return recipe
