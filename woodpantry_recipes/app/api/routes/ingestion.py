import logging
from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from woodpantry_recipes.app.api.deps import get_db_session, get_ingestion_service
from woodpantry_recipes.app.db import models
from woodpantry_recipes.app.db.models import IngestionJobStatus
from woodpantry_recipes.app.schemas.ingestion import IngestionJobRead, IngestRequest
from woodpantry_recipes.app.schemas.recipe import RecipeRead
from woodpantry_recipes.app.services.commit_service import load_staged_recipe
from woodpantry_recipes.app.services.ingestion_service import IngestionService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/recipes/ingest", tags=["ingestion"])


def _job_read(job: models.IngestionJob) -> IngestionJobRead:
    staged = None
    if job.status in (IngestionJobStatus.STAGED.value, IngestionJobStatus.CONFIRMED.value):
        staged = load_staged_recipe(job)
    return IngestionJobRead(
        id=job.id,
        type=job.type,
        status=job.status,
        raw_input=job.raw_input,
        staged_data=staged,
        error_code=job.error_code,
        error_message=job.error_message,
        created_at=job.created_at,
        updated_at=job.updated_at,
    )


@router.post("", response_model=IngestionJobRead, status_code=status.HTTP_201_CREATED)
async def ingest_recipe(
    payload: IngestRequest,
    db: Session = Depends(get_db_session),
    service: IngestionService = Depends(get_ingestion_service),
):
    """Create an ingestion job and start extraction.

    With inline extraction the returned job is already staged or failed; with
    the event-driven pipeline it is processing until the result arrives.
    """
    job = await service.submit(db, payload.text, payload.type)
    return _job_read(job)


@router.get("/{job_id}", response_model=IngestionJobRead)
def get_ingestion_job(
    job_id: UUID,
    db: Session = Depends(get_db_session),
    service: IngestionService = Depends(get_ingestion_service),
):
    return _job_read(service.get_job(db, str(job_id)))


@router.post("/{job_id}/confirm", response_model=RecipeRead, status_code=status.HTTP_201_CREATED)
async def confirm_ingestion_job(
    job_id: UUID,
    db: Session = Depends(get_db_session),
    service: IngestionService = Depends(get_ingestion_service),
):
    recipe = await service.confirm(db, str(job_id))
    logger.info("Job %s confirmed as recipe %s", job_id, recipe.id)
    return recipe
