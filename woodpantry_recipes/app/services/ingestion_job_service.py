"""Status transitions for ingestion jobs.

Every transition is a conditional UPDATE guarded by the statuses it may leave
from, so a job never skips a predecessor and two racing writers cannot both
move the same job. Each ``mark_*`` returns whether the row actually moved.
"""
import json
from datetime import datetime
from typing import Iterable, Optional

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from woodpantry_recipes.app.db import models
from woodpantry_recipes.app.db.models import IngestionJobStatus
from woodpantry_recipes.app.schemas.ingestion import StagedRecipe

# Statuses an extraction result may still be applied to
AWAITING_RESULT = (IngestionJobStatus.PENDING, IngestionJobStatus.PROCESSING)
# A pipeline failure also withdraws a staged candidate that is not yet confirmed
FAILABLE_BY_RESULT = AWAITING_RESULT + (IngestionJobStatus.STAGED,)


def create_job(db: Session, raw_input: str, job_type: str = models.IngestionJobType.TEXT_BLOB.value) -> models.IngestionJob:
    job = models.IngestionJob(
        type=job_type,
        raw_input=raw_input,
        status=IngestionJobStatus.PENDING.value,
    )
    db.add(job)
    db.commit()
    db.refresh(job)
    return job


def get_job(db: Session, job_id: str) -> Optional[models.IngestionJob]:
    stmt = select(models.IngestionJob).where(models.IngestionJob.id == job_id)
    return db.scalars(stmt).first()


def _transition(
    db: Session,
    job: models.IngestionJob,
    allowed_from: Iterable[IngestionJobStatus],
    **values,
) -> bool:
    stmt = (
        update(models.IngestionJob)
        .where(
            models.IngestionJob.id == job.id,
            models.IngestionJob.status.in_([s.value for s in allowed_from]),
        )
        .values(updated_at=datetime.utcnow(), **values)
        .execution_options(synchronize_session=False)
    )
    result = db.execute(stmt)
    db.commit()
    db.refresh(job)
    return (result.rowcount or 0) == 1


def mark_processing(db: Session, job: models.IngestionJob) -> bool:
    return _transition(db, job, (IngestionJobStatus.PENDING,), status=IngestionJobStatus.PROCESSING.value)


def mark_staged(db: Session, job: models.IngestionJob, staged: StagedRecipe) -> bool:
    return _transition(
        db,
        job,
        AWAITING_RESULT,
        status=IngestionJobStatus.STAGED.value,
        staged_data=json.loads(staged.model_dump_json()),
        error_code=None,
        error_message=None,
    )


def mark_failed(
    db: Session,
    job: models.IngestionJob,
    error_code: str,
    error_message: Optional[str] = None,
    allowed_from: Iterable[IngestionJobStatus] = AWAITING_RESULT,
) -> bool:
    return _transition(
        db,
        job,
        allowed_from,
        status=IngestionJobStatus.FAILED.value,
        staged_data=None,
        error_code=error_code,
        error_message=error_message,
    )


def mark_confirmed(db: Session, job: models.IngestionJob) -> bool:
    return _transition(db, job, (IngestionJobStatus.STAGED,), status=IngestionJobStatus.CONFIRMED.value)
