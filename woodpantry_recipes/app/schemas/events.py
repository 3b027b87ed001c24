"""Messages exchanged with the external extraction pipeline."""

from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator

TOPIC_IMPORT_REQUESTED = "recipe.import.requested"

RESULT_STATUS_STAGED = "staged"
RESULT_STATUS_FAILED = "failed"


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class ImportRequestedEvent(BaseModel):
    job_id: str
    job_type: str
    raw_input: str
    timestamp: str = Field(default_factory=_utc_now)


class ImportResultEvent(BaseModel):
    job_id: str
    status: str = RESULT_STATUS_STAGED
    error: Optional[str] = None
    # left untyped; validated against StagedRecipe when the job is updated
    staged_data: Optional[Any] = None

    @field_validator("status", mode="before")
    @classmethod
    def normalize_status(cls, value):
        if value is None:
            return RESULT_STATUS_STAGED
        value = str(value).strip()
        return value or RESULT_STATUS_STAGED
