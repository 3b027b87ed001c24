"""Domain errors raised below the HTTP and message boundaries.

Every error carries a machine readable ``error_code``, the HTTP status it maps
to, a ``public_message`` that is safe to hand to untrusted callers, and the id
of the ingestion job it concerns when there is one. The exception message
itself may contain internal detail and is only ever logged.
"""

from typing import Optional


class RecipeServiceError(Exception):
    error_code = "internal_error"
    status_code = 500
    public_message = "Internal error."

    def __init__(self, message: str = "", *, job_id: Optional[str] = None) -> None:
        super().__init__(message or self.public_message)
        self.job_id = job_id


class ConfigurationError(RecipeServiceError):
    error_code = "configuration_error"
    public_message = "Service is misconfigured."


class NotFoundError(RecipeServiceError):
    error_code = "not_found"
    status_code = 404
    public_message = "Not found."


class JobNotFoundError(NotFoundError):
    error_code = "job_not_found"
    public_message = "Ingestion job not found."


class RecipeNotFoundError(NotFoundError):
    error_code = "recipe_not_found"
    public_message = "Recipe not found."


class JobConflictError(RecipeServiceError):
    error_code = "job_not_staged"
    status_code = 409
    public_message = "Ingestion job is not in staged status."


class ExtractionError(RecipeServiceError):
    error_code = "extraction_failed"
    status_code = 502
    public_message = "Recipe extraction failed."


class ResolutionError(RecipeServiceError):
    error_code = "ingredient_resolution_failed"
    status_code = 502
    public_message = "Ingredient resolution failed; the job is still staged and can be confirmed again."


class ResolverUnavailableError(RecipeServiceError):
    error_code = "resolver_unavailable"
    status_code = 503
    public_message = "Ingredient resolver is not configured; the job is still staged."


class MalformedStagedDataError(RecipeServiceError):
    error_code = "malformed_staged_data"
    public_message = "Staged recipe data is corrupt."


class UnsupportedEventStatusError(RecipeServiceError):
    error_code = "unsupported_event_status"
    status_code = 422
    public_message = "Unsupported import result status."


class InvalidInputError(RecipeServiceError):
    error_code = "invalid_input"
    status_code = 422
    public_message = "Invalid input."


class PublishError(ExtractionError):
    error_code = "publish_failed"
    public_message = "Could not hand the job to the extraction pipeline."
