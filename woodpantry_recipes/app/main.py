import logging
import uuid
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette import status

from woodpantry_recipes.app.api.routes import api_router
from woodpantry_recipes.app.core.config import Settings, get_settings
from woodpantry_recipes.app.core.errors import RecipeServiceError
from woodpantry_recipes.app.core.logging_setup import configure_logging, make_request_logger
from woodpantry_recipes.app.db.session import SessionLocal
from woodpantry_recipes.app.services.extraction import build_strategy
from woodpantry_recipes.app.services.import_result_subscriber import build_subscriber
from woodpantry_recipes.app.services.ingestion_service import IngestionService
from woodpantry_recipes.app.services.ingredient_resolver import build_resolver
from woodpantry_recipes.app.services.llm_client import build_extractor
from woodpantry_recipes.app.services.queue_service import build_publisher

logger = logging.getLogger(__name__)


async def validation_exception_handler(request, exc: RequestValidationError):
    details = []
    for err in exc.errors():
        loc = ".".join(str(part) for part in err.get("loc", []) if part is not None)
        msg = err.get("msg", "Invalid value")
        details.append({"field": loc or None, "message": msg})
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "error_code": "validation_error",
            "message": "Invalid request payload.",
            "details": details,
            "job_id": None,
            "request_id": str(uuid.uuid4()),
        },
    )


async def service_exception_handler(request: Request, exc: RecipeServiceError):
    request_id = str(uuid.uuid4())
    log_level = logging.ERROR if exc.status_code >= 500 else logging.INFO
    logger.log(
        log_level,
        "%s on %s %s (request_id=%s): %s",
        exc.error_code,
        request.method,
        request.url.path,
        request_id,
        exc,
        exc_info=exc.status_code >= 500,
    )
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error_code": exc.error_code,
            "message": exc.public_message,
            "job_id": exc.job_id,
            "request_id": request_id,
        },
    )


def build_ingestion_service(settings: Settings) -> IngestionService:
    publisher = build_publisher(settings)
    strategy = build_strategy(settings, publisher, build_extractor(settings))
    logger.info("Ingestion strategy: %s", strategy.name)
    return IngestionService(strategy, build_resolver(settings))


def create_app(
    settings: Optional[Settings] = None,
    ingestion_service: Optional[IngestionService] = None,
) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings.log_level)

    app = FastAPI(title="WoodPantry Recipes", version="0.1.0")
    app.state.ingestion_service = ingestion_service or build_ingestion_service(settings)
    app.state.import_result_subscriber = None

    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(RecipeServiceError, service_exception_handler)
    app.middleware("http")(make_request_logger(logging.getLogger("woodpantry_recipes.http")))
    app.include_router(api_router)

    @app.get("/health")
    @app.get("/healthz")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.on_event("startup")
    async def startup_event() -> None:
        if not settings.import_result_subscriber_enabled:
            logger.info("Import result subscriber disabled for this process")
            return
        subscriber = build_subscriber(settings, app.state.ingestion_service, SessionLocal)
        subscriber.start()
        app.state.import_result_subscriber = subscriber

    @app.on_event("shutdown")
    async def shutdown_event() -> None:
        subscriber = app.state.import_result_subscriber
        if subscriber is not None:
            subscriber.stop()

    return app


app = create_app()
