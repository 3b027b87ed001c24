import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from fakes import FakeExtractor, FakePublisher, FakeResolver, pasta_recipe
from woodpantry_recipes.app.api.deps import get_db_session
from woodpantry_recipes.app.core.config import Settings
from woodpantry_recipes.app.core.errors import ExtractionError
from woodpantry_recipes.app.db import models  # noqa: F401
from woodpantry_recipes.app.db.base import Base
from woodpantry_recipes.app.main import create_app
from woodpantry_recipes.app.services.extraction import (
    AsyncExtractionStrategy,
    ExtractionStrategy,
    SyncExtractionStrategy,
)
from woodpantry_recipes.app.services.ingestion_service import IngestionService


@pytest.fixture
def engine():
    # one shared connection so every session sees the same in-memory database
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, future=True)


@pytest.fixture
def db_session(session_factory):
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def extractor():
    return FakeExtractor(recipe=pasta_recipe())


@pytest.fixture
def resolver():
    return FakeResolver()


@pytest.fixture
def publisher():
    return FakePublisher()


@pytest.fixture
def sync_service(extractor, resolver):
    return IngestionService(SyncExtractionStrategy(extractor), resolver)


@pytest.fixture
def async_service(publisher, resolver):
    return IngestionService(AsyncExtractionStrategy(publisher), resolver)


@pytest.fixture
def failing_strategy() -> ExtractionStrategy:
    return SyncExtractionStrategy(FakeExtractor(error=ExtractionError("LLM returned status 500")))


@pytest.fixture
def make_client(db_session):
    """Build a TestClient around a given IngestionService and the test session."""

    def _make(service: IngestionService) -> TestClient:
        app = create_app(settings=Settings(_env_file=None), ingestion_service=service)

        def override_db():
            yield db_session

        app.dependency_overrides[get_db_session] = override_db
        return TestClient(app)

    return _make


@pytest.fixture
def client(make_client, sync_service):
    return make_client(sync_service)
