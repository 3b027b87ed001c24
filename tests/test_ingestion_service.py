import asyncio
import uuid

import pytest
from sqlalchemy import func, select

from fakes import PASTA_TEXT, FakeExtractor, FakeResolver, pasta_recipe
from woodpantry_recipes.app.core.errors import (
    InvalidInputError,
    JobConflictError,
    JobNotFoundError,
    MalformedStagedDataError,
    ResolutionError,
    ResolverUnavailableError,
)
from woodpantry_recipes.app.db import models
from woodpantry_recipes.app.services import ingestion_job_service
from woodpantry_recipes.app.services.extraction import SyncExtractionStrategy
from woodpantry_recipes.app.services.ingestion_service import IngestionService


def count(db, model) -> int:
    return db.scalar(select(func.count()).select_from(model))


async def staged_job(db, service: IngestionService) -> models.IngestionJob:
    job = await service.submit(db, PASTA_TEXT)
    assert job.status == "staged"
    return job


def test_create_job_is_pending_with_raw_input_verbatim(db_session, sync_service):
    raw = "  Pasta\n\nboil it  "
    job = sync_service.create_job(db_session, raw)
    assert job.status == "pending"
    assert job.raw_input == raw
    assert job.type == "text_blob"
    assert job.staged_data is None
    assert uuid.UUID(job.id)
    assert sync_service.get_job(db_session, job.id).id == job.id


@pytest.mark.parametrize("raw", ["", "   ", "\n\t"])
def test_create_job_rejects_blank_text(db_session, sync_service, raw):
    with pytest.raises(InvalidInputError):
        sync_service.create_job(db_session, raw)
    assert count(db_session, models.IngestionJob) == 0


@pytest.mark.asyncio
async def test_sync_extraction_stages_job(db_session, sync_service, extractor):
    job = await sync_service.submit(db_session, PASTA_TEXT)
    assert extractor.calls == [PASTA_TEXT]
    assert job.status == "staged"
    assert job.staged_data["title"] == "Pasta"
    assert job.staged_data["steps"] == ["boil pasta", "add sauce"]
    assert job.error_code is None


@pytest.mark.asyncio
async def test_sync_extraction_failure_fails_job_without_staged_data(db_session, resolver, failing_strategy):
    service = IngestionService(failing_strategy, resolver)
    job = await service.submit(db_session, PASTA_TEXT)
    assert job.status == "failed"
    assert job.staged_data is None
    assert job.error_code == "extraction_failed"
    assert "500" in job.error_message


@pytest.mark.asyncio
async def test_missing_extractor_fails_job(db_session, resolver):
    service = IngestionService(SyncExtractionStrategy(None), resolver)
    job = await service.submit(db_session, PASTA_TEXT)
    assert job.status == "failed"
    assert "not configured" in job.error_message


@pytest.mark.asyncio
async def test_cancelled_extraction_fails_job_and_propagates(db_session, resolver):
    extractor = FakeExtractor(error=asyncio.CancelledError())
    service = IngestionService(SyncExtractionStrategy(extractor), resolver)
    job = service.create_job(db_session, PASTA_TEXT)
    with pytest.raises(asyncio.CancelledError):
        await service.begin_extraction(db_session, job)
    db_session.refresh(job)
    assert job.status == "failed"
    assert job.error_code == "extraction_cancelled"


@pytest.mark.asyncio
async def test_get_unknown_job_raises_not_found(db_session, sync_service):
    with pytest.raises(JobNotFoundError):
        sync_service.get_job(db_session, str(uuid.uuid4()))


@pytest.mark.asyncio
async def test_confirm_with_unresolved_ingredients_calls_resolver_once_each(db_session, sync_service, resolver):
    job = await staged_job(db_session, sync_service)

    recipe = await sync_service.confirm(db_session, job.id)

    assert resolver.calls == ["pasta", "sauce"]
    assert recipe.title == "Pasta"
    assert recipe.tags == ["dinner", "quick"]
    assert [(s.step_number, s.instruction) for s in recipe.steps] == [(1, "boil pasta"), (2, "add sauce")]
    assert [i.ingredient_id for i in recipe.ingredients] == [resolver.ids["pasta"], resolver.ids["sauce"]]
    assert recipe.ingredients[0].unit == "lb"
    db_session.refresh(job)
    assert job.status == "confirmed"
    assert job.staged_data is not None


@pytest.mark.asyncio
async def test_confirm_with_pre_resolved_ingredients_never_calls_resolver(db_session, resolver):
    ids = [str(uuid.uuid4()) for _ in range(3)]
    staged = pasta_recipe(
        steps=["a", "b", "c", "d"],
        ingredients=[{"name": f"ing{n}", "ingredient_id": ids[n]} for n in range(3)],
    )
    service = IngestionService(SyncExtractionStrategy(FakeExtractor(recipe=staged)), resolver)
    job = await staged_job(db_session, service)

    recipe = await service.confirm(db_session, job.id)

    assert resolver.calls == []
    assert count(db_session, models.Recipe) == 1
    assert [s.step_number for s in recipe.steps] == [1, 2, 3, 4]
    assert sorted(i.ingredient_id for i in recipe.ingredients) == sorted(ids)


@pytest.mark.asyncio
async def test_confirm_resolves_only_ingredients_without_id(db_session, resolver):
    known = str(uuid.uuid4())
    staged = pasta_recipe(ingredients=[{"name": "pasta", "ingredient_id": known}, {"name": "sauce"}])
    service = IngestionService(SyncExtractionStrategy(FakeExtractor(recipe=staged)), resolver)
    job = await staged_job(db_session, service)

    recipe = await service.confirm(db_session, job.id)

    assert resolver.calls == ["sauce"]
    assert recipe.ingredients[0].ingredient_id == known
    assert recipe.ingredients[1].ingredient_id == resolver.ids["sauce"]


@pytest.mark.asyncio
async def test_resolver_failure_rolls_back_everything_and_keeps_job_staged(db_session, extractor):
    resolver = FakeResolver(fail_on="sauce")
    service = IngestionService(SyncExtractionStrategy(extractor), resolver)
    job = await staged_job(db_session, service)

    with pytest.raises(ResolutionError) as excinfo:
        await service.confirm(db_session, job.id)

    assert excinfo.value.job_id == job.id
    assert resolver.calls == ["pasta", "sauce"]
    assert count(db_session, models.Recipe) == 0
    assert count(db_session, models.Step) == 0
    assert count(db_session, models.RecipeIngredient) == 0
    assert count(db_session, models.RecipeTag) == 0
    db_session.refresh(job)
    assert job.status == "staged"

    # a later retry can still succeed
    resolver.fail_on = None
    recipe = await service.confirm(db_session, job.id)
    assert count(db_session, models.Recipe) == 1
    assert recipe.id


@pytest.mark.asyncio
async def test_missing_resolver_is_unavailable_and_rolls_back(db_session, extractor):
    service = IngestionService(SyncExtractionStrategy(extractor), None)
    job = await staged_job(db_session, service)

    with pytest.raises(ResolverUnavailableError):
        await service.confirm(db_session, job.id)

    assert count(db_session, models.Recipe) == 0
    db_session.refresh(job)
    assert job.status == "staged"


@pytest.mark.asyncio
async def test_cancelled_commit_leaves_no_partial_recipe(db_session, extractor):
    class CancellingResolver(FakeResolver):
        async def resolve(self, name: str) -> str:
            raise asyncio.CancelledError()

    service = IngestionService(SyncExtractionStrategy(extractor), CancellingResolver())
    job = await staged_job(db_session, service)

    with pytest.raises(asyncio.CancelledError):
        await service.confirm(db_session, job.id)

    assert count(db_session, models.Recipe) == 0
    assert count(db_session, models.Step) == 0
    db_session.refresh(job)
    assert job.status == "staged"


@pytest.mark.asyncio
async def test_confirm_twice_commits_once(db_session, sync_service):
    job = await staged_job(db_session, sync_service)
    await sync_service.confirm(db_session, job.id)

    with pytest.raises(JobConflictError):
        await sync_service.confirm(db_session, job.id)

    assert count(db_session, models.Recipe) == 1


@pytest.mark.asyncio
@pytest.mark.parametrize("status", ["pending", "processing", "failed"])
async def test_confirm_non_staged_job_conflicts_without_changes(db_session, sync_service, resolver, status):
    job = sync_service.create_job(db_session, PASTA_TEXT)
    job.status = status
    db_session.commit()

    with pytest.raises(JobConflictError):
        await sync_service.confirm(db_session, job.id)

    assert resolver.calls == []
    assert count(db_session, models.Recipe) == 0
    db_session.refresh(job)
    assert job.status == status


@pytest.mark.asyncio
async def test_confirm_unknown_job_is_not_found(db_session, sync_service):
    with pytest.raises(JobNotFoundError):
        await sync_service.confirm(db_session, str(uuid.uuid4()))


@pytest.mark.asyncio
async def test_corrupt_staged_data_is_malformed(db_session, sync_service):
    job = await staged_job(db_session, sync_service)
    job.staged_data = {"steps": ["no title"]}
    db_session.commit()

    with pytest.raises(MalformedStagedDataError):
        await sync_service.confirm(db_session, job.id)

    assert count(db_session, models.Recipe) == 0


@pytest.mark.asyncio
async def test_mark_confirmed_failure_is_not_fatal(db_session, sync_service, monkeypatch, caplog):
    job = await staged_job(db_session, sync_service)
    monkeypatch.setattr(ingestion_job_service, "mark_confirmed", lambda db, job: False)

    recipe = await sync_service.confirm(db_session, job.id)

    assert recipe.title == "Pasta"
    assert count(db_session, models.Recipe) == 1
    assert "no longer staged" in caplog.text


def test_transitions_never_skip_a_predecessor(db_session, sync_service):
    job = sync_service.create_job(db_session, PASTA_TEXT)
    assert not ingestion_job_service.mark_confirmed(db_session, job)
    assert ingestion_job_service.mark_processing(db_session, job)
    assert not ingestion_job_service.mark_processing(db_session, job)
    assert ingestion_job_service.mark_failed(db_session, job, "extraction_failed", "boom")
    assert not ingestion_job_service.mark_staged(db_session, job, pasta_recipe())
    assert job.status == "failed"
    assert job.staged_data is None
