"""Turns a staged ingestion job into a persisted recipe aggregate."""
import logging
from typing import Optional

from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.orm import Session

from woodpantry_recipes.app.core.errors import (
    JobConflictError,
    MalformedStagedDataError,
    ResolutionError,
    ResolverUnavailableError,
)
from woodpantry_recipes.app.db import models
from woodpantry_recipes.app.db.models import IngestionJobStatus
from woodpantry_recipes.app.schemas.ingestion import StagedIngredient, StagedRecipe
from woodpantry_recipes.app.services.ingredient_resolver import IngredientResolver


def load_staged_recipe(job: models.IngestionJob) -> StagedRecipe:
    """Validate the job's stored payload; stored JSON is never trusted as-is."""
    if not job.staged_data:
        raise MalformedStagedDataError(f"job {job.id} has no staged_data", job_id=job.id)
    try:
        return StagedRecipe.model_validate(job.staged_data)
    except ValidationError as exc:
        raise MalformedStagedDataError(f"job {job.id} staged_data is invalid: {exc}", job_id=job.id) from exc


async def _resolve_ingredient_id(
    ingredient: StagedIngredient,
    resolver: Optional[IngredientResolver],
    job_id: str,
    log: logging.Logger,
) -> str:
    if ingredient.ingredient_id is not None:
        return str(ingredient.ingredient_id)
    if resolver is None:
        raise ResolverUnavailableError(
            f"job {job_id}: ingredient {ingredient.name!r} needs resolving but no resolver is configured",
            job_id=job_id,
        )
    try:
        ingredient_id = await resolver.resolve(ingredient.name)
    except ResolutionError as exc:
        raise ResolutionError(f"job {job_id}: {exc}", job_id=job_id) from exc
    log.info("Resolved ingredient %r to %s for job %s", ingredient.name, ingredient_id, job_id)
    return ingredient_id


async def commit_staged_recipe(
    db: Session,
    job: models.IngestionJob,
    resolver: Optional[IngredientResolver],
    logger: Optional[logging.Logger] = None,
) -> models.Recipe:
    """Persist the job's staged recipe, its steps and its ingredients in one transaction.

    Ingredients without a canonical id are resolved one at a time while the
    transaction is open. Any failure, cancellation included, rolls the whole
    aggregate back and leaves the job staged.
    """
    log = logger or logging.getLogger(__name__)
    staged = load_staged_recipe(job)
    log.info("Committing job %s: %d steps, %d ingredients", job.id, len(staged.steps), len(staged.ingredients))

    try:
        stmt = (
            select(models.IngestionJob)
            .where(models.IngestionJob.id == job.id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        current = db.scalars(stmt).first()
        if current is None or current.status != IngestionJobStatus.STAGED.value:
            raise JobConflictError(f"job {job.id} is no longer staged", job_id=job.id)

        recipe = models.Recipe(
            title=staged.title,
            description=staged.description,
            source_url=staged.source_url,
            servings=staged.servings,
            prep_minutes=staged.prep_minutes,
            cook_minutes=staged.cook_minutes,
        )
        recipe.tags = list(staged.tags)
        for step_number, instruction in enumerate(staged.steps, start=1):
            recipe.steps.append(models.Step(step_number=step_number, instruction=instruction))
        db.add(recipe)
        db.flush()

        for position, ingredient in enumerate(staged.ingredients):
            ingredient_id = await _resolve_ingredient_id(ingredient, resolver, job.id, log)
            recipe.ingredients.append(
                models.RecipeIngredient(
                    position=position,
                    ingredient_id=ingredient_id,
                    quantity=ingredient.quantity,
                    unit=ingredient.unit,
                    is_optional=ingredient.is_optional,
                    preparation_notes=ingredient.preparation_notes,
                )
            )
        db.commit()
    except BaseException:
        db.rollback()
        raise

    db.refresh(recipe)
    log.info("Committed recipe %s from job %s", recipe.id, job.id)
    return recipe
