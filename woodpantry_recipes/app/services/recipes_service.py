from datetime import datetime
from typing import Iterable, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from woodpantry_recipes.app.core.errors import RecipeNotFoundError
from woodpantry_recipes.app.db import models
from woodpantry_recipes.app.schemas.recipe import IngredientCreate, RecipeCreate, RecipeUpdate, StepCreate

_SCALAR_FIELDS = ("title", "description", "source_url", "servings", "prep_minutes", "cook_minutes")


def _append_steps(recipe: models.Recipe, steps: Iterable[StepCreate]) -> None:
    for step_number, step in enumerate(steps, start=1):
        recipe.steps.append(models.Step(step_number=step_number, instruction=step.instruction))


def _append_ingredients(recipe: models.Recipe, ingredients: Iterable[IngredientCreate]) -> None:
    for position, ingredient in enumerate(ingredients):
        recipe.ingredients.append(
            models.RecipeIngredient(
                position=position,
                ingredient_id=str(ingredient.ingredient_id),
                quantity=ingredient.quantity,
                unit=ingredient.unit,
                is_optional=ingredient.is_optional,
                preparation_notes=ingredient.preparation_notes,
            )
        )


def create_recipe(db: Session, data: RecipeCreate) -> models.Recipe:
    recipe = models.Recipe(**{field: getattr(data, field) for field in _SCALAR_FIELDS})
    recipe.tags = list(data.tags)
    _append_steps(recipe, data.steps)
    _append_ingredients(recipe, data.ingredients)
    db.add(recipe)
    try:
        db.commit()
    except BaseException:
        db.rollback()
        raise
    db.refresh(recipe)
    return recipe


def list_recipes(
    db: Session,
    tag: Optional[str] = None,
    title: Optional[str] = None,
    cook_time_max: Optional[int] = None,
) -> List[models.Recipe]:
    """List recipes newest first; every given filter must match."""
    stmt = select(models.Recipe)
    if tag:
        has_tag = (
            select(models.RecipeTag.recipe_id)
            .where(models.RecipeTag.recipe_id == models.Recipe.id, models.RecipeTag.name == tag)
            .exists()
        )
        stmt = stmt.where(has_tag)
    if title:
        stmt = stmt.where(models.Recipe.title.ilike(f"%{title}%"))
    if cook_time_max is not None:
        stmt = stmt.where(models.Recipe.cook_minutes <= cook_time_max)
    stmt = stmt.order_by(models.Recipe.created_at.desc())
    return list(db.scalars(stmt).all())


def get_recipe(db: Session, recipe_id: str) -> models.Recipe:
    recipe = db.get(models.Recipe, recipe_id)
    if recipe is None:
        raise RecipeNotFoundError(f"recipe {recipe_id} not found")
    return recipe


def update_recipe(db: Session, recipe_id: str, data: RecipeUpdate) -> models.Recipe:
    """Replace the recipe's fields and all of its children; no partial merge."""
    recipe = get_recipe(db, recipe_id)
    try:
        for field in _SCALAR_FIELDS:
            setattr(recipe, field, getattr(data, field))
        recipe.updated_at = datetime.utcnow()
        recipe.tag_rows.clear()
        recipe.steps.clear()
        recipe.ingredients.clear()
        # old rows must be gone before (recipe_id, step_number) is reused
        db.flush()
        recipe.tags = list(data.tags)
        _append_steps(recipe, data.steps)
        _append_ingredients(recipe, data.ingredients)
        db.commit()
    except BaseException:
        db.rollback()
        raise
    db.refresh(recipe)
    return recipe


def delete_recipe(db: Session, recipe_id: str) -> None:
    recipe = get_recipe(db, recipe_id)
    db.delete(recipe)
    db.commit()
