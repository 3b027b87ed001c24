from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.orm import Session

from woodpantry_recipes.app.api.deps import get_db_session
from woodpantry_recipes.app.schemas.recipe import RecipeCreate, RecipeRead, RecipeSummary, RecipeUpdate
from woodpantry_recipes.app.services import recipes_service

router = APIRouter(prefix="/recipes", tags=["recipes"])


@router.get("", response_model=list[RecipeSummary])
def list_recipes(
    tag: Optional[str] = None,
    title: Optional[str] = None,
    cook_time_max: Optional[int] = Query(default=None, ge=0),
    db: Session = Depends(get_db_session),
):
    return recipes_service.list_recipes(db, tag=tag, title=title, cook_time_max=cook_time_max)


@router.post("", response_model=RecipeRead, status_code=status.HTTP_201_CREATED)
def create_recipe(payload: RecipeCreate, db: Session = Depends(get_db_session)):
    return recipes_service.create_recipe(db, payload)


@router.get("/{recipe_id}", response_model=RecipeRead)
def get_recipe(recipe_id: UUID, db: Session = Depends(get_db_session)):
    return recipes_service.get_recipe(db, str(recipe_id))


@router.put("/{recipe_id}", response_model=RecipeRead)
def update_recipe(recipe_id: UUID, payload: RecipeUpdate, db: Session = Depends(get_db_session)):
    return recipes_service.update_recipe(db, str(recipe_id), payload)


@router.delete("/{recipe_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_recipe(recipe_id: UUID, db: Session = Depends(get_db_session)):
    recipes_service.delete_recipe(db, str(recipe_id))
    return Response(status_code=status.HTTP_204_NO_CONTENT)
