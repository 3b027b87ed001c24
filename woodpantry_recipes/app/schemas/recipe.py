from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class IngredientBase(BaseModel):
    ingredient_id: UUID
    quantity: Optional[float] = Field(default=None, ge=0)
    unit: Optional[str] = None
    is_optional: bool = False
    preparation_notes: Optional[str] = None


class IngredientCreate(IngredientBase):
    pass


class IngredientRead(IngredientBase):
    id: str

    model_config = ConfigDict(from_attributes=True)


class StepCreate(BaseModel):
    step_number: Optional[int] = None
    instruction: str

    @field_validator("instruction")
    @classmethod
    def validate_instruction(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Step instruction is required")
        return value


class StepRead(BaseModel):
    id: str
    step_number: int
    instruction: str

    model_config = ConfigDict(from_attributes=True)


class RecipeBase(BaseModel):
    title: str
    description: Optional[str] = None
    source_url: Optional[str] = None
    servings: Optional[int] = Field(default=None, ge=0)
    prep_minutes: Optional[int] = Field(default=None, ge=0)
    cook_minutes: Optional[int] = Field(default=None, ge=0)
    tags: List[str] = []


class RecipeCreate(RecipeBase):
    steps: List[StepCreate] = []
    ingredients: List[IngredientCreate] = []

    @field_validator("title")
    @classmethod
    def validate_title(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Title is required")
        return value

    @field_validator("tags")
    @classmethod
    def validate_tags(cls, value: List[str]) -> List[str]:
        tags = [tag.strip() for tag in value]
        if any(not tag for tag in tags):
            raise ValueError("Tags must not be blank")
        return tags

    @model_validator(mode="after")
    def validate_step_numbers(self) -> "RecipeCreate":
        explicit = [step.step_number for step in self.steps if step.step_number is not None]
        if explicit and explicit != list(range(1, len(self.steps) + 1)):
            raise ValueError("step_number values must run 1..n in order")
        return self


# PUT replaces the whole aggregate
RecipeUpdate = RecipeCreate


class RecipeSummary(RecipeBase):
    id: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class RecipeRead(RecipeSummary):
    steps: List[StepRead]
    ingredients: List[IngredientRead]
