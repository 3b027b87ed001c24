from datetime import datetime
from typing import List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

JobType = Literal["text_blob", "url"]


class StagedIngredient(BaseModel):
    name: str
    ingredient_id: Optional[UUID] = None
    quantity: Optional[float] = Field(default=None, ge=0)
    unit: Optional[str] = None
    is_optional: bool = False
    preparation_notes: Optional[str] = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Ingredient name is required")
        return value


class StagedRecipe(BaseModel):
    """Candidate recipe held in an ingestion job until it is confirmed."""

    title: str
    description: Optional[str] = None
    source_url: Optional[str] = None
    servings: Optional[int] = Field(default=None, ge=0)
    prep_minutes: Optional[int] = Field(default=None, ge=0)
    cook_minutes: Optional[int] = Field(default=None, ge=0)
    tags: List[str] = []
    steps: List[str] = []
    ingredients: List[StagedIngredient] = []

    @field_validator("title")
    @classmethod
    def validate_title(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Title is required")
        return value

    @field_validator("tags", "steps", mode="before")
    @classmethod
    def default_empty(cls, value):
        return [] if value is None else value

    @field_validator("tags")
    @classmethod
    def drop_blank_tags(cls, value: List[str]) -> List[str]:
        # extractors emit stray empty tags; confirmed recipes reject them
        return [tag.strip() for tag in value if tag.strip()]

    @field_validator("ingredients", mode="before")
    @classmethod
    def default_no_ingredients(cls, value):
        return [] if value is None else value


class IngestRequest(BaseModel):
    text: str
    type: JobType = "text_blob"

    @field_validator("text")
    @classmethod
    def validate_text(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("text must not be empty")
        return value

    @model_validator(mode="after")
    def validate_url_input(self) -> "IngestRequest":
        if self.type == "url" and not self.text.strip().lower().startswith(("http://", "https://")):
            raise ValueError("url jobs require an http(s) URL")
        return self


class IngestionJobRead(BaseModel):
    id: str
    type: str
    status: str
    raw_input: str
    staged_data: Optional[StagedRecipe] = None
    error_code: Optional[str] = None
    error_message: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)
