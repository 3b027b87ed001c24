import enum
import uuid
from datetime import datetime

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    JSON,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from woodpantry_recipes.app.db.base import Base


def _new_id() -> str:
    return str(uuid.uuid4())


class IngestionJobType(str, enum.Enum):
    TEXT_BLOB = "text_blob"
    URL = "url"


class IngestionJobStatus(str, enum.Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    STAGED = "staged"
    FAILED = "failed"
    CONFIRMED = "confirmed"


class Recipe(Base):
    __tablename__ = "recipes"

    id = Column(String(36), primary_key=True, default=_new_id)
    title = Column(String, nullable=False)
    description = Column(Text)
    source_url = Column(String)
    servings = Column(Integer)
    prep_minutes = Column(Integer)
    cook_minutes = Column(Integer)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    steps = relationship(
        "Step",
        back_populates="recipe",
        cascade="all, delete-orphan",
        order_by="Step.step_number",
    )
    ingredients = relationship(
        "RecipeIngredient",
        back_populates="recipe",
        cascade="all, delete-orphan",
        order_by="RecipeIngredient.position",
    )
    tag_rows = relationship(
        "RecipeTag",
        back_populates="recipe",
        cascade="all, delete-orphan",
        order_by="RecipeTag.position",
    )

    @property
    def tags(self) -> list[str]:
        return [row.name for row in self.tag_rows]

    @tags.setter
    def tags(self, names: list[str]) -> None:
        self.tag_rows = [RecipeTag(position=idx, name=name) for idx, name in enumerate(names)]


class RecipeTag(Base):
    __tablename__ = "recipe_tags"
    __table_args__ = (Index("ix_recipe_tags_name", "name"),)

    recipe_id = Column(String(36), ForeignKey("recipes.id", ondelete="CASCADE"), primary_key=True)
    position = Column(Integer, primary_key=True)
    name = Column(String, nullable=False)

    recipe = relationship("Recipe", back_populates="tag_rows")


class Step(Base):
    __tablename__ = "recipe_steps"
    __table_args__ = (UniqueConstraint("recipe_id", "step_number", name="uq_recipe_step_number"),)

    id = Column(String(36), primary_key=True, default=_new_id)
    recipe_id = Column(String(36), ForeignKey("recipes.id", ondelete="CASCADE"), nullable=False, index=True)
    step_number = Column(Integer, nullable=False)
    instruction = Column(Text, nullable=False)

    recipe = relationship("Recipe", back_populates="steps")


class RecipeIngredient(Base):
    __tablename__ = "recipe_ingredients"

    id = Column(String(36), primary_key=True, default=_new_id)
    recipe_id = Column(String(36), ForeignKey("recipes.id", ondelete="CASCADE"), nullable=False, index=True)
    # display order only; not part of the public payload
    position = Column(Integer, nullable=False, default=0)
    ingredient_id = Column(String(36), nullable=False, index=True)
    quantity = Column(Float)
    unit = Column(String)
    is_optional = Column(Boolean, nullable=False, default=False)
    preparation_notes = Column(Text)

    recipe = relationship("Recipe", back_populates="ingredients")


class IngestionJob(Base):
    __tablename__ = "ingestion_jobs"

    id = Column(String(36), primary_key=True, default=_new_id)
    type = Column(String, nullable=False, default=IngestionJobType.TEXT_BLOB.value)
    raw_input = Column(Text, nullable=False)
    status = Column(String, nullable=False, default=IngestionJobStatus.PENDING.value, index=True)
    staged_data = Column(JSON(none_as_null=True), nullable=True)
    error_code = Column(String)
    error_message = Column(Text)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)
