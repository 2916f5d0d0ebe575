"""Pydantic schemas for recipeshare.

Request/response models for:
- Recipes (create, patch, hydrated output, paged list)
- Favorites and reviews
- Feed items and comments (document store shapes, camelCase on the wire)
- Media jobs

Also holds the tagged field values used by partial updates.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Generic, Literal, Optional, TypeVar, Union

from pydantic import BaseModel, Field, field_validator


T = TypeVar("T")

ModerationStatus = Literal["draft", "pending", "approved", "blocked"]


# --- Partial update values ---

class _Marker:
    def __init__(self, name: str):
        self._name = name

    def __repr__(self) -> str:
        return self._name


UNSET = _Marker("UNSET")  # leave the field alone
CLEAR = _Marker("CLEAR")  # set the field to NULL / empty


@dataclass(frozen=True)
class Set(Generic[T]):
    value: T


FieldChange = Union[_Marker, Set[T]]


@dataclass
class RecipeUpdate:
    """Per-field changes for RecipeRepository.update."""
    title: FieldChange[str] = UNSET
    description: FieldChange[str] = UNSET
    instructions: FieldChange[str] = UNSET
    raw_image_blob_name: FieldChange[str] = UNSET
    categories: FieldChange[list[str]] = UNSET
    ingredients: FieldChange[list["IngredientIn"]] = UNSET

    SCALAR_FIELDS = ("title", "description", "instructions", "raw_image_blob_name")

    def scalar_changes(self) -> dict[str, FieldChange[Any]]:
        return {
            name: getattr(self, name)
            for name in self.SCALAR_FIELDS
            if getattr(self, name) is not UNSET
        }


# --- Ingredients ---

class IngredientIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    quantity: Optional[str] = Field(None, max_length=100)


class IngredientOut(BaseModel):
    name: str
    quantity: Optional[str] = None


# --- Recipe ---

def _non_blank_title(v: str) -> str:
    v = v.strip()
    if not v:
        raise ValueError("title must not be blank")
    return v


class RecipeCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    instructions: Optional[str] = None
    raw_image_blob_name: Optional[str] = Field(None, min_length=1, max_length=500)
    categories: Optional[list[str]] = None
    ingredients: Optional[list[IngredientIn]] = None
    user_id: Optional[str] = Field(None, max_length=36)
    user_name: Optional[str] = Field(None, max_length=200)
    user_email: Optional[str] = Field(None, max_length=320)

    @field_validator("title")
    @classmethod
    def _strip_title(cls, v: str) -> str:
        return _non_blank_title(v)


class RecipePatch(BaseModel):
    """HTTP body for PATCH. Absent keys are left alone, explicit nulls clear."""
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    instructions: Optional[str] = None
    raw_image_blob_name: Optional[str] = Field(None, min_length=1, max_length=500)
    categories: Optional[list[str]] = None
    ingredients: Optional[list[IngredientIn]] = None

    @field_validator("title")
    @classmethod
    def _strip_title(cls, v: Optional[str]) -> Optional[str]:
        # null is a clear request; the repository rejects it for title
        return v if v is None else _non_blank_title(v)

    def to_update(self) -> RecipeUpdate:
        changes: dict[str, FieldChange[Any]] = {}
        for name in self.model_fields_set:
            value = getattr(self, name)
            changes[name] = CLEAR if value is None else Set(value)
        return RecipeUpdate(**changes)


class RecipeRow(BaseModel):
    """Base recipe columns, as stored."""
    id: str
    user_id: Optional[str] = None
    title: str
    description: Optional[str] = None
    instructions: Optional[str] = None
    raw_image_blob_name: Optional[str] = None
    image_url: Optional[str] = None
    thumb_url: Optional[str] = None
    is_published: bool
    moderation_status: ModerationStatus
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class RecipeOut(RecipeRow):
    categories: list[str] = Field(default_factory=list)
    ingredients: list[IngredientOut] = Field(default_factory=list)


class RecipeListItem(RecipeRow):
    categories: list[str] = Field(default_factory=list)


class RecipePage(BaseModel):
    items: list[RecipeListItem]
    total: int
    page: int
    page_size: int


class RecipeListFilters(BaseModel):
    page: int = Field(1, ge=1)
    page_size: int = Field(20, ge=1, le=100)
    q: Optional[str] = None
    is_published: Optional[bool] = None
    category: Optional[str] = None


# --- Favorites / reviews ---

class FavoriteIn(BaseModel):
    user_id: str = Field(..., min_length=1, max_length=36)
    user_name: Optional[str] = Field(None, min_length=1, max_length=200)


class ReviewCreate(BaseModel):
    user_id: str = Field(..., min_length=1, max_length=36)
    user_name: Optional[str] = Field(None, min_length=1, max_length=200)
    rating: int = Field(..., ge=1, le=5)
    text: Optional[str] = None


class ReviewOut(BaseModel):
    id: str
    recipe_id: str
    user_id: str
    rating: int
    text: Optional[str]
    created_at: Optional[datetime]

    class Config:
        from_attributes = True


# --- Document store ---

class FeedItem(BaseModel):
    id: str
    pk: Literal["feed"] = "feed"
    recipe_id: str = Field(..., alias="recipeId")
    title: str
    image_thumb_url: Optional[str] = Field(None, alias="imageThumbUrl")
    created_at: str = Field(..., alias="createdAt")

    class Config:
        populate_by_name = True


class Comment(BaseModel):
    id: str
    recipe_id: str = Field(..., alias="recipeId")
    user_id: str = Field(..., alias="userId")
    text: str
    created_at: str = Field(..., alias="createdAt")

    class Config:
        populate_by_name = True


class CommentCreate(BaseModel):
    user_id: str = Field(..., min_length=1, max_length=36)
    user_name: Optional[str] = Field(None, min_length=1, max_length=200)
    text: str = Field(..., min_length=1, max_length=2000)

    @field_validator("text")
    @classmethod
    def _strip_text(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("text must not be blank")
        return v


# --- Media jobs ---

class MediaJob(BaseModel):
    """Queue message ``{recipeId, blobName}``. Validated by the pipeline."""
    recipe_id: Any = Field("", alias="recipeId")
    blob_name: Any = Field("", alias="blobName")

    class Config:
        populate_by_name = True


@dataclass
class MediaResult:
    recipe_id: str
    image_url: str
    thumb_url: str
    blob_names: dict[str, str] = field(default_factory=dict)
