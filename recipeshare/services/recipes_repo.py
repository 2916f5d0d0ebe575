"""Transactional recipe repository.

Every public method runs in its own transaction (``session_factory.begin()``):
all writes of a call commit together, and any exception rolls the whole call
back before it propagates.

Categories and ingredients are normalized through get-or-create on their
unique ``name``. Association sets are replaced wholesale (delete all join
rows, reinsert) rather than diffed.
"""

import logging
from collections import OrderedDict
from datetime import datetime
from typing import Callable, Iterable, Optional

from sqlalchemy import delete, distinct, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, aliased, sessionmaker

from ..errors import ConflictError, InvalidInputError, NotFoundError
from ..models import (
    MODERATION_STATUSES,
    PUBLISHED_STATUSES,
    Category,
    Favorite,
    Ingredient,
    Recipe,
    RecipeCategory,
    RecipeIngredient,
    Review,
    User,
    generate_uuid,
    utcnow,
)
from ..schemas import (
    CLEAR,
    UNSET,
    IngredientIn,
    IngredientOut,
    RecipeCreate,
    RecipeListFilters,
    RecipeListItem,
    RecipeOut,
    RecipePage,
    RecipeRow,
    RecipeUpdate,
    ReviewOut,
)

logger = logging.getLogger("recipeshare.recipes")

MAX_GET_OR_CREATE_ATTEMPTS = 3


# --- Get-or-create ---

def _lookup_id(db: Session, model, **criteria) -> Optional[str]:
    return db.scalar(select(model.id).filter_by(**criteria).limit(1))


def _get_or_create(db: Session, model, factory: Optional[Callable] = None, **criteria) -> str:
    """Return the id of the row matching ``criteria``, inserting it if absent.

    The insert runs in a SAVEPOINT. When it hits a unique violation (another
    transaction created the same row first) only the savepoint is rolled back
    and the lookup runs again.
    """
    for attempt in range(1, MAX_GET_OR_CREATE_ATTEMPTS + 1):
        existing_id = _lookup_id(db, model, **criteria)
        if existing_id is not None:
            return existing_id

        row = factory() if factory else model(id=generate_uuid(), **criteria)
        try:
            with db.begin_nested():
                db.add(row)
                db.flush()
        except IntegrityError:
            logger.info(
                f"{model.__tablename__} insert for {criteria} raced (attempt {attempt}); retrying lookup"
            )
            continue
        return row.id

    raise ConflictError(f"Could not get or create {model.__tablename__} row for {criteria}")


def ensure_user(
    db: Session,
    user_id: Optional[str],
    name: Optional[str] = None,
    email: Optional[str] = None,
) -> Optional[str]:
    """Create the user row on first reference. Existing rows are never modified."""
    if not user_id:
        return None
    return _get_or_create(
        db,
        User,
        factory=lambda: User(id=user_id, name=name or "anonymous", email=email or None),
        id=user_id,
    )


# --- Association replacement ---

def _clean_names(names: Iterable[str]) -> list[str]:
    seen = OrderedDict()
    for name in names:
        name = (name or "").strip()
        if name:
            seen[name] = None
    return list(seen)


def replace_recipe_categories(db: Session, recipe_id: str, names: Iterable[str]) -> None:
    db.execute(delete(RecipeCategory).where(RecipeCategory.recipe_id == recipe_id))

    for name in _clean_names(names):
        category_id = _get_or_create(db, Category, name=name)
        db.add(RecipeCategory(id=generate_uuid(), recipe_id=recipe_id, category_id=category_id))
    db.flush()


def replace_recipe_ingredients(db: Session, recipe_id: str, ingredients: Iterable[IngredientIn]) -> None:
    db.execute(delete(RecipeIngredient).where(RecipeIngredient.recipe_id == recipe_id))

    # Same name twice collapses to one row; the last quantity wins
    quantities: OrderedDict[str, Optional[str]] = OrderedDict()
    for ingredient in ingredients:
        name = ingredient.name.strip()
        if name:
            quantities[name] = ingredient.quantity

    for name, quantity in quantities.items():
        ingredient_id = _get_or_create(db, Ingredient, name=name)
        db.add(RecipeIngredient(
            id=generate_uuid(),
            recipe_id=recipe_id,
            ingredient_id=ingredient_id,
            quantity=quantity,
        ))
    db.flush()


# --- Hydration ---

def load_categories(db: Session, recipe_id: str) -> list[str]:
    stmt = (
        select(Category.name)
        .join(RecipeCategory, RecipeCategory.category_id == Category.id)
        .where(RecipeCategory.recipe_id == recipe_id)
        .order_by(Category.name)
    )
    return list(db.scalars(stmt))


def load_ingredients(db: Session, recipe_id: str) -> list[IngredientOut]:
    stmt = (
        select(Ingredient.name, RecipeIngredient.quantity)
        .join(RecipeIngredient, RecipeIngredient.ingredient_id == Ingredient.id)
        .where(RecipeIngredient.recipe_id == recipe_id)
        .order_by(Ingredient.name)
    )
    return [IngredientOut(name=name, quantity=quantity) for name, quantity in db.execute(stmt)]


def _hydrate(db: Session, recipe: Recipe) -> RecipeOut:
    return RecipeOut.model_validate(recipe).model_copy(update={
        "categories": load_categories(db, recipe.id),
        "ingredients": load_ingredients(db, recipe.id),
    })


def _names_aggregate(dialect_name: str, column):
    if dialect_name in ("postgresql", "mssql"):
        return func.string_agg(column, ",")
    return func.group_concat(column, ",")


def _split_names(value: Optional[str]) -> list[str]:
    if not value:
        return []
    return sorted(item.strip() for item in value.split(",") if item.strip())


def _list_clauses(filters: RecipeListFilters) -> list:
    clauses = []
    if filters.q:
        clauses.append(or_(
            Recipe.title.icontains(filters.q, autoescape=True),
            Recipe.description.icontains(filters.q, autoescape=True),
        ))
    if filters.is_published is not None:
        clauses.append(Recipe.is_published == filters.is_published)
    if filters.category:
        # Aliased so the subquery is not correlated with the outer category join
        rc = aliased(RecipeCategory)
        cat = aliased(Category)
        clauses.append(
            select(rc.id)
            .join(cat, rc.category_id == cat.id)
            .where(rc.recipe_id == Recipe.id, cat.name == filters.category)
            .correlate(Recipe)
            .exists()
        )
    return clauses


class RecipeRepository:
    def __init__(self, session_factory: sessionmaker, now: Callable[[], datetime] = utcnow):
        self._session_factory = session_factory
        self._now = now

    # --- Reads ---

    def get_by_id(self, recipe_id: str) -> Optional[RecipeOut]:
        with self._session_factory() as db:
            recipe = db.get(Recipe, recipe_id)
            if recipe is None:
                return None
            return _hydrate(db, recipe)

    def list(self, filters: RecipeListFilters) -> RecipePage:
        clauses = _list_clauses(filters)
        offset = (filters.page - 1) * filters.page_size

        with self._session_factory() as db:
            total = db.scalar(
                select(func.count(distinct(Recipe.id))).select_from(Recipe).where(*clauses)
            ) or 0

            names = _names_aggregate(db.get_bind().dialect.name, Category.name).label("category_names")
            stmt = (
                select(Recipe, names)
                .outerjoin(RecipeCategory, RecipeCategory.recipe_id == Recipe.id)
                .outerjoin(Category, Category.id == RecipeCategory.category_id)
                .where(*clauses)
                .group_by(Recipe.id)
                .order_by(Recipe.created_at.desc(), Recipe.id.desc())
                .offset(offset)
                .limit(filters.page_size)
            )
            items = [
                RecipeListItem.model_validate(recipe).model_copy(
                    update={"categories": _split_names(category_names)}
                )
                for recipe, category_names in db.execute(stmt)
            ]

        return RecipePage(items=items, total=total, page=filters.page, page_size=filters.page_size)

    # --- Writes ---

    def create(self, data: RecipeCreate) -> RecipeOut:
        recipe_id = generate_uuid()
        now = self._now()

        with self._session_factory.begin() as db:
            owner_id = ensure_user(db, data.user_id, data.user_name, data.user_email)
            db.add(Recipe(
                id=recipe_id,
                user_id=owner_id,
                title=data.title,
                description=data.description,
                instructions=data.instructions,
                raw_image_blob_name=data.raw_image_blob_name,
                is_published=False,
                moderation_status="draft",
                created_at=now,
                updated_at=now,
            ))
            db.flush()

            if data.categories is not None:
                replace_recipe_categories(db, recipe_id, data.categories)
            if data.ingredients is not None:
                replace_recipe_ingredients(db, recipe_id, data.ingredients)

        recipe = self.get_by_id(recipe_id)
        if recipe is None:
            raise NotFoundError("Recipe not found after create", recipe_id)
        logger.info(f"Created recipe {recipe_id}")
        return recipe

    def update(self, recipe_id: str, changes: RecipeUpdate) -> Optional[RecipeOut]:
        """Apply a partial update. Returns None if the recipe does not exist."""
        scalars = changes.scalar_changes()
        title = scalars.get("title")
        if title is CLEAR or (title is not None and not title.value.strip()):
            raise InvalidInputError("title cannot be cleared")

        with self._session_factory.begin() as db:
            recipe = db.get(Recipe, recipe_id)
            if recipe is None:
                return None

            for name, change in scalars.items():
                setattr(recipe, name, None if change is CLEAR else change.value)
            if scalars:
                recipe.updated_at = self._now()

            if changes.categories is not UNSET:
                names = [] if changes.categories is CLEAR else changes.categories.value
                replace_recipe_categories(db, recipe_id, names)
            if changes.ingredients is not UNSET:
                items = [] if changes.ingredients is CLEAR else changes.ingredients.value
                replace_recipe_ingredients(db, recipe_id, items)

            db.flush()
            db.refresh(recipe)
            return _hydrate(db, recipe)

    def delete(self, recipe_id: str) -> Optional[RecipeRow]:
        """Delete the recipe and its dependent rows; returns the pre-delete row."""
        with self._session_factory.begin() as db:
            recipe = db.get(Recipe, recipe_id)
            if recipe is None:
                return None
            snapshot = RecipeRow.model_validate(recipe)

            db.execute(delete(RecipeCategory).where(RecipeCategory.recipe_id == recipe_id))
            db.execute(delete(RecipeIngredient).where(RecipeIngredient.recipe_id == recipe_id))
            db.execute(delete(Review).where(Review.recipe_id == recipe_id))
            db.execute(delete(Favorite).where(Favorite.recipe_id == recipe_id))
            db.delete(recipe)

        logger.info(f"Deleted recipe {recipe_id}")
        return snapshot

    def _set_fields(self, recipe_id: str, **values) -> Optional[RecipeOut]:
        with self._session_factory.begin() as db:
            recipe = db.get(Recipe, recipe_id)
            if recipe is None:
                return None
            for name, value in values.items():
                setattr(recipe, name, value)
            recipe.updated_at = self._now()
            db.flush()
            db.refresh(recipe)
            return _hydrate(db, recipe)

    def set_publish_status(self, recipe_id: str) -> Optional[RecipeOut]:
        """Publish request: draft (or blocked) -> pending."""
        return self._set_fields(recipe_id, is_published=True, moderation_status="pending")

    def set_moderation_status(self, recipe_id: str, status: str, is_published: bool) -> Optional[RecipeOut]:
        if status not in MODERATION_STATUSES:
            raise InvalidInputError(f"Unknown moderation status: {status}")
        if is_published and status not in PUBLISHED_STATUSES:
            raise InvalidInputError(f"A {status} recipe cannot be published")
        return self._set_fields(recipe_id, is_published=is_published, moderation_status=status)

    def set_image_pointers(self, recipe_id: str, image_url: str, thumb_url: str) -> None:
        """Media pipeline only. Touches zero rows if the recipe is gone."""
        with self._session_factory.begin() as db:
            db.execute(
                update(Recipe)
                .where(Recipe.id == recipe_id)
                .values(image_url=image_url, thumb_url=thumb_url, updated_at=self._now())
            )

    # --- Users ---

    def ensure_user_exists(self, user_id: str, name: Optional[str] = None) -> Optional[str]:
        """Create the user on first reference from outside the relational store (comments)."""
        with self._session_factory.begin() as db:
            return ensure_user(db, user_id, name)

    # --- Favorites ---

    def add_favorite(self, recipe_id: str, user_id: str, user_name: Optional[str] = None) -> None:
        """Idempotent: a second call for the same (user, recipe) pair is a no-op."""
        with self._session_factory.begin() as db:
            if db.get(Recipe, recipe_id) is None:
                raise NotFoundError(entity_id=recipe_id)
            ensure_user(db, user_id, user_name)
            _get_or_create(
                db,
                Favorite,
                factory=lambda: Favorite(id=generate_uuid(), user_id=user_id, recipe_id=recipe_id),
                user_id=user_id,
                recipe_id=recipe_id,
            )

    def remove_favorite(self, recipe_id: str, user_id: str) -> None:
        with self._session_factory.begin() as db:
            db.execute(
                delete(Favorite).where(Favorite.user_id == user_id, Favorite.recipe_id == recipe_id)
            )

    # --- Reviews ---

    def add_review(
        self,
        recipe_id: str,
        user_id: str,
        rating: int,
        text: Optional[str] = None,
        user_name: Optional[str] = None,
    ) -> ReviewOut:
        with self._session_factory.begin() as db:
            if db.get(Recipe, recipe_id) is None:
                raise NotFoundError(entity_id=recipe_id)
            ensure_user(db, user_id, user_name)
            review = Review(
                id=generate_uuid(),
                recipe_id=recipe_id,
                user_id=user_id,
                rating=rating,
                text=text,
                created_at=self._now(),
            )
            db.add(review)
            db.flush()
            return ReviewOut.model_validate(review)

    def get_rating_avg(self, recipe_id: str) -> float:
        with self._session_factory() as db:
            avg = db.scalar(select(func.avg(Review.rating)).where(Review.recipe_id == recipe_id))
        return float(avg) if avg is not None else 0.0
