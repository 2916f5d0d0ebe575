"""Recipes API router.

Endpoints (under /api/v1):
- GET    /recipes                          - Paged list with filters
- POST   /recipes                          - Create; enqueues media job for a raw image
- GET    /recipes/{id}                     - Hydrated recipe
- PATCH  /recipes/{id}                     - Partial update (absent = keep, null = clear)
- DELETE /recipes/{id}                     - Delete + best-effort artifact cleanup
- POST   /recipes/{id}/publish|approve|block  - publish also notifies the moderation webhook
- POST   /recipes/{id}/reprocess-image     - Re-enqueue media job
- POST   /recipes/{id}/favorite, DELETE /recipes/{id}/favorite
- POST   /recipes/{id}/reviews, GET /recipes/{id}/rating
"""

import logging
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from slowapi import Limiter
from slowapi.util import get_remote_address

from ..deps import Services, get_media_queue, get_notifier, get_repo, get_services
from ..infra.job_queue import MediaJobQueue
from ..schemas import (
    FavoriteIn,
    MediaJob,
    RecipeCreate,
    RecipeListFilters,
    RecipeOut,
    RecipePage,
    RecipePatch,
    ReviewCreate,
    ReviewOut,
)
from ..services.cleanup import purge_recipe_artifacts
from ..services.moderation import CORRELATION_HEADER, ModerationNotifier
from ..services.recipes_repo import RecipeRepository

router = APIRouter()
limiter = Limiter(key_func=get_remote_address)
logger = logging.getLogger("recipeshare.recipes")


def _found(recipe: Optional[RecipeOut]) -> RecipeOut:
    if recipe is None:
        raise HTTPException(status_code=404, detail="Recipe not found")
    return recipe


@router.get("/recipes", response_model=RecipePage)
def list_recipes(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100, alias="pageSize"),
    q: Optional[str] = Query(None),
    is_published: Optional[bool] = Query(None, alias="isPublished"),
    category: Optional[str] = Query(None),
    repo: RecipeRepository = Depends(get_repo),
):
    filters = RecipeListFilters(
        page=page, page_size=page_size, q=q, is_published=is_published, category=category
    )
    return repo.list(filters)


@router.post("/recipes", response_model=RecipeOut, status_code=201)
def create_recipe(
    payload: RecipeCreate,
    repo: RecipeRepository = Depends(get_repo),
    queue: MediaJobQueue = Depends(get_media_queue),
):
    recipe = repo.create(payload)
    if payload.raw_image_blob_name:
        queue.enqueue(MediaJob(recipe_id=recipe.id, blob_name=payload.raw_image_blob_name))
    return recipe


@router.get("/recipes/{recipe_id}", response_model=RecipeOut)
def get_recipe(recipe_id: str, repo: RecipeRepository = Depends(get_repo)):
    return _found(repo.get_by_id(recipe_id))


@router.patch("/recipes/{recipe_id}", response_model=RecipeOut)
def update_recipe(
    recipe_id: str,
    payload: RecipePatch,
    repo: RecipeRepository = Depends(get_repo),
):
    return _found(repo.update(recipe_id, payload.to_update()))


@router.delete("/recipes/{recipe_id}")
def delete_recipe(recipe_id: str, services: Services = Depends(get_services)):
    """Delete a recipe, then clean up blobs, feed and comments (best effort)."""
    snapshot = services.repo.delete(recipe_id)
    if snapshot is None:
        raise HTTPException(status_code=404, detail="Recipe not found")

    purge_recipe_artifacts(
        snapshot,
        raw_store=services.raw_store,
        processed_store=services.processed_store,
        feed_store=services.feed_store,
    )
    return {"deleted": True, "id": recipe_id}


# --- Moderation ---

@router.post("/recipes/{recipe_id}/publish")
def publish_recipe(
    request: Request,
    recipe_id: str,
    repo: RecipeRepository = Depends(get_repo),
    notifier: ModerationNotifier = Depends(get_notifier),
):
    """Move the recipe to pending, then notify the moderation webhook.

    The status change is committed before the webhook call; a failed call
    answers 502 and leaves the recipe pending.
    """
    recipe = _found(repo.set_publish_status(recipe_id))
    correlation_id = request.headers.get(CORRELATION_HEADER) or str(uuid.uuid4())
    notifier.notify_published(recipe, correlation_id)
    return {
        "id": recipe.id,
        "moderation_status": recipe.moderation_status,
        "is_published": recipe.is_published,
    }


@router.post("/recipes/{recipe_id}/approve", response_model=RecipeOut)
def approve_recipe(recipe_id: str, repo: RecipeRepository = Depends(get_repo)):
    return _found(repo.set_moderation_status(recipe_id, "approved", True))


@router.post("/recipes/{recipe_id}/block", response_model=RecipeOut)
def block_recipe(recipe_id: str, repo: RecipeRepository = Depends(get_repo)):
    return _found(repo.set_moderation_status(recipe_id, "blocked", False))


# --- Media ---

@router.post("/recipes/{recipe_id}/reprocess-image", status_code=202)
@limiter.limit("10/minute")
def reprocess_image(
    request: Request,  # Required for rate limiter
    recipe_id: str,
    repo: RecipeRepository = Depends(get_repo),
    queue: MediaJobQueue = Depends(get_media_queue),
):
    recipe = _found(repo.get_by_id(recipe_id))
    if not recipe.raw_image_blob_name:
        raise HTTPException(status_code=400, detail="Recipe has no raw image to process")

    queue.enqueue(MediaJob(recipe_id=recipe.id, blob_name=recipe.raw_image_blob_name))
    return {"enqueued": True, "recipeId": recipe.id, "blobName": recipe.raw_image_blob_name}


# --- Favorites ---

@router.post("/recipes/{recipe_id}/favorite", status_code=201)
def add_favorite(recipe_id: str, payload: FavoriteIn, repo: RecipeRepository = Depends(get_repo)):
    repo.add_favorite(recipe_id, payload.user_id, payload.user_name)
    return {"recipeId": recipe_id, "userId": payload.user_id}


@router.delete("/recipes/{recipe_id}/favorite")
def remove_favorite(
    recipe_id: str,
    user_id: str = Query(..., alias="userId", min_length=1),
    repo: RecipeRepository = Depends(get_repo),
):
    repo.remove_favorite(recipe_id, user_id)
    return {"recipeId": recipe_id, "userId": user_id, "deleted": True}


# --- Reviews ---

@router.post("/recipes/{recipe_id}/reviews", response_model=ReviewOut, status_code=201)
def add_review(recipe_id: str, payload: ReviewCreate, repo: RecipeRepository = Depends(get_repo)):
    return repo.add_review(
        recipe_id, payload.user_id, payload.rating, payload.text, user_name=payload.user_name
    )


@router.get("/recipes/{recipe_id}/rating")
def get_rating(recipe_id: str, repo: RecipeRepository = Depends(get_repo)):
    _found(repo.get_by_id(recipe_id))
    return {"recipeId": recipe_id, "ratingAvg": repo.get_rating_avg(recipe_id)}
