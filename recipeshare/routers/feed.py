"""Feed and comments API router (document store reads/writes)."""

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from slowapi import Limiter
from slowapi.util import get_remote_address

from ..deps import get_feed_store, get_repo
from ..infra.feed_store import FeedStore
from ..schemas import CommentCreate
from ..services.recipes_repo import RecipeRepository

router = APIRouter()
limiter = Limiter(key_func=get_remote_address)


@router.get("/feed")
def get_feed(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100, alias="pageSize"),
    feed_store: FeedStore = Depends(get_feed_store),
):
    items = feed_store.get_feed_page(page, page_size)
    return {
        "items": [item.model_dump(by_alias=True) for item in items],
        "page": page,
        "pageSize": page_size,
    }


@router.get("/recipes/{recipe_id}/comments")
def list_comments(
    recipe_id: str,
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100, alias="pageSize"),
    feed_store: FeedStore = Depends(get_feed_store),
):
    comments = feed_store.get_comments(recipe_id, page, page_size)
    return {
        "items": [c.model_dump(by_alias=True) for c in comments],
        "page": page,
        "pageSize": page_size,
    }


@router.post("/recipes/{recipe_id}/comments", status_code=201)
@limiter.limit("30/minute")
def create_comment(
    request: Request,  # Required for rate limiter
    recipe_id: str,
    payload: CommentCreate,
    repo: RecipeRepository = Depends(get_repo),
    feed_store: FeedStore = Depends(get_feed_store),
):
    if repo.get_by_id(recipe_id) is None:
        raise HTTPException(status_code=404, detail="Recipe not found")
    repo.ensure_user_exists(payload.user_id, payload.user_name)
    comment = feed_store.add_comment(recipe_id, payload.user_id, payload.text)
    return comment.model_dump(by_alias=True)
