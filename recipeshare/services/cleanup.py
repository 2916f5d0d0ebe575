"""Best-effort cleanup after a recipe has been deleted.

The relational delete has already committed, so nothing here may fail the
caller. Each step reports a CleanupResult that is logged and returned.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Optional

from ..infra.feed_store import FeedStore
from ..schemas import RecipeRow
from ..storage.s3_compat import BlobStore
from .media_pipeline import processed_blob_names

logger = logging.getLogger("recipeshare.cleanup")


@dataclass
class CleanupResult:
    step: str
    ok: bool
    error: Optional[str] = None


def _attempt(step: str, action: Callable[[], object]) -> CleanupResult:
    try:
        action()
    except Exception as e:
        logger.warning(f"Cleanup step {step} failed: {e}")
        return CleanupResult(step=step, ok=False, error=str(e))
    return CleanupResult(step=step, ok=True)


def purge_recipe_artifacts(
    recipe: RecipeRow,
    *,
    raw_store: BlobStore,
    processed_store: BlobStore,
    feed_store: FeedStore,
) -> list[CleanupResult]:
    """Delete raw/processed blobs, the feed item and all comments of a recipe."""
    results = []

    if recipe.raw_image_blob_name:
        blob_name = recipe.raw_image_blob_name
        results.append(_attempt(f"raw:{blob_name}", lambda: raw_store.delete(blob_name)))

    names = processed_blob_names(recipe.id)
    for key in (names.thumb_name, names.image_name):
        results.append(_attempt(f"processed:{key}", lambda key=key: processed_store.delete(key)))

    # A missing feed item counts as deleted
    results.append(_attempt("feed", lambda: feed_store.delete_feed_item(recipe.id)))
    results.append(_attempt("comments", lambda: feed_store.delete_comments_for_recipe(recipe.id)))

    failed = [r.step for r in results if not r.ok]
    if failed:
        logger.warning(f"Recipe {recipe.id} deleted with leftover artifacts: {failed}")
    else:
        logger.info(f"Purged artifacts for recipe {recipe.id}")
    return results
