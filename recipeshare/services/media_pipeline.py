"""Media pipeline: raw upload -> thumbnail + main WebP -> recipe pointers -> feed.

Steps for a job ``{recipeId, blobName}``:
1. Download the raw blob
2. Derive thumbnail and main renditions
3. Build blob names from the recipe id alone
4. Upload both renditions (immutable cache headers)
5. Point the recipe row at the new URLs
6. Re-read the recipe; a missing row means the job is stale -> NotFoundError
7. Upsert the recipe's FeedItem

Re-running a job rewrites the same two blobs and the same feed document, so
duplicate delivery only costs redundant I/O. There is no rollback: a failure
after step 4 is healed by redelivery.
"""

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Optional, Union

from pydantic import ValidationError

from ..errors import InvalidJobError, NotFoundError
from ..infra.feed_store import FeedStore
from ..schemas import FeedItem, MediaJob, MediaResult
from ..storage.s3_compat import IMMUTABLE_CACHE_CONTROL, BlobStore
from .images import DerivedImages, generate_images
from .recipes_repo import RecipeRepository

logger = logging.getLogger("recipeshare.media")

WEBP_CONTENT_TYPE = "image/webp"


@dataclass(frozen=True)
class ProcessedNames:
    thumb_name: str
    image_name: str


def processed_blob_names(recipe_id: str) -> ProcessedNames:
    return ProcessedNames(
        thumb_name=f"recipes/{recipe_id}/thumb.webp",
        image_name=f"recipes/{recipe_id}/image.webp",
    )


def parse_media_job(message: Union[str, bytes, dict, Any]) -> MediaJob:
    """Decode a queue message. Anything unreadable becomes an empty job."""
    payload: Any = message
    if isinstance(payload, bytes):
        payload = payload.decode("utf-8", errors="replace")
    if isinstance(payload, str):
        try:
            payload = json.loads(payload)
        except ValueError:
            payload = {}
    if not isinstance(payload, dict):
        payload = {}
    try:
        return MediaJob.model_validate(payload)
    except ValidationError:
        return MediaJob()


def _iso(value: Optional[datetime], fallback: Callable[[], datetime]) -> str:
    if not isinstance(value, datetime):
        value = fallback()
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MediaProcessor:
    def __init__(
        self,
        *,
        raw_store: BlobStore,
        processed_store: BlobStore,
        repo: RecipeRepository,
        feed_store: FeedStore,
        derive: Callable[[bytes], DerivedImages] = generate_images,
        build_names: Callable[[str], ProcessedNames] = processed_blob_names,
        now: Callable[[], datetime] = _utcnow,
    ):
        self.raw_store = raw_store
        self.processed_store = processed_store
        self.repo = repo
        self.feed_store = feed_store
        self.derive = derive
        self.build_names = build_names
        self.now = now

    def process(self, job: MediaJob) -> MediaResult:
        recipe_id, blob_name = job.recipe_id, job.blob_name
        if not (isinstance(recipe_id, str) and recipe_id and isinstance(blob_name, str) and blob_name):
            raise InvalidJobError(payload=job.model_dump(by_alias=True))

        logger.info(f"Processing media for recipe {recipe_id} from {blob_name}")

        raw = self.raw_store.download_bytes(blob_name)
        derived = self.derive(raw)
        names = self.build_names(recipe_id)

        thumb = self.processed_store.put_bytes(
            key=names.thumb_name,
            content_type=WEBP_CONTENT_TYPE,
            data=derived.thumbnail,
            cache_control=IMMUTABLE_CACHE_CONTROL,
        )
        main = self.processed_store.put_bytes(
            key=names.image_name,
            content_type=WEBP_CONTENT_TYPE,
            data=derived.main,
            cache_control=IMMUTABLE_CACHE_CONTROL,
        )

        self.repo.set_image_pointers(recipe_id, main.public_url, thumb.public_url)

        recipe = self.repo.get_by_id(recipe_id)
        if recipe is None:
            # Deleted while the job was running; the uploaded blobs are orphaned
            raise NotFoundError("Recipe not found for media processing", recipe_id)

        self.feed_store.upsert_feed_item(FeedItem(
            id=recipe_id,
            recipe_id=recipe_id,
            title=recipe.title or "Untitled",
            image_thumb_url=thumb.public_url,
            created_at=_iso(recipe.created_at, self.now),
        ))

        logger.info(f"Media ready for recipe {recipe_id}: {main.public_url}")
        return MediaResult(
            recipe_id=recipe_id,
            image_url=main.public_url,
            thumb_url=thumb.public_url,
            blob_names={"thumb": names.thumb_name, "image": names.image_name},
        )
