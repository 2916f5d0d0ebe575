"""Document store for the recipe feed and per-recipe comments, backed by Redis.

Layout (``{p}`` = key prefix):
- ``{p}:feed:docs``                     hash  recipeId -> FeedItem JSON
- ``{p}:feed:by_created``               zset  recipeId scored by createdAt
- ``{p}:comments:{recipeId}:docs``      hash  commentId -> Comment JSON
- ``{p}:comments:{recipeId}:by_created`` zset commentId scored by createdAt

The feed is a single logical partition; comments are partitioned per recipe.
Writes to one document (hash field + index entry) go through MULTI/EXEC;
nothing spans documents.
"""

import json
import logging
import uuid
from datetime import datetime, timezone
from typing import Optional

from redis import Redis

from ..schemas import Comment, FeedItem
from .redis_client import make_key

logger = logging.getLogger("recipeshare.feed")


def iso_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _score(created_at: str) -> float:
    try:
        dt = datetime.fromisoformat(created_at.replace("Z", "+00:00"))
    except ValueError:
        return 0.0
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.timestamp()


def _page_bounds(page: int, page_size: int) -> tuple[int, int]:
    start = (max(page, 1) - 1) * page_size
    return start, start + page_size - 1


class FeedStore:
    def __init__(self, redis: Redis, prefix: str = "recipeshare"):
        self.redis = redis
        self.prefix = prefix

    # --- Feed ---

    @property
    def _feed_docs(self) -> str:
        return make_key(self.prefix, "feed", "docs")

    @property
    def _feed_index(self) -> str:
        return make_key(self.prefix, "feed", "by_created")

    def upsert_feed_item(self, item: FeedItem) -> None:
        """Replace-or-insert keyed by recipe id; last write wins."""
        doc = json.dumps(item.model_dump(by_alias=True))
        pipe = self.redis.pipeline(transaction=True)
        pipe.hset(self._feed_docs, item.id, doc)
        pipe.zadd(self._feed_index, {item.id: _score(item.created_at)})
        pipe.execute()
        logger.info(f"Upserted feed item {item.id}")

    def get_feed_item(self, recipe_id: str) -> Optional[FeedItem]:
        raw = self.redis.hget(self._feed_docs, recipe_id)
        return FeedItem.model_validate_json(raw) if raw else None

    def get_feed_page(self, page: int, page_size: int) -> list[FeedItem]:
        start, stop = _page_bounds(page, page_size)
        ids = self.redis.zrevrange(self._feed_index, start, stop)
        if not ids:
            return []
        raws = self.redis.hmget(self._feed_docs, ids)
        return [FeedItem.model_validate_json(raw) for raw in raws if raw]

    def delete_feed_item(self, recipe_id: str) -> bool:
        """Returns False when there was nothing to delete."""
        pipe = self.redis.pipeline(transaction=True)
        pipe.hdel(self._feed_docs, recipe_id)
        pipe.zrem(self._feed_index, recipe_id)
        removed, _ = pipe.execute()
        return bool(removed)

    # --- Comments ---

    def _comment_docs(self, recipe_id: str) -> str:
        return make_key(self.prefix, "comments", recipe_id, "docs")

    def _comment_index(self, recipe_id: str) -> str:
        return make_key(self.prefix, "comments", recipe_id, "by_created")

    def add_comment(self, recipe_id: str, user_id: str, text: str) -> Comment:
        comment = Comment(
            id=str(uuid.uuid4()),
            recipe_id=recipe_id,
            user_id=user_id,
            text=text,
            created_at=iso_now(),
        )
        pipe = self.redis.pipeline(transaction=True)
        pipe.hset(self._comment_docs(recipe_id), comment.id, json.dumps(comment.model_dump(by_alias=True)))
        pipe.zadd(self._comment_index(recipe_id), {comment.id: _score(comment.created_at)})
        pipe.execute()
        return comment

    def get_comments(self, recipe_id: str, page: int, page_size: int) -> list[Comment]:
        start, stop = _page_bounds(page, page_size)
        ids = self.redis.zrevrange(self._comment_index(recipe_id), start, stop)
        if not ids:
            return []
        raws = self.redis.hmget(self._comment_docs(recipe_id), ids)
        return [Comment.model_validate_json(raw) for raw in raws if raw]

    def delete_comments_for_recipe(self, recipe_id: str) -> int:
        """Delete every comment in the recipe's partition, one document at a time.

        Not atomic: a failure midway leaves the remaining comments in place.
        """
        docs_key = self._comment_docs(recipe_id)
        index_key = self._comment_index(recipe_id)
        ids = set(self.redis.hkeys(docs_key)) | set(self.redis.zrange(index_key, 0, -1))

        deleted = 0
        for comment_id in ids:
            pipe = self.redis.pipeline(transaction=True)
            pipe.hdel(docs_key, comment_id)
            pipe.zrem(index_key, comment_id)
            removed, _ = pipe.execute()
            deleted += removed
        return deleted

    def ping(self) -> bool:
        return bool(self.redis.ping())
