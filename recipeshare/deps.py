"""Service wiring and FastAPI dependencies.

Store clients are built once per process by ``build_services`` and passed
explicitly into the repository, pipeline and routers.
"""

from dataclasses import dataclass

from fastapi import Depends, Request
from redis import Redis
from sqlalchemy.engine import Engine

from .db import create_db_engine, make_session_factory
from .infra.feed_store import FeedStore
from .infra.job_queue import MediaJobQueue
from .infra.redis_client import create_redis
from .services.media_pipeline import MediaProcessor
from .services.moderation import ModerationNotifier
from .services.recipes_repo import RecipeRepository
from .settings import Settings
from .storage.s3_compat import BlobStore, build_blob_stores


@dataclass
class Services:
    engine: Engine
    redis: Redis
    repo: RecipeRepository
    feed_store: FeedStore
    media_queue: MediaJobQueue
    raw_store: BlobStore
    processed_store: BlobStore
    notifier: ModerationNotifier

    def media_processor(self) -> MediaProcessor:
        return MediaProcessor(
            raw_store=self.raw_store,
            processed_store=self.processed_store,
            repo=self.repo,
            feed_store=self.feed_store,
        )

    def close(self) -> None:
        self.redis.close()
        self.notifier.close()
        self.engine.dispose()


def build_services(settings: Settings) -> Services:
    engine = create_db_engine(settings.database_url)
    redis = create_redis(settings.redis_url)
    raw_store, processed_store = build_blob_stores(settings)
    return Services(
        engine=engine,
        redis=redis,
        repo=RecipeRepository(make_session_factory(engine)),
        feed_store=FeedStore(redis, prefix=settings.redis_key_prefix),
        media_queue=MediaJobQueue(
            redis,
            name=settings.media_queue_name,
            prefix=settings.redis_key_prefix,
            max_dequeue_count=settings.media_max_dequeue_count,
            visibility_timeout=settings.media_visibility_timeout,
        ),
        raw_store=raw_store,
        processed_store=processed_store,
        notifier=ModerationNotifier(
            settings.moderation_webhook_url,
            timeout=settings.moderation_webhook_timeout,
        ),
    )


def get_services(request: Request) -> Services:
    return request.app.state.services


def get_repo(services: Services = Depends(get_services)) -> RecipeRepository:
    return services.repo


def get_feed_store(services: Services = Depends(get_services)) -> FeedStore:
    return services.feed_store


def get_media_queue(services: Services = Depends(get_services)) -> MediaJobQueue:
    return services.media_queue


def get_notifier(services: Services = Depends(get_services)) -> ModerationNotifier:
    return services.notifier
