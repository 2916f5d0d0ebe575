from datetime import datetime, timedelta, timezone

import fakeredis
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event, func, select
from sqlalchemy.pool import StaticPool

from recipeshare.db import Base, make_session_factory
from recipeshare.deps import Services
from recipeshare.infra.feed_store import FeedStore
from recipeshare.infra.job_queue import MediaJobQueue
from recipeshare.main import app
from recipeshare.services.media_pipeline import MediaProcessor
from recipeshare.services.moderation import ModerationNotifier
from recipeshare.services.recipes_repo import RecipeRepository
from recipeshare.storage.s3_compat import PutResult

# --- Test Database Setup ---

SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,  # in-memory DB shared across sessions
)


# pysqlite defers BEGIN on its own, which breaks SAVEPOINT handling.
# Let SQLAlchemy emit BEGIN itself.
@event.listens_for(engine, "connect")
def _sqlite_connect(dbapi_connection, connection_record):
    dbapi_connection.isolation_level = None


@event.listens_for(engine, "begin")
def _sqlite_begin(conn):
    conn.exec_driver_sql("BEGIN")


TestingSessionLocal = make_session_factory(engine)


class TickingClock:
    """Deterministic clock; every call is one second later."""

    def __init__(self, start: datetime = datetime(2026, 1, 1, tzinfo=timezone.utc)):
        self.current = start

    def __call__(self) -> datetime:
        self.current += timedelta(seconds=1)
        return self.current


class FakeBlobStore:
    """In-memory stand-in for BlobStore."""

    def __init__(self, bucket: str, base_url: str = "https://blobs.test"):
        self.bucket = bucket
        self.public_base_url = f"{base_url}/{bucket}"
        self.blobs: dict[str, dict] = {}
        self.deleted: list[str] = []
        self.put_count = 0
        self.fail_deletes = False

    def public_url(self, key: str) -> str:
        return f"{self.public_base_url}/{key}"

    def download_bytes(self, key: str) -> bytes:
        if key not in self.blobs:
            raise KeyError(key)
        return self.blobs[key]["data"]

    def put_bytes(self, *, key, content_type, data, cache_control=None) -> PutResult:
        self.put_count += 1
        self.blobs[key] = {"data": data, "content_type": content_type, "cache_control": cache_control}
        return PutResult(key=key, public_url=self.public_url(key))

    def delete(self, key: str) -> None:
        if self.fail_deletes:
            raise ConnectionError("blob store unavailable")
        self.deleted.append(key)
        self.blobs.pop(key, None)

    def exists(self, key: str) -> bool:
        return key in self.blobs


@pytest.fixture(autouse=True)
def setup_database():
    """Create tables before each test, drop after."""
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def session_factory():
    return TestingSessionLocal


@pytest.fixture
def count_rows(session_factory):
    """Count rows of a model in a short-lived session."""
    def _count(model, **filters) -> int:
        with session_factory() as db:
            return db.scalar(select(func.count()).select_from(model).filter_by(**filters))
    return _count


@pytest.fixture
def clock():
    return TickingClock()


@pytest.fixture
def repo(session_factory, clock):
    return RecipeRepository(session_factory, now=clock)


@pytest.fixture
def fake_redis():
    return fakeredis.FakeRedis(decode_responses=True)


@pytest.fixture
def feed_store(fake_redis):
    return FeedStore(fake_redis, prefix="test")


@pytest.fixture
def media_queue(fake_redis):
    return MediaJobQueue(fake_redis, name="media-process", prefix="test", max_dequeue_count=3)


@pytest.fixture
def raw_store():
    return FakeBlobStore("raw")


@pytest.fixture
def processed_store():
    return FakeBlobStore("processed")


@pytest.fixture
def processor(raw_store, processed_store, repo, feed_store):
    return MediaProcessor(
        raw_store=raw_store,
        processed_store=processed_store,
        repo=repo,
        feed_store=feed_store,
    )


@pytest.fixture
def notifier():
    """No webhook configured; tests that need one swap in a mocked client."""
    n = ModerationNotifier(None)
    yield n
    n.close()


@pytest.fixture
def services(repo, fake_redis, feed_store, media_queue, raw_store, processed_store, notifier):
    return Services(
        engine=engine,
        redis=fake_redis,
        repo=repo,
        feed_store=feed_store,
        media_queue=media_queue,
        raw_store=raw_store,
        processed_store=processed_store,
        notifier=notifier,
    )


@pytest.fixture
def client(services):
    """Test client wired to the in-memory services."""
    app.state.services = services
    with TestClient(app) as c:
        yield c
    app.state.services = None
