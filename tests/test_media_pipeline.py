import io
from datetime import datetime, timezone
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest
from PIL import Image

from recipeshare.errors import InvalidJobError, NotFoundError
from recipeshare.schemas import MediaJob, RecipeCreate
from recipeshare.services.images import DerivedImages
from recipeshare.services.media_pipeline import (
    MediaProcessor,
    parse_media_job,
    processed_blob_names,
)
from recipeshare.storage.s3_compat import IMMUTABLE_CACHE_CONTROL


def _png(width=1600, height=800) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", (width, height), (180, 90, 30)).save(buf, format="PNG")
    return buf.getvalue()


@pytest.fixture
def uploaded_recipe(repo, raw_store):
    recipe = repo.create(RecipeCreate(title="Pancakes", raw_image_blob_name="uploads/pancakes.png"))
    raw_store.blobs["uploads/pancakes.png"] = {"data": _png(), "content_type": "image/png"}
    return recipe


def test_process_uploads_renditions_and_updates_recipe(processor, repo, processed_store, feed_store, uploaded_recipe):
    job = MediaJob(recipe_id=uploaded_recipe.id, blob_name="uploads/pancakes.png")

    result = processor.process(job)

    names = processed_blob_names(uploaded_recipe.id)
    assert result.blob_names == {"thumb": names.thumb_name, "image": names.image_name}
    for key in (names.thumb_name, names.image_name):
        stored = processed_store.blobs[key]
        assert stored["content_type"] == "image/webp"
        assert stored["cache_control"] == IMMUTABLE_CACHE_CONTROL

    assert result.image_url == f"https://blobs.test/processed/recipes/{uploaded_recipe.id}/image.webp"
    assert result.thumb_url == f"https://blobs.test/processed/recipes/{uploaded_recipe.id}/thumb.webp"

    refreshed = repo.get_by_id(uploaded_recipe.id)
    assert refreshed.image_url == result.image_url
    assert refreshed.thumb_url == result.thumb_url

    item = feed_store.get_feed_item(uploaded_recipe.id)
    assert item.recipe_id == uploaded_recipe.id
    assert item.title == "Pancakes"
    assert item.image_thumb_url == result.thumb_url
    assert item.created_at == "2026-01-01T00:00:01+00:00"


def test_reprocessing_is_idempotent(processor, repo, processed_store, feed_store, uploaded_recipe):
    job = MediaJob(recipe_id=uploaded_recipe.id, blob_name="uploads/pancakes.png")

    first = processor.process(job)
    second = processor.process(job)

    assert first.blob_names == second.blob_names
    assert first.image_url == second.image_url
    assert first.thumb_url == second.thumb_url
    assert processed_store.put_count == 4
    assert len(processed_store.blobs) == 2
    assert len(feed_store.get_feed_page(1, 20)) == 1

    refreshed = repo.get_by_id(uploaded_recipe.id)
    assert refreshed.image_url == second.image_url
    assert refreshed.thumb_url == second.thumb_url
    assert feed_store.get_feed_item(uploaded_recipe.id).image_thumb_url == second.thumb_url


@pytest.mark.parametrize("job", [
    MediaJob(),
    MediaJob(recipe_id="r1"),
    MediaJob(blob_name="uploads/x.png"),
    MediaJob(recipe_id=42, blob_name="uploads/x.png"),
    MediaJob(recipe_id="r1", blob_name=["uploads/x.png"]),
])
def test_invalid_jobs_are_rejected_before_any_io(processor, processed_store, job):
    with pytest.raises(InvalidJobError):
        processor.process(job)
    assert processed_store.put_count == 0


def test_deleted_recipe_raises_not_found(processor, raw_store, processed_store, feed_store):
    raw_store.blobs["uploads/gone.png"] = {"data": _png(200, 100), "content_type": "image/png"}

    with pytest.raises(NotFoundError):
        processor.process(MediaJob(recipe_id="missing-recipe", blob_name="uploads/gone.png"))

    # Renditions were written before the recipe vanished
    assert processed_store.put_count == 2
    assert feed_store.get_feed_item("missing-recipe") is None


def test_missing_raw_blob_propagates(processor, repo, processed_store):
    recipe = repo.create(RecipeCreate(title="No upload"))

    with pytest.raises(KeyError):
        processor.process(MediaJob(recipe_id=recipe.id, blob_name="uploads/never-uploaded.png"))
    assert processed_store.put_count == 0


def test_upload_failure_leaves_recipe_untouched(processor, repo, processed_store, feed_store, uploaded_recipe, monkeypatch):
    def _boom(**kwargs):
        raise ConnectionError("object store unavailable")

    monkeypatch.setattr(processed_store, "put_bytes", _boom)

    with pytest.raises(ConnectionError):
        processor.process(MediaJob(recipe_id=uploaded_recipe.id, blob_name="uploads/pancakes.png"))

    refreshed = repo.get_by_id(uploaded_recipe.id)
    assert refreshed.image_url is None
    assert refreshed.thumb_url is None
    assert feed_store.get_feed_item(uploaded_recipe.id) is None


def test_feed_item_falls_back_to_now_and_untitled(raw_store, processed_store, feed_store):
    raw_store.blobs["uploads/a.png"] = {"data": b"raw", "content_type": "image/png"}
    repo = MagicMock()
    repo.get_by_id.return_value = SimpleNamespace(title="", created_at=None)
    processor = MediaProcessor(
        raw_store=raw_store,
        processed_store=processed_store,
        repo=repo,
        feed_store=feed_store,
        derive=lambda raw: DerivedImages(thumbnail=b"thumb", main=b"main"),
        now=lambda: datetime(2026, 2, 2, 12, 0, tzinfo=timezone.utc),
    )

    processor.process(MediaJob(recipe_id="r1", blob_name="uploads/a.png"))

    repo.set_image_pointers.assert_called_once_with(
        "r1",
        "https://blobs.test/processed/recipes/r1/image.webp",
        "https://blobs.test/processed/recipes/r1/thumb.webp",
    )
    item = feed_store.get_feed_item("r1")
    assert item.title == "Untitled"
    assert item.created_at == "2026-02-02T12:00:00+00:00"


def test_parse_media_job_accepts_json_bytes_and_dicts():
    for message in (
        '{"recipeId": "r1", "blobName": "uploads/a.png"}',
        b'{"recipeId": "r1", "blobName": "uploads/a.png"}',
        {"recipeId": "r1", "blobName": "uploads/a.png"},
    ):
        job = parse_media_job(message)
        assert job.recipe_id == "r1"
        assert job.blob_name == "uploads/a.png"


@pytest.mark.parametrize("message", ["not json", "[1, 2]", "null", b"\xff\xfe", 17])
def test_parse_media_job_turns_garbage_into_empty_job(message):
    job = parse_media_job(message)
    assert job.recipe_id == ""
    assert job.blob_name == ""
