import json

import httpx
import pytest

from recipeshare.errors import ModerationWebhookError
from recipeshare.schemas import RecipeCreate
from recipeshare.services.moderation import ModerationNotifier

WEBHOOK_URL = "https://moderation.test/hooks/publish"


class RecordingWebhook:
    """httpx MockTransport handler that records requests and answers with a fixed status."""

    def __init__(self, status_code: int = 202):
        self.status_code = status_code
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status_code, json={"accepted": self.status_code < 400})


def _notifier(webhook, url=WEBHOOK_URL) -> ModerationNotifier:
    return ModerationNotifier(url, client=httpx.Client(transport=httpx.MockTransport(webhook)))


# --- Notifier ---

def test_notify_posts_payload_with_correlation_id(repo):
    recipe = repo.create(RecipeCreate(title="Pancakes"))
    webhook = RecordingWebhook()

    assert _notifier(webhook).notify_published(recipe, "corr-123") is True

    [sent] = webhook.requests
    assert sent.method == "POST"
    assert str(sent.url) == WEBHOOK_URL
    assert sent.headers["x-correlation-id"] == "corr-123"
    assert json.loads(sent.content) == {"id": recipe.id, "isPublished": True, "title": "Pancakes"}


def test_notify_without_url_sends_nothing(repo):
    recipe = repo.create(RecipeCreate(title="Pancakes"))
    webhook = RecordingWebhook()

    assert _notifier(webhook, url=None).notify_published(recipe, "corr-1") is False
    assert webhook.requests == []


def test_notify_raises_on_error_status(repo):
    recipe = repo.create(RecipeCreate(title="Pancakes"))

    with pytest.raises(ModerationWebhookError) as exc_info:
        _notifier(RecordingWebhook(status_code=500)).notify_published(recipe, "corr-1")
    assert exc_info.value.status == 500


def test_notify_raises_on_transport_failure(repo):
    recipe = repo.create(RecipeCreate(title="Pancakes"))

    def unreachable(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(ModerationWebhookError) as exc_info:
        _notifier(unreachable).notify_published(recipe, "corr-1")
    assert exc_info.value.status is None


# --- Publish endpoint ---

def _create(client) -> dict:
    resp = client.post("/api/v1/recipes", json={"title": "Pancakes"})
    assert resp.status_code == 201
    return resp.json()


def test_publish_notifies_webhook(client, services):
    webhook = RecordingWebhook()
    services.notifier = _notifier(webhook)
    recipe = _create(client)

    resp = client.post(f"/api/v1/recipes/{recipe['id']}/publish", headers={"x-correlation-id": "req-42"})

    assert resp.status_code == 200
    assert resp.json()["moderation_status"] == "pending"
    [sent] = webhook.requests
    assert sent.headers["x-correlation-id"] == "req-42"
    assert json.loads(sent.content) == {"id": recipe["id"], "isPublished": True, "title": "Pancakes"}


def test_publish_generates_correlation_id(client, services):
    webhook = RecordingWebhook()
    services.notifier = _notifier(webhook)
    recipe = _create(client)

    client.post(f"/api/v1/recipes/{recipe['id']}/publish")

    assert webhook.requests[0].headers["x-correlation-id"]


def test_publish_webhook_failure_returns_502(client, services):
    services.notifier = _notifier(RecordingWebhook(status_code=503))
    recipe = _create(client)

    resp = client.post(f"/api/v1/recipes/{recipe['id']}/publish")

    assert resp.status_code == 502
    assert resp.json()["code"] == "moderation_webhook_error"
    assert resp.json()["status"] == 503
    # The status change was committed before the webhook call
    assert client.get(f"/api/v1/recipes/{recipe['id']}").json()["moderation_status"] == "pending"


def test_publish_missing_recipe_skips_webhook(client, services):
    webhook = RecordingWebhook()
    services.notifier = _notifier(webhook)

    assert client.post("/api/v1/recipes/missing/publish").status_code == 404
    assert webhook.requests == []
