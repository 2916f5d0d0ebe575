"""Publish notifications to the moderation workflow webhook.

The webhook receives ``{id, isPublished, title}`` with the request's
correlation id in ``x-correlation-id``. A non-2xx answer or a transport
failure raises ModerationWebhookError (HTTP 502 at the API).
"""

import logging
from typing import Optional

import httpx

from ..errors import ModerationWebhookError
from ..schemas import RecipeOut

logger = logging.getLogger("recipeshare.moderation")

CORRELATION_HEADER = "x-correlation-id"


class ModerationNotifier:
    def __init__(
        self,
        url: Optional[str],
        *,
        timeout: float = 10.0,
        client: Optional[httpx.Client] = None,
    ):
        self.url = url
        self.client = client or httpx.Client(timeout=timeout)

    def notify_published(self, recipe: RecipeOut, correlation_id: str) -> bool:
        """Returns False when no webhook is configured and nothing was sent."""
        if not self.url:
            logger.info(f"No moderation webhook configured; skipping notice for {recipe.id}")
            return False

        payload = {"id": recipe.id, "isPublished": True, "title": recipe.title}
        try:
            response = self.client.post(
                self.url,
                json=payload,
                headers={CORRELATION_HEADER: correlation_id},
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error(f"[{correlation_id}] Moderation webhook returned {e.response.status_code} for {recipe.id}")
            raise ModerationWebhookError(status=e.response.status_code) from e
        except httpx.HTTPError as e:
            logger.error(f"[{correlation_id}] Moderation webhook unreachable for {recipe.id}: {e}")
            raise ModerationWebhookError() from e

        logger.info(f"[{correlation_id}] Sent moderation notice for recipe {recipe.id}")
        return True

    def close(self) -> None:
        self.client.close()
