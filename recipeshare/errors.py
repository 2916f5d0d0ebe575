from __future__ import annotations


class RecipeShareError(Exception):
    """Base class for domain errors raised by the repository and pipeline."""


class NotFoundError(RecipeShareError):
    def __init__(self, message: str = "Recipe not found", entity_id: str | None = None):
        super().__init__(message)
        self.entity_id = entity_id


class InvalidJobError(RecipeShareError):
    """Malformed media job; dead-lettered by the queue, never retried."""

    def __init__(self, message: str = "Invalid media job payload", payload: object = None):
        super().__init__(message)
        self.payload = payload


class ConflictError(RecipeShareError):
    """A unique constraint kept failing after the lookup was retried."""


class InvalidInputError(RecipeShareError):
    pass


class ModerationWebhookError(RecipeShareError):
    """The moderation webhook rejected or could not receive a publish notice."""

    def __init__(self, message: str = "Moderation webhook call failed", status: int | None = None):
        super().__init__(message)
        self.status = status
