"""Domain exceptions raised by the submission pipeline and read services.

The global error handler maps each of these to an HTTP status; messages are
user-facing and never include retry counts or database internals.
"""

from __future__ import annotations


class MoneyRankError(Exception):
    """Base class for domain errors."""

    status_code: int = 500

    def __init__(self, detail: str) -> None:
        super().__init__(detail)
        self.detail = detail


class ValidationError(MoneyRankError):
    """Submitted ranking is not a permutation of the challenge's options."""

    status_code = 400


class NotFoundError(MoneyRankError):
    """Unknown challenge, or no counted attempt when reading results."""

    status_code = 404


class ForbiddenError(MoneyRankError):
    """Challenge day is still ahead of the player's local today."""

    status_code = 403


class TransientStorageError(MoneyRankError):
    """Storage conflict that outlived the retry budget. The client should retry."""

    status_code = 503

    def __init__(self, detail: str = "Please try again.") -> None:
        super().__init__(detail)
