"""
Exception taxonomy for the ordering core.

Only SessionInvariantError is allowed to escape a flow controller; the other
classes are raised by collaborators and converted into conversational replies
by the caller.
"""
from __future__ import annotations


class PokebotError(Exception):
    """Base class for every error raised by this package."""


class CatalogError(PokebotError):
    """The product catalog could not be read."""


class SessionStoreError(PokebotError):
    """A session could not be written (or cleared)."""


class SessionInvariantError(PokebotError):
    """Stored session state is corrupted (e.g. step index out of range)."""

    def __init__(self, message: str, user_id: str | None = None) -> None:
        super().__init__(message)
        self.user_id = user_id


class OrderPersistenceError(PokebotError):
    """The order sink rejected an order."""


class InterpreterError(PokebotError):
    """The AI interpreter returned something unusable."""
