"""Exceptions raised by the playback core."""

from __future__ import annotations

from typing import Any, Optional


class StoryError(Exception):
    """Base exception for story playback failures."""


class InvalidStateError(StoryError):
    """Raised when an operation is illegal in the story's current state."""


class StoryNotFoundError(StoryError, KeyError):
    """Raised when a passage or link name cannot be resolved."""

    def __str__(self) -> str:
        # KeyError quotes its argument; keep the plain message.
        return str(self.args[0]) if self.args else ""


class PassageNotFoundError(StoryNotFoundError):
    def __init__(self, passage_name: str) -> None:
        super().__init__(f"Passage '{passage_name}' does not exist.")
        self.passage_name = passage_name


class LinkNotFoundError(StoryNotFoundError):
    def __init__(self, link_name: Any, passage_name: Optional[str]) -> None:
        super().__init__(
            f"There is no available link with the name '{link_name}' "
            f"in the passage '{passage_name}'."
        )
        self.link_name = link_name
        self.passage_name = passage_name


class InternalConsistencyError(StoryError):
    """Raised on programmer or content-author bugs that cannot be recovered from."""


class HandlerShapeError(StoryError):
    """Raised when a cue handler cannot be invoked with the arguments of its event."""

    def __init__(self, message: str, cue: Any = None) -> None:
        super().__init__(message)
        self.cue = cue


__all__ = [
    "StoryError",
    "InvalidStateError",
    "StoryNotFoundError",
    "PassageNotFoundError",
    "LinkNotFoundError",
    "InternalConsistencyError",
    "HandlerShapeError",
]
