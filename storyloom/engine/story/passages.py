"""Passages, the passage registry and the one-shot threads they produce."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Iterator, Optional, Sequence

from ..errors import PassageNotFoundError
from ..output import StoryOutput

PassageMain = Callable[..., Iterable[Optional[StoryOutput]]]


class StoryThread:
    """Pull-based, one-shot sequence of outputs.

    ``close()`` releases the underlying iterator early (running a generator's
    ``finally`` blocks and ``with`` exits). Pulling after close ends the thread.
    """

    def __init__(self, source: Iterable[Optional[StoryOutput]]) -> None:
        self._iterator: Iterator[Optional[StoryOutput]] = iter(source)
        self.closed = False

    def __iter__(self) -> "StoryThread":
        return self

    def __next__(self) -> Optional[StoryOutput]:
        if self.closed:
            raise StopIteration
        return next(self._iterator)

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        close = getattr(self._iterator, "close", None)
        if close is not None:
            close()

    def __enter__(self) -> "StoryThread":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


def empty_thread() -> Iterable[Optional[StoryOutput]]:
    return ()


@dataclass(frozen=True)
class Passage:
    name: str
    main: PassageMain
    tags: Sequence[str] = field(default_factory=tuple)

    def main_thread(self, *parameters: Any) -> StoryThread:
        """Start a fresh thread over this passage's content."""
        return StoryThread(self.main(*parameters))


class PassageRegistry:
    """Name-keyed passages of one story."""

    def __init__(self, passages: Iterable[Passage] = ()) -> None:
        self._passages: dict[str, Passage] = {}
        for passage in passages:
            self.add(passage)

    def add(self, passage: Passage) -> Passage:
        self._passages[passage.name] = passage
        return passage

    def define(
        self,
        name: str,
        *,
        tags: Sequence[str] = (),
    ) -> Callable[[PassageMain], PassageMain]:
        """Register the decorated function as the main content of passage ``name``."""

        def decorator(main: PassageMain) -> PassageMain:
            self.add(Passage(name=name, main=main, tags=tuple(tags)))
            return main

        return decorator

    def get(self, name: str) -> Passage:
        try:
            return self._passages[name]
        except KeyError as exc:
            raise PassageNotFoundError(name) from exc

    def with_tag(self, tag: str) -> list[str]:
        """Names of passages carrying ``tag`` (case-insensitive), sorted by name."""
        wanted = tag.casefold()
        return sorted(
            name
            for name, passage in self._passages.items()
            if any(candidate.casefold() == wanted for candidate in passage.tags)
        )

    def names(self) -> list[str]:
        return list(self._passages)

    def __contains__(self, name: object) -> bool:
        return name in self._passages

    def __iter__(self) -> Iterator[Passage]:
        return iter(self._passages.values())

    def __len__(self) -> int:
        return len(self._passages)


__all__ = [
    "Passage",
    "PassageMain",
    "PassageRegistry",
    "StoryThread",
    "empty_thread",
]
