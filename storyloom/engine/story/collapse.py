"""Flattens embedded passages and fragments into a single output stream."""

from __future__ import annotations

from typing import Callable, Optional

from ..errors import InternalConsistencyError
from ..output import Embed, EmbedFragment, EmbedPassage, StoryOutput
from .passages import Passage, StoryThread


class CollapsedThread:
    """Iterates a thread, descending into every embed it produces.

    The embed item itself comes first, then everything the embedded content
    produces, then the rest of the parent. Items coming out of embedded
    content are tagged with the closest enclosing embed, unless a deeper
    level already tagged them. ``None`` items pass through untouched.
    """

    def __init__(
        self,
        thread: StoryThread,
        get_passage: Callable[[str], Passage],
        *,
        max_depth: int = 64,
    ) -> None:
        self._get_passage = get_passage
        self._max_depth = max_depth
        self._frames: list[tuple[StoryThread, Optional[Embed]]] = [(thread, None)]

    @property
    def depth(self) -> int:
        """Current embed nesting depth (0 while reading the root thread)."""
        return max(len(self._frames) - 1, 0)

    @property
    def closed(self) -> bool:
        return not self._frames

    def __iter__(self) -> "CollapsedThread":
        return self

    def __next__(self) -> Optional[StoryOutput]:
        while self._frames:
            thread, owner = self._frames[-1]
            try:
                output = next(thread)
            except StopIteration:
                self._frames.pop()
                thread.close()
                continue

            if output is None:
                return None
            if owner is not None and output.embed_info is None:
                output.embed_info = owner
            if isinstance(output, Embed):
                embedded = self._open_embed(output)
                if embedded is None:
                    continue
                self._frames.append((embedded, output))
            return output
        raise StopIteration

    def close(self) -> None:
        """Dispose every open level, innermost first."""
        while self._frames:
            thread, _ = self._frames.pop()
            thread.close()

    def _open_embed(self, embed: Embed) -> Optional[StoryThread]:
        if self.depth >= self._max_depth:
            chain = " > ".join(
                owner.name or type(owner).__name__ for _, owner in self._frames if owner is not None
            )
            raise InternalConsistencyError(
                f"Embed nesting exceeded {self._max_depth} levels ({chain} > {embed.name}). "
                "Check for passages that embed themselves."
            )
        if isinstance(embed, EmbedPassage):
            return self._get_passage(embed.name).main_thread(*embed.parameters)
        if isinstance(embed, EmbedFragment):
            return StoryThread(embed.get_thread())
        return None


__all__ = ["CollapsedThread"]
