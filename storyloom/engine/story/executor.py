"""Drives the active thread: pulls outputs, dispatches them and wraps up."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Optional

from ..cues import CueType
from ..errors import InternalConsistencyError
from ..output import Abort, EmbedPassage, StoryOutput
from ...utils.formatting import describe_output
from .collapse import CollapsedThread
from .passages import StoryThread
from .state import StoryState

if TYPE_CHECKING:
    from .runtime import Story

logger = logging.getLogger(__name__)


class ThreadExecutor:
    """Owns the story's single active thread."""

    def __init__(self, story: "Story") -> None:
        self._story = story
        self._thread: Optional[CollapsedThread] = None
        self._running = 0

    @property
    def active(self) -> bool:
        return self._thread is not None

    @property
    def running(self) -> bool:
        """True while an output loop is on the call stack."""
        return self._running > 0

    def start(self, thread: StoryThread) -> None:
        if self._thread is not None:
            thread.close()
            raise InternalConsistencyError("A thread is already active on this story.")
        self._thread = CollapsedThread(
            thread,
            self._story.get_passage,
            max_depth=self._story.settings.max_embed_depth,
        )

    def run(self) -> None:
        """Pull and dispatch outputs while the story is playing."""
        if self._thread is None:
            return
        self._running += 1
        try:
            aborted = self._pump()
        finally:
            self._running -= 1

        # Paused: keep the thread exactly where it is for resume().
        if self._story.state is StoryState.PAUSED:
            return
        self._finish(aborted)

    def _pump(self) -> Optional[Abort]:
        story = self._story
        story._refresh_update_cues()

        while story.state is StoryState.PLAYING:
            callbacks = story._callbacks.reset()
            output = self._pull()
            if output is None:
                return None
            if isinstance(output, Abort):
                logger.debug("Thread aborted (go to %r).", output.go_to_passage)
                return output

            story._output_add(output)
            callbacks.add(lambda output=output: story._output_send(output))
            callbacks.add_cues(story._cues_find(CueType.OUTPUT), output)
            if isinstance(output, EmbedPassage):
                callbacks.add_cues(story._cues_get(output.name, CueType.ENTER))
                callbacks.on_complete(story._refresh_update_cues)
            callbacks.invoke()
        return None

    def _pull(self) -> Optional[StoryOutput]:
        assert self._thread is not None
        for output in self._thread:
            if output is not None:
                logger.debug("Pulled %s", describe_output(output))
                return output
        return None

    def _finish(self, aborted: Optional[Abort]) -> None:
        story = self._story
        if self._thread is not None:
            self._thread.close()
            self._thread = None

        story._set_state(StoryState.IDLE)

        link = story.current_link_in_action
        if aborted is not None:
            next_passage = aborted.go_to_passage
        elif link is not None:
            next_passage = link.passage_name
        else:
            next_passage = None
        passage = story.current_passage
        link_name = link.name if link is not None else None
        logger.debug(
            "Thread done in passage %r (link %r, next %r).",
            passage.name if passage is not None else None,
            link_name,
            next_passage,
        )

        callbacks = story._callbacks.reset()
        callbacks.add(lambda: story.events.passage_done.emit(passage))
        callbacks.add(lambda: story._notify_host("on_story_passage_done", passage))
        if aborted is not None:
            callbacks.add_cues(story._cues_find(CueType.ABORTED, link_name=link_name))
        callbacks.add_cues(story._cues_find(CueType.DONE, link_name=link_name))
        if link is not None:
            callbacks.add(lambda: story._finish_link(link))

        def go_next() -> None:
            if next_passage is not None:
                story.go_to(next_passage)

        callbacks.on_complete(go_next)
        callbacks.invoke()


__all__ = ["ThreadExecutor"]
