"""Story playback state machine."""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Optional, Protocol, Sequence, Union

from ...config import Settings, get_settings
from ..callbacks import CallbackSequencer
from ..cues import BackgroundTasks, Cue, CueRegistry, CueResolver, CueType, build_cues, invoke_cue
from ..errors import InvalidStateError, LinkNotFoundError
from ..events import StateChangeGuard, StoryEvents
from ..output import (
    Abort,
    EmbedFragment,
    EmbedPassage,
    HtmlTag,
    LineBreak,
    OutputList,
    StoryLink,
    StoryOutput,
    StoryText,
    Style,
    StyleGroup,
    ThreadFactory,
)
from ..style import StyleScope, StyleStack
from .executor import ThreadExecutor
from .passages import Passage, PassageRegistry, StoryThread, empty_thread
from .state import StoryState

logger = logging.getLogger(__name__)

LinkRef = Union[StoryLink, int, str]


class VariableStore(Protocol):
    """Story variables; the core only ever resets them."""

    def reset(self) -> None:
        ...


class Story:
    """Plays passages one thread at a time.

    Subclasses (or callers) fill ``passages`` and register cue handlers with
    the cue resolver, then call ``begin()`` and ``do_link()`` from the host.
    """

    def __init__(
        self,
        passages: Optional[PassageRegistry] = None,
        *,
        start_passage: Optional[str] = None,
        cues: Optional[CueResolver] = None,
        variables: Optional[VariableStore] = None,
        host: Optional[Any] = None,
        settings: Optional[Settings] = None,
        clock: Optional[Callable[[], float]] = None,
    ) -> None:
        self.settings = settings if settings is not None else get_settings()
        self.passages = passages if passages is not None else PassageRegistry()
        self.start_passage = start_passage or self.settings.start_passage
        self.auto_play = self.settings.auto_play
        self.cue_resolver: CueResolver = cues if cues is not None else CueRegistry()
        self.variables = variables
        self.host = host
        self.events = StoryEvents()

        self.output = OutputList()
        self.passage_history: list[str] = []
        self.current_passage: Optional[Passage] = None
        self.current_link_in_action: Optional[StoryLink] = None
        self.links_done = 0

        self._state = StoryState.IDLE
        self._state_before_pause = StoryState.PLAYING
        self._guard = StateChangeGuard()
        self._tasks = BackgroundTasks()
        self._callbacks = CallbackSequencer(self._is_paused, self._invoke_cue)
        self._executor = ThreadExecutor(self)
        self._styles = StyleStack()
        self._cue_cache: dict[tuple[str, Optional[str], CueType, bool], list[Cue]] = {}
        self._update_cues: Optional[list[Cue]] = None
        self._clock = clock or time.monotonic
        self._time_changed_to_play = self._clock()
        self._time_accumulated = 0.0

    # State control -------------------------------------------------
    @property
    def state(self) -> StoryState:
        return self._state

    def _set_state(self, value: StoryState) -> None:
        previous = self._state
        self._state = value
        if previous is value:
            return
        logger.debug("Story state %s -> %s", previous.value, value.value)
        with self._guard.hold("state_changed"):
            self.events.state_changed.emit(value)

    def _is_paused(self) -> bool:
        return self._state is StoryState.PAUSED

    @property
    def is_pausable(self) -> bool:
        return self._guard.allowed

    @property
    def passage_time(self) -> float:
        """Seconds spent in the current passage, not counting paused time."""
        if self.current_passage is None:
            return 0.0
        if self._state is StoryState.PAUSED:
            return self._time_accumulated
        return self._time_accumulated + (self._clock() - self._time_changed_to_play)

    def start(self) -> None:
        """Host lifecycle hook: begins playback when auto play is on."""
        if self.auto_play:
            self.begin()

    def reset(self) -> None:
        if self._state is not StoryState.IDLE:
            raise InvalidStateError("Can only reset a story that is Idle.")

        if self.variables is not None:
            self.variables.reset()

        self.output.clear()
        self.passage_history.clear()
        self.links_done = 0
        self.current_passage = None
        self.current_link_in_action = None
        self._styles.clear()
        self._update_cues = None
        self._callbacks.reset()
        self._time_accumulated = 0.0

    def begin(self) -> None:
        """Begins the story by calling go_to(start_passage)."""
        self.go_to(self.start_passage)

    def go_to(self, passage_name: str) -> None:
        if self._state is not StoryState.IDLE:
            raise InvalidStateError(
                self._illegal_state_message(
                    "The story is currently paused. resume() must be called before advancing to a different passage.",
                    "The story can only be advanced when it is in the Idle state.",
                )
            )
        # Fail before leaving the current passage.
        self.get_passage(passage_name)

        self._callbacks.reset()
        leaving = self.current_passage
        if leaving is None:
            self._enter(passage_name)
            return

        logger.debug("Exiting passage %r towards %r", leaving.name, passage_name)
        self._set_state(StoryState.EXITING)
        (
            self._callbacks.add(lambda: self.events.passage_exit.emit(leaving))
            .add(lambda: self._notify_host("on_story_passage_exit", leaving))
            .add_cues(self._cues_find(CueType.EXIT, reverse=True))
            # Only now that the passage is left does it enter the history.
            .add(lambda: self.passage_history.append(leaving.name))
            .on_complete(lambda: self._enter(passage_name))
            .invoke()
        )

    def pause(self) -> None:
        """While the story is playing, pauses the execution of the current thread."""
        if not self._guard.allowed:
            logger.debug("pause() refused during the %s phase", self._guard.active_phase)
            raise InvalidStateError("Can't pause the story right now. Check story.is_pausable.")
        if self._state not in (StoryState.PLAYING, StoryState.EXITING):
            raise InvalidStateError("pause() can only be called while a passage is playing or exiting.")

        self._time_accumulated += self._clock() - self._time_changed_to_play
        self._state_before_pause = self._state
        self._set_state(StoryState.PAUSED)

    def resume(self) -> None:
        """When the story is paused, resumes execution where it stopped."""
        if not self._guard.allowed:
            logger.debug("resume() refused during the %s phase", self._guard.active_phase)
            raise InvalidStateError("Can't resume the story right now. Check story.is_pausable.")
        if self._state is not StoryState.PAUSED:
            if self._state is StoryState.IDLE:
                raise InvalidStateError("The story is currently idle. Call begin, do_link or go_to to play.")
            raise InvalidStateError(
                self._illegal_state_message(
                    "resume() should be called only when the story is paused.",
                    "resume() should be called only when the story is paused.",
                )
            )

        self._time_changed_to_play = self._clock()
        # Back to Playing or Exiting, whichever phase was interrupted.
        self._set_state(self._state_before_pause)

        # Paused and resumed from inside a running phase: that phase carries on by itself.
        if self._callbacks.running or self._executor.running:
            return

        if not self._callbacks.completed:
            self._callbacks.invoke()

        if self._executor.active and self._state is StoryState.PLAYING:
            self._executor.run()

    def _illegal_state_message(self, paused: str, busy: str) -> str:
        if self._state is StoryState.PAUSED:
            return paused
        if self._state in (StoryState.PLAYING, StoryState.EXITING):
            return busy
        return "The story is complete. reset() must be called before it can be played again."

    # Passages -------------------------------------------------------
    def get_passage(self, passage_name: str) -> Passage:
        return self.passages.get(passage_name)

    def get_passages_with_tag(self, tag: str) -> list[str]:
        return self.passages.with_tag(tag)

    @property
    def is_first_visit_to_passage(self) -> bool:
        if self.current_passage is None:
            raise InvalidStateError("No passage is currently loaded.")
        return self.current_passage.name not in self.passage_history

    def _enter(self, passage_name: str) -> None:
        passage = self.get_passage(passage_name)
        logger.debug("Entering passage %r", passage.name)

        self._time_accumulated = 0.0
        self._time_changed_to_play = self._clock()

        self.output.clear()
        self._styles.clear()
        self._update_cues = None

        self.current_passage = passage
        self.current_link_in_action = None
        self._executor.start(passage.main_thread())

        self._set_state(StoryState.PLAYING)

        (
            self._callbacks.reset()
            .add(lambda: self.events.passage_enter.emit(passage))
            .add(lambda: self._notify_host("on_story_passage_enter", passage))
            .add_cues(self._cues_get(passage.name, CueType.ENTER))
            .on_complete(self._executor.run)
            .invoke()
        )

    # Output ---------------------------------------------------------
    def _output_add(self, output: StoryOutput) -> None:
        self.output.add(output)

    def _output_send(self, output: StoryOutput, add: bool = False) -> None:
        if self._styles.top is not None:
            output.style_group = self._styles.top
        if add:
            self._output_add(output)
        self.events.output.emit(output)

    def remove_output(self, output: StoryOutput) -> bool:
        if not self.output.remove(output):
            return False
        with self._guard.hold("output_removed"):
            self.events.output_removed.emit(output)
        return True

    def push_insert_point(self, index: int) -> None:
        """Redirect new output to ``index`` until the matching pop."""
        self.output.push_insert_point(index)

    def pop_insert_point(self) -> int:
        return self.output.pop_insert_point()

    def get_current_links(self) -> list[StoryLink]:
        return self.output.of_type(StoryLink)

    def get_current_text(self) -> list[StoryText]:
        return self.output.of_type(StoryText)

    # Style ----------------------------------------------------------
    def style_scope(self, *args: Any, **values: Any) -> StyleScope:
        """Open a style context for the output that follows.

        Accepts a key and value, a mapping or ``Style``, keyword values, or an
        existing ``StyleGroup`` (which is pushed without being sent again).
        """
        if len(args) == 1 and isinstance(args[0], StyleGroup) and not values:
            return self._styles.open(args[0])

        group = StyleGroup(Style(*args, **values))
        with self._guard.hold("style_group"):
            self._output_send(group, add=True)
        return self._styles.open(group)

    @property
    def current_style_group(self) -> Optional[StyleGroup]:
        return self._styles.top

    def current_style(self) -> Style:
        return self._styles.current_style()

    # Links ----------------------------------------------------------
    def do_link(self, link: LinkRef) -> None:
        if self._state is not StoryState.IDLE:
            raise InvalidStateError(
                self._illegal_state_message(
                    "The story is currently paused. resume() must be called before a link can be used.",
                    "A link can be used only when the story is in the Idle state.",
                )
            )
        link = self._resolve_link(link)
        logger.debug("Doing link %r in passage %r", link.name, self._current_passage_name)

        self.current_link_in_action = link
        action = link.action or empty_thread
        self._executor.start(StoryThread(action()))

        self._set_state(StoryState.PLAYING)

        (
            self._callbacks.reset()
            .add(lambda: self.events.link_enter.emit(self.current_passage, link))
            .add_cues(self._cues_find(CueType.ENTER, link_name=link.name))
            .on_complete(self._executor.run)
            .invoke()
        )

    def has_link(self, link_name: str) -> bool:
        return self.get_link(link_name) is not None

    def get_link(self, link_name: str, raise_if_missing: bool = False) -> Optional[StoryLink]:
        wanted = link_name.casefold()
        for link in self.get_current_links():
            if link.name is not None and link.name.casefold() == wanted:
                return link
        if raise_if_missing:
            raise LinkNotFoundError(link_name, self._current_passage_name)
        return None

    def _resolve_link(self, link: LinkRef) -> StoryLink:
        if isinstance(link, StoryLink):
            return link
        if isinstance(link, str):
            found = self.get_link(link, raise_if_missing=True)
            assert found is not None
            return found
        links = self.get_current_links()
        if not 0 <= link < len(links):
            raise LinkNotFoundError(link, self._current_passage_name)
        return links[link]

    def _finish_link(self, link: StoryLink) -> None:
        self.current_link_in_action = None
        self.links_done += 1
        self.events.link_done.emit(self.current_passage, link)

    @property
    def _current_passage_name(self) -> Optional[str]:
        return self.current_passage.name if self.current_passage is not None else None

    # Cues -----------------------------------------------------------
    def tick(self) -> None:
        """Host update: runs the passage's update cues and steps background cues."""
        if self.current_passage is not None and self._update_cues:
            for cue in list(self._update_cues):
                invoke_cue(cue, (), self._tasks, allow_background=False)
        self._tasks.step()

    @property
    def background_task_count(self) -> int:
        return len(self._tasks)

    def clear_cues(self) -> None:
        """Forget every resolved cue so the next lookup asks the resolver again."""
        self._cue_cache.clear()
        self._update_cues = None

    def _refresh_update_cues(self) -> None:
        self._update_cues = self._cues_find(CueType.UPDATE, allow_background=False)

    def _invoke_cue(self, cue: Cue, *args: Any) -> Any:
        return invoke_cue(cue, args, self._tasks)

    def _cues_get(
        self,
        passage_name: str,
        cue_type: CueType,
        link_name: Optional[str] = None,
        allow_background: bool = True,
    ) -> list[Cue]:
        key = (passage_name, link_name, cue_type, allow_background)
        cues = self._cue_cache.get(key)
        if cues is None:
            handlers = self.cue_resolver.resolve(passage_name, cue_type, link_name)
            label = f"{passage_name}/{link_name}/{cue_type.value}" if link_name else f"{passage_name}/{cue_type.value}"
            cues = build_cues(handlers, label, allow_background=allow_background)
            self._cue_cache[key] = cues
        return cues

    def _cues_find(
        self,
        cue_type: CueType,
        link_name: Optional[str] = None,
        reverse: bool = False,
        allow_background: bool = True,
    ) -> list[Cue]:
        """Cues of the current passage and of the passages embedded in its output.

        Forward order is main passage then embeds in output order; reverse is
        embeds from last to first, then the main passage.
        """
        if self.current_passage is None:
            return []
        main = self._cues_get(self.current_passage.name, cue_type, link_name, allow_background)

        embedded: list[Cue] = []
        outputs: Sequence[StoryOutput] = list(self.output)
        if reverse:
            outputs = outputs[::-1]
        for output in outputs:
            if isinstance(output, EmbedPassage):
                embedded.extend(self._cues_get(output.name, cue_type, link_name, allow_background))

        if reverse:
            return embedded + main
        return main + embedded

    def _notify_host(self, method_name: str, *args: Any) -> None:
        handler = getattr(self.host, method_name, None) if self.host is not None else None
        if callable(handler):
            handler(*args)

    # Authoring shorthands -------------------------------------------
    def text(self, value: Any) -> StoryText:
        return StoryText(str(value))

    def html_tag(self, value: Any) -> HtmlTag:
        return HtmlTag(str(value))

    def line_break(self) -> LineBreak:
        return LineBreak()

    def link(
        self,
        text: str,
        passage_name: Optional[str] = None,
        action: Optional[ThreadFactory] = None,
        *,
        name: Optional[str] = None,
    ) -> StoryLink:
        return StoryLink(text, passage_name, action, name=name)

    def abort(self, go_to_passage: Optional[str] = None) -> Abort:
        return Abort(go_to_passage)

    def fragment(self, action: ThreadFactory) -> EmbedFragment:
        return EmbedFragment(action)

    def embed(self, passage_name: str, *parameters: Any) -> EmbedPassage:
        return EmbedPassage(passage_name, *parameters)

    def style(self, *args: Any, **values: Any) -> Style:
        return Style(*args, **values)


__all__ = ["LinkRef", "Story", "StoryState", "VariableStore"]
