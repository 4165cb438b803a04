"""Pausable, ordered runner for the actions of one notification phase."""

from __future__ import annotations

from typing import Any, Callable, Iterable, Optional

from .errors import InternalConsistencyError

Action = Callable[[], Any]


class CallbackSequencer:
    """Runs queued actions one at a time, stopping as soon as the story pauses.

    ``is_paused`` is checked after every action. A later ``invoke()`` picks up
    at the next action; the completion action runs once, after the last one.
    """

    def __init__(
        self,
        is_paused: Callable[[], bool],
        invoke_cue: Callable[..., Any],
    ) -> None:
        self._is_paused = is_paused
        self._invoke_cue = invoke_cue
        self._actions: list[Action] = []
        self._current = -1
        self._on_complete: Optional[Action] = None
        self._running = False

    def reset(self) -> "CallbackSequencer":
        self._actions = []
        self._current = -1
        self._on_complete = None
        return self

    @property
    def started(self) -> bool:
        return self._current >= 0

    @property
    def running(self) -> bool:
        """True while actions are being invoked (not while the completion action runs)."""
        return self._running

    @property
    def completed(self) -> bool:
        return self._current >= len(self._actions)

    def __len__(self) -> int:
        return len(self._actions)

    def add(self, action: Action) -> "CallbackSequencer":
        self._ensure_not_started()
        self._actions.append(action)
        return self

    def add_cues(self, cues: Optional[Iterable[Any]], *args: Any) -> "CallbackSequencer":
        """Queue one action per cue, each invoking the cue with ``args``."""
        self._ensure_not_started()
        if cues is None:
            return self
        for cue in cues:
            self._actions.append(self._cue_invoker(cue, args))
        return self

    def on_complete(self, action: Optional[Action]) -> "CallbackSequencer":
        self._ensure_not_started()
        self._on_complete = action
        return self

    def invoke(self) -> "CallbackSequencer":
        if self.completed:
            raise InternalConsistencyError("Callback sequence is already complete.")

        self._running = True
        try:
            while not self.completed:
                self._current += 1
                if self.completed:
                    break
                self._actions[self._current]()
                if self._is_paused():
                    return self
        finally:
            self._running = False

        if self._on_complete is not None:
            self._on_complete()
        return self

    def _cue_invoker(self, cue: Any, args: tuple[Any, ...]) -> Action:
        return lambda: self._invoke_cue(cue, *args)

    def _ensure_not_started(self) -> None:
        if self.started:
            raise InternalConsistencyError("Callback sequence has already been started.")


__all__ = ["Action", "CallbackSequencer"]
