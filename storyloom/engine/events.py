"""Host notifications and the guard that blocks pausing while they broadcast."""

from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Callable, Iterator, Optional

Listener = Callable[..., Any]


class StateChangeGuard:
    """Tracks the phases during which pause()/resume() are not allowed.

    Each ``hold`` pushes a named phase for the duration of a ``with`` block;
    state changes are allowed only when no phase is active.
    """

    def __init__(self) -> None:
        self._phases: list[str] = []

    @property
    def allowed(self) -> bool:
        return not self._phases

    @property
    def active_phase(self) -> Optional[str]:
        return self._phases[-1] if self._phases else None

    @contextmanager
    def hold(self, phase: str) -> Iterator[None]:
        self._phases.append(phase)
        try:
            yield
        finally:
            self._phases.pop()


class EventHook:
    """Ordered listener list; ``emit`` calls listeners synchronously in subscription order."""

    def __init__(self, name: str) -> None:
        self.name = name
        self._listeners: list[Listener] = []

    def subscribe(self, listener: Listener) -> Listener:
        self._listeners.append(listener)
        return listener

    def unsubscribe(self, listener: Listener) -> None:
        self._listeners.remove(listener)

    def __len__(self) -> int:
        return len(self._listeners)

    def emit(self, *args: Any) -> None:
        # Snapshot so listeners can unsubscribe themselves mid-broadcast.
        for listener in list(self._listeners):
            listener(*args)


class StoryEvents:
    """All notifications a story raises for its host."""

    def __init__(self) -> None:
        self.passage_enter = EventHook("passage_enter")
        self.passage_exit = EventHook("passage_exit")
        self.passage_done = EventHook("passage_done")
        self.state_changed = EventHook("state_changed")
        self.link_enter = EventHook("link_enter")
        self.link_done = EventHook("link_done")
        self.output = EventHook("output")
        self.output_removed = EventHook("output_removed")


__all__ = ["EventHook", "Listener", "StateChangeGuard", "StoryEvents"]
