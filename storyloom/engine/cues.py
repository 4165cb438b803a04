"""Cue discovery and invocation.

A cue is a handler invoked at a lifecycle event of a passage or of a link in
a passage. Handlers are found through a ``CueResolver``; ``CueRegistry`` is
the default one and supports explicit registration, ``@cue`` decorated
methods and ``<passage>_<event>`` / ``<passage>_<link>_<event>`` method names.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Iterator, Optional, Protocol, Sequence

from .errors import HandlerShapeError

logger = logging.getLogger(__name__)

VALID_PASSAGE_NAME = re.compile(r"^[a-z_][a-z0-9_]*$", re.IGNORECASE)
CUE_MARKS_ATTR = "__story_cues__"


class CueType(str, Enum):
    ENTER = "Enter"
    EXIT = "Exit"
    UPDATE = "Update"
    OUTPUT = "Output"
    ABORTED = "Aborted"
    DONE = "Done"


@dataclass(frozen=True)
class Cue:
    handler: Callable[..., Any]
    name: str


class CueResolver(Protocol):
    """Maps a passage (and optional link) plus an event to ordered handlers."""

    def resolve(
        self,
        passage_name: str,
        cue_type: CueType,
        link_name: Optional[str] = None,
    ) -> Sequence[Callable[..., Any]]:
        ...


def cue(
    passage_name: str,
    cue_type: CueType | str,
    *,
    link: Optional[str] = None,
    order: int = 0,
) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """Mark a method as a cue handler for ``CueRegistry.add_target``."""
    kind = CueType(cue_type)

    def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
        marks = getattr(func, CUE_MARKS_ATTR, ())
        setattr(func, CUE_MARKS_ATTR, marks + ((passage_name, link, kind, order),))
        return func

    return decorator


@dataclass(frozen=True)
class _Registration:
    passage_name: str
    link_name: Optional[str]
    cue_type: CueType
    handler: Callable[..., Any]
    order: int


class CueRegistry:
    """Default resolver.

    Explicit registrations come first (by ``order``, then registration order),
    followed by each target object in the order it was added: its decorated
    methods by ``order``, then its conventionally named method.
    """

    def __init__(self) -> None:
        self._registrations: list[_Registration] = []
        self._targets: list[Any] = []

    def register(
        self,
        passage_name: str,
        cue_type: CueType | str,
        handler: Callable[..., Any],
        *,
        link: Optional[str] = None,
        order: int = 0,
    ) -> Callable[..., Any]:
        self._registrations.append(
            _Registration(passage_name, link, CueType(cue_type), handler, order)
        )
        return handler

    def add_target(self, target: Any) -> Any:
        self._targets.append(target)
        return target

    def resolve(
        self,
        passage_name: str,
        cue_type: CueType,
        link_name: Optional[str] = None,
    ) -> list[Callable[..., Any]]:
        kind = CueType(cue_type)
        found: list[Callable[..., Any]] = []

        explicit = [
            entry
            for entry in self._registrations
            if entry.passage_name == passage_name
            and entry.link_name == link_name
            and entry.cue_type == kind
        ]
        explicit.sort(key=lambda entry: entry.order)
        for entry in explicit:
            _append_unique(found, entry.handler)

        for target in self._targets:
            for handler in _decorated_handlers(target, passage_name, kind, link_name):
                _append_unique(found, handler)
            by_name = _named_handler(target, passage_name, kind, link_name)
            if by_name is not None:
                _append_unique(found, by_name)
        return found


def cue_method_name(passage_name: str, cue_type: CueType, link_name: Optional[str] = None) -> str:
    parts = [passage_name]
    if link_name is not None:
        parts.append(link_name)
    parts.append(CueType(cue_type).value)
    return "_".join(parts)


def _append_unique(found: list[Callable[..., Any]], handler: Callable[..., Any]) -> None:
    if handler not in found:
        found.append(handler)


def _decorated_handlers(
    target: Any,
    passage_name: str,
    cue_type: CueType,
    link_name: Optional[str],
) -> list[Callable[..., Any]]:
    matches: list[tuple[int, Callable[..., Any]]] = []
    for attr_name in dir(type(target)):
        func = getattr(type(target), attr_name, None)
        marks = getattr(func, CUE_MARKS_ATTR, None)
        if not marks:
            continue
        for mark_passage, mark_link, mark_type, order in marks:
            if mark_passage == passage_name and mark_link == link_name and mark_type == cue_type:
                matches.append((order, getattr(target, attr_name)))
                break
    matches.sort(key=lambda item: item[0])
    return [handler for _, handler in matches]


def _named_handler(
    target: Any,
    passage_name: str,
    cue_type: CueType,
    link_name: Optional[str],
) -> Optional[Callable[..., Any]]:
    if not VALID_PASSAGE_NAME.match(passage_name):
        return None
    wanted = cue_method_name(passage_name, cue_type, link_name).lower()
    for attr_name in dir(type(target)):
        if attr_name.lower() != wanted:
            continue
        func = getattr(type(target), attr_name)
        # Decorated methods are only matched through their marks.
        if getattr(func, CUE_MARKS_ATTR, None) or not callable(func):
            return None
        return getattr(target, attr_name)
    return None


def is_background_handler(handler: Callable[..., Any]) -> bool:
    func = getattr(handler, "__func__", handler)
    return inspect.isgeneratorfunction(func) or inspect.iscoroutinefunction(func)


def build_cues(
    handlers: Sequence[Callable[..., Any]],
    label: str,
    *,
    allow_background: bool = True,
) -> list[Cue]:
    """Wrap resolved handlers, skipping those whose shape is not allowed here."""
    cues: list[Cue] = []
    for handler in handlers:
        cue_obj = Cue(handler=handler, name=_handler_name(handler, label))
        if not allow_background and is_background_handler(handler):
            error = HandlerShapeError(
                f"{cue_obj.name} must not start a background task in order to be used as a {label} cue.",
                cue=cue_obj,
            )
            logger.warning("%s Skipping it.", error)
            continue
        cues.append(cue_obj)
    return cues


def check_arguments(cue_obj: Cue, args: tuple[Any, ...]) -> None:
    try:
        signature = inspect.signature(cue_obj.handler)
    except (TypeError, ValueError):
        # Builtins without an introspectable signature are called as-is.
        return
    try:
        signature.bind(*args)
    except TypeError as exc:
        raise HandlerShapeError(
            f"The cue '{cue_obj.name}' doesn't have the right parameters ({len(args)} expected).",
            cue=cue_obj,
        ) from exc


def invoke_cue(
    cue_obj: Cue,
    args: tuple[Any, ...],
    tasks: "BackgroundTasks",
    *,
    allow_background: bool = True,
) -> Any:
    """Call a cue; malformed handlers are reported and skipped.

    With ``allow_background`` false, a generator or awaitable returned by the
    handler is closed instead of being started.
    """
    try:
        check_arguments(cue_obj, args)
    except HandlerShapeError as exc:
        logger.warning("%s It is being ignored.", exc)
        return None

    result = cue_obj.handler(*args)
    if result is None:
        return None
    if inspect.isgenerator(result) or inspect.isawaitable(result):
        if not allow_background:
            error = HandlerShapeError(
                f"The cue '{cue_obj.name}' returned a background task where only plain handlers are allowed.",
                cue=cue_obj,
            )
            logger.warning("%s It is being ignored.", error)
            _close_task(result)
            return None
        tasks.spawn(result, cue_obj.name)
        return result
    logger.warning("The cue '%s' returned %r, which is ignored.", cue_obj.name, result)
    return result


class BackgroundTasks:
    """Fire-and-forget work started by cues.

    Generators are advanced once when spawned and once per ``step()`` after
    that. Awaitables are scheduled on the running asyncio loop and held here
    until they finish; the loop itself only keeps weak references to tasks.
    """

    def __init__(self) -> None:
        self._generators: list[tuple[str, Iterator[Any]]] = []
        self._async_tasks: set[asyncio.Future[Any]] = set()

    def __len__(self) -> int:
        return len(self._generators) + len(self._async_tasks)

    def spawn(self, task: Any, name: str = "task") -> None:
        if inspect.isgenerator(task):
            if self._advance(name, task):
                self._generators.append((name, task))
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("No running event loop for background cue '%s'; dropping it.", name)
            _close_task(task)
            return
        future = asyncio.ensure_future(task, loop=loop)
        self._async_tasks.add(future)
        future.add_done_callback(lambda done: self._on_async_done(name, done))

    def step(self) -> None:
        pending = self._generators
        self._generators = []
        for name, generator in pending:
            if self._advance(name, generator):
                self._generators.append((name, generator))

    def _on_async_done(self, name: str, future: "asyncio.Future[Any]") -> None:
        self._async_tasks.discard(future)
        if future.cancelled():
            logger.debug("Background cue '%s' was cancelled.", name)
            return
        exc = future.exception()
        if exc is not None:
            logger.error("Background cue '%s' failed.", name, exc_info=exc)
            return
        logger.debug("Background cue '%s' finished.", name)

    @staticmethod
    def _advance(name: str, generator: Iterator[Any]) -> bool:
        try:
            next(generator)
        except StopIteration:
            logger.debug("Background cue '%s' finished.", name)
            return False
        return True


def _close_task(task: Any) -> None:
    close = getattr(task, "close", None)
    if close is not None:
        close()


def _handler_name(handler: Callable[..., Any], label: str) -> str:
    qualname = getattr(handler, "__qualname__", None) or getattr(handler, "__name__", None)
    return qualname or f"<{label} cue>"


__all__ = [
    "BackgroundTasks",
    "Cue",
    "CueRegistry",
    "CueResolver",
    "CueType",
    "build_cues",
    "check_arguments",
    "cue",
    "cue_method_name",
    "invoke_cue",
    "is_background_handler",
]
