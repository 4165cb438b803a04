"""Nested style contexts applied to emitted output."""

from __future__ import annotations

from typing import Callable, Optional

from .errors import InternalConsistencyError
from .output import Style, StyleGroup


class StyleScope:
    """Handle returned when a style group is opened.

    Closing the handle (or leaving its ``with`` block) pops the group. Closing
    twice is a no-op.
    """

    def __init__(self, group: StyleGroup, on_close: Callable[["StyleScope"], None]) -> None:
        self.group = group
        self._on_close: Optional[Callable[["StyleScope"], None]] = on_close

    @property
    def closed(self) -> bool:
        return self._on_close is None

    def close(self) -> None:
        if self._on_close is None:
            return
        on_close, self._on_close = self._on_close, None
        on_close(self)

    def __enter__(self) -> "StyleScope":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


class StyleStack:
    def __init__(self) -> None:
        self._groups: list[StyleGroup] = []

    def __len__(self) -> int:
        return len(self._groups)

    @property
    def top(self) -> Optional[StyleGroup]:
        return self._groups[-1] if self._groups else None

    def open(self, group: StyleGroup) -> StyleScope:
        self._groups.append(group)
        return StyleScope(group, self._close)

    def clear(self) -> None:
        self._groups.clear()

    def current_style(self) -> Style:
        group = self.top
        if group is None:
            return Style()
        return group.get_applied_style() + group.own

    def _close(self, scope: StyleScope) -> None:
        if self.top is not scope.group:
            raise InternalConsistencyError("Unexpected style group attempting to close.")
        self._groups.pop()


__all__ = ["StyleScope", "StyleStack"]
