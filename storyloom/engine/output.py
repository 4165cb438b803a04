"""Output items produced by passages, and the story's output list."""

from __future__ import annotations

from typing import Any, Callable, Iterable, Iterator, Mapping, Optional, Sequence, TypeVar

OutputT = TypeVar("OutputT", bound="StoryOutput")

ThreadFactory = Callable[[], Iterable[Optional["StoryOutput"]]]


class Style(Mapping[str, Any]):
    """Immutable set of style values.

    Built from a single key/value pair, a mapping, or keyword arguments.
    Adding two styles returns a new style in which the right-hand values win.
    """

    def __init__(self, *args: Any, **values: Any) -> None:
        data: dict[str, Any] = {}
        if len(args) == 2:
            data[str(args[0])] = args[1]
        elif len(args) == 1:
            if args[0] is not None:
                data.update(dict(args[0]))
        elif args:
            raise TypeError("Style() takes a key and value, a mapping, or keyword values.")
        data.update(values)
        self._values = data

    def __getitem__(self, key: str) -> Any:
        return self._values[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __add__(self, other: Optional[Mapping[str, Any]]) -> "Style":
        if not other:
            return Style(self._values)
        merged = dict(self._values)
        merged.update(other)
        return Style(merged)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Mapping):
            return dict(self._values) == dict(other)
        return NotImplemented

    def __hash__(self) -> int:
        return hash(tuple(sorted(self._values.items(), key=lambda item: item[0])))

    def __repr__(self) -> str:
        return f"Style({self._values!r})"


class StoryOutput:
    """Base output item.

    ``index`` is assigned by the OutputList, ``embed_info`` by the thread
    collapser and ``style_group`` when the output is sent.
    """

    def __init__(self, name: Optional[str] = None, text: Optional[str] = None) -> None:
        self.name = name
        self.text = text
        self.index = -1
        self.embed_info: Optional[Embed] = None
        self.style_group: Optional[StyleGroup] = None

    @property
    def style(self) -> Style:
        """Style in effect for this output (ancestor groups combined with the closest one)."""
        if self.style_group is None:
            return Style()
        return self.style_group.style

    def __repr__(self) -> str:
        parts = []
        if self.name is not None:
            parts.append(f"name={self.name!r}")
        if self.text is not None:
            parts.append(f"text={self.text!r}")
        parts.append(f"index={self.index}")
        return f"{type(self).__name__}({', '.join(parts)})"


class StoryText(StoryOutput):
    def __init__(self, text: str) -> None:
        super().__init__(text=text)


class HtmlTag(StoryOutput):
    def __init__(self, text: str) -> None:
        super().__init__(text=text)


class LineBreak(StoryOutput):
    def __init__(self) -> None:
        super().__init__()


class StoryLink(StoryOutput):
    """A choice. Its optional action produces the link's own thread when activated."""

    def __init__(
        self,
        text: str,
        passage_name: Optional[str] = None,
        action: Optional[ThreadFactory] = None,
        *,
        name: Optional[str] = None,
    ) -> None:
        super().__init__(name=name if name is not None else text, text=text)
        self.passage_name = passage_name
        self.action = action


class StyleGroup(StoryOutput):
    """Opens a style context; outputs sent while it is on the style stack belong to it."""

    def __init__(self, own: Style) -> None:
        super().__init__()
        self.own = own

    def get_applied_style(self) -> Style:
        """Style inherited from the enclosing groups."""
        parent = self.style_group
        if parent is None:
            return Style()
        return parent.style

    @property
    def style(self) -> Style:
        return self.get_applied_style() + self.own


class Embed(StoryOutput):
    """Marks the start of content flattened into the parent stream."""


class EmbedPassage(Embed):
    def __init__(self, passage_name: str, *parameters: Any) -> None:
        super().__init__(name=passage_name)
        self.parameters: tuple[Any, ...] = parameters


class EmbedFragment(Embed):
    def __init__(self, action: ThreadFactory) -> None:
        super().__init__()
        self.action = action

    def get_thread(self) -> Iterable[Optional[StoryOutput]]:
        return self.action()


class Abort(StoryOutput):
    """Stops the current thread; playback continues at ``go_to_passage`` if set."""

    def __init__(self, go_to_passage: Optional[str] = None) -> None:
        super().__init__()
        self.go_to_passage = go_to_passage


class OutputList(Sequence[StoryOutput]):
    """Ordered record of emitted outputs.

    Each entry's ``index`` matches its position. While the insertion stack
    holds a cursor, new outputs are inserted at that cursor, which then moves
    past the inserted item.
    """

    def __init__(self) -> None:
        self._items: list[StoryOutput] = []
        self._insert_stack: list[int] = []

    def __getitem__(self, index):  # type: ignore[override]
        return self._items[index]

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[StoryOutput]:
        return iter(self._items)

    def __repr__(self) -> str:
        return f"OutputList({self._items!r})"

    @property
    def insert_stack(self) -> tuple[int, ...]:
        return tuple(self._insert_stack)

    def push_insert_point(self, index: int) -> None:
        if index < 0 or index > len(self._items):
            raise IndexError(f"Insert point {index} is outside the output list.")
        self._insert_stack.append(index)

    def pop_insert_point(self) -> int:
        return self._insert_stack.pop()

    def add(self, output: StoryOutput) -> StoryOutput:
        if not self._insert_stack:
            output.index = len(self._items)
            self._items.append(output)
            return output

        insert_index = self._insert_stack[-1]
        output.index = insert_index
        self._items.insert(insert_index, output)
        self._reindex(insert_index + 1)
        self._insert_stack[-1] = insert_index + 1
        return output

    def remove(self, output: StoryOutput) -> bool:
        try:
            position = self._items.index(output)
        except ValueError:
            return False
        del self._items[position]
        self._reindex(position)
        return True

    def clear(self) -> None:
        self._items.clear()
        self._insert_stack.clear()

    def of_type(self, output_type: type[OutputT]) -> list[OutputT]:
        return [item for item in self._items if isinstance(item, output_type)]

    def _reindex(self, start: int) -> None:
        for position in range(start, len(self._items)):
            self._items[position].index = position


__all__ = [
    "Style",
    "StoryOutput",
    "StoryText",
    "HtmlTag",
    "LineBreak",
    "StoryLink",
    "StyleGroup",
    "Embed",
    "EmbedPassage",
    "EmbedFragment",
    "Abort",
    "OutputList",
    "ThreadFactory",
]
