from __future__ import annotations

import pytest

from storyloom.engine.errors import InternalConsistencyError, PassageNotFoundError
from storyloom.engine.output import EmbedFragment, EmbedPassage, StoryText
from storyloom.engine.story import CollapsedThread, Passage, PassageRegistry, StoryThread


def collapse(registry: PassageRegistry, name: str, max_depth: int = 16) -> CollapsedThread:
    return CollapsedThread(registry.get(name).main_thread(), registry.get, max_depth=max_depth)


def test_embedded_passage_is_flattened_in_place() -> None:
    registry = PassageRegistry()
    embed = EmbedPassage("B")
    registry.add(Passage("A", lambda: [StoryText("a1"), embed, StoryText("a2")]))
    registry.add(Passage("B", lambda: [StoryText("b1"), None, StoryText("b2")]))

    items = [item for item in collapse(registry, "A") if item is not None]

    assert [item.text or item.name for item in items] == ["a1", "B", "b1", "b2", "a2"]
    assert items[1] is embed
    assert items[1].embed_info is None
    assert items[2].embed_info is embed
    assert items[3].embed_info is embed
    assert items[4].embed_info is None


def test_fragment_content_is_tagged_with_the_fragment() -> None:
    fragment = EmbedFragment(lambda: [StoryText("inside")])
    thread = CollapsedThread(StoryThread([fragment, StoryText("after")]), PassageRegistry().get)
    items = list(thread)
    assert items[0] is fragment
    assert items[1].text == "inside"
    assert items[1].embed_info is fragment
    assert items[2].embed_info is None


def test_closest_embed_wins_for_nested_content() -> None:
    registry = PassageRegistry()
    outer = EmbedPassage("B")
    inner = EmbedPassage("C")
    registry.add(Passage("A", lambda: [outer]))
    registry.add(Passage("B", lambda: [StoryText("b"), inner]))
    registry.add(Passage("C", lambda: [StoryText("c")]))

    items = list(collapse(registry, "A"))

    assert [item.text or item.name for item in items] == ["B", "b", "C", "c"]
    assert items[1].embed_info is outer
    assert items[2].embed_info is outer
    assert items[3].embed_info is inner


def test_embed_parameters_are_passed_to_the_passage() -> None:
    registry = PassageRegistry()
    registry.add(Passage("A", lambda: [EmbedPassage("Greet", "Ada")]))
    registry.add(Passage("Greet", lambda who="nobody": [StoryText(f"Hello {who}")]))
    assert [item.text for item in collapse(registry, "A")] == [None, "Hello Ada"]


def test_missing_embedded_passage_raises_not_found() -> None:
    registry = PassageRegistry()
    registry.add(Passage("A", lambda: [EmbedPassage("Nowhere")]))
    with pytest.raises(PassageNotFoundError) as excinfo:
        list(collapse(registry, "A"))
    assert excinfo.value.passage_name == "Nowhere"


def test_self_embedding_passage_hits_the_depth_limit() -> None:
    registry = PassageRegistry()
    registry.add(Passage("Loop", lambda: [StoryText("again"), EmbedPassage("Loop")]))
    with pytest.raises(InternalConsistencyError, match="embed themselves"):
        list(collapse(registry, "Loop", max_depth=5))


def test_close_disposes_open_levels_innermost_first() -> None:
    closed: list[str] = []

    def content(label: str, children):
        try:
            yield StoryText(label)
            for child in children:
                yield child
            yield StoryText(f"{label}-end")
        finally:
            closed.append(label)

    registry = PassageRegistry()
    registry.add(Passage("Outer", lambda: content("outer", [EmbedPassage("Inner")])))
    registry.add(Passage("Inner", lambda: content("inner", [])))

    thread = collapse(registry, "Outer")
    assert [next(thread).text for _ in range(2)] == ["outer", None]
    assert next(thread).text == "inner"
    assert thread.depth == 1

    thread.close()

    assert closed == ["inner", "outer"]
    assert thread.closed
    assert list(thread) == []
