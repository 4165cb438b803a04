from __future__ import annotations

import pytest

from storyloom.engine.errors import InternalConsistencyError
from storyloom.engine.output import Style, StyleGroup
from storyloom.engine.style import StyleStack


def test_scopes_pop_in_stack_order() -> None:
    stack = StyleStack()
    outer = stack.open(StyleGroup(Style(color="red")))
    inner_group = StyleGroup(Style(size=2))
    inner_group.style_group = outer.group
    with stack.open(inner_group):
        assert stack.current_style() == {"color": "red", "size": 2}
    assert stack.top is outer.group
    outer.close()
    assert stack.top is None
    assert stack.current_style() == {}


def test_out_of_order_close_is_fatal() -> None:
    stack = StyleStack()
    outer = stack.open(StyleGroup(Style(color="red")))
    stack.open(StyleGroup(Style(size=2)))
    with pytest.raises(InternalConsistencyError):
        outer.close()


def test_closing_twice_is_a_no_op() -> None:
    stack = StyleStack()
    scope = stack.open(StyleGroup(Style(color="red")))
    scope.close()
    scope.close()
    assert scope.closed
    assert len(stack) == 0
