from __future__ import annotations

import pytest

from storyloom.engine.callbacks import CallbackSequencer
from storyloom.engine.errors import InternalConsistencyError


class Switch:
    def __init__(self) -> None:
        self.paused = False

    def __call__(self) -> bool:
        return self.paused


def make_sequencer(switch: Switch, calls: list) -> CallbackSequencer:
    def invoke_cue(cue, *args):
        calls.append((cue, args))

    return CallbackSequencer(switch, invoke_cue)


def test_runs_actions_in_order_then_completion() -> None:
    calls: list = []
    sequencer = make_sequencer(Switch(), calls)
    sequencer.add(lambda: calls.append("a")).add_cues(["cue-1", "cue-2"], "arg").add(
        lambda: calls.append("b")
    ).on_complete(lambda: calls.append("done"))

    sequencer.invoke()

    assert calls == ["a", ("cue-1", ("arg",)), ("cue-2", ("arg",)), "b", "done"]
    assert sequencer.completed


def test_pause_stops_between_actions_and_invoke_continues() -> None:
    switch = Switch()
    calls: list = []
    sequencer = make_sequencer(switch, calls)

    def pausing() -> None:
        calls.append("pause")
        switch.paused = True

    sequencer.add(lambda: calls.append("a")).add(pausing).add(lambda: calls.append("b"))
    sequencer.on_complete(lambda: calls.append("done"))

    sequencer.invoke()
    assert calls == ["a", "pause"]
    assert not sequencer.completed

    switch.paused = False
    sequencer.invoke()
    assert calls == ["a", "pause", "b", "done"]


def test_pause_in_last_action_defers_completion() -> None:
    switch = Switch()
    calls: list = []
    sequencer = make_sequencer(switch, calls)
    sequencer.add(lambda: setattr(switch, "paused", True)).on_complete(lambda: calls.append("done"))

    sequencer.invoke()
    assert calls == []

    switch.paused = False
    sequencer.invoke()
    assert calls == ["done"]


def test_empty_sequence_only_runs_completion() -> None:
    calls: list = []
    sequencer = make_sequencer(Switch(), calls)
    sequencer.on_complete(lambda: calls.append("done")).invoke()
    assert calls == ["done"]


def test_completion_runs_once() -> None:
    calls: list = []
    sequencer = make_sequencer(Switch(), calls)
    sequencer.on_complete(lambda: calls.append("done")).invoke()
    with pytest.raises(InternalConsistencyError):
        sequencer.invoke()
    assert calls == ["done"]


def test_adding_after_start_is_rejected() -> None:
    switch = Switch()
    sequencer = make_sequencer(switch, [])
    sequencer.add(lambda: setattr(switch, "paused", True)).add(lambda: None)
    sequencer.invoke()
    assert sequencer.started
    with pytest.raises(InternalConsistencyError):
        sequencer.add(lambda: None)
    with pytest.raises(InternalConsistencyError):
        sequencer.on_complete(lambda: None)


def test_reset_makes_it_reusable() -> None:
    calls: list = []
    sequencer = make_sequencer(Switch(), calls)
    sequencer.add(lambda: calls.append("first")).invoke()
    sequencer.reset().add(lambda: calls.append("second")).invoke()
    assert calls == ["first", "second"]


def test_running_flag_only_set_during_actions() -> None:
    observed: list = []
    sequencer = make_sequencer(Switch(), [])
    sequencer.add(lambda: observed.append(sequencer.running))
    sequencer.on_complete(lambda: observed.append(sequencer.running))
    sequencer.invoke()
    assert observed == [True, False]
    assert not sequencer.running
