"""Utility helpers for describing story output."""

from __future__ import annotations

from ..engine.output import Abort, EmbedPassage, StoryLink, StoryOutput, StyleGroup


def describe_output(output: StoryOutput) -> str:
    """Return a short single-line description of an output, for log lines."""
    kind = type(output).__name__
    if isinstance(output, StoryLink):
        return f"{kind}[{output.index}] {output.name!r} -> {output.passage_name!r}"
    if isinstance(output, EmbedPassage):
        return f"{kind}[{output.index}] {output.name!r}"
    if isinstance(output, StyleGroup):
        return f"{kind}[{output.index}] {dict(output.own)!r}"
    if isinstance(output, Abort):
        return f"{kind} -> {output.go_to_passage!r}"
    if output.text is not None:
        text = output.text if len(output.text) <= 40 else output.text[:37] + "..."
        return f"{kind}[{output.index}] {text!r}"
    return f"{kind}[{output.index}]"


__all__ = ["describe_output"]
