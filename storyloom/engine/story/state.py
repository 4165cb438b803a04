"""Playback states of a story."""

from __future__ import annotations

from enum import Enum


class StoryState(str, Enum):
    IDLE = "Idle"
    PLAYING = "Playing"
    PAUSED = "Paused"
    EXITING = "Exiting"


__all__ = ["StoryState"]
