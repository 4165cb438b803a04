"""Story engine exports."""

from .collapse import CollapsedThread
from .executor import ThreadExecutor
from .passages import Passage, PassageRegistry, StoryThread
from .runtime import LinkRef, Story, VariableStore
from .state import StoryState

__all__ = [
    "Story",
    "StoryState",
    "Passage",
    "PassageRegistry",
    "StoryThread",
    "CollapsedThread",
    "ThreadExecutor",
    "LinkRef",
    "VariableStore",
]
