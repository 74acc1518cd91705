"""Core state models and helpers shared by the terminal front-end."""

from .fuzzy import FuzzyMatch, FuzzyMatcher
from .input_state import InputBuffer, InputState
from .session_log import SessionLogger
from .tool_events import ToolEvent, ToolEventEmitter
from .transcript import DisplayMessage, Transcript

__all__ = [
    "DisplayMessage",
    "FuzzyMatch",
    "FuzzyMatcher",
    "InputBuffer",
    "InputState",
    "SessionLogger",
    "ToolEvent",
    "ToolEventEmitter",
    "Transcript",
]
