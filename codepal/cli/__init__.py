"""Terminal front-end: prompt, completion, clipboard and the session loop."""

from .app import CodepalCLI, main

__all__ = ["CodepalCLI", "main"]
