"""Configuration package."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .manager import CodepalSettings, ConfigManager, SessionConfig, UiSettings
    from .paths import CodepalPaths

__all__ = [
    "CodepalPaths",
    "CodepalSettings",
    "ConfigManager",
    "SessionConfig",
    "UiSettings",
]

_MANAGER_EXPORTS = {"CodepalSettings", "ConfigManager", "SessionConfig", "UiSettings"}


def __getattr__(name: str) -> Any:
    if name in _MANAGER_EXPORTS:
        from . import manager

        return getattr(manager, name)
    if name == "CodepalPaths":
        from .paths import CodepalPaths

        return CodepalPaths
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
