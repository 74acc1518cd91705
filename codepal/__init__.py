"""Codepal package initialization."""

from importlib.metadata import PackageNotFoundError, version

__all__ = [
    "agent",
    "cli",
    "config",
    "core",
]

# Single source of truth comes from package metadata defined in pyproject.toml
try:
    __version__ = version("codepal")
except PackageNotFoundError:  # pragma: no cover - running from a source checkout
    __version__ = "0.0.0"
