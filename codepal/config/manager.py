from __future__ import annotations

import json
import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, Optional

from claude_agent_sdk import ClaudeAgentOptions
from rich.console import Console

from .paths import CodepalPaths


DEFAULT_BLOCKED_PATHS = (
    "node_modules",
    ".git",
    "dist",
    "build",
    ".next",
    "coverage",
    "__pycache__",
    ".venv",
)

DEFAULT_ALLOWED_TOOLS = (
    "Read",
    "Write",
    "Edit",
    "Bash",
    "Grep",
    "Glob",
    "LS",
    "TodoWrite",
    "WebFetch",
    "WebSearch",
)

DEFAULT_PROJECT_CONFIG: Dict[str, Any] = {
    "session": {
        "max_file_size": 10 * 1024 * 1024,
        "timeout": 5000,
        "allow_hidden": False,
        "allowed_extensions": [],
        "blocked_paths": list(DEFAULT_BLOCKED_PATHS),
    },
    "ui": {
        "show_tool_logs": True,
        "verbose_tools": False,
        "completion_limit": 20,
        "completion_depth": 3,
        "paste_indicator_seconds": 1.0,
    },
    "debug": None,
}


@dataclass(frozen=True)
class SessionConfig:
    """Per-process settings read by completion providers and the agent bridge.

    Only ``working_directory`` may change during a session, and only through
    :meth:`with_working_directory` called by the owning session.
    """

    working_directory: Path
    max_file_size: int = 10 * 1024 * 1024
    timeout: int = 5000
    allow_hidden: bool = False
    allowed_extensions: tuple[str, ...] = ()
    blocked_paths: tuple[str, ...] = DEFAULT_BLOCKED_PATHS

    def with_working_directory(self, directory: Path | str) -> "SessionConfig":
        return replace(self, working_directory=Path(directory))


@dataclass(frozen=True)
class UiSettings:
    show_tool_logs: bool = True
    verbose_tools: bool = False
    completion_limit: int = 20
    completion_depth: int = 3
    paste_indicator_seconds: float = 1.0
    debug: Any = None


@dataclass
class CodepalSettings:
    base_url: Optional[str]
    auth_token: Optional[str]
    model: Optional[str]
    api_timeout_ms: Optional[int]
    extra: Dict[str, Any] = field(default_factory=dict)


class ConfigManager:
    """Reads Codepal JSON config files and resolves session settings."""

    def __init__(self, paths: CodepalPaths, console: Optional[Console] = None) -> None:
        self.paths = paths
        self.console = console or Console()

    def load_project_config(self) -> Dict[str, Any]:
        """Merge built-in defaults, the global config and the workspace config."""
        merged = self._merge_dicts(DEFAULT_PROJECT_CONFIG, self._read_json(self.paths.global_config_file))
        return self._merge_dicts(merged, self._read_json(self.paths.config_file))

    def load_session_config(self) -> SessionConfig:
        section = self._section(self.load_project_config(), "session")
        return SessionConfig(
            working_directory=self.paths.root,
            max_file_size=self._coerce_int(section.get("max_file_size"), 10 * 1024 * 1024),
            timeout=self._coerce_int(section.get("timeout"), 5000),
            allow_hidden=bool(section.get("allow_hidden", False)),
            allowed_extensions=self._normalize_extensions(section.get("allowed_extensions")),
            blocked_paths=self._string_tuple(section.get("blocked_paths"), DEFAULT_BLOCKED_PATHS),
        )

    def load_ui_settings(self) -> UiSettings:
        project_cfg = self.load_project_config()
        section = self._section(project_cfg, "ui")
        seconds = section.get("paste_indicator_seconds", 1.0)
        if not isinstance(seconds, (int, float)) or isinstance(seconds, bool) or seconds < 0:
            seconds = 1.0
        return UiSettings(
            show_tool_logs=bool(section.get("show_tool_logs", True)),
            verbose_tools=bool(section.get("verbose_tools", False)),
            completion_limit=max(1, self._coerce_int(section.get("completion_limit"), 20)),
            completion_depth=max(1, self._coerce_int(section.get("completion_depth"), 3)),
            paste_indicator_seconds=float(seconds),
            debug=project_cfg.get("debug"),
        )

    def load_settings(self) -> CodepalSettings:
        """Merge the ``anthropic`` config section with environment variables."""
        project_cfg = self.load_project_config()
        anthropic_cfg = self._section(project_cfg, "anthropic")
        env_cfg = self._env_settings()
        return CodepalSettings(
            base_url=anthropic_cfg.get("base_url") or env_cfg.get("base_url"),
            auth_token=anthropic_cfg.get("auth_token") or env_cfg.get("auth_token"),
            model=anthropic_cfg.get("model") or env_cfg.get("model"),
            api_timeout_ms=self._to_int(anthropic_cfg.get("api_timeout_ms"))
            or env_cfg.get("api_timeout_ms"),
            extra={
                key: value
                for key, value in anthropic_cfg.items()
                if key not in {"base_url", "auth_token", "model", "api_timeout_ms"}
            },
        )

    def build_env(self, settings: CodepalSettings) -> Dict[str, str]:
        env: Dict[str, str] = {}
        if settings.base_url:
            env["ANTHROPIC_BASE_URL"] = settings.base_url
        if settings.auth_token:
            env["ANTHROPIC_AUTH_TOKEN"] = settings.auth_token
        if settings.model:
            env["ANTHROPIC_MODEL"] = settings.model
        if settings.api_timeout_ms is not None:
            env["API_TIMEOUT_MS"] = str(settings.api_timeout_ms)
        return env

    def build_options(
        self,
        system_prompt: str,
        *,
        working_directory: Path | None = None,
        resume: str | None = None,
    ) -> ClaudeAgentOptions:
        """Construct ClaudeAgentOptions for this workspace, optionally resuming a session."""
        settings = self.load_settings()
        return ClaudeAgentOptions(
            system_prompt=system_prompt,
            cwd=str(working_directory or self.paths.root),
            model=settings.model,
            permission_mode="acceptEdits",
            allowed_tools=list(DEFAULT_ALLOWED_TOOLS),
            env=self.build_env(settings),
            resume=resume,
        )

    def _env_settings(self) -> Dict[str, Any]:
        return {
            "base_url": os.getenv("ANTHROPIC_BASE_URL"),
            "auth_token": os.getenv("ANTHROPIC_AUTH_TOKEN"),
            "model": os.getenv("ANTHROPIC_MODEL"),
            "api_timeout_ms": self._to_int(os.getenv("API_TIMEOUT_MS")),
        }

    def _merge_dicts(self, base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        if not override:
            return dict(base)
        merged: Dict[str, Any] = dict(base)
        for key, value in override.items():
            if isinstance(value, dict) and isinstance(merged.get(key), dict):
                merged[key] = self._merge_dicts(merged[key], value)  # type: ignore[arg-type]
            else:
                merged[key] = value
        return merged

    def _read_json(self, path: Path) -> Dict[str, Any]:
        if not path.exists():
            return {}
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError:
            self.console.print(
                f"[red]Failed to parse JSON config at {path}. Using defaults.[/red]"
            )
            return {}
        return data if isinstance(data, dict) else {}

    def _section(self, config: Dict[str, Any], key: str) -> Dict[str, Any]:
        section = config.get(key, {})
        return section if isinstance(section, dict) else {}

    def _normalize_extensions(self, raw: Any) -> tuple[str, ...]:
        values = self._string_tuple(raw, ())
        normalized = []
        for value in values:
            ext = value.strip().lower()
            if not ext:
                continue
            normalized.append(ext if ext.startswith(".") else f".{ext}")
        return tuple(normalized)

    def _string_tuple(self, raw: Any, default: tuple[str, ...]) -> tuple[str, ...]:
        if not isinstance(raw, (list, tuple)):
            return default
        return tuple(str(item) for item in raw if isinstance(item, str) and item)

    def _coerce_int(self, raw: Any, default: int) -> int:
        if isinstance(raw, bool):
            return default
        if isinstance(raw, int):
            return raw
        parsed = self._to_int(raw)
        return default if parsed is None else parsed

    def _to_int(self, value: Any) -> Optional[int]:
        if value is None:
            return None
        try:
            return int(value)
        except (TypeError, ValueError):
            return None
