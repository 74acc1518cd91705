from __future__ import annotations

import argparse
import asyncio
import errno
import signal
import traceback
from contextlib import suppress
from pathlib import Path
from typing import Any, Callable, Optional

from prompt_toolkit.application import Application, run_in_terminal
from rich.console import Console
from rich.panel import Panel

from ..agent import AgentCore, ClaudeAgentBridge
from ..config import CodepalPaths, ConfigManager
from ..core.session_log import (
    SessionLogger,
    log_exception,
    log_info,
    set_active_logger,
)
from ..core.tool_events import ToolEvent
from ..core.transcript import DisplayMessage, Transcript
from .clipboard import ClipboardManager
from .commands import CommandRegistry, is_exit_command
from .completion import CommandCompletionProvider, CompletionManager, FileCompletionProvider
from .input import PromptView
from .render import TranscriptRenderer, help_markdown, welcome_panel
from .session import InteractiveSession, SessionCallbacks
from .wait import ProcessingIndicator

EXIT_CODE_OK = 0
EXIT_CODE_AGENT_ERROR = 1
EXIT_CODE_USAGE = 2
EXIT_CODE_INTERRUPTED = 130

TRACEBACK_LIMIT = 1500


class CodepalCLI:
    """Interactive terminal front-end: prompt, commands, transcript and agent calls."""

    def __init__(
        self,
        root: Path | None = None,
        console: Console | None = None,
        *,
        agent: AgentCore | None = None,
        clipboard: ClipboardManager | None = None,
        verbose_tools: bool | None = None,
        show_tool_logs: bool | None = None,
    ) -> None:
        self.console = console or Console()
        self.root = root or Path.cwd()
        self.paths = CodepalPaths(self.root)
        self.config_manager = ConfigManager(self.paths, console=self.console)
        self.ui = self.config_manager.load_ui_settings()
        self.verbose_tools = self.ui.verbose_tools if verbose_tools is None else verbose_tools
        self.show_tool_logs = self.ui.show_tool_logs if show_tool_logs is None else show_tool_logs
        self.session_logger = SessionLogger(self.paths, self.ui.debug)
        set_active_logger(self.session_logger)
        self.session = InteractiveSession(self.config_manager.load_session_config())
        self.registry = CommandRegistry()
        self._register_commands()
        self.renderer = TranscriptRenderer(self.console)
        self.transcript = Transcript()
        self.transcript.add_listener(self._on_message)
        self.clipboard = clipboard or ClipboardManager(timeout=self.session.config.timeout / 1000)
        self.completion_manager = CompletionManager(
            [
                FileCompletionProvider(
                    lambda: self.session.config,
                    limit=self.ui.completion_limit,
                    max_depth=self.ui.completion_depth,
                ),
                CommandCompletionProvider(self.registry.completion_entries),
            ]
        )
        self.agent: AgentCore = agent or ClaudeAgentBridge(
            self.config_manager,
            lambda: self.session.config,
            session_logger=self.session_logger,
        )
        self.prompt: PromptView | None = None
        self.indicator = ProcessingIndicator(self.console)
        self._agent_task: asyncio.Task | None = None
        self._submission_task: asyncio.Task | None = None
        self._interrupted = False
        self._exit_code = EXIT_CODE_OK
        self._sigint_installed = False
        self._shutting_down = False

    # Commands

    def _register_commands(self) -> None:
        self._register_builtin_command("/help", self._cmd_help, "Show this help")
        self._register_builtin_command(
            "/clear", self._cmd_clear, "Clear chat history and reset context"
        )
        self._register_builtin_command(
            "/refresh", self._cmd_refresh, "Refresh project context"
        )
        self._register_builtin_command(
            "/tools", self._cmd_tools, "Toggle tool log visibility"
        )
        self._register_builtin_command(
            "/verbose-tools", self._cmd_verbose_tools, "Toggle detailed tool output"
        )
        self._register_builtin_command(
            "/status", self._cmd_status, "Show session status"
        )
        self._register_builtin_command("/exit", self._cmd_exit, "Exit codepal")
        self._register_builtin_command("/quit", self._cmd_exit, "Exit codepal")

    def _register_builtin_command(
        self, name: str, handler: Callable[[str], Any], description: str
    ) -> None:
        if not name.startswith("/"):
            name = f"/{name}"
        self.registry.register(name, handler, description)

    async def _cmd_help(self, _: str) -> bool:
        self.transcript.append("system", help_markdown(self.registry.descriptions()))
        return True

    async def _cmd_clear(self, _: str) -> bool:
        self.transcript.clear()
        self._in_terminal(self.console.clear)
        try:
            await self.agent.clear_history_and_refresh()
        except Exception as exc:  # noqa: BLE001
            log_exception("cli", exc)
            self.transcript.append("error", f"Failed to reset agent context: {exc}")
            return True
        self.transcript.append(
            "system", "✨ Chat history cleared. Context has been reset to initial state."
        )
        return True

    async def _cmd_refresh(self, _: str) -> bool:
        try:
            await self.agent.refresh_project_context()
        except Exception as exc:  # noqa: BLE001
            log_exception("cli", exc)
            self.transcript.append("error", f"Failed to refresh project context: {exc}")
            return True
        self.transcript.append("system", "🔄 Project context refreshed.")
        return True

    async def _cmd_tools(self, _: str) -> bool:
        self.show_tool_logs = not self.show_tool_logs
        state = "shown" if self.show_tool_logs else "hidden"
        self.transcript.append("system", f"🔧 Tool logs are now {state}.")
        return True

    async def _cmd_verbose_tools(self, _: str) -> bool:
        self.verbose_tools = not self.verbose_tools
        state = "verbose" if self.verbose_tools else "compact"
        self.transcript.append("system", f"🔧 Tool output is now {state}.")
        return True

    async def _cmd_status(self, _: str) -> bool:
        settings = self.config_manager.load_settings()
        provider = self.clipboard.provider.name if self.clipboard.provider else "unavailable"
        log_path = self.session_logger.path
        log_state = str(log_path) if log_path else ("enabled" if self.session_logger.enabled else "disabled")
        lines = [
            f"- **Workspace:** {self.session.working_directory}",
            f"- **Model:** {settings.model or '<not set>'}",
            f"- **Tool logs:** {'on' if self.show_tool_logs else 'off'}"
            f" ({'verbose' if self.verbose_tools else 'compact'})",
            f"- **Clipboard:** {provider}",
            f"- **Messages:** {len(self.transcript)}",
            f"- **Session log:** {log_state}",
        ]
        self.transcript.append("system", "\n".join(lines))
        return True

    async def _cmd_exit(self, _: str) -> bool:
        return False

    # Input handling

    async def handle_user_input(self, text: str) -> bool:
        """Route one submission; returns False when the session should end."""
        stripped = text.strip()
        if not stripped:
            return True
        if is_exit_command(stripped):
            return False
        if stripped.startswith("/"):
            name = stripped.split(maxsplit=1)[0].lower()
            command = self.registry.get(name)
            if command is not None:
                return await command.handler(stripped)
            log_info("cli", "cli.unknown_command", {"command": name})
            self.transcript.append(
                "system", f"Unknown command: {name}. Type /help to see available commands."
            )
            return True
        self.transcript.append("user", stripped)
        await self._run_agent(stripped)
        return True

    async def _run_agent(self, text: str) -> bool:
        self._interrupted = False
        self.indicator = self._make_indicator()
        await self.indicator.start()
        task = asyncio.ensure_future(
            self.agent.process_message(text, verbose=self.verbose_tools)
        )
        self._agent_task = task
        try:
            reply = await task
        except asyncio.CancelledError:
            if not self._interrupted:
                raise
            self.transcript.append("system", "Interrupted by user.")
            return False
        except Exception as exc:  # noqa: BLE001
            log_exception("cli", exc)
            self.transcript.append("error", self._format_agent_error(exc))
            return False
        finally:
            self._agent_task = None
            await self.indicator.stop()
        self.transcript.append("agent", reply)
        return True

    def _make_indicator(self) -> ProcessingIndicator:
        if self.prompt is not None and self._app_running():
            return ProcessingIndicator(self.console, on_tick=self.prompt.invalidate)
        return ProcessingIndicator(self.console)

    def _format_agent_error(self, exc: BaseException) -> str:
        message = str(exc) or exc.__class__.__name__
        if not self.verbose_tools:
            return message
        trace = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
        if len(trace) > TRACEBACK_LIMIT:
            trace = "…" + trace[-TRACEBACK_LIMIT:]
        return f"{message}\n\n{trace.rstrip()}"

    def interrupt(self) -> None:
        """Cancel the in-flight agent call, if any."""
        task = self._agent_task
        if task is None or task.done():
            return
        self._interrupted = True
        log_info("cli", "cli.interrupt", {"reason": "escape"})
        task.cancel()

    def kill(self) -> None:
        """Terminate the session at once, whatever is in flight."""
        self._exit_code = EXIT_CODE_INTERRUPTED
        self.session.stop()
        if self._agent_task is not None and not self._agent_task.done():
            self._agent_task.cancel()
        self._exit_app(exception=KeyboardInterrupt())

    # Transcript and tool events

    def _on_message(self, message: DisplayMessage) -> None:
        self._in_terminal(lambda: self.renderer.render(message))

    def _on_tool_event(self, event: ToolEvent) -> None:
        if not self.show_tool_logs:
            return
        self.transcript.append_tool_event(event, verbose=self.verbose_tools)

    def _in_terminal(self, func: Callable[[], None]) -> None:
        if self._app_running():
            run_in_terminal(func)
        else:
            func()

    # Modes

    def _build_prompt(
        self,
        *,
        on_submit: Callable[[str], None],
        on_exit: Callable[[], None],
    ) -> PromptView:
        return PromptView(
            self.clipboard,
            self.completion_manager,
            on_submit=on_submit,
            on_exit=on_exit,
            on_kill=self.kill,
            on_interrupt=self.interrupt,
            status_text=lambda: self.indicator.status_text(),
            paste_indicator_seconds=self.ui.paste_indicator_seconds,
        )

    async def read_input(self) -> Optional[str]:
        """Show the prompt once; returns the submitted text, or None on exit."""
        self.prompt = self._build_prompt(
            on_submit=lambda text: self._exit_app(result=text),
            on_exit=lambda: self._exit_app(result=None),
        )
        app = self.prompt.build_application()
        self.session.start()
        self._install_signal_handler()
        try:
            return await app.run_async()
        finally:
            self._remove_signal_handler()
            self.session.stop()
            self.prompt = None

    async def handle_interactive_mode(self) -> int:
        self.session.set_callbacks(
            SessionCallbacks(on_input=self.handle_user_input, on_end=self._exit_app)
        )
        self.session.start()
        self.agent.tool_events.subscribe(self._on_tool_event)
        self.prompt = self._build_prompt(
            on_submit=self._on_submit, on_exit=self.session.end_session
        )
        app = self.prompt.build_application()
        self._print_welcome()
        self._install_signal_handler()
        try:
            await app.run_async()
        except KeyboardInterrupt:
            self._exit_code = EXIT_CODE_INTERRUPTED
        finally:
            self._remove_signal_handler()
            self.agent.tool_events.unsubscribe(self._on_tool_event)
            await self._cancel_submission()
            await self._graceful_exit()
        return self._exit_code

    async def run_once(self) -> int:
        """Read one message with the prompt, answer it, and return."""
        self.agent.tool_events.subscribe(self._on_tool_event)
        try:
            text = await self.read_input()
            if text is None or is_exit_command(text) or not text.strip():
                return EXIT_CODE_OK
            if text.strip().startswith("/"):
                await self.handle_user_input(text)
                return EXIT_CODE_OK
            return await self._answer(text.strip())
        finally:
            self.agent.tool_events.unsubscribe(self._on_tool_event)
            await self._graceful_exit(farewell=False)

    async def run_prompt(self, prompt: str) -> int:
        """Answer ``prompt`` without showing the input UI."""
        text = (prompt or "").strip()
        if not text:
            self.console.print(Panel("Prompt is required.", title="Error", border_style="red"))
            return EXIT_CODE_USAGE
        self.agent.tool_events.subscribe(self._on_tool_event)
        try:
            return await self._answer(text)
        finally:
            self.agent.tool_events.unsubscribe(self._on_tool_event)
            await self._graceful_exit(farewell=False)

    async def _answer(self, text: str) -> int:
        self.transcript.append("user", text)
        ok = await self._run_agent(text)
        return EXIT_CODE_OK if ok else EXIT_CODE_AGENT_ERROR

    def _on_submit(self, text: str) -> None:
        self._submission_task = asyncio.ensure_future(self._process_submission(text))

    async def _process_submission(self, text: str) -> None:
        if self.prompt is not None:
            self.prompt.set_disabled(True)
        try:
            await self.session.handle_input(text)
        except Exception as exc:  # noqa: BLE001
            log_exception("cli", exc)
            self.transcript.append("error", self._format_agent_error(exc))
        finally:
            if self.prompt is not None:
                self.prompt.set_disabled(False)

    async def _cancel_submission(self) -> None:
        task = self._submission_task
        self._submission_task = None
        if task is None or task.done() or task is asyncio.current_task():
            return
        task.cancel()
        with suppress(asyncio.CancelledError):
            await task

    # Lifecycle

    def _app(self) -> Application | None:
        return self.prompt.app if self.prompt is not None else None

    def _app_running(self) -> bool:
        app = self._app()
        return app is not None and app.is_running

    def _exit_app(self, **kwargs: Any) -> None:
        app = self._app()
        if app is not None and app.is_running and not app.is_done:
            app.exit(**kwargs)

    def _install_signal_handler(self) -> None:
        if self._sigint_installed:
            return
        loop = asyncio.get_running_loop()
        try:
            loop.add_signal_handler(signal.SIGINT, self.kill)
        except (NotImplementedError, RuntimeError):
            return
        self._sigint_installed = True

    def _remove_signal_handler(self) -> None:
        if not self._sigint_installed:
            return
        with suppress(NotImplementedError, RuntimeError):
            asyncio.get_running_loop().remove_signal_handler(signal.SIGINT)
        self._sigint_installed = False

    def _print_welcome(self) -> None:
        from codepal import __version__

        settings = self.config_manager.load_settings()
        self.console.print(welcome_panel(__version__, settings.model, str(self.root)))

    async def _graceful_exit(self, *, farewell: bool = True) -> None:
        if self._shutting_down:
            return
        self._shutting_down = True
        reset = getattr(self.agent, "reset", None)
        if reset is not None:
            with suppress(Exception):
                await reset()
        with suppress(Exception):
            self.session_logger.close()
        set_active_logger(None)
        if not farewell:
            return
        try:
            self.console.print(
                Panel("Exiting codepal. See you soon!", title="Goodbye", border_style="cyan")
            )
        except BrokenPipeError:
            return
        except OSError as exc:
            if exc.errno == errno.EPIPE:
                return
            log_exception("cli", exc)
            raise


def main() -> None:
    from codepal import __version__

    parser = argparse.ArgumentParser(
        description="codepal - interactive terminal front-end for a coding agent"
    )
    parser.add_argument("-v", "--version", action="store_true", help="Show version and exit")
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument(
        "-p",
        "--prompt",
        help="Run a single prompt without entering the interactive UI",
    )
    mode.add_argument(
        "--once",
        action="store_true",
        help="Read one message with the input prompt, answer it and exit",
    )
    parser.add_argument(
        "--verbose-tools", action="store_true", help="Show detailed tool output"
    )
    parser.add_argument("--no-tool-logs", action="store_true", help="Hide tool activity")
    parser.add_argument(
        "-C", "--directory", help="Workspace directory (defaults to the current directory)"
    )
    args = parser.parse_args()
    if args.version:
        print(f"codepal {__version__}")
        return
    root = Path(args.directory).expanduser().resolve() if args.directory else Path.cwd()
    if not root.is_dir():
        parser.error(f"not a directory: {root}")
    try:
        cli = CodepalCLI(
            root=root,
            verbose_tools=True if args.verbose_tools else None,
            show_tool_logs=False if args.no_tool_logs else None,
        )
        if args.prompt is not None:
            code = asyncio.run(cli.run_prompt(args.prompt))
        elif args.once:
            code = asyncio.run(cli.run_once())
        else:
            code = asyncio.run(cli.handle_interactive_mode())
    except KeyboardInterrupt:
        code = EXIT_CODE_INTERRUPTED
    except BrokenPipeError:
        return
    except OSError as exc:
        if exc.errno == errno.EPIPE:
            return
        log_exception("cli", exc)
        raise
    raise SystemExit(code)


if __name__ == "__main__":
    main()
