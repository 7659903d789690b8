"""Terminal adapters: open a new pane or session positioned in a worktree."""

import logging
from collections.abc import Callable
from typing import Protocol

from transmute.errors import TerminalError, TransmuteError
from transmute.models import OpenSessionOptions, TerminalAvailability
from transmute.services.exec import ExecResult, exec_command

logger = logging.getLogger(__name__)

ExecFn = Callable[..., ExecResult]


class TerminalAdapter(Protocol):
    name: str

    def is_available(self) -> bool: ...

    def open_session(self, options: OpenSessionOptions) -> None: ...


def env_prefix(env: dict[str, str] | None) -> list[str]:
    """``["env", "K=V", ...]`` or nothing when there are no variables."""
    if not env:
        return []
    return ["env", *(f"{key}={value}" for key, value in env.items())]


class WezTermAdapter:
    """Spawns panes through ``wezterm cli spawn``."""

    name = "wezterm"

    def __init__(self, exec_fn: ExecFn = exec_command) -> None:
        self._exec = exec_fn

    def is_available(self) -> bool:
        try:
            return self._exec("wezterm", ["--version"], throw_on_error=False).ok
        except TransmuteError:
            return False

    def get_version(self) -> str | None:
        try:
            result = self._exec("wezterm", ["--version"], throw_on_error=False)
        except TransmuteError:
            return None
        if not result.ok:
            return None
        return result.stdout.strip().removeprefix("wezterm ").strip() or None

    def build_spawn_args(self, options: OpenSessionOptions) -> list[str]:
        args = ["cli", "spawn", "--cwd", options.cwd]
        if options.title:
            args += ["--pane-title", options.title]
        if options.commands:
            args += ["--", *env_prefix(options.env), "sh", "-c", " && ".join(options.commands)]
        elif options.env:
            args += ["--", *env_prefix(options.env), "sh"]
        return args

    def open_session(self, options: OpenSessionOptions) -> None:
        if not self.is_available():
            raise TerminalError.not_available(self.name)

        try:
            result = self._exec("wezterm", self.build_spawn_args(options), throw_on_error=False)
        except Exception as e:
            raise TerminalError.spawn_failed(self.name, str(e)) from e

        if result.ok:
            logger.info("Opened terminal pane", extra={"terminal": self.name, "cwd": options.cwd})
            return
        if "No such file or directory" in result.stderr or "not found" in result.stderr:
            raise TerminalError.invalid_path(options.cwd)
        raise TerminalError.spawn_failed(self.name, result.stderr.strip() or result.stdout.strip())


def check_terminal_availability(adapters: list[TerminalAdapter]) -> list[TerminalAvailability]:
    report = []
    for adapter in adapters:
        version = adapter.get_version() if hasattr(adapter, "get_version") else None
        report.append(
            TerminalAvailability(name=adapter.name, available=adapter.is_available(), version=version)
        )
    return report


def get_first_available_terminal(adapters: list[TerminalAdapter]) -> TerminalAdapter | None:
    for adapter in adapters:
        if adapter.is_available():
            return adapter
    return None


def create_terminal_adapter(kind: str, exec_fn: ExecFn = exec_command) -> TerminalAdapter | None:
    """Adapter for a configured terminal type, or None when none should be opened."""
    if kind == "wezterm":
        return WezTermAdapter(exec_fn)
    if kind == "tmux":
        from transmute.services.tmux import TmuxAdapter

        return TmuxAdapter(exec_fn)
    if kind != "none":
        logger.warning("Unsupported terminal, not opening one", extra={"terminal": kind})
    return None
