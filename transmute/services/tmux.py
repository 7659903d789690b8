import logging
import re
import shlex
from pathlib import Path

import libtmux
from libtmux.exc import LibTmuxException

from transmute.constants import TMUX_SESSION_PREFIX
from transmute.errors import TerminalError, TransmuteError
from transmute.models import OpenSessionOptions
from transmute.services.exec import exec_command
from transmute.services.terminal import ExecFn, env_prefix

logger = logging.getLogger(__name__)

_server: libtmux.Server | None = None


def _get_server() -> libtmux.Server:
    global _server
    if _server is None:
        _server = libtmux.Server()
    return _server


def tmux_session_name(title: str | None, cwd: str) -> str:
    """tmux rejects ``.`` and ``:`` in session names."""
    base = re.sub(r"[.:\s]+", "-", title or Path(cwd).name).strip("-")
    return f"{TMUX_SESSION_PREFIX}-{base}"


def _find_available_session_name(base: str) -> str:
    existing = {s.session_name for s in _get_server().sessions}
    if base not in existing:
        return base
    for index in range(1, 1000):
        name = f"{base}-{index}"
        if name not in existing:
            return name
    raise TerminalError.spawn_failed("tmux", f"no free session name for '{base}'")


def build_window_command(options: OpenSessionOptions) -> str | None:
    if not options.commands and not options.env:
        return None
    script = " && ".join(options.commands) if options.commands else 'exec "${SHELL:-sh}"'
    return shlex.join([*env_prefix(options.env), "sh", "-c", script])


class TmuxAdapter:
    """Opens a detached tmux session per workspace."""

    name = "tmux"

    def __init__(self, exec_fn: ExecFn = exec_command) -> None:
        self._exec = exec_fn

    def is_available(self) -> bool:
        try:
            return self._exec("tmux", ["-V"], throw_on_error=False).ok
        except TransmuteError:
            return False

    def get_version(self) -> str | None:
        try:
            result = self._exec("tmux", ["-V"], throw_on_error=False)
        except TransmuteError:
            return None
        if not result.ok:
            return None
        return result.stdout.strip().removeprefix("tmux ").strip() or None

    def open_session(self, options: OpenSessionOptions) -> None:
        if not self.is_available():
            raise TerminalError.not_available(self.name)
        if not Path(options.cwd).is_dir():
            raise TerminalError.invalid_path(options.cwd)

        try:
            session_name = _find_available_session_name(tmux_session_name(options.title, options.cwd))
            _get_server().new_session(
                session_name=session_name,
                start_directory=options.cwd,
                window_command=build_window_command(options),
            )
        except (LibTmuxException, OSError, ValueError) as e:
            raise TerminalError.spawn_failed(self.name, str(e)) from e
        logger.info("Opened tmux session", extra={"session": session_name, "cwd": options.cwd})
