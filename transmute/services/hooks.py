"""Lifecycle hooks: shell commands run after a worktree is created and before it is destroyed."""

import logging
import os
import subprocess
import time
from pathlib import Path

from transmute.models import HookResult, HooksConfig

logger = logging.getLogger(__name__)

DEFAULT_HOOKS = HooksConfig(
    after_create=["[ -f package.json ] && pnpm install || true"],
    before_destroy=[],
)


def execute_hooks(
    commands: list[str],
    cwd: Path | str,
    stop_on_error: bool = True,
    env: dict[str, str] | None = None,
) -> list[HookResult]:
    """Run shell commands one after another in ``cwd``.

    A failing command is reported in its HookResult, never raised. With
    stop_on_error, execution stops after the first failure and the returned
    list ends with that failing result. A command that cannot be handed to
    the shell at all fails with exit code -1. OSError from spawning the shell
    propagates.
    """
    run_env = {**os.environ, **(env or {})}
    results: list[HookResult] = []
    for command in commands:
        started = time.monotonic()
        try:
            proc = subprocess.run(
                command,
                shell=True,
                cwd=cwd,
                env=run_env,
                stdin=subprocess.DEVNULL,
                capture_output=True,
                text=True,
            )
            stdout, stderr, exit_code = proc.stdout, proc.stderr, proc.returncode
        except ValueError as e:
            # The command itself cannot be passed to a process (e.g. a NUL byte).
            stdout, stderr, exit_code = "", str(e), -1
        result = HookResult(
            command=command,
            success=exit_code == 0,
            stdout=stdout,
            stderr=stderr,
            exit_code=exit_code,
            duration=(time.monotonic() - started) * 1000,
        )
        results.append(result)
        if not result.success:
            logger.warning(
                "Hook command failed",
                extra={"command": command, "exit_code": exit_code, "stderr": stderr},
            )
            if stop_on_error:
                break
    return results


def execute_after_create_hooks(
    config: HooksConfig,
    cwd: Path | str,
    stop_on_error: bool = True,
    env: dict[str, str] | None = None,
) -> list[HookResult]:
    if not config.after_create:
        return []
    return execute_hooks(config.after_create, cwd, stop_on_error=stop_on_error, env=env)


def execute_before_destroy_hooks(
    config: HooksConfig,
    cwd: Path | str,
    stop_on_error: bool = True,
    env: dict[str, str] | None = None,
) -> list[HookResult]:
    if not config.before_destroy:
        return []
    return execute_hooks(config.before_destroy, cwd, stop_on_error=stop_on_error, env=env)
