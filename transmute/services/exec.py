"""Process execution for git, shell and terminal CLIs.

Commands are always spawned from an argument list, never through a shell.
"""

import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path

import git as gitpython

from transmute.errors import TransmuteError, WorktreeError

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ExecResult:
    stdout: str
    stderr: str
    exit_code: int

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


def exec_command(
    command: str,
    args: list[str],
    cwd: Path | str | None = None,
    throw_on_error: bool = True,
) -> ExecResult:
    """Run ``command`` with ``args`` and capture its output.

    Raises WorktreeError(EXEC_FAILED) on a non-zero exit when throw_on_error
    is set, and always when the process cannot be spawned (exit code -1).
    """
    joined = " ".join([command, *args])
    try:
        proc = subprocess.run(
            [command, *args],
            cwd=cwd,
            stdin=subprocess.DEVNULL,
            capture_output=True,
            text=True,
        )
    except (OSError, ValueError) as e:
        raise WorktreeError.exec_failed(joined, str(e), -1) from e

    result = ExecResult(stdout=proc.stdout, stderr=proc.stderr, exit_code=proc.returncode)
    if throw_on_error and not result.ok:
        raise WorktreeError.exec_failed(joined, result.stderr or result.stdout, result.exit_code)
    return result


def git_exec(
    args: list[str],
    cwd: Path | str | None = None,
    throw_on_error: bool = True,
) -> ExecResult:
    """Run a git subcommand, translating "not a git repository" into NO_GIT_REPO."""
    joined = " ".join(["git", *args])
    git = gitpython.Git(str(cwd) if cwd else None)
    try:
        status, stdout, stderr = git.execute(
            ["git", *args],
            with_extended_output=True,
            with_exceptions=False,
            strip_newline_in_stdout=False,
        )
    except (gitpython.GitCommandNotFound, OSError, ValueError) as e:
        raise WorktreeError.exec_failed(joined, str(e), -1) from e

    result = ExecResult(stdout=stdout, stderr=stderr, exit_code=status)
    if throw_on_error and not result.ok:
        if "not a git repository" in result.stderr:
            raise WorktreeError.no_git_repo(str(cwd or Path.cwd()))
        raise WorktreeError.exec_failed(joined, result.stderr or result.stdout, result.exit_code)
    return result


def get_git_root(cwd: Path | str | None = None) -> Path:
    """Absolute top-level working directory of the repository containing ``cwd``."""
    try:
        repo = gitpython.Repo(cwd or ".", search_parent_directories=True)
    except (gitpython.InvalidGitRepositoryError, gitpython.NoSuchPathError):
        raise WorktreeError.no_git_repo(str(cwd or Path.cwd()))
    if repo.working_tree_dir is None:
        raise WorktreeError.no_git_repo(str(cwd or Path.cwd()))
    return Path(repo.working_tree_dir).resolve()


def is_git_repository(cwd: Path | str | None = None) -> bool:
    try:
        git_exec(["rev-parse", "--git-dir"], cwd=cwd)
        return True
    except TransmuteError as e:
        logger.debug("Not a git repository", extra={"cwd": str(cwd), "code": e.code.value})
        return False


def branch_exists(branch: str, cwd: Path | str | None = None) -> bool:
    """Check if a local branch exists."""
    result = git_exec(["branch", "--list", branch], cwd=cwd, throw_on_error=False)
    return bool(result.stdout.strip())


def remote_branch_exists(branch: str, remote: str = "origin", cwd: Path | str | None = None) -> bool:
    result = git_exec(["ls-remote", "--heads", remote, branch], cwd=cwd, throw_on_error=False)
    return bool(result.stdout.strip())
