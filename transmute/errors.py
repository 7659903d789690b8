"""Error taxonomy shared by every layer.

Errors are identified by their ``code``, not their class. ``WorktreeError``
and ``TerminalError`` only group the constructors for each domain, so callers
should branch on ``err.code`` rather than ``isinstance``.
"""

from enum import Enum


class ErrorCode(str, Enum):
    BRANCH_EXISTS = "BRANCH_EXISTS"
    DIR_EXISTS = "DIR_EXISTS"
    NO_GIT_REPO = "NO_GIT_REPO"
    BASE_NOT_FOUND = "BASE_NOT_FOUND"
    WORKTREE_NOT_FOUND = "WORKTREE_NOT_FOUND"
    EXEC_FAILED = "EXEC_FAILED"

    NOT_AVAILABLE = "NOT_AVAILABLE"
    SPAWN_FAILED = "SPAWN_FAILED"
    INVALID_PATH = "INVALID_PATH"


class TransmuteError(Exception):
    """Base error carrying a stable code plus the context needed to act on it."""

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        *,
        branch: str | None = None,
        path: str | None = None,
        command: str | None = None,
        stderr: str | None = None,
        exit_code: int | None = None,
        terminal: str | None = None,
        reason: str | None = None,
    ) -> None:
        self.code = code
        self.branch = branch
        self.path = path
        self.command = command
        self.stderr = stderr
        self.exit_code = exit_code
        self.terminal = terminal
        self.reason = reason
        super().__init__(message)


class WorktreeError(TransmuteError):
    @classmethod
    def branch_exists(cls, branch: str) -> "WorktreeError":
        return cls(
            ErrorCode.BRANCH_EXISTS,
            f"Branch '{branch}' already exists. Use a different branch name or checkout the existing branch.",
            branch=branch,
        )

    @classmethod
    def dir_exists(cls, path: str) -> "WorktreeError":
        return cls(
            ErrorCode.DIR_EXISTS,
            f"Directory '{path}' already exists. Choose a different path or remove the existing directory.",
            path=path,
        )

    @classmethod
    def no_git_repo(cls, path: str) -> "WorktreeError":
        return cls(
            ErrorCode.NO_GIT_REPO,
            f"Not a git repository: '{path}'. Initialize git or navigate to a git repository.",
            path=path,
        )

    @classmethod
    def base_not_found(cls, branch: str) -> "WorktreeError":
        return cls(
            ErrorCode.BASE_NOT_FOUND,
            f"Base branch '{branch}' not found. Verify the branch name or fetch from remote.",
            branch=branch,
        )

    @classmethod
    def worktree_not_found(cls, branch: str) -> "WorktreeError":
        return cls(
            ErrorCode.WORKTREE_NOT_FOUND,
            f"Worktree for branch '{branch}' not found.",
            branch=branch,
        )

    @classmethod
    def exec_failed(cls, command: str, stderr: str, exit_code: int) -> "WorktreeError":
        return cls(
            ErrorCode.EXEC_FAILED,
            f"Command failed: {command}\nExit code: {exit_code}\n{stderr}",
            command=command,
            stderr=stderr,
            exit_code=exit_code,
        )


class TerminalError(TransmuteError):
    @classmethod
    def not_available(cls, terminal: str) -> "TerminalError":
        return cls(
            ErrorCode.NOT_AVAILABLE,
            f"Terminal '{terminal}' is not available. Please install it or check your PATH.",
            terminal=terminal,
        )

    @classmethod
    def spawn_failed(cls, terminal: str, reason: str) -> "TerminalError":
        return cls(
            ErrorCode.SPAWN_FAILED,
            f"Failed to spawn terminal session in '{terminal}': {reason}",
            terminal=terminal,
            reason=reason,
        )

    @classmethod
    def invalid_path(cls, path: str) -> "TerminalError":
        return cls(
            ErrorCode.INVALID_PATH,
            f"Invalid path: '{path}'. The directory does not exist or is not accessible.",
            path=path,
        )


class StateFileError(ValueError):
    """Raised when the session state file exists but is not valid JSON."""

    def __init__(self, path: str) -> None:
        self.path = path
        super().__init__(f"Invalid JSON in state file: {path}")
