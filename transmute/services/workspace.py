"""Create-or-resume orchestration for task workspaces.

One call ties the other services together: look up the task's session, name
a branch, create the worktree, persist the session, run hooks and open a
terminal. The call is idempotent per task id. Once the worktree exists, a
failure to persist the session removes it again; hooks and the terminal are
best effort and never undo a created workspace.

Nothing raises out of ``create_or_resume``: every failure becomes a
``WorkspaceResult`` with ``status="failed"`` and a readable message.
"""

import logging
import shlex
from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from transmute.config import TransmuteConfig, load_config
from transmute.errors import TransmuteError
from transmute.models import (
    HooksConfig,
    OpenSessionOptions,
    Session,
    TaskContext,
    WorkspaceRequest,
    WorkspaceResult,
)
from transmute.services.exec import get_git_root
from transmute.services.hooks import execute_after_create_hooks
from transmute.services.naming import NamingClient, generate_branch_name
from transmute.services.state import add_session, find_session_by_task
from transmute.services.terminal import TerminalAdapter, create_terminal_adapter
from transmute.services.worktree import create_worktree, get_worktree_path, remove_worktree

logger = logging.getLogger(__name__)


class WorkspaceState(Enum):
    NEW = "new"
    RESOLVING_SESSION = "resolving_session"
    NAMING = "naming"
    CREATING_WORKTREE = "creating_worktree"
    PERSISTING = "persisting"
    RUNNING_HOOKS = "running_hooks"
    OPENING_TERMINAL = "opening_terminal"
    DONE = "done"
    FAILED = "failed"
    ROLLED_BACK = "rolled_back"


def format_validation_error(error: ValidationError) -> str:
    parts = []
    for item in error.errors():
        location = ".".join(str(part) for part in item["loc"]) or "input"
        parts.append(f"{location}: {item['msg']}")
    return "; ".join(parts)


def _task_id_of(request: Any) -> str:
    if isinstance(request, WorkspaceRequest):
        return request.task_id
    if isinstance(request, dict):
        value = request.get("taskId", request.get("task_id"))
        return value if isinstance(value, str) else ""
    return ""


def build_terminal_commands(
    session: Session,
    is_new: bool,
    description: str | None = None,
    extra_commands: list[str] | None = None,
) -> list[str]:
    """``opencode --session <id>``, with the task as the first prompt for new sessions."""
    commands = []
    if session.opencode_session_id:
        command = f"opencode --session {shlex.quote(session.opencode_session_id)}"
        if is_new:
            context = f"Task {session.task_id}: {session.task_name}\n{description or ''}"
            command += f" --prompt {shlex.quote(context)}"
        commands.append(command)
    commands.extend(extra_commands or [])
    return commands


class WorkspaceOrchestrator:
    """Runs one create-or-resume flow at a time against a repository.

    Arguments left as None fall back to the repository configuration:
    ``open_terminal`` to ``autoOpenTerminal``, ``run_hooks`` to
    ``autoRunHooks``, ``hooks`` to ``hooks`` and ``terminal`` to the adapter
    for ``terminal``. The naming client is only consulted when
    ``useAiBranchNaming`` is on.
    """

    def __init__(
        self,
        repo_root: Path | str | None = None,
        *,
        config: TransmuteConfig | None = None,
        terminal: TerminalAdapter | None = None,
        naming_client: NamingClient | None = None,
        hooks: HooksConfig | None = None,
        open_terminal: bool | None = None,
        run_hooks: bool | None = None,
        terminal_commands: list[str] | None = None,
    ) -> None:
        self._repo_root = Path(repo_root) if repo_root else None
        self._config = config
        self._terminal = terminal
        self._naming_client = naming_client
        self._hooks = hooks
        self._open_terminal = open_terminal
        self._run_hooks = run_hooks
        self._terminal_commands = terminal_commands
        self.state = WorkspaceState.NEW

    def _transition(self, new_state: WorkspaceState, task_id: str) -> None:
        logger.debug(
            "Workspace state transition",
            extra={"task_id": task_id, "from": self.state.value, "to": new_state.value},
        )
        self.state = new_state

    def _fail(self, task_id: str, message: str, **fields: Any) -> WorkspaceResult:
        self._transition(WorkspaceState.FAILED, task_id)
        logger.warning("Workspace creation failed", extra={"task_id": task_id, "error": message})
        return WorkspaceResult(status="failed", task_id=task_id, message=message, **fields)

    def _root(self) -> Path:
        if self._repo_root is None:
            self._repo_root = get_git_root()
        return self._repo_root

    def _settings(self, root: Path) -> TransmuteConfig:
        if self._config is None:
            self._config = load_config(root)
        return self._config

    def create_or_resume(
        self,
        request: WorkspaceRequest | dict,
        opencode_session_id: str | None = None,
    ) -> WorkspaceResult:
        self.state = WorkspaceState.NEW
        task_id = _task_id_of(request)
        try:
            if not isinstance(request, WorkspaceRequest):
                request = WorkspaceRequest.model_validate(request)
        except ValidationError as e:
            return self._fail(task_id, f"Invalid input: {format_validation_error(e)}")

        try:
            return self._create_or_resume(request, opencode_session_id)
        except Exception as e:
            return self._fail(request.task_id, str(e))

    def _create_or_resume(self, request: WorkspaceRequest, opencode_session_id: str | None) -> WorkspaceResult:
        task_id = request.task_id
        self._transition(WorkspaceState.RESOLVING_SESSION, task_id)
        root = self._root()
        config = self._settings(root)

        existing = find_session_by_task(root, task_id)
        if existing is not None:
            if self._should_open_terminal(config):
                self._transition(WorkspaceState.OPENING_TERMINAL, task_id)
                self._open_terminal_for(existing, config, is_new=False)
            self._transition(WorkspaceState.DONE, task_id)
            return WorkspaceResult(
                status="existing",
                task_id=existing.task_id,
                task_name=existing.task_name,
                branch=existing.branch,
                worktree_path=existing.worktree_path,
                opencode_session_id=existing.opencode_session_id,
            )

        self._transition(WorkspaceState.NAMING, task_id)
        context = TaskContext(
            id=task_id,
            title=request.title,
            description=request.description,
            priority=request.priority,
            type=request.type,
        )
        hint = None
        if request.slug:
            hint = {"type": request.type or config.default_branch_type, "slug": request.slug}
        naming = generate_branch_name(
            context,
            hint=hint,
            client=self._naming_client if config.use_ai_branch_naming else None,
            max_length=config.max_branch_slug_length,
            default_type=config.default_branch_type,
        )

        self._transition(WorkspaceState.CREATING_WORKTREE, task_id)
        try:
            worktree = create_worktree(
                naming.branch,
                base_branch=request.base_branch or config.default_base_branch,
                target_dir=get_worktree_path(root, naming.branch, config.worktrees_dir),
                cwd=root,
            )
        except (TransmuteError, ValueError) as e:
            return self._fail(task_id, str(e), branch=naming.branch)

        self._transition(WorkspaceState.PERSISTING, task_id)
        try:
            if not opencode_session_id:
                raise ValueError(
                    "opencode_session_id is required to create a new session; "
                    "it links the worktree to its conversation for later resumes"
                )
            session = Session(
                task_id=task_id,
                task_name=request.title,
                branch=naming.branch,
                worktree_path=worktree.path,
                opencode_session_id=opencode_session_id,
            )
            add_session(root, session)
        except Exception as e:
            self._rollback(root, worktree.path, task_id)
            return self._fail(task_id, str(e), branch=naming.branch)

        if self._should_run_hooks(config):
            self._transition(WorkspaceState.RUNNING_HOOKS, task_id)
            self._run_after_create_hooks(config, worktree.path, task_id)

        if self._should_open_terminal(config):
            self._transition(WorkspaceState.OPENING_TERMINAL, task_id)
            self._open_terminal_for(session, config, is_new=True, description=request.description)

        self._transition(WorkspaceState.DONE, task_id)
        return WorkspaceResult(
            status="created",
            task_id=task_id,
            task_name=request.title,
            branch=naming.branch,
            worktree_path=worktree.path,
            opencode_session_id=opencode_session_id,
        )

    def resume(self, task_id: str) -> Session | None:
        """Stored session for ``task_id``, opening a terminal for it when configured."""
        root = self._root()
        session = find_session_by_task(root, task_id)
        if session is not None and self._should_open_terminal(self._settings(root)):
            self._open_terminal_for(session, self._settings(root), is_new=False)
        return session

    def _rollback(self, root: Path, worktree_path: str, task_id: str) -> None:
        logger.warning("Rolling back worktree", extra={"task_id": task_id, "path": worktree_path})
        try:
            remove_worktree(worktree_path, force=True, cwd=root)
        except Exception as e:
            logger.error("Failed to roll back worktree", extra={"path": worktree_path, "error": str(e)})
            return
        self._transition(WorkspaceState.ROLLED_BACK, task_id)

    def _should_run_hooks(self, config: TransmuteConfig) -> bool:
        return config.auto_run_hooks if self._run_hooks is None else self._run_hooks

    def _should_open_terminal(self, config: TransmuteConfig) -> bool:
        return config.auto_open_terminal if self._open_terminal is None else self._open_terminal

    def _run_after_create_hooks(self, config: TransmuteConfig, cwd: str, task_id: str) -> None:
        hooks = self._hooks or config.hooks
        try:
            results = execute_after_create_hooks(hooks, cwd, stop_on_error=False)
        except Exception as e:
            logger.warning("After-create hooks could not run", extra={"task_id": task_id, "error": str(e)})
            return
        failed = [r.command for r in results if not r.success]
        if failed:
            logger.warning("After-create hooks failed", extra={"task_id": task_id, "commands": failed})

    def _open_terminal_for(
        self,
        session: Session,
        config: TransmuteConfig,
        is_new: bool,
        description: str | None = None,
    ) -> None:
        adapter = self._terminal or create_terminal_adapter(config.terminal)
        if adapter is None:
            return

        commands = build_terminal_commands(session, is_new, description, self._terminal_commands)
        options = OpenSessionOptions(
            cwd=session.worktree_path,
            title=f"{session.task_name} ({session.branch})",
            commands=commands or None,
        )
        try:
            if not adapter.is_available():
                logger.warning("Terminal not available, skipping", extra={"terminal": adapter.name})
                return
            adapter.open_session(options)
        except TransmuteError as e:
            logger.warning(
                "Failed to open terminal session",
                extra={"terminal": adapter.name, "code": e.code.value, "error": str(e)},
            )
        except Exception as e:
            logger.warning("Failed to open terminal session", extra={"terminal": adapter.name, "error": str(e)})


def create_workspace(
    payload: WorkspaceRequest | dict,
    repo_root: Path | str | None = None,
    opencode_session_id: str | None = None,
    **options: Any,
) -> WorkspaceResult:
    """Create or resume the workspace for a task. Never raises."""
    orchestrator = WorkspaceOrchestrator(repo_root, **options)
    return orchestrator.create_or_resume(payload, opencode_session_id)


def resume_workspace(
    task_id: str,
    repo_root: Path | str | None = None,
    **options: Any,
) -> Session | None:
    return WorkspaceOrchestrator(repo_root, **options).resume(task_id)
