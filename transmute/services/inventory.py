import logging
from datetime import datetime, timezone
from pathlib import Path

from transmute.config import TransmuteConfig, load_config, resolve_worktrees_dir
from transmute.errors import TransmuteError
from transmute.models import CleanReport, Session, SessionInfo, Worktree
from transmute.services.hooks import execute_before_destroy_hooks
from transmute.services.state import load_state, remove_session
from transmute.services.worktree import list_worktrees, prune_worktrees, remove_worktree

logger = logging.getLogger(__name__)


def _same_path(a: str, b: str) -> bool:
    return Path(a).resolve() == Path(b).resolve()


def _session_for(worktree: Worktree, sessions: list[Session]) -> Session | None:
    for session in sessions:
        if _same_path(session.worktree_path, worktree.path):
            return session
    return None


def list_sessions(repo_root: Path | str, status: str = "all") -> list[SessionInfo]:
    """Persisted sessions joined with the live worktree list.

    ``active``: session with a worktree. ``missing``: session whose worktree
    is gone. ``orphaned``: non-main worktree no session points to.
    """
    sessions = load_state(repo_root).sessions
    worktrees = list_worktrees(repo_root)

    results: list[SessionInfo] = []
    for session in sessions:
        found = any(_same_path(wt.path, session.worktree_path) for wt in worktrees)
        results.append(
            SessionInfo(
                task_id=session.task_id,
                task_name=session.task_name,
                branch=session.branch,
                worktree_path=session.worktree_path,
                status="active" if found else "missing",
                opencode_session_id=session.opencode_session_id,
                created_at=session.created_at,
            )
        )

    for worktree in worktrees:
        if worktree.is_main or _session_for(worktree, sessions) is not None:
            continue
        results.append(SessionInfo(branch=worktree.branch, worktree_path=worktree.path, status="orphaned"))

    if status == "all":
        return results
    return [info for info in results if info.status == status]


def _age_days(created_at: str, now: datetime) -> float:
    created = datetime.fromisoformat(created_at)
    if created.tzinfo is None:
        created = created.replace(tzinfo=timezone.utc)
    return (now - created).total_seconds() / 86400


def clean_workspaces(
    repo_root: Path | str,
    max_age_days: int | None = None,
    dry_run: bool = False,
    force: bool = False,
    config: TransmuteConfig | None = None,
) -> CleanReport:
    """Remove orphaned worktrees and, with ``max_age_days``, stale sessions.

    Orphans are only removed from inside the configured worktrees directory
    unless ``force`` is set. Failures, per worktree or while reading the
    session store and worktree list, are collected in the report instead of
    raised.
    """
    root = Path(repo_root)
    config = config or load_config(root)
    worktrees_dir = resolve_worktrees_dir(root, config).resolve()
    report = CleanReport()
    now = datetime.now(timezone.utc)

    try:
        sessions = load_state(root).sessions
        worktrees = list_worktrees(root)
    except (TransmuteError, OSError, ValueError) as e:
        logger.warning("Could not read workspaces", extra={"error": str(e)})
        report.errors.append(f"General failure: {e}")
        return report

    for worktree in worktrees:
        if worktree.is_main:
            continue

        session = _session_for(worktree, sessions)
        if session is None:
            if not (force or Path(worktree.path).resolve().is_relative_to(worktrees_dir)):
                continue
            reason = "Orphaned worktree"
        elif max_age_days is not None and _age_days(session.created_at, now) > max_age_days:
            reason = f"Older than {max_age_days} days"
        else:
            continue

        if dry_run:
            report.cleaned_paths.append(f"{worktree.path} ({reason}) [DRY RUN]")
            report.cleaned_count += 1
            continue

        try:
            if config.auto_run_hooks and Path(worktree.path).is_dir():
                execute_before_destroy_hooks(config.hooks, worktree.path, stop_on_error=False)
            remove_worktree(worktree.path, force=force, cwd=root)
            if session is not None:
                remove_session(root, session.task_id)
        except (TransmuteError, OSError, ValueError) as e:
            logger.warning("Failed to clean worktree", extra={"path": worktree.path, "error": str(e)})
            report.errors.append(f"Failed to remove {worktree.path}: {e}")
            continue

        logger.info("Cleaned worktree", extra={"path": worktree.path, "reason": reason})
        report.cleaned_paths.append(worktree.path)
        report.cleaned_count += 1

    if not dry_run:
        try:
            prune_worktrees(root)
        except TransmuteError as e:
            logger.warning("Failed to prune worktrees", extra={"error": str(e)})
            report.errors.append(f"Failed to prune worktrees: {e}")
    return report
