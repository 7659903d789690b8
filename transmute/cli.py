import json
import logging
from pathlib import Path

import click
from pydantic import ValidationError

from transmute.config import load_config, save_config, set_config_value
from transmute.errors import TransmuteError
from transmute.services.exec import get_git_root
from transmute.services.inventory import clean_workspaces, list_sessions
from transmute.services.naming import OpenCodeClient
from transmute.services.workspace import create_workspace, resume_workspace


def _echo_json(data: object) -> None:
    click.echo(json.dumps(data, indent=2))


def _fail(message: str) -> None:
    click.echo(message, err=True)
    raise SystemExit(1)


def _repo_root(ctx: click.Context) -> Path:
    repo = ctx.obj.get("repo")
    try:
        return get_git_root(repo)
    except TransmuteError as e:
        _fail(str(e))


@click.group()
@click.option("--repo", type=click.Path(file_okay=False, path_type=Path), default=None, help="Repository (defaults to CWD)")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx: click.Context, repo: Path | None, verbose: bool) -> None:
    """Transmute: one git worktree and terminal per task."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    ctx.ensure_object(dict)
    ctx.obj["repo"] = repo


@cli.command()
@click.argument("task_id")
@click.argument("title")
@click.option("--description", "-d", default=None, help="Task description")
@click.option("--priority", default=None, help="Task priority")
@click.option("--type", "-t", "branch_type", default=None, help="Branch type: feat, fix, refactor, docs, chore, test")
@click.option("--slug", "-s", default=None, help="Pre-generated branch slug")
@click.option("--base-branch", "-b", default=None, help="Base branch (default from config)")
@click.option("--session-id", envvar="OPENCODE_SESSION_ID", default=None, help="OpenCode session to link")
@click.option("--opencode-url", envvar="OPENCODE_SERVER_URL", default=None, help="OpenCode server for AI branch naming")
@click.option("--no-terminal", is_flag=True, help="Do not open a terminal")
@click.option("--no-hooks", is_flag=True, help="Do not run afterCreate hooks")
@click.pass_context
def start(
    ctx: click.Context,
    task_id: str,
    title: str,
    description: str | None,
    priority: str | None,
    branch_type: str | None,
    slug: str | None,
    base_branch: str | None,
    session_id: str | None,
    opencode_url: str | None,
    no_terminal: bool,
    no_hooks: bool,
) -> None:
    """Create the workspace for a task, or return the existing one."""
    root = _repo_root(ctx)
    payload = {
        "taskId": task_id,
        "title": title,
        "description": description,
        "priority": priority,
        "type": branch_type,
        "slug": slug,
        "baseBranch": base_branch,
    }
    client = OpenCodeClient(opencode_url, directory=str(root)) if opencode_url else None
    try:
        result = create_workspace(
            payload,
            root,
            opencode_session_id=session_id,
            naming_client=client,
            open_terminal=False if no_terminal else None,
            run_hooks=False if no_hooks else None,
        )
    finally:
        if client is not None:
            client.close()

    _echo_json(result.to_payload())
    if result.status == "failed":
        raise SystemExit(1)


@cli.command()
@click.argument("task_id")
@click.option("--no-terminal", is_flag=True, help="Do not open a terminal")
@click.pass_context
def resume(ctx: click.Context, task_id: str, no_terminal: bool) -> None:
    """Show a task's stored session and reopen its terminal."""
    root = _repo_root(ctx)
    try:
        session = resume_workspace(task_id, root, open_terminal=False if no_terminal else None)
    except (TransmuteError, ValueError) as e:
        _fail(str(e))
    if session is None:
        _fail(f"No session for task '{task_id}'.")
    _echo_json(session.model_dump(by_alias=True, exclude_none=True))


@cli.command("list")
@click.option(
    "--status",
    type=click.Choice(["all", "active", "missing", "orphaned"]),
    default="all",
    show_default=True,
)
@click.pass_context
def list_cmd(ctx: click.Context, status: str) -> None:
    """List sessions and unmanaged worktrees."""
    root = _repo_root(ctx)
    try:
        sessions = list_sessions(root, status)
    except (TransmuteError, ValueError) as e:
        _fail(str(e))
    _echo_json({"sessions": [s.model_dump(by_alias=True, exclude_none=True) for s in sessions]})


@cli.command()
@click.option("--max-age-days", type=click.IntRange(min=1), default=None, help="Also clean sessions older than this")
@click.option("--dry-run", is_flag=True, help="Only report what would be removed")
@click.option("--force", "-f", is_flag=True, help="Remove dirty worktrees and orphans outside the worktrees dir")
@click.pass_context
def clean(ctx: click.Context, max_age_days: int | None, dry_run: bool, force: bool) -> None:
    """Remove orphaned and stale worktrees."""
    root = _repo_root(ctx)
    try:
        report = clean_workspaces(root, max_age_days=max_age_days, dry_run=dry_run, force=force)
    except (TransmuteError, ValueError) as e:
        _fail(str(e))
    _echo_json(report.model_dump(by_alias=True))
    if report.errors:
        raise SystemExit(1)


@cli.command()
@click.argument("key", required=False)
@click.argument("value", required=False)
@click.pass_context
def config(ctx: click.Context, key: str | None, value: str | None) -> None:
    """View or edit settings (.opencode/transmute.config.json).

    With no args: show the effective config.
    With KEY: show one value (e.g. `hooks.afterCreate`).
    With KEY VALUE: set it (e.g. `transmute config terminal tmux`).
    """
    root = _repo_root(ctx)
    current = load_config(root)
    data = current.model_dump(by_alias=True, mode="json")

    if key is None:
        _echo_json(data)
        return

    section, _, field = key.partition(".")
    if section not in data or (field and not isinstance(data[section], dict)):
        _fail(f"Unknown config key: {key}")
    if field and field not in data[section]:
        _fail(f"Unknown config key: {key}")

    if value is None:
        _echo_json(data[section][field] if field else data[section])
        return

    try:
        updated = set_config_value(current, key, value)
    except (ValidationError, KeyError) as e:
        _fail(f"Invalid value for {key}: {e}")
    path = save_config(root, updated)
    click.echo(f"Set {key} = {value}")
    click.echo(f"Saved to {path}")
