"""Configuration loading.

Reads `.opencode/transmute.config.json` or `transmute.config.json` from the
repository root (first match wins) and validates the file as a whole. A file
with unknown keys, mistyped values or broken JSON is rejected in favor of the
built-in defaults; there is no partial merge.
"""

import json
import logging
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from transmute.constants import CONFIG_FILE_NAME, STATE_DIR_NAME
from transmute.models import BranchType, HooksConfig
from transmute.services.exec import get_git_root
from transmute.services.hooks import DEFAULT_HOOKS

logger = logging.getLogger(__name__)

TerminalType = Literal["wezterm", "tmux", "kitty", "none"]


class TransmuteConfig(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
        strict=True,
    )

    worktrees_dir: str = "./worktrees"
    default_branch_type: BranchType = "feat"
    max_branch_slug_length: int = Field(default=40, gt=0)
    hooks: HooksConfig = Field(default_factory=lambda: DEFAULT_HOOKS.model_copy(deep=True))
    terminal: TerminalType = "wezterm"
    auto_open_terminal: bool = True
    auto_run_hooks: bool = True
    default_base_branch: str = "main"
    use_ai_branch_naming: bool = True


class ResolvedConfig(BaseModel):
    """Settings together with the absolute paths they resolve to."""

    repo_root: Path
    worktrees_dir: Path
    settings: TransmuteConfig


def config_candidates(repo_root: Path) -> list[Path]:
    return [
        repo_root / STATE_DIR_NAME / CONFIG_FILE_NAME,
        repo_root / CONFIG_FILE_NAME,
    ]


def find_config_file(repo_root: Path | str) -> Path | None:
    for candidate in config_candidates(Path(repo_root)):
        if candidate.is_file():
            return candidate
    return None


def load_config_from_file(path: Path) -> TransmuteConfig | None:
    """Validate a config file. Returns None (and warns) if it is unusable."""
    try:
        return TransmuteConfig.model_validate_json(path.read_text())
    except (ValueError, OSError) as e:
        logger.warning("Invalid configuration, using defaults", extra={"path": str(path), "error": str(e)})
        return None


def load_config(repo_root: Path | str | None = None) -> TransmuteConfig:
    """Load configuration for a repository, falling back to defaults.

    Args:
        repo_root: Repository root. If None, auto-detects from CWD.
    """
    root = Path(repo_root) if repo_root else get_git_root()
    config_file = find_config_file(root)
    if config_file is None:
        return TransmuteConfig()
    return load_config_from_file(config_file) or TransmuteConfig()


def resolve_worktrees_dir(repo_root: Path | str, config: TransmuteConfig) -> Path:
    worktrees_dir = Path(config.worktrees_dir)
    if worktrees_dir.is_absolute():
        return worktrees_dir
    return (Path(repo_root) / worktrees_dir).resolve()


def resolve_config(repo_root: Path | str | None = None) -> ResolvedConfig:
    root = Path(repo_root).resolve() if repo_root else get_git_root()
    settings = load_config(root)
    return ResolvedConfig(
        repo_root=root,
        worktrees_dir=resolve_worktrees_dir(root, settings),
        settings=settings,
    )


def save_config(repo_root: Path | str, config: TransmuteConfig) -> Path:
    """Write `.opencode/transmute.config.json`. Default values are not written."""
    path = Path(repo_root) / STATE_DIR_NAME / CONFIG_FILE_NAME
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(config.model_dump_json(by_alias=True, exclude_defaults=True, indent=2) + "\n")
    return path


def set_config_value(config: TransmuteConfig, key: str, raw_value: str) -> TransmuteConfig:
    """Return a copy of ``config`` with ``key`` (camelCase, dotted for hooks) set.

    ``raw_value`` is read as JSON when possible so that `true`, `40` and
    `["a", "b"]` keep their types; anything else is taken as a string.
    Raises ValidationError if the result is not a valid configuration.
    """
    try:
        value: Any = json.loads(raw_value)
    except json.JSONDecodeError:
        value = raw_value

    data = config.model_dump(by_alias=True)
    section, _, field = key.partition(".")
    if field:
        if not isinstance(data.get(section), dict):
            raise KeyError(key)
        data[section][field] = value
    else:
        data[section] = value
    return TransmuteConfig.model_validate_json(json.dumps(data))
