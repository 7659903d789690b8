import shutil
from pathlib import Path

import git as gitpython
import pytest

import transmute.services.tmux as _tmux_mod
from transmute.config import TransmuteConfig


@pytest.fixture(autouse=True)
def _reset_tmux_server():
    """Reset the cached libtmux server between tests."""
    _tmux_mod._server = None
    yield
    _tmux_mod._server = None


@pytest.fixture()
def git_repo(tmp_path: Path) -> Path:
    """A real repository on `main` with one commit."""
    if shutil.which("git") is None:
        pytest.skip("git not installed")
    root = tmp_path / "repo"
    root.mkdir()
    repo = gitpython.Repo.init(root)
    with repo.config_writer() as cw:
        cw.set_value("user", "name", "Test User")
        cw.set_value("user", "email", "test@example.com")
        cw.set_value("commit", "gpgsign", "false")
    (root / "README.md").write_text("# test\n")
    repo.index.add(["README.md"])
    repo.index.commit("initial commit")
    repo.git.branch("-M", "main")
    return root.resolve()


@pytest.fixture()
def quiet_config() -> TransmuteConfig:
    """Config that never opens a terminal, runs hooks or calls an AI backend."""
    return TransmuteConfig(auto_open_terminal=False, auto_run_hooks=False, use_ai_branch_naming=False)
