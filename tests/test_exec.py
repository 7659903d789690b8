from unittest.mock import MagicMock

import git as gitpython
import pytest

from transmute.errors import ErrorCode, TransmuteError
from transmute.services.exec import (
    branch_exists,
    exec_command,
    get_git_root,
    git_exec,
    is_git_repository,
    remote_branch_exists,
)


class TestExecCommand:
    def test_captures_output(self):
        result = exec_command("sh", ["-c", "printf hello"])
        assert result.stdout == "hello"
        assert result.exit_code == 0
        assert result.ok

    def test_nonzero_exit_raises_exec_failed(self):
        with pytest.raises(TransmuteError) as exc_info:
            exec_command("sh", ["-c", "echo boom >&2; exit 3"])
        err = exc_info.value
        assert err.code == ErrorCode.EXEC_FAILED
        assert err.exit_code == 3
        assert "boom" in err.stderr
        assert err.command.startswith("sh -c")
        assert "Exit code: 3" in str(err)

    def test_stdout_used_when_stderr_empty(self):
        with pytest.raises(TransmuteError) as exc_info:
            exec_command("sh", ["-c", "echo only-stdout; exit 1"])
        assert "only-stdout" in exc_info.value.stderr

    def test_no_throw_returns_result(self):
        result = exec_command("sh", ["-c", "exit 4"], throw_on_error=False)
        assert result.exit_code == 4
        assert not result.ok

    def test_missing_binary_is_exec_failed_with_minus_one(self):
        with pytest.raises(TransmuteError) as exc_info:
            exec_command("definitely-not-a-real-binary-xyz", [], throw_on_error=False)
        assert exc_info.value.code == ErrorCode.EXEC_FAILED
        assert exc_info.value.exit_code == -1

    def test_runs_in_cwd(self, tmp_path):
        result = exec_command("sh", ["-c", "pwd -P"], cwd=tmp_path)
        assert result.stdout.strip() == str(tmp_path.resolve())

    def test_unpassable_argument_is_exec_failed(self):
        with pytest.raises(TransmuteError) as exc_info:
            exec_command("echo", ["a\x00b"])
        assert exc_info.value.code == ErrorCode.EXEC_FAILED
        assert exc_info.value.exit_code == -1


class TestGetGitRoot:
    def test_not_a_repo(self, monkeypatch, tmp_path):
        monkeypatch.setattr(
            gitpython, "Repo",
            MagicMock(side_effect=gitpython.InvalidGitRepositoryError(str(tmp_path))),
        )
        with pytest.raises(TransmuteError) as exc_info:
            get_git_root(tmp_path)
        assert exc_info.value.code == ErrorCode.NO_GIT_REPO
        assert str(tmp_path) in str(exc_info.value)

    def test_bare_repo_has_no_root(self, monkeypatch, tmp_path):
        mock_repo = MagicMock()
        mock_repo.working_tree_dir = None
        monkeypatch.setattr(gitpython, "Repo", lambda *a, **kw: mock_repo)
        with pytest.raises(TransmuteError) as exc_info:
            get_git_root(tmp_path)
        assert exc_info.value.code == ErrorCode.NO_GIT_REPO

    def test_finds_root_from_subdirectory(self, git_repo):
        sub = git_repo / "a" / "b"
        sub.mkdir(parents=True)
        assert get_git_root(sub) == git_repo


class TestGitExec:
    def test_runs_git(self, git_repo):
        result = git_exec(["rev-parse", "--abbrev-ref", "HEAD"], cwd=git_repo)
        assert result.stdout.strip() == "main"

    def test_failure_raises_exec_failed(self, git_repo):
        with pytest.raises(TransmuteError) as exc_info:
            git_exec(["rev-parse", "--verify", "no-such-ref"], cwd=git_repo)
        assert exc_info.value.code == ErrorCode.EXEC_FAILED
        assert exc_info.value.command.startswith("git rev-parse")

    def test_no_throw(self, git_repo):
        result = git_exec(["rev-parse", "--verify", "no-such-ref"], cwd=git_repo, throw_on_error=False)
        assert not result.ok

    def test_branch_exists(self, git_repo):
        assert branch_exists("main", git_repo)
        assert not branch_exists("feat/nope", git_repo)

    def test_is_git_repository(self, git_repo):
        assert is_git_repository(git_repo)

    def test_remote_branch_exists(self, git_repo):
        assert remote_branch_exists("main", remote=str(git_repo), cwd=git_repo)
        assert not remote_branch_exists("feat/nope", remote=str(git_repo), cwd=git_repo)
        assert not remote_branch_exists("main", cwd=git_repo)
