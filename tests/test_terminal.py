import logging

import pytest

from transmute.errors import ErrorCode, TerminalError, WorktreeError
from transmute.models import OpenSessionOptions
from transmute.services.exec import ExecResult
from transmute.services.terminal import (
    WezTermAdapter,
    check_terminal_availability,
    create_terminal_adapter,
    get_first_available_terminal,
)
from transmute.services.tmux import TmuxAdapter


class FakeExec:
    """Stands in for exec_command; responses are keyed by the first argument."""

    def __init__(self, responses=None, raise_on=None):
        self.responses = responses or {}
        self.raise_on = raise_on or {}
        self.calls = []

    def __call__(self, command, args, cwd=None, throw_on_error=True):
        self.calls.append((command, args))
        key = args[0] if args else ""
        if key in self.raise_on:
            raise self.raise_on[key]
        return self.responses.get(key, ExecResult(stdout="", stderr="", exit_code=0))


VERSION_OK = ExecResult(stdout="wezterm 20240203-110809-5046fc22\n", stderr="", exit_code=0)


class TestWezTermAvailability:
    def test_available(self):
        assert WezTermAdapter(FakeExec({"--version": VERSION_OK})).is_available()

    def test_not_available_on_nonzero(self):
        fake = FakeExec({"--version": ExecResult(stdout="", stderr="", exit_code=127)})
        assert not WezTermAdapter(fake).is_available()

    def test_not_available_when_binary_missing(self):
        fake = FakeExec(raise_on={"--version": WorktreeError.exec_failed("wezterm --version", "not found", -1)})
        assert not WezTermAdapter(fake).is_available()

    def test_version(self):
        assert WezTermAdapter(FakeExec({"--version": VERSION_OK})).get_version() == "20240203-110809-5046fc22"

    def test_version_none_on_failure(self):
        fake = FakeExec({"--version": ExecResult(stdout="", stderr="", exit_code=1)})
        assert WezTermAdapter(fake).get_version() is None


class TestWezTermOpenSession:
    def test_spawn_arguments(self):
        fake = FakeExec({"--version": VERSION_OK})
        options = OpenSessionOptions(cwd="/repo/wt", title="Task (feat/x)", commands=["pnpm install", "opencode"])

        WezTermAdapter(fake).open_session(options)

        assert fake.calls[-1] == (
            "wezterm",
            ["cli", "spawn", "--cwd", "/repo/wt", "--pane-title", "Task (feat/x)",
             "--", "sh", "-c", "pnpm install && opencode"],
        )

    def test_minimal_arguments(self):
        fake = FakeExec({"--version": VERSION_OK})
        WezTermAdapter(fake).open_session(OpenSessionOptions(cwd="/repo/wt"))
        assert fake.calls[-1] == ("wezterm", ["cli", "spawn", "--cwd", "/repo/wt"])

    def test_env_prefix(self):
        fake = FakeExec({"--version": VERSION_OK})
        WezTermAdapter(fake).open_session(OpenSessionOptions(cwd="/w", commands=["run"], env={"A": "1"}))
        assert fake.calls[-1][1] == ["cli", "spawn", "--cwd", "/w", "--", "env", "A=1", "sh", "-c", "run"]

    def test_not_available(self):
        fake = FakeExec({"--version": ExecResult(stdout="", stderr="", exit_code=1)})
        with pytest.raises(TerminalError) as exc_info:
            WezTermAdapter(fake).open_session(OpenSessionOptions(cwd="/w"))
        assert exc_info.value.code == ErrorCode.NOT_AVAILABLE
        assert len(fake.calls) == 1

    def test_missing_directory_is_invalid_path(self):
        fake = FakeExec({
            "--version": VERSION_OK,
            "cli": ExecResult(stdout="", stderr="chdir: No such file or directory", exit_code=1),
        })
        with pytest.raises(TerminalError) as exc_info:
            WezTermAdapter(fake).open_session(OpenSessionOptions(cwd="/gone"))
        assert exc_info.value.code == ErrorCode.INVALID_PATH
        assert exc_info.value.path == "/gone"

    def test_other_failure_is_spawn_failed(self):
        fake = FakeExec({
            "--version": VERSION_OK,
            "cli": ExecResult(stdout="", stderr="mux server unreachable", exit_code=1),
        })
        with pytest.raises(TerminalError) as exc_info:
            WezTermAdapter(fake).open_session(OpenSessionOptions(cwd="/w"))
        assert exc_info.value.code == ErrorCode.SPAWN_FAILED
        assert exc_info.value.reason == "mux server unreachable"

    def test_unexpected_error_is_spawn_failed(self):
        fake = FakeExec(
            {"--version": VERSION_OK},
            raise_on={"cli": WorktreeError.exec_failed("wezterm cli spawn", "boom", -1)},
        )
        with pytest.raises(TerminalError) as exc_info:
            WezTermAdapter(fake).open_session(OpenSessionOptions(cwd="/w"))
        assert exc_info.value.code == ErrorCode.SPAWN_FAILED

    @pytest.mark.parametrize("error", [ValueError("embedded null byte"), RuntimeError("boom")])
    def test_any_spawn_exception_is_spawn_failed(self, error):
        fake = FakeExec({"--version": VERSION_OK}, raise_on={"cli": error})
        with pytest.raises(TerminalError) as exc_info:
            WezTermAdapter(fake).open_session(OpenSessionOptions(cwd="/w"))
        assert exc_info.value.code == ErrorCode.SPAWN_FAILED
        assert str(error) in exc_info.value.reason


class StubAdapter:
    def __init__(self, name, available):
        self.name = name
        self.available = available

    def is_available(self):
        return self.available

    def open_session(self, options):
        pass


class TestAdapterSelection:
    def test_first_available(self):
        adapters = [StubAdapter("a", False), StubAdapter("b", True), StubAdapter("c", True)]
        assert get_first_available_terminal(adapters).name == "b"

    def test_none_available(self):
        assert get_first_available_terminal([StubAdapter("a", False)]) is None

    def test_availability_report(self):
        report = check_terminal_availability([
            StubAdapter("a", False),
            WezTermAdapter(FakeExec({"--version": VERSION_OK})),
        ])
        assert [(r.name, r.available) for r in report] == [("a", False), ("wezterm", True)]
        assert report[1].version == "20240203-110809-5046fc22"

    def test_create_adapter(self):
        assert isinstance(create_terminal_adapter("wezterm"), WezTermAdapter)
        assert isinstance(create_terminal_adapter("tmux"), TmuxAdapter)
        assert create_terminal_adapter("none") is None

    def test_unsupported_terminal_warns(self, caplog):
        with caplog.at_level(logging.WARNING):
            assert create_terminal_adapter("kitty") is None
        assert "Unsupported terminal" in caplog.text
