import pytest

from transmute.models import HooksConfig
from transmute.services.hooks import (
    DEFAULT_HOOKS,
    execute_after_create_hooks,
    execute_before_destroy_hooks,
    execute_hooks,
)


class TestExecuteHooks:
    def test_stop_on_error_stops_after_first_failure(self, tmp_path):
        results = execute_hooks(["exit 1", "echo x"], tmp_path, stop_on_error=True)
        assert len(results) == 1
        assert not results[0].success
        assert results[0].exit_code == 1

    def test_continue_on_error_runs_everything(self, tmp_path):
        results = execute_hooks(["exit 1", "echo x"], tmp_path, stop_on_error=False)
        assert len(results) == 2
        assert results[1].success
        assert results[1].stdout.strip() == "x"

    def test_records_command_output_and_duration(self, tmp_path):
        [result] = execute_hooks(["echo out; echo err >&2"], tmp_path)
        assert result.command == "echo out; echo err >&2"
        assert result.stdout == "out\n"
        assert result.stderr == "err\n"
        assert result.duration >= 0

    def test_runs_in_cwd(self, tmp_path):
        execute_hooks(["touch marker"], tmp_path)
        assert (tmp_path / "marker").exists()

    def test_env_is_overlaid(self, tmp_path, monkeypatch):
        monkeypatch.setenv("FROM_PARENT", "parent")
        [result] = execute_hooks(['echo "$FROM_PARENT-$EXTRA"'], tmp_path, env={"EXTRA": "extra"})
        assert result.stdout.strip() == "parent-extra"

    def test_missing_cwd_raises(self, tmp_path):
        with pytest.raises(OSError):
            execute_hooks(["true"], tmp_path / "missing")

    def test_unrunnable_command_is_a_failed_result(self, tmp_path):
        results = execute_hooks(["echo a\x00b", "touch after"], tmp_path, stop_on_error=False)
        assert [r.success for r in results] == [False, True]
        assert results[0].exit_code == -1
        assert "null byte" in results[0].stderr
        assert (tmp_path / "after").exists()

    def test_empty_list(self, tmp_path):
        assert execute_hooks([], tmp_path) == []


class TestHookPhases:
    def test_after_create(self, tmp_path):
        config = HooksConfig(after_create=["echo created"])
        [result] = execute_after_create_hooks(config, tmp_path)
        assert result.stdout.strip() == "created"

    def test_before_destroy(self, tmp_path):
        config = HooksConfig(before_destroy=["echo bye"])
        [result] = execute_before_destroy_hooks(config, tmp_path)
        assert result.success

    @pytest.mark.parametrize("config", [HooksConfig(), HooksConfig(after_create=[], before_destroy=[])])
    def test_absent_or_empty_is_noop(self, tmp_path, config):
        assert execute_after_create_hooks(config, tmp_path) == []
        assert execute_before_destroy_hooks(config, tmp_path) == []

    def test_default_hooks_tolerate_missing_package_json(self, tmp_path):
        results = execute_after_create_hooks(DEFAULT_HOOKS, tmp_path)
        assert len(results) == 1
        assert results[0].success
        assert DEFAULT_HOOKS.before_destroy == []
