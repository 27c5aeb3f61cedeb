"""Unit tests for CommandRunner."""

import logging
import subprocess

import pytest

from nixos_manager.core import runner as runner_module
from nixos_manager.core.config import DispatchConfig
from nixos_manager.core.errors import DelegatedToolFailure
from nixos_manager.core.runner import CommandRunner, Invocation, log_subprocess_call


class RecordingRun:
    """Replacement for subprocess.run returning fixed results."""

    def __init__(self, returncodes=(0,), stdout=""):
        self.returncodes = list(returncodes)
        self.stdout = stdout
        self.calls = []

    def __call__(self, argv, **kwargs):
        self.calls.append((argv, kwargs))
        code = self.returncodes.pop(0) if self.returncodes else 0
        return subprocess.CompletedProcess(argv, code, stdout=self.stdout)


@pytest.fixture
def fake_run(monkeypatch):
    fake = RecordingRun()
    monkeypatch.setattr(runner_module.subprocess, "run", fake)
    return fake


@pytest.fixture
def live_config():
    return DispatchConfig(host="h")


class TestInvocation:

    def test_display_quotes_and_prefixes_env(self):
        invocation = Invocation.of("nix", "search", "nixpkgs", "a b", env={"NIXOS_THEME": "dark"})
        assert invocation.display() == "NIXOS_THEME=dark nix search nixpkgs 'a b'"

    def test_equal_invocations_compare_equal(self):
        assert Invocation.of("nix", "flake", "check") == Invocation.of("nix", "flake", "check")


class TestRun:

    def test_success(self, live_config, fake_run):
        assert CommandRunner(live_config).run(Invocation.of("true")) == 0
        assert fake_run.calls[0][0] == ["true"]
        assert fake_run.calls[0][1]["env"] is None

    def test_failure_carries_returncode(self, live_config, fake_run):
        fake_run.returncodes = [4]
        with pytest.raises(DelegatedToolFailure) as exc_info:
            CommandRunner(live_config).run(Invocation.of("false"))
        assert exc_info.value.exit_code == 4
        assert exc_info.value.argv == ["false"]

    def test_extra_env_merged_over_base(self, live_config, fake_run):
        runner = CommandRunner(live_config, base_env={"PATH": "/bin", "NIXOS_THEME": "old"})
        runner.run(Invocation.of("env", env={"NIXOS_THEME": "new"}))
        assert fake_run.calls[0][1]["env"] == {"PATH": "/bin", "NIXOS_THEME": "new"}

    def test_run_all_stops_at_first_failure(self, live_config, fake_run):
        fake_run.returncodes = [0, 2, 0]
        with pytest.raises(DelegatedToolFailure):
            CommandRunner(live_config).run_all([
                Invocation.of("one"), Invocation.of("two"), Invocation.of("three"),
            ])
        assert [call[0] for call in fake_run.calls] == [["one"], ["two"]]


class TestDryRun:

    def test_dry_run_records_instead_of_running(self, live_config, fake_run):
        runner = CommandRunner(live_config.with_changes(dry_run=True))
        runner.run_all([Invocation.of("nix", "flake", "check")])

        assert fake_run.calls == []
        assert runner.dry_run_result.changes[0].target == "nix flake check"
        assert "[RUN] nix flake check" in str(runner.dry_run_result)

    def test_queries_still_execute(self, live_config, fake_run):
        fake_run.stdout = "  1   2026-01-01 00:00:00\n"
        runner = CommandRunner(live_config.with_changes(dry_run=True))

        assert runner.capture(Invocation.of("nix-env", "--list-generations")) == fake_run.stdout
        assert fake_run.calls[0][1]["stdout"] == subprocess.PIPE

    def test_failed_query_raises(self, live_config, fake_run):
        fake_run.returncodes = [1]
        with pytest.raises(DelegatedToolFailure):
            CommandRunner(live_config).capture(Invocation.of("nix-store", "-qR", "/missing"))


class TestSubprocessLogging:

    def test_log_subprocess_call(self, caplog):
        logger = logging.getLogger("nixos.test")
        result = subprocess.CompletedProcess(["nix", "flake", "check"], 1, stdout="", stderr="error: boom")

        with caplog.at_level(logging.DEBUG, logger="nixos.test"):
            log_subprocess_call(["nix", "flake", "check"], result, logger)

        assert "Subprocess call: nix flake check" in caplog.text
        assert "Return code: 1" in caplog.text
        assert "error: boom" in caplog.text

    def test_run_logs_result(self, live_config, fake_run, caplog):
        with caplog.at_level(logging.DEBUG, logger="nixos.runner"):
            CommandRunner(live_config).run(Invocation.of("nix", "flake", "show"))

        assert "Subprocess call: nix flake show" in caplog.text
