"""Unit tests for the external command lines behind each subcommand."""

from pathlib import Path

import pytest

from nixos_manager.cli import invocations
from nixos_manager.core.config import DispatchConfig
from nixos_manager.core.errors import MissingRemote


@pytest.fixture
def host_config() -> DispatchConfig:
    return DispatchConfig(flake_dir=Path("/etc/nixos"), host="laptop")


def argvs(invocation_list):
    return [list(invocation.argv) for invocation in invocation_list]


class TestFlake:

    def test_check_and_show(self, host_config):
        assert argvs(invocations.flake_check(host_config)) == [["nix", "flake", "check", "/etc/nixos"]]
        assert argvs(invocations.flake_show(host_config)) == [["nix", "flake", "show", "/etc/nixos"]]

    def test_update_whole_lock_file(self, host_config):
        assert argvs(invocations.flake_update(host_config)) == [
            ["nix", "flake", "update", "--flake", "/etc/nixos"]
        ]

    def test_update_named_inputs(self, host_config):
        assert argvs(invocations.flake_update(host_config, ["nixpkgs", "home-manager"])) == [
            ["nix", "flake", "update", "nixpkgs", "home-manager", "--flake", "/etc/nixos"]
        ]


class TestRebuild:

    def test_default_action_is_unprivileged_build(self, host_config):
        assert argvs(invocations.rebuild(host_config)) == [
            ["nixos-rebuild", "build", "--flake", "/etc/nixos#laptop"]
        ]

    def test_switch_runs_with_sudo(self, host_config):
        assert argvs(invocations.rebuild(host_config, "switch", ["--show-trace"])) == [
            ["sudo", "nixos-rebuild", "switch", "--flake", "/etc/nixos#laptop", "--show-trace"]
        ]

    def test_host_override_changes_flake_ref(self):
        config = DispatchConfig.from_env({"NIXOS_HOST": "server", "NIXOS_FLAKE": "/srv/nixos"})
        assert "/srv/nixos#server" in invocations.rebuild(config)[0].argv

    def test_fast_test(self, host_config):
        assert argvs(invocations.fast_test(host_config)) == [
            ["sudo", "nixos-rebuild", "test", "--flake", "/etc/nixos#laptop", "--fast"]
        ]

    def test_rollback_and_vm(self, host_config):
        assert argvs(invocations.rollback(host_config)) == [
            ["sudo", "nixos-rebuild", "switch", "--flake", "/etc/nixos#laptop", "--rollback"]
        ]
        assert argvs(invocations.vm(host_config)) == [
            ["nixos-rebuild", "build-vm", "--flake", "/etc/nixos#laptop"]
        ]

    def test_upgrade_updates_then_switches(self, host_config):
        steps = argvs(invocations.upgrade(host_config))
        assert steps[0][:3] == ["nix", "flake", "update"]
        assert steps[1][:3] == ["sudo", "nixos-rebuild", "switch"]


class TestTheme:

    def test_theme_exports_variable(self, host_config):
        [invocation] = invocations.theme(host_config, "nord")

        assert invocation.env == {"NIXOS_THEME": "nord"}
        assert invocation.argv[:2] == ("sudo", "--preserve-env=NIXOS_THEME")
        assert "--impure" in invocation.argv
        assert "test" in invocation.argv

    def test_theme_falls_back_to_configured_theme(self, host_config):
        config = host_config.with_changes(theme="gruvbox")
        assert invocations.theme(config, None)[0].env == {"NIXOS_THEME": "gruvbox"}

    def test_theme_requires_a_name(self, host_config):
        with pytest.raises(ValueError):
            invocations.theme(host_config, None)

    def test_plain_rebuild_ignores_configured_theme(self, host_config):
        config = host_config.with_changes(theme="gruvbox")
        assert invocations.rebuild(config, "switch")[0].env == {}


class TestMisc:

    def test_search_and_shell(self, host_config):
        assert argvs(invocations.search(host_config, ["ripgrep"])) == [["nix", "search", "nixpkgs", "ripgrep"]]
        assert argvs(invocations.shell(host_config, ["jq", "yq"])) == [
            ["nix", "shell", "nixpkgs#jq", "nixpkgs#yq"]
        ]

    def test_gc_user(self, host_config):
        steps = argvs(invocations.garbage_collect(host_config))
        assert steps == [["nix-collect-garbage", "--delete-old"], ["nix-store", "--optimise"]]

    def test_gc_system_rewrites_boot_entries(self, host_config):
        steps = argvs(invocations.garbage_collect(host_config, system=True))
        assert all(step[0] == "sudo" for step in steps)
        assert steps[-1] == ["sudo", invocations.SWITCH_TO_CONFIGURATION, "boot"]

    def test_push_syncs_then_rebuilds_remotely(self, host_config):
        sync, remote_rebuild = argvs(invocations.push(host_config, "root@server"))

        assert sync[0] == "rsync"
        assert sync[-1] == "root@server:/etc/nixos/"
        assert remote_rebuild[:3] == ["ssh", "-t", "root@server"]
        assert "nixos-rebuild" in remote_rebuild

    def test_push_uses_configured_remote(self, host_config):
        config = host_config.with_changes(remote="builder")
        assert invocations.push(config)[1].argv[2] == "builder"

    def test_push_without_remote(self, host_config):
        with pytest.raises(MissingRemote):
            invocations.push(host_config)

    def test_passthrough(self, host_config):
        assert argvs(invocations.passthrough(host_config, ["-q", "--installed"])) == [
            ["nix-env", "-q", "--installed"]
        ]
