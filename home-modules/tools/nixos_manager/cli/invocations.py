"""External command lines behind each pass-through subcommand.

Every builder is a pure function of the configuration and the subcommand's
arguments, returning the invocations to run in order.
"""

from typing import List, Optional, Sequence

from nixos_manager.core.config import ENV_THEME, DispatchConfig
from nixos_manager.core.errors import MissingRemote
from nixos_manager.core.runner import Invocation


DEFAULT_REBUILD_ACTION = "build"

# nixos-rebuild actions that activate a configuration and need root
PRIVILEGED_ACTIONS = {"switch", "boot", "test", "dry-activate"}

SWITCH_TO_CONFIGURATION = "/run/current-system/bin/switch-to-configuration"


def flake_check(config: DispatchConfig) -> List[Invocation]:
    return [Invocation.of("nix", "flake", "check", str(config.flake_dir))]


def flake_show(config: DispatchConfig) -> List[Invocation]:
    return [Invocation.of("nix", "flake", "show", str(config.flake_dir))]


def flake_update(config: DispatchConfig, inputs: Sequence[str] = ()) -> List[Invocation]:
    """Update the whole lock file, or only the named inputs."""
    return [Invocation.of("nix", "flake", "update", *inputs, "--flake", str(config.flake_dir))]


def rebuild(
    config: DispatchConfig,
    action: str = DEFAULT_REBUILD_ACTION,
    extra: Sequence[str] = (),
    theme_name: Optional[str] = None,
) -> List[Invocation]:
    """nixos-rebuild for the configured host.

    A theme name is exported to the build as NIXOS_THEME,
    which needs an impure evaluation and, under sudo, an explicit
    --preserve-env.
    """
    argv = ["nixos-rebuild", action, "--flake", config.flake_ref, *extra]
    env = {}
    if theme_name:
        argv.append("--impure")
        env[ENV_THEME] = theme_name

    if action in PRIVILEGED_ACTIONS:
        if env:
            argv = ["sudo", f"--preserve-env={ENV_THEME}", *argv]
        else:
            argv = ["sudo", *argv]
    return [Invocation.of(*argv, env=env)]


def fast_test(
    config: DispatchConfig,
    extra: Sequence[str] = (),
    theme_name: Optional[str] = None,
) -> List[Invocation]:
    return rebuild(config, "test", ["--fast", *extra], theme_name=theme_name)


def theme(config: DispatchConfig, name: Optional[str]) -> List[Invocation]:
    """Activate a theme for testing.

    Raises:
        ValueError: No theme name given and none configured
    """
    name = name or config.theme
    if not name:
        raise ValueError("Specify a theme name or set NIXOS_THEME")
    return fast_test(config, theme_name=name)


def rollback(config: DispatchConfig) -> List[Invocation]:
    return rebuild(config, "switch", ["--rollback"])


def vm(config: DispatchConfig) -> List[Invocation]:
    return rebuild(config, "build-vm")


def upgrade(config: DispatchConfig) -> List[Invocation]:
    return flake_update(config) + rebuild(config, "switch")


def search(config: DispatchConfig, terms: Sequence[str]) -> List[Invocation]:
    return [Invocation.of("nix", "search", "nixpkgs", *terms)]


def shell(config: DispatchConfig, packages: Sequence[str]) -> List[Invocation]:
    return [Invocation.of("nix", "shell", *(f"nixpkgs#{package}" for package in packages))]


def garbage_collect(config: DispatchConfig, system: bool = False) -> List[Invocation]:
    """Collect garbage and optimise the store.

    The system variant runs as root, which also drops old system generations,
    then rewrites the boot entries so the deleted generations disappear.
    """
    if not system:
        return [
            Invocation.of("nix-collect-garbage", "--delete-old"),
            Invocation.of("nix-store", "--optimise"),
        ]
    return [
        Invocation.of("sudo", "nix-collect-garbage", "--delete-old"),
        Invocation.of("sudo", "nix-store", "--optimise"),
        Invocation.of("sudo", SWITCH_TO_CONFIGURATION, "boot"),
    ]


def push(config: DispatchConfig, remote: Optional[str] = None) -> List[Invocation]:
    """Copy the flake to a remote host and rebuild it there over ssh.

    Raises:
        MissingRemote: No remote argument and NIXOS_REMOTE unset
    """
    remote = remote or config.remote
    if not remote:
        raise MissingRemote()

    flake_dir = str(config.flake_dir)
    return [
        Invocation.of(
            "rsync", "--archive", "--compress", "--delete", "--exclude", ".git",
            "--rsync-path", "sudo rsync",
            f"{flake_dir}/", f"{remote}:{flake_dir}/",
        ),
        Invocation.of(
            "ssh", "-t", remote,
            "sudo", "nixos-rebuild", "switch", "--flake", flake_dir,
        ),
    ]


def passthrough(config: DispatchConfig, argv: Sequence[str]) -> List[Invocation]:
    """Hand flag-style arguments straight to nix-env."""
    return [Invocation.of("nix-env", *argv)]
