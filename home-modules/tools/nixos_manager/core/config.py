"""Dispatcher configuration.

The environment is read exactly once, at the command-dispatch boundary, into a
``DispatchConfig``. Engines and invocation builders receive the config by
parameter and never look at ``os.environ`` themselves.
"""

import socket
from pathlib import Path
from typing import Mapping, Optional

from pydantic import BaseModel, Field, computed_field, field_validator


# Environment variables consumed by the dispatcher
ENV_FLAKE = "NIXOS_FLAKE"
ENV_HOST = "NIXOS_HOST"
ENV_REMOTE = "NIXOS_REMOTE"
ENV_DRY_RUN = "NIXOS_DRY_RUN"
ENV_THEME = "NIXOS_THEME"
ENV_STORE = "NIXOS_STORE"
ENV_PROFILE = "NIXOS_PROFILE"

DEFAULT_FLAKE_DIR = Path("/etc/nixos")
DEFAULT_STORE_ROOT = Path("/nix/store")
DEFAULT_PROFILE = Path("/nix/var/nix/profiles/system")
SYSTEM_PROFILES_DIR = Path("/nix/var/nix/profiles")

BACKUP_SUFFIX = ".nix-store-backup"

_TRUTHY = {"1", "true", "yes", "on"}


def parse_flag(value: Optional[str]) -> bool:
    """Interpret an environment flag value."""
    if value is None:
        return False
    return value.strip().lower() in _TRUTHY


class DispatchConfig(BaseModel):
    """Explicit configuration passed to every engine.

    Fields:
        flake_dir: Directory holding the system flake
        host: Host attribute used in ``flake_dir#host``
        remote: Default ssh destination for ``push``
        dry_run: Print external invocations instead of running them
        theme: Theme name exported to the rebuild
        store_root: Root of the immutable store
        profile: Generation profile managed by ``generations``
        assume_yes: Skip confirmation prompts
    """

    flake_dir: Path = Field(default=DEFAULT_FLAKE_DIR, description="System flake directory")
    host: str = Field(..., min_length=1, description="Flake host attribute")
    remote: Optional[str] = Field(default=None, description="Remote target for push")
    dry_run: bool = Field(default=False, description="Print instead of execute")
    theme: Optional[str] = Field(default=None, description="Theme override for rebuilds")
    store_root: Path = Field(default=DEFAULT_STORE_ROOT, description="Immutable store root")
    profile: Path = Field(default=DEFAULT_PROFILE, description="Generation profile")
    assume_yes: bool = Field(default=False, description="Skip confirmation prompts")

    model_config = {"frozen": True}

    @field_validator("remote", "theme")
    @classmethod
    def empty_as_none(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not value.strip():
            return None
        return value

    @computed_field
    @property
    def flake_ref(self) -> str:
        """Flake reference for the configured host (``/etc/nixos#myhost``)."""
        return f"{self.flake_dir}#{self.host}"

    @computed_field
    @property
    def profile_is_system(self) -> bool:
        """Whether the profile is the root-owned system profile."""
        return self.profile.parent == SYSTEM_PROFILES_DIR and self.profile.name == "system"

    @classmethod
    def from_env(cls, environ: Mapping[str, str], **overrides) -> "DispatchConfig":
        """Build the configuration from an environment mapping.

        Args:
            environ: Environment mapping (normally ``os.environ``)
            **overrides: Values from command-line flags; ``None`` values are ignored

        Returns:
            Frozen DispatchConfig
        """
        values = {
            "flake_dir": Path(environ.get(ENV_FLAKE) or DEFAULT_FLAKE_DIR),
            "host": environ.get(ENV_HOST) or socket.gethostname(),
            "remote": environ.get(ENV_REMOTE),
            "dry_run": parse_flag(environ.get(ENV_DRY_RUN)),
            "theme": environ.get(ENV_THEME),
            "store_root": Path(environ.get(ENV_STORE) or DEFAULT_STORE_ROOT),
            "profile": Path(environ.get(ENV_PROFILE) or DEFAULT_PROFILE),
        }
        values.update({key: value for key, value in overrides.items() if value is not None})
        return cls(**values)

    def with_changes(self, **changes) -> "DispatchConfig":
        """Return a copy with some fields replaced."""
        return self.model_copy(update=changes)
