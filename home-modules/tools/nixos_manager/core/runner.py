"""Delegated invocation of external tools.

All external commands (nixos-rebuild, nix, nix-env, ssh, ...) go through
CommandRunner so that dry-run mode and logging apply uniformly. A non-zero
exit raises DelegatedToolFailure carrying the tool's status unchanged.
"""

import logging
import shlex
import subprocess
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from .config import DispatchConfig
from .dryrun import DryRunResult
from .errors import DelegatedToolFailure


logger = logging.getLogger("nixos.runner")


@dataclass(frozen=True)
class Invocation:
    """One external command line.

    Attributes:
        argv: Program and arguments
        env: Extra environment variables for the child process
    """

    argv: Tuple[str, ...]
    env: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def of(cls, *argv: str, env: Optional[Mapping[str, str]] = None) -> "Invocation":
        return cls(argv=tuple(str(arg) for arg in argv), env=dict(env or {}))

    def display(self) -> str:
        """Shell-style rendering, environment assignments first."""
        assignments = [f"{key}={shlex.quote(value)}" for key, value in sorted(self.env.items())]
        return " ".join(assignments + [shlex.join(self.argv)])


class CommandRunner:
    """Runs invocations, or records them when dry-run is on.

    Args:
        config: Dispatcher configuration (only ``dry_run`` is consulted)
        base_env: Environment inherited by child processes that need extra variables
        dry_run_result: Collector for dry-run records (created if omitted)
    """

    def __init__(
        self,
        config: DispatchConfig,
        base_env: Optional[Mapping[str, str]] = None,
        dry_run_result: Optional[DryRunResult] = None,
    ):
        self.config = config
        self.base_env = dict(base_env or {})
        self.dry_run_result = dry_run_result if dry_run_result is not None else DryRunResult()

    @property
    def dry_run(self) -> bool:
        return self.config.dry_run

    def _child_env(self, invocation: Invocation) -> Optional[Dict[str, str]]:
        if not invocation.env:
            return None
        return {**self.base_env, **invocation.env}

    def run(self, invocation: Invocation) -> int:
        """Run one invocation with inherited stdio.

        Returns:
            0 on success (or when only recorded in dry-run mode)

        Raises:
            DelegatedToolFailure: The tool exited non-zero
        """
        if self.dry_run:
            self.dry_run_result.add_change("run", invocation.display())
            logger.info(f"Dry-run: {invocation.display()}")
            return 0

        logger.info(f"Running: {invocation.display()}")
        result = subprocess.run(list(invocation.argv), env=self._child_env(invocation))
        log_subprocess_call(list(invocation.argv), result, logger)
        if result.returncode != 0:
            raise DelegatedToolFailure(invocation.argv, result.returncode)
        return 0

    def run_all(self, invocations: Iterable[Invocation]) -> int:
        """Run invocations in order, stopping at the first failure."""
        for invocation in invocations:
            self.run(invocation)
        return 0

    def capture(self, invocation: Invocation) -> str:
        """Run a read-only query and return its stdout.

        Queries execute even in dry-run mode; their output is the result.
        """
        logger.debug(f"Querying: {invocation.display()}")
        result = subprocess.run(
            list(invocation.argv),
            env=self._child_env(invocation),
            stdout=subprocess.PIPE,
            text=True,
        )
        log_subprocess_call(list(invocation.argv), result, logger)
        if result.returncode != 0:
            raise DelegatedToolFailure(invocation.argv, result.returncode)
        return result.stdout


def log_subprocess_call(cmd: List[str], result: subprocess.CompletedProcess, log: logging.Logger) -> None:
    """Log a finished subprocess call with its status and captured output."""
    log.debug(f"Subprocess call: {' '.join(cmd)}")
    log.debug(f"  Return code: {result.returncode}")

    if getattr(result, 'stdout', None):
        stdout = result.stdout if isinstance(result.stdout, str) else result.stdout.decode()
        log.debug(f"  stdout: {stdout[:200]}...")

    if getattr(result, 'stderr', None):
        stderr = result.stderr if isinstance(result.stderr, str) else result.stderr.decode()
        log.debug(f"  stderr: {stderr[:200]}...")
