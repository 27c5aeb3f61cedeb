"""Exception hierarchy for the nixos dispatcher.

Every error carries the process exit code the CLI should return for it.
Filesystem failures are not wrapped: ``OSError`` propagates as-is.
"""

from pathlib import Path
from typing import List, Sequence


class NixosManagerError(Exception):
    """Base class for all dispatcher errors."""

    exit_code: int = 1


class InvalidTarget(NixosManagerError):
    """Swap target is neither a live file/link nor an existing backup."""

    def __init__(self, path: Path):
        self.path = path
        super().__init__(f"Invalid target: {path} (no such file and no backup)")


class MixedSwapState(NixosManagerError):
    """Directory contains both swapped entries and untouched store links."""

    def __init__(self, directory: Path, swapped: Sequence[Path], unswapped: Sequence[Path]):
        self.directory = directory
        self.swapped: List[Path] = list(swapped)
        self.unswapped: List[Path] = list(unswapped)
        super().__init__(
            f"Directory {directory} is partially swapped "
            f"({len(self.swapped)} swapped, {len(self.unswapped)} still linked); "
            f"swap the individual files instead"
        )


class ConfirmationDeclined(NixosManagerError):
    """User declined a destructive action. Not a failure."""

    exit_code = 0

    def __init__(self, action: str):
        self.action = action
        super().__init__(f"Cancelled: {action}")


class DelegatedToolFailure(NixosManagerError):
    """External tool exited non-zero; its status becomes ours."""

    def __init__(self, argv: Sequence[str], returncode: int):
        self.argv = list(argv)
        self.returncode = returncode
        self.exit_code = returncode
        super().__init__(f"'{' '.join(self.argv)}' exited with status {returncode}")


class UnsupportedOperation(NixosManagerError):
    """Operation deliberately not implemented."""

    def __init__(self, name: str, hint: str = ""):
        self.name = name
        self.hint = hint
        message = f"'{name}' is not supported"
        if hint:
            message = f"{message}: {hint}"
        super().__init__(message)


class MissingRemote(NixosManagerError):
    """push was called without a remote host."""

    def __init__(self):
        super().__init__("No remote host given and NIXOS_REMOTE is not set")
