"""Filesystem probe for store-link swapping.

Classifies paths without mutating anything. The swap state of a target is
computed once here and handed to the swap engine as an immutable value.
I/O errors other than "does not exist" propagate to the caller.
"""

import os
import stat
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional

from .config import BACKUP_SUFFIX


class PathKind(str, Enum):
    """What a path is, without following a final symlink."""
    DIRECTORY = "directory"
    REGULAR_FILE = "regular-file"
    SYMLINK = "symlink"
    MISSING = "missing"


class SwapState(str, Enum):
    """Relationship between a live path and its backup sibling."""
    LINKED = "linked"        # store link, no backup
    SWAPPED = "swapped"      # backup sibling present
    UNRELATED = "unrelated"  # exists, not a store link, no backup
    MISSING = "missing"      # neither live path nor backup


def classify(path: Path) -> PathKind:
    """Classify a path.

    Symlinks are reported as SYMLINK even when they point at a directory.
    """
    try:
        mode = os.lstat(path).st_mode
    except FileNotFoundError:
        return PathKind.MISSING

    if stat.S_ISLNK(mode):
        return PathKind.SYMLINK
    if stat.S_ISDIR(mode):
        return PathKind.DIRECTORY
    return PathKind.REGULAR_FILE


def read_target(path: Path) -> str:
    """Return the raw target of a symlink."""
    return os.readlink(path)


def backup_path(path: Path) -> Path:
    """Backup sibling for a live path."""
    return path.with_name(path.name + BACKUP_SUFFIX)


def live_path(backup: Path) -> Path:
    """Live path a backup file belongs to."""
    if not backup.name.endswith(BACKUP_SUFFIX):
        raise ValueError(f"Not a backup file: {backup}")
    return backup.with_name(backup.name[: -len(BACKUP_SUFFIX)])


def is_backup(path: Path) -> bool:
    return path.name.endswith(BACKUP_SUFFIX)


def is_store_link(path: Path, store_root: Path) -> bool:
    """True if ``path`` is a symlink whose resolved target lies under the store."""
    if classify(path) != PathKind.SYMLINK:
        return False
    resolved = Path(os.path.realpath(path))
    root = Path(os.path.realpath(store_root))
    return resolved == root or root in resolved.parents


@dataclass(frozen=True)
class ProbeResult:
    """Swap-relevant facts about one leaf target, gathered in one pass.

    Attributes:
        path: The live path
        kind: Kind of the live path
        backup_kind: Kind of the backup sibling
        state: Derived swap state
        link_target: Raw symlink target when kind is SYMLINK
    """

    path: Path
    kind: PathKind
    backup_kind: PathKind
    state: SwapState
    link_target: Optional[str] = None

    @property
    def backup(self) -> Path:
        return backup_path(self.path)


def probe_swap_state(path: Path, store_root: Path) -> ProbeResult:
    """Compute the swap state of a leaf path.

    Args:
        path: Live path (may not exist)
        store_root: Root of the immutable store

    Returns:
        ProbeResult describing the path and its backup
    """
    kind = classify(path)
    backup_kind = classify(backup_path(path))
    link_target = read_target(path) if kind == PathKind.SYMLINK else None

    if backup_kind != PathKind.MISSING:
        state = SwapState.SWAPPED
    elif kind == PathKind.MISSING:
        state = SwapState.MISSING
    elif is_store_link(path, store_root):
        state = SwapState.LINKED
    else:
        state = SwapState.UNRELATED

    return ProbeResult(
        path=path,
        kind=kind,
        backup_kind=backup_kind,
        state=state,
        link_target=link_target,
    )
