"""Swap engine: toggle store links to editable copies and back.

A live path ``P`` that is a symlink into the store is *swapped* by renaming it
to ``P.nix-store-backup`` and writing an independent, writable copy of its
content at ``P``. Swapping again moves the backup back over ``P``. The backup
suffix is the only persisted state.

Directories are handled as a whole: if any backup exists below the directory
every backup is restored, otherwise every store link below it is swapped. A
directory holding both is rejected with MixedSwapState before anything moves.
"""

import logging
import os
import shutil
import stat
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, Iterator, List, Optional, Sequence, Union

from .config import DispatchConfig
from .dryrun import DryRunResult
from .errors import InvalidTarget, MixedSwapState
from .probe import (
    PathKind,
    ProbeResult,
    SwapState,
    backup_path,
    classify,
    is_backup,
    is_store_link,
    live_path,
    probe_swap_state,
)


logger = logging.getLogger("nixos.swap")

ConfirmCallback = Callable[[str], bool]


class SwapAction(str, Enum):
    """What happened to one leaf path."""
    SWAPPED = "swapped"    # store link replaced by editable copy
    RESTORED = "restored"  # backup moved back over the live path
    SKIPPED = "skipped"    # restore declined at the prompt


@dataclass(frozen=True)
class SwapOutcome:
    path: Path
    action: SwapAction
    previous_state: SwapState


@dataclass
class DirectoryScan:
    """Swap-relevant entries found below a directory, sorted by path."""

    directory: Path
    backups: List[Path] = field(default_factory=list)
    store_links: List[Path] = field(default_factory=list)

    @property
    def unswapped_links(self) -> List[Path]:
        """Store links that have no backup sibling."""
        backups = set(self.backups)
        return [link for link in self.store_links if backup_path(link) not in backups]


def scan_directory(directory: Path, store_root: Path) -> DirectoryScan:
    """Recursively collect backup files and store links below ``directory``.

    Symlinked directories are reported as entries, never descended into.
    """
    scan = DirectoryScan(directory=directory)
    for root, dirnames, filenames in os.walk(directory, followlinks=False):
        for name in dirnames + filenames:
            entry = Path(root) / name
            kind = classify(entry)
            if kind == PathKind.DIRECTORY:
                continue
            if is_backup(entry):
                scan.backups.append(entry)
            elif is_store_link(entry, store_root):
                scan.store_links.append(entry)
    scan.backups.sort()
    scan.store_links.sort()
    return scan


def _make_user_writable(path: Path) -> None:
    mode = stat.S_IMODE(os.stat(path).st_mode)
    os.chmod(path, mode | stat.S_IWUSR)


def copy_content(source: Path, destination: Path) -> None:
    """Write an independent, user-writable copy of ``source`` at ``destination``.

    Symlinks are followed; a directory source is copied as a tree.
    """
    if os.path.isdir(source):
        shutil.copytree(source, destination, symlinks=False)
        for root, dirnames, filenames in os.walk(destination):
            _make_user_writable(Path(root))
            for name in filenames:
                _make_user_writable(Path(root) / name)
        return

    shutil.copyfile(source, destination)
    source_mode = stat.S_IMODE(os.stat(source).st_mode)
    os.chmod(destination, source_mode | stat.S_IWUSR)


class SwapEngine:
    """Applies the swap toggle to a list of targets, in order, fail-fast.

    Args:
        config: Dispatcher configuration (store root and dry-run flag)
        confirm: Called with a question before a restore discards the live
            file; returning False leaves the pair untouched
        dry_run_result: Collector for planned changes in dry-run mode
    """

    def __init__(
        self,
        config: DispatchConfig,
        confirm: ConfirmCallback,
        dry_run_result: Optional[DryRunResult] = None,
    ):
        self.config = config
        self.confirm = confirm
        self.dry_run_result = dry_run_result if dry_run_result is not None else DryRunResult()

    @property
    def store_root(self) -> Path:
        return self.config.store_root

    def iter_swap(self, targets: Sequence[Union[str, Path]]) -> Iterator[SwapOutcome]:
        """Toggle each target, yielding one outcome per leaf as it completes.

        Outcomes already yielded stand even if a later target raises.

        Raises:
            InvalidTarget: A target has neither a live path nor a backup
            MixedSwapState: A directory target is partially swapped
            OSError: Rename or copy failed
        """
        for target in targets:
            probe = probe_swap_state(Path(target), self.store_root)
            # a swapped directory link is a real directory with a backup sibling
            if probe.kind == PathKind.DIRECTORY and probe.state != SwapState.SWAPPED:
                yield from self.swap_directory(probe.path)
            else:
                yield self.swap_leaf(probe)

    def swap(self, targets: Sequence[Union[str, Path]]) -> List[SwapOutcome]:
        return list(self.iter_swap(targets))

    def swap_directory(self, directory: Path) -> Iterator[SwapOutcome]:
        scan = scan_directory(directory, self.store_root)

        if scan.backups:
            pending = scan.unswapped_links
            if pending:
                raise MixedSwapState(directory, [live_path(b) for b in scan.backups], pending)
            logger.info(f"{directory}: restoring {len(scan.backups)} swapped file(s)")
            leaves = [live_path(backup) for backup in scan.backups]
        else:
            logger.info(f"{directory}: swapping {len(scan.store_links)} store link(s)")
            leaves = scan.store_links

        if not leaves:
            self._warn(f"{directory}: no store links or backups found")

        for leaf in leaves:
            yield self.swap_leaf(probe_swap_state(leaf, self.store_root))

    def swap_leaf(self, probe: ProbeResult) -> SwapOutcome:
        """Apply the transition selected by a leaf's probed state."""
        if probe.state == SwapState.MISSING:
            raise InvalidTarget(probe.path)
        if probe.state == SwapState.SWAPPED:
            return self._restore(probe)
        if probe.state == SwapState.UNRELATED:
            self._warn(f"{probe.path} is not a store link; swapping it anyway")
        return self._swap_out(probe)

    def _warn(self, message: str) -> None:
        logger.warning(message)
        if self.config.dry_run:
            self.dry_run_result.add_warning(message)

    def _swap_out(self, probe: ProbeResult) -> SwapOutcome:
        path, backup = probe.path, probe.backup

        if self.config.dry_run:
            self.dry_run_result.add_change("rename", str(path), old_value=path, new_value=backup)
            self.dry_run_result.add_change("copy", str(path), old_value=backup, new_value=path)
            return SwapOutcome(path, SwapAction.SWAPPED, probe.state)

        os.rename(path, backup)
        logger.info(f"Renamed {path} → {backup}")
        try:
            copy_content(backup, path)
        except OSError:
            logger.error(f"Copy of {backup} failed, putting {path} back")
            if classify(path) == PathKind.DIRECTORY:
                shutil.rmtree(path)
            elif classify(path) != PathKind.MISSING:
                os.unlink(path)
            os.rename(backup, path)
            raise
        logger.info(f"Copied {backup} → {path}")
        return SwapOutcome(path, SwapAction.SWAPPED, probe.state)

    def _restore(self, probe: ProbeResult) -> SwapOutcome:
        path, backup = probe.path, probe.backup

        if probe.kind != PathKind.MISSING and not self.config.assume_yes:
            if not self.confirm(f"Discard edits to {path} and restore the original?"):
                logger.info(f"Restore of {path} declined")
                return SwapOutcome(path, SwapAction.SKIPPED, probe.state)

        if self.config.dry_run:
            if probe.kind != PathKind.MISSING:
                self.dry_run_result.add_change("delete", str(path), old_value=path)
            self.dry_run_result.add_change("rename", str(backup), old_value=backup, new_value=path)
            return SwapOutcome(path, SwapAction.RESTORED, probe.state)

        if probe.kind == PathKind.DIRECTORY:
            shutil.rmtree(path)
        os.replace(backup, path)
        logger.info(f"Restored {backup} → {path}")
        return SwapOutcome(path, SwapAction.RESTORED, probe.state)
