"""Unit tests for the filesystem probe."""

import os
from pathlib import Path

import pytest

from nixos_manager.core.probe import (
    PathKind,
    SwapState,
    backup_path,
    classify,
    is_store_link,
    live_path,
    probe_swap_state,
    read_target,
)


class TestClassify:

    def test_missing(self, tmp_path: Path):
        assert classify(tmp_path / "nope") == PathKind.MISSING

    def test_regular_file(self, tmp_path: Path):
        path = tmp_path / "file"
        path.write_text("x")
        assert classify(path) == PathKind.REGULAR_FILE

    def test_directory(self, tmp_path: Path):
        assert classify(tmp_path) == PathKind.DIRECTORY

    def test_symlink_to_directory_is_symlink(self, tmp_path: Path):
        """Final symlinks are never followed."""
        link = tmp_path / "link"
        link.symlink_to(tmp_path)
        assert classify(link) == PathKind.SYMLINK

    def test_dangling_symlink(self, tmp_path: Path):
        link = tmp_path / "dangling"
        link.symlink_to(tmp_path / "gone")
        assert classify(link) == PathKind.SYMLINK
        assert read_target(link) == str(tmp_path / "gone")


class TestStoreLinks:

    def test_link_into_store(self, store_link, config):
        assert is_store_link(store_link("cfg"), config.store_root)

    def test_link_outside_store(self, tmp_path: Path, config):
        outside = tmp_path / "outside"
        outside.write_text("x")
        link = tmp_path / "link"
        link.symlink_to(outside)
        assert not is_store_link(link, config.store_root)

    def test_regular_file_is_not_store_link(self, store_file, config):
        assert not is_store_link(store_file("x", "y"), config.store_root)

    def test_relative_link_resolved(self, store_file, config, etc_dir):
        target = store_file("rel", "x")
        link = etc_dir / "rel"
        link.symlink_to(os.path.relpath(target, etc_dir))
        assert is_store_link(link, config.store_root)


class TestBackupNames:

    def test_backup_and_live_paths(self):
        path = Path("/etc/cfg")
        assert backup_path(path) == Path("/etc/cfg.nix-store-backup")
        assert live_path(backup_path(path)) == path

    def test_live_path_rejects_non_backup(self):
        with pytest.raises(ValueError):
            live_path(Path("/etc/cfg"))


class TestProbeSwapState:

    def test_linked(self, store_link, config):
        link = store_link("cfg")
        result = probe_swap_state(link, config.store_root)
        assert result.state == SwapState.LINKED
        assert result.link_target == os.readlink(link)
        assert result.backup == backup_path(link)

    def test_swapped(self, etc_dir, config):
        (etc_dir / "cfg").write_text("x")
        (etc_dir / "cfg.nix-store-backup").write_text("x")
        assert probe_swap_state(etc_dir / "cfg", config.store_root).state == SwapState.SWAPPED

    def test_swapped_with_missing_live_file(self, etc_dir, config):
        (etc_dir / "cfg.nix-store-backup").write_text("x")
        result = probe_swap_state(etc_dir / "cfg", config.store_root)
        assert result.state == SwapState.SWAPPED
        assert result.kind == PathKind.MISSING

    def test_unrelated(self, etc_dir, config):
        (etc_dir / "cfg").write_text("x")
        assert probe_swap_state(etc_dir / "cfg", config.store_root).state == SwapState.UNRELATED

    def test_missing(self, etc_dir, config):
        assert probe_swap_state(etc_dir / "cfg", config.store_root).state == SwapState.MISSING
