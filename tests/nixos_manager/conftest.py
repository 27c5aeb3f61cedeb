"""Pytest configuration and shared fixtures for nixos_manager tests."""

import os
from pathlib import Path
from typing import Callable, List

import pytest

from nixos_manager.core.config import DispatchConfig


@pytest.fixture
def store_root(tmp_path: Path) -> Path:
    """Fake immutable store directory."""
    store = tmp_path / "nix" / "store"
    store.mkdir(parents=True)
    return store


@pytest.fixture
def etc_dir(tmp_path: Path) -> Path:
    """Directory standing in for /etc."""
    etc = tmp_path / "etc"
    etc.mkdir()
    return etc


@pytest.fixture
def config(tmp_path: Path, store_root: Path) -> DispatchConfig:
    """Configuration pointing at the fake store, prompts enabled."""
    return DispatchConfig(
        flake_dir=tmp_path / "flake",
        host="testhost",
        store_root=store_root,
        profile=tmp_path / "profiles" / "system",
    )


@pytest.fixture
def store_file(store_root: Path) -> Callable[[str, str], Path]:
    """Factory creating read-only files in the fake store.

    Returns:
        Function (name, content) -> store path
    """
    counter = iter(range(1000))

    def _make(name: str, content: str) -> Path:
        path = store_root / f"{next(counter):032d}-{name}"
        path.write_text(content)
        os.chmod(path, 0o444)
        return path

    return _make


@pytest.fixture
def store_link(etc_dir: Path, store_file) -> Callable[..., Path]:
    """Factory creating a live symlink into the fake store."""

    def _make(relative: str, content: str = "original\n") -> Path:
        target = store_file(Path(relative).name, content)
        link = etc_dir / relative
        link.parent.mkdir(parents=True, exist_ok=True)
        link.symlink_to(target)
        return link

    return _make


class Prompt:
    """Recording confirm callback with a fixed answer."""

    def __init__(self, answer: bool):
        self.answer = answer
        self.questions: List[str] = []

    def __call__(self, question: str) -> bool:
        self.questions.append(question)
        return self.answer


@pytest.fixture
def accept() -> Prompt:
    return Prompt(True)


@pytest.fixture
def decline() -> Prompt:
    return Prompt(False)
