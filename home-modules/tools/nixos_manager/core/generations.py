"""Generation listing, diffing and removal.

GenerationStore is the thin adapter over ``nix-env`` / ``nix-store`` for one
profile; GenerationManager builds the user-facing operations on top of it.
Generation numbers are never validated locally: unknown numbers surface as
whatever the underlying tool reports.
"""

import logging
import re
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Callable, Iterable, List, Optional, Sequence, Set, Union

from pydantic import BaseModel, Field, computed_field, field_validator

from .config import DispatchConfig
from .errors import ConfirmationDeclined, UnsupportedOperation
from .runner import CommandRunner, Invocation


logger = logging.getLogger("nixos.generations")

OLD_GENERATIONS = "old"

# "  42   2026-10-01 09:12:44   (current)"
GENERATION_LINE = re.compile(
    r'^\s*(?P<number>\d+)\s+'
    r'(?P<created>\d{4}-\d{2}-\d{2}\s+\d{2}:\d{2}:\d{2})'
    r'(?:\s+(?P<current>\(current\)))?\s*$'
)


class Generation(BaseModel):
    """One numbered snapshot of a profile."""
    number: int = Field(..., ge=0, description="Generation number")
    created: Optional[datetime] = Field(default=None, description="Creation time")
    current: bool = Field(default=False, description="Profile currently points here")


class Presence(str, Enum):
    """Which side of a diff an entry appears on."""
    ADDED = "+"    # only in the second generation
    REMOVED = "-"  # only in the first generation


class GenerationDiffEntry(BaseModel):
    path: str
    presence: Presence

    @computed_field
    @property
    def name(self) -> str:
        """Store path without the store directory and hash prefix."""
        base = self.path.rstrip("/").rsplit("/", 1)[-1]
        _, sep, rest = base.partition("-")
        return rest if sep else base

    def __str__(self) -> str:
        return f"{self.presence.value} {self.path}"


class RemovalSelector(BaseModel):
    """Either the ``old`` policy or explicit generation numbers."""
    old: bool = False
    numbers: List[int] = Field(default_factory=list)

    @field_validator("numbers")
    @classmethod
    def non_negative(cls, numbers: List[int]) -> List[int]:
        for number in numbers:
            if number < 0:
                raise ValueError(f"Invalid generation number: {number}")
        return numbers

    @classmethod
    def parse(cls, tokens: Sequence[str]) -> "RemovalSelector":
        """Build a selector from command-line tokens.

        Raises:
            ValueError: Empty selection, or ``old`` mixed with numbers, or a
                token that is not a number
        """
        if not tokens:
            raise ValueError("Specify 'old' or one or more generation numbers")
        if OLD_GENERATIONS in tokens:
            if len(tokens) != 1:
                raise ValueError("'old' cannot be combined with generation numbers")
            return cls(old=True)
        numbers = []
        for token in tokens:
            if not token.isdigit():
                raise ValueError(f"Invalid generation number: {token!r}")
            numbers.append(int(token))
        return cls(numbers=numbers)

    def arguments(self) -> List[str]:
        if self.old:
            return [OLD_GENERATIONS]
        return [str(number) for number in self.numbers]

    def describe(self) -> str:
        if self.old:
            return "all non-current generations"
        return "generation(s) " + ", ".join(str(number) for number in self.numbers)


def parse_generation_list(output: str) -> List[Generation]:
    """Parse ``nix-env --list-generations`` output.

    Lines that do not look like generation rows (headers, blank lines) are skipped.
    """
    generations = []
    for line in output.splitlines():
        match = GENERATION_LINE.match(line)
        if not match:
            if line.strip():
                logger.debug(f"Skipping unrecognised generation line: {line!r}")
            continue
        generations.append(Generation(
            number=int(match.group("number")),
            created=datetime.strptime(" ".join(match.group("created").split()), "%Y-%m-%d %H:%M:%S"),
            current=match.group("current") is not None,
        ))
    return generations


def diff_reference_sets(first: Iterable[str], second: Iterable[str]) -> List[GenerationDiffEntry]:
    """Symmetric difference of two reference sets, ordered by path.

    Entries only in ``first`` are REMOVED, entries only in ``second`` are ADDED.
    """
    first_set: Set[str] = set(first)
    second_set: Set[str] = set(second)
    entries = [GenerationDiffEntry(path=path, presence=Presence.REMOVED) for path in first_set - second_set]
    entries.extend(GenerationDiffEntry(path=path, presence=Presence.ADDED) for path in second_set - first_set)
    entries.sort(key=lambda entry: (entry.path, entry.presence.value))
    return entries


class GenerationStore:
    """Adapter over the package manager's generation commands for one profile."""

    def __init__(self, config: DispatchConfig, runner: CommandRunner):
        self.config = config
        self.runner = runner

    @property
    def profile(self) -> Path:
        return self.config.profile

    def link_path(self, number: int) -> Path:
        """Per-generation link, e.g. ``/nix/var/nix/profiles/system-42-link``."""
        return self.profile.with_name(f"{self.profile.name}-{number}-link")

    def _privileged(self, *argv: str) -> Invocation:
        if self.config.profile_is_system:
            return Invocation.of("sudo", *argv)
        return Invocation.of(*argv)

    def list_invocation(self) -> Invocation:
        return Invocation.of("nix-env", "--list-generations", "--profile", str(self.profile))

    def references_invocation(self, number: int) -> Invocation:
        return Invocation.of("nix-store", "--query", "--requisites", str(self.link_path(number)))

    def delete_invocation(self, selector: RemovalSelector) -> Invocation:
        return self._privileged(
            "nix-env", "--profile", str(self.profile), "--delete-generations", *selector.arguments()
        )

    def list(self) -> List[Generation]:
        return parse_generation_list(self.runner.capture(self.list_invocation()))

    def references(self, number: int) -> List[str]:
        output = self.runner.capture(self.references_invocation(number))
        return [line.strip() for line in output.splitlines() if line.strip()]

    def delete(self, selector: RemovalSelector) -> int:
        return self.runner.run(self.delete_invocation(selector))


class GenerationManager:
    """list / diff / remove over a GenerationStore.

    Args:
        store: Adapter for the managed profile
        confirm: Called before removal; returning False cancels it
    """

    def __init__(self, store: GenerationStore, confirm: Callable[[str], bool]):
        self.store = store
        self.confirm = confirm

    def list(self) -> List[Generation]:
        """Generations as reported by the store, ascending by number."""
        return sorted(self.store.list(), key=lambda generation: generation.number)

    def diff(self, first: int, second: int) -> List[GenerationDiffEntry]:
        """Store paths that differ between two generations' closures."""
        logger.info(f"Diffing generation {first} against {second}")
        return diff_reference_sets(self.store.references(first), self.store.references(second))

    def remove(self, selector: Union[RemovalSelector, Sequence[str]]) -> int:
        """Delete generations after confirmation (not asked under --yes or dry-run).

        Raises:
            ConfirmationDeclined: The prompt was declined; nothing was deleted
            DelegatedToolFailure: nix-env refused (e.g. missing privileges)
        """
        if not isinstance(selector, RemovalSelector):
            selector = RemovalSelector.parse(list(selector))

        description = f"Delete {selector.describe()} of {self.store.profile}"
        config = self.store.config
        if not (config.assume_yes or config.dry_run) and not self.confirm(f"{description}? This cannot be undone."):
            raise ConfirmationDeclined(description)

        logger.info(description)
        return self.store.delete(selector)

    def switch_to(self, number: int) -> None:
        raise UnsupportedOperation(
            "generations switch",
            "switching to an arbitrary generation is not provided; use 'nixos rollback' "
            "to return to the previous one",
        )
