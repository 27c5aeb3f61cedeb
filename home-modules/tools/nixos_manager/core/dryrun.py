"""Dry-run support.

When dry-run is active, the command runner and the swap engine record what they
would do as DryRunChange entries instead of touching the system.
"""

from typing import Any, List, Optional
from dataclasses import dataclass, field


@dataclass
class DryRunChange:
    """A single change that would be made.

    Attributes:
        action: Type of action (run, rename, copy, delete, ...)
        target: What is being changed (command line, path, generation)
        details: Additional details about the change
        old_value: Previous value (for renames/deletes)
        new_value: New value (for renames/copies)
    """

    action: str
    target: str
    details: str = ""
    old_value: Optional[Any] = None
    new_value: Optional[Any] = None

    def __str__(self) -> str:
        """Format change as human-readable string."""
        if self.action == "run":
            return f"  [RUN] {self.target}"
        elif self.action == "rename":
            return f"  [RENAME] {self.old_value} → {self.new_value}"
        elif self.action == "copy":
            return f"  [COPY] {self.old_value} → {self.new_value}"
        elif self.action == "delete":
            return f"  [DELETE] {self.target}: {self.old_value}"
        else:
            return f"  [{self.action.upper()}] {self.target}: {self.details}"


@dataclass
class DryRunResult:
    """All changes recorded during one dry-run invocation.

    Attributes:
        changes: Changes that would be made
        warnings: Warnings about the operation
    """

    changes: List[DryRunChange] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def add_change(
        self,
        action: str,
        target: str,
        details: str = "",
        old_value: Optional[Any] = None,
        new_value: Optional[Any] = None,
    ) -> DryRunChange:
        """Record a change and return it."""
        change = DryRunChange(
            action=action,
            target=target,
            details=details,
            old_value=old_value,
            new_value=new_value,
        )
        self.changes.append(change)
        return change

    def add_warning(self, message: str) -> None:
        self.warnings.append(message)

    def __str__(self) -> str:
        """Format result as human-readable string."""
        lines = ["Dry-run mode: no changes applied"]
        if self.changes:
            lines.append(f"Would make {len(self.changes)} change(s):")
            lines.extend(str(change) for change in self.changes)
        else:
            lines.append("No changes would be made")
        for warning in self.warnings:
            lines.append(f"  ⚠ {warning}")
        return "\n".join(lines)
