"""Rich formatters for nixos CLI output."""

import json
from typing import List, Sequence

from rich.console import Console
from rich.table import Table
from rich.text import Text

from nixos_manager.core.generations import Generation, GenerationDiffEntry, Presence
from nixos_manager.core.swap import SwapAction, SwapOutcome


# Global console instance
console = Console()


def format_generation_table(generations: Sequence[Generation], profile: str = "") -> Table:
    """Format generations as a Rich table, current generation highlighted.

    Args:
        generations: Generations in display order
        profile: Profile path shown in the title

    Returns:
        Rich Table object ready for display
    """
    title = f"Generations of {profile}" if profile else "Generations"
    table = Table(title=title, show_header=True, header_style="bold cyan")

    table.add_column("#", justify="right", style="bold")
    table.add_column("Created", style="blue")
    table.add_column("", style="green")

    for generation in generations:
        created = generation.created.strftime("%Y-%m-%d %H:%M:%S") if generation.created else "?"
        table.add_row(
            str(generation.number),
            created,
            "current" if generation.current else "",
            style="bold green" if generation.current else None,
        )

    return table


def format_generation_diff(entries: Sequence[GenerationDiffEntry], first: int, second: int) -> Text:
    """Format a generation diff as +/- lines.

    Removed paths (only in ``first``) are red, added paths (only in ``second``) green.
    """
    text = Text()
    text.append(f"--- generation {first}\n", style="bold red")
    text.append(f"+++ generation {second}\n", style="bold green")
    for entry in entries:
        style = "green" if entry.presence == Presence.ADDED else "red"
        text.append(f"{entry}\n", style=style)
    added = sum(1 for entry in entries if entry.presence == Presence.ADDED)
    text.append(f"{added} added, {len(entries) - added} removed", style="dim")
    return text


def format_swap_outcome(outcome: SwapOutcome) -> str:
    if outcome.action == SwapAction.SWAPPED:
        return f"Swapped {outcome.path} (now editable)"
    if outcome.action == SwapAction.RESTORED:
        return f"Restored {outcome.path}"
    return f"Left {outcome.path} unchanged"


def generations_to_json(generations: Sequence[Generation]) -> str:
    return json.dumps([g.model_dump(mode="json") for g in generations], indent=2)


def diff_to_json(entries: List[GenerationDiffEntry], first: int, second: int) -> str:
    return json.dumps(
        {
            "from": first,
            "to": second,
            "entries": [entry.model_dump(mode="json") for entry in entries],
        },
        indent=2,
    )
