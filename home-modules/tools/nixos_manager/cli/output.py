"""Status line printing and confirmation prompts for the nixos CLI."""

import sys

from rich.prompt import Confirm


# ANSI color codes for output
class Colors:
    RESET = "\033[0m"
    BOLD = "\033[1m"
    GREEN = "\033[32m"
    YELLOW = "\033[33m"
    RED = "\033[31m"
    BLUE = "\033[34m"
    GRAY = "\033[90m"


def print_success(message: str) -> None:
    """Print success message in green."""
    print(f"{Colors.GREEN}✓{Colors.RESET} {message}")


def print_error(message: str) -> None:
    """Print error message in red."""
    print(f"{Colors.RED}✗{Colors.RESET} {message}", file=sys.stderr)


def print_info(message: str) -> None:
    """Print info message in blue."""
    print(f"{Colors.BLUE}ℹ{Colors.RESET} {message}")


def print_warning(message: str) -> None:
    """Print warning message in yellow."""
    print(f"{Colors.YELLOW}⚠{Colors.RESET} {message}", file=sys.stderr)


def confirm(question: str) -> bool:
    """Ask a yes/no question, defaulting to no.

    Without a terminal on stdin there is nobody to ask, so the answer is no.
    """
    if not sys.stdin.isatty():
        print_warning(f"{question} (no terminal, assuming no; pass --yes to proceed)")
        return False
    return Confirm.ask(question, default=False)
