"""Entry point for the nixos command dispatcher."""

import sys


def main() -> int:
    """Run the CLI and return its exit code."""
    from nixos_manager.cli.commands import cli_main
    return cli_main()


if __name__ == "__main__":
    sys.exit(main())
