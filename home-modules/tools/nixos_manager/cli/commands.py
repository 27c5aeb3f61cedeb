"""CLI command handlers for the nixos dispatcher.

The first argument selects a command from COMMANDS (by name or alias); the
rest is parsed by that command's own argparse parser. A first argument that
starts with ``-`` is handed to nix-env unchanged.
"""

import argparse
import os
import sys
from dataclasses import dataclass
from typing import Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from nixos_manager import __version__
from nixos_manager.core.config import DispatchConfig
from nixos_manager.core.dryrun import DryRunResult
from nixos_manager.core.errors import (
    ConfirmationDeclined,
    DelegatedToolFailure,
    NixosManagerError,
)
from nixos_manager.core.generations import GenerationManager, GenerationStore
from nixos_manager.core.runner import CommandRunner
from nixos_manager.core.swap import SwapEngine

from . import invocations
from .formatters import (
    console,
    diff_to_json,
    format_generation_diff,
    format_generation_table,
    format_swap_outcome,
    generations_to_json,
)
from .logging_config import get_global_logger, init_logging, log_timing
from .output import Colors, confirm, print_error, print_info, print_success


PROG = "nixos"


@dataclass
class CommandContext:
    """Everything a handler needs, built once per invocation."""

    config: DispatchConfig
    runner: CommandRunner
    dry_run_result: DryRunResult
    confirm: Callable[[str], bool] = confirm


Handler = Callable[[argparse.Namespace, CommandContext], int]


@dataclass(frozen=True)
class Command:
    """One row of the command table.

    Attributes:
        name: Canonical subcommand name
        help: One-line description for usage text
        handler: Function running the command
        aliases: Short forms resolving to the same command
        configure: Adds the command's own arguments to its parser
        usage: Argument synopsis shown in usage text
        remainder: Destination collecting unrecognised arguments, which are
            forwarded to the external tool
    """

    name: str
    help: str
    handler: Handler
    aliases: Tuple[str, ...] = ()
    configure: Optional[Callable[[argparse.ArgumentParser], None]] = None
    usage: str = ""
    remainder: Optional[str] = None

    def build_parser(self) -> argparse.ArgumentParser:
        parser = argparse.ArgumentParser(
            prog=f"{PROG} {self.name}",
            description=self.help,
            parents=[_common_parser()],
            allow_abbrev=False,
        )
        if self.configure is not None:
            self.configure(parser)
        return parser

    def parse(self, argv: Sequence[str]) -> argparse.Namespace:
        """Parse the arguments after the command token.

        For commands forwarding arguments to an external tool, the global
        flags are lifted out first so the remainder cannot swallow them.
        """
        parser = self.build_parser()
        if self.remainder is None:
            return parser.parse_args(argv)
        flags, rest = split_common_flags(argv)
        args, unknown = parser.parse_known_args(flags + rest)
        setattr(args, self.remainder, list(getattr(args, self.remainder) or []) + unknown)
        return args


# Flags owned by the dispatcher wherever they appear after the command token
COMMON_FLAGS = frozenset({"--verbose", "-v", "--debug", "--yes", "-y", "--dry-run", "--version"})


def split_common_flags(argv: Sequence[str]) -> Tuple[List[str], List[str]]:
    """Separate dispatcher flags from arguments meant for the external tool.

    Scanning stops at ``--``; everything after it is left for the tool.
    """
    flags: List[str] = []
    rest: List[str] = []
    for index, arg in enumerate(argv):
        if arg == "--":
            rest.extend(argv[index:])
            break
        if arg in COMMON_FLAGS:
            flags.append(arg)
        else:
            rest.append(arg)
    return flags, rest


def _common_parser(nested: bool = False) -> argparse.ArgumentParser:
    """Flags accepted after every subcommand.

    Nested parsers suppress their defaults so they do not overwrite flags
    already given before the nested action.
    """
    common = argparse.ArgumentParser(add_help=False, argument_default=argparse.SUPPRESS if nested else None)
    if not nested:
        common.add_argument(
            "--version",
            action="version",
            version=f"{PROG} {__version__}"
        )
    common.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose logging (INFO level)"
    )
    common.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging (DEBUG level, includes verbose)"
    )
    common.add_argument(
        "--yes", "-y",
        action="store_true",
        help="Answer yes to confirmation prompts"
    )
    common.add_argument(
        "--dry-run",
        action="store_true",
        help="Print external commands and file changes instead of running them"
    )
    return common


# ============================================================================
# Pass-through commands
# ============================================================================


def cmd_check(args: argparse.Namespace, ctx: CommandContext) -> int:
    return ctx.runner.run_all(invocations.flake_check(ctx.config))


def cmd_show(args: argparse.Namespace, ctx: CommandContext) -> int:
    return ctx.runner.run_all(invocations.flake_show(ctx.config))


def cmd_update(args: argparse.Namespace, ctx: CommandContext) -> int:
    return ctx.runner.run_all(invocations.flake_update(ctx.config, args.inputs))


def cmd_rebuild(args: argparse.Namespace, ctx: CommandContext) -> int:
    with log_timing(f"nixos-rebuild {args.action}", get_global_logger()):
        return ctx.runner.run_all(invocations.rebuild(ctx.config, args.action, args.extra))


def cmd_test(args: argparse.Namespace, ctx: CommandContext) -> int:
    return ctx.runner.run_all(invocations.fast_test(ctx.config, args.extra))


def cmd_theme(args: argparse.Namespace, ctx: CommandContext) -> int:
    return ctx.runner.run_all(invocations.theme(ctx.config, args.name))


def cmd_rollback(args: argparse.Namespace, ctx: CommandContext) -> int:
    return ctx.runner.run_all(invocations.rollback(ctx.config))


def cmd_vm(args: argparse.Namespace, ctx: CommandContext) -> int:
    return ctx.runner.run_all(invocations.vm(ctx.config))


def cmd_upgrade(args: argparse.Namespace, ctx: CommandContext) -> int:
    return ctx.runner.run_all(invocations.upgrade(ctx.config))


def cmd_search(args: argparse.Namespace, ctx: CommandContext) -> int:
    return ctx.runner.run_all(invocations.search(ctx.config, args.terms))


def cmd_shell(args: argparse.Namespace, ctx: CommandContext) -> int:
    return ctx.runner.run_all(invocations.shell(ctx.config, args.packages))


def cmd_gc(args: argparse.Namespace, ctx: CommandContext) -> int:
    return ctx.runner.run_all(invocations.garbage_collect(ctx.config, system=args.system))


def cmd_push(args: argparse.Namespace, ctx: CommandContext) -> int:
    return ctx.runner.run_all(invocations.push(ctx.config, args.remote))


# ============================================================================
# Swap and generations
# ============================================================================


def cmd_swap(args: argparse.Namespace, ctx: CommandContext) -> int:
    """Toggle store links under the given paths between linked and editable."""
    engine = SwapEngine(ctx.config, ctx.confirm, ctx.dry_run_result)
    for outcome in engine.iter_swap(args.paths):
        print_success(format_swap_outcome(outcome))
    return 0


def cmd_generations(args: argparse.Namespace, ctx: CommandContext) -> int:
    """List, diff or remove generations of the configured profile."""
    store = GenerationStore(ctx.config, ctx.runner)
    manager = GenerationManager(store, ctx.confirm)
    action = args.action or "list"

    if action == "list":
        generations = manager.list()
        if args.json:
            print(generations_to_json(generations))
        else:
            console.print(format_generation_table(generations, str(ctx.config.profile)))
        return 0

    if action == "diff":
        entries = manager.diff(args.first, args.second)
        if args.json:
            print(diff_to_json(entries, args.first, args.second))
        else:
            console.print(format_generation_diff(entries, args.first, args.second))
        return 0

    if action == "remove":
        manager.remove(args.selector)
        if not ctx.config.dry_run:
            print_success(f"Removed {' '.join(args.selector)}")
        return 0

    # switch
    manager.switch_to(args.number)
    return 0


def cmd_help(args: argparse.Namespace, ctx: CommandContext) -> int:
    print(usage_text())
    return 0


# ============================================================================
# Argument configuration
# ============================================================================


def _rest(name: str, help_text: str) -> Callable[[argparse.ArgumentParser], None]:
    def configure(parser: argparse.ArgumentParser) -> None:
        parser.add_argument(name, nargs=argparse.REMAINDER, help=help_text)
    return configure


def _configure_rebuild(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "action",
        nargs="?",
        default=invocations.DEFAULT_REBUILD_ACTION,
        help=f"nixos-rebuild action (default: {invocations.DEFAULT_REBUILD_ACTION})"
    )
    parser.add_argument("extra", nargs=argparse.REMAINDER, help="Extra nixos-rebuild arguments")


def _configure_theme(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("name", nargs="?", help="Theme name (default: $NIXOS_THEME)")


def _configure_swap(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("paths", nargs="+", help="Files or directories to swap")


def _configure_gc(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--system",
        action="store_true",
        help="Also collect system generations and rewrite boot entries (uses sudo)"
    )


def _configure_push(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("remote", nargs="?", help="ssh destination (default: $NIXOS_REMOTE)")


def _configure_generations(parser: argparse.ArgumentParser) -> None:
    actions = parser.add_subparsers(dest="action")

    parser_list = actions.add_parser("list", help="List generations", parents=[_common_parser(nested=True)])
    parser_list.add_argument("--json", action="store_true", help="Output in JSON format")

    parser_diff = actions.add_parser(
        "diff", help="Compare the closures of two generations", parents=[_common_parser(nested=True)]
    )
    parser_diff.add_argument("first", type=int, help="Base generation number")
    parser_diff.add_argument("second", type=int, help="Generation to compare against")
    parser_diff.add_argument("--json", action="store_true", help="Output in JSON format")

    parser_remove = actions.add_parser("remove", help="Delete generations", parents=[_common_parser(nested=True)])
    parser_remove.add_argument("selector", nargs="+", help="'old' or generation numbers")

    parser_switch = actions.add_parser(
        "switch", help="Not supported; see 'rollback'", parents=[_common_parser(nested=True)]
    )
    parser_switch.add_argument("number", type=int, help="Generation number")

    parser.set_defaults(json=False)


COMMANDS: List[Command] = [
    Command("check", "Check the system flake", cmd_check, aliases=("ch",)),
    Command("show", "Show the system flake outputs", cmd_show, aliases=("sh",)),
    Command(
        "update", "Update flake inputs (all, or the ones named)", cmd_update,
        aliases=("u",), configure=_rest("inputs", "Inputs to update"), usage="[INPUT...]",
        remainder="inputs",
    ),
    Command(
        "rebuild", "Run nixos-rebuild for this host", cmd_rebuild,
        aliases=("re",), configure=_configure_rebuild, usage="[ACTION] [ARGS...]",
        remainder="extra",
    ),
    Command(
        "test", "Quick rebuild and activate without a boot entry", cmd_test,
        aliases=("t",), configure=_rest("extra", "Extra nixos-rebuild arguments"),
        usage="[ARGS...]", remainder="extra",
    ),
    Command("theme", "Test the configuration with a theme", cmd_theme,
            configure=_configure_theme, usage="[NAME]"),
    Command("rollback", "Switch back to the previous generation", cmd_rollback),
    Command("vm", "Build a VM of the configuration", cmd_vm),
    Command("upgrade", "Update all inputs, then rebuild and switch", cmd_upgrade, aliases=("up",)),
    Command(
        "search", "Search nixpkgs", cmd_search,
        aliases=("s",), configure=_rest("terms", "Search terms"), usage="TERM...",
        remainder="terms",
    ),
    Command("shell", "Open a shell with packages from nixpkgs", cmd_shell,
            configure=_rest("packages", "Package attribute names"), usage="PKG...",
            remainder="packages"),
    Command("swap", "Swap store links for editable copies, or back", cmd_swap,
            configure=_configure_swap, usage="PATH..."),
    Command("gc", "Collect garbage and optimise the store", cmd_gc,
            configure=_configure_gc, usage="[--system]"),
    Command("push", "Copy the flake to a host and rebuild it there", cmd_push,
            configure=_configure_push, usage="[REMOTE]"),
    Command(
        "generations", "List, diff or remove system generations", cmd_generations,
        aliases=("gen",), configure=_configure_generations,
        usage="[list | diff A B | remove old|N...]",
    ),
    Command("help", "Show this help", cmd_help, aliases=("h",)),
]


def _build_command_index(commands: Sequence[Command]) -> Dict[str, Command]:
    index: Dict[str, Command] = {}
    for command in commands:
        for token in (command.name, *command.aliases):
            if token in index:
                raise ValueError(f"Duplicate command token: {token}")
            index[token] = command
    return index


COMMAND_INDEX: Dict[str, Command] = _build_command_index(COMMANDS)


def resolve_command(token: str) -> Optional[Command]:
    """Look up a command by name or alias."""
    return COMMAND_INDEX.get(token)


def usage_text() -> str:
    lines = [
        f"{Colors.BOLD}{PROG} {__version__}{Colors.RESET} - NixOS command dispatcher",
        "",
        f"Usage: {PROG} COMMAND [ARGS...] [--verbose] [--debug] [--yes] [--dry-run] [--version]",
        f"       {PROG} -FLAGS...          (passed to nix-env)",
        "",
        "Commands:",
    ]
    for command in COMMANDS:
        names = command.name
        if command.aliases:
            names += f" ({', '.join(command.aliases)})"
        synopsis = f"{names} {command.usage}".rstrip()
        lines.append(f"  {synopsis:<48} {command.help}")
    lines.extend([
        "",
        "Environment:",
        "  NIXOS_FLAKE     flake directory (default /etc/nixos)",
        "  NIXOS_HOST      host attribute (default: hostname)",
        "  NIXOS_REMOTE    default target for push",
        "  NIXOS_THEME     default theme for theme",
        "  NIXOS_DRY_RUN   print commands instead of running them",
    ])
    return "\n".join(lines)


def _print_dry_run(result: DryRunResult) -> None:
    if result.changes or result.warnings:
        print(f"{Colors.GRAY}{result}{Colors.RESET}")


def _run(handler: Callable[[], int], dry_run_result: DryRunResult, dry_run: bool) -> int:
    try:
        return handler()
    except ConfirmationDeclined as e:
        print_info(str(e))
        return e.exit_code
    except DelegatedToolFailure as e:
        print_error(str(e))
        return e.exit_code
    except NixosManagerError as e:
        print_error(str(e))
        return e.exit_code
    except ValueError as e:
        print_error(str(e))
        return 1
    except OSError as e:
        print_error(f"Filesystem error: {e}")
        return 1
    finally:
        if dry_run:
            _print_dry_run(dry_run_result)


def cli_main(
    argv: Optional[Sequence[str]] = None,
    environ: Optional[Mapping[str, str]] = None,
    confirm_callback: Optional[Callable[[str], bool]] = None,
) -> int:
    """Main CLI entry point.

    Args:
        argv: Arguments without the program name (default: sys.argv[1:])
        environ: Environment (default: os.environ)
        confirm_callback: Replacement for the interactive prompt

    Returns:
        Process exit code
    """
    argv = list(sys.argv[1:] if argv is None else argv)
    environ = os.environ if environ is None else environ

    if not argv:
        print(usage_text())
        return 0

    token = argv[0]
    dry_run_result = DryRunResult()

    if token.startswith("-"):
        init_logging()
        config = DispatchConfig.from_env(environ)
        runner = CommandRunner(config, base_env=environ, dry_run_result=dry_run_result)
        return _run(
            lambda: runner.run_all(invocations.passthrough(config, argv)),
            dry_run_result,
            config.dry_run,
        )

    command = resolve_command(token)
    if command is None:
        print_error(f"Unknown command: {token}")
        print(usage_text(), file=sys.stderr)
        return 1

    args = command.parse(argv[1:])
    init_logging(verbose=args.verbose, debug=args.debug)

    config = DispatchConfig.from_env(
        environ,
        dry_run=True if args.dry_run else None,
        assume_yes=True if args.yes else None,
    )
    runner = CommandRunner(config, base_env=environ, dry_run_result=dry_run_result)
    ctx = CommandContext(
        config=config,
        runner=runner,
        dry_run_result=dry_run_result,
        confirm=confirm_callback or confirm,
    )
    get_global_logger().debug(f"Dispatching {token!r} to {command.name}")
    return _run(lambda: command.handler(args, ctx), dry_run_result, config.dry_run)


if __name__ == "__main__":
    sys.exit(cli_main())
