"""Command-line interface for the capability router."""

from __future__ import annotations

from collections.abc import Sequence

from .commands import cmd_config, cmd_health, cmd_route, cmd_specialists, load_config
from .parser import build_parser


def main(argv: Sequence[str] | None = None) -> int:
    """CLI entry point.

    Args:
        argv: Optional sequence of CLI arguments (without the program name).

    Returns:
        Process exit code. 0 for success.
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        raise SystemExit(0)

    handlers = {
        "route": cmd_route,
        "health": cmd_health,
        "config": cmd_config,
        "specialists": cmd_specialists,
    }

    handler = handlers.get(args.command)
    if handler:
        return handler(args)

    parser.print_help()
    return 1


__all__ = [
    "main",
    "build_parser",
    "load_config",
    "cmd_route",
    "cmd_health",
    "cmd_config",
    "cmd_specialists",
]
