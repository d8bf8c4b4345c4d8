"""CLI argument parser."""

from __future__ import annotations

import argparse

from .. import __version__


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser.

    Returns:
        ArgumentParser instance
    """
    parser = argparse.ArgumentParser(
        prog="capability-router",
        description="Route messages to specialists with health-gated capability dispatch",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Route a message and show the decision
  capability-router -c router.yaml route "What's the weather effect on my portfolio?"

  # Route a voice turn and print JSON
  capability-router route "call me back" --voice --json

  # Probe every configured provider once
  capability-router -c router.yaml health

  # Validate a configuration file
  capability-router -c router.yaml config validate
        """,
    )

    parser.add_argument(
        "-V",
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "-c",
        "--config",
        default=None,
        help="Path to a YAML or JSON configuration file (default: environment only)",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Override the configured log level",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    route_parser = subparsers.add_parser("route", help="Route a message and print the decision")
    route_parser.add_argument("message", help="Message text to route")
    route_parser.add_argument("--voice", action="store_true", help="Treat as a voice turn")
    route_parser.add_argument("--call", action="store_true", help="Treat as a telephony turn")
    route_parser.add_argument(
        "--urgency",
        choices=["low", "medium", "high"],
        default=None,
        help="Urgency hint overriding the classified urgency",
    )
    route_parser.add_argument("--specialist", default=None, help="Preferred specialist id")
    route_parser.add_argument("--conversation", default=None, help="Conversation id")
    route_parser.add_argument("--json", action="store_true", help="Print the decision as JSON")

    subparsers.add_parser("health", help="Probe every configured provider once")

    config_parser = subparsers.add_parser("config", help="Configuration commands")
    config_sub = config_parser.add_subparsers(dest="config_command")
    config_sub.add_parser("validate", help="Load and validate the configuration")

    subparsers.add_parser("specialists", help="List the specialist catalog")

    return parser
