"""CLI command handlers."""

from __future__ import annotations

import argparse
import asyncio

from pydantic import ValidationError
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from ..core import LoggingConfig, RouterConfig, RouterError, get_logger, setup_logging
from ..providers.monitor import HealthMonitor
from ..routing.base import RejectedDecision, RoutingContext, RoutingDecision, Urgency
from ..routing.orchestrator import RoutingOrchestrator
from ..routing.specialists import SpecialistCatalog

logger = get_logger("cli")


def load_config(args: argparse.Namespace) -> RouterConfig:
    """Load configuration and apply logging settings from the command line."""
    config = RouterConfig.load(args.config)
    logging_config = config.logging
    if args.log_level:
        logging_config = LoggingConfig(**{**logging_config.model_dump(), "level": args.log_level})
    setup_logging(logging_config)
    return config


def cmd_route(args: argparse.Namespace) -> int:
    """Route one message and print the decision."""
    console = Console()
    try:
        config = load_config(args)
        orchestrator = RoutingOrchestrator.from_config(config)
    except (FileNotFoundError, ValueError, RouterError) as exc:
        console.print(f"[red]Error: {exc}[/]")
        return 1

    context = RoutingContext(
        is_voice=args.voice,
        is_call=args.call,
        urgency_hint=Urgency(args.urgency) if args.urgency else None,
        preferred_specialist=args.specialist,
        conversation_id=args.conversation,
    )

    async def _route() -> RoutingDecision | RejectedDecision:
        try:
            return await orchestrator.route(args.message, context)
        finally:
            await orchestrator.aclose()

    decision = asyncio.run(_route())

    if args.json:
        print(decision.model_dump_json(indent=2))
        return 1 if decision.error else 0

    if isinstance(decision, RejectedDecision):
        console.print(
            Panel(
                f"[bold]Reason:[/] {decision.reason}\n[bold]Kind:[/] {decision.error_kind}",
                title=f"[red]Rejected {decision.id}[/]",
                border_style="red",
                expand=False,
            )
        )
        return 1

    table = Table(title=f"Routing Decision {decision.id}")
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    table.add_row("Specialist", decision.target_specialist)
    table.add_row("QoS tier", decision.qos_tier.name)
    table.add_row("Category", decision.intent.category.value)
    table.add_row("Complexity", decision.intent.complexity.value)
    table.add_row("Urgency", decision.intent.urgency.value)
    table.add_row("Estimated cost", f"${decision.estimated_cost:.6f}")
    verdict = decision.council_verdict
    table.add_row(
        "Council",
        f"{verdict.recommendation} ({verdict.reason})" if verdict else "-",
    )
    table.add_row("Total time", f"{decision.timing.total_ms:.1f}ms")
    console.print(table)
    return 0


def cmd_health(args: argparse.Namespace) -> int:
    """Probe every configured provider once and print a health table."""
    console = Console()
    try:
        config = load_config(args)
        orchestrator = RoutingOrchestrator.from_config(config)
    except (FileNotFoundError, ValueError, RouterError) as exc:
        console.print(f"[red]Error: {exc}[/]")
        return 1

    if not len(orchestrator.registry):
        console.print("[yellow]No providers configured.[/]")
        return 0

    monitor = orchestrator.monitor or HealthMonitor(orchestrator.registry)

    async def _probe() -> None:
        try:
            await monitor.probe_all()
        finally:
            await orchestrator.aclose()

    asyncio.run(_probe())

    table = Table(title="Provider Health")
    table.add_column("Provider", style="cyan")
    table.add_column("Kind", style="magenta")
    table.add_column("Status")
    table.add_column("Latency (ms)")
    table.add_column("Failures")
    table.add_column("Last error")

    all_healthy = True
    for provider in orchestrator.registry.providers():
        state = provider.health
        all_healthy = all_healthy and state.healthy
        table.add_row(
            provider.id,
            provider.kind.value,
            "[green]Healthy[/]" if state.healthy else "[red]Unhealthy[/]",
            f"{state.latency_ms:.0f}" if state.latency_ms is not None else "-",
            str(state.consecutive_failures),
            state.last_error or "",
        )
    console.print(table)
    return 0 if all_healthy else 2


def cmd_config(args: argparse.Namespace) -> int:
    """Handle configuration commands."""
    if args.config_command != "validate":
        print("Usage: capability-router config <subcommand>")
        print("Subcommands: validate")
        return 1

    console = Console()
    source = args.config or "environment"
    console.print(f"\n[bold]Validating Configuration: {source}[/]\n")
    try:
        config = RouterConfig.load(args.config)
    except FileNotFoundError as exc:
        console.print(f"[red]Error: {exc}[/]")
        return 1
    except (ValidationError, ValueError) as exc:
        console.print("[red]Configuration validation failed:[/]")
        console.print(f"  {exc}")
        return 1

    console.print("[green]Configuration is valid![/]\n")
    summary = [
        f"[bold]Providers:[/] {len(config.providers)}",
        f"[bold]Fallback chains:[/] {', '.join(config.fallback_chains) or '-'}",
        f"[bold]Daily budget:[/] ${config.daily_budget:.2f}",
        f"[bold]Max retries:[/] {config.max_retries}",
        f"[bold]Health failure ceiling:[/] {config.health_failure_ceiling}",
        f"[bold]Scheduler enabled:[/] {config.scheduler.enabled}",
    ]
    console.print("\n".join(summary))
    return 0


def cmd_specialists(args: argparse.Namespace) -> int:
    """List the specialist catalog."""
    console = Console()
    table = Table(title="Specialists")
    table.add_column("Id", style="cyan")
    table.add_column("Name")
    table.add_column("Categories", style="magenta")
    table.add_column("Role")
    table.add_column("Review")

    for specialist in SpecialistCatalog().list():
        flags = []
        if specialist.handles_finance:
            flags.append("finance")
        if specialist.handles_security:
            flags.append("security")
        table.add_row(
            specialist.id,
            specialist.name,
            ", ".join(category.value for category in specialist.categories),
            specialist.role,
            ", ".join(flags) or "-",
        )
    console.print(table)
    return 0
