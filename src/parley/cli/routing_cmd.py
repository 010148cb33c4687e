"""Routing inspection command."""

import os
from pathlib import Path

from rich.console import Console
from rich.table import Table

from parley.config.loader import load_config
from parley.routing.resolver import RoutingRequest, RoutingSnapshot, resolve

console = Console()


def resolve_command(
    capability: str = "chat", message: str | None = None, config_path: str | None = None
) -> None:
    """Print the resolution for a capability without revealing credentials.

    Args:
        capability: Capability to route
        message: Optional user message for keyword routes
        config_path: Optional path to config file
    """
    config = load_config(Path(config_path) if config_path else None)
    snapshot = RoutingSnapshot.from_config(config.routing, env=os.environ)
    resolution = resolve(snapshot, RoutingRequest(capability=capability, message=message))

    table = Table(title=f"Routing for '{capability}'")
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    table.add_row("Provider", resolution.provider)
    table.add_row("Model", resolution.model)
    table.add_row("Model source", resolution.model_source)
    table.add_row("Matched route", resolution.matched_route or "-")
    table.add_row("Profile", resolution.provider_profile_id or "-")
    table.add_row("Auth", resolution.auth_method or "api_key")
    table.add_row("API key", "[green]set[/green]" if resolution.api_key else "[red]missing[/red]")
    if resolution.base_url:
        table.add_row("Base URL", resolution.base_url)
    console.print(table)
