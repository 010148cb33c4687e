"""Main CLI application using Typer."""

import sys

import typer
from rich.console import Console

from parley import __version__

app = typer.Typer(
    name="parley",
    help="Parley - multi-tenant LLM gateway with routing, tools and conversation memory",
    no_args_is_help=True,
)

console = Console()


@app.command()
def version():
    """Show parley version."""
    console.print(f"parley version {__version__}")


@app.command()
def serve(
    config_path: str = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to config file (default: ~/.parley/parley.yaml)",
    ),
    host: str = typer.Option(None, "--host", help="Override server bind address"),
    port: int = typer.Option(None, "--port", "-p", help="Override server port"),
):
    """Start the parley API server."""
    from parley.cli.server_cmd import serve_command

    serve_command(config_path=config_path, host=host, port=port)


@app.command()
def chat(
    config_path: str = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to config file (default: ~/.parley/parley.yaml)",
    ),
    session_id: str = typer.Option(None, "--session", "-s", help="Resume an existing session"),
):
    """Start an interactive chat session."""
    from parley.cli.chat import chat_command

    chat_command(config_path=config_path, session_id=session_id)


@app.command()
def resolve(
    capability: str = typer.Argument("chat", help="Capability to route (chat, summary, code, ...)"),
    message: str = typer.Option(None, "--message", "-m", help="Message for keyword routes"),
    config_path: str = typer.Option(None, "--config", "-c", help="Path to config file"),
):
    """Show which provider and model a capability resolves to."""
    from parley.cli.routing_cmd import resolve_command

    resolve_command(capability=capability, message=message, config_path=config_path)


@app.command()
def context(
    message: str = typer.Argument(..., help="Message to assemble context for"),
    session_id: str = typer.Option(None, "--session", "-s", help="Session whose history to use"),
    agent_id: str = typer.Option(None, "--agent", "-a", help="Agent override"),
    config_path: str = typer.Option(None, "--config", "-c", help="Path to config file"),
):
    """Show the system prompt and messages a request would be sent with."""
    from parley.cli.context_cmd import context_command

    context_command(
        message=message, session_id=session_id, agent_id=agent_id, config_path=config_path
    )


def main():
    """Entry point for the CLI."""
    try:
        app()
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted by user[/yellow]")
        sys.exit(130)
    except Exception as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)


if __name__ == "__main__":
    main()
