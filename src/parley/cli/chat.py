"""Interactive chat REPL command."""

import asyncio
import logging
from pathlib import Path

from rich.console import Console
from rich.panel import Panel
from rich.prompt import Prompt

from parley.config.loader import load_config
from parley.config.schema import ParleyConfig
from parley.gateway.service import ChatRequest, ChatService
from parley.orchestrator.events import DoneEvent, ErrorEvent, TokenEvent, ToolUseEvent

console = Console()
logger = logging.getLogger(__name__)


def chat_command(config_path: str | None = None, session_id: str | None = None) -> None:
    """Start interactive chat session.

    Args:
        config_path: Optional path to config file
        session_id: Existing session to continue
    """
    path = Path(config_path) if config_path else None
    try:
        config = load_config(path)
    except Exception as e:
        console.print(f"[red]Failed to load config: {e}[/red]")
        return

    console.print(
        Panel.fit(
            "[bold blue]parley chat[/bold blue]\n"
            f"Agent: {config.agent.name}\n"
            "Type /exit to quit",
            border_style="blue",
        )
    )

    asyncio.run(_async_chat(config, session_id))


async def _async_chat(config: ParleyConfig, session_id: str | None) -> None:
    service = ChatService.from_config(config)

    while True:
        try:
            user_input = Prompt.ask("\n[bold cyan]You[/bold cyan]")
        except (EOFError, KeyboardInterrupt):
            break

        text = user_input.strip()
        if not text:
            continue
        if text in ("/exit", "/quit"):
            break

        console.print("\n[bold green]parley[/bold green]")
        try:
            async for event in service.stream(ChatRequest(message=text, session_id=session_id)):
                if isinstance(event, TokenEvent):
                    console.print(event.text, end="", markup=False, highlight=False)
                elif isinstance(event, ToolUseEvent):
                    console.print(f"\n[dim]tools: {', '.join(event.tools)}[/dim]")
                elif isinstance(event, ErrorEvent):
                    console.print(f"\n[red]Error: {event.message}[/red]")
                elif isinstance(event, DoneEvent):
                    session_id = event.session_id
                    console.print(
                        f"\n[dim]{event.model or '-'} | {event.input_tokens} in / "
                        f"{event.output_tokens} out | {event.latency_ms} ms[/dim]"
                    )
        except KeyboardInterrupt:
            if session_id:
                service.stop(session_id)
            console.print("\n[yellow]Interrupted[/yellow]")
        except Exception as e:
            logger.error("Chat request failed: %s", e)
            console.print(f"\n[red]Error: {e}[/red]")

    await service.drain()
    console.print("\n[cyan]Goodbye![/cyan]")
