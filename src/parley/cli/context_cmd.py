"""Context inspection command."""

import asyncio
from pathlib import Path

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from parley.config.loader import load_config
from parley.config.schema import ParleyConfig
from parley.context.assembler import AssembledContext
from parley.errors import NotFoundError
from parley.gateway.service import ChatRequest, ChatService
from parley.store.base import DocumentStore

console = Console()


def context_command(
    message: str,
    session_id: str | None = None,
    agent_id: str | None = None,
    config_path: str | None = None,
    store: DocumentStore | None = None,
) -> None:
    """Print the context that would be sent to the model for a message.

    The message is not stored; it only drives relevance scoring and
    escalation. A missing session is created empty.

    Args:
        message: User message to assemble context for
        session_id: Session whose history to use
        agent_id: Agent override (the session's agent if None)
        config_path: Optional path to config file
        store: Store to read from (configured backend if None)
    """
    config = load_config(Path(config_path) if config_path else None)
    try:
        assembled = asyncio.run(_assemble(config, store, message, session_id, agent_id))
    except NotFoundError as e:
        console.print(f"[red]{e}[/red]")
        return

    console.print(
        Panel(
            assembled.system_prompt or "[dim](empty)[/dim]",
            title="System prompt",
            border_style="blue",
        )
    )

    table = Table(title="Messages")
    table.add_column("#", justify="right", style="dim")
    table.add_column("Role", style="cyan")
    table.add_column("Content")
    for i, msg in enumerate(assembled.messages, 1):
        table.add_row(str(i), msg.role, msg.content)
    console.print(table)

    console.print(f"Estimated tokens: {assembled.estimated_tokens}")
    console.print(f"Escalation level: {assembled.escalation_level}")
    if assembled.conversation_id:
        console.print(f"Conversation: {assembled.conversation_id}")


async def _assemble(
    config: ParleyConfig,
    store: DocumentStore | None,
    message: str,
    session_id: str | None,
    agent_id: str | None,
) -> AssembledContext:
    service = ChatService.from_config(config, store)
    session = await service.session_for(ChatRequest(message=message, session_id=session_id))
    agent = await service.agent_for(agent_id or session.agent_id, session.gateway_id)

    active = await service.store.get_active_conversation(session.id)
    return await service.assembler.assemble(
        session.id,
        agent.id,
        message,
        conversation_id=active.id if active else None,
    )
