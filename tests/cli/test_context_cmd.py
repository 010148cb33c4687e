"""Tests for the context inspection command."""

import asyncio

import pytest

from parley.cli.context_cmd import context_command
from parley.store.schema import MessageRecord, Session


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "parley.yaml"
    path.write_text("storage:\n  backend: memory\nsegmentation:\n  enabled: false\n")
    return str(path)


async def _seed(store) -> None:
    await store.create_session(Session(id="s1", agent_id="default"))
    await store.create_message(MessageRecord(session_id="s1", role="user", content="earlier"))
    await store.create_message(MessageRecord(session_id="s1", role="assistant", content="noted"))


def test_context_shows_history_and_message(store, config_file, capsys):
    asyncio.run(_seed(store))

    context_command("next question", session_id="s1", config_path=config_file, store=store)

    output = capsys.readouterr().out
    assert "System prompt" in output
    assert "earlier" in output
    assert "noted" in output
    assert "next question" in output
    assert "Estimated tokens" in output
    assert len(asyncio.run(store.recent_messages("s1", 10))) == 2


def test_context_unknown_agent(store, config_file, capsys):
    context_command("hi", agent_id="ghost", config_path=config_file, store=store)

    assert "Agent not found: ghost" in capsys.readouterr().out
