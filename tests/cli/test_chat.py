"""Tests for the interactive chat command."""

from unittest.mock import patch

import pytest

from parley.cli.chat import _async_chat, chat_command


@pytest.mark.asyncio
async def test_chat_loop_streams_reply(config, make_service, store):
    service = make_service(["Hi from parley"])
    with (
        patch("parley.cli.chat.ChatService.from_config", return_value=service),
        patch("parley.cli.chat.Prompt.ask", side_effect=["hello", "", "/exit"]),
        patch("parley.cli.chat.console") as mock_console,
    ):
        await _async_chat(config, "cli-session")

    output = " ".join(str(c) for c in mock_console.print.call_args_list)
    assert "Hi" in output
    assert "Goodbye" in output
    stored = await store.recent_messages("cli-session", 10)
    assert [m.content for m in stored] == ["hello", "Hi from parley"]


@pytest.mark.asyncio
async def test_chat_loop_shows_errors(config, make_service):
    config.routing.legacy.api_key = None
    with (
        patch("parley.cli.chat.ChatService.from_config", return_value=make_service()),
        patch("parley.cli.chat.Prompt.ask", side_effect=["hello", EOFError]),
        patch("parley.cli.chat.console") as mock_console,
    ):
        await _async_chat(config, None)

    output = " ".join(str(c) for c in mock_console.print.call_args_list)
    assert "Error: No API key configured" in output


def test_chat_command_bad_config(tmp_path):
    path = tmp_path / "parley.yaml"
    path.write_text("agent: [unclosed")
    with (
        patch("parley.cli.chat.asyncio.run") as mock_run,
        patch("parley.cli.chat.console") as mock_console,
    ):
        chat_command(config_path=str(path))

    mock_run.assert_not_called()
    output = " ".join(str(c) for c in mock_console.print.call_args_list)
    assert "Failed to load config" in output
