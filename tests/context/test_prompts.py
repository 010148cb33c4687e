"""Tests for system prompt sections."""

from parley.context.prompts import (
    files_section,
    insight_section,
    onboarding_section,
    project_section,
    soul_section,
    style_section,
    workspace_section,
)
from parley.store.schema import FileArtifact, ResponseStyle, Soul, SoulInsight


def test_onboarding_mentions_owner_name():
    """The owner's name is woven into the onboarding block when known."""
    assert "(their name is Alex)" in onboarding_section("Alex")
    assert "their name is" not in onboarding_section(None)
    assert "FIRST CONVERSATION" in onboarding_section()


def test_soul_section():
    """Only the persona fields that are set are rendered."""
    text = soul_section(Soul(gateway_id="gw", name="Nova", tone="warm"))

    assert text.startswith("\n\n## Your Identity\n")
    assert "Your name is Nova." in text
    assert "Communication style: warm" in text
    assert "Personality" not in text
    assert soul_section(Soul(gateway_id="gw")) == ""


def test_style_section_thresholds():
    """Only slider values outside 0.3..0.7 produce instructions."""
    assert style_section(ResponseStyle()) == ""

    text = style_section(
        ResponseStyle(verbosity=0.1, formality=0.9, tone_preset="custom", custom_tone="playful")
    )

    assert "concise" in text
    assert "formal" in text
    assert "Tone: playful" in text


def test_files_section_lists_ids_and_mime_types():
    """Files are listed with their ids so tools can fetch them."""
    files = [
        FileArtifact(conversation_id="c1", file_id="f1", filename="plan.pdf", mime_type="application/pdf"),
        FileArtifact(conversation_id="c1", file_id="f2", filename="notes.txt"),
    ]

    text = files_section(files)

    assert "- plan.pdf (application/pdf) [file id: f1]" in text
    assert "- notes.txt [file id: f2]" in text
    assert files_section([]) == ""


def test_optional_sections_empty_when_blank():
    """Blank inputs produce no section."""
    assert workspace_section("  ") == ""
    assert workspace_section("Acme Inc support desk") == "\n\n## Workspace\nAcme Inc support desk"
    assert insight_section([]) == ""
    assert "- Prefers bullet points" in insight_section(
        [SoulInsight(agent_id="a1", insight="Prefers bullet points")]
    )
    assert project_section(None) == ""
    assert project_section("## Project: Launch") == "\n\n## Project: Launch"
