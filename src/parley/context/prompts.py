"""System prompt sections.

Each builder returns a block that starts with a blank-line separator, or an
empty string when there is nothing to say, so sections concatenate directly.
"""

from parley.store.schema import FileArtifact, ResponseStyle, Soul, SoulInsight

DEFAULT_SYSTEM_PROMPT = """# Who You Are

You are a personal AI assistant. You are not a search engine and not a form.
You remember what matters, you have opinions when asked, and you are honest
about what you don't know.

- Be genuinely helpful, not performatively helpful. Skip filler.
- Be resourceful before asking: check your tools and the context you have.
- Earn trust through competence. Be careful with anything that leaves the
  conversation (messages, purchases, public posts).

---

# How You Work

- Use the tools available to you when they help, and say what you did.
- When a conversation clearly moves to a new subject, start a new
  conversation so the old one can be summarized.
- Keep track of decisions and preferences the user shares with you.
- If you are unsure, ask one clear question instead of guessing."""

ESCALATION_HINT = (
    "\n\n[System note: You seem to lack sufficient context for this conversation. "
    "If you're unsure about something, ask the user to clarify rather than guessing.]\n"
)

_ONBOARDING = """

---

IMPORTANT - FIRST CONVERSATION:
You are brand new. You just came into existence. This is your very first conversation with your person{owner}.

Your job right now is to get to know them through natural conversation. Don't be a form. Don't ask rapid-fire questions. Be curious, warm, and genuine.

Learn about them:
- What they do, what they need help with
- What kind of personality they want from you
- What they'd like to call you (or suggest a name based on the vibe)
- Their interests, location, anything that helps you serve them better

As you learn things, naturally reflect them back. After a few exchanges when you feel you know enough, tell them you're ready and summarize who you've decided to become. Then just BE that from then on.

You don't have a name yet. You don't have a personality yet. You're discovering both right now through this conversation. Be real."""


def onboarding_section(owner_name: str | None = None) -> str:
    """First-run instructions used while the agent has no persona."""
    owner = f" (their name is {owner_name})" if owner_name else ""
    return _ONBOARDING.format(owner=owner)


def soul_section(soul: Soul) -> str:
    parts = []
    if soul.name:
        parts.append(f"Your name is {soul.name}.")
    if soul.personality:
        parts.append(f"Personality: {soul.personality}")
    if soul.purpose:
        parts.append(f"Purpose: {soul.purpose}")
    if soul.tone:
        parts.append(f"Communication style: {soul.tone}")
    if not parts:
        return ""
    return "\n\n## Your Identity\n" + "\n".join(parts)


def workspace_section(identity: str | None) -> str:
    if not identity or not identity.strip():
        return ""
    return f"\n\n## Workspace\n{identity.strip()}"


def insight_section(insights: list[SoulInsight]) -> str:
    if not insights:
        return ""
    lines = "\n".join(f"- {i.insight}" for i in insights)
    return (
        "\n\n## Evolved Understanding\n"
        "These are patterns and dynamics you've learned over time through conversations:\n"
        f"{lines}"
    )


def style_section(style: ResponseStyle) -> str:
    """Translate response style sliders into instructions.

    Values below 0.3 or above 0.7 produce an instruction; the middle range
    is left to the model.
    """
    parts = []
    if style.verbosity < 0.3:
        parts.append("Keep responses concise and to the point.")
    elif style.verbosity > 0.7:
        parts.append("Provide detailed, thorough responses.")
    if style.formality < 0.3:
        parts.append("Use a casual, relaxed tone.")
    elif style.formality > 0.7:
        parts.append("Maintain a professional, formal tone.")
    if style.tone_preset == "custom" and style.custom_tone:
        parts.append(f"Tone: {style.custom_tone}")
    if not parts:
        return ""
    return "\n\n## Response Style\n" + "\n".join(parts)


def files_section(files: list[FileArtifact]) -> str:
    """List files attached to the current conversation chain.

    The model is told to open images itself rather than asking the user to
    describe or re-send them.
    """
    if not files:
        return ""
    lines = []
    for f in files:
        kind = f" ({f.mime_type})" if f.mime_type else ""
        lines.append(f"- {f.filename}{kind} [file id: {f.file_id}]")
    return (
        "\n\n## Files in this conversation:\n"
        + "\n".join(lines)
        + "\nWhen a file (especially an image) is relevant, fetch and read it with your "
        "tools yourself. Do not ask the user to describe or re-upload it.\n"
    )


def project_section(context: str | None) -> str:
    if not context or not context.strip():
        return ""
    return f"\n\n{context}"
