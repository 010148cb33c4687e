"""Cheap token estimation used for context budgeting."""

import math

CHARS_PER_TOKEN = 4


def estimate_tokens(text: str) -> int:
    """Estimate the token count of a text at roughly four characters per token.

    Args:
        text: Text to measure

    Returns:
        ``ceil(len(text) / 4)``; 0 for an empty string
    """
    return math.ceil(len(text) / CHARS_PER_TOKEN)
