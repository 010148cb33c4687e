"""Tests for token estimation."""

from parley.context.tokens import estimate_tokens


def test_estimate_tokens_rounds_up():
    """Four characters make a token; partial tokens round up."""
    assert estimate_tokens("") == 0
    assert estimate_tokens("abcd") == 1
    assert estimate_tokens("abcde") == 2
    assert estimate_tokens("x" * 400) == 100
