"""Tests for configuration loading."""

import pytest

from parley.config.loader import ConfigError, load_config, save_config
from parley.config.schema import ParleyConfig


def test_missing_file_uses_defaults(tmp_path):
    config = load_config(tmp_path / "absent.yaml")

    assert config == ParleyConfig()
    assert config.orchestrator.max_tool_rounds == 5
    assert config.routing.use_default_routes is False


def test_empty_file_uses_defaults(tmp_path):
    path = tmp_path / "parley.yaml"
    path.write_text("")

    assert load_config(path) == ParleyConfig()


def test_load_nested_sections(tmp_path):
    path = tmp_path / "parley.yaml"
    path.write_text(
        "server:\n"
        "  port: 9000\n"
        "budget:\n"
        "  daily_limit_usd: 5\n"
        "routing:\n"
        "  provider_profiles:\n"
        "    - id: main\n"
        "      provider: openai\n"
        "      default_model: gpt-4o-mini\n"
        "  keyword_routes:\n"
        "    - name: code\n"
        "      condition:\n"
        "        type: has_code\n"
        "      target_model: claude-opus-4-20250514\n"
    )

    config = load_config(path)

    assert config.server.port == 9000
    assert config.budget.daily_limit_usd == 5.0
    assert config.routing.provider_profiles[0].default_model == "gpt-4o-mini"
    assert config.routing.keyword_routes[0].condition.type == "has_code"


def test_invalid_yaml(tmp_path):
    path = tmp_path / "parley.yaml"
    path.write_text("server: [unclosed")

    with pytest.raises(ConfigError, match="Invalid YAML"):
        load_config(path)


def test_validation_error(tmp_path):
    path = tmp_path / "parley.yaml"
    path.write_text("orchestrator:\n  max_tool_rounds: 99\n")

    with pytest.raises(ConfigError, match="validation failed"):
        load_config(path)


def test_save_then_load(tmp_path):
    config = ParleyConfig()
    config.agent.name = "Concierge"
    config.limits.rate_limit_max = 5
    path = tmp_path / "nested" / "parley.yaml"

    save_config(config, str(path))

    loaded = load_config(path)
    assert loaded.agent.name == "Concierge"
    assert loaded.limits.rate_limit_max == 5
