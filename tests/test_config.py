"""Tests for config/config_loader.py."""

from pathlib import Path

import pytest
import yaml

from config.config_loader import AppConfig, ModelSpec, load_config


@pytest.fixture
def minimal_settings(tmp_path: Path) -> Path:
    """Write a minimal valid settings.yaml to a temp path."""
    settings = {
        "defaults": {
            "rounds": 3,
            "output_dir": "./output",
            "default_panel": ["ceo", "cfo"],
        },
        "models": {
            "gpt-4o-mini": {
                "sdk": "openai",
                "quality": "advanced",
                "input_cost_per_1k": 0.00015,
                "output_cost_per_1k": 0.0006,
                "context_window": 128000,
                "api_key_env": "TEST_OPENAI_KEY",
            },
            "claude-3-haiku": {
                "sdk": "anthropic",
                "model": "claude-3-haiku-20240307",
                "quality": "standard",
                "input_cost_per_1k": 0.00025,
                "output_cost_per_1k": 0.00125,
                "context_window": 200000,
                "api_key_env": "TEST_ANTHROPIC_KEY",
            },
        },
        "selection": {"premium_model": "gpt-4o-mini", "complex_model": "gpt-4o-mini"},
        "rounds": {
            "affinity": [{"theme": "財務", "agents": ["cfo", "devil"]}],
            "risk_words": ["リスク"],
        },
        "prompts": {
            "session": "議題: {topic}",
            "initial": "初期意見",
            "interaction": "ラウンド{round}",
            "synthesis": "総括 {sections}",
            "placeholder": "申し訳ございません",
            "thinking_modes": {"normal": "標準"},
            "synthesis_sections": {"overview": "議論の概要"},
        },
    }
    path = tmp_path / "settings.yaml"
    path.write_text(yaml.dump(settings, allow_unicode=True), encoding="utf-8")
    return path


def test_load_config_returns_app_config(minimal_settings):
    assert isinstance(load_config(minimal_settings), AppConfig)


def test_load_config_defaults(minimal_settings):
    config = load_config(minimal_settings)
    assert config.defaults.rounds == 3
    assert config.defaults.default_panel == ["ceo", "cfo"]
    assert config.defaults.delay_min_sec == 2.0
    assert config.defaults.strict_agent_ids is True
    assert isinstance(config.defaults.output_dir, Path)


def test_load_config_models(minimal_settings):
    config = load_config(minimal_settings)
    spec = config.models["gpt-4o-mini"]
    assert isinstance(spec, ModelSpec)
    assert spec.model == "gpt-4o-mini"  # falls back to the id
    assert config.models["claude-3-haiku"].model == "claude-3-haiku-20240307"


def test_load_config_fills_cost_and_retry_defaults(minimal_settings):
    config = load_config(minimal_settings)
    assert config.cost.usd_to_local == 150.0
    assert config.cost.max_budget_messages == 20
    assert config.retry.max_attempts == 3
    assert config.retry.requests_per_minute is None


def test_load_config_rounds(minimal_settings):
    config = load_config(minimal_settings)
    assert config.rounds.affinity[0].theme == "財務"
    assert config.rounds.affinity[0].agents == ["cfo", "devil"]
    assert config.rounds.speakers_per_round == 3


def test_available_providers_follow_api_keys(minimal_settings, monkeypatch):
    monkeypatch.setenv("TEST_OPENAI_KEY", "sk-test")
    monkeypatch.delenv("TEST_ANTHROPIC_KEY", raising=False)
    config = load_config(minimal_settings)
    assert config.available_providers == {"openai"}


def test_blank_api_key_is_unavailable(minimal_settings, monkeypatch):
    monkeypatch.setenv("TEST_OPENAI_KEY", "   ")
    monkeypatch.delenv("TEST_ANTHROPIC_KEY", raising=False)
    assert load_config(minimal_settings).available_providers == set()


def test_missing_settings_file_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "nope.yaml")


def test_shipped_settings_load():
    config = load_config()
    assert config.defaults.rounds == 5
    assert len(config.rounds.affinity) == 5
    assert set(config.prompts.synthesis_sections) == {
        "overview", "decisions", "action_items", "risks", "success_metrics",
    }
    assert config.selection.premium_model in config.models
    assert config.selection.complex_model in config.models
