"""Tests for CLI helpers and flag handling in hexamind/cli.py."""

import textwrap

import pytest
from click.testing import CliRunner

from hexamind.cli import _build_gateway, _parse_agent_ids, _read_question_file, _resolve_model, main
from hexamind.errors import ConfigurationError
from hexamind.models import ThinkingMode
from hexamind.providers.http_gateway import HttpGatewayProvider


def test_parse_agent_ids_from_flag():
    assert _parse_agent_ids("ceo, cfo,,devil") == ["ceo", "cfo", "devil"]


def test_parse_agent_ids_from_frontmatter_list():
    assert _parse_agent_ids(["ceo", "cmo"]) == ["ceo", "cmo"]


def test_parse_agent_ids_empty():
    assert _parse_agent_ids(None) is None
    assert _parse_agent_ids(" , ") is None


def test_read_question_file_with_frontmatter(tmp_path):
    path = tmp_path / "question.md"
    path.write_text(
        textwrap.dedent(
            """\
            ---
            agents: [ceo, cfo, devil]
            mode: critical
            rounds: 2
            budget: 50
            ---
            新工場を建設すべきか？
            """
        ),
        encoding="utf-8",
    )
    text, meta = _read_question_file(path)
    assert text == "新工場を建設すべきか？"
    assert meta == {"agents": ["ceo", "cfo", "devil"], "mode": "critical", "rounds": 2, "budget": 50}


def test_read_question_file_without_frontmatter(tmp_path):
    path = tmp_path / "plain.md"
    path.write_text("価格を改定すべきか？\n", encoding="utf-8")
    assert _read_question_file(path) == ("価格を改定すべきか？", {})


def test_resolve_model_flag_beats_env(sample_app_config, monkeypatch):
    monkeypatch.setenv("HEXAMIND_MODEL", "gpt-4o")
    spec = _resolve_model(sample_app_config, "gpt-3.5-turbo", "議題", ThinkingMode.NORMAL, False)
    assert spec.id == "gpt-3.5-turbo"


def test_resolve_model_uses_env_override(sample_app_config, monkeypatch):
    monkeypatch.setenv("HEXAMIND_MODEL", "gpt-4o")
    assert _resolve_model(sample_app_config, None, "議題", ThinkingMode.NORMAL, False).id == "gpt-4o"


def test_resolve_model_default(sample_app_config, monkeypatch):
    monkeypatch.delenv("HEXAMIND_MODEL", raising=False)
    assert _resolve_model(sample_app_config, None, "議題", ThinkingMode.NORMAL, False).id == "gpt-4o-mini"


def test_build_gateway_for_http_model(sample_app_config):
    spec = sample_app_config.models["gpt-4o-mini"]
    spec.sdk = "http"
    spec.base_url = "https://board.example/api/ai/discussion"
    gateway = _build_gateway(spec, sample_app_config)
    assert gateway.provider_name == "http"
    assert gateway.policy.max_attempts == 3


def test_build_gateway_rejects_unknown_sdk(sample_app_config):
    spec = sample_app_config.models["gpt-4o-mini"]
    spec.sdk = "carrier-pigeon"
    with pytest.raises(ConfigurationError):
        _build_gateway(spec, sample_app_config)


def test_http_provider_class_registered():
    from hexamind.cli import PROVIDER_CLASSES

    assert PROVIDER_CLASSES["http"] is HttpGatewayProvider
    assert set(PROVIDER_CLASSES) == {"openai", "anthropic", "gemini", "http"}


def test_list_agents_flag():
    result = CliRunner().invoke(main, ["--list-agents"])
    assert result.exit_code == 0
    assert "devil" in result.output


def test_estimate_only_makes_no_calls(monkeypatch):
    monkeypatch.delenv("HEXAMIND_MODEL", raising=False)
    result = CliRunner().invoke(main, ["新規事業に参入すべきか", "--agents", "ceo,cfo", "--estimate-only"])
    assert result.exit_code == 0
    assert "gpt-4o-mini" in result.output
    assert "Messages: 5" in result.output


def test_missing_question_exits_with_error():
    result = CliRunner().invoke(main, [])
    assert result.exit_code == 1
    assert "Provide a QUESTION" in result.output


def test_budget_picks_model_when_no_override(sample_app_config, monkeypatch):
    monkeypatch.delenv("HEXAMIND_MODEL", raising=False)
    spec = _resolve_model(sample_app_config, None, "議題", ThinkingMode.NORMAL, False, 1000, 3, "high")
    assert spec.id == "gpt-4o"


def test_budget_does_not_beat_explicit_model(sample_app_config, monkeypatch):
    monkeypatch.delenv("HEXAMIND_MODEL", raising=False)
    spec = _resolve_model(sample_app_config, "gpt-3.5-turbo", "議題", ThinkingMode.NORMAL, False, 1000, 3, "high")
    assert spec.id == "gpt-3.5-turbo"


def test_budget_ignores_models_without_api_key(sample_app_config, monkeypatch):
    monkeypatch.delenv("HEXAMIND_MODEL", raising=False)
    sample_app_config.models["gpt-4o"].sdk = "anthropic"
    spec = _resolve_model(sample_app_config, None, "議題", ThinkingMode.NORMAL, False, 1000, 3, "high")
    assert spec.id == "gpt-4o-mini"


def test_estimate_counts_each_agent_once(monkeypatch):
    monkeypatch.delenv("HEXAMIND_MODEL", raising=False)
    result = CliRunner().invoke(main, ["新規事業に参入すべきか", "--agents", "ceo,cfo,ceo", "--estimate-only"])
    assert result.exit_code == 0
    assert "Messages: 5" in result.output


def test_unknown_agent_exits_before_estimate():
    result = CliRunner().invoke(main, ["新規事業に参入すべきか", "--agents", "ceo,janitor", "--estimate-only"])
    assert result.exit_code == 1
    assert "janitor" in result.output
    assert "Messages:" not in result.output


def test_non_numeric_frontmatter_rounds_exits_with_error(tmp_path):
    path = tmp_path / "question.md"
    path.write_text("---\nrounds: many\n---\n新工場を建設すべきか？\n", encoding="utf-8")
    result = CliRunner().invoke(main, ["--file", str(path), "--estimate-only"])
    assert result.exit_code == 1
    assert "Error:" in result.output
    assert "many" in result.output
