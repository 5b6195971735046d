from __future__ import annotations

import pytest
from pydantic import ValidationError

from promptlens.config import PromptLensConfig
from promptlens.constants import DEFAULT_RATE_LIMITS


def test_config_defaults() -> None:
    cfg = PromptLensConfig()

    assert cfg.service_list() == ("ollama",)
    assert cfg.ollama_model == "llama3.2"
    assert cfg.ollama_host == "http://localhost:11434"
    assert cfg.analysis_mode == "batch"
    assert cfg.max_retries is None
    assert cfg.rules == {}
    assert cfg.context is None


def test_config_masks_api_keys(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PROMPTLENS_ANTHROPIC_API_KEY", "sk-ant-dummy")
    monkeypatch.setenv("PROMPTLENS_GOOGLE_API_KEY", "g-dummy")
    cfg = PromptLensConfig()

    assert cfg.anthropic_api_key.get_secret_value() == "sk-ant-dummy"
    assert "sk-ant-dummy" not in repr(cfg)
    assert "g-dummy" not in repr(cfg)


def test_service_list_is_ordered_and_filtered(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PROMPTLENS_SERVICES", " Anthropic , openai, ollama, anthropic ")
    assert PromptLensConfig().service_list() == ("anthropic", "ollama")


def test_host_and_mode_are_normalized(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PROMPTLENS_OLLAMA_HOST", "http://gpu-box:11434/ ")
    monkeypatch.setenv("PROMPTLENS_ANALYSIS_MODE", "Individual")
    cfg = PromptLensConfig()

    assert cfg.ollama_host == "http://gpu-box:11434"
    assert cfg.analysis_mode == "individual"


def test_rules_and_context_parse_from_json(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PROMPTLENS_RULES", '{"vague": {"severity": "low"}, "imperative": {"enabled": false}}')
    monkeypatch.setenv("PROMPTLENS_CONTEXT", '{"role": "sre", "tech_stack": ["go", "k8s"]}')
    cfg = PromptLensConfig()

    assert cfg.rules["vague"].severity == "low"
    assert cfg.rules["imperative"].enabled is False
    assert cfg.context.role == "sre"
    assert cfg.context.tech_stack == ["go", "k8s"]


def test_invalid_analysis_mode_raises(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PROMPTLENS_ANALYSIS_MODE", "streaming")
    with pytest.raises(ValidationError):
        PromptLensConfig()


def test_invalid_rule_severity_raises(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PROMPTLENS_RULES", '{"vague": {"severity": "critical"}}')
    with pytest.raises(ValidationError):
        PromptLensConfig()


def test_max_delay_must_cover_base_delay(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PROMPTLENS_BASE_DELAY_SECONDS", "10")
    monkeypatch.setenv("PROMPTLENS_MAX_DELAY_SECONDS", "2")
    with pytest.raises(ValidationError):
        PromptLensConfig()


def test_max_retries_bounds(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PROMPTLENS_MAX_RETRIES", "11")
    with pytest.raises(ValidationError):
        PromptLensConfig()


def test_rpm_defaults_follow_rate_limit_table() -> None:
    cfg = PromptLensConfig()
    assert cfg.anthropic_rpm == DEFAULT_RATE_LIMITS["anthropic"]
    assert cfg.google_rpm == DEFAULT_RATE_LIMITS["google"]
