from __future__ import annotations

from unittest.mock import AsyncMock

import httpx
import pytest

from promptlens.analyze.llm.providers import (
    PROVIDERS,
    AnthropicProvider,
    GoogleProvider,
    OllamaProvider,
    build_providers,
    create_provider,
    detect_batch_strategy,
)
from promptlens.analyze.llm.taxonomy import apply_rules_config
from promptlens.config import PromptLensConfig
from promptlens.errors import ConfigError, ProviderAuthError, ProviderRequestError, ResponseParseError
from promptlens.models import RuleConfig

DATE = "2025-01-15"
MINIMAL_TEXT = '{"issues": ["vague"], "score": 60}'


class DummyResponse:
    def __init__(self, status_code: int = 200, json_data=None, text: str = "") -> None:
        self.status_code = status_code
        self._json_data = json_data
        self.text = text

    def json(self):
        if self._json_data is None:
            raise ValueError("no json")
        return self._json_data


class DummyAsyncClient:
    def __init__(self, responses=None, exceptions=None) -> None:
        self._responses = list(responses or [])
        self._exceptions = list(exceptions or [])
        self.requests = []

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False

    def _next(self):
        if self._exceptions:
            raise self._exceptions.pop(0)
        if self._responses:
            return self._responses.pop(0)
        return DummyResponse(status_code=500)

    async def post(self, url, json=None, headers=None, params=None):
        self.requests.append({"method": "post", "url": url, "json": json, "headers": headers, "params": params})
        return self._next()

    async def get(self, url, headers=None):
        self.requests.append({"method": "get", "url": url, "headers": headers})
        return self._next()


@pytest.fixture
def use_client(monkeypatch: pytest.MonkeyPatch):
    def install(client: DummyAsyncClient) -> DummyAsyncClient:
        monkeypatch.setattr(
            "promptlens.analyze.llm.providers.base.httpx.AsyncClient",
            lambda *args, **kwargs: client,
        )
        monkeypatch.setattr("promptlens.analyze.llm.retry.asyncio.sleep", AsyncMock())
        return client

    return install


def test_registry() -> None:
    assert PROVIDERS == {"ollama": OllamaProvider, "anthropic": AnthropicProvider, "google": GoogleProvider}


@pytest.mark.parametrize(
    ("model", "strategy"),
    [
        ("llama3.2", "micro"),
        ("llama3.2:latest", "micro"),
        ("llama3:8b-instruct", "small"),
        ("mixtral:8x7b", "standard"),
        ("qwen2.5:14b", "standard"),
        ("some-new-model", "micro"),
    ],
)
def test_detect_batch_strategy(model: str, strategy: str) -> None:
    assert detect_batch_strategy(model).name == strategy


def test_ollama_limits_and_schema_follow_strategy() -> None:
    micro = OllamaProvider(model="llama3.2")
    assert micro.get_batch_limits().max_prompts_per_batch == 3
    assert micro.get_batch_limits().prioritization == "longest-first"
    assert micro.response_schema() == "minimal"

    standard = OllamaProvider(model="llama3:70b")
    assert standard.get_batch_limits().max_tokens_per_batch == 3000
    assert standard.response_schema() == "full"

    individual = OllamaProvider(model="llama3:70b", analysis_mode="individual")
    assert individual.response_schema() == "individual"
    assert "JSON array" in individual.system_prompt()


@pytest.mark.anyio
async def test_ollama_analyze_sends_generate_request(use_client) -> None:
    client = use_client(DummyAsyncClient(responses=[DummyResponse(json_data={"response": MINIMAL_TEXT})]))
    provider = OllamaProvider(model="llama3.2", host="http://ollama:11434/")

    result = await provider.analyze(["help me", "fix it"], DATE)

    request = client.requests[0]
    assert request["url"] == "http://ollama:11434/api/generate"
    assert request["json"]["model"] == "llama3.2"
    assert request["json"]["stream"] is False
    assert request["json"]["format"] == "json"
    assert request["json"]["options"] == {"temperature": 0.3}
    assert "1. help me" in request["json"]["prompt"]
    assert "issue-id" in request["json"]["system"]
    assert result.patterns[0].id == "vague"
    assert result.stats.overall_score == 6.0
    assert result.stats.total_prompts == 2


@pytest.mark.anyio
async def test_ollama_missing_response_field(use_client) -> None:
    use_client(DummyAsyncClient(responses=[DummyResponse(json_data={"done": True})]))

    with pytest.raises(ResponseParseError):
        await OllamaProvider().analyze(["help"], DATE)


@pytest.mark.anyio
async def test_ollama_probe(use_client) -> None:
    client = use_client(
        DummyAsyncClient(
            responses=[
                DummyResponse(json_data={"models": [{"name": "llama3.2:latest"}]}),
                DummyResponse(json_data={"models": [{"name": "mistral:7b"}]}),
                DummyResponse(status_code=500),
            ]
        )
    )
    provider = OllamaProvider(model="llama3.2")

    assert await provider.is_available() is True
    assert await provider.is_available() is False
    assert await provider.is_available() is False
    assert client.requests[0]["url"] == "http://localhost:11434/api/tags"


@pytest.mark.anyio
async def test_ollama_probe_connection_refused(use_client) -> None:
    use_client(DummyAsyncClient(exceptions=[httpx.ConnectError("refused")]))
    assert await OllamaProvider().is_available() is False


@pytest.mark.anyio
async def test_ollama_retries_server_errors(use_client) -> None:
    client = use_client(
        DummyAsyncClient(
            responses=[
                DummyResponse(status_code=503, text="loading"),
                DummyResponse(json_data={"response": MINIMAL_TEXT}),
            ]
        )
    )

    result = await OllamaProvider().analyze(["help"], DATE)

    assert len(client.requests) == 2
    assert result.patterns[0].id == "vague"


@pytest.mark.anyio
async def test_anthropic_analyze(use_client) -> None:
    envelope = {"content": [{"type": "tool_use"}, {"type": "text", "text": MINIMAL_TEXT}]}
    client = use_client(DummyAsyncClient(responses=[DummyResponse(json_data=envelope)]))
    provider = AnthropicProvider(api_key="sk-ant-test")

    result = await provider.analyze(["help"], DATE)

    request = client.requests[0]
    assert request["url"] == "https://api.anthropic.com/v1/messages"
    assert request["headers"]["x-api-key"] == "sk-ant-test"
    assert request["headers"]["anthropic-version"] == "2023-06-01"
    assert request["json"]["max_tokens"] == 4096
    assert request["json"]["messages"][0]["role"] == "user"
    assert "patterns" in request["json"]["system"]
    assert result.patterns[0].id == "vague"


@pytest.mark.anyio
async def test_anthropic_auth_failure_is_not_retried(use_client) -> None:
    client = use_client(DummyAsyncClient(responses=[DummyResponse(status_code=401, text="invalid x-api-key")]))

    with pytest.raises(ProviderAuthError) as excinfo:
        await AnthropicProvider(api_key="bad").analyze(["help"], DATE)

    assert excinfo.value.status_code == 401
    assert len(client.requests) == 1


@pytest.mark.anyio
async def test_anthropic_client_error_is_not_retried(use_client) -> None:
    client = use_client(DummyAsyncClient(responses=[DummyResponse(status_code=400, text="bad request")]))

    with pytest.raises(ProviderRequestError):
        await AnthropicProvider(api_key="key").analyze(["help"], DATE)

    assert len(client.requests) == 1


@pytest.mark.anyio
async def test_anthropic_rate_limited_retries_up_to_limit(use_client) -> None:
    client = use_client(DummyAsyncClient(responses=[DummyResponse(status_code=429)] * 5))

    with pytest.raises(ProviderRequestError):
        await AnthropicProvider(api_key="key").analyze(["help"], DATE)

    assert len(client.requests) == 4  # default max_retries=3


@pytest.mark.anyio
async def test_anthropic_without_text_block(use_client) -> None:
    use_client(DummyAsyncClient(responses=[DummyResponse(json_data={"content": []})]))

    with pytest.raises(ResponseParseError):
        await AnthropicProvider(api_key="key").analyze(["help"], DATE)


@pytest.mark.anyio
async def test_anthropic_probe(use_client) -> None:
    assert await AnthropicProvider(api_key="").is_available() is False

    use_client(DummyAsyncClient(responses=[DummyResponse(status_code=400), DummyResponse(status_code=403)]))
    provider = AnthropicProvider(api_key="key")
    assert await provider.is_available() is True
    assert await provider.is_available() is False


@pytest.mark.anyio
async def test_google_analyze(use_client) -> None:
    envelope = {"candidates": [{"content": {"parts": [{"text": MINIMAL_TEXT}]}}]}
    client = use_client(DummyAsyncClient(responses=[DummyResponse(json_data=envelope)]))
    provider = GoogleProvider(api_key="g-key", model="gemini-test")

    result = await provider.analyze(["help"], DATE)

    request = client.requests[0]
    assert request["url"] == "https://generativelanguage.googleapis.com/v1beta/models/gemini-test:generateContent"
    assert request["params"] == {"key": "g-key"}
    assert request["json"]["generationConfig"] == {"responseMimeType": "application/json"}
    assert request["json"]["contents"][0]["parts"][0]["text"].startswith("Analyze the following 1 prompt from")
    assert result.patterns[0].id == "vague"


@pytest.mark.anyio
async def test_google_malformed_envelope(use_client) -> None:
    use_client(DummyAsyncClient(responses=[DummyResponse(json_data={"candidates": []})]))

    with pytest.raises(ResponseParseError):
        await GoogleProvider(api_key="key").analyze(["help"], DATE)


@pytest.mark.anyio
async def test_google_non_json_envelope(use_client) -> None:
    use_client(DummyAsyncClient(responses=[DummyResponse(status_code=200, json_data=None, text="<html>")]))

    with pytest.raises(ResponseParseError):
        await GoogleProvider(api_key="key").analyze(["help"], DATE)


def test_limits_for_cloud_providers() -> None:
    anthropic = AnthropicProvider(api_key="k").get_batch_limits()
    google = GoogleProvider(api_key="k").get_batch_limits()

    assert (anthropic.max_tokens_per_batch, anthropic.max_prompts_per_batch) == (100_000, 100)
    assert (google.max_tokens_per_batch, google.max_prompts_per_batch) == (500_000, 200)
    assert anthropic.prioritization == google.prioritization == "chronological"


def test_create_provider_from_config(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PROMPTLENS_SERVICES", "google,ollama,bogus,anthropic")
    monkeypatch.setenv("PROMPTLENS_ANTHROPIC_API_KEY", "sk-ant")
    monkeypatch.setenv("PROMPTLENS_GOOGLE_RPM", "10")
    monkeypatch.setenv("PROMPTLENS_MAX_RETRIES", "1")
    config = PromptLensConfig()

    providers = build_providers(config)

    assert [p.name for p in providers] == ["google", "ollama", "anthropic"]
    google, ollama, anthropic = providers
    assert google.rate_limiter.min_interval == 6.0
    assert ollama.rate_limiter is None
    assert anthropic.api_key == "sk-ant"
    assert all(p.retry_policy.max_retries == 1 for p in providers)


def test_create_provider_unknown_name() -> None:
    with pytest.raises(ConfigError):
        create_provider("openai", PromptLensConfig())


def test_create_provider_analysis_mode_override() -> None:
    provider = create_provider("ollama", PromptLensConfig(), analysis_mode="individual")
    assert provider.response_schema() == "individual"


def test_create_provider_dispatches_through_registry(monkeypatch: pytest.MonkeyPatch) -> None:
    class PinnedGoogleProvider(GoogleProvider):
        pass

    monkeypatch.setitem(PROVIDERS, "google", PinnedGoogleProvider)
    monkeypatch.setenv("PROMPTLENS_GOOGLE_API_KEY", "g-key")

    provider = create_provider("google", PromptLensConfig())

    assert type(provider) is PinnedGoogleProvider
    assert provider.api_key == "g-key"
    assert provider.model == "gemini-2.0-flash-exp"
    assert provider.rate_limiter.requests_per_minute == 50


@pytest.mark.anyio
async def test_analyze_applies_rule_adjusted_taxonomy(use_client) -> None:
    text = '{"issues": ["vague", "no-context", "imperative"], "score": 40}'
    use_client(DummyAsyncClient(responses=[DummyResponse(json_data={"response": text})]))
    taxonomy = apply_rules_config({"vague": RuleConfig(enabled=False), "imperative": RuleConfig(severity="high")})

    result = await OllamaProvider().analyze(["a", "b"], DATE, taxonomy=taxonomy)

    assert [p.id for p in result.patterns] == ["no-context", "imperative"]
    assert result.patterns[1].severity == "high"
