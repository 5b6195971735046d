from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional, Sequence, Tuple

import httpx

from ....errors import ResponseParseError
from ....models import AnalysisMode, ProviderLimits, SchemaType
from .base import AnalysisProvider

DEFAULT_OLLAMA_MODEL = "llama3.2"
DEFAULT_OLLAMA_HOST = "http://localhost:11434"
OLLAMA_TEMPERATURE = 0.3


@dataclass(frozen=True)
class BatchStrategy:
    name: str
    limits: ProviderLimits
    schema: SchemaType


BATCH_STRATEGIES: Dict[str, BatchStrategy] = {
    "micro": BatchStrategy(
        name="micro",
        limits=ProviderLimits(500, 3, "longest-first"),
        schema="minimal",
    ),
    "small": BatchStrategy(
        name="small",
        limits=ProviderLimits(1500, 10, "longest-first"),
        schema="minimal",
    ),
    "standard": BatchStrategy(
        name="standard",
        limits=ProviderLimits(3000, 50, "longest-first"),
        schema="full",
    ),
}

# Ordered: exact matches are checked over the whole list before substrings.
MODEL_STRATEGY_PATTERNS: Tuple[Tuple[str, str], ...] = (
    ("llama3.2", "micro"),
    ("phi3:mini", "micro"),
    ("gemma3:4b", "micro"),
    ("gemma2:2b", "micro"),
    ("mistral:7b", "small"),
    ("llama3:8b", "small"),
    ("codellama:7b", "small"),
    ("llama3:70b", "standard"),
    ("mixtral", "standard"),
    ("qwen2.5:14b", "standard"),
)
DEFAULT_STRATEGY = "micro"


def detect_batch_strategy(model: str) -> BatchStrategy:
    """
    Pick the batch strategy for a local model name.

    Small local models lose track of long inputs, so unknown models get the
    most conservative strategy.
    """
    lowered = (model or "").strip().lower()
    for pattern, strategy in MODEL_STRATEGY_PATTERNS:
        if lowered == pattern:
            return BATCH_STRATEGIES[strategy]
    for pattern, strategy in MODEL_STRATEGY_PATTERNS:
        if pattern in lowered:
            return BATCH_STRATEGIES[strategy]
    return BATCH_STRATEGIES[DEFAULT_STRATEGY]


class OllamaProvider(AnalysisProvider):
    """Local Ollama server via ``/api/generate``."""

    name = "ollama"
    default_max_retries = 2
    default_probe_timeout = 3.0
    default_analysis_timeout = 60.0

    def __init__(
        self,
        model: str = DEFAULT_OLLAMA_MODEL,
        host: str = DEFAULT_OLLAMA_HOST,
        *,
        analysis_mode: AnalysisMode = "batch",
        **kwargs: Any,
    ) -> None:
        super().__init__(**kwargs)
        self.model = model
        self.host = host.rstrip("/")
        self.analysis_mode = analysis_mode
        self.strategy = detect_batch_strategy(model)

    def get_batch_limits(self) -> ProviderLimits:
        return self.strategy.limits

    def response_schema(self) -> SchemaType:
        if self.analysis_mode == "individual":
            return "individual"
        return self.strategy.schema

    async def is_available(self) -> bool:
        try:
            async with httpx.AsyncClient(timeout=self.probe_timeout) as client:
                response = await client.get(f"{self.host}/api/tags")
            if response.status_code != 200:
                return False
            payload = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            self.logger.debug("probe_failed", component=self.name, error=str(exc))
            return False

        return self.has_model(payload.get("models") if isinstance(payload, dict) else None)

    def has_model(self, models: Optional[Sequence[Any]]) -> bool:
        for entry in models or []:
            name = entry.get("name") if isinstance(entry, dict) else None
            if isinstance(name, str) and self.model in name:
                return True
        return False

    async def _complete(self, system: str, user: str) -> str:
        payload = {
            "model": self.model,
            "prompt": user,
            "system": system,
            "stream": False,
            "format": "json",
            "options": {"temperature": OLLAMA_TEMPERATURE},
        }
        data = await self._post_json(
            f"{self.host}/api/generate",
            payload,
            timeout=self.analysis_timeout,
        )
        text = data.get("response") if isinstance(data, dict) else None
        if not isinstance(text, str):
            raise ResponseParseError("Ollama response is missing the 'response' field", provider=self.name)
        return text
