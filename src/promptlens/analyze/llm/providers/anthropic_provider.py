from __future__ import annotations

from typing import Any, Dict

import httpx

from ....errors import ResponseParseError
from ....models import ProviderLimits
from .base import AUTH_FAILURE_STATUSES, AnalysisProvider

DEFAULT_ANTHROPIC_MODEL = "claude-3-5-haiku-latest"
ANTHROPIC_BASE_URL = "https://api.anthropic.com"
ANTHROPIC_API_VERSION = "2023-06-01"
ANTHROPIC_MAX_TOKENS = 4096

ANTHROPIC_LIMITS = ProviderLimits(
    max_tokens_per_batch=100_000,
    max_prompts_per_batch=100,
    prioritization="chronological",
)


class AnthropicProvider(AnalysisProvider):
    """Anthropic Messages API provider."""

    name = "anthropic"
    default_max_retries = 3
    default_probe_timeout = 5.0
    default_analysis_timeout = 60.0

    def __init__(
        self,
        api_key: str,
        model: str = DEFAULT_ANTHROPIC_MODEL,
        *,
        base_url: str = ANTHROPIC_BASE_URL,
        **kwargs: Any,
    ) -> None:
        super().__init__(**kwargs)
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")

    @property
    def messages_url(self) -> str:
        return f"{self.base_url}/v1/messages"

    def _headers(self) -> Dict[str, str]:
        return {
            "x-api-key": self.api_key,
            "anthropic-version": ANTHROPIC_API_VERSION,
            "content-type": "application/json",
        }

    def get_batch_limits(self) -> ProviderLimits:
        return ANTHROPIC_LIMITS

    async def is_available(self) -> bool:
        """A one-token request; anything but an auth failure means reachable."""
        if not self.api_key:
            return False
        payload = {
            "model": self.model,
            "max_tokens": 1,
            "messages": [{"role": "user", "content": "Hi"}],
        }
        try:
            async with httpx.AsyncClient(timeout=self.probe_timeout) as client:
                response = await client.post(self.messages_url, json=payload, headers=self._headers())
        except httpx.HTTPError as exc:
            self.logger.debug("probe_failed", component=self.name, error=str(exc))
            return False
        return response.status_code not in AUTH_FAILURE_STATUSES

    async def _complete(self, system: str, user: str) -> str:
        payload = {
            "model": self.model,
            "max_tokens": ANTHROPIC_MAX_TOKENS,
            "system": system,
            "messages": [{"role": "user", "content": user}],
        }
        data = await self._post_json(
            self.messages_url,
            payload,
            timeout=self.analysis_timeout,
            headers=self._headers(),
        )

        # content is a list of blocks; only text blocks carry the answer.
        blocks = data.get("content") if isinstance(data, dict) else None
        for block in blocks or []:
            if isinstance(block, dict) and block.get("type") == "text":
                return str(block.get("text") or "")
        raise ResponseParseError("Anthropic response contained no text block", provider=self.name)
