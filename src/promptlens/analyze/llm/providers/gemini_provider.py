from __future__ import annotations

from typing import Any

import httpx

from ....errors import ResponseParseError
from ....models import ProviderLimits
from .base import AUTH_FAILURE_STATUSES, AnalysisProvider

DEFAULT_GOOGLE_MODEL = "gemini-2.0-flash-exp"
GOOGLE_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"

GOOGLE_LIMITS = ProviderLimits(
    max_tokens_per_batch=500_000,
    max_prompts_per_batch=200,
    prioritization="chronological",
)


class GoogleProvider(AnalysisProvider):
    """Google Gemini provider (``generateContent`` REST endpoint)."""

    name = "google"
    default_max_retries = 2
    default_probe_timeout = 5.0
    default_analysis_timeout = 60.0

    def __init__(
        self,
        api_key: str,
        model: str = DEFAULT_GOOGLE_MODEL,
        *,
        base_url: str = GOOGLE_BASE_URL,
        **kwargs: Any,
    ) -> None:
        super().__init__(**kwargs)
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")

    @property
    def generate_url(self) -> str:
        return f"{self.base_url}/models/{self.model}:generateContent"

    def get_batch_limits(self) -> ProviderLimits:
        return GOOGLE_LIMITS

    async def is_available(self) -> bool:
        if not self.api_key:
            return False
        payload = {
            "contents": [{"role": "user", "parts": [{"text": "Hi"}]}],
            "generationConfig": {"maxOutputTokens": 1},
        }
        try:
            async with httpx.AsyncClient(timeout=self.probe_timeout) as client:
                response = await client.post(
                    self.generate_url,
                    json=payload,
                    params={"key": self.api_key},
                )
        except httpx.HTTPError as exc:
            self.logger.debug("probe_failed", component=self.name, error=str(exc))
            return False
        return response.status_code not in AUTH_FAILURE_STATUSES

    async def _complete(self, system: str, user: str) -> str:
        payload = {
            "contents": [{"role": "user", "parts": [{"text": user}]}],
            "systemInstruction": {"parts": [{"text": system}]},
            "generationConfig": {"responseMimeType": "application/json"},
        }
        data = await self._post_json(
            self.generate_url,
            payload,
            timeout=self.analysis_timeout,
            params={"key": self.api_key},
        )

        try:
            return str(data["candidates"][0]["content"]["parts"][0]["text"])
        except (KeyError, IndexError, TypeError) as exc:
            raise ResponseParseError("Gemini response has no candidate text", provider=self.name) from exc
