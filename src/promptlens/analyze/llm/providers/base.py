from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Sequence

import httpx

from ....errors import ProviderAuthError, ProviderRequestError, ResponseParseError
from ....logging import PromptLensLogger, default_logger
from ....models import AnalysisResult, ProjectContext, ProviderLimits, SchemaType
from ...batching import estimate_tokens
from ..context_builder import build_user_prompt
from ..prompt_loader import PromptLoader
from ..rate_limiter import RateLimiter
from ..response_parser import ResponseParser
from ..retry import RetryPolicy, with_retry
from ..taxonomy import IssueTaxonomy

AUTH_FAILURE_STATUSES = (401, 403)
ERROR_BODY_PREVIEW_CHARS = 200


def raise_for_provider_status(response: httpx.Response, provider: str) -> None:
    """Map a non-2xx response to the provider error hierarchy."""
    status = response.status_code
    if 200 <= status < 300:
        return
    body = (response.text or "")[:ERROR_BODY_PREVIEW_CHARS]
    if status in AUTH_FAILURE_STATUSES:
        raise ProviderAuthError(
            f"{provider} rejected the credentials ({status})",
            provider=provider,
            status_code=status,
        )
    raise ProviderRequestError(
        f"{provider} request failed ({status}): {body}",
        provider=provider,
        status_code=status,
    )


def decode_envelope(response: httpx.Response, provider: str) -> Any:
    try:
        return response.json()
    except ValueError as exc:
        raise ResponseParseError(
            f"{provider} returned a non-JSON envelope",
            provider=provider,
            status_code=response.status_code,
        ) from exc


class AnalysisProvider(ABC):
    """
    A remote model that judges prompt quality.

    Subclasses implement the wire protocol (``_complete``), the availability
    probe and the batch limits. The base class builds the messages, applies
    the rate limit and retry policy around each request, and parses the text
    that comes back.
    """

    name: str = ""
    default_max_retries: int = 2
    default_probe_timeout: float = 5.0
    default_analysis_timeout: float = 60.0

    def __init__(
        self,
        *,
        max_retries: Optional[int] = None,
        base_delay: float = 1.0,
        max_delay: float = 30.0,
        probe_timeout: Optional[float] = None,
        analysis_timeout: Optional[float] = None,
        rate_limiter: Optional[RateLimiter] = None,
        prompt_loader: Optional[PromptLoader] = None,
        logger: Optional[PromptLensLogger] = None,
    ) -> None:
        self.retry_policy = RetryPolicy(
            max_retries=self.default_max_retries if max_retries is None else max_retries,
            base_delay=base_delay,
            max_delay=max_delay,
        )
        self.probe_timeout = probe_timeout or self.default_probe_timeout
        self.analysis_timeout = analysis_timeout or self.default_analysis_timeout
        self.rate_limiter = rate_limiter
        self.prompt_loader = prompt_loader or PromptLoader()
        self.logger = logger or default_logger()
        self.parser = ResponseParser(logger=self.logger)

    @abstractmethod
    async def is_available(self) -> bool:
        """Cheap reachability and credential check. Never raises for network failures."""

    @abstractmethod
    def get_batch_limits(self) -> ProviderLimits:
        """Batch sizing this provider can handle in one request."""

    @abstractmethod
    async def _complete(self, system: str, user: str) -> str:
        """Send one request and return the model's raw text."""

    def response_schema(self) -> SchemaType:
        return "full"

    def system_prompt(self) -> str:
        return self.prompt_loader.get_system_prompt(self.response_schema())

    async def analyze(
        self,
        prompts: Sequence[str],
        date: str,
        context: Optional[ProjectContext] = None,
        *,
        taxonomy: Optional[IssueTaxonomy] = None,
    ) -> AnalysisResult:
        """
        Analyze one batch of prompts and return the parsed result.

        ``taxonomy`` is a rule-adjusted issue table from ``apply_rules_config``.
        Disabled ids are dropped before the batch's pattern list is capped.
        """
        system = self.system_prompt()
        user = build_user_prompt(prompts, date, context)
        self.logger.debug(
            "provider_request",
            component=self.name,
            prompts=len(prompts),
            estimated_tokens=estimate_tokens(system) + estimate_tokens(user),
        )

        async def attempt() -> str:
            if self.rate_limiter is not None:
                return await self.rate_limiter.throttle(lambda: self._complete(system, user))
            return await self._complete(system, user)

        text = await with_retry(attempt, self.retry_policy, logger=self.logger, component=self.name)
        parser = self.parser if taxonomy is None else ResponseParser(taxonomy, logger=self.logger)
        return parser.parse(text, date, prompts)

    async def _post_json(
        self,
        url: str,
        payload: Dict[str, Any],
        *,
        timeout: float,
        headers: Optional[Dict[str, str]] = None,
        params: Optional[Dict[str, str]] = None,
    ) -> Any:
        async with httpx.AsyncClient(timeout=timeout) as client:
            response = await client.post(url, json=payload, headers=headers, params=params)
        raise_for_provider_status(response, self.name)
        return decode_envelope(response, self.name)
