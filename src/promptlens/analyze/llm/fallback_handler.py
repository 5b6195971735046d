from __future__ import annotations

import asyncio
from typing import Callable, Optional, Sequence

from ...errors import NoProvidersAvailableError
from ...logging import PromptLensLogger, default_logger
from .providers.base import AnalysisProvider

FallbackCallback = Callable[[str, str], None]

DEFAULT_PROBE_TIMEOUT = 5.0


async def probe_provider(provider: AnalysisProvider, logger: PromptLensLogger) -> bool:
    """Run the availability probe; any failure counts as unavailable."""
    timeout = getattr(provider, "probe_timeout", DEFAULT_PROBE_TIMEOUT)
    try:
        return bool(await asyncio.wait_for(provider.is_available(), timeout=timeout))
    except asyncio.TimeoutError:
        logger.debug("probe_timeout", component="fallback", provider=provider.name)
        return False
    except Exception as exc:
        logger.debug("probe_error", component="fallback", provider=provider.name, error=str(exc))
        return False


async def select_provider(
    providers: Sequence[AnalysisProvider],
    on_fallback: Optional[FallbackCallback] = None,
    logger: Optional[PromptLensLogger] = None,
) -> AnalysisProvider:
    """
    Return the first provider, in priority order, whose probe succeeds.

    ``on_fallback(skipped, next_candidate)`` is called once for every
    unavailable provider that has another candidate after it. Probes run one
    at a time so a lower-priority provider is never contacted when a higher
    one answers.

    Raises:
        NoProvidersAvailableError: the list is empty or every probe failed.
    """
    logger = logger or default_logger()
    if not providers:
        raise NoProvidersAvailableError("No analysis providers configured")

    for index, provider in enumerate(providers):
        if await probe_provider(provider, logger):
            logger.info("provider_selected", component="fallback", provider=provider.name)
            return provider

        logger.warning("provider_unavailable", component="fallback", provider=provider.name)
        if index + 1 < len(providers) and on_fallback is not None:
            on_fallback(provider.name, providers[index + 1].name)

    names = ", ".join(p.name for p in providers)
    raise NoProvidersAvailableError(f"No analysis provider is available (tried: {names})")
