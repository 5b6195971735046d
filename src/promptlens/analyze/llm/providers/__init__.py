from __future__ import annotations

from typing import List, Optional

from ....config import PromptLensConfig
from ....errors import ConfigError
from ....logging import PromptLensLogger
from ....models import AnalysisMode
from ..rate_limiter import limiter_for
from .anthropic_provider import AnthropicProvider
from .base import AnalysisProvider, raise_for_provider_status
from .gemini_provider import GoogleProvider
from .ollama_provider import BATCH_STRATEGIES, BatchStrategy, OllamaProvider, detect_batch_strategy


PROVIDERS: dict[str, type[AnalysisProvider]] = {
    "ollama": OllamaProvider,
    "anthropic": AnthropicProvider,
    "google": GoogleProvider,
}


def create_provider(
    name: str,
    config: PromptLensConfig,
    analysis_mode: Optional[AnalysisMode] = None,
    logger: Optional[PromptLensLogger] = None,
) -> AnalysisProvider:
    """Instantiate one provider from config. Unknown names raise ConfigError."""
    provider_cls = PROVIDERS.get(name)
    if provider_cls is None:
        raise ConfigError(f"Unknown analysis provider: {name}")

    options = dict(
        model=getattr(config, f"{name}_model"),
        max_retries=config.max_retries,
        base_delay=config.base_delay_seconds,
        max_delay=config.max_delay_seconds,
        probe_timeout=config.probe_timeout_seconds,
        analysis_timeout=config.analysis_timeout_seconds,
        rate_limiter=limiter_for(name, getattr(config, f"{name}_rpm", None)),
        logger=logger,
    )
    if provider_cls is OllamaProvider:
        options.update(host=config.ollama_host, analysis_mode=analysis_mode or config.analysis_mode)
    else:
        options.update(api_key=getattr(config, f"{name}_api_key").get_secret_value())
    return provider_cls(**options)


def build_providers(
    config: PromptLensConfig,
    logger: Optional[PromptLensLogger] = None,
) -> List[AnalysisProvider]:
    """Providers in the configured priority order."""
    return [create_provider(name, config, logger=logger) for name in config.service_list()]


__all__ = [
    "AnalysisProvider",
    "AnthropicProvider",
    "BATCH_STRATEGIES",
    "BatchStrategy",
    "GoogleProvider",
    "OllamaProvider",
    "PROVIDERS",
    "build_providers",
    "create_provider",
    "detect_batch_strategy",
    "raise_for_provider_status",
]
