from __future__ import annotations

from typing import Dict, Optional, Tuple

from pydantic import Field, SecretStr, confloat, conint, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .constants import DEFAULT_RATE_LIMITS
from .models import VALID_PROVIDERS, AnalysisMode, ProjectContext, RuleConfig


class PromptLensConfig(BaseSettings):
    """Configuration loaded from PROMPTLENS_* environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="PROMPTLENS_",
        frozen=True,
        extra="ignore",
        protected_namespaces=(),  # Allow fields starting with 'model_'
    )

    # Comma-separated priority list; unknown names are dropped.
    services: str = Field(
        default="ollama",
        description="Provider fallback chain, e.g. 'ollama,anthropic,google'",
    )

    ollama_model: str = Field(default="llama3.2")
    ollama_host: str = Field(default="http://localhost:11434")

    anthropic_model: str = Field(default="claude-3-5-haiku-latest")
    anthropic_api_key: SecretStr = Field(default="", description="Anthropic API key")

    google_model: str = Field(default="gemini-2.0-flash-exp")
    google_api_key: SecretStr = Field(default="", description="Google AI API key")

    analysis_mode: AnalysisMode = Field(
        default="batch",
        description="batch: one aggregated object per batch; individual: one object per prompt",
    )

    # Retry / timeouts. None keeps each provider's own default.
    max_retries: Optional[conint(ge=0, le=10)] = Field(default=None)
    base_delay_seconds: confloat(ge=0) = Field(default=1.0)
    max_delay_seconds: confloat(ge=0) = Field(default=30.0)
    probe_timeout_seconds: confloat(gt=0) = Field(default=5.0)
    analysis_timeout_seconds: confloat(gt=0) = Field(default=60.0)

    # Requests per minute for the cloud providers.
    anthropic_rpm: conint(gt=0) = Field(default=DEFAULT_RATE_LIMITS["anthropic"])
    google_rpm: conint(gt=0) = Field(default=DEFAULT_RATE_LIMITS["google"])

    rules: Dict[str, RuleConfig] = Field(
        default_factory=dict,
        description='JSON object, e.g. {"vague": {"severity": "low"}, "imperative": {"enabled": false}}',
    )
    context: Optional[ProjectContext] = Field(default=None)

    verbose: bool = Field(default=False)

    @field_validator("analysis_mode", mode="before")
    @classmethod
    def _normalize_lowercase(cls, value: str) -> str:
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @field_validator("ollama_host", mode="before")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        if isinstance(value, str):
            return value.strip().rstrip("/")
        return value

    @model_validator(mode="after")
    def _validate_delays(self) -> "PromptLensConfig":
        if self.max_delay_seconds < self.base_delay_seconds:
            raise ValueError("max_delay_seconds must be >= base_delay_seconds")
        return self

    def service_list(self) -> Tuple[str, ...]:
        """Configured providers in priority order, deduplicated, unknown names dropped."""
        seen: list[str] = []
        for raw in (self.services or "").split(","):
            name = raw.strip().lower()
            if name in VALID_PROVIDERS and name not in seen:
                seen.append(name)
        return tuple(seen)
