"""LLM provider utilities."""

from .context_builder import build_user_prompt
from .fallback_handler import select_provider
from .prompt_loader import PromptLoader
from .rate_limiter import DEFAULT_RATE_LIMITS, RateLimiter, limiter_for
from .response_parser import ResponseParser, repair_json
from .retry import RetryPolicy, is_transient_error, with_retry
from .taxonomy import ISSUE_TAXONOMY, IssueMetadata, apply_rules_config

__all__ = [
    "DEFAULT_RATE_LIMITS",
    "ISSUE_TAXONOMY",
    "IssueMetadata",
    "PromptLoader",
    "RateLimiter",
    "ResponseParser",
    "RetryPolicy",
    "apply_rules_config",
    "build_user_prompt",
    "is_transient_error",
    "limiter_for",
    "repair_json",
    "select_provider",
    "with_retry",
]
