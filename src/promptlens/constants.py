from __future__ import annotations

from enum import Enum
from typing import Dict, Optional

SEVERITY_RANK = {
    "low": 1,
    "medium": 2,
    "high": 3,
}

# Requests per minute. None means unthrottled (local server).
DEFAULT_RATE_LIMITS: Dict[str, Optional[int]] = {
    "ollama": None,
    "anthropic": 50,
    "google": 50,
}


class ExitCode(int, Enum):
    """Process exit codes."""

    SUCCESS = 0
    ERROR = 1
    NO_DATA = 2
    PROVIDER_UNAVAILABLE = 3


class Limits:
    """Shared hard limits."""

    MAX_PATTERNS = 5
    MAX_EXAMPLES_PER_PATTERN = 3
    CHARS_PER_TOKEN = 4
    DEFAULT_SCORE = 50  # 0-100 scale, used when a provider omits the score
    MAX_SCORE = 10.0


NO_ISSUES_SUGGESTION = "Your prompts look good!"
