"""Prompt analysis pipeline."""

from .aggregator import MergeMode, merge_results
from .analyzer import PromptAnalyzer, analyze_prompts
from .batching import estimate_tokens, plan_batches

__all__ = [
    "MergeMode",
    "PromptAnalyzer",
    "analyze_prompts",
    "estimate_tokens",
    "merge_results",
    "plan_batches",
]
