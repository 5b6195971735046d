from __future__ import annotations

import math
from typing import List, Sequence

from ..constants import Limits
from ..models import Batch, ProviderLimits


def estimate_tokens(text: str) -> int:
    """Rough token estimation: one token per four characters, rounded up."""
    if not text:
        return 0
    return math.ceil(len(text) / Limits.CHARS_PER_TOKEN)


def plan_batches(prompts: Sequence[str], limits: ProviderLimits) -> List[Batch]:
    """
    Partition prompts into batches that respect the provider limits.

    Greedy packing: a prompt joins the current batch while the running token
    estimate stays within ``max_tokens_per_batch`` and the batch holds fewer
    than ``max_prompts_per_batch`` prompts. A prompt that alone exceeds the
    token budget gets a singleton batch; nothing is dropped or truncated.

    An empty prompt list yields no batches.
    """
    if not prompts:
        return []

    sized = [(prompt, estimate_tokens(prompt)) for prompt in prompts]
    if limits.prioritization == "longest-first":
        # sorted() is stable, so equal-length prompts keep their original order
        sized = sorted(sized, key=lambda item: len(item[0]), reverse=True)

    max_tokens = limits.max_tokens_per_batch
    max_prompts = max(1, limits.max_prompts_per_batch)

    batches: List[Batch] = []
    current: List[str] = []
    current_tokens = 0

    def flush() -> None:
        nonlocal current, current_tokens
        if current:
            batches.append(Batch(prompts=tuple(current), tokens=current_tokens))
        current = []
        current_tokens = 0

    for prompt, tokens in sized:
        if tokens > max_tokens:
            flush()
            batches.append(Batch(prompts=(prompt,), tokens=tokens))
            continue

        if current_tokens + tokens > max_tokens or len(current) >= max_prompts:
            flush()

        current.append(prompt)
        current_tokens += tokens

    flush()
    return batches
