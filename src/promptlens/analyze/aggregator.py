from __future__ import annotations

from dataclasses import replace
from enum import Enum
from typing import Dict, Iterable, List, Sequence

from ..constants import Limits, NO_ISSUES_SUGGESTION, SEVERITY_RANK
from ..models import AnalysisPattern, AnalysisResult, AnalysisStats, Severity


class MergeMode(str, Enum):
    """
    How pattern frequencies combine when the same id appears in several results.

    PROPORTIONAL: each input is a batch whose frequency is an estimate for that
    batch; colliding frequencies are averaged.
    COUNTED: each input describes discrete occurrences (individual prompt
    results); colliding frequencies are summed.
    """

    PROPORTIONAL = "proportional"
    COUNTED = "counted"


def normalize_score(score_100: float) -> float:
    """Convert a provider score on 0-100 to the 0-10 display scale, clamped."""
    return clamp_score(float(score_100) / 10)


def clamp_score(score: float) -> float:
    return max(0.0, min(Limits.MAX_SCORE, float(score)))


def max_severity(severities: Iterable[Severity]) -> Severity:
    best: Severity = "low"
    for severity in severities:
        if SEVERITY_RANK.get(severity, 0) > SEVERITY_RANK[best]:
            best = severity
    return best


def sort_patterns(patterns: Iterable[AnalysisPattern]) -> List[AnalysisPattern]:
    """Frequency descending, then severity descending. Stable for full ties."""
    return sorted(
        patterns,
        key=lambda p: (-p.frequency, -SEVERITY_RANK.get(p.severity, 0)),
    )


def finalize_patterns(patterns: Iterable[AnalysisPattern]) -> tuple[AnalysisPattern, ...]:
    """Sort, cap examples per pattern and cap the pattern list."""
    capped = []
    for pattern in sort_patterns(patterns)[: Limits.MAX_PATTERNS]:
        if len(pattern.examples) > Limits.MAX_EXAMPLES_PER_PATTERN:
            pattern = replace(pattern, examples=pattern.examples[: Limits.MAX_EXAMPLES_PER_PATTERN])
        capped.append(pattern)
    return tuple(capped)


def top_suggestion_for(patterns: Sequence[AnalysisPattern]) -> str:
    if patterns:
        return patterns[0].suggestion
    return NO_ISSUES_SUGGESTION


def merge_results(
    results: Sequence[AnalysisResult],
    *,
    total_prompts: int,
    date: str,
    mode: MergeMode = MergeMode.PROPORTIONAL,
) -> AnalysisResult:
    """
    Fold several analysis results into one.

    ``total_prompts`` is the caller's ground truth and is not derived from the
    inputs. The overall score is weighted by each input's own prompt count so
    that larger batches move the aggregate proportionally more.
    """
    if not results:
        raise ValueError("Cannot merge empty results list")

    groups: Dict[str, List[AnalysisPattern]] = {}
    for result in results:
        for pattern in result.patterns:
            groups.setdefault(pattern.id, []).append(pattern)

    merged = [_merge_group(group, mode) for group in groups.values()]
    patterns = finalize_patterns(merged)

    return AnalysisResult(
        date=date,
        patterns=patterns,
        stats=AnalysisStats(
            total_prompts=total_prompts,
            prompts_with_issues=sum(r.stats.prompts_with_issues for r in results),
            overall_score=weighted_score(results),
        ),
        top_suggestion=top_suggestion_for(patterns),
    )


def weighted_score(results: Sequence[AnalysisResult]) -> float:
    """Prompt-count weighted mean of the 0-10 scores; plain mean if no weights."""
    total_weight = sum(max(0, r.stats.total_prompts) for r in results)
    if total_weight > 0:
        weighted = sum(r.stats.overall_score * max(0, r.stats.total_prompts) for r in results)
        return round(clamp_score(weighted / total_weight), 2)
    return round(clamp_score(sum(r.stats.overall_score for r in results) / len(results)), 2)


def _merge_group(group: List[AnalysisPattern], mode: MergeMode) -> AnalysisPattern:
    first = group[0]
    if len(group) == 1:
        return first

    if mode is MergeMode.COUNTED:
        frequency = sum(p.frequency for p in group)
    else:
        frequency = sum(p.frequency for p in group) / len(group)

    examples: List[str] = []
    for pattern in group:
        for example in pattern.examples:
            if example not in examples:
                examples.append(example)

    before_after = next(
        (p.before_after for p in group if p.before_after.before or p.before_after.after),
        first.before_after,
    )

    return AnalysisPattern(
        id=first.id,
        name=first.name,
        frequency=frequency,
        severity=max_severity(p.severity for p in group),
        examples=tuple(examples[: Limits.MAX_EXAMPLES_PER_PATTERN]),
        suggestion=first.suggestion,
        before_after=before_after,
    )
