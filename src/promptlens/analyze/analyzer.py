from __future__ import annotations

from dataclasses import replace
from typing import Callable, List, Mapping, Optional, Sequence

from ..config import PromptLensConfig
from ..errors import NoPromptsError
from ..logging import PromptLensLogger, default_logger
from ..models import AnalysisResult, ProjectContext, RuleConfig
from .aggregator import MergeMode, merge_results
from .batching import plan_batches
from .llm.fallback_handler import FallbackCallback, select_provider
from .llm.providers import AnalysisProvider, build_providers
from .llm.taxonomy import ISSUE_TAXONOMY, apply_rules_config, restrict_patterns

ProgressCallback = Callable[[int, int], None]


class PromptAnalyzer:
    """Batch prompts for one provider, analyze each batch, merge the results."""

    def __init__(
        self,
        provider: AnalysisProvider,
        rules: Optional[Mapping[str, RuleConfig]] = None,
        on_progress: Optional[ProgressCallback] = None,
        logger: Optional[PromptLensLogger] = None,
    ) -> None:
        self.provider = provider
        self.rules = dict(rules or {})
        self.on_progress = on_progress
        self.logger = logger or default_logger()
        # Also warns about unknown rule ids and a fully disabled rule set.
        self.taxonomy = apply_rules_config(self.rules, logger=self.logger)

    async def analyze(
        self,
        prompts: Sequence[str],
        date: str,
        context: Optional[ProjectContext] = None,
    ) -> AnalysisResult:
        """
        Analyze every prompt for ``date``.

        Batches run one after another: providers are rate limited and local
        servers handle one generation at a time anyway.

        Raises:
            NoPromptsError: ``prompts`` is empty.
        """
        if not prompts:
            raise NoPromptsError(f"No prompts to analyze for {date}")

        batches = plan_batches(prompts, self.provider.get_batch_limits())
        self.logger.info(
            "analysis_started",
            component="analyzer",
            provider=self.provider.name,
            prompts=len(prompts),
            batches=len(batches),
        )

        results: List[AnalysisResult] = []
        with self.logger.stage("analyze_batches"):
            for index, batch in enumerate(batches, start=1):
                result = await self.provider.analyze(batch.prompts, date, context, taxonomy=self.taxonomy)
                results.append(self.apply_rules(result))
                if self.on_progress is not None:
                    self.on_progress(index, len(batches))

        # merge_results caps the pattern list, so rules must already be applied.
        return merge_results(
            results,
            total_prompts=len(prompts),
            date=date,
            mode=MergeMode.PROPORTIONAL,
        )

    def apply_rules(self, result: AnalysisResult) -> AnalysisResult:
        """Drop disabled pattern ids and apply severity overrides to one batch result."""
        if self.taxonomy is ISSUE_TAXONOMY:
            return result
        return replace(result, patterns=tuple(restrict_patterns(result.patterns, self.taxonomy)))


async def analyze_prompts(
    config: PromptLensConfig,
    prompts: Sequence[str],
    date: str,
    *,
    context: Optional[ProjectContext] = None,
    on_fallback: Optional[FallbackCallback] = None,
    on_progress: Optional[ProgressCallback] = None,
    logger: Optional[PromptLensLogger] = None,
    providers: Optional[Sequence[AnalysisProvider]] = None,
) -> AnalysisResult:
    """Select the first available configured provider and analyze ``prompts`` with it."""
    logger = logger or default_logger()
    if not prompts:
        raise NoPromptsError(f"No prompts to analyze for {date}")

    if providers is None:
        providers = build_providers(config, logger=logger)
    with logger.stage("select_provider"):
        provider = await select_provider(providers, on_fallback=on_fallback, logger=logger)

    analyzer = PromptAnalyzer(provider, rules=config.rules, on_progress=on_progress, logger=logger)
    return await analyzer.analyze(prompts, date, context or config.context)
