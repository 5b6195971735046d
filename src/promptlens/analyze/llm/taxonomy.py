from __future__ import annotations

from dataclasses import dataclass, replace
from types import MappingProxyType
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from ...logging import PromptLensLogger
from ...models import AnalysisPattern, RuleConfig, Severity
from ...utils import title_case


@dataclass(frozen=True)
class IssueMetadata:
    name: str
    severity: Severity
    suggestion: str
    example_before: Optional[str] = None
    example_after: Optional[str] = None


IssueTaxonomy = Mapping[str, IssueMetadata]


ISSUE_TAXONOMY: IssueTaxonomy = MappingProxyType(
    {
        "vague": IssueMetadata(
            name="Vague Request",
            severity="high",
            suggestion=(
                "Be more specific about what you need - include function names, file paths, "
                "error messages, or specific behaviors"
            ),
            example_before="Help me with my code",
            example_after=(
                "Help me debug the calculateTotal() function in utils.ts that returns "
                "undefined when called with an empty array"
            ),
        ),
        "no-context": IssueMetadata(
            name="Missing Context",
            severity="high",
            suggestion=(
                "Provide relevant background information - include file paths, function names, "
                "error messages, or code snippets"
            ),
            example_before="Fix the bug",
            example_after=(
                "Fix the bug in src/auth/login.ts where users are logged out after 5 minutes "
                "due to token expiration logic"
            ),
        ),
        "too-broad": IssueMetadata(
            name="Too Broad",
            severity="medium",
            suggestion=(
                "Break down into smaller, focused requests - focus on one task or clearly "
                "order multiple related tasks"
            ),
            example_before="Build me an app with authentication, database, and API",
            example_after="Create a React login component with email/password authentication using JWT tokens",
        ),
        "no-goal": IssueMetadata(
            name="No Clear Goal",
            severity="high",
            suggestion="State what outcome you want to achieve - specify success criteria and desired behavior",
            example_before="Look at this file",
            example_after=(
                "Review src/auth/login.ts for security vulnerabilities, focusing on input "
                "validation and SQL injection risks"
            ),
        ),
        "imperative": IssueMetadata(
            name="Command Without Context",
            severity="low",
            suggestion="Explain why you need this - provide context about the use case and requirements",
            example_before="Add a button",
            example_after=(
                'Add a "Submit" button to the login form that triggers validation and calls '
                "the authentication API"
            ),
        ),
        "missing-technical-details": IssueMetadata(
            name="Missing Technical Details",
            severity="medium",
            suggestion=(
                "Include technical details - file paths, function signatures, error messages, "
                "stack traces, or code snippets"
            ),
            example_before="The function crashes sometimes",
            example_after=(
                "The validateUser() function in src/utils/auth.ts crashes with \"Cannot read "
                "property 'email' of null\" when called with undefined"
            ),
        ),
        "unclear-priorities": IssueMetadata(
            name="Unclear Priorities",
            severity="low",
            suggestion="Order multiple requests by priority or split into separate prompts for clarity",
            example_before="Add error handling and logging and also optimize performance and add tests",
            example_after=(
                "First, add comprehensive error handling with try-catch blocks. Then, add logging "
                "for debugging. Finally, optimize database queries."
            ),
        ),
        "insufficient-constraints": IssueMetadata(
            name="Insufficient Constraints",
            severity="low",
            suggestion=(
                "Specify requirements and constraints - edge cases, performance needs, "
                "compatibility requirements"
            ),
            example_before="Make it faster",
            example_after=(
                "Optimize the database query to reduce response time to under 100ms, maintaining "
                "backward compatibility with existing API clients"
            ),
        ),
    }
)

VALID_PATTERN_IDS: Tuple[str, ...] = tuple(ISSUE_TAXONOMY)

# Categories used by the batch-individual prompt, mapped onto taxonomy ids.
CATEGORY_TO_ISSUE: Mapping[str, str] = MappingProxyType(
    {
        "vague-request": "vague",
        "missing-context": "no-context",
        "too-broad": "too-broad",
        "unclear-goal": "no-goal",
        "other": "other",
    }
)

FALLBACK_SUGGESTION = "Review this pattern"


def lookup_issue_metadata(issue_id: str, taxonomy: IssueTaxonomy = ISSUE_TAXONOMY) -> IssueMetadata:
    """Return taxonomy metadata, or a generic low-severity entry for unknown ids."""
    metadata = taxonomy.get(issue_id)
    if metadata is not None:
        return metadata
    return IssueMetadata(
        name=title_case(issue_id) or "Unknown Issue",
        severity="low",
        suggestion=FALLBACK_SUGGESTION,
    )


def category_to_issue_id(category: str) -> str:
    normalized = (category or "").strip().lower()
    return CATEGORY_TO_ISSUE.get(normalized, normalized or "other")


def get_enabled_pattern_ids(
    rules: Optional[Mapping[str, RuleConfig]],
    base_taxonomy: IssueTaxonomy = ISSUE_TAXONOMY,
) -> Tuple[str, ...]:
    if not rules:
        return tuple(base_taxonomy)
    return tuple(
        pattern_id
        for pattern_id in base_taxonomy
        if rules.get(pattern_id) is None or rules[pattern_id].enabled is not False
    )


def apply_rules_config(
    rules: Optional[Mapping[str, RuleConfig]],
    base_taxonomy: IssueTaxonomy = ISSUE_TAXONOMY,
    logger: Optional[PromptLensLogger] = None,
) -> IssueTaxonomy:
    """
    Build a new taxonomy with rule overrides applied.

    Disabled ids are removed and severity overrides replace the default
    severity. ``base_taxonomy`` is never modified.
    """
    if not rules:
        return base_taxonomy

    for rule_id in rules:
        if rule_id not in base_taxonomy and logger:
            logger.warning(
                "unknown_rule_id",
                component="config",
                rule_id=rule_id,
                valid_ids=", ".join(base_taxonomy),
            )

    taxonomy: Dict[str, IssueMetadata] = {}
    for pattern_id in get_enabled_pattern_ids(rules, base_taxonomy):
        metadata = base_taxonomy[pattern_id]
        rule = rules.get(pattern_id)
        if rule is not None and rule.severity:
            metadata = replace(metadata, severity=rule.severity)
        taxonomy[pattern_id] = metadata

    if not taxonomy and logger:
        logger.collect_warning(
            "All analysis rules are disabled in configuration. No patterns will be detected.",
            component="config",
        )

    return MappingProxyType(taxonomy)


def restrict_patterns(
    patterns: Iterable[AnalysisPattern],
    taxonomy: IssueTaxonomy,
    base_taxonomy: IssueTaxonomy = ISSUE_TAXONOMY,
) -> List[AnalysisPattern]:
    """
    Apply a rule-adjusted taxonomy to detected patterns.

    Known ids missing from ``taxonomy`` are dropped and overridden severities
    replace whatever the model reported. Ids outside ``base_taxonomy`` pass
    through unchanged.
    """
    if taxonomy is base_taxonomy:
        return list(patterns)

    kept: List[AnalysisPattern] = []
    for pattern in patterns:
        base = base_taxonomy.get(pattern.id)
        if base is None:
            kept.append(pattern)
            continue
        metadata = taxonomy.get(pattern.id)
        if metadata is None:
            continue
        # apply_rules_config only builds a new entry when a severity rule exists.
        if metadata is not base:
            pattern = replace(pattern, severity=metadata.severity)
        kept.append(pattern)
    return kept
