from __future__ import annotations

import json
import math
import re
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from ...constants import Limits, NO_ISSUES_SUGGESTION
from ...errors import ResponseParseError, SchemaMismatchError
from ...logging import PromptLensLogger
from ...models import (
    VALID_SEVERITIES,
    AnalysisPattern,
    AnalysisResult,
    AnalysisStats,
    BeforeAfter,
    IndividualPromptResult,
    SchemaType,
)
from ...utils import slugify
from ..aggregator import MergeMode, finalize_patterns, merge_results, normalize_score
from .taxonomy import (
    ISSUE_TAXONOMY,
    IssueTaxonomy,
    category_to_issue_id,
    lookup_issue_metadata,
    restrict_patterns,
)

SCHEMA_CASCADE: Tuple[SchemaType, ...] = ("minimal", "simple", "full", "individual")

PLACEHOLDER_PROBLEM = "Could not analyze this prompt"
PLACEHOLDER_SCORE = 5.0
EXAMPLE_NOT_AVAILABLE = "Example not available"

_FENCED_BLOCK_RE = re.compile(r"```(?:json|JSON)?[ \t]*\n?(.*?)\n?```", re.DOTALL)
_OPEN_FENCE_RE = re.compile(r"^```(?:json|JSON)?[ \t]*\n?")
_TRAILING_COMMA_RE = re.compile(r",\s*$")

_CLOSERS = {"{": "}", "[": "]"}


def extract_json_content(text: str) -> str:
    """Extract the payload from a Markdown code fence if present."""
    match = _FENCED_BLOCK_RE.search(text)
    if match:
        return match.group(1).strip()
    stripped = text.strip()
    # Truncated responses can lose the closing fence.
    if stripped.startswith("```"):
        return _OPEN_FENCE_RE.sub("", stripped, count=1).strip()
    return stripped


def repair_json(text: str) -> str:
    """
    Close structures left open by a truncated response.

    Tracks string and escape state, closes an unterminated string, drops a
    trailing comma and appends the missing closers innermost first. Text that
    already decodes is returned unchanged.
    """
    try:
        json.loads(text)
        return text
    except ValueError:
        pass

    fixed = text.strip()
    stack: List[str] = []
    in_string = False
    escape_next = False

    for char in fixed:
        if escape_next:
            escape_next = False
            continue
        if char == "\\":
            if in_string:
                escape_next = True
            continue
        if char == '"':
            in_string = not in_string
            continue
        if in_string:
            continue
        if char in _CLOSERS:
            stack.append(_CLOSERS[char])
        elif char in ("}", "]") and stack and stack[-1] == char:
            stack.pop()

    if in_string:
        if escape_next:
            fixed = fixed[:-1]
        fixed += '"'

    fixed = _TRAILING_COMMA_RE.sub("", fixed)

    while stack:
        fixed += stack.pop()

    return fixed


def decode_response(text: str) -> Any:
    """Decode provider text to a JSON value, attempting one repair pass."""
    content = extract_json_content(text or "")
    if not content:
        raise ResponseParseError("Failed to parse response: empty response")
    try:
        return json.loads(content)
    except ValueError:
        pass
    try:
        return json.loads(repair_json(content))
    except ValueError as exc:
        raise ResponseParseError(f"Failed to parse response as JSON: {exc}") from exc


# --- structural checks -------------------------------------------------------


def _is_number(value: Any) -> bool:
    # json.loads accepts NaN and Infinity literals.
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def _is_str_list(value: Any) -> bool:
    return isinstance(value, list) and all(isinstance(item, str) for item in value)


def is_minimal_response(data: Any) -> bool:
    return isinstance(data, dict) and _is_str_list(data.get("issues"))


def is_simple_response(data: Any) -> bool:
    if not isinstance(data, dict) or not isinstance(data.get("issues"), list):
        return False
    for issue in data["issues"]:
        if not isinstance(issue, dict):
            return False
        if not all(isinstance(issue.get(key), str) for key in ("name", "example", "fix")):
            return False
    return True


def is_valid_pattern(data: Any) -> bool:
    if not isinstance(data, dict):
        return False
    if not all(isinstance(data.get(key), str) for key in ("id", "name", "suggestion")):
        return False
    if not _is_number(data.get("frequency")):
        return False
    if data.get("severity") not in VALID_SEVERITIES:
        return False
    if not _is_str_list(data.get("examples")):
        return False
    before_after = data.get("beforeAfter")
    if not isinstance(before_after, dict):
        return False
    return isinstance(before_after.get("before"), str) and isinstance(before_after.get("after"), str)


def is_full_response(data: Any) -> bool:
    if not isinstance(data, dict) or not isinstance(data.get("patterns"), list):
        return False
    if not all(is_valid_pattern(pattern) for pattern in data["patterns"]):
        return False
    stats = data.get("stats")
    if not isinstance(stats, dict):
        return False
    if not all(_is_number(stats.get(key)) for key in ("totalPrompts", "promptsWithIssues", "overallScore")):
        return False
    return isinstance(data.get("topSuggestion"), str)


def is_individual_element(data: Any) -> bool:
    if not isinstance(data, dict) or data.get("status") not in ("correct", "problems"):
        return False
    for key in ("problems", "categories"):
        if key in data and not _is_str_list(data[key]):
            return False
    for key in ("example", "suggestion"):
        if key in data and not isinstance(data[key], str):
            return False
    return True


def is_individual_response(data: Any) -> bool:
    if isinstance(data, list):
        # Placeholders cover stray elements, but at least one must be valid.
        return any(is_individual_element(item) for item in data)
    # Small models sometimes collapse the array into a single object.
    return is_individual_element(data)


_MATCHERS: Dict[SchemaType, Callable[[Any], bool]] = {
    "minimal": is_minimal_response,
    "simple": is_simple_response,
    "full": is_full_response,
    "individual": is_individual_response,
}


def detect_schema(data: Any) -> Optional[SchemaType]:
    """First schema in cascade order whose structure matches ``data``."""
    for schema in SCHEMA_CASCADE:
        if _MATCHERS[schema](data):
            return schema
    return None


# --- individual schema -------------------------------------------------------


def parse_individual_results(
    data: Any,
    prompts: Optional[Sequence[str]] = None,
) -> List[IndividualPromptResult]:
    """Normalize individual-schema elements; invalid ones become placeholders."""
    items = data if isinstance(data, list) else [data]
    results: List[IndividualPromptResult] = []
    for idx, item in enumerate(items):
        source_prompt = prompts[idx] if prompts and idx < len(prompts) else ""
        if not is_individual_element(item):
            results.append(
                IndividualPromptResult(
                    status="problems",
                    problems=(PLACEHOLDER_PROBLEM,),
                    categories=(),
                    example=source_prompt,
                    suggestion=PLACEHOLDER_PROBLEM,
                    placeholder=True,
                )
            )
            continue
        results.append(
            IndividualPromptResult(
                status=item["status"],
                problems=tuple(item.get("problems") or ()),
                categories=tuple(item.get("categories") or ()),
                example=item.get("example") or source_prompt,
                suggestion=item.get("suggestion") or "",
            )
        )
    return results


def individual_prompt_score(result: IndividualPromptResult, issue_count: int) -> float:
    """10 for a correct prompt, minus 2.5 per distinct issue category otherwise."""
    if result.status == "correct":
        return Limits.MAX_SCORE
    return max(0.0, Limits.MAX_SCORE - 2.5 * min(max(issue_count, 1), 4))


class ResponseParser:
    """Parse provider text into an AnalysisResult, degrading across schema variants."""

    def __init__(
        self,
        taxonomy: IssueTaxonomy = ISSUE_TAXONOMY,
        logger: Optional[PromptLensLogger] = None,
    ) -> None:
        self.taxonomy = taxonomy
        self.logger = logger

    def parse(
        self,
        response_text: str,
        date: str,
        prompts: Optional[Sequence[str]] = None,
    ) -> AnalysisResult:
        """
        Parse a provider response.

        Tries the schemas in fixed order (minimal, simple, full, individual)
        and returns on the first structural match.

        Raises:
            ResponseParseError: no JSON could be decoded, even after repair.
            SchemaMismatchError: the JSON matches none of the schemas.
        """
        data = decode_response(response_text)
        schema = detect_schema(data)
        if schema is None:
            raise SchemaMismatchError("Response does not match any expected schema")
        if self.logger:
            self.logger.debug("response_schema_detected", component="parser", schema=schema)

        if schema == "minimal":
            return self._from_minimal(data, date, prompts)
        if schema == "simple":
            return self._from_simple(data, date, prompts)
        if schema == "full":
            return self._from_full(data, date, prompts)
        return self._from_individual(data, date, prompts)

    @staticmethod
    def _batch_size(prompts: Optional[Sequence[str]], default: int) -> int:
        return len(prompts) if prompts else default

    def _restrict(self, patterns: Iterable[AnalysisPattern]) -> List[AnalysisPattern]:
        # Must run before finalize_patterns so a disabled id never takes a capped slot.
        return restrict_patterns(patterns, self.taxonomy)

    @staticmethod
    def _score(data: dict) -> float:
        raw = data.get("score")
        return normalize_score(raw if _is_number(raw) else Limits.DEFAULT_SCORE)

    def _from_minimal(self, data: dict, date: str, prompts: Optional[Sequence[str]]) -> AnalysisResult:
        counts: Dict[str, int] = {}
        for issue_id in data["issues"]:
            issue_id = issue_id.strip()
            if issue_id:
                counts[issue_id] = counts.get(issue_id, 0) + 1

        patterns = []
        for issue_id, count in counts.items():
            metadata = lookup_issue_metadata(issue_id, self.taxonomy)
            patterns.append(
                AnalysisPattern(
                    id=issue_id,
                    name=metadata.name,
                    frequency=count,
                    severity=metadata.severity,
                    examples=(metadata.example_before,) if metadata.example_before else (),
                    suggestion=metadata.suggestion,
                    before_after=BeforeAfter(
                        before=metadata.example_before or EXAMPLE_NOT_AVAILABLE,
                        after=metadata.example_after or metadata.suggestion,
                    ),
                )
            )

        total = self._batch_size(prompts, 1)
        final = finalize_patterns(self._restrict(patterns))
        return AnalysisResult(
            date=date,
            patterns=final,
            stats=AnalysisStats(
                total_prompts=total,
                # The most frequent issue id occurred in at least that many prompts.
                prompts_with_issues=min(total, max(counts.values())) if counts else 0,
                overall_score=self._score(data),
            ),
            top_suggestion=final[0].suggestion if final else NO_ISSUES_SUGGESTION,
        )

    def _from_simple(self, data: dict, date: str, prompts: Optional[Sequence[str]]) -> AnalysisResult:
        issues = data["issues"]
        by_id: Dict[str, AnalysisPattern] = {}
        for index, issue in enumerate(issues):
            pattern_id = slugify(issue["name"]) or f"issue-{index}"
            existing = by_id.get(pattern_id)
            if existing is not None:
                examples = existing.examples
                if issue["example"] and issue["example"] not in examples:
                    examples = examples + (issue["example"],)
                by_id[pattern_id] = AnalysisPattern(
                    id=existing.id,
                    name=existing.name,
                    frequency=existing.frequency + 1,
                    severity=existing.severity,
                    examples=examples,
                    suggestion=existing.suggestion,
                    before_after=existing.before_after,
                )
                continue
            known = self.taxonomy.get(pattern_id)
            by_id[pattern_id] = AnalysisPattern(
                id=pattern_id,
                name=issue["name"],
                frequency=1,
                severity=known.severity if known else "medium",
                examples=(issue["example"],) if issue["example"] else (),
                suggestion=issue["fix"],
                before_after=BeforeAfter(before=issue["example"], after=issue["fix"]),
            )

        tip = data.get("tip")
        if not isinstance(tip, str) or not tip:
            tip = issues[0]["fix"] if issues else NO_ISSUES_SUGGESTION

        total = self._batch_size(prompts, 1)
        return AnalysisResult(
            date=date,
            patterns=finalize_patterns(self._restrict(by_id.values())),
            stats=AnalysisStats(
                total_prompts=total,
                prompts_with_issues=min(total, len(issues)),
                overall_score=self._score(data),
            ),
            top_suggestion=tip,
        )

    def _from_full(self, data: dict, date: str, prompts: Optional[Sequence[str]]) -> AnalysisResult:
        patterns = []
        for raw in data["patterns"]:
            before_after = BeforeAfter(before=raw["beforeAfter"]["before"], after=raw["beforeAfter"]["after"])
            examples = tuple(raw["examples"]) or ((before_after.before,) if before_after.before else ())
            patterns.append(
                AnalysisPattern(
                    id=raw["id"],
                    name=raw["name"],
                    frequency=raw["frequency"],
                    severity=raw["severity"],
                    examples=examples,
                    suggestion=raw["suggestion"],
                    before_after=before_after,
                )
            )

        stats = data["stats"]
        total = len(prompts) if prompts else max(0, int(stats["totalPrompts"]))
        with_issues = max(0, int(stats["promptsWithIssues"]))
        if total > 0:
            with_issues = min(total, with_issues)
        return AnalysisResult(
            date=date,
            patterns=finalize_patterns(self._restrict(patterns)),
            stats=AnalysisStats(
                total_prompts=total,
                prompts_with_issues=with_issues,
                overall_score=normalize_score(stats["overallScore"]),
            ),
            top_suggestion=data["topSuggestion"],
        )

    def _from_individual(self, data: Any, date: str, prompts: Optional[Sequence[str]]) -> AnalysisResult:
        results = parse_individual_results(data, prompts)
        placeholders = sum(1 for r in results if r.placeholder)
        if placeholders and self.logger:
            self.logger.warning(
                "individual_results_replaced",
                component="parser",
                replaced=placeholders,
                total=len(results),
            )
        synthetic = [self._individual_to_result(result, date) for result in results]
        return merge_results(
            synthetic,
            total_prompts=self._batch_size(prompts, len(results)),
            date=date,
            mode=MergeMode.COUNTED,
        )

    def _individual_to_result(self, result: IndividualPromptResult, date: str) -> AnalysisResult:
        if result.placeholder:
            # Zero weight: a prompt we could not analyze must not move the score.
            return AnalysisResult(
                date=date,
                patterns=(),
                stats=AnalysisStats(total_prompts=0, prompts_with_issues=0, overall_score=PLACEHOLDER_SCORE),
                top_suggestion=NO_ISSUES_SUGGESTION,
            )

        issue_ids: List[str] = []
        if result.status == "problems":
            for category in result.categories or ("other",):
                issue_id = category_to_issue_id(category)
                if issue_id not in issue_ids:
                    issue_ids.append(issue_id)

        patterns = []
        for issue_id in issue_ids:
            metadata = lookup_issue_metadata(issue_id, self.taxonomy)
            known = issue_id in self.taxonomy
            suggestion = metadata.suggestion if known or not result.suggestion else result.suggestion
            patterns.append(
                AnalysisPattern(
                    id=issue_id,
                    name=metadata.name,
                    frequency=1,
                    severity=metadata.severity,
                    examples=(result.example,) if result.example else (),
                    suggestion=suggestion,
                    before_after=BeforeAfter(
                        before=result.example or metadata.example_before or EXAMPLE_NOT_AVAILABLE,
                        after=result.suggestion or metadata.example_after or metadata.suggestion,
                    ),
                )
            )
        patterns = self._restrict(patterns)

        return AnalysisResult(
            date=date,
            patterns=tuple(patterns),
            stats=AnalysisStats(
                total_prompts=1,
                prompts_with_issues=1 if result.status == "problems" else 0,
                overall_score=individual_prompt_score(result, len(issue_ids)),
            ),
            top_suggestion=patterns[0].suggestion if patterns else NO_ISSUES_SUGGESTION,
        )
