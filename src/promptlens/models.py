from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Literal, Optional, Tuple

Severity = Literal["low", "medium", "high"]
Prioritization = Literal["longest-first", "chronological"]
SchemaType = Literal["minimal", "simple", "full", "individual"]
AnalysisMode = Literal["batch", "individual"]
PromptStatus = Literal["correct", "problems"]

VALID_SEVERITIES = ("low", "medium", "high")
VALID_PROVIDERS = ("ollama", "anthropic", "google")


@dataclass(frozen=True)
class ProviderLimits:
    max_tokens_per_batch: int
    max_prompts_per_batch: int
    prioritization: Prioritization = "chronological"


@dataclass(frozen=True)
class Batch:
    prompts: Tuple[str, ...]
    tokens: int

    def __len__(self) -> int:
        return len(self.prompts)


@dataclass(frozen=True)
class BeforeAfter:
    before: str
    after: str

    def to_dict(self) -> dict:
        return {"before": self.before, "after": self.after}


@dataclass(frozen=True)
class AnalysisPattern:
    id: str
    name: str
    frequency: float
    severity: Severity
    examples: Tuple[str, ...]
    suggestion: str
    before_after: BeforeAfter

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "frequency": self.frequency,
            "severity": self.severity,
            "examples": list(self.examples),
            "suggestion": self.suggestion,
            "beforeAfter": self.before_after.to_dict(),
        }


@dataclass(frozen=True)
class AnalysisStats:
    total_prompts: int
    prompts_with_issues: int
    overall_score: float

    def to_dict(self) -> dict:
        return {
            "totalPrompts": self.total_prompts,
            "promptsWithIssues": self.prompts_with_issues,
            "overallScore": self.overall_score,
        }


@dataclass(frozen=True)
class AnalysisResult:
    """Unit exchanged between the pipeline stages and returned to callers."""

    date: str
    patterns: Tuple[AnalysisPattern, ...]
    stats: AnalysisStats
    top_suggestion: str

    def to_dict(self) -> dict:
        return {
            "date": self.date,
            "patterns": [p.to_dict() for p in self.patterns],
            "stats": self.stats.to_dict(),
            "topSuggestion": self.top_suggestion,
        }


@dataclass(frozen=True)
class IndividualPromptResult:
    status: PromptStatus
    problems: Tuple[str, ...]
    categories: Tuple[str, ...]
    example: str
    suggestion: str
    placeholder: bool = False


@dataclass(frozen=True)
class ProjectContext:
    role: Optional[str] = None
    project_type: Optional[str] = None
    domain: Optional[str] = None
    tech_stack: List[str] = field(default_factory=list)
    guidelines: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class RuleConfig:
    enabled: Optional[bool] = None
    severity: Optional[Severity] = None
