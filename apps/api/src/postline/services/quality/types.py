from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal

Severity = Literal["error", "warning", "info"]
Stage = Literal["pre-validation", "auto-correction", "formatting", "post-validation", "complete"]


@dataclass(frozen=True)
class IssuePosition:
    line: int
    column: int


@dataclass(frozen=True)
class QualityIssue:
    code: str
    severity: Severity
    description: str
    auto_fixable: bool
    position: IssuePosition | None = None

    @property
    def is_fatal(self) -> bool:
        return self.severity == "error" and not self.auto_fixable

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "code": self.code,
            "severity": self.severity,
            "description": self.description,
            "auto_fixable": self.auto_fixable,
        }
        if self.position is not None:
            payload["position"] = {"line": self.position.line, "column": self.position.column}
        return payload


@dataclass(frozen=True)
class QualityResult:
    is_valid: bool
    score: int
    issues: list[QualityIssue]
    corrections: list[str] = field(default_factory=list)

    @property
    def fatal_issues(self) -> list[QualityIssue]:
        return [issue for issue in self.issues if issue.is_fatal]

    @property
    def fixable_issues(self) -> list[QualityIssue]:
        return [issue for issue in self.issues if issue.auto_fixable]


@dataclass(frozen=True)
class CorrectionResult:
    content: str
    corrections: list[str]


@dataclass(frozen=True)
class PipelineResult:
    original_content: str
    processed_content: str
    is_valid: bool
    quality_score: int
    all_issues: list[QualityIssue]
    corrections: list[str]
    stage: Stage
    rejection_reason: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "original_content": self.original_content,
            "processed_content": self.processed_content,
            "is_valid": self.is_valid,
            "quality_score": self.quality_score,
            "all_issues": [issue.to_dict() for issue in self.all_issues],
            "corrections": list(self.corrections),
            "stage": self.stage,
            "rejection_reason": self.rejection_reason,
        }


@dataclass(frozen=True)
class DocumentSummary:
    total: int
    valid: int
    rejected: int
    corrected: int
    avg_quality_score: int


@dataclass(frozen=True)
class DocumentReport:
    chunks: list[str]
    results: list[PipelineResult]
    summary: DocumentSummary
