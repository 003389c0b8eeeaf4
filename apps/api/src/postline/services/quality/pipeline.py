"""Quality pipeline orchestrator.

Stages run in a fixed order::

    pre-validation -> auto-correction -> formatting -> post-validation -> complete

A chunk with a fatal pre-validation issue exits at ``pre-validation``.  If the
post-validator reports fixable issues, one extra correction and formatting pass
runs; there is no further looping.  A rejected chunk is a normal result, never
an exception.
"""

from __future__ import annotations

from dataclasses import dataclass
import math

from postline.config import Settings
from postline.services.quality.chunker import chunk_document
from postline.services.quality.corrector import auto_correct, clean_whitespace, normalize_bullets
from postline.services.quality.formatter import format_post
from postline.services.quality.post_validator import DEFAULT_MIN_SCORE, post_validate
from postline.services.quality.pre_validator import pre_validate
from postline.services.quality.types import (
    DocumentReport,
    DocumentSummary,
    PipelineResult,
    QualityIssue,
)


@dataclass(frozen=True)
class PipelinePolicy:
    pre_weight: float = 0.3
    post_weight: float = 0.7
    min_score: int = DEFAULT_MIN_SCORE

    @classmethod
    def from_settings(cls, settings: Settings) -> PipelinePolicy:
        return cls(
            pre_weight=settings.quality_pre_weight,
            post_weight=settings.quality_post_weight,
            min_score=settings.quality_min_score,
        )

    def blend(self, pre_score: int, post_score: int) -> int:
        # Half-up rounding; round() would send 98.5 to 98.
        return int(math.floor(pre_score * self.pre_weight + post_score * self.post_weight + 0.5))


DEFAULT_POLICY = PipelinePolicy()


def _dedupe(values: list[str]) -> list[str]:
    return list(dict.fromkeys(values))


def _join_descriptions(issues: list[QualityIssue]) -> str:
    return "; ".join(issue.description for issue in issues)


def run_quality_pipeline(raw_chunk: str, policy: PipelinePolicy | None = None) -> PipelineResult:
    policy = policy or DEFAULT_POLICY
    all_issues: list[QualityIssue] = []
    corrections: list[str] = []

    pre_result = pre_validate(raw_chunk)
    all_issues.extend(pre_result.issues)

    fatal_issues = pre_result.fatal_issues
    if fatal_issues:
        return PipelineResult(
            original_content=raw_chunk,
            processed_content=raw_chunk,
            is_valid=False,
            quality_score=pre_result.score,
            all_issues=all_issues,
            corrections=[],
            stage="pre-validation",
            rejection_reason=_join_descriptions(fatal_issues),
        )

    processed = raw_chunk
    fixable_issues = pre_result.fixable_issues
    if fixable_issues:
        corrected = auto_correct(processed, fixable_issues)
        processed = corrected.content
        corrections.extend(corrected.corrections)

    for step in (normalize_bullets, clean_whitespace):
        step_result = step(processed)
        processed = step_result.content
        corrections.extend(step_result.corrections)

    processed = format_post(processed)

    post_result = post_validate(processed, min_score=policy.min_score)
    all_issues.extend(post_result.issues)

    post_fixable = post_result.fixable_issues
    if post_fixable:
        second_pass = auto_correct(processed, post_fixable)
        corrections.extend(second_pass.corrections)
        processed = format_post(second_pass.content)

    final_score = policy.blend(pre_result.score, post_result.score)
    is_valid = post_result.is_valid and final_score >= policy.min_score

    rejection_reason: str | None = None
    if not is_valid:
        error_issues = [issue for issue in all_issues if issue.severity == "error"]
        if error_issues:
            rejection_reason = _join_descriptions(error_issues)
        else:
            rejection_reason = f"Quality score too low ({final_score}/100)"

    return PipelineResult(
        original_content=raw_chunk,
        processed_content=processed.strip(),
        is_valid=is_valid,
        quality_score=max(0, min(100, final_score)),
        all_issues=all_issues,
        corrections=_dedupe(corrections),
        stage="complete",
        rejection_reason=rejection_reason,
    )


def run_batch_pipeline(
    raw_chunks: list[str],
    policy: PipelinePolicy | None = None,
) -> list[PipelineResult]:
    return [run_quality_pipeline(chunk, policy) for chunk in raw_chunks]


def process_document(document: str, policy: PipelinePolicy | None = None) -> DocumentReport:
    chunks = chunk_document(document)
    results = run_batch_pipeline(chunks, policy)

    valid = sum(1 for result in results if result.is_valid)
    corrected = sum(1 for result in results if result.corrections)
    total_score = sum(result.quality_score for result in results)
    avg_quality_score = int(math.floor(total_score / len(results) + 0.5)) if results else 0

    return DocumentReport(
        chunks=chunks,
        results=results,
        summary=DocumentSummary(
            total=len(results),
            valid=valid,
            rejected=len(results) - valid,
            corrected=corrected,
            avg_quality_score=avg_quality_score,
        ),
    )
