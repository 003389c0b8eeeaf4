"""Final quality gate, run on formatted content right before delivery."""

from __future__ import annotations

import re

from postline.services.quality.pre_validator import check_content_minimums, fatal_result
from postline.services.quality.rules import (
    DAY_HEADER,
    EMDASH_SEP,
    EMPTY,
    EXCESSIVE_BLANKS,
    GARBAGE_CONTENT,
    ORPHANED_MARKER,
    RULES_BY_CODE,
    SCORE_PENALTIES,
    STRAY_BULLET,
    UNDERSCORE_SEP,
    is_garbage_content,
)
from postline.services.quality.types import IssuePosition, QualityIssue, QualityResult

DEFAULT_MIN_SCORE = 50

RESIDUAL_RULE_CODES = (DAY_HEADER, UNDERSCORE_SEP, EMDASH_SEP)

_EMPTY_BULLET_LINE = re.compile(r"[•*\-]\s*")
_EMPTY_NUMBERED_LINE = re.compile(r"\d+[.)]\s*")


def _scan_empty_markers(content: str, issues: list[QualityIssue]) -> int:
    penalty = 0
    for index, raw_line in enumerate(content.split("\n"), start=1):
        line = raw_line.strip()
        if _EMPTY_BULLET_LINE.fullmatch(line):
            issues.append(
                QualityIssue(
                    code=STRAY_BULLET,
                    severity="warning",
                    description=f"Empty bullet point on line {index}",
                    auto_fixable=True,
                    position=IssuePosition(line=index, column=0),
                )
            )
            penalty += SCORE_PENALTIES[STRAY_BULLET]
        if _EMPTY_NUMBERED_LINE.fullmatch(line):
            issues.append(
                QualityIssue(
                    code=ORPHANED_MARKER,
                    severity="warning",
                    description=f"Empty numbered item on line {index}",
                    auto_fixable=True,
                    position=IssuePosition(line=index, column=0),
                )
            )
            penalty += SCORE_PENALTIES[ORPHANED_MARKER]
    return penalty


def post_validate(formatted_content: str, *, min_score: int = DEFAULT_MIN_SCORE) -> QualityResult:
    trimmed = formatted_content.strip()
    if not trimmed:
        return fatal_result(EMPTY, "Post is empty after processing")
    if is_garbage_content(trimmed):
        return fatal_result(GARBAGE_CONTENT, "Post contains only symbols after processing")

    issues: list[QualityIssue] = []
    score = 100

    for code in RESIDUAL_RULE_CODES:
        rule = RULES_BY_CODE[code]
        if rule.detect(formatted_content):
            issues.append(
                QualityIssue(
                    code=rule.code,
                    severity=rule.severity,
                    description=rule.residual_description,
                    auto_fixable=True,
                )
            )
            score -= rule.penalty

    score -= _scan_empty_markers(formatted_content, issues)

    if "\n\n\n" in formatted_content:
        issues.append(
            QualityIssue(
                code=EXCESSIVE_BLANKS,
                severity="info",
                description=RULES_BY_CODE[EXCESSIVE_BLANKS].residual_description,
                auto_fixable=True,
            )
        )
        score -= SCORE_PENALTIES[EXCESSIVE_BLANKS]

    score = check_content_minimums(trimmed, score, issues, qualifier=" after processing")
    score = max(0, score)

    has_fatal = any(issue.is_fatal for issue in issues)
    return QualityResult(
        is_valid=not has_fatal and score >= min_score,
        score=score,
        issues=issues,
    )
