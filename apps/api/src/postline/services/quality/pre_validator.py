"""Checks raw chunk content before any correction or formatting is applied."""

from __future__ import annotations

from postline.services.quality.rules import (
    ARTIFACT_RULES,
    CONTENT_MINIMUMS,
    EMPTY,
    GARBAGE_CONTENT,
    SCORE_PENALTIES,
    TOO_FEW_LETTERS,
    TOO_FEW_WORDS,
    TOO_SHORT,
    count_letters,
    count_words,
    is_garbage_content,
)
from postline.services.quality.types import QualityIssue, QualityResult


def fatal_result(code: str, description: str) -> QualityResult:
    return QualityResult(
        is_valid=False,
        score=0,
        issues=[
            QualityIssue(
                code=code,
                severity="error",
                description=description,
                auto_fixable=False,
            )
        ],
    )


def check_content_minimums(
    trimmed: str,
    score: int,
    issues: list[QualityIssue],
    *,
    qualifier: str = "",
) -> int:
    """Append a non-fixable error per failed minimum and return the penalised score.

    ``qualifier`` is inserted into descriptions, e.g. " after processing".
    """
    length = len(trimmed)
    if length < CONTENT_MINIMUMS.length:
        issues.append(
            QualityIssue(
                code=TOO_SHORT,
                severity="error",
                description=(
                    f"Post is too short{qualifier} "
                    f"({length} chars, minimum {CONTENT_MINIMUMS.length})"
                ),
                auto_fixable=False,
            )
        )
        score = max(0, score - SCORE_PENALTIES[TOO_SHORT])

    letter_count = count_letters(trimmed)
    if letter_count < CONTENT_MINIMUMS.letter_count:
        issues.append(
            QualityIssue(
                code=TOO_FEW_LETTERS,
                severity="error",
                description=(
                    f"Post has too few letters{qualifier} "
                    f"({letter_count}, minimum {CONTENT_MINIMUMS.letter_count})"
                ),
                auto_fixable=False,
            )
        )
        score = max(0, score - SCORE_PENALTIES[TOO_FEW_LETTERS])

    word_count = count_words(trimmed)
    if word_count < CONTENT_MINIMUMS.word_count:
        issues.append(
            QualityIssue(
                code=TOO_FEW_WORDS,
                severity="error",
                description=(
                    f"Post has too few words{qualifier} "
                    f"({word_count}, minimum {CONTENT_MINIMUMS.word_count})"
                ),
                auto_fixable=False,
            )
        )
        score = max(0, score - SCORE_PENALTIES[TOO_FEW_WORDS])

    return score


def pre_validate(raw_chunk: str) -> QualityResult:
    if not raw_chunk or not raw_chunk.strip():
        return fatal_result(EMPTY, "Post is empty")

    trimmed = raw_chunk.strip()
    if is_garbage_content(trimmed):
        return fatal_result(
            GARBAGE_CONTENT,
            "Content appears to be only symbols/separators with no real text",
        )

    issues: list[QualityIssue] = []
    score = 100

    for rule in ARTIFACT_RULES:
        if not rule.detect(raw_chunk):
            continue
        issues.append(
            QualityIssue(
                code=rule.code,
                severity=rule.severity,
                description=rule.description,
                auto_fixable=True,
            )
        )
        score -= rule.penalty

    score = check_content_minimums(trimmed, score, issues)
    score = max(0, score)

    return QualityResult(
        is_valid=not any(issue.is_fatal for issue in issues),
        score=score,
        issues=issues,
    )
