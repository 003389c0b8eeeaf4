from __future__ import annotations

from collections.abc import Iterable
import re

from postline.services.quality.rules import ARTIFACT_RULES, RULES_BY_CODE, collapse_blank_lines
from postline.services.quality.types import CorrectionResult, QualityIssue

_ASTERISK_BULLET = re.compile(r"^\* ", re.MULTILINE)
_DASH_BULLET = re.compile(r"^- (?=\S)", re.MULTILINE)
_TRAILING_WHITESPACE = re.compile(r"[ \t]+$", re.MULTILINE)

CANONICAL_BULLET = "•"


def auto_correct(content: str, issues: Iterable[QualityIssue]) -> CorrectionResult:
    """Apply the rewrite of every fixable issue's rule, one note per category.

    A removal can expose a new artifact, such as a second header pulled to the
    start of the line or a separator left alone on its line.  Those are cleaned
    too, pass after pass, until no rule matches what is left.
    """
    rules = []
    for issue in issues:
        rule = RULES_BY_CODE.get(issue.code)
        if issue.auto_fixable and rule is not None and rule not in rules:
            rules.append(rule)

    result = content
    corrections: list[str] = []

    while rules:
        before = result
        for rule in rules:
            rewritten = rule.apply(result)
            if rewritten != result and rule.correction_note not in corrections:
                corrections.append(rule.correction_note)
            result = rewritten
        # Removals leave empty lines behind; never hand the formatter more than one blank line.
        result = collapse_blank_lines(result.strip())
        if result == before:
            break
        rules = [rule for rule in ARTIFACT_RULES if rule.detect(result)]

    return CorrectionResult(content=collapse_blank_lines(result.strip()), corrections=corrections)


def normalize_bullets(content: str) -> CorrectionResult:
    result = _ASTERISK_BULLET.sub(f"{CANONICAL_BULLET} ", content)
    result = _DASH_BULLET.sub(f"{CANONICAL_BULLET} ", result)

    corrections = []
    if result != content:
        corrections.append(f"Normalized bullet characters to {CANONICAL_BULLET}")
    return CorrectionResult(content=result, corrections=corrections)


def clean_whitespace(content: str) -> CorrectionResult:
    result = _TRAILING_WHITESPACE.sub("", content)
    result = "\n".join(line.lstrip() for line in result.split("\n"))

    corrections = []
    if result != content:
        corrections.append("Cleaned up whitespace")
    return CorrectionResult(content=result, corrections=corrections)
