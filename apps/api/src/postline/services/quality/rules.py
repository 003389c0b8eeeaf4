"""Static quality rules: artifact patterns, content minimums, garbage patterns and penalties.

Fixable artifacts are declared as ``ArtifactRule`` entries.  Validators iterate
``ARTIFACT_RULES`` and the corrector looks rules up by issue code, so a new
artifact type only needs a new entry here.
"""

from __future__ import annotations

from dataclasses import dataclass
import re
from typing import Callable

from postline.services.quality.types import Severity

EMPTY = "EMPTY"
TOO_SHORT = "TOO_SHORT"
TOO_FEW_LETTERS = "TOO_FEW_LETTERS"
TOO_FEW_WORDS = "TOO_FEW_WORDS"
GARBAGE_CONTENT = "GARBAGE_CONTENT"
DAY_HEADER = "DAY_HEADER"
UNDERSCORE_SEP = "UNDERSCORE_SEP"
EMDASH_SEP = "EMDASH_SEP"
DASH_SEP = "DASH_SEP"
STRAY_BULLET = "STRAY_BULLET"
HTML_ENTITY = "HTML_ENTITY"
ZERO_WIDTH = "ZERO_WIDTH"
EXCESSIVE_BLANKS = "EXCESSIVE_BLANKS"
ORPHANED_MARKER = "ORPHANED_MARKER"


@dataclass(frozen=True)
class ContentMinimums:
    length: int = 10
    letter_count: int = 3
    word_count: int = 2


CONTENT_MINIMUMS = ContentMinimums()

SCORE_PENALTIES: dict[str, int] = {
    DAY_HEADER: 5,
    UNDERSCORE_SEP: 10,
    EMDASH_SEP: 10,
    DASH_SEP: 5,
    STRAY_BULLET: 5,
    ORPHANED_MARKER: 5,
    HTML_ENTITY: 3,
    ZERO_WIDTH: 2,
    EXCESSIVE_BLANKS: 5,
    TOO_SHORT: 50,
    TOO_FEW_LETTERS: 30,
    TOO_FEW_WORDS: 20,
    GARBAGE_CONTENT: 100,
}

# Matched against the whole trimmed chunk.
GARBAGE_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"[\s\-_•*—→✓✗\[\](){}|\\/]+", re.ASCII),
    re.compile(r"\d+[.\-/]?\s*", re.ASCII),
    re.compile(r"[^\w]*", re.ASCII),
    re.compile(r"\s*"),
)

DAY_HEADER_PATTERN = re.compile(r"^Day\s*\d+:?\s*", re.IGNORECASE | re.MULTILINE)
UNDERSCORE_SEPARATOR_PATTERN = re.compile(r"^_{3,}$", re.MULTILINE)
EMDASH_SEPARATOR_PATTERN = re.compile(r"^—+$", re.MULTILINE)
DASH_SEPARATOR_PATTERN = re.compile(r"^-{2,}$", re.MULTILINE)
STRAY_BULLET_PATTERN = re.compile(r"^\s*[•*\-]\s*$", re.MULTILINE)
ORPHANED_NUMBER_PATTERN = re.compile(r"^\s*\d+[.)]\s*$", re.MULTILINE)
HTML_ENTITY_PATTERN = re.compile(r"&(?:nbsp|amp|lt|gt|quot|apos);")
ZERO_WIDTH_PATTERN = re.compile("[\u200b-\u200d\ufeff\u00ad]")
EXCESSIVE_BLANK_LINES_PATTERN = re.compile(r"\n{3,}")

HTML_ENTITY_REPLACEMENTS: tuple[tuple[str, str], ...] = (
    ("&nbsp;", " "),
    ("&amp;", "&"),
    ("&lt;", "<"),
    ("&gt;", ">"),
    ("&quot;", '"'),
    ("&apos;", "'"),
)

_LETTER_PATTERN = re.compile(r"[a-zA-Z]")


def _decode_html_entities(text: str) -> str:
    for entity, literal in HTML_ENTITY_REPLACEMENTS:
        text = text.replace(entity, literal)
    return text


def collapse_blank_lines(text: str) -> str:
    return EXCESSIVE_BLANK_LINES_PATTERN.sub("\n\n", text)


@dataclass(frozen=True)
class ArtifactRule:
    code: str
    severity: Severity
    pattern: re.Pattern[str]
    description: str
    residual_description: str
    correction_note: str
    rewrite: Callable[[str], str]

    @property
    def penalty(self) -> int:
        return SCORE_PENALTIES[self.code]

    def detect(self, text: str) -> bool:
        return self.pattern.search(text) is not None

    def apply(self, text: str) -> str:
        return self.rewrite(text)


def _strip(pattern: re.Pattern[str]) -> Callable[[str], str]:
    return lambda text: pattern.sub("", text)


ARTIFACT_RULES: tuple[ArtifactRule, ...] = (
    ArtifactRule(
        code=DAY_HEADER,
        severity="warning",
        pattern=DAY_HEADER_PATTERN,
        description='Contains "Day X:" header that will be removed',
        residual_description="Day header still present after processing",
        correction_note='Removed "Day X:" header(s)',
        rewrite=_strip(re.compile(r"^Day\s*\d+:?\s*\n*", re.IGNORECASE | re.MULTILINE)),
    ),
    ArtifactRule(
        code=UNDERSCORE_SEP,
        severity="warning",
        pattern=UNDERSCORE_SEPARATOR_PATTERN,
        description="Contains underscore separator line that will be removed",
        residual_description="Underscore separator still present",
        correction_note="Removed underscore separator(s)",
        rewrite=_strip(UNDERSCORE_SEPARATOR_PATTERN),
    ),
    ArtifactRule(
        code=EMDASH_SEP,
        severity="warning",
        pattern=EMDASH_SEPARATOR_PATTERN,
        description="Contains em-dash separator that will be removed",
        residual_description="Em-dash separator still present",
        correction_note="Removed em-dash separator(s)",
        rewrite=_strip(EMDASH_SEPARATOR_PATTERN),
    ),
    ArtifactRule(
        code=DASH_SEP,
        severity="warning",
        pattern=DASH_SEPARATOR_PATTERN,
        description="Contains dash separator that will be removed",
        residual_description="Dash separator still present",
        correction_note="Removed dash separator(s)",
        rewrite=_strip(DASH_SEPARATOR_PATTERN),
    ),
    ArtifactRule(
        code=STRAY_BULLET,
        severity="warning",
        pattern=STRAY_BULLET_PATTERN,
        description="Contains empty bullet point(s) that will be removed",
        residual_description="Empty bullet point",
        correction_note="Removed empty bullet point(s)",
        rewrite=_strip(STRAY_BULLET_PATTERN),
    ),
    ArtifactRule(
        code=ORPHANED_MARKER,
        severity="warning",
        pattern=ORPHANED_NUMBER_PATTERN,
        description="Contains orphaned numbered list marker(s) that will be removed",
        residual_description="Empty numbered item",
        correction_note="Removed orphaned number marker(s)",
        rewrite=_strip(ORPHANED_NUMBER_PATTERN),
    ),
    ArtifactRule(
        code=HTML_ENTITY,
        severity="info",
        pattern=HTML_ENTITY_PATTERN,
        description="Contains HTML entities that will be converted",
        residual_description="HTML entities still present",
        correction_note="Converted HTML entities to text",
        rewrite=_decode_html_entities,
    ),
    ArtifactRule(
        code=ZERO_WIDTH,
        severity="info",
        pattern=ZERO_WIDTH_PATTERN,
        description="Contains invisible zero-width characters that will be removed",
        residual_description="Zero-width characters still present",
        correction_note="Removed invisible zero-width characters",
        rewrite=_strip(ZERO_WIDTH_PATTERN),
    ),
    ArtifactRule(
        code=EXCESSIVE_BLANKS,
        severity="info",
        pattern=EXCESSIVE_BLANK_LINES_PATTERN,
        description="Contains excessive consecutive blank lines that will be reduced",
        residual_description="Contains more than one consecutive blank line",
        correction_note="Reduced excessive blank lines",
        rewrite=collapse_blank_lines,
    ),
)

RULES_BY_CODE: dict[str, ArtifactRule] = {rule.code: rule for rule in ARTIFACT_RULES}


def is_garbage_content(content: str) -> bool:
    trimmed = content.strip()
    return any(pattern.fullmatch(trimmed) is not None for pattern in GARBAGE_PATTERNS)


def count_letters(content: str) -> int:
    return len(_LETTER_PATTERN.findall(content))


def count_words(content: str) -> int:
    return len(content.split())
