from __future__ import annotations

import re

# "___" (or "###") on its own line separates day groups; a lone "—" separates posts within a day.
SECTION_DELIMITER = re.compile(r"^[ \t]*(?:_{3,}|#{3,})[ \t]*$", re.MULTILINE)
POST_DELIMITER = re.compile(r"^[ \t]*—[ \t]*$", re.MULTILINE)


def normalize_line_endings(text: str) -> str:
    return text.replace("\r\n", "\n").replace("\r", "\n")


def chunk_document(document: str) -> list[str]:
    text = normalize_line_endings(document).strip()

    chunks: list[str] = []
    for section in SECTION_DELIMITER.split(text):
        for candidate in POST_DELIMITER.split(section):
            chunk = candidate.strip()
            if chunk:
                chunks.append(chunk)

    return chunks
