"""Canonical publish-ready layout for post text.

Rules:
1. List items are flush left.
2. No blank lines between consecutive list items.
3. One blank line before a list that follows text, and after a list that is followed by text.
4. One blank line between text paragraphs.
5. Never more than one consecutive blank line.
"""

from __future__ import annotations

import re

_BULLET_ITEM = re.compile(r"^[•*\-✓✗xX→]\s")
_NUMBERED_ITEM = re.compile(r"^\d+[.)]\s")


def is_list_item(line: str) -> bool:
    stripped = line.lstrip()
    return _BULLET_ITEM.match(stripped) is not None or _NUMBERED_ITEM.match(stripped) is not None


def format_post(content: str) -> str:
    result: list[str] = []
    in_list = False
    last_was_blank = False
    last_was_text = False

    for line in content.split("\n"):
        # Classify the trimmed line; trailing whitespace never survives the output.
        line = line.rstrip()
        line_is_list_item = is_list_item(line)
        if line_is_list_item:
            line = line.lstrip()

        if not line.strip():
            if not last_was_blank and result:
                result.append("")
                last_was_blank = True
            continue

        if line_is_list_item:
            if not in_list and result and not last_was_blank:
                result.append("")
            in_list = True
            last_was_text = False
        else:
            if (in_list or last_was_text) and not last_was_blank:
                result.append("")
            in_list = False
            last_was_text = True

        result.append(line)
        last_was_blank = False

    return "\n".join(result).strip()
