"""Text helpers for composed posts."""

from __future__ import annotations

import re

HASHTAG_PATTERN = re.compile(r"#(\w+)")


def extract_hashtags(content: str) -> list[str]:
    """Return lower-cased hashtag names in order of first appearance."""
    return list(dict.fromkeys(match.lower() for match in HASHTAG_PATTERN.findall(content)))
