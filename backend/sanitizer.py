"""
Input Sanitizer - Strips unsafe characters from free-text form input.

Provides:
- sanitize(): tag, script and SQL metacharacter removal with trimming and truncation
- encode_for_display(): HTML entity encoding for echoing untrusted text
"""

import re
from typing import Optional


# Buffer limit applied after cleaning
SANITIZED_FIELD_MAX_LENGTH = 500

SCRIPT_BLOCK_PATTERN = re.compile(r"<script[^>]*>.*?</script>", re.IGNORECASE | re.DOTALL)
HTML_TAG_PATTERN = re.compile(r"<[^<>]+>")
SQL_META_PATTERN = re.compile(r"'|--|;|\||\*|%|<|>|\+|=")

_REMOVAL_PATTERNS = (SCRIPT_BLOCK_PATTERN, HTML_TAG_PATTERN, SQL_META_PATTERN)

_DISPLAY_ENTITIES = (
    ("&", "&amp;"),  # must run first
    ("<", "&lt;"),
    (">", "&gt;"),
    ('"', "&quot;"),
    ("'", "&#39;"),
)


def _strip_patterns(text: str) -> str:
    # Removing one match can join its neighbours into a new one ("-;-" -> "--"),
    # so repeat until nothing changes.
    while True:
        cleaned = text
        for pattern in _REMOVAL_PATTERNS:
            cleaned = pattern.sub("", cleaned)
        if cleaned == text:
            return cleaned
        text = cleaned


def sanitize(raw: Optional[str]) -> str:
    """
    Remove potentially dangerous content from user input.

    Strips script blocks, HTML/XML tags and SQL metacharacters, trims
    surrounding whitespace and truncates to SANITIZED_FIELD_MAX_LENGTH.
    Idempotent and never raises.
    """
    if raw is None:
        return ""

    cleaned = _strip_patterns(str(raw)).strip()

    if len(cleaned) > SANITIZED_FIELD_MAX_LENGTH:
        cleaned = cleaned[:SANITIZED_FIELD_MAX_LENGTH].rstrip()

    return cleaned


def encode_for_display(raw: Optional[str]) -> str:
    """Encode special characters so untrusted text renders literally."""
    if raw is None:
        return ""

    encoded = str(raw)
    for char, entity in _DISPLAY_ENTITIES:
        encoded = encoded.replace(char, entity)
    return encoded
