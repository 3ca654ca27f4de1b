"""
Helpers for running user-configured regular expressions.
Patterns come from the dashboard, so they are untrusted: they may be invalid,
written in JavaScript syntax, or prone to catastrophic backtracking.
The `regex` engine accepts both "(?P<name>" and the JavaScript "(?<name>" and
lets every search run under a timeout.
"""
from functools import lru_cache
from typing import Optional

import regex

from group_automation.core.config import MAX_PATTERN_CHARS, MAX_PATTERN_INPUT_CHARS, PATTERN_TIMEOUT_SECONDS

# Anything a user pattern can raise while compiling or searching
PATTERN_ERRORS = (regex.error, TimeoutError, RecursionError)


@lru_cache(maxsize=512)
def compile_pattern(pattern: str, flags: int = regex.IGNORECASE):
    """
    Compile a user pattern (case-insensitive by default).
    Raises regex.error for invalid or oversized patterns.
    """
    if len(pattern) > MAX_PATTERN_CHARS:
        raise regex.error(f"pattern is {len(pattern)} characters (max {MAX_PATTERN_CHARS})")
    return regex.compile(pattern, flags)


def search_pattern(pattern: str, text: str):
    """
    First match of a user pattern in text, or None.
    Raises one of PATTERN_ERRORS when the pattern is invalid or exceeds PATTERN_TIMEOUT_SECONDS.
    """
    return compile_pattern(pattern).search(bounded_input(text), timeout=PATTERN_TIMEOUT_SECONDS)


def bounded_input(content: Optional[str]) -> str:
    """Content actually fed to user patterns."""
    if not content:
        return ""
    return content[:MAX_PATTERN_INPUT_CHARS]


def is_valid_pattern(pattern: str) -> bool:
    try:
        compile_pattern(pattern)
        return True
    except regex.error:
        return False
