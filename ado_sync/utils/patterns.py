"""Glob-style id filtering and list chunking."""

import re
from collections.abc import Sequence
from typing import TypeVar

T = TypeVar("T")


def matches_filter(value: str, pattern: str | None) -> bool:
    """
    Match ``value`` against a glob pattern over the whole string.

    ``*`` matches any run of characters and ``?`` exactly one; every other
    character, including regex metacharacters, matches literally.
    """
    if not pattern or pattern == "*":
        return True

    regex = "".join(
        ".*" if char == "*" else "." if char == "?" else re.escape(char) for char in pattern
    )
    return re.fullmatch(regex, value, flags=re.DOTALL) is not None


def chunk(items: Sequence[T], size: int) -> list[list[T]]:
    """Split ``items`` into consecutive lists of at most ``size`` elements."""
    if size < 1:
        raise ValueError("chunk size must be at least 1")
    return [list(items[i : i + size]) for i in range(0, len(items), size)]
