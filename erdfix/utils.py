# File: erdfix/utils.py
"""
NexaFlow ERDFix - Utility Functions & Helpers
===============================================
Identifier transformation helpers and a profiling timer used throughout the
validation and fix pipeline.

Performance strategy:
- ALL identifier-conversion functions are decorated with ``@lru_cache(maxsize=None)``
  so repeated calls (every validation pass re-checks every entity and
  attribute name) are amortised to O(1) after first invocation.
- The functions are pure; the caches are the only module-level state.
- No external dependencies beyond the Python standard library.
"""

from __future__ import annotations

import functools
import logging
import re
import time
from typing import List, Optional, Tuple

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("erdfix.utils")

# ---------------------------------------------------------------------------
# Pre-compiled regex patterns (compiled once at module load)
# ---------------------------------------------------------------------------

_CAMEL_TO_SNAKE_RE1: re.Pattern[str] = re.compile(r"([A-Z]+)([A-Z][a-z])")
_CAMEL_TO_SNAKE_RE2: re.Pattern[str] = re.compile(r"([a-z0-9])([A-Z])")
_NON_ALPHANUM_RE: re.Pattern[str] = re.compile(r"[^a-zA-Z0-9]")
_MULTI_UNDERSCORE_RE: re.Pattern[str] = re.compile(r"_{2,}")
_LEADING_TRAILING_UNDERSCORE_RE: re.Pattern[str] = re.compile(r"^_+|_+$")
_LEADING_DIGITS_RE: re.Pattern[str] = re.compile(r"^[0-9_]+")
_SPLIT_WORDS_RE: re.Pattern[str] = re.compile(
    r"[A-Z]?[a-z]+|[A-Z]+(?=[A-Z][a-z]|\d|\b)|[A-Z]|\d+"
)

_DEFAULT_ENTITY_NAME: str = "Entity"
_DEFAULT_ATTRIBUTE_NAME: str = "field"


# ---------------------------------------------------------------------------
# Cached string transformation functions
# ---------------------------------------------------------------------------


@functools.lru_cache(maxsize=None)
def _extract_words(name: str) -> Tuple[str, ...]:
    """
    Split an identifier into its words, treating any non-alphanumeric
    character as a separator.

    >>> _extract_words("user-profile_ID")
    ('user', 'profile', 'ID')
    """
    words: List[str] = []
    for chunk in _NON_ALPHANUM_RE.split(name):
        if chunk:
            words.extend(_SPLIT_WORDS_RE.findall(chunk))
    return tuple(words)


@functools.lru_cache(maxsize=None)
def to_snake_case(name: str) -> str:
    """
    Convert any string to snake_case.

    Examples:
        >>> to_snake_case("OrderItem")
        'order_item'
        >>> to_snake_case("user-profile")
        'user_profile'
        >>> to_snake_case("already_snake")
        'already_snake'

    First call: O(n) where n = len(name).
    Subsequent calls with same input: O(1) via LRU cache.
    """
    if not name:
        return ""
    s: str = _CAMEL_TO_SNAKE_RE1.sub(r"\1_\2", name)
    s = _CAMEL_TO_SNAKE_RE2.sub(r"\1_\2", s)
    s = _NON_ALPHANUM_RE.sub("_", s)
    s = _MULTI_UNDERSCORE_RE.sub("_", s)
    s = _LEADING_TRAILING_UNDERSCORE_RE.sub("", s)
    return s.lower()


@functools.lru_cache(maxsize=None)
def to_pascal_case(name: str) -> str:
    """
    Convert any string to PascalCase.

    Examples:
        >>> to_pascal_case("user_profile")
        'UserProfile'
        >>> to_pascal_case("order-details")
        'OrderDetails'
        >>> to_pascal_case("INVALID_Entity_Name")
        'InvalidEntityName'

    Words that are entirely upper-case are re-normalised, so acronyms come
    out capitalised rather than shouted.
    """
    if not name:
        return ""
    return "".join(word.capitalize() for word in _extract_words(name))


@functools.lru_cache(maxsize=None)
def to_camel_case(name: str) -> str:
    """
    Convert any string to camelCase.

    Examples:
        >>> to_camel_case("product-name")
        'productName'
        >>> to_camel_case("CreatedOn")
        'createdOn'
    """
    pascal: str = to_pascal_case(name)
    if not pascal:
        return ""
    return pascal[0].lower() + pascal[1:]


@functools.lru_cache(maxsize=None)
def sanitize_entity_name(name: str) -> str:
    """
    Produce a valid PascalCase entity identifier from an arbitrary name.

    Leading digits are dropped (an identifier must start with a letter);
    if nothing usable is left, a generic placeholder is returned.

        >>> sanitize_entity_name("user-profile")
        'UserProfile'
        >>> sanitize_entity_name("123orders")
        'Orders'
    """
    candidate: str = to_pascal_case(_LEADING_DIGITS_RE.sub("", name.strip()))
    candidate = _LEADING_DIGITS_RE.sub("", candidate)
    return candidate or _DEFAULT_ENTITY_NAME


@functools.lru_cache(maxsize=None)
def sanitize_attribute_name(name: str) -> str:
    """
    Produce a valid camelCase attribute identifier from an arbitrary name.

        >>> sanitize_attribute_name("product-name")
        'productName'
        >>> sanitize_attribute_name("123invalid")
        'invalid'
    """
    candidate: str = to_camel_case(_LEADING_DIGITS_RE.sub("", name.strip()))
    candidate = _LEADING_DIGITS_RE.sub("", candidate)
    if not candidate:
        return _DEFAULT_ATTRIBUTE_NAME
    return candidate[0].lower() + candidate[1:]


@functools.lru_cache(maxsize=None)
def shorten_identifier(name: str, limit: int) -> str:
    """
    Shorten *name* to at most *limit* characters.

    Vowels are dropped from the tail of each word first (keeping word
    initials readable); if that is still too long, the result is truncated.
    """
    if len(name) <= limit:
        return name
    words: Tuple[str, ...] = _extract_words(name) or (name,)
    compact: str = "".join(
        word[0] + re.sub(r"[aeiouAEIOU]", "", word[1:]) for word in words
    )
    if name[:1].islower():
        compact = compact[:1].lower() + compact[1:]
    return compact[:limit]


def normalize_key(name: str) -> str:
    """Case- and separator-insensitive comparison key (``Order_Item`` → ``orderitem``)."""
    return _NON_ALPHANUM_RE.sub("", name).lower()


# ---------------------------------------------------------------------------
# Timer context manager
# ---------------------------------------------------------------------------


class Timer:
    """
    Simple context-manager timer for profiling pipeline steps.

    Usage:
        with Timer("validate") as t:
            ...
        print(t.elapsed)
    """

    __slots__ = ("label", "start_time", "end_time", "elapsed")

    def __init__(self, label: str = "operation") -> None:
        self.label: str = label
        self.start_time: float = 0.0
        self.end_time: float = 0.0
        self.elapsed: float = 0.0

    def __enter__(self) -> "Timer":
        self.start_time = time.perf_counter()
        return self

    def __exit__(
        self,
        exc_type: Optional[type],
        exc_val: Optional[BaseException],
        exc_tb: Optional[object],
    ) -> None:
        self.end_time = time.perf_counter()
        self.elapsed = self.end_time - self.start_time
        logger.info(
            "Timer [%s]: %.4f seconds",
            self.label,
            self.elapsed,
        )

    def __repr__(self) -> str:
        return f"<Timer {self.label}: {self.elapsed:.4f}s>"


# ---------------------------------------------------------------------------
# Module-level exports
# ---------------------------------------------------------------------------

__all__: List[str] = [
    "to_snake_case",
    "to_pascal_case",
    "to_camel_case",
    "sanitize_entity_name",
    "sanitize_attribute_name",
    "shorten_identifier",
    "normalize_key",
    "Timer",
]

logger.debug("erdfix.utils loaded — %d public symbols.", len(__all__))
