# File: erdfix/identity.py
"""
NexaFlow ERDFix - Warning Identity Assigner
=============================================
Gives every diagnostic a **content-derived** id so that a client can ask,
in a later and completely stateless call, to "fix warning X" using nothing
but the id returned by an earlier validation.

    id = "warning_" + str(abs(hash32(type|entity|attribute|relationship|message)))

``hash32`` is the classic ``h = 31*h + unit`` string hash over UTF-16 code
units, wrapped to a signed 32-bit integer, so ids issued by earlier clients
of the engine stay valid.

There is no counter and no cache: the same content always yields the same
id, in any process, in any order.
"""

from __future__ import annotations

import logging
import re
from typing import Dict, Iterable, Iterator, List, Optional

from erdfix.models import Diagnostic

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("erdfix.identity")

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

WARNING_ID_PREFIX: str = "warning_"
_WARNING_ID_RE: re.Pattern[str] = re.compile(r"^warning_\d+$")

_MASK_32: int = 0xFFFFFFFF
_SIGN_BIT_32: int = 0x80000000


# ---------------------------------------------------------------------------
# Hashing
# ---------------------------------------------------------------------------


def _utf16_units(text: str) -> Iterator[int]:
    """Yield UTF-16 code units; astral characters become surrogate pairs."""
    for ch in text:
        cp: int = ord(ch)
        if cp > 0xFFFF:
            cp -= 0x10000
            yield 0xD800 + (cp >> 10)
            yield 0xDC00 + (cp & 0x3FF)
        else:
            yield cp


def string_hash32(text: str) -> int:
    """
    Signed 32-bit string hash: ``h = (h << 5) - h + unit`` per code unit.

    >>> string_hash32("")
    0
    >>> string_hash32("a")
    97

    Complexity: O(n).
    """
    h: int = 0
    for unit in _utf16_units(text):
        h = ((h << 5) - h + unit) & _MASK_32
    return h - (1 << 32) if h & _SIGN_BIT_32 else h


def identity_key(
    type_: str,
    entity: Optional[str] = None,
    attribute: Optional[str] = None,
    relationship: Optional[str] = None,
    message: Optional[str] = None,
) -> str:
    """The ordered, ``|``-joined tuple the id is computed over."""
    return "|".join(
        [type_ or "", entity or "", attribute or "", relationship or "", message or ""]
    )


def warning_id(
    type_: str,
    entity: Optional[str] = None,
    attribute: Optional[str] = None,
    relationship: Optional[str] = None,
    message: Optional[str] = None,
) -> str:
    """Deterministic id for one diagnostic's content."""
    key: str = identity_key(type_, entity, attribute, relationship, message)
    return f"{WARNING_ID_PREFIX}{abs(string_hash32(key))}"


def diagnostic_id(diagnostic: Diagnostic) -> str:
    return warning_id(
        diagnostic.type,
        diagnostic.entity,
        diagnostic.attribute,
        diagnostic.relationship,
        diagnostic.message,
    )


def is_well_formed_warning_id(value: str) -> bool:
    """True for ``warning_<digits>``; anything else cannot have been issued."""
    return bool(value) and _WARNING_ID_RE.match(value) is not None


# ---------------------------------------------------------------------------
# Assignment
# ---------------------------------------------------------------------------


def assign_warning_ids(diagnostics: Iterable[Diagnostic]) -> List[Diagnostic]:
    """
    Return copies of *diagnostics* with their ``id`` filled in.

    Exact duplicates (same id and same identity key) are collapsed to the
    first occurrence. Distinct diagnostics whose ids collide are both kept
    and logged; fix-by-id resolves to the first of them.

    Complexity: O(D × L) where L = average key length.
    """
    assigned: List[Diagnostic] = []
    seen: Dict[str, str] = {}
    dropped: int = 0

    for diag in diagnostics:
        key: str = identity_key(
            diag.type, diag.entity, diag.attribute, diag.relationship, diag.message
        )
        new_id: str = diagnostic_id(diag)

        previous_key: Optional[str] = seen.get(new_id)
        if previous_key is not None:
            if previous_key == key:
                dropped += 1
                continue
            logger.warning(
                "Warning id collision on %s between %r and %r.",
                new_id,
                previous_key,
                key,
            )
        else:
            seen[new_id] = key

        assigned.append(diag.model_copy(update={"id": new_id}))

    if dropped:
        logger.debug("assign_warning_ids: collapsed %d duplicate diagnostic(s).", dropped)
    return assigned


# ---------------------------------------------------------------------------
# Module-level exports
# ---------------------------------------------------------------------------

__all__: List[str] = [
    "WARNING_ID_PREFIX",
    "string_hash32",
    "identity_key",
    "warning_id",
    "diagnostic_id",
    "is_well_formed_warning_id",
    "assign_warning_ids",
]

logger.debug("erdfix.identity loaded — %d public symbols.", len(__all__))
