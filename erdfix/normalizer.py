# File: erdfix/normalizer.py
"""
NexaFlow ERDFix - Syntax Normalizer
=====================================
Final pass that keeps rewritten diagram source renderable.

``normalize_syntax`` runs over the *whole* source after every fix batch,
whichever fixers ran, because pseudo-types such as ``choice(a, b)`` break
diagram renderers even when nobody asked for them to be fixed:

    choice(active, inactive) status   →   string status "Choice: active, inactive"
    lookup(Account) account_id FK     →   string account_id FK "Lookup to Account"

It also strips trailing whitespace and collapses runs of blank lines, which
line removals by the fixers tend to leave behind.

The module additionally owns junction-table expansion (used by the
many-to-many fixer and by the parser's corrected ERD).
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import List, Optional, Set, Tuple

from erdfix.models import Cardinality
from erdfix.spans import (
    AttributeSpan,
    DiagramSpans,
    Edit,
    RelationshipSpan,
    apply_edits,
    entity_insertion_edit,
    render_entity_block,
    render_relationship,
    scan_diagram,
)
from erdfix.utils import to_pascal_case, to_snake_case

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("erdfix.normalizer")

# ---------------------------------------------------------------------------
# Patterns
# ---------------------------------------------------------------------------

_PSEUDO_TYPE_RE: re.Pattern[str] = re.compile(
    r"^(choice|lookup)\((.*?)\)?$", re.IGNORECASE
)
_TRAILING_WS_RE: re.Pattern[str] = re.compile(r"[ \t]+$", re.MULTILINE)
_BLANK_RUN_RE: re.Pattern[str] = re.compile(r"\n{3,}")

PRIMARY_KEY_LINE: str = 'string id PK "Unique identifier"'
JUNCTION_LABEL: str = "has"
JUNCTION_TOKEN: str = "||--o{"


# ---------------------------------------------------------------------------
# Result
# ---------------------------------------------------------------------------


@dataclass(frozen=False, slots=True)
class NormalizationResult:
    """Normalized text plus a human-readable list of what changed."""

    content: str = ""
    changes: List[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.changes)


# ---------------------------------------------------------------------------
# Pseudo-types
# ---------------------------------------------------------------------------


def is_pseudo_type(type_token: str) -> bool:
    return _PSEUDO_TYPE_RE.match(type_token) is not None


def pseudo_type_comment(type_token: str) -> str:
    """Descriptive comment preserving what a pseudo-type declared."""
    m = _PSEUDO_TYPE_RE.match(type_token)
    if not m:
        return ""
    kind: str = m.group(1).lower()
    inner: str = ", ".join(
        part.strip().strip('"') for part in m.group(2).split(",") if part.strip()
    )
    if kind == "choice":
        return f"Choice: {inner}" if inner else "Choice"
    return f"Lookup to {inner}" if inner else "Lookup"


def pseudo_type_edits(source: str, attr: AttributeSpan) -> List[Edit]:
    """
    Edits rewriting one pseudo-typed attribute to a plain ``string``.

    An existing description is kept and the pseudo-type detail is appended
    to it; otherwise the detail becomes the description.
    """
    if not is_pseudo_type(attr.type):
        return []
    detail: str = pseudo_type_comment(attr.type).replace('"', "'")
    edits: List[Edit] = [(attr.type_start, attr.type_end, "string")]
    if attr.description is None:
        edits.append((attr.keys_end, attr.keys_end, f' "{detail}"'))
    else:
        merged: str = f"{attr.description} ({detail})" if attr.description else detail
        edits.append((attr.keys_end, attr.end, _rejoin_description(source, attr, merged)))
    return edits


def _rejoin_description(source: str, attr: AttributeSpan, text: str) -> str:
    """Replacement for ``source[keys_end:end]`` keeping the original spacing."""
    original: str = source[attr.keys_end:attr.end]
    quote_at: int = original.find('"')
    gap: str = original[:quote_at] if quote_at > 0 else " "
    return f'{gap}"{text}"'


# ---------------------------------------------------------------------------
# Whole-source pass
# ---------------------------------------------------------------------------


def normalize_syntax(source: str) -> NormalizationResult:
    """
    Rewrite every pseudo-type, then tidy whitespace.

    Source that does not scan (no header, unclosed block) only gets the
    whitespace tidy-up: the normalizer never makes a broken diagram worse.

    Complexity: O(n).
    """
    result: NormalizationResult = NormalizationResult(content=source)
    spans: DiagramSpans = scan_diagram(source)

    if spans.ok:
        edits: List[Edit] = []
        for entity in spans.entities:
            for attr in entity.attributes:
                attr_edits: List[Edit] = pseudo_type_edits(source, attr)
                if attr_edits:
                    edits.extend(attr_edits)
                    result.changes.append(
                        f"Converted '{attr.type}' on {entity.name}.{attr.name} to string"
                    )
        if edits:
            result.content = apply_edits(source, edits)

    tidied: str = _TRAILING_WS_RE.sub("", result.content)
    tidied = _BLANK_RUN_RE.sub("\n\n", tidied)
    if tidied and not tidied.endswith("\n"):
        tidied += "\n"
    if tidied != result.content and not result.changes:
        result.changes.append("Tidied whitespace")
    result.content = tidied

    if result.changes:
        logger.debug("normalize_syntax: %s", "; ".join(result.changes))
    return result


# ---------------------------------------------------------------------------
# Junction tables
# ---------------------------------------------------------------------------


def junction_name(from_entity: str, to_entity: str) -> str:
    """``Student`` + ``Course`` → ``StudentCourse``; ``student`` + ``course`` → ``StudentCourse``."""
    return f"{to_pascal_case(from_entity)}{to_pascal_case(to_entity)}"


def junction_attribute_lines(from_entity: str, to_entity: str) -> List[str]:
    return [
        PRIMARY_KEY_LINE,
        f'string {to_snake_case(from_entity)}_id FK "Foreign key to {from_entity}"',
        f'string {to_snake_case(to_entity)}_id FK "Foreign key to {to_entity}"',
    ]


def junction_edits(
    spans: DiagramSpans,
    rel: RelationshipSpan,
    name: Optional[str] = None,
) -> Tuple[List[Edit], str]:
    """
    Edits replacing *rel* with a junction entity and two one-to-many lines.

    If an entity called *name* already exists it is reused and only the
    relationship lines are rewritten. Returns ``(edits, junction_name)``.
    """
    junction: str = name or junction_name(rel.from_entity, rel.to_entity)
    lines: str = (
        render_relationship(rel.from_entity, JUNCTION_TOKEN, junction, JUNCTION_LABEL, rel.indent)
        + render_relationship(rel.to_entity, JUNCTION_TOKEN, junction, JUNCTION_LABEL, rel.indent)
    )
    edits: List[Edit] = [(rel.start, rel.end, lines)]

    if spans.entity(junction) is None:
        block: str = render_entity_block(
            junction,
            junction_attribute_lines(rel.from_entity, rel.to_entity),
            spans.block_indent(),
        )
        edits.append(entity_insertion_edit(spans, block))
    return edits, junction


def build_corrected_erd(source: str) -> str:
    """
    Source with every many-to-many relationship expanded into a junction
    entity, then normalized. Used as the parser's pre-corrected source.
    """
    spans: DiagramSpans = scan_diagram(source)
    if not spans.ok:
        return source

    # Imported lazily: the parser imports this module.
    from erdfix.parser import classify_cardinality

    edits: List[Edit] = []
    planned: Set[str] = set()
    for rel in spans.relationships:
        if classify_cardinality(rel.token) != Cardinality.MANY_TO_MANY:
            continue
        name: str = junction_name(rel.from_entity, rel.to_entity)
        rel_edits, _ = junction_edits(spans, rel, name)
        if name in planned:
            rel_edits = rel_edits[:1]
        planned.add(name)
        edits.extend(rel_edits)

    corrected: str = apply_edits(source, edits) if edits else source
    return normalize_syntax(corrected).content


# ---------------------------------------------------------------------------
# Module-level exports
# ---------------------------------------------------------------------------

__all__: List[str] = [
    "PRIMARY_KEY_LINE",
    "NormalizationResult",
    "is_pseudo_type",
    "pseudo_type_comment",
    "pseudo_type_edits",
    "normalize_syntax",
    "junction_name",
    "junction_attribute_lines",
    "junction_edits",
    "build_corrected_erd",
]

logger.debug("erdfix.normalizer loaded — %d public symbols.", len(__all__))
