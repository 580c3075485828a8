# File: erdfix/spans.py
"""
NexaFlow ERDFix - Diagram Span Model
======================================
A single pass over Mermaid ``erDiagram`` source that records **where**
every entity, attribute and relationship lives in the text, as
``[start, end)`` character offsets.

The parser builds its models from these spans and every fixer edits text
through them, so both agree on what the source contains. Spans are never
patched after an edit: a fixer rescans the text it is given and applies all
of its own edits in descending offset order, which keeps earlier offsets
valid.

Entity bodies are delimited by **brace-depth counting**, ignoring braces
inside quoted descriptions and ``%%`` comments, so a body may be multi-line
or inline::

    Employee {
        string employee_id PK
        string name "Full name"
    }
    Department { string department_id PK string title }

Complexity: O(n) in the length of the source.
"""

from __future__ import annotations

import bisect
import logging
import re
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Tuple

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("erdfix.spans")

# ---------------------------------------------------------------------------
# Regex patterns (compiled once at module load)
# ---------------------------------------------------------------------------

_HEADER_RE: re.Pattern[str] = re.compile(r"^erDiagram\b")
_ENTITY_OPEN_RE: re.Pattern[str] = re.compile(r'^(\s*)([^\s{}"]+)\s*\{')
_RELATIONSHIP_RE: re.Pattern[str] = re.compile(
    r'^(\s*)([^\s{}"]+)\s+([|}{o.\-]+)\s+([^\s{}":]+)\s*(?::\s*(.*?))?\s*$'
)
_ATTR_TOKEN_RE: re.Pattern[str] = re.compile(
    r'%%[^\n]*|"[^"\n]*"?|(?:choice|lookup)\([^)\n]*\)?|,|[^\s,"]+'
)

KEY_TOKENS: frozenset = frozenset({"PK", "FK", "UK"})
DEFAULT_INDENT: str = "    "


# ---------------------------------------------------------------------------
# Span records
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class AttributeSpan:
    """One ``type name [keys] ["description"]`` group inside an entity body."""

    type: str
    name: str
    keys: Tuple[str, ...]
    description: Optional[str]
    start: int
    end: int
    type_start: int
    type_end: int
    name_start: int
    name_end: int
    keys_end: int
    line_number: int

    @property
    def is_primary_key(self) -> bool:
        return "PK" in self.keys

    @property
    def is_foreign_key(self) -> bool:
        return "FK" in self.keys

    @property
    def is_unique(self) -> bool:
        return "UK" in self.keys


@dataclass(frozen=True, slots=True)
class EntitySpan:
    """An entity block, from the start of its header line to its closing line."""

    name: str
    start: int
    end: int
    name_start: int
    name_end: int
    open_brace: int
    close_brace: int
    indent: str
    line_number: int
    inline: bool
    attributes: Tuple[AttributeSpan, ...] = ()

    def attributes_named(self, name: str) -> List[AttributeSpan]:
        return [a for a in self.attributes if a.name == name]

    @property
    def has_primary_key(self) -> bool:
        return any(a.is_primary_key for a in self.attributes)


@dataclass(frozen=True, slots=True)
class RelationshipSpan:
    """A relationship line, including its trailing newline."""

    from_entity: str
    to_entity: str
    token: str
    label: str
    start: int
    end: int
    from_start: int
    from_end: int
    to_start: int
    to_end: int
    indent: str
    line_number: int

    def pair(self) -> Tuple[str, str]:
        a, b = sorted((self.from_entity, self.to_entity))
        return a, b


@dataclass(frozen=True, slots=True)
class LineIssue:
    """Something the scanner could not make sense of (reported, not fatal)."""

    line_number: int
    text: str
    reason: str
    entity: Optional[str] = None


@dataclass(frozen=True)
class DiagramSpans:
    """Span model of one source text. Rebuild it after every edit."""

    source: str
    header_end: int = -1
    entities: Tuple[EntitySpan, ...] = ()
    relationships: Tuple[RelationshipSpan, ...] = ()
    issues: Tuple[LineIssue, ...] = ()
    errors: Tuple[str, ...] = ()

    @property
    def ok(self) -> bool:
        return not self.errors

    def entity(self, name: str) -> Optional[EntitySpan]:
        """First entity block called *name* (exact match), or ``None``."""
        for ent in self.entities:
            if ent.name == name:
                return ent
        return None

    def entity_names(self) -> List[str]:
        return [e.name for e in self.entities]

    def relationships_between(self, a: str, b: str) -> List[RelationshipSpan]:
        """Relationship lines joining *a* and *b*, in either direction."""
        pair: Tuple[str, str] = tuple(sorted((a, b)))  # type: ignore[assignment]
        return [r for r in self.relationships if r.pair() == pair]

    def relationships_touching(self, name: str) -> List[RelationshipSpan]:
        return [r for r in self.relationships if name in (r.from_entity, r.to_entity)]

    def block_indent(self) -> str:
        """Indentation used for top-level lines (entity headers, relationships)."""
        if self.entities:
            return self.entities[0].indent
        if self.relationships:
            return self.relationships[0].indent
        return DEFAULT_INDENT


# ---------------------------------------------------------------------------
# Scanner
# ---------------------------------------------------------------------------


class _LineIndex:
    """O(log n) offset → 1-based line number lookup."""

    __slots__ = ("_newlines",)

    def __init__(self, source: str) -> None:
        self._newlines: List[int] = [i for i, ch in enumerate(source) if ch == "\n"]

    def line_of(self, offset: int) -> int:
        return bisect.bisect_left(self._newlines, offset) + 1


def find_closing_brace(source: str, open_index: int) -> int:
    """
    Index of the ``}`` matching the ``{`` at *open_index*, or ``-1``.

    Braces inside double-quoted descriptions and ``%%`` comments do not
    count. An unterminated quote ends at the end of its line.
    """
    depth: int = 0
    in_quote: bool = False
    i: int = open_index
    n: int = len(source)

    while i < n:
        ch: str = source[i]
        if in_quote:
            if ch == '"' or ch == "\n":
                in_quote = False
        elif ch == '"':
            in_quote = True
        elif ch == "%" and source.startswith("%%", i):
            newline: int = source.find("\n", i)
            if newline < 0:
                return -1
            i = newline
            continue
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return i
        i += 1

    return -1


def _scan_attributes(
    source: str,
    body_start: int,
    body_end: int,
    lines: _LineIndex,
    entity_name: str,
) -> Tuple[List[AttributeSpan], List[LineIssue]]:
    """Group body tokens into attributes: a new group starts at any token
    that is not a key marker, a comma, or the group's first description."""
    spans: List[AttributeSpan] = []
    issues: List[LineIssue] = []
    group: Optional[dict] = None

    def _close(g: dict) -> None:
        if g["name"] is None:
            issues.append(LineIssue(
                line_number=lines.line_of(g["type_start"]),
                text=g["type"],
                reason=f"Attribute type '{g['type']}' has no attribute name.",
                entity=entity_name,
            ))
            return
        spans.append(AttributeSpan(
            type=g["type"],
            name=g["name"],
            keys=tuple(g["keys"]),
            description=g["description"],
            start=g["type_start"],
            end=g["end"],
            type_start=g["type_start"],
            type_end=g["type_end"],
            name_start=g["name_start"],
            name_end=g["name_end"],
            keys_end=g["keys_end"],
            line_number=lines.line_of(g["type_start"]),
        ))

    for m in _ATTR_TOKEN_RE.finditer(source, body_start, body_end):
        tok: str = m.group()
        if tok.startswith("%%"):
            continue

        if group is not None and group["name"] is None:
            if tok.startswith('"') or tok == ",":
                issues.append(LineIssue(
                    line_number=lines.line_of(m.start()),
                    text=tok,
                    reason=f"Unexpected token {tok!r} after type '{group['type']}'.",
                    entity=entity_name,
                ))
                continue
            group["name"] = tok
            group["name_start"], group["name_end"] = m.start(), m.end()
            group["keys_end"] = group["end"] = m.end()
            continue

        if group is not None:
            if tok == ",":
                continue
            if tok.upper() in KEY_TOKENS and group["description"] is None:
                group["keys"].append(tok.upper())
                group["keys_end"] = group["end"] = m.end()
                continue
            if tok.startswith('"') and group["description"] is None:
                group["description"] = tok.strip('"')
                group["end"] = m.end()
                continue
            _close(group)

        if tok.startswith('"') or tok == ",":
            issues.append(LineIssue(
                line_number=lines.line_of(m.start()),
                text=tok,
                reason=f"Unexpected token {tok!r} in entity body.",
                entity=entity_name,
            ))
            group = None
            continue

        group = {
            "type": tok,
            "type_start": m.start(),
            "type_end": m.end(),
            "name": None,
            "name_start": -1,
            "name_end": -1,
            "keys": [],
            "keys_end": m.end(),
            "description": None,
            "end": m.end(),
        }

    if group is not None:
        _close(group)

    return spans, issues


def scan_diagram(source: str) -> DiagramSpans:
    """
    Build the span model for *source*.

    Fatal problems (empty input, missing ``erDiagram`` header, unclosed
    entity block) are returned in ``errors``; everything the scanner merely
    does not understand is returned in ``issues``.
    """
    if not source or not source.strip():
        return DiagramSpans(source=source or "", errors=("ERD content is empty.",))

    lines: _LineIndex = _LineIndex(source)
    entities: List[EntitySpan] = []
    relationships: List[RelationshipSpan] = []
    issues: List[LineIssue] = []
    header_end: int = -1

    n: int = len(source)
    pos: int = 0

    while pos < n:
        newline: int = source.find("\n", pos)
        line_end: int = n if newline < 0 else newline
        next_pos: int = n if newline < 0 else newline + 1
        line: str = source[pos:line_end]
        stripped: str = line.strip()
        line_no: int = lines.line_of(pos)

        if not stripped or stripped.startswith("%%"):
            pos = next_pos
            continue

        if header_end < 0:
            if not _HEADER_RE.match(stripped):
                return DiagramSpans(
                    source=source,
                    errors=(
                        f"ERD content must start with 'erDiagram' "
                        f"(found {stripped[:40]!r} on line {line_no}).",
                    ),
                )
            header_end = next_pos
            pos = next_pos
            continue

        m = _ENTITY_OPEN_RE.match(line)
        if m:
            name: str = m.group(2)
            open_brace: int = pos + m.end() - 1
            close_brace: int = find_closing_brace(source, open_brace)
            if close_brace < 0:
                return DiagramSpans(
                    source=source,
                    header_end=header_end,
                    entities=tuple(entities),
                    relationships=tuple(relationships),
                    issues=tuple(issues),
                    errors=(
                        f"Entity '{name}' opened on line {line_no} is never closed.",
                    ),
                )

            attrs, attr_issues = _scan_attributes(
                source, open_brace + 1, close_brace, lines, name
            )
            issues.extend(attr_issues)

            close_newline: int = source.find("\n", close_brace)
            close_line_end: int = n if close_newline < 0 else close_newline
            trailing: str = source[close_brace + 1:close_line_end].strip()
            if trailing and not trailing.startswith("%%"):
                issues.append(LineIssue(
                    line_number=lines.line_of(close_brace),
                    text=trailing,
                    reason=f"Unexpected text after the closing brace of '{name}'.",
                    entity=name,
                ))

            end: int = n if close_newline < 0 else close_newline + 1
            entities.append(EntitySpan(
                name=name,
                start=pos,
                end=end,
                name_start=pos + m.start(2),
                name_end=pos + m.end(2),
                open_brace=open_brace,
                close_brace=close_brace,
                indent=m.group(1),
                line_number=line_no,
                inline=lines.line_of(open_brace) == lines.line_of(close_brace),
                attributes=tuple(attrs),
            ))
            pos = end
            continue

        m = _RELATIONSHIP_RE.match(line)
        if m:
            label: str = (m.group(5) or "").strip()
            if len(label) >= 2 and label[0] == label[-1] == '"':
                label = label[1:-1]
            relationships.append(RelationshipSpan(
                from_entity=m.group(2),
                to_entity=m.group(4),
                token=m.group(3),
                label=label,
                start=pos,
                end=next_pos,
                from_start=pos + m.start(2),
                from_end=pos + m.end(2),
                to_start=pos + m.start(4),
                to_end=pos + m.end(4),
                indent=m.group(1),
                line_number=line_no,
            ))
            pos = next_pos
            continue

        issues.append(LineIssue(
            line_number=line_no,
            text=stripped,
            reason="Line is neither an entity block nor a relationship.",
        ))
        pos = next_pos

    if header_end < 0:
        return DiagramSpans(
            source=source,
            errors=("ERD content must start with 'erDiagram'.",),
        )

    logger.debug(
        "scan_diagram: %d entities, %d relationships, %d issue(s).",
        len(entities),
        len(relationships),
        len(issues),
    )
    return DiagramSpans(
        source=source,
        header_end=header_end,
        entities=tuple(entities),
        relationships=tuple(relationships),
        issues=tuple(issues),
    )


# ---------------------------------------------------------------------------
# Text surgery primitives
# ---------------------------------------------------------------------------

Edit = Tuple[int, int, str]


def apply_edits(source: str, edits: Iterable[Edit]) -> str:
    """
    Apply ``(start, end, replacement)`` edits to *source*.

    Edits are applied in descending ``start`` order so no edit shifts the
    offsets of another. Overlapping edits are a programming error.
    """
    ordered: List[Edit] = sorted(edits, key=lambda e: (e[0], e[1]), reverse=True)
    result: str = source
    floor: int = len(source) + 1
    for start, end, replacement in ordered:
        if end > floor:
            raise ValueError(f"Overlapping edits at offset {start}.")
        result = result[:start] + replacement + result[end:]
        floor = start
    return result


def line_bounds(source: str, index: int) -> Tuple[int, int]:
    """``(line_start, line_end)`` of the line holding *index*; end excludes the newline."""
    start: int = source.rfind("\n", 0, index) + 1
    end: int = source.find("\n", index)
    return start, (len(source) if end < 0 else end)


def removal_edit(source: str, start: int, end: int) -> Edit:
    """
    Edit that removes ``source[start:end]``.

    A span that is alone on its line takes the whole line (and its newline)
    with it; a span sharing its line loses only itself and the blanks after it.
    """
    line_start, line_end = line_bounds(source, start)
    _, last_line_end = line_bounds(source, max(start, end - 1))
    if not source[line_start:start].strip() and not source[end:last_line_end].strip():
        stop: int = last_line_end + 1 if last_line_end < len(source) else last_line_end
        return line_start, stop, ""
    stop = end
    while stop < len(source) and source[stop] in " \t":
        stop += 1
    return start, stop, ""


def attribute_indent(source: str, entity: EntitySpan) -> str:
    """Indentation of the entity's attribute lines (or header indent + 4 spaces)."""
    for attr in entity.attributes:
        line_start, _ = line_bounds(source, attr.start)
        prefix: str = source[line_start:attr.start]
        if line_start > entity.open_brace and not prefix.strip():
            return prefix
    return entity.indent + DEFAULT_INDENT


def insert_attribute_edit(
    source: str,
    entity: EntitySpan,
    line: str,
    *,
    first: bool,
) -> Edit:
    """Edit inserting the attribute text *line* as the first or last body entry."""
    if entity.inline:
        if first:
            after: str = source[entity.open_brace + 1:entity.open_brace + 2]
            tail: str = "" if after.isspace() else " "
            return entity.open_brace + 1, entity.open_brace + 1, f" {line}{tail}"
        before: str = source[entity.close_brace - 1:entity.close_brace]
        lead: str = "" if before.isspace() else " "
        return entity.close_brace, entity.close_brace, f"{lead}{line} "

    indent: str = attribute_indent(source, entity)
    if first:
        return entity.open_brace + 1, entity.open_brace + 1, f"\n{indent}{line}"

    close_line_start, _ = line_bounds(source, entity.close_brace)
    if not source[close_line_start:entity.close_brace].strip():
        return close_line_start, close_line_start, f"{indent}{line}\n"
    return (
        entity.close_brace,
        entity.close_brace,
        f"\n{indent}{line}\n{entity.indent}",
    )


def render_entity_block(name: str, attribute_lines: Sequence[str], indent: str) -> str:
    """Multi-line entity block text, newline-terminated."""
    body: List[str] = [f"{indent}{name} {{"]
    body.extend(f"{indent}{DEFAULT_INDENT}{line}" for line in attribute_lines)
    body.append(f"{indent}}}")
    return "\n".join(body) + "\n"


def entity_insertion_edit(spans: DiagramSpans, block: str) -> Edit:
    """
    Edit inserting *block* after the last entity block, or right after the
    ``erDiagram`` header when the diagram has no entities yet.
    """
    source: str = spans.source
    if spans.entities:
        offset: int = spans.entities[-1].end
    elif spans.header_end >= 0:
        offset = spans.header_end
    else:
        offset = len(source)

    prefix: str = ""
    if offset > 0 and source[offset - 1] != "\n":
        prefix = "\n"
    return offset, offset, f"{prefix}\n{block}"


def render_relationship(
    from_entity: str,
    token: str,
    to_entity: str,
    label: str,
    indent: str,
) -> str:
    label_part: str = f' : "{label}"' if label else ""
    return f"{indent}{from_entity} {token} {to_entity}{label_part}\n"


# ---------------------------------------------------------------------------
# Module-level exports
# ---------------------------------------------------------------------------

__all__: List[str] = [
    "KEY_TOKENS",
    "DEFAULT_INDENT",
    "AttributeSpan",
    "EntitySpan",
    "RelationshipSpan",
    "LineIssue",
    "DiagramSpans",
    "Edit",
    "find_closing_brace",
    "scan_diagram",
    "apply_edits",
    "line_bounds",
    "removal_edit",
    "attribute_indent",
    "insert_attribute_edit",
    "render_entity_block",
    "entity_insertion_edit",
    "render_relationship",
]

logger.debug("erdfix.spans loaded — %d public symbols.", len(__all__))
