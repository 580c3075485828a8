# File: erdfix/parser.py
"""
NexaFlow ERDFix - Mermaid ERD Parser
======================================
Turns raw ``erDiagram`` source into the parsed model the validation engine
consumes::

    ParseResult(entities, relationships, warnings, corrected_erd, errors)

The parser is deliberately lenient: anything it does not understand becomes
a *pre-validation warning*, and only input it cannot make sense of at all
(empty source, missing header, unclosed entity block) becomes an error.

Supported syntax (a superset of Mermaid's)::

    erDiagram
        %% comment
        Customer {
            string id PK "Unique identifier"
            string email UK
            choice(active, inactive) status
            lookup(Account) parent_account_id FK
        }
        Customer ||--o{ Order : "places"
"""

from __future__ import annotations

import logging
import re
from typing import Dict, List, Optional, Set

from erdfix.models import (
    Attribute,
    Cardinality,
    Diagnostic,
    DiagnosticCategory,
    Entity,
    MissingEntityFixData,
    ParseResult,
    PseudoTypeFixData,
    Relationship,
    Severity,
)
from erdfix.normalizer import build_corrected_erd
from erdfix.spans import AttributeSpan, DiagramSpans, EntitySpan, scan_diagram
from erdfix.utils import normalize_key

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("erdfix.parser")

# ---------------------------------------------------------------------------
# Patterns & lookup tables
# ---------------------------------------------------------------------------

_CHOICE_RE: re.Pattern[str] = re.compile(r"^choice\((.*)\)$", re.IGNORECASE)
LOOKUP_TYPE_RE: re.Pattern[str] = re.compile(r"^lookup\((.*)\)$", re.IGNORECASE)
FK_DESCRIPTION_RE: re.Pattern[str] = re.compile(
    r"(?:foreign key to|references|refers to|lookup to)\s+([A-Za-z_][\w-]*)",
    re.IGNORECASE,
)
_FK_SUFFIX_RE: re.Pattern[str] = re.compile(r"(?:_id|Id|ID)$")

# Columns the platform manages itself; a user-declared copy is dropped on deploy.
_STATUS_COLUMNS: frozenset = frozenset({"status", "state"})


# ---------------------------------------------------------------------------
# Cardinality
# ---------------------------------------------------------------------------


def _side_kind(side: str) -> Optional[str]:
    """Classify one half of a cardinality token: 'many', 'one', 'zero-one'."""
    if not side:
        return None
    if "{" in side or "}" in side:
        return "many"
    if side in ("||",):
        return "one"
    if "|" in side and "o" in side:
        return "zero-one"
    if side == "|":
        return "one"
    return None


def classify_cardinality(token: str) -> Cardinality:
    """
    Map a Mermaid relationship token onto a ``Cardinality``.

        >>> classify_cardinality("||--o{").value
        'one-to-many'
        >>> classify_cardinality("}o--o{").value
        'many-to-many'
        >>> classify_cardinality("||--||").value
        'one-to-one'

    Complexity: O(len(token)).
    """
    for separator in ("--", ".."):
        if separator in token:
            left, _, right = token.partition(separator)
            break
    else:
        return Cardinality.UNKNOWN

    lk: Optional[str] = _side_kind(left)
    rk: Optional[str] = _side_kind(right)
    if lk is None or rk is None:
        return Cardinality.UNKNOWN
    if lk == "many" and rk == "many":
        return Cardinality.MANY_TO_MANY
    if lk == "many":
        return Cardinality.MANY_TO_ONE
    if rk == "many":
        return Cardinality.ZERO_TO_MANY if lk == "zero-one" else Cardinality.ONE_TO_MANY
    return Cardinality.ONE_TO_ONE


# ---------------------------------------------------------------------------
# Attribute conversion
# ---------------------------------------------------------------------------


def _infer_reference(
    span: AttributeSpan,
    entity_keys: Dict[str, str],
) -> Optional[str]:
    """
    Best guess at the entity an FK attribute points at.

    Tried in order: an explicit "Foreign key to X" description, a
    ``lookup(X)`` pseudo-type, then the attribute name minus its ``_id``
    suffix matched against entity names (case and separators ignored).
    """
    if span.description:
        m = FK_DESCRIPTION_RE.search(span.description)
        if m:
            return entity_keys.get(normalize_key(m.group(1)), m.group(1))

    m = LOOKUP_TYPE_RE.match(span.type)
    if m and m.group(1).strip():
        target: str = m.group(1).strip()
        return entity_keys.get(normalize_key(target), target)

    stem: str = _FK_SUFFIX_RE.sub("", span.name)
    if stem and stem != span.name:
        return entity_keys.get(normalize_key(stem))
    return None


def _to_attribute(span: AttributeSpan, entity_keys: Dict[str, str]) -> Attribute:
    choice_options: Optional[List[str]] = None
    m = _CHOICE_RE.match(span.type)
    if m:
        choice_options = [
            opt.strip().strip('"') for opt in m.group(1).split(",") if opt.strip()
        ]

    is_lookup: bool = LOOKUP_TYPE_RE.match(span.type) is not None
    referenced: Optional[str] = None
    if span.is_foreign_key or is_lookup:
        referenced = _infer_reference(span, entity_keys)

    return Attribute(
        name=span.name,
        type=span.type,
        is_primary_key=span.is_primary_key,
        is_foreign_key=span.is_foreign_key or is_lookup,
        is_unique=span.is_unique,
        required=span.is_primary_key,
        referenced_entity=referenced,
        description=span.description,
        choice_options=choice_options,
        line_number=span.line_number,
    )


# ---------------------------------------------------------------------------
# Pre-validation warnings
# ---------------------------------------------------------------------------


def _entity_warnings(span: EntitySpan) -> List[Diagnostic]:
    warnings: List[Diagnostic] = []

    pk_names: List[str] = []
    for attr in span.attributes:
        if attr.is_primary_key and attr.name not in pk_names:
            pk_names.append(attr.name)
    if len(pk_names) > 1:
        warnings.append(Diagnostic(
            type="multiple_primary_keys",
            category=DiagnosticCategory.ENTITIES,
            severity=Severity.WARNING,
            entity=span.name,
            message=(
                f"Entity '{span.name}' declares {len(pk_names)} primary keys "
                f"({', '.join(pk_names)}); only one is supported."
            ),
            suggestion="Keep a single PK attribute and mark the others UK.",
        ))

    for attr in span.attributes:
        if _CHOICE_RE.match(attr.type) or LOOKUP_TYPE_RE.match(attr.type):
            warnings.append(Diagnostic(
                type="pseudo_type_attribute",
                category=DiagnosticCategory.SYSTEM,
                severity=Severity.INFO,
                entity=span.name,
                attribute=attr.name,
                message=(
                    f"Attribute '{attr.name}' in entity '{span.name}' uses the "
                    f"extension type '{attr.type}', which diagram renderers "
                    f"do not understand."
                ),
                suggestion="It will be rendered as a string attribute with a descriptive comment.",
                auto_fixable=True,
                fix_data=PseudoTypeFixData(
                    entity_name=span.name, attribute_name=attr.name
                ),
            ))
        if attr.name.lower() in _STATUS_COLUMNS:
            warnings.append(Diagnostic(
                type="status_column_ignored",
                category=DiagnosticCategory.SYSTEM,
                severity=Severity.INFO,
                entity=span.name,
                attribute=attr.name,
                message=(
                    f"Attribute '{attr.name}' in entity '{span.name}' overlaps the "
                    f"platform's built-in status tracking and will be ignored on deploy."
                ),
                suggestion="Use a choice(...) attribute with a more specific name instead.",
            ))

    return warnings


def _missing_entity_warnings(
    spans: DiagramSpans,
    known: Set[str],
) -> List[Diagnostic]:
    warnings: List[Diagnostic] = []
    reported: Set[str] = set()
    for rel in spans.relationships:
        for missing, other in (
            (rel.from_entity, rel.to_entity),
            (rel.to_entity, rel.from_entity),
        ):
            if missing in known or missing in reported:
                continue
            reported.add(missing)
            warnings.append(Diagnostic(
                type="missing_entity",
                category=DiagnosticCategory.RELATIONSHIPS,
                severity=Severity.ERROR,
                entity=missing,
                relationship=f"{rel.from_entity}→{rel.to_entity}",
                message=(
                    f"Entity '{missing}' is used in a relationship with "
                    f"'{other}' but is never defined."
                ),
                suggestion=f"Define entity '{missing}' or remove the relationship.",
                auto_fixable=True,
                fix_data=MissingEntityFixData(
                    kind="missing_entity", entity_name=missing, referenced_by=other
                ),
            ))
    return warnings


def _issue_warnings(spans: DiagramSpans) -> List[Diagnostic]:
    return [
        Diagnostic(
            type="unrecognized_line",
            category=DiagnosticCategory.SYSTEM,
            severity=Severity.WARNING,
            entity=issue.entity,
            message=f"Line {issue.line_number}: {issue.reason} ({issue.text!r})",
            suggestion="Check the line against the erDiagram syntax.",
        )
        for issue in spans.issues
    ]


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


class MermaidERDParser:
    """
    Stateless ``erDiagram`` parser.

    Usage::

        result = MermaidERDParser().parse(source)
        if result.ok:
            for entity in result.entities: ...
    """

    def parse(self, source: str) -> ParseResult:
        spans: DiagramSpans = scan_diagram(source)
        if not spans.ok:
            logger.info("Parse failed: %s", "; ".join(spans.errors))
            return ParseResult(errors=list(spans.errors))

        entity_keys: Dict[str, str] = {}
        for ent in spans.entities:
            entity_keys.setdefault(normalize_key(ent.name), ent.name)

        entities: List[Entity] = [
            Entity(
                name=span.name,
                attributes=[_to_attribute(a, entity_keys) for a in span.attributes],
                line_number=span.line_number,
            )
            for span in spans.entities
        ]

        relationships: List[Relationship] = [
            Relationship(
                from_entity=rel.from_entity,
                to_entity=rel.to_entity,
                cardinality=classify_cardinality(rel.token),
                label=rel.label,
                token=rel.token,
                line_number=rel.line_number,
            )
            for rel in spans.relationships
        ]

        warnings: List[Diagnostic] = []
        for span in spans.entities:
            warnings.extend(_entity_warnings(span))
        warnings.extend(_missing_entity_warnings(spans, set(spans.entity_names())))
        warnings.extend(_issue_warnings(spans))

        logger.debug(
            "Parsed %d entities, %d relationships, %d pre-validation warning(s).",
            len(entities),
            len(relationships),
            len(warnings),
        )
        return ParseResult(
            entities=entities,
            relationships=relationships,
            warnings=warnings,
            corrected_erd=build_corrected_erd(source),
        )


def parse_erd(source: str) -> ParseResult:
    """Module-level convenience wrapper around ``MermaidERDParser().parse``."""
    return MermaidERDParser().parse(source)


# ---------------------------------------------------------------------------
# Module-level exports
# ---------------------------------------------------------------------------

__all__: List[str] = [
    "MermaidERDParser",
    "parse_erd",
    "classify_cardinality",
    "FK_DESCRIPTION_RE",
    "LOOKUP_TYPE_RE",
]

logger.debug("erdfix.parser loaded — %d public symbols.", len(__all__))
