# File: erdfix/fixers.py
"""
NexaFlow ERDFix - Auto-Fix Engine
===================================
One fixer per fixable diagnostic type, each rewriting the **diagram source
text** rather than the parsed model:

    FixOutcome = fixer.apply(content, diagnostic)

Every call rescans ``content`` into a fresh span model, plans all of its
edits against that scan and applies them in one descending-offset pass, so
no fixer ever works with stale offsets.

A fixer never raises. Expected refusals (target gone, rename collision) are
``FixError``s turned into ``FixOutcome.failed``; anything unexpected is
logged with its traceback and reported the same way.

``FIX_PRIORITY`` fixes the order in which a batch is applied: structural
repairs first, so later fixes see the structure they expect, cosmetic
rewrites last.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Mapping, Optional, Sequence, Tuple, Type

from erdfix.models import (
    AttributeRenameFixData,
    AttributesFixData,
    Cardinality,
    Diagnostic,
    DuplicateAttributeFixData,
    EntityRenameFixData,
    FixData,
    FixOutcome,
    ForeignKeyFixData,
    JunctionFixData,
    MissingEntityFixData,
    PrimaryKeyFixData,
    PseudoTypeFixData,
    RelationshipFixData,
)
from erdfix.normalizer import PRIMARY_KEY_LINE, junction_edits, junction_name, pseudo_type_edits
from erdfix.parser import FK_DESCRIPTION_RE, LOOKUP_TYPE_RE, classify_cardinality
from erdfix.spans import (
    AttributeSpan,
    DiagramSpans,
    Edit,
    EntitySpan,
    apply_edits,
    entity_insertion_edit,
    insert_attribute_edit,
    removal_edit,
    render_entity_block,
    scan_diagram,
)
from erdfix.utils import normalize_key
from erdfix.validators import foreign_key_column

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("erdfix.fixers")

NAME_LINE: str = 'string name "Name"'


class FixError(Exception):
    """A fixer cannot apply its diagnostic to the current source."""


# ---------------------------------------------------------------------------
# Shared helpers
# ---------------------------------------------------------------------------


def _require_entity(spans: DiagramSpans, name: str) -> EntitySpan:
    entity: Optional[EntitySpan] = spans.entity(name)
    if entity is None:
        raise FixError(f"Entity '{name}' not found in diagram.")
    return entity


def _resolve_by_containment(spans: DiagramSpans, name: str) -> Optional[str]:
    """Current entity whose name contains *name* (or vice versa), ignoring case and separators."""
    key: str = normalize_key(name)
    if not key:
        return None
    for candidate in spans.entity_names():
        other: str = normalize_key(candidate)
        if other and (key in other or other in key):
            return candidate
    return None


def _key_marker_edit(attr: AttributeSpan, key: str) -> Edit:
    """Edit adding *key* (``PK``/``FK``) to an attribute's key list."""
    separator: str = ", " if attr.keys else " "
    return attr.keys_end, attr.keys_end, f"{separator}{key}"


# ---------------------------------------------------------------------------
# Base fixer
# ---------------------------------------------------------------------------


class BaseFixer:
    """
    Fixer contract: subclasses list the diagnostic types they handle and
    implement ``_fix(spans, fix_data)``.
    """

    handles: Tuple[str, ...] = ()

    def apply(self, content: str, diagnostic: Diagnostic) -> FixOutcome:
        name: str = type(self).__name__
        if diagnostic.fix_data is None:
            return FixOutcome.failed(
                f"Diagnostic '{diagnostic.type}' carries no fix data."
            )

        spans: DiagramSpans = scan_diagram(content)
        if not spans.ok:
            return FixOutcome.failed(f"Cannot fix unparseable diagram: {'; '.join(spans.errors)}")

        try:
            outcome: FixOutcome = self._fix(spans, diagnostic.fix_data)
        except FixError as exc:
            logger.warning("%s could not fix %s: %s", name, diagnostic.type, exc)
            return FixOutcome.failed(str(exc))
        except Exception as exc:
            logger.exception("%s raised while fixing %s.", name, diagnostic.type)
            return FixOutcome.failed(f"Unexpected error while fixing {diagnostic.type}: {exc}")

        logger.debug(
            "%s: %s (changed=%s)", name, outcome.applied_fix_description, outcome.changed
        )
        return outcome

    def _fix(self, spans: DiagramSpans, data: FixData) -> FixOutcome:
        raise NotImplementedError


# ---------------------------------------------------------------------------
# Entity structure
# ---------------------------------------------------------------------------


class PrimaryKeyFixer(BaseFixer):
    handles = ("missing_primary_key",)

    def _fix(self, spans: DiagramSpans, data: PrimaryKeyFixData) -> FixOutcome:
        entity: EntitySpan = _require_entity(spans, data.entity_name)
        if entity.has_primary_key:
            return FixOutcome.ok(None, f"Entity '{entity.name}' already has a primary key.")

        pk: str = data.suggested_primary_key
        existing: List[AttributeSpan] = entity.attributes_named(pk)
        if existing:
            content: str = apply_edits(spans.source, [_key_marker_edit(existing[0], "PK")])
            return FixOutcome.ok(
                content, f"Marked attribute '{pk}' of '{entity.name}' as primary key."
            )

        line: str = PRIMARY_KEY_LINE if pk == "id" else f'string {pk} PK "Unique identifier"'
        content = apply_edits(spans.source, [insert_attribute_edit(spans.source, entity, line, first=True)])
        return FixOutcome.ok(content, f"Added primary key '{pk}' to '{entity.name}'.")


class DefaultAttributesFixer(BaseFixer):
    handles = ("missing_attributes", "empty_attributes")

    def _fix(self, spans: DiagramSpans, data: AttributesFixData) -> FixOutcome:
        entity: EntitySpan = _require_entity(spans, data.entity_name)
        if entity.attributes:
            return FixOutcome.ok(None, f"Entity '{entity.name}' already has attributes.")

        content: str = apply_edits(
            spans.source, [insert_attribute_edit(spans.source, entity, PRIMARY_KEY_LINE, first=True)]
        )
        entity = _require_entity(scan_diagram(content), data.entity_name)
        content = apply_edits(content, [insert_attribute_edit(content, entity, NAME_LINE, first=False)])
        return FixOutcome.ok(content, f"Added default attributes 'id' and 'name' to '{entity.name}'.")


class DuplicateAttributeFixer(BaseFixer):
    """Keep one declaration per name: PK beats FK beats plain, then first wins."""

    handles = ("duplicate_attribute",)

    @staticmethod
    def _rank(attr: AttributeSpan) -> int:
        if attr.is_primary_key:
            return 0
        if attr.is_foreign_key:
            return 1
        return 2

    def _fix(self, spans: DiagramSpans, data: DuplicateAttributeFixData) -> FixOutcome:
        entity: EntitySpan = _require_entity(spans, data.entity_name)
        copies: List[AttributeSpan] = entity.attributes_named(data.attribute_name)
        if len(copies) < 2:
            return FixOutcome.ok(
                None, f"Attribute '{data.attribute_name}' of '{entity.name}' is no longer duplicated."
            )

        keep: AttributeSpan = min(copies, key=self._rank)
        edits: List[Edit] = [
            removal_edit(spans.source, a.start, a.end) for a in copies if a is not keep
        ]
        return FixOutcome.ok(
            apply_edits(spans.source, edits),
            f"Removed {len(edits)} duplicate declaration(s) of "
            f"'{data.attribute_name}' from '{entity.name}'.",
        )


class ForeignKeyFixer(BaseFixer):
    """
    Append the missing FK attribute to the dependent entity.

    A referenced entity that no longer exists under its recorded name is
    resolved first by name containment, then through the relationship lines
    of the dependent entity; failing both, the recorded name is kept.
    """

    handles = ("missing_foreign_key", "missing_foreign_key_one_to_one")

    def _resolve_target(self, spans: DiagramSpans, entity: EntitySpan, target: str) -> str:
        if spans.entity(target) is not None:
            return target
        contained: Optional[str] = _resolve_by_containment(spans, target)
        if contained is not None and contained != entity.name:
            return contained
        for rel in spans.relationships_touching(entity.name):
            other: str = rel.to_entity if rel.from_entity == entity.name else rel.from_entity
            if other != entity.name and spans.entity(other) is not None:
                return other
        logger.debug("ForeignKeyFixer: keeping unresolved target '%s'.", target)
        return target

    def _fix(self, spans: DiagramSpans, data: ForeignKeyFixData) -> FixOutcome:
        entity: Optional[EntitySpan] = spans.entity(data.entity_name)
        if entity is None:
            resolved: Optional[str] = _resolve_by_containment(spans, data.entity_name)
            entity = _require_entity(spans, resolved or data.entity_name)

        target: str = self._resolve_target(spans, entity, data.referenced_entity)
        column: str = (
            data.column_name if target == data.referenced_entity else foreign_key_column(target)
        )

        existing: List[AttributeSpan] = entity.attributes_named(column)
        if existing:
            if existing[0].is_foreign_key:
                return FixOutcome.ok(None, f"'{entity.name}.{column}' is already a foreign key.")
            content: str = apply_edits(spans.source, [_key_marker_edit(existing[0], "FK")])
            return FixOutcome.ok(content, f"Marked '{entity.name}.{column}' as foreign key to '{target}'.")

        line: str = f'string {column} FK "Foreign key to {target}"'
        content = apply_edits(spans.source, [insert_attribute_edit(spans.source, entity, line, first=False)])
        return FixOutcome.ok(content, f"Added foreign key '{column}' to '{entity.name}' referencing '{target}'.")


class PseudoTypeFixer(BaseFixer):
    handles = ("pseudo_type_attribute",)

    def _fix(self, spans: DiagramSpans, data: PseudoTypeFixData) -> FixOutcome:
        entity: EntitySpan = _require_entity(spans, data.entity_name)
        edits: List[Edit] = []
        for attr in entity.attributes_named(data.attribute_name):
            edits.extend(pseudo_type_edits(spans.source, attr))
        if not edits:
            return FixOutcome.ok(
                None, f"'{entity.name}.{data.attribute_name}' no longer uses a pseudo-type."
            )
        return FixOutcome.ok(
            apply_edits(spans.source, edits),
            f"Converted '{entity.name}.{data.attribute_name}' to a string attribute.",
        )


# ---------------------------------------------------------------------------
# Relationships
# ---------------------------------------------------------------------------


class DuplicateRelationshipFixer(BaseFixer):
    """Keep the first line for an unordered entity pair and drop the rest."""

    handles = ("duplicate_relationship",)

    def _fix(self, spans: DiagramSpans, data: RelationshipFixData) -> FixOutcome:
        lines = spans.relationships_between(data.from_entity, data.to_entity)
        if len(lines) < 2:
            return FixOutcome.ok(
                None, f"Relationship {data.from_entity}→{data.to_entity} is no longer duplicated."
            )
        edits: List[Edit] = [(rel.start, rel.end, "") for rel in lines[1:]]
        return FixOutcome.ok(
            apply_edits(spans.source, edits),
            f"Removed {len(edits)} duplicate relationship line(s) between "
            f"'{data.from_entity}' and '{data.to_entity}'.",
        )


class SelfReferenceFixer(BaseFixer):
    handles = ("self_referencing_relationship",)

    def _fix(self, spans: DiagramSpans, data: RelationshipFixData) -> FixOutcome:
        lines = [
            rel for rel in spans.relationships
            if rel.from_entity == rel.to_entity == data.from_entity
        ]
        if not lines:
            return FixOutcome.ok(None, f"'{data.from_entity}' no longer references itself.")
        content: str = apply_edits(spans.source, [(rel.start, rel.end, "") for rel in lines])
        return FixOutcome.ok(
            content,
            f"Removed self-referencing relationship on '{data.from_entity}'; "
            f"review the hierarchy design manually.",
            requires_manual_review=True,
        )


class JunctionTableFixer(BaseFixer):
    handles = ("many_to_many",)

    def _fix(self, spans: DiagramSpans, data: JunctionFixData) -> FixOutcome:
        for rel in spans.relationships:
            if (rel.from_entity, rel.to_entity) != (data.from_entity, data.to_entity):
                continue
            if classify_cardinality(rel.token) != Cardinality.MANY_TO_MANY:
                continue
            edits, junction = junction_edits(spans, rel, data.junction_name)
            return FixOutcome.ok(
                apply_edits(spans.source, edits),
                f"Replaced many-to-many {data.from_entity}→{data.to_entity} "
                f"with junction entity '{junction}'.",
            )
        return FixOutcome.ok(
            None, f"No many-to-many relationship {data.from_entity}→{data.to_entity} left."
        )


class MissingEntityFixer(BaseFixer):
    """Placeholder entity for a name that only appears in relationships."""

    handles = ("orphaned_relationship", "missing_entity")

    def _fix(self, spans: DiagramSpans, data: MissingEntityFixData) -> FixOutcome:
        if spans.entity(data.entity_name) is not None:
            return FixOutcome.ok(None, f"Entity '{data.entity_name}' already exists.")
        block: str = render_entity_block(
            data.entity_name, [PRIMARY_KEY_LINE, NAME_LINE], spans.block_indent()
        )
        content: str = apply_edits(spans.source, [entity_insertion_edit(spans, block)])
        return FixOutcome.ok(content, f"Created placeholder entity '{data.entity_name}'.")


# ---------------------------------------------------------------------------
# Renames
# ---------------------------------------------------------------------------


def _reference_edits(spans: DiagramSpans, old: str, new: str) -> List[Edit]:
    """Point ``Foreign key to <old>`` descriptions and ``lookup(<old>)`` types at *new*."""
    old_key: str = normalize_key(old)
    edits: List[Edit] = []
    for entity in spans.entities:
        for attr in entity.attributes:
            lookup = LOOKUP_TYPE_RE.match(attr.type)
            if lookup and normalize_key(lookup.group(1).strip()) == old_key:
                edits.append((attr.type_start, attr.type_end, f"lookup({new})"))
            if attr.description is None:
                continue
            quote: int = spans.source.find('"', attr.keys_end, attr.end)
            if quote < 0:
                continue
            ref = FK_DESCRIPTION_RE.search(spans.source, quote, attr.end)
            if ref and normalize_key(ref.group(1)) == old_key:
                edits.append((ref.start(1), ref.end(1), new))
    return edits


class EntityRenameFixer(BaseFixer):
    """
    Rename an entity header, every relationship endpoint naming it and every
    foreign-key description or ``lookup(...)`` type referencing it.
    """

    handles = (
        "invalid_entity_name",
        "entity_name_too_long",
        "reserved_entity_name",
        "sql_reserved_entity_name",
        "entity_naming_convention",
    )

    def _fix(self, spans: DiagramSpans, data: EntityRenameFixData) -> FixOutcome:
        old, new = data.original_name, data.suggested_name
        if old == new:
            return FixOutcome.ok(None, f"Entity '{old}' already has the suggested name.")
        if spans.entity(new) is not None:
            raise FixError(f"Cannot rename '{old}' to '{new}': an entity with that name already exists.")

        entity: EntitySpan = _require_entity(spans, old)
        edits: List[Edit] = [(entity.name_start, entity.name_end, new)]
        references: int = 0
        for rel in spans.relationships:
            if rel.from_entity == old:
                edits.append((rel.from_start, rel.from_end, new))
                references += 1
            if rel.to_entity == old:
                edits.append((rel.to_start, rel.to_end, new))
                references += 1
        attribute_refs: List[Edit] = _reference_edits(spans, old, new)
        edits.extend(attribute_refs)
        return FixOutcome.ok(
            apply_edits(spans.source, edits),
            f"Renamed entity '{old}' to '{new}' ({references} relationship reference(s), "
            f"{len(attribute_refs)} attribute reference(s) updated).",
        )


class AttributeRenameFixer(BaseFixer):
    """Rename an attribute within its owning entity only."""

    handles = (
        "invalid_attribute_name",
        "attribute_name_too_long",
        "reserved_attribute_name",
        "sql_reserved_attribute_name",
    )

    def _fix(self, spans: DiagramSpans, data: AttributeRenameFixData) -> FixOutcome:
        entity: EntitySpan = _require_entity(spans, data.entity_name)
        old, new = data.original_name, data.suggested_name
        targets: List[AttributeSpan] = entity.attributes_named(old)
        if not targets:
            raise FixError(f"Attribute '{old}' not found in entity '{entity.name}'.")
        if old != new and entity.attributes_named(new):
            raise FixError(
                f"Cannot rename '{entity.name}.{old}' to '{new}': the attribute already exists."
            )
        edits: List[Edit] = [(a.name_start, a.name_end, new) for a in targets]
        return FixOutcome.ok(
            apply_edits(spans.source, edits),
            f"Renamed attribute '{entity.name}.{old}' to '{new}'.",
        )


# ---------------------------------------------------------------------------
# Registry & priority
# ---------------------------------------------------------------------------

FIXER_CLASSES: Tuple[Type[BaseFixer], ...] = (
    PrimaryKeyFixer,
    DefaultAttributesFixer,
    DuplicateAttributeFixer,
    ForeignKeyFixer,
    PseudoTypeFixer,
    DuplicateRelationshipFixer,
    SelfReferenceFixer,
    JunctionTableFixer,
    MissingEntityFixer,
    EntityRenameFixer,
    AttributeRenameFixer,
)

FIXERS: Dict[str, BaseFixer] = {
    type_: fixer
    for fixer in (cls() for cls in FIXER_CLASSES)
    for type_ in fixer.handles
}

# Batch order; within a group diagnostics keep their input order.
FIX_PRIORITY: Tuple[Tuple[str, ...], ...] = (
    ("missing_primary_key", "missing_attributes", "empty_attributes"),
    ("missing_foreign_key", "missing_foreign_key_one_to_one"),
    (
        "orphaned_relationship",
        "missing_entity",
        "duplicate_relationship",
        "self_referencing_relationship",
    ),
    (
        "invalid_entity_name",
        "reserved_entity_name",
        "sql_reserved_entity_name",
        "invalid_attribute_name",
        "reserved_attribute_name",
        "sql_reserved_attribute_name",
    ),
    ("entity_name_too_long", "attribute_name_too_long", "duplicate_attribute"),
    # Case renames land before junctions are named after their endpoints.
    ("entity_naming_convention",),
    ("many_to_many", "pseudo_type_attribute"),
)

_PRIORITY_INDEX: Dict[str, int] = {
    type_: rank for rank, group in enumerate(FIX_PRIORITY) for type_ in group
}


def has_fixer(type_: str) -> bool:
    return type_ in FIXERS


def priority_of(type_: str) -> int:
    """Priority group of a diagnostic type; unknown types sort last."""
    return _PRIORITY_INDEX.get(type_, len(FIX_PRIORITY))


def order_for_fixing(diagnostics: Sequence[Diagnostic]) -> List[Diagnostic]:
    """Stable sort by priority group."""
    return sorted(diagnostics, key=lambda d: priority_of(d.type))


def apply_fix(content: str, diagnostic: Diagnostic) -> FixOutcome:
    """Dispatch *diagnostic* to its fixer."""
    fixer: Optional[BaseFixer] = FIXERS.get(diagnostic.type)
    if fixer is None:
        return FixOutcome.failed(f"No fixer available for diagnostic type '{diagnostic.type}'.")
    return fixer.apply(content, diagnostic)


# ---------------------------------------------------------------------------
# Rename tracking across a batch
# ---------------------------------------------------------------------------

_ENTITY_FIELDS: Tuple[str, ...] = (
    "entity_name",
    "from_entity",
    "to_entity",
    "referenced_entity",
    "referenced_by",
)


def retarget(diagnostic: Diagnostic, renamed: Mapping[str, str]) -> Diagnostic:
    """
    Copy of *diagnostic* whose fix data follows entity renames already
    applied earlier in the same batch.
    """
    data = diagnostic.fix_data
    if data is None or not renamed:
        return diagnostic
    update: Dict[str, str] = {}
    for field_name in _ENTITY_FIELDS:
        value: Optional[str] = getattr(data, field_name, None)
        if value is not None and value in renamed:
            update[field_name] = renamed[value]
    if not update:
        return diagnostic
    # A default junction name follows its endpoints.
    if isinstance(data, JunctionFixData) and data.junction_name == junction_name(
        data.from_entity, data.to_entity
    ):
        update["junction_name"] = junction_name(
            update.get("from_entity", data.from_entity),
            update.get("to_entity", data.to_entity),
        )
    return diagnostic.model_copy(update={"fix_data": data.model_copy(update=update)})


def record_rename(diagnostic: Diagnostic, renamed: Dict[str, str]) -> None:
    """Remember an applied entity rename so later fixes can follow it."""
    data = diagnostic.fix_data
    if isinstance(data, EntityRenameFixData):
        for old, new in list(renamed.items()):
            if new == data.original_name:
                renamed[old] = data.suggested_name
        renamed[data.original_name] = data.suggested_name


# ---------------------------------------------------------------------------
# Module-level exports
# ---------------------------------------------------------------------------

__all__: List[str] = [
    "FixError",
    "BaseFixer",
    "PrimaryKeyFixer",
    "DefaultAttributesFixer",
    "DuplicateAttributeFixer",
    "ForeignKeyFixer",
    "PseudoTypeFixer",
    "DuplicateRelationshipFixer",
    "SelfReferenceFixer",
    "JunctionTableFixer",
    "MissingEntityFixer",
    "EntityRenameFixer",
    "AttributeRenameFixer",
    "FIXERS",
    "FIX_PRIORITY",
    "has_fixer",
    "priority_of",
    "order_for_fixing",
    "apply_fix",
    "retarget",
    "record_rename",
]

logger.debug("erdfix.fixers loaded — %d public symbols.", len(__all__))
