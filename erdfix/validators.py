# File: erdfix/validators.py
"""
NexaFlow ERDFix - Structural Validator & Relationship Graph Analyzer
=====================================================================
Pure-function validation over the parsed diagram model defined in
``erdfix.models``.

Two kinds of finding come out of this module:

* **fatal errors** (plain strings): the diagram cannot be reasoned about,
  e.g. no entities, duplicate entity names, a relationship pointing at an
  entity that does not exist. Any fatal error makes the diagram invalid.
* **diagnostics** (``Diagnostic`` models): non-fatal, individually
  addressable findings, many of them auto-fixable.

All functions are single-pass over entities and relationships; the cycle
search is an iterative DFS, O(V + E).

Usage by downstream modules:
    from erdfix.validators import validate_entity_structure, analyze_relationships
    structure = validate_entity_structure(entities, relationships)
    if structure.is_valid:
        graph = analyze_relationships(entities, relationships)
"""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Callable, Dict, List, Optional, Sequence, Set, Tuple

from erdfix.models import (
    AttributesFixData,
    Cardinality,
    Diagnostic,
    DiagnosticCategory,
    DuplicateAttributeFixData,
    Entity,
    ForeignKeyFixData,
    JunctionFixData,
    MissingEntityFixData,
    PrimaryKeyFixData,
    Relationship,
    RelationshipFixData,
    Severity,
)
from erdfix.normalizer import PRIMARY_KEY_LINE, junction_name
from erdfix.utils import normalize_key, to_snake_case

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("erdfix.validators")

# ---------------------------------------------------------------------------
# Validation result container
# ---------------------------------------------------------------------------


class ValidationResult:
    """
    Accumulates fatal errors and diagnostics produced by the validators.

    Truthy when there are no fatal errors.
    """

    __slots__ = ("_errors", "_diagnostics")

    def __init__(self) -> None:
        self._errors: List[str] = []
        self._diagnostics: List[Diagnostic] = []

    # -- Mutation -----------------------------------------------------------

    def add_fatal(self, message: str) -> None:
        self._errors.append(message)

    def add(self, diagnostic: Diagnostic) -> None:
        self._diagnostics.append(diagnostic)

    def merge(self, other: "ValidationResult") -> None:
        """Merge another result into this one — O(k) where k = len(other)."""
        self._errors.extend(other._errors)
        self._diagnostics.extend(other._diagnostics)

    # -- Query --------------------------------------------------------------

    @property
    def errors(self) -> List[str]:
        return list(self._errors)

    @property
    def diagnostics(self) -> List[Diagnostic]:
        return list(self._diagnostics)

    @property
    def has_errors(self) -> bool:
        return bool(self._errors)

    @property
    def error_count(self) -> int:
        return len(self._errors)

    @property
    def diagnostic_count(self) -> int:
        return len(self._diagnostics)

    @property
    def is_valid(self) -> bool:
        return not self._errors

    def of_type(self, type_: str) -> List[Diagnostic]:
        return [d for d in self._diagnostics if d.type == type_]

    def summary(self) -> str:
        return (
            f"Validation: {self.error_count} fatal error(s), "
            f"{self.diagnostic_count} diagnostic(s)."
        )

    def __repr__(self) -> str:
        return f"<ValidationResult {self.summary()}>"

    def __bool__(self) -> bool:
        return self.is_valid

    def __len__(self) -> int:
        return len(self._errors) + len(self._diagnostics)


# ---------------------------------------------------------------------------
# Structural validator
# ---------------------------------------------------------------------------


def validate_entity_structure(
    entities: Sequence[Entity],
    relationships: Sequence[Relationship],
) -> ValidationResult:
    """
    Check that the diagram is well-formed enough to analyse.

    Fatal: no entities, nameless entities, duplicate entity names,
    relationships with a missing or undefined endpoint.
    Diagnostics: attribute-less entities, missing primary keys, repeated
    attribute names.

    The primary-key check runs for every entity, known entities included.

    Complexity: O(E + A + R).
    """
    result: ValidationResult = ValidationResult()

    if not entities:
        result.add_fatal("No entities found in ERD.")
        return result

    counts: Dict[str, int] = defaultdict(int)
    for entity in entities:
        counts[entity.name] += 1
    duplicates: List[str] = [name for name, n in counts.items() if n > 1 and name]
    if duplicates:
        result.add_fatal(f"Duplicate entity names found: {', '.join(duplicates)}")

    for index, entity in enumerate(entities):
        if not entity.name or not entity.name.strip():
            result.add_fatal(f"Entity at index {index} has an invalid or missing name.")
            continue

        if not entity.attributes:
            result.add(Diagnostic(
                type="empty_attributes",
                category=DiagnosticCategory.ENTITIES,
                severity=Severity.WARNING,
                entity=entity.name,
                message=f"Entity '{entity.name}' has no attributes defined.",
                suggestion="Add attributes to define the table columns for this entity.",
                auto_fixable=True,
                fix_data=AttributesFixData(kind="empty_attributes", entity_name=entity.name),
            ))

        if not entity.primary_keys:
            result.add(Diagnostic(
                type="missing_primary_key",
                category=DiagnosticCategory.ENTITIES,
                severity=Severity.WARNING,
                entity=entity.name,
                message=f"Entity '{entity.name}' is missing a primary key.",
                suggestion=f"Add a primary key attribute, e.g. {PRIMARY_KEY_LINE}",
                auto_fixable=True,
                fix_data=PrimaryKeyFixData(entity_name=entity.name),
            ))

        seen: Dict[str, int] = {}
        for attr in entity.attributes:
            seen[attr.name] = seen.get(attr.name, 0) + 1
        for attr_name, n in seen.items():
            if n < 2:
                continue
            result.add(Diagnostic(
                type="duplicate_attribute",
                category=DiagnosticCategory.ENTITIES,
                severity=Severity.WARNING,
                entity=entity.name,
                attribute=attr_name,
                message=(
                    f"Attribute '{attr_name}' is declared {n} times "
                    f"in entity '{entity.name}'."
                ),
                suggestion="Keep a single declaration of the attribute.",
                auto_fixable=True,
                fix_data=DuplicateAttributeFixData(
                    entity_name=entity.name, attribute_name=attr_name
                ),
            ))

    names: Set[str] = set(counts)
    dangling: Set[str] = set()
    for index, rel in enumerate(relationships):
        if not rel.from_entity or not rel.to_entity:
            result.add_fatal(f"Relationship at index {index} has missing from/to entities.")
            continue
        for endpoint in (rel.from_entity, rel.to_entity):
            if endpoint not in names:
                if endpoint not in dangling:
                    dangling.add(endpoint)
                    result.add_fatal(f"Relationship references non-existent entity: '{endpoint}'")

    logger.debug(
        "validate_entity_structure: %d entities, %s",
        len(entities),
        result.summary(),
    )
    return result


# ---------------------------------------------------------------------------
# Relationship graph analyzer
# ---------------------------------------------------------------------------


def _refers_to(candidate: str, target_key: str) -> bool:
    """
    True when the normalized *candidate* names the entity *target_key*,
    either exactly or as the head or tail of a renamed entity
    (``order`` → ``customorder`` / ``orderentity``).
    """
    if not candidate:
        return False
    if candidate == target_key:
        return True
    return len(candidate) >= 3 and (
        target_key.endswith(candidate) or target_key.startswith(candidate)
    )


def holds_foreign_key(entity: Entity, target: str) -> bool:
    """Does *entity* carry an FK attribute referencing *target*?"""
    target_key: str = normalize_key(target)
    for attr in entity.attributes:
        if not attr.is_foreign_key:
            continue
        if attr.referenced_entity and _refers_to(normalize_key(attr.referenced_entity), target_key):
            return True
        stem: str = normalize_key(attr.name)
        if stem.endswith("id"):
            stem = stem[:-2]
        if _refers_to(stem, target_key):
            return True
    return False


def foreign_key_column(referenced: str) -> str:
    """Conventional FK attribute name: ``Department`` → ``department_id``."""
    return f"{to_snake_case(referenced)}_id"


def _missing_foreign_key(
    rel: Relationship,
    one: str,
    many: str,
    type_: str = "missing_foreign_key",
) -> Diagnostic:
    column: str = foreign_key_column(one)
    return Diagnostic(
        type=type_,
        category=DiagnosticCategory.RELATIONSHIPS,
        severity=Severity.WARNING,
        entity=many,
        relationship=rel.describe(),
        message=(
            f"Entity '{many}' has no foreign key referencing '{one}' "
            f"for relationship {rel.describe()} ({rel.cardinality})."
        ),
        suggestion=f'Add: string {column} FK "Foreign key to {one}"',
        auto_fixable=True,
        fix_data=ForeignKeyFixData(
            kind=type_, entity_name=many, column_name=column, referenced_entity=one
        ),
    )


def _check_foreign_keys(
    rel: Relationship,
    entity_map: Dict[str, Entity],
    result: ValidationResult,
) -> None:
    cardinality: str = rel.cardinality
    if cardinality in (Cardinality.ONE_TO_MANY.value, Cardinality.ZERO_TO_MANY.value):
        one, many = rel.from_entity, rel.to_entity
    elif cardinality == Cardinality.MANY_TO_ONE.value:
        one, many = rel.to_entity, rel.from_entity
    elif cardinality == Cardinality.ONE_TO_ONE.value:
        if not (
            holds_foreign_key(entity_map[rel.to_entity], rel.from_entity)
            or holds_foreign_key(entity_map[rel.from_entity], rel.to_entity)
        ):
            result.add(_missing_foreign_key(
                rel, rel.from_entity, rel.to_entity, "missing_foreign_key_one_to_one"
            ))
        return
    else:
        return

    if not holds_foreign_key(entity_map[many], one):
        result.add(_missing_foreign_key(rel, one, many))


def _check_cardinality(rel: Relationship, result: ValidationResult) -> None:
    if rel.cardinality == Cardinality.MANY_TO_MANY.value:
        junction: str = junction_name(rel.from_entity, rel.to_entity)
        result.add(Diagnostic(
            type="many_to_many",
            category=DiagnosticCategory.RELATIONSHIPS,
            severity=Severity.INFO,
            entity=rel.from_entity,
            relationship=rel.describe(),
            message=(
                f"Many-to-many relationship {rel.describe()} needs a junction "
                f"entity to be deployed."
            ),
            suggestion=f"Introduce a junction entity '{junction}' with two one-to-many relationships.",
            auto_fixable=True,
            fix_data=JunctionFixData(
                from_entity=rel.from_entity, to_entity=rel.to_entity, junction_name=junction
            ),
        ))
    elif rel.cardinality == Cardinality.UNKNOWN.value:
        result.add(Diagnostic(
            type="unknown_cardinality",
            category=DiagnosticCategory.RELATIONSHIPS,
            severity=Severity.WARNING,
            entity=rel.from_entity,
            relationship=rel.describe(),
            message=(
                f"Relationship {rel.describe()} uses an unrecognized "
                f"cardinality token '{rel.token}'."
            ),
            suggestion="Use a standard token such as ||--o{ or ||--||.",
        ))


def _orphan(rel: Relationship, missing: str, other: str) -> Diagnostic:
    return Diagnostic(
        type="orphaned_relationship",
        category=DiagnosticCategory.RELATIONSHIPS,
        severity=Severity.ERROR,
        entity=missing,
        relationship=rel.describe(),
        message=(
            f"Relationship {rel.describe()} references entity '{missing}', "
            f"which does not exist."
        ),
        suggestion=f"Define entity '{missing}' or remove the relationship.",
        auto_fixable=True,
        fix_data=MissingEntityFixData(
            kind="orphaned_relationship", entity_name=missing, referenced_by=other
        ),
    )


def find_cycles(entities: Sequence[Entity], relationships: Sequence[Relationship]) -> List[List[str]]:
    """
    Distinct cycles of the directed from→to graph, each as a closed path
    (``[A, B, A]``). Self-loops are ignored.

    Iterative DFS with an explicit recursion stack; a back-edge to a node on
    the stack yields the cycle. Each cycle is reported once regardless of
    the node it was entered from.

    Complexity: O(V + E).
    """
    adjacency: Dict[str, List[str]] = defaultdict(list)
    names: Set[str] = {e.name for e in entities}
    for rel in relationships:
        if rel.from_entity == rel.to_entity:
            continue
        if rel.from_entity not in names or rel.to_entity not in names:
            continue
        if rel.to_entity not in adjacency[rel.from_entity]:
            adjacency[rel.from_entity].append(rel.to_entity)

    visited: Set[str] = set()
    in_stack: Set[str] = set()
    cycles: List[List[str]] = []
    seen_cycles: Set[Tuple[str, ...]] = set()

    for start in (e.name for e in entities):
        if start in visited:
            continue

        stack: List[Tuple[str, bool]] = [(start, False)]
        path: List[str] = []

        while stack:
            node, is_returning = stack.pop()

            if is_returning:
                in_stack.discard(node)
                if path and path[-1] == node:
                    path.pop()
                continue

            if node in in_stack:
                ring: List[str] = path[path.index(node):]
                pivot: int = ring.index(min(ring))
                canonical: Tuple[str, ...] = tuple(ring[pivot:] + ring[:pivot])
                if canonical not in seen_cycles:
                    seen_cycles.add(canonical)
                    cycles.append(ring + [node])
                continue

            if node in visited:
                continue

            visited.add(node)
            in_stack.add(node)
            path.append(node)

            stack.append((node, True))
            for neighbour in reversed(adjacency.get(node, [])):
                stack.append((neighbour, False))

    return cycles


def analyze_relationships(
    entities: Sequence[Entity],
    relationships: Sequence[Relationship],
) -> ValidationResult:
    """
    Relationship-level diagnostics: missing foreign keys, orphaned
    endpoints, circular dependencies, cardinality patterns and duplicate or
    bidirectional relationships.

    Skipped entirely when every entity is a known platform entity.

    Complexity: O(E + R + A) plus O(V + E) for the cycle search.
    """
    result: ValidationResult = ValidationResult()

    if entities and all(e.is_known_entity for e in entities):
        logger.debug("analyze_relationships: all entities are known, skipping.")
        return result

    entity_map: Dict[str, Entity] = {}
    for entity in entities:
        entity_map.setdefault(entity.name, entity)

    seen_pairs: Set[Tuple[str, str]] = set()
    reported_pairs: Set[Tuple[str, str]] = set()

    for rel in relationships:
        if not rel.from_entity or not rel.to_entity:
            continue

        orphaned: bool = False
        for missing, other in ((rel.from_entity, rel.to_entity), (rel.to_entity, rel.from_entity)):
            if missing not in entity_map:
                orphaned = True
                result.add(_orphan(rel, missing, other))
                if missing == other:
                    break

        pair: Tuple[str, str] = (rel.from_entity, rel.to_entity)
        unordered: Tuple[str, str] = rel.pair()
        if pair in seen_pairs:
            if unordered not in reported_pairs:
                reported_pairs.add(unordered)
                result.add(Diagnostic(
                    type="duplicate_relationship",
                    category=DiagnosticCategory.RELATIONSHIPS,
                    severity=Severity.WARNING,
                    entity=rel.from_entity,
                    relationship=rel.describe(),
                    message=f"Relationship {rel.describe()} is declared more than once.",
                    suggestion="Keep a single relationship line between the two entities.",
                    auto_fixable=True,
                    fix_data=RelationshipFixData(
                        kind="duplicate_relationship",
                        from_entity=rel.from_entity,
                        to_entity=rel.to_entity,
                    ),
                ))
            continue
        if (rel.to_entity, rel.from_entity) in seen_pairs and not rel.is_self_reference:
            result.add(Diagnostic(
                type="bidirectional_relationship",
                category=DiagnosticCategory.RELATIONSHIPS,
                severity=Severity.INFO,
                entity=rel.from_entity,
                relationship=rel.describe(),
                message=(
                    f"Entities '{rel.from_entity}' and '{rel.to_entity}' are related "
                    f"in both directions."
                ),
                suggestion="Check whether both relationships are intended.",
            ))
        seen_pairs.add(pair)

        if orphaned:
            continue

        if rel.is_self_reference:
            result.add(Diagnostic(
                type="self_referencing_relationship",
                category=DiagnosticCategory.RELATIONSHIPS,
                severity=Severity.INFO,
                entity=rel.from_entity,
                relationship=rel.describe(),
                message=(
                    f"Entity '{rel.from_entity}' references itself; "
                    f"hierarchies need a manual design review."
                ),
                suggestion="Confirm the hierarchy and add a parent lookup attribute.",
                fix_data=RelationshipFixData(
                    kind="self_referencing_relationship",
                    from_entity=rel.from_entity,
                    to_entity=rel.to_entity,
                ),
            ))
            continue

        _check_foreign_keys(rel, entity_map, result)
        _check_cardinality(rel, result)

    for cycle in find_cycles(entities, relationships):
        cycle_str: str = " → ".join(cycle)
        result.add(Diagnostic(
            type="circular_dependency",
            category=DiagnosticCategory.RELATIONSHIPS,
            severity=Severity.ERROR,
            entity=cycle[0],
            relationship=cycle_str,
            message=f"Circular dependency detected: {cycle_str}.",
            suggestion="Break the cycle by making one of the relationships optional or removing it.",
        ))

    logger.debug("analyze_relationships: %s", result.summary())
    return result


# ---------------------------------------------------------------------------
# Composite runner
# ---------------------------------------------------------------------------

ValidatorFn = Callable[[Sequence[Entity], Sequence[Relationship]], ValidationResult]


def run_validators(
    entities: Sequence[Entity],
    relationships: Sequence[Relationship],
    validators: Sequence[ValidatorFn],
) -> ValidationResult:
    """Run *validators* in order and merge their results."""
    result: ValidationResult = ValidationResult()
    for validator_fn in validators:
        name: Optional[str] = getattr(validator_fn, "__name__", None)
        logger.debug("Running validator: %s", name or repr(validator_fn))
        result.merge(validator_fn(entities, relationships))
    return result


# ---------------------------------------------------------------------------
# Module-level exports
# ---------------------------------------------------------------------------

__all__: List[str] = [
    "ValidationResult",
    "validate_entity_structure",
    "holds_foreign_key",
    "foreign_key_column",
    "find_cycles",
    "analyze_relationships",
    "run_validators",
]

logger.debug("erdfix.validators loaded — %d public symbols.", len(__all__))
