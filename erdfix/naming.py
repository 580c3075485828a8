# File: erdfix/naming.py
"""
NexaFlow ERDFix - Naming Convention Validator
===============================================
Entity and attribute naming rules for custom (non-registry) entities.

For each name the first failing rule wins, so a name is never reported
twice by this pass:

    entity:     identifier → length → platform-reserved → PascalCase (info)
    attribute:  identifier → length → platform-reserved

A second pass then flags names that collide with common SQL reserved words,
skipping anything the first pass already reported.

Every diagnostic carries a rename suggestion that itself passes all rules,
so applying it never trades one naming diagnostic for another.
"""

from __future__ import annotations

import logging
import re
from typing import FrozenSet, Iterable, List, Optional, Sequence, Set, Tuple

from erdfix.models import (
    AttributeRenameFixData,
    Diagnostic,
    DiagnosticCategory,
    EngineConfig,
    Entity,
    EntityRenameFixData,
    Relationship,
    Severity,
)
from erdfix.utils import (
    sanitize_attribute_name,
    sanitize_entity_name,
    shorten_identifier,
    to_camel_case,
    to_pascal_case,
)
from erdfix.validators import ValidationResult

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("erdfix.naming")

# ---------------------------------------------------------------------------
# Regex patterns (compiled once at module load)
# ---------------------------------------------------------------------------

_ENTITY_NAME_RE: re.Pattern[str] = re.compile(r"^[A-Za-z][A-Za-z0-9_]*$")
_ATTRIBUTE_NAME_RE: re.Pattern[str] = re.compile(r"^[a-z][a-zA-Z0-9_]*$")
_PASCAL_CASE_RE: re.Pattern[str] = re.compile(r"^[A-Z][a-zA-Z0-9]*$")

# Entity names the platform keeps for its own tables
PLATFORM_RESERVED_ENTITY_NAMES: FrozenSet[str] = frozenset(
    {
        "user", "role", "group", "system", "admin", "owner", "principal",
        "privilege", "solution", "publisher", "entity", "attribute",
        "relationship", "plugin", "workflow", "organization", "team",
        "businessunit",
    }
)

# Columns every platform table already carries
PLATFORM_RESERVED_ATTRIBUTE_NAMES: FrozenSet[str] = frozenset(
    {
        "createdon", "createdby", "createdonbehalfby", "modifiedon",
        "modifiedby", "modifiedonbehalfby", "ownerid", "owninguser",
        "owningteam", "owningbusinessunit", "statecode", "statuscode",
        "versionnumber", "importsequencenumber", "overriddencreatedon",
        "timezoneruleversionnumber", "utcconversiontimezonecode",
    }
)

# SQL reserved words that must not be used as identifiers (subset of most common)
SQL_RESERVED_WORDS: FrozenSet[str] = frozenset(
    {
        "select", "insert", "update", "delete", "drop", "create", "alter",
        "table", "column", "index", "from", "where", "join", "inner",
        "outer", "left", "right", "on", "and", "or", "not", "null",
        "true", "false", "in", "between", "like", "is", "as", "order",
        "by", "group", "having", "limit", "offset", "union", "all",
        "distinct", "case", "when", "then", "else", "end", "exists",
        "primary", "foreign", "key", "references", "constraint", "check",
        "default", "unique", "cascade", "set", "values", "into",
        "grant", "revoke", "begin", "commit", "rollback", "transaction",
        "user", "role", "schema", "database", "trigger", "procedure",
        "function", "view", "sequence", "type", "domain", "declare",
        "execute", "fetch", "cursor", "open", "close", "with",
    }
)


# ---------------------------------------------------------------------------
# Validator
# ---------------------------------------------------------------------------


class NamingValidator:
    """
    Naming rules bound to one ``EngineConfig`` (length ceiling and extra
    reserved names).

    Instances are callables with the ``(entities, relationships)`` validator
    signature used by ``erdfix.validators.run_validators``.
    """

    __slots__ = ("max_length", "reserved_entities", "reserved_attributes")

    def __init__(self, config: Optional[EngineConfig] = None) -> None:
        cfg: EngineConfig = config or EngineConfig()
        self.max_length: int = cfg.max_name_length
        self.reserved_entities: FrozenSet[str] = PLATFORM_RESERVED_ENTITY_NAMES | {
            n.lower() for n in cfg.reserved_entity_names
        }
        self.reserved_attributes: FrozenSet[str] = PLATFORM_RESERVED_ATTRIBUTE_NAMES | {
            n.lower() for n in cfg.reserved_attribute_names
        }

    def __repr__(self) -> str:
        return f"<NamingValidator max_length={self.max_length}>"

    def __call__(
        self,
        entities: Sequence[Entity],
        relationships: Sequence[Relationship] = (),
    ) -> ValidationResult:
        return self.validate(entities)

    # -- Suggestions ---------------------------------------------------------

    def _fit(self, name: str) -> str:
        return shorten_identifier(name, self.max_length)

    def suggest_entity_name(self, name: str) -> str:
        """A name for *name* that passes every entity rule."""
        candidate: str = sanitize_entity_name(name)
        if candidate.lower() in self.reserved_entities:
            candidate = f"Custom{candidate}"
        elif candidate.lower() in SQL_RESERVED_WORDS:
            candidate = f"{candidate}Entity"
        return self._fit(candidate)

    def suggest_attribute_name(self, name: str) -> str:
        """A name for *name* that passes every attribute rule."""
        candidate: str = sanitize_attribute_name(name)
        if candidate.lower() in self.reserved_attributes:
            candidate = f"custom{candidate[0].upper()}{candidate[1:]}"
        elif candidate.lower() in SQL_RESERVED_WORDS:
            candidate = f"{candidate}Value"
        return self._fit(candidate)

    # -- Rules ---------------------------------------------------------------

    def check_entity(self, entity: Entity) -> Optional[Diagnostic]:
        name: str = entity.name
        type_: str
        severity: Severity = Severity.WARNING
        suggested: str

        if not _ENTITY_NAME_RE.match(name):
            type_ = "invalid_entity_name"
            suggested = self.suggest_entity_name(name)
            message: str = (
                f"Entity name '{name}' is not a valid identifier: it must start "
                f"with a letter and contain only letters, digits and underscores."
            )
        elif len(name) > self.max_length:
            type_ = "entity_name_too_long"
            suggested = self._fit(name)
            message = (
                f"Entity name '{name}' is {len(name)} characters long; "
                f"the limit is {self.max_length}."
            )
        elif name.lower() in self.reserved_entities:
            type_ = "reserved_entity_name"
            suggested = self._fit(f"Custom{name[0].upper()}{name[1:]}")
            message = f"Entity name '{name}' is reserved by the platform."
        elif not _PASCAL_CASE_RE.match(name):
            type_ = "entity_naming_convention"
            severity = Severity.INFO
            suggested = self.suggest_entity_name(to_pascal_case(name))
            message = f"Entity name '{name}' is not PascalCase."
        else:
            return None

        if suggested == name:
            return None
        return Diagnostic(
            type=type_,
            category=DiagnosticCategory.NAMING,
            severity=severity,
            entity=name,
            message=message,
            suggestion=f"Rename '{name}' to '{suggested}'.",
            auto_fixable=True,
            fix_data=EntityRenameFixData(
                kind=type_, original_name=name, suggested_name=suggested
            ),
        )

    def check_attribute(self, entity_name: str, name: str) -> Optional[Diagnostic]:
        type_: str
        suggested: str

        if not _ATTRIBUTE_NAME_RE.match(name):
            type_ = "invalid_attribute_name"
            suggested = self.suggest_attribute_name(name)
            message: str = (
                f"Attribute '{name}' in entity '{entity_name}' must start with a "
                f"lowercase letter and contain only letters, digits and underscores."
            )
        elif len(name) > self.max_length:
            type_ = "attribute_name_too_long"
            suggested = self._fit(name)
            message = (
                f"Attribute '{name}' in entity '{entity_name}' is {len(name)} "
                f"characters long; the limit is {self.max_length}."
            )
        elif name.lower() in self.reserved_attributes:
            type_ = "reserved_attribute_name"
            suggested = self._fit(f"custom{name[0].upper()}{name[1:]}")
            message = (
                f"Attribute '{name}' in entity '{entity_name}' collides with a "
                f"column the platform adds to every table."
            )
        else:
            return None

        if suggested == name:
            return None
        return Diagnostic(
            type=type_,
            category=DiagnosticCategory.NAMING,
            severity=Severity.WARNING,
            entity=entity_name,
            attribute=name,
            message=message,
            suggestion=f"Rename '{name}' to '{suggested}'.",
            auto_fixable=True,
            fix_data=AttributeRenameFixData(
                kind=type_,
                entity_name=entity_name,
                original_name=name,
                suggested_name=suggested,
            ),
        )

    # -- Passes --------------------------------------------------------------

    def validate(self, entities: Sequence[Entity]) -> ValidationResult:
        """
        Run the naming pass and then the SQL reserved-word pass over every
        custom entity. Known entities are skipped.

        Complexity: O(E + A).
        """
        result: ValidationResult = ValidationResult()
        flagged: Set[Tuple[str, Optional[str]]] = set()
        custom: List[Entity] = [e for e in entities if not e.is_known_entity and e.name]

        for entity in custom:
            diag: Optional[Diagnostic] = self.check_entity(entity)
            if diag is not None:
                result.add(diag)
                flagged.add((entity.name, None))

            reported: Set[str] = set()
            for attr in entity.attributes:
                if attr.name in reported:
                    continue
                reported.add(attr.name)
                diag = self.check_attribute(entity.name, attr.name)
                if diag is not None:
                    result.add(diag)
                    flagged.add((entity.name, attr.name))

        result.merge(self.validate_sql_reserved_words(custom, flagged))

        logger.debug("validate_naming: %s", result.summary())
        return result

    def validate_sql_reserved_words(
        self,
        entities: Iterable[Entity],
        flagged: Set[Tuple[str, Optional[str]]],
    ) -> ValidationResult:
        result: ValidationResult = ValidationResult()
        for entity in entities:
            if (entity.name, None) not in flagged and entity.name.lower() in SQL_RESERVED_WORDS:
                suggested: str = self._fit(f"{to_pascal_case(entity.name)}Entity")
                result.add(Diagnostic(
                    type="sql_reserved_entity_name",
                    category=DiagnosticCategory.NAMING,
                    severity=Severity.WARNING,
                    entity=entity.name,
                    message=f"Entity name '{entity.name}' is a SQL reserved word.",
                    suggestion=f"Rename '{entity.name}' to '{suggested}'.",
                    auto_fixable=True,
                    fix_data=EntityRenameFixData(
                        kind="sql_reserved_entity_name",
                        original_name=entity.name,
                        suggested_name=suggested,
                    ),
                ))

            reported: Set[str] = set()
            for attr in entity.attributes:
                name: str = attr.name
                if name in reported or (entity.name, name) in flagged:
                    continue
                reported.add(name)
                if name.lower() not in SQL_RESERVED_WORDS:
                    continue
                suggested = self._fit(f"{to_camel_case(name)}Value")
                result.add(Diagnostic(
                    type="sql_reserved_attribute_name",
                    category=DiagnosticCategory.NAMING,
                    severity=Severity.WARNING,
                    entity=entity.name,
                    attribute=name,
                    message=(
                        f"Attribute '{name}' in entity '{entity.name}' is a SQL "
                        f"reserved word."
                    ),
                    suggestion=f"Rename '{name}' to '{suggested}'.",
                    auto_fixable=True,
                    fix_data=AttributeRenameFixData(
                        kind="sql_reserved_attribute_name",
                        entity_name=entity.name,
                        original_name=name,
                        suggested_name=suggested,
                    ),
                ))
        return result


def validate_naming(
    entities: Sequence[Entity],
    config: Optional[EngineConfig] = None,
) -> ValidationResult:
    """Module-level convenience wrapper around ``NamingValidator``."""
    return NamingValidator(config).validate(entities)


# ---------------------------------------------------------------------------
# Module-level exports
# ---------------------------------------------------------------------------

__all__: List[str] = [
    "PLATFORM_RESERVED_ENTITY_NAMES",
    "PLATFORM_RESERVED_ATTRIBUTE_NAMES",
    "SQL_RESERVED_WORDS",
    "NamingValidator",
    "validate_naming",
]

logger.debug("erdfix.naming loaded — %d public symbols.", len(__all__))
