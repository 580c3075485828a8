# File: erdfix/models.py
"""
NexaFlow ERDFix - Core Data Models
===================================
Pydantic V2 models representing parsed diagram elements, validation
diagnostics, fix results and engine configuration. These models form the
single source of truth for the entire pipeline:
Parse → Validate → Suppress → Identify → Fix → Re-validate.

Every model uses a camelCase alias generator so responses serialise in the
wire format consumed by the wizard UI (``isKnownEntity``, ``fixData`` ...)
while Python code keeps snake_case attribute names.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Annotated, List, Literal, Optional, Tuple, Union

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    computed_field,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("erdfix.models")

# ---------------------------------------------------------------------------
# Enums: fixed sets used across the project
# ---------------------------------------------------------------------------


class Cardinality(str, Enum):
    """Relationship cardinalities recognised by the parser."""

    ONE_TO_ONE = "one-to-one"
    ONE_TO_MANY = "one-to-many"
    ZERO_TO_MANY = "zero-to-many"
    MANY_TO_ONE = "many-to-one"
    MANY_TO_MANY = "many-to-many"
    UNKNOWN = "unknown"


class Severity(str, Enum):
    """Diagnostic severities, least to most serious."""

    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class DiagnosticCategory(str, Enum):
    """Which part of the diagram a diagnostic is about."""

    ENTITIES = "entities"
    RELATIONSHIPS = "relationships"
    NAMING = "naming"
    SYSTEM = "system"


class FixMode(str, Enum):
    """Selection modes accepted by the bulk fix orchestrator."""

    ALL = "all"
    AUTO_FIXABLE_ONLY = "autoFixableOnly"


class MatchType(str, Enum):
    """How an entity was recognised by the known-entity registry."""

    EXACT = "exact"
    ALIAS = "alias"


# ---------------------------------------------------------------------------
# Mixin: shared model configuration
# ---------------------------------------------------------------------------

_SHARED_CONFIG: ConfigDict = ConfigDict(
    strict=False,
    populate_by_name=True,
    validate_assignment=True,
    use_enum_values=True,
    validate_default=True,
    frozen=False,
    extra="forbid",
    alias_generator=to_camel,
)


# ---------------------------------------------------------------------------
# Parsed diagram elements
# ---------------------------------------------------------------------------


class Attribute(BaseModel):
    """
    A single attribute line inside an entity body.

    ``type`` is kept exactly as declared (``string``, ``int``,
    ``choice(a, b)`` ...); the syntax normalizer is responsible for
    collapsing pseudo-types, not the model.
    """

    model_config = _SHARED_CONFIG

    name: str = Field(..., min_length=1, description="Attribute name.")
    type: str = Field(default="string", description="Declared type token.")
    is_primary_key: bool = Field(default=False, description="Declared with PK?")
    is_foreign_key: bool = Field(default=False, description="Declared with FK?")
    is_unique: bool = Field(default=False, description="Declared with UK?")
    required: bool = Field(default=False, description="Value required on create.")
    referenced_entity: Optional[str] = Field(
        default=None, description="Entity an FK attribute points at, when known."
    )
    description: Optional[str] = Field(
        default=None, description="Quoted description, without the quotes."
    )
    choice_options: Optional[List[str]] = Field(
        default=None, description="Options of a choice(...) pseudo-type."
    )
    line_number: Optional[int] = Field(
        default=None, ge=1, description="1-based source line of the attribute."
    )

    @computed_field  # type: ignore[misc]
    @property
    def is_pseudo_type(self) -> bool:
        return self.type.startswith(("choice(", "lookup("))

    def __repr__(self) -> str:
        flags: str = "".join(
            f" {k}" for k, on in (
                ("PK", self.is_primary_key),
                ("FK", self.is_foreign_key),
                ("UK", self.is_unique),
            ) if on
        )
        return f"<Attribute {self.type} {self.name}{flags}>"


class Entity(BaseModel):
    """
    An entity block of the diagram.

    ``name`` may be empty here so that the structural validator, rather than
    model construction, reports the problem.
    """

    model_config = _SHARED_CONFIG

    name: str = Field(..., description="Entity name as written in the source.")
    attributes: List[Attribute] = Field(
        default_factory=list, description="Attributes in declaration order."
    )
    is_known_entity: bool = Field(
        default=False,
        description="Set by the suppression pass when the registry recognises it.",
    )
    line_number: Optional[int] = Field(
        default=None, ge=1, description="1-based source line of the header."
    )

    @computed_field  # type: ignore[misc]
    @property
    def primary_keys(self) -> List[str]:
        return [a.name for a in self.attributes if a.is_primary_key]

    @computed_field  # type: ignore[misc]
    @property
    def foreign_keys(self) -> List[str]:
        return [a.name for a in self.attributes if a.is_foreign_key]

    def get_attribute(self, name: str) -> Optional[Attribute]:
        """First attribute called *name*, or ``None``. O(A)."""
        for attr in self.attributes:
            if attr.name == name:
                return attr
        return None

    def __repr__(self) -> str:
        known: str = " known" if self.is_known_entity else ""
        return f"<Entity {self.name} ({len(self.attributes)} attrs){known}>"


class Relationship(BaseModel):
    """A relationship line: ``From <token> To : label``."""

    model_config = _SHARED_CONFIG

    from_entity: str = Field(default="", description="Left-hand entity name.")
    to_entity: str = Field(default="", description="Right-hand entity name.")
    cardinality: Cardinality = Field(
        default=Cardinality.UNKNOWN, description="Classified cardinality."
    )
    label: str = Field(default="", description="Relationship label, unquoted.")
    token: str = Field(default="", description="Raw cardinality token, e.g. '||--o{'.")
    line_number: Optional[int] = Field(default=None, ge=1)

    @computed_field  # type: ignore[misc]
    @property
    def is_self_reference(self) -> bool:
        return bool(self.from_entity) and self.from_entity == self.to_entity

    def pair(self) -> Tuple[str, str]:
        """Direction-independent key for the two entities involved."""
        a, b = sorted((self.from_entity, self.to_entity))
        return a, b

    def describe(self) -> str:
        return f"{self.from_entity}→{self.to_entity}"

    def __repr__(self) -> str:
        return (
            f"<Relationship {self.from_entity} {self.token or self.cardinality} "
            f"{self.to_entity}>"
        )


# ---------------------------------------------------------------------------
# Fix data: tagged union keyed by diagnostic type
# ---------------------------------------------------------------------------


class PrimaryKeyFixData(BaseModel):
    """Insert a canonical primary key into an entity."""

    model_config = _SHARED_CONFIG

    kind: Literal["missing_primary_key"] = "missing_primary_key"
    entity_name: str = Field(..., min_length=1)
    suggested_primary_key: str = Field(default="id", min_length=1)


class AttributesFixData(BaseModel):
    """Give an attribute-less entity its minimal attribute set."""

    model_config = _SHARED_CONFIG

    kind: Literal["missing_attributes", "empty_attributes"]
    entity_name: str = Field(..., min_length=1)


class ForeignKeyFixData(BaseModel):
    """Append a foreign-key attribute to the dependent entity."""

    model_config = _SHARED_CONFIG

    kind: Literal["missing_foreign_key", "missing_foreign_key_one_to_one"]
    entity_name: str = Field(..., min_length=1, description="Entity receiving the FK.")
    column_name: str = Field(..., min_length=1, description="FK attribute to add.")
    referenced_entity: str = Field(..., min_length=1, description="Entity referenced.")


class DuplicateAttributeFixData(BaseModel):
    """Collapse repeated attribute lines of one entity."""

    model_config = _SHARED_CONFIG

    kind: Literal["duplicate_attribute"] = "duplicate_attribute"
    entity_name: str = Field(..., min_length=1)
    attribute_name: str = Field(..., min_length=1)


class RelationshipFixData(BaseModel):
    """Remove surplus relationship lines between two entities."""

    model_config = _SHARED_CONFIG

    kind: Literal["duplicate_relationship", "self_referencing_relationship"]
    from_entity: str = Field(..., min_length=1)
    to_entity: str = Field(..., min_length=1)


class JunctionFixData(BaseModel):
    """Replace a many-to-many relationship with a junction entity."""

    model_config = _SHARED_CONFIG

    kind: Literal["many_to_many"] = "many_to_many"
    from_entity: str = Field(..., min_length=1)
    to_entity: str = Field(..., min_length=1)
    junction_name: str = Field(..., min_length=1)


class MissingEntityFixData(BaseModel):
    """Synthesise a placeholder for an entity named only by relationships."""

    model_config = _SHARED_CONFIG

    kind: Literal["orphaned_relationship", "missing_entity"]
    entity_name: str = Field(..., min_length=1, description="Entity to create.")
    referenced_by: Optional[str] = Field(
        default=None, description="Entity on the other side of the relationship."
    )


class EntityRenameFixData(BaseModel):
    """Rename an entity and every relationship reference to it."""

    model_config = _SHARED_CONFIG

    kind: Literal[
        "invalid_entity_name",
        "entity_name_too_long",
        "reserved_entity_name",
        "sql_reserved_entity_name",
        "entity_naming_convention",
    ]
    original_name: str = Field(..., min_length=1)
    suggested_name: str = Field(..., min_length=1)


class AttributeRenameFixData(BaseModel):
    """Rename an attribute inside its owning entity only."""

    model_config = _SHARED_CONFIG

    kind: Literal[
        "invalid_attribute_name",
        "attribute_name_too_long",
        "reserved_attribute_name",
        "sql_reserved_attribute_name",
    ]
    entity_name: str = Field(..., min_length=1)
    original_name: str = Field(..., min_length=1)
    suggested_name: str = Field(..., min_length=1)


class PseudoTypeFixData(BaseModel):
    """Collapse a choice(...)/lookup(...) attribute to a plain string."""

    model_config = _SHARED_CONFIG

    kind: Literal["pseudo_type_attribute"] = "pseudo_type_attribute"
    entity_name: str = Field(..., min_length=1)
    attribute_name: str = Field(..., min_length=1)


FixData = Annotated[
    Union[
        PrimaryKeyFixData,
        AttributesFixData,
        ForeignKeyFixData,
        DuplicateAttributeFixData,
        RelationshipFixData,
        JunctionFixData,
        MissingEntityFixData,
        EntityRenameFixData,
        AttributeRenameFixData,
        PseudoTypeFixData,
    ],
    Field(discriminator="kind"),
]


# ---------------------------------------------------------------------------
# Diagnostics
# ---------------------------------------------------------------------------


class Diagnostic(BaseModel):
    """
    A structured validation finding.

    ``id`` is left empty by the validators and filled in by
    ``erdfix.identity.assign_warning_ids`` once the message is final
    (the suppression pass may still append to it).
    """

    model_config = _SHARED_CONFIG

    id: str = Field(default="", description="Content-derived id, 'warning_<n>'.")
    type: str = Field(..., min_length=1, description="Diagnostic type code.")
    category: DiagnosticCategory = Field(...)
    severity: Severity = Field(default=Severity.WARNING)
    entity: Optional[str] = Field(default=None)
    attribute: Optional[str] = Field(default=None)
    relationship: Optional[str] = Field(default=None)
    message: str = Field(..., min_length=1)
    suggestion: Optional[str] = Field(default=None)
    auto_fixable: bool = Field(default=False)
    fix_data: Optional[FixData] = Field(default=None)
    known_entity: bool = Field(
        default=False, description="Target entity is registry-owned."
    )

    @model_validator(mode="after")
    def _fix_data_matches_type(self) -> "Diagnostic":
        if self.fix_data is not None and self.fix_data.kind != self.type:
            raise ValueError(
                f"fixData kind '{self.fix_data.kind}' does not match "
                f"diagnostic type '{self.type}'."
            )
        return self

    @property
    def target_entity(self) -> Optional[str]:
        """Entity the diagnostic is about, directly or through its fix data."""
        if self.entity:
            return self.entity
        return getattr(self.fix_data, "entity_name", None)

    def __repr__(self) -> str:
        return f"[{self.severity.upper()}] {self.type}: {self.message}"

    def __str__(self) -> str:
        return self.__repr__()


# ---------------------------------------------------------------------------
# Known-entity detection
# ---------------------------------------------------------------------------


class KnownEntityDefinition(BaseModel):
    """A canonical, platform-owned entity the registry can recognise."""

    model_config = _SHARED_CONFIG

    logical_name: str = Field(..., min_length=1)
    display_name: str = Field(..., min_length=1)
    description: str = Field(default="")
    key_attributes: List[str] = Field(default_factory=list)
    aliases: List[str] = Field(default_factory=list)


class KnownEntityMatch(BaseModel):
    model_config = _SHARED_CONFIG

    original_entity: str
    canonical_entity: str
    match_type: MatchType
    confidence: float = Field(..., ge=0.0, le=1.0)
    match_reasons: List[str] = Field(default_factory=list)


class KnownEntityDetection(BaseModel):
    """Summary returned by the registry for one diagram."""

    model_config = _SHARED_CONFIG

    matches: List[KnownEntityMatch] = Field(default_factory=list)
    total_entities: int = Field(default=0, ge=0)
    known_entities: int = Field(default=0, ge=0)
    custom_entities: int = Field(default=0, ge=0)
    confidence: Literal["high", "medium", "low"] = "low"
    error: Optional[str] = Field(default=None, description="Set when detection degraded.")

    @classmethod
    def degraded(cls, total: int, error: Optional[str] = None) -> "KnownEntityDetection":
        """Empty, low-confidence result used when the lookup fails or is disabled."""
        return cls(
            matches=[],
            total_entities=total,
            known_entities=0,
            custom_entities=total,
            confidence="low",
            error=error,
        )

    @property
    def matched_names(self) -> List[str]:
        return [m.original_entity for m in self.matches]


# ---------------------------------------------------------------------------
# Parser output
# ---------------------------------------------------------------------------


class ParseResult(BaseModel):
    """Everything the parsed-model adapter hands to the engine."""

    model_config = _SHARED_CONFIG

    entities: List[Entity] = Field(default_factory=list)
    relationships: List[Relationship] = Field(default_factory=list)
    warnings: List[Diagnostic] = Field(default_factory=list)
    corrected_erd: str = Field(default="", serialization_alias="correctedERD")
    errors: List[str] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


# ---------------------------------------------------------------------------
# Validation responses
# ---------------------------------------------------------------------------


class ValidationReport(BaseModel):
    """``validation`` block: structural verdict plus reported diagnostics."""

    model_config = _SHARED_CONFIG

    is_valid: bool
    errors: List[str] = Field(default_factory=list)
    warnings: List[Diagnostic] = Field(default_factory=list)


class ValidationSummary(BaseModel):
    model_config = _SHARED_CONFIG

    entity_count: int = 0
    relationship_count: int = 0
    warning_count: int = 0
    known_entity_match_count: int = 0


class ValidationResponse(BaseModel):
    """
    Result of the ``validate`` entry point.

    Frozen: a response is never modified after it is returned; every call
    builds a new one.
    """

    model_config = ConfigDict(
        populate_by_name=True,
        use_enum_values=True,
        validate_default=True,
        extra="forbid",
        alias_generator=to_camel,
        frozen=True,
    )

    success: bool
    message: str = ""
    validation: ValidationReport
    entities: List[Entity] = Field(default_factory=list)
    relationships: List[Relationship] = Field(default_factory=list)
    warnings: List[Diagnostic] = Field(default_factory=list)
    corrected_erd: str = Field(default="", serialization_alias="correctedERD")
    known_entity_detection: KnownEntityDetection = Field(
        default_factory=KnownEntityDetection
    )
    summary: ValidationSummary = Field(default_factory=ValidationSummary)

    def find_warning(self, warning_id: str) -> Optional[Diagnostic]:
        """First diagnostic carrying *warning_id*, or ``None``. O(W)."""
        for diag in self.warnings:
            if diag.id == warning_id:
                return diag
        return None


# ---------------------------------------------------------------------------
# Fix results
# ---------------------------------------------------------------------------


class FixOutcome(BaseModel):
    """What a single fixer returns. Never raised, always returned."""

    model_config = _SHARED_CONFIG

    success: bool
    content: Optional[str] = None
    applied_fix_description: Optional[str] = None
    error: Optional[str] = None
    requires_manual_review: bool = False

    @property
    def changed(self) -> bool:
        return self.success and self.content is not None

    @classmethod
    def ok(
        cls,
        content: Optional[str],
        description: str,
        *,
        requires_manual_review: bool = False,
    ) -> "FixOutcome":
        return cls(
            success=True,
            content=content,
            applied_fix_description=description,
            requires_manual_review=requires_manual_review,
        )

    @classmethod
    def failed(cls, error: str) -> "FixOutcome":
        return cls(success=False, error=error)


class AppliedFix(BaseModel):
    model_config = _SHARED_CONFIG

    warning_id: str = ""
    warning_type: str
    entity: Optional[str] = None
    description: str = ""
    changed: bool = True
    requires_manual_review: bool = False


class FailedFix(BaseModel):
    model_config = _SHARED_CONFIG

    warning_id: str = ""
    warning_type: str
    entity: Optional[str] = None
    error: str


class BulkFixSummary(BaseModel):
    model_config = _SHARED_CONFIG

    total_warnings: int = 0
    selected_warnings: int = 0
    fixes_applied: int = 0
    fixes_failed: int = 0
    skipped_warnings: int = 0
    remaining_warning_count: int = 0


class BulkFixResult(BaseModel):
    """Result of the bulk fix entry point; always best-effort."""

    model_config = _SHARED_CONFIG

    success: bool = True
    message: str = ""
    fixed_content: str
    applied_fixes: List[AppliedFix] = Field(default_factory=list)
    failed_fixes: List[FailedFix] = Field(default_factory=list)
    remaining_warnings: List[Diagnostic] = Field(default_factory=list)
    summary: BulkFixSummary = Field(default_factory=BulkFixSummary)


class IndividualFixResult(BaseModel):
    """Result of fixing one diagnostic by id."""

    model_config = _SHARED_CONFIG

    success: bool
    message: str = ""
    fixed_content: Optional[str] = None
    applied_fix: Optional[AppliedFix] = None
    remaining_warnings: List[Diagnostic] = Field(default_factory=list)
    already_resolved: bool = False


# ---------------------------------------------------------------------------
# Requests (HTTP surface)
# ---------------------------------------------------------------------------


_SOURCE_ALIASES: AliasChoices = AliasChoices(
    "sourceText", "mermaidContent", "source_text"
)


class ValidateOptions(BaseModel):
    model_config = _SHARED_CONFIG

    detect_known_entities: Optional[bool] = Field(
        default=None, description="Override the engine default."
    )


class ValidateRequest(BaseModel):
    model_config = _SHARED_CONFIG

    source_text: str = Field(..., validation_alias=_SOURCE_ALIASES)
    options: ValidateOptions = Field(default_factory=ValidateOptions)


class BulkFixRequest(BaseModel):
    model_config = _SHARED_CONFIG

    source_text: str = Field(..., validation_alias=_SOURCE_ALIASES)
    warnings: List[Diagnostic] = Field(default_factory=list)
    fix_types: Union[FixMode, List[str]] = Field(default=FixMode.ALL)
    options: ValidateOptions = Field(default_factory=ValidateOptions)


class FixWarningRequest(BaseModel):
    model_config = _SHARED_CONFIG

    source_text: str = Field(..., validation_alias=_SOURCE_ALIASES)
    warning_id: str = Field(..., min_length=1)
    options: ValidateOptions = Field(default_factory=ValidateOptions)


# ---------------------------------------------------------------------------
# Engine configuration
# ---------------------------------------------------------------------------


class EngineConfig(BaseModel):
    """
    Tunables for one engine instance.

    Loaded from JSON/YAML by ``erdfix.service.load_config_file``; every
    field has a default so an empty mapping is a valid configuration.
    """

    model_config = _SHARED_CONFIG

    max_name_length: int = Field(
        default=50,
        ge=8,
        le=128,
        description="Ceiling for entity/attribute names (platform adds a prefix).",
    )
    detect_known_entities: bool = Field(
        default=True, description="Run known-entity detection by default."
    )
    reserved_entity_names: List[str] = Field(
        default_factory=list, description="Extra platform-reserved entity names."
    )
    reserved_attribute_names: List[str] = Field(
        default_factory=list, description="Extra platform-reserved attribute names."
    )
    known_entities: List[KnownEntityDefinition] = Field(
        default_factory=list, description="Extra registry definitions."
    )

    @field_validator("reserved_entity_names", "reserved_attribute_names")
    @classmethod
    def _strip_names(cls, v: List[str]) -> List[str]:
        cleaned: List[str] = [name.strip() for name in v if name and name.strip()]
        if len(cleaned) != len(v):
            logger.debug("Dropped %d blank reserved name(s).", len(v) - len(cleaned))
        return cleaned


# ---------------------------------------------------------------------------
# Module-level exports
# ---------------------------------------------------------------------------

__all__: List[str] = [
    "Cardinality",
    "Severity",
    "DiagnosticCategory",
    "FixMode",
    "MatchType",
    "Attribute",
    "Entity",
    "Relationship",
    "PrimaryKeyFixData",
    "AttributesFixData",
    "ForeignKeyFixData",
    "DuplicateAttributeFixData",
    "RelationshipFixData",
    "JunctionFixData",
    "MissingEntityFixData",
    "EntityRenameFixData",
    "AttributeRenameFixData",
    "PseudoTypeFixData",
    "FixData",
    "Diagnostic",
    "KnownEntityDefinition",
    "KnownEntityMatch",
    "KnownEntityDetection",
    "ParseResult",
    "ValidationReport",
    "ValidationSummary",
    "ValidationResponse",
    "FixOutcome",
    "AppliedFix",
    "FailedFix",
    "BulkFixSummary",
    "BulkFixResult",
    "IndividualFixResult",
    "ValidateOptions",
    "ValidateRequest",
    "BulkFixRequest",
    "FixWarningRequest",
    "EngineConfig",
]

logger.debug("erdfix.models loaded — %d public symbols.", len(__all__))
