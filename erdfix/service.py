# File: erdfix/service.py
"""
NexaFlow ERDFix - Validation Service & Bulk Fix Orchestrator
==============================================================
The engine's three entry points:

    validate(source)                    → ValidationResponse
    bulk_fix(source, warnings, mode)    → BulkFixResult
    fix_warning(source, warning_id)     → IndividualFixResult

Validation pipeline::

    1. Parse source into entities, relationships and parser warnings.
    2. Detect known platform entities (degrades, never fails).
    3. Structural validation; fatal errors stop here.
    4. Relationship analysis and naming validation.
    5. Known-entity suppression pass.
    6. Assign content-derived warning ids.

Every call is a pure function of its input text and options: the service
holds only immutable collaborators (parser, registry, naming rules) and
never remembers a previous call. A later ``fix_warning`` call finds its
diagnostic again by re-validating and matching the content-derived id.

Error handling strategy:
    - Parse and structural failures are reported in the response, not raised.
    - A failing fixer is recorded and the batch continues.
    - Registry failures degrade to an empty, low-confidence detection.
    - Only file loading raises (``FileNotFoundError`` / ``ValueError``).
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Set, Union

import yaml

from erdfix.fixers import apply_fix, has_fixer, order_for_fixing, record_rename, retarget
from erdfix.identity import assign_warning_ids, is_well_formed_warning_id
from erdfix.models import (
    AppliedFix,
    BulkFixResult,
    BulkFixSummary,
    Diagnostic,
    DiagnosticCategory,
    EngineConfig,
    Entity,
    FailedFix,
    FixMode,
    FixOutcome,
    IndividualFixResult,
    KnownEntityDetection,
    ParseResult,
    Relationship,
    Severity,
    ValidationReport,
    ValidationResponse,
    ValidationSummary,
)
from erdfix.naming import NamingValidator
from erdfix.normalizer import normalize_syntax
from erdfix.parser import MermaidERDParser
from erdfix.registry import KnownEntityRegistry
from erdfix.utils import Timer
from erdfix.validators import (
    ValidationResult,
    analyze_relationships,
    run_validators,
    validate_entity_structure,
)

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("erdfix.service")

KNOWN_ENTITY_NOTE: str = (
    "(Known platform entity: managed by the platform registry, not auto-fixed.)"
)

FixTypes = Union[FixMode, str, Sequence[str]]


# ---------------------------------------------------------------------------
# File loader helpers
# ---------------------------------------------------------------------------


def _load_json_file(path: Path) -> Any:
    """Load and parse a JSON file. Raises ValueError on parse errors."""
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid JSON in {path}: {exc}") from exc


def _load_yaml_file(path: Path) -> Any:
    """Load and parse a YAML file. Raises ValueError on parse errors."""
    try:
        return yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise ValueError(f"Invalid YAML in {path}: {exc}") from exc


def _check_file(path: Path, what: str) -> None:
    if not path.exists():
        raise FileNotFoundError(f"{what} not found: {path}")
    if not path.is_file():
        raise ValueError(f"{what} path is not a file: {path}")


def load_config_file(path: Path) -> EngineConfig:
    """
    Load an ``EngineConfig`` from a JSON or YAML file.

    The settings may sit under a top-level ``engine`` key or make up the
    whole mapping. Dispatches on the file extension; unknown extensions try
    JSON first, then YAML.

    Raises:
        FileNotFoundError: If the file doesn't exist.
        ValueError: If the file can't be parsed or fails model validation.
    """
    path = Path(path)
    _check_file(path, "Config file")

    suffix: str = path.suffix.lower()
    if suffix in (".yaml", ".yml"):
        raw: Any = _load_yaml_file(path)
    elif suffix == ".json":
        raw = _load_json_file(path)
    else:
        logger.info("Unknown extension '%s' — trying JSON then YAML.", suffix)
        try:
            raw = _load_json_file(path)
        except ValueError:
            raw = _load_yaml_file(path)

    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ValueError(
            f"Expected a mapping at top level of {path}, got {type(raw).__name__}."
        )

    data: Any = raw.get("engine", raw)
    if not isinstance(data, dict):
        raise ValueError(f"'engine' section of {path} must be a mapping.")

    config: EngineConfig = EngineConfig.model_validate(data)
    logger.info("Loaded engine config from %s.", path)
    return config


def read_diagram_file(path: Path) -> str:
    """Read diagram source text (UTF-8)."""
    path = Path(path)
    _check_file(path, "Diagram file")
    return path.read_text(encoding="utf-8")


# ---------------------------------------------------------------------------
# Known-entity suppression pass
# ---------------------------------------------------------------------------


def flag_known_entities(entities: Iterable[Entity], known: Set[str]) -> List[Entity]:
    """Copies of *entities* with ``is_known_entity`` set from *known*."""
    flagged: List[Entity] = []
    for entity in entities:
        copy: Entity = entity.model_copy(deep=True)
        copy.is_known_entity = entity.name in known
        flagged.append(copy)
    return flagged


def suppress_known_entities(
    diagnostics: Iterable[Diagnostic],
    known: Set[str],
) -> List[Diagnostic]:
    """
    Make every diagnostic about a known entity non-fixable and say why.

    The target is the diagnostic's entity, or its fix data's entity name.
    """
    result: List[Diagnostic] = []
    suppressed: int = 0
    for diag in diagnostics:
        if diag.target_entity in known:
            suppressed += 1
            diag = diag.model_copy(update={
                "auto_fixable": False,
                "known_entity": True,
                "message": f"{diag.message} {KNOWN_ENTITY_NOTE}",
            })
        result.append(diag)
    if suppressed:
        logger.debug("Suppressed %d diagnostic(s) on known entities.", suppressed)
    return result


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


class ERDValidationService:
    """
    Validation and auto-remediation engine.

    Usage::

        service = ERDValidationService()
        response = service.validate(source)
        result = service.bulk_fix(source, response.warnings, FixMode.AUTO_FIXABLE_ONLY)
        print(result.fixed_content)

    The service is reusable and holds no per-call state.
    """

    def __init__(
        self,
        *,
        parser: Optional[MermaidERDParser] = None,
        registry: Optional[KnownEntityRegistry] = None,
        config: Optional[EngineConfig] = None,
    ) -> None:
        self._config: EngineConfig = config or EngineConfig()
        self._parser: MermaidERDParser = parser or MermaidERDParser()
        self._registry: KnownEntityRegistry = registry or KnownEntityRegistry(
            extra=self._config.known_entities
        )
        self._naming: NamingValidator = NamingValidator(self._config)

        logger.debug(
            "ERDValidationService initialised: max_name_length=%d, detect_known_entities=%s, "
            "%d registry definitions.",
            self._config.max_name_length,
            self._config.detect_known_entities,
            len(self._registry),
        )

    @property
    def config(self) -> EngineConfig:
        return self._config

    # -----------------------------------------------------------------
    # Public: validate
    # -----------------------------------------------------------------

    def validate(
        self,
        source_text: str,
        *,
        detect_known_entities: Optional[bool] = None,
    ) -> ValidationResponse:
        """Parse and validate *source_text*. Never raises for bad input."""
        detect: bool = (
            self._config.detect_known_entities
            if detect_known_entities is None
            else detect_known_entities
        )

        with Timer("validate.parse"):
            parsed: ParseResult = self._step_parse(source_text)

        if not parsed.ok:
            logger.info("Validation stopped: diagram could not be parsed.")
            return ValidationResponse(
                success=False,
                message="ERD parsing failed.",
                validation=ValidationReport(is_valid=False, errors=list(parsed.errors)),
            )

        with Timer("validate.detect"):
            detection: KnownEntityDetection = self._step_detect(parsed.entities, detect)

        known: Set[str] = set(detection.matched_names)
        entities: List[Entity] = flag_known_entities(parsed.entities, known)
        relationships: List[Relationship] = list(parsed.relationships)
        pre_warnings: List[Diagnostic] = list(parsed.warnings)
        if detection.error:
            pre_warnings.append(_detection_failed(detection.error))

        with Timer("validate.structure"):
            structure: ValidationResult = validate_entity_structure(entities, relationships)

        if not structure.is_valid:
            warnings: List[Diagnostic] = self._finalise(pre_warnings, known)
            logger.info(
                "Validation failed with %d structural error(s).", structure.error_count
            )
            return ValidationResponse(
                success=False,
                message="ERD structure validation failed.",
                validation=ValidationReport(
                    is_valid=False, errors=structure.errors, warnings=warnings
                ),
                entities=entities,
                relationships=relationships,
                warnings=warnings,
                corrected_erd=parsed.corrected_erd,
                known_entity_detection=detection,
                summary=_summary(entities, relationships, warnings, detection),
            )

        with Timer("validate.rules"):
            rules: ValidationResult = run_validators(
                entities, relationships, (analyze_relationships, self._naming)
            )

        warnings = self._finalise(pre_warnings + structure.diagnostics + rules.diagnostics, known)

        logger.info(
            "Validation complete: %d entities, %d relationships, %d diagnostic(s).",
            len(entities),
            len(relationships),
            len(warnings),
        )
        return ValidationResponse(
            success=True,
            message=f"ERD validation completed with {len(warnings)} warning(s).",
            validation=ValidationReport(is_valid=True, errors=[], warnings=warnings),
            entities=entities,
            relationships=relationships,
            warnings=warnings,
            corrected_erd=parsed.corrected_erd,
            known_entity_detection=detection,
            summary=_summary(entities, relationships, warnings, detection),
        )

    # -----------------------------------------------------------------
    # Public: bulk fix
    # -----------------------------------------------------------------

    def bulk_fix(
        self,
        source_text: str,
        warnings: Optional[Sequence[Diagnostic]] = None,
        fix_types: FixTypes = FixMode.ALL,
        *,
        detect_known_entities: Optional[bool] = None,
    ) -> BulkFixResult:
        """
        Apply every selected fix in priority order, normalize once and
        re-validate once.

        When *warnings* is ``None`` the source is validated first and its
        diagnostics are used.
        """
        if warnings is None:
            warnings = self.validate(
                source_text, detect_known_entities=detect_known_entities
            ).warnings

        selected: List[Diagnostic] = select_for_fixing(warnings, fix_types)
        logger.info(
            "Bulk fix: %d of %d diagnostic(s) selected (mode=%s).",
            len(selected),
            len(warnings),
            _mode_label(fix_types),
        )

        content: str = source_text
        applied: List[AppliedFix] = []
        failed: List[FailedFix] = []
        renamed: Dict[str, str] = {}

        with Timer("bulk_fix.apply"):
            for diag in order_for_fixing(selected):
                target: Diagnostic = retarget(diag, renamed)
                outcome: FixOutcome = apply_fix(content, target)
                if not outcome.success:
                    failed.append(FailedFix(
                        warning_id=diag.id,
                        warning_type=diag.type,
                        entity=diag.target_entity,
                        error=outcome.error or "Unknown error.",
                    ))
                    continue
                if outcome.content is not None:
                    content = outcome.content
                    record_rename(target, renamed)
                applied.append(_applied(diag, outcome))

        with Timer("bulk_fix.normalize"):
            content = normalize_syntax(content).content

        with Timer("bulk_fix.revalidate"):
            final: ValidationResponse = self.validate(
                content, detect_known_entities=detect_known_entities
            )

        summary: BulkFixSummary = BulkFixSummary(
            total_warnings=len(warnings),
            selected_warnings=len(selected),
            fixes_applied=len(applied),
            fixes_failed=len(failed),
            skipped_warnings=len(warnings) - len(selected),
            remaining_warning_count=len(final.warnings),
        )
        if failed:
            logger.warning("Bulk fix: %d fix(es) failed.", len(failed))
        logger.info(
            "Bulk fix complete: %d applied, %d failed, %d remaining.",
            summary.fixes_applied,
            summary.fixes_failed,
            summary.remaining_warning_count,
        )
        return BulkFixResult(
            success=not failed,
            message=(
                f"Applied {len(applied)} fix(es); {len(failed)} failed; "
                f"{len(final.warnings)} warning(s) remain."
            ),
            fixed_content=content,
            applied_fixes=applied,
            failed_fixes=failed,
            remaining_warnings=final.warnings,
            summary=summary,
        )

    # -----------------------------------------------------------------
    # Public: individual fix
    # -----------------------------------------------------------------

    def fix_warning(
        self,
        source_text: str,
        warning_id: str,
        *,
        detect_known_entities: Optional[bool] = None,
    ) -> IndividualFixResult:
        """
        Fix one diagnostic identified by the id an earlier validation issued.

        A well-formed id that no longer matches any diagnostic is treated as
        already resolved; a malformed id is an error.
        """
        if not is_well_formed_warning_id(warning_id):
            logger.info("fix_warning: malformed id %r.", warning_id)
            return IndividualFixResult(
                success=False,
                message=f"Warning '{warning_id}' not found: malformed warning id.",
            )

        current: ValidationResponse = self.validate(
            source_text, detect_known_entities=detect_known_entities
        )
        if not current.entities and current.validation.errors:
            return IndividualFixResult(
                success=False,
                message=(
                    "Cannot fix warning: the diagram could not be parsed "
                    f"({'; '.join(current.validation.errors)})."
                ),
            )

        diag: Optional[Diagnostic] = current.find_warning(warning_id)
        if diag is None:
            logger.info("fix_warning: %s is not present; treating as resolved.", warning_id)
            return IndividualFixResult(
                success=True,
                message=f"Warning '{warning_id}' is not present in the current diagram; nothing to fix.",
                fixed_content=source_text,
                remaining_warnings=current.warnings,
                already_resolved=True,
            )

        if not diag.auto_fixable:
            return IndividualFixResult(
                success=False,
                message=f"Warning '{warning_id}' ({diag.type}) is not auto-fixable.",
                remaining_warnings=current.warnings,
            )

        with Timer("fix_warning.apply"):
            outcome: FixOutcome = apply_fix(source_text, diag)
        if not outcome.success:
            return IndividualFixResult(
                success=False,
                message=f"Failed to fix warning '{warning_id}': {outcome.error}",
                remaining_warnings=current.warnings,
            )

        content: str = normalize_syntax(
            outcome.content if outcome.content is not None else source_text
        ).content
        final: ValidationResponse = self.validate(
            content, detect_known_entities=detect_known_entities
        )
        logger.info("fix_warning: %s fixed (%s).", warning_id, diag.type)
        return IndividualFixResult(
            success=True,
            message=outcome.applied_fix_description or f"Fixed warning '{warning_id}'.",
            fixed_content=content,
            applied_fix=_applied(diag, outcome),
            remaining_warnings=final.warnings,
        )

    # -----------------------------------------------------------------
    # Pipeline steps
    # -----------------------------------------------------------------

    def _step_parse(self, source_text: str) -> ParseResult:
        if not isinstance(source_text, str):
            return ParseResult(errors=["ERD content must be a string."])
        try:
            return self._parser.parse(source_text)
        except Exception as exc:
            logger.exception("Parser raised on %d characters of input.", len(source_text))
            return ParseResult(errors=[f"Failed to parse ERD content: {exc}"])

    def _step_detect(self, entities: Sequence[Entity], enabled: bool) -> KnownEntityDetection:
        if not enabled:
            return KnownEntityDetection.degraded(len(entities))
        try:
            return self._registry.detect(entities)
        except Exception as exc:
            logger.warning("Known-entity detection failed: %s", exc)
            return KnownEntityDetection.degraded(len(entities), str(exc))

    def _finalise(self, diagnostics: List[Diagnostic], known: Set[str]) -> List[Diagnostic]:
        return assign_warning_ids(suppress_known_entities(diagnostics, known))


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def select_for_fixing(
    warnings: Sequence[Diagnostic],
    fix_types: FixTypes = FixMode.ALL,
) -> List[Diagnostic]:
    """
    Diagnostics a bulk fix will attempt.

    ``autoFixableOnly``: every auto-fixable diagnostic.
    ``all``: every diagnostic with a fixer that is not on a known entity.
    A list of types: ``all`` restricted to those types. A single string
    that is not a mode name counts as a one-element list.
    """
    candidates: List[Diagnostic] = [
        w for w in warnings if has_fixer(w.type) and not w.known_entity
    ]
    if isinstance(fix_types, (FixMode, str)):
        mode: str = fix_types.value if isinstance(fix_types, FixMode) else fix_types
        if mode == FixMode.AUTO_FIXABLE_ONLY.value:
            return [w for w in warnings if w.auto_fixable]
        if mode == FixMode.ALL.value:
            return candidates
        return [w for w in candidates if w.type == mode]
    wanted: Set[str] = set(fix_types)
    return [w for w in candidates if w.type in wanted]


def _mode_label(fix_types: FixTypes) -> str:
    if isinstance(fix_types, FixMode):
        return fix_types.value
    if isinstance(fix_types, str):
        return fix_types
    return ",".join(fix_types)


def _applied(diag: Diagnostic, outcome: FixOutcome) -> AppliedFix:
    return AppliedFix(
        warning_id=diag.id,
        warning_type=diag.type,
        entity=diag.target_entity,
        description=outcome.applied_fix_description or "",
        changed=outcome.changed,
        requires_manual_review=outcome.requires_manual_review,
    )


def _detection_failed(error: str) -> Diagnostic:
    return Diagnostic(
        type="known_entity_detection_failed",
        category=DiagnosticCategory.SYSTEM,
        severity=Severity.INFO,
        message=f"Known-entity detection is unavailable: {error}",
        suggestion="Entities will be treated as custom entities.",
    )


def _summary(
    entities: Sequence[Entity],
    relationships: Sequence[Relationship],
    warnings: Sequence[Diagnostic],
    detection: KnownEntityDetection,
) -> ValidationSummary:
    return ValidationSummary(
        entity_count=len(entities),
        relationship_count=len(relationships),
        warning_count=len(warnings),
        known_entity_match_count=len(detection.matches),
    )


# ---------------------------------------------------------------------------
# Module-level convenience wrappers
# ---------------------------------------------------------------------------


def validate_erd(source_text: str, **options: Any) -> ValidationResponse:
    """``ERDValidationService().validate(...)`` with default configuration."""
    return ERDValidationService().validate(source_text, **options)


def bulk_fix(
    source_text: str,
    warnings: Optional[Sequence[Diagnostic]] = None,
    fix_types: FixTypes = FixMode.ALL,
    **options: Any,
) -> BulkFixResult:
    return ERDValidationService().bulk_fix(source_text, warnings, fix_types, **options)


def fix_warning(source_text: str, warning_id: str, **options: Any) -> IndividualFixResult:
    return ERDValidationService().fix_warning(source_text, warning_id, **options)


# ---------------------------------------------------------------------------
# Module-level exports
# ---------------------------------------------------------------------------

__all__: List[str] = [
    "KNOWN_ENTITY_NOTE",
    "load_config_file",
    "read_diagram_file",
    "flag_known_entities",
    "suppress_known_entities",
    "select_for_fixing",
    "ERDValidationService",
    "validate_erd",
    "bulk_fix",
    "fix_warning",
]

logger.debug("erdfix.service loaded — %d public symbols.", len(__all__))
