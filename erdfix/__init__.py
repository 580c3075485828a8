# File: erdfix/__init__.py
"""
NexaFlow ERDFix — ERD Validation & Auto-Remediation Engine
============================================================

Validates Mermaid ``erDiagram`` sources produced by an AI assistant or a
human, reports structured diagnostics with stable content-derived ids, and
rewrites the diagram text to resolve the fixable ones.

Architecture overview::

    ┌──────────────┐     ┌──────────────────────┐     ┌──────────────┐
    │ CLI / HTTP   │────▶│ ERDValidationService │────▶│   fixers     │
    │ (cli, api)   │     │     (service.py)     │     │ (fixers.py)  │
    └──────────────┘     └──────────┬───────────┘     └──────┬───────┘
                                    │                        │
              ┌──────────┬──────────┼──────────┬─────────────┤
              ▼          ▼          ▼          ▼             ▼
         ┌────────┐ ┌──────────┐ ┌────────┐ ┌────────┐ ┌────────────┐
         │ parser │ │validators│ │ naming │ │registry│ │spans/normal│
         └────────┘ └──────────┘ └────────┘ └────────┘ └────────────┘

Usage::

    # As a library
    from erdfix import ERDValidationService, FixMode
    service = ERDValidationService()
    response = service.validate(source)
    result = service.bulk_fix(source, response.warnings, FixMode.AUTO_FIXABLE_ONLY)

    # From the command line
    python -m erdfix --diagram model.mmd --fix autoFixableOnly -o fixed.mmd

Public API:
    - ERDValidationService — validate / bulk_fix / fix_warning
    - MermaidERDParser     — diagram source → entities and relationships
    - KnownEntityRegistry  — platform entity catalogue
    - EngineConfig         — engine settings model
"""

from __future__ import annotations

__version__: str = "1.0.0"
__author__: str = "NexaFlow Team"
__license__: str = "MIT"

from erdfix.models import (
    AppliedFix,
    Attribute,
    BulkFixResult,
    Cardinality,
    Diagnostic,
    DiagnosticCategory,
    EngineConfig,
    Entity,
    FailedFix,
    FixMode,
    IndividualFixResult,
    KnownEntityDefinition,
    KnownEntityDetection,
    ParseResult,
    Relationship,
    Severity,
    ValidationResponse,
)
from erdfix.parser import MermaidERDParser, parse_erd
from erdfix.registry import KnownEntityRegistry
from erdfix.validators import ValidationResult, validate_entity_structure, analyze_relationships
from erdfix.naming import NamingValidator, validate_naming
from erdfix.normalizer import normalize_syntax
from erdfix.fixers import apply_fix
from erdfix.utils import Timer, to_snake_case, to_pascal_case, to_camel_case
from erdfix.service import (
    ERDValidationService,
    bulk_fix,
    fix_warning,
    load_config_file,
    validate_erd,
)

# ---------------------------------------------------------------------------
# Public API surface
# ---------------------------------------------------------------------------

__all__: list[str] = [
    # Version info
    "__version__",
    "__author__",
    "__license__",
    # Service
    "ERDValidationService",
    "validate_erd",
    "bulk_fix",
    "fix_warning",
    "load_config_file",
    # Models
    "AppliedFix",
    "Attribute",
    "BulkFixResult",
    "Cardinality",
    "Diagnostic",
    "DiagnosticCategory",
    "EngineConfig",
    "Entity",
    "FailedFix",
    "FixMode",
    "IndividualFixResult",
    "KnownEntityDefinition",
    "KnownEntityDetection",
    "ParseResult",
    "Relationship",
    "Severity",
    "ValidationResponse",
    # Pipeline pieces
    "MermaidERDParser",
    "parse_erd",
    "KnownEntityRegistry",
    "ValidationResult",
    "validate_entity_structure",
    "analyze_relationships",
    "NamingValidator",
    "validate_naming",
    "normalize_syntax",
    "apply_fix",
    # Utilities
    "Timer",
    "to_snake_case",
    "to_pascal_case",
    "to_camel_case",
]
