"""
tests/test_service.py
Integration tests for erdfix.service.

Tests cover:
- validate(): success, parse failure, structural failure, determinism, ids
- bulk_fix(): worked example end to end, selection modes, renames in a batch
- fix_warning(): fixed, already resolved, malformed id, not auto-fixable
- Known-entity suppression and degraded detection
- Config file loading (YAML / JSON / errors)
"""

from __future__ import annotations

import json
import pathlib

import pytest

from erdfix.models import Entity, FixMode, KnownEntityDetection
from erdfix.registry import KnownEntityRegistry
from erdfix.service import (
    KNOWN_ENTITY_NOTE,
    ERDValidationService,
    load_config_file,
    read_diagram_file,
    select_for_fixing,
    validate_erd,
)
from tests.conftest import diagram


def _types(diagnostics) -> list:
    return sorted(d.type for d in diagnostics)


class _OfflineRegistry(KnownEntityRegistry):
    def detect(self, entities) -> KnownEntityDetection:
        raise RuntimeError("registry offline")


# ===========================================================================
# validate
# ===========================================================================


class TestValidate:
    """Tests for ERDValidationService.validate."""

    def test_worked_example(self, service: ERDValidationService, worked_example: str) -> None:
        response = service.validate(worked_example)
        assert response.success
        assert response.validation.is_valid
        assert _types(response.warnings) == [
            "duplicate_attribute",
            "duplicate_relationship",
            "missing_foreign_key",
        ]
        assert response.message == "ERD validation completed with 3 warning(s)."
        assert response.summary.entity_count == 2
        assert response.summary.relationship_count == 2
        assert response.summary.warning_count == 3

    def test_missing_foreign_key_targets_many_side(
        self, service: ERDValidationService, worked_example: str
    ) -> None:
        fk = [w for w in service.validate(worked_example).warnings if w.type == "missing_foreign_key"][0]
        assert fk.entity == "Department"
        assert fk.fix_data.column_name == "employee_id"

    def test_clean_source_has_no_warnings(self, service: ERDValidationService, clean_source: str) -> None:
        response = service.validate(clean_source)
        assert response.success
        assert response.warnings == []
        assert response.corrected_erd == clean_source

    def test_ids_are_unique_and_well_formed(self, service: ERDValidationService, worked_example: str) -> None:
        ids = [w.id for w in service.validate(worked_example).warnings]
        assert len(ids) == len(set(ids))
        assert all(i.startswith("warning_") and i[8:].isdigit() for i in ids), ids

    def test_is_deterministic(self, worked_example: str) -> None:
        first = ERDValidationService().validate(worked_example)
        second = ERDValidationService().validate(worked_example)
        assert [w.id for w in first.warnings] == [w.id for w in second.warnings]
        assert first.model_dump() == second.model_dump()

    def test_parse_failure(self, service: ERDValidationService) -> None:
        response = service.validate("")
        assert not response.success
        assert response.message == "ERD parsing failed."
        assert response.validation.errors == ["ERD content is empty."]
        assert response.entities == []

    def test_non_string_input(self, service: ERDValidationService) -> None:
        response = service.validate(None)  # type: ignore[arg-type]
        assert not response.success
        assert response.validation.errors == ["ERD content must be a string."]

    def test_structural_failure_keeps_parser_warnings(
        self, service: ERDValidationService, dangling_source: str
    ) -> None:
        response = service.validate(dangling_source)
        assert not response.success
        assert response.message == "ERD structure validation failed."
        assert response.validation.errors == [
            "Relationship references non-existent entity: 'Shelf'"
        ]
        assert _types(response.warnings) == ["missing_entity"]
        assert response.warnings[0].id

    def test_no_entities(self, service: ERDValidationService) -> None:
        response = service.validate("erDiagram\n")
        assert not response.success
        assert response.validation.errors == ["No entities found in ERD."]

    def test_convenience_wrapper(self, worked_example: str) -> None:
        assert validate_erd(worked_example).summary.warning_count == 3

    def test_serialises_with_camel_case_keys(self, service: ERDValidationService, worked_example: str) -> None:
        data = service.validate(worked_example).model_dump(mode="json", by_alias=True)
        assert "correctedERD" in data
        assert "knownEntityDetection" in data
        assert "autoFixable" in data["warnings"][0]
        assert "isKnownEntity" in data["entities"][0]


# ===========================================================================
# Known entities
# ===========================================================================


class TestKnownEntities:
    """Tests for detection and the suppression pass."""

    def test_diagnostics_on_known_entities_are_suppressed(
        self, service: ERDValidationService, known_entity_source: str
    ) -> None:
        response = service.validate(known_entity_source)
        assert response.success
        assert [w.type for w in response.warnings] == ["missing_primary_key"]
        pk = response.warnings[0]
        assert pk.known_entity
        assert not pk.auto_fixable
        assert pk.message.endswith(KNOWN_ENTITY_NOTE)
        assert response.known_entity_detection.confidence == "high"
        assert response.known_entity_detection.matched_names == ["Account"]
        assert response.entities[0].is_known_entity
        assert not response.entities[1].is_known_entity

    def test_known_entity_is_not_fixed(
        self, service: ERDValidationService, known_entity_source: str
    ) -> None:
        warning = service.validate(known_entity_source).warnings[0]
        result = service.fix_warning(known_entity_source, warning.id)
        assert not result.success
        assert result.message == f"Warning '{warning.id}' (missing_primary_key) is not auto-fixable."

        bulk = service.bulk_fix(known_entity_source)
        assert bulk.summary.selected_warnings == 0
        assert bulk.summary.skipped_warnings == 1
        assert bulk.applied_fixes == []

    def test_detection_disabled_per_call(
        self, service: ERDValidationService, known_entity_source: str
    ) -> None:
        response = service.validate(known_entity_source, detect_known_entities=False)
        pk = response.warnings[0]
        assert pk.auto_fixable
        assert not pk.known_entity
        assert response.known_entity_detection.matches == []
        assert response.known_entity_detection.error is None

    def test_known_entities_skip_naming_rules(self, service: ERDValidationService) -> None:
        source = "erDiagram\n    team { string id PK }\n"
        assert service.validate(source).warnings == []
        disabled = service.validate(source, detect_known_entities=False)
        assert [w.type for w in disabled.warnings] == ["reserved_entity_name"]

    def test_detection_disabled_by_config(self, known_entity_source: str) -> None:
        from erdfix.models import EngineConfig

        service = ERDValidationService(config=EngineConfig(detect_known_entities=False))
        assert service.validate(known_entity_source).warnings[0].auto_fixable

    def test_registry_failure_degrades(self, worked_example: str) -> None:
        service = ERDValidationService(registry=_OfflineRegistry())
        response = service.validate(worked_example)
        assert response.success
        assert response.known_entity_detection.error == "registry offline"
        assert response.known_entity_detection.confidence == "low"
        failed = [w for w in response.warnings if w.type == "known_entity_detection_failed"]
        assert len(failed) == 1
        assert failed[0].message == "Known-entity detection is unavailable: registry offline"
        assert not failed[0].auto_fixable

    def test_extra_known_entities_from_config(self) -> None:
        from erdfix.models import EngineConfig, KnownEntityDefinition

        config = EngineConfig(known_entities=[
            KnownEntityDefinition(logical_name="warehouse", display_name="Warehouse")
        ])
        source = "erDiagram\n    Warehouse { string label }\n"
        pk = ERDValidationService(config=config).validate(source).warnings[0]
        assert pk.known_entity


# ===========================================================================
# bulk_fix
# ===========================================================================


class TestBulkFix:
    """Tests for ERDValidationService.bulk_fix."""

    def test_worked_example_end_to_end(self, service: ERDValidationService, worked_example: str) -> None:
        warnings = service.validate(worked_example).warnings
        result = service.bulk_fix(worked_example, warnings, FixMode.AUTO_FIXABLE_ONLY)
        assert result.success
        assert result.failed_fixes == []
        assert len(result.applied_fixes) == 3
        assert result.remaining_warnings == []
        assert result.message == "Applied 3 fix(es); 0 failed; 0 warning(s) remain."
        assert result.fixed_content.count("||--o{") == 1
        assert "string employee_id FK" in result.fixed_content
        assert result.fixed_content.count("string name") == 1
        assert service.validate(result.fixed_content).warnings == []

    def test_fixes_apply_in_priority_order(self, service: ERDValidationService, worked_example: str) -> None:
        result = service.bulk_fix(worked_example)
        assert [f.warning_type for f in result.applied_fixes] == [
            "missing_foreign_key",
            "duplicate_relationship",
            "duplicate_attribute",
        ]

    def test_is_idempotent(self, service: ERDValidationService, worked_example: str) -> None:
        once = service.bulk_fix(worked_example)
        twice = service.bulk_fix(once.fixed_content)
        assert twice.applied_fixes == []
        assert twice.fixed_content == once.fixed_content

    def test_is_deterministic(self, worked_example: str) -> None:
        a = ERDValidationService().bulk_fix(worked_example)
        b = ERDValidationService().bulk_fix(worked_example)
        assert a.fixed_content == b.fixed_content

    def test_restricted_to_types(self, service: ERDValidationService, worked_example: str) -> None:
        result = service.bulk_fix(worked_example, None, ["duplicate_relationship"])
        assert [f.warning_type for f in result.applied_fixes] == ["duplicate_relationship"]
        assert result.summary.total_warnings == 3
        assert result.summary.skipped_warnings == 2
        assert _types(result.remaining_warnings) == ["duplicate_attribute", "missing_foreign_key"]

    def test_dangling_relationship_gets_placeholder(
        self, service: ERDValidationService, dangling_source: str
    ) -> None:
        result = service.bulk_fix(dangling_source)
        assert result.success
        assert "Shelf {" in result.fixed_content
        final = service.validate(result.fixed_content)
        assert final.success
        assert _types(final.warnings) == ["missing_foreign_key"]

    def test_rename_and_foreign_key_in_one_batch(self, service: ERDValidationService) -> None:
        source = diagram(
            """
            erDiagram
                Role { string id PK }
                Shelf { string id PK }
                Role ||--o{ Shelf : "r"
            """
        )
        result = service.bulk_fix(source)
        assert result.success, result.failed_fixes
        assert "CustomRole {" in result.fixed_content
        assert "CustomRole ||--o{ Shelf" in result.fixed_content
        assert result.remaining_warnings == []

    def test_sql_rename_keeps_foreign_key_fix(self, service: ERDValidationService) -> None:
        source = diagram(
            """
            erDiagram
                Order { string id PK }
                Line { string id PK }
                Order ||--o{ Line : "has"
            """
        )
        result = service.bulk_fix(source, None, FixMode.AUTO_FIXABLE_ONLY)
        assert result.success, result.failed_fixes
        assert [f.warning_type for f in result.applied_fixes] == [
            "missing_foreign_key",
            "sql_reserved_entity_name",
        ]
        assert 'string order_id FK "Foreign key to OrderEntity"' in result.fixed_content
        assert result.remaining_warnings == [], [w.message for w in result.remaining_warnings]
        again = service.bulk_fix(result.fixed_content)
        assert again.applied_fixes == []
        assert again.fixed_content.count("_id FK") == 1

    def test_case_rename_runs_before_junction(self, service: ERDValidationService) -> None:
        source = diagram(
            """
            erDiagram
                student { string id PK }
                Course { string id PK }
                student }o--o{ Course : "enrolls"
            """
        )
        result = service.bulk_fix(source, None, FixMode.AUTO_FIXABLE_ONLY)
        assert result.success, result.failed_fixes
        assert [f.warning_type for f in result.applied_fixes] == [
            "entity_naming_convention",
            "many_to_many",
        ]
        assert "StudentCourse {" in result.fixed_content
        assert 'FK "Foreign key to Student"' in result.fixed_content
        assert "student" not in result.fixed_content.replace("student_id", "")
        assert result.remaining_warnings == [], [w.message for w in result.remaining_warnings]

    def test_junction_follows_renamed_entity(self, service: ERDValidationService) -> None:
        source = diagram(
            """
            erDiagram
                user-profile { string id PK }
                Course { string id PK }
                user-profile }o--o{ Course : "takes"
            """
        )
        result = service.bulk_fix(source)
        assert result.success, result.failed_fixes
        assert "UserProfileCourse {" in result.fixed_content
        assert "user-profile" not in result.fixed_content
        assert result.remaining_warnings == []

    def test_failed_fix_is_recorded_and_batch_continues(
        self, service: ERDValidationService, worked_example: str
    ) -> None:
        warnings = service.validate(worked_example).warnings
        stale = [
            w.model_copy(update={"fix_data": w.fix_data.model_copy(update={"entity_name": "Ghost"})})
            if w.type == "duplicate_attribute" else w
            for w in warnings
        ]
        result = service.bulk_fix(worked_example, stale)
        assert not result.success
        assert [f.warning_type for f in result.failed_fixes] == ["duplicate_attribute"]
        assert len(result.applied_fixes) == 2
        assert result.message.startswith("Applied 2 fix(es); 1 failed;")

    def test_empty_warning_list_changes_nothing(self, service: ERDValidationService, clean_source: str) -> None:
        result = service.bulk_fix(clean_source, [])
        assert result.fixed_content == clean_source
        assert result.summary.total_warnings == 0


class TestSelectForFixing:
    """Tests for select_for_fixing."""

    def test_modes(self, service: ERDValidationService, worked_example: str) -> None:
        warnings = service.validate(worked_example).warnings
        assert len(select_for_fixing(warnings, FixMode.ALL)) == 3
        assert len(select_for_fixing(warnings, "autoFixableOnly")) == 3
        assert len(select_for_fixing(warnings, ["duplicate_relationship"])) == 1
        assert len(select_for_fixing(warnings, "duplicate_relationship")) == 1
        assert select_for_fixing(warnings, []) == []

    def test_all_excludes_unfixable_types(self, service: ERDValidationService) -> None:
        source = "erDiagram\n    Node { string id PK }\n    Node ||--o{ Node : \"parent\"\n"
        warnings = service.validate(source).warnings
        assert [w.type for w in warnings] == ["self_referencing_relationship"]
        assert len(select_for_fixing(warnings, FixMode.ALL)) == 1
        assert select_for_fixing(warnings, FixMode.AUTO_FIXABLE_ONLY) == []


# ===========================================================================
# fix_warning
# ===========================================================================


class TestFixWarning:
    """Tests for ERDValidationService.fix_warning."""

    def test_fixes_one_warning(self, service: ERDValidationService, worked_example: str) -> None:
        warnings = service.validate(worked_example).warnings
        target = [w for w in warnings if w.type == "duplicate_attribute"][0]
        result = service.fix_warning(worked_example, target.id)
        assert result.success
        assert result.applied_fix.warning_type == "duplicate_attribute"
        assert result.applied_fix.warning_id == target.id
        assert _types(result.remaining_warnings) == ["duplicate_relationship", "missing_foreign_key"]

        again = service.fix_warning(result.fixed_content, target.id)
        assert again.success
        assert again.already_resolved
        assert again.fixed_content == result.fixed_content

    def test_other_ids_survive_a_fix(self, service: ERDValidationService, worked_example: str) -> None:
        before = {w.type: w.id for w in service.validate(worked_example).warnings}
        result = service.fix_warning(worked_example, before["duplicate_attribute"])
        after = {w.type: w.id for w in result.remaining_warnings}
        assert after["duplicate_relationship"] == before["duplicate_relationship"]
        assert after["missing_foreign_key"] == before["missing_foreign_key"]

    def test_absent_id_is_already_resolved(self, service: ERDValidationService, clean_source: str) -> None:
        result = service.fix_warning(clean_source, "warning_123")
        assert result.success
        assert result.already_resolved
        assert result.fixed_content == clean_source

    def test_malformed_id(self, service: ERDValidationService, worked_example: str) -> None:
        result = service.fix_warning(worked_example, "nonsense")
        assert not result.success
        assert result.message == "Warning 'nonsense' not found: malformed warning id."

    def test_unparseable_source(self, service: ERDValidationService) -> None:
        result = service.fix_warning("", "warning_1")
        assert not result.success
        assert result.message == "Cannot fix warning: the diagram could not be parsed (ERD content is empty.)."

    def test_single_primary_key_fix(self, service: ERDValidationService) -> None:
        source = "erDiagram\n    Widget { string label }\n"
        warnings = service.validate(source).warnings
        assert [w.type for w in warnings] == ["missing_primary_key"]
        assert warnings[0].auto_fixable
        result = service.fix_warning(source, warnings[0].id)
        assert result.success
        assert result.remaining_warnings == []


# ===========================================================================
# Files
# ===========================================================================


class TestConfigFiles:
    """Tests for load_config_file and read_diagram_file."""

    def test_yaml_with_engine_section(self, tmp_path: pathlib.Path) -> None:
        path = tmp_path / "erdfix.yaml"
        path.write_text("engine:\n  maxNameLength: 20\n  reservedEntityNames: [Widget]\n", encoding="utf-8")
        config = load_config_file(path)
        assert config.max_name_length == 20
        assert config.reserved_entity_names == ["Widget"]

    def test_json_without_section(self, tmp_path: pathlib.Path) -> None:
        path = tmp_path / "erdfix.json"
        path.write_text(json.dumps({"detect_known_entities": False}), encoding="utf-8")
        assert load_config_file(path).detect_known_entities is False

    def test_empty_yaml_is_default(self, tmp_path: pathlib.Path) -> None:
        path = tmp_path / "empty.yml"
        path.write_text("", encoding="utf-8")
        assert load_config_file(path).max_name_length == 50

    def test_unknown_extension_falls_back_to_yaml(self, tmp_path: pathlib.Path) -> None:
        path = tmp_path / "erdfix.cfg"
        path.write_text("maxNameLength: 30\n", encoding="utf-8")
        assert load_config_file(path).max_name_length == 30

    @pytest.mark.parametrize(
        "text",
        [
            "engine: [unclosed",
            "- just\n- a list\n",
            "engine: 3\n",
            "maxNameLength: 3\n",
            "bogus: 1\n",
        ],
    )
    def test_invalid_config_raises_value_error(self, tmp_path: pathlib.Path, text: str) -> None:
        path = tmp_path / "bad.yaml"
        path.write_text(text, encoding="utf-8")
        with pytest.raises(ValueError):
            load_config_file(path)

    def test_missing_file(self, tmp_path: pathlib.Path) -> None:
        with pytest.raises(FileNotFoundError):
            load_config_file(tmp_path / "nope.yaml")

    def test_read_diagram_file(self, diagram_path: pathlib.Path, worked_example: str) -> None:
        assert read_diagram_file(diagram_path) == worked_example

    def test_read_directory_is_rejected(self, tmp_path: pathlib.Path) -> None:
        with pytest.raises(ValueError):
            read_diagram_file(tmp_path)


def test_flagging_does_not_mutate_parser_entities() -> None:
    from erdfix.service import flag_known_entities

    original = [Entity(name="Account")]
    flagged = flag_known_entities(original, {"Account"})
    assert flagged[0].is_known_entity
    assert not original[0].is_known_entity
