"""
tests/test_naming.py
Unit tests for erdfix.naming.

Tests cover:
- Entity rules: identifier, length, platform-reserved, PascalCase
- Attribute rules: identifier, length, platform-reserved
- SQL reserved-word pass and its interaction with the first pass
- Configurable reserved names and length ceiling
- Suggestions that pass every rule themselves
"""

from __future__ import annotations

from typing import List, Optional

import pytest

from erdfix.models import Attribute, EngineConfig, Entity, Severity
from erdfix.naming import NamingValidator, validate_naming
from erdfix.validators import run_validators


def _entity(name: str, *attrs: str, known: bool = False) -> Entity:
    return Entity(
        name=name,
        attributes=[Attribute(name=a) for a in attrs],
        is_known_entity=known,
    )


def _types(entities: List[Entity], config: Optional[EngineConfig] = None) -> List[str]:
    return [d.type for d in validate_naming(entities, config).diagnostics]


# ===========================================================================
# Entity names
# ===========================================================================


class TestEntityNames:
    """Tests for entity naming rules."""

    def test_valid_pascal_case_name(self) -> None:
        assert _types([_entity("Warehouse", "id")]) == []

    def test_invalid_identifier(self) -> None:
        result = validate_naming([_entity("user-profile", "id")])
        diag = result.of_type("invalid_entity_name")[0]
        assert diag.fix_data.suggested_name == "UserProfile"
        assert "UserProfile" in diag.suggestion
        assert diag.auto_fixable

    def test_leading_digits_dropped(self) -> None:
        result = validate_naming([_entity("123orders", "id")])
        assert result.diagnostics[0].fix_data.suggested_name == "Orders"

    def test_too_long(self) -> None:
        config = EngineConfig(max_name_length=8)
        result = validate_naming([_entity("VeryLongEntityName", "id")], config)
        diag = result.of_type("entity_name_too_long")[0]
        assert len(diag.fix_data.suggested_name) <= 8
        assert "limit is 8" in diag.message

    def test_platform_reserved(self) -> None:
        result = validate_naming([_entity("Role", "id")])
        assert [d.type for d in result.diagnostics] == ["reserved_entity_name"]
        assert result.diagnostics[0].fix_data.suggested_name == "CustomRole"

    def test_naming_convention_is_info(self) -> None:
        result = validate_naming([_entity("order_item", "id")])
        diag = result.of_type("entity_naming_convention")[0]
        assert diag.severity == Severity.INFO.value
        assert diag.fix_data.suggested_name == "OrderItem"

    def test_configured_reserved_names(self) -> None:
        config = EngineConfig(reserved_entity_names=["Widget"])
        result = validate_naming([_entity("Widget", "id")], config)
        assert result.of_type("reserved_entity_name")[0].fix_data.suggested_name == "CustomWidget"

    def test_known_entities_are_skipped(self) -> None:
        assert _types([_entity("user", "Bad-Name", known=True)]) == []


# ===========================================================================
# Attribute names
# ===========================================================================


class TestAttributeNames:
    """Tests for attribute naming rules."""

    def test_uppercase_start(self) -> None:
        result = validate_naming([_entity("Warehouse", "Name")])
        diag = result.of_type("invalid_attribute_name")[0]
        assert diag.attribute == "Name"
        assert diag.fix_data.suggested_name == "name"
        assert diag.fix_data.entity_name == "Warehouse"

    def test_too_long(self) -> None:
        config = EngineConfig(max_name_length=10)
        result = validate_naming([_entity("Shelf", "maximumCapacityInUnits")], config)
        diag = result.of_type("attribute_name_too_long")[0]
        assert len(diag.fix_data.suggested_name) <= 10

    def test_platform_reserved(self) -> None:
        result = validate_naming([_entity("Shelf", "createdon")])
        assert result.of_type("reserved_attribute_name")[0].fix_data.suggested_name == "customCreatedon"

    def test_repeated_attribute_reported_once(self) -> None:
        assert _types([_entity("Shelf", "Label", "Label")]) == ["invalid_attribute_name"]


# ===========================================================================
# SQL reserved words
# ===========================================================================


class TestSqlReservedWords:
    """Tests for the SQL reserved-word pass."""

    def test_entity(self) -> None:
        result = validate_naming([_entity("Order", "id")])
        assert [d.type for d in result.diagnostics] == ["sql_reserved_entity_name"]
        assert result.diagnostics[0].fix_data.suggested_name == "OrderEntity"

    def test_attribute(self) -> None:
        result = validate_naming([_entity("Shelf", "select")])
        diag = result.of_type("sql_reserved_attribute_name")[0]
        assert diag.fix_data.suggested_name == "selectValue"

    def test_first_pass_wins(self) -> None:
        # "user" is both platform-reserved and a SQL word.
        result = validate_naming([_entity("User", "id")])
        assert [d.type for d in result.diagnostics] == ["reserved_entity_name"]


# ===========================================================================
# Suggestions
# ===========================================================================


@pytest.mark.parametrize("name", ["user-profile", "Role", "Order", "order_item", "123orders"])
def test_entity_suggestion_passes_every_rule(name: str) -> None:
    validator = NamingValidator()
    first = validator.validate([_entity(name, "id")])
    assert first.diagnostics, f"Expected a diagnostic for {name!r}"
    suggested = first.diagnostics[0].fix_data.suggested_name
    second = validator.validate([_entity(suggested, "id")])
    assert second.diagnostics == [], [str(d) for d in second.diagnostics]


@pytest.mark.parametrize("name", ["Name", "createdon", "select", "first-name"])
def test_attribute_suggestion_passes_every_rule(name: str) -> None:
    validator = NamingValidator()
    first = validator.validate([_entity("Shelf", name)])
    suggested = first.diagnostics[0].fix_data.suggested_name
    second = validator.validate([_entity("Shelf", suggested)])
    assert second.diagnostics == [], [str(d) for d in second.diagnostics]


def test_validator_is_usable_with_run_validators() -> None:
    result = run_validators([_entity("Role", "id")], [], [NamingValidator()])
    assert result.of_type("reserved_entity_name")
