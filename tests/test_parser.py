"""
tests/test_parser.py
Unit tests for erdfix.spans and erdfix.parser.

Tests cover:
- Span scanning: header, inline and multi-line bodies, quoted braces, comments
- Fatal scan errors (empty input, missing header, unclosed blocks)
- Text-surgery primitives (apply_edits, removal_edit)
- Cardinality classification
- Attribute conversion and FK reference inference
- Pre-validation warnings emitted by the parser
"""

from __future__ import annotations

import pytest

from erdfix.models import Cardinality
from erdfix.parser import MermaidERDParser, classify_cardinality, parse_erd
from erdfix.spans import apply_edits, find_closing_brace, removal_edit, scan_diagram
from tests.conftest import diagram


# ===========================================================================
# Span scanning
# ===========================================================================


class TestScanDiagram:
    """Tests for scan_diagram."""

    def test_empty_source(self) -> None:
        spans = scan_diagram("   \n")
        assert not spans.ok
        assert spans.errors == ("ERD content is empty.",)

    def test_missing_header(self) -> None:
        spans = scan_diagram("graph TD\n    A --> B\n")
        assert not spans.ok
        assert spans.errors[0] == "ERD content must start with 'erDiagram' (found 'graph TD' on line 1)."

    def test_comment_only_source_has_no_header(self) -> None:
        spans = scan_diagram("%% nothing here\n")
        assert spans.errors == ("ERD content must start with 'erDiagram'.",)

    def test_unclosed_entity(self) -> None:
        spans = scan_diagram("erDiagram\n    A {\n        string id PK\n")
        assert not spans.ok
        assert spans.errors == ("Entity 'A' opened on line 2 is never closed.",)

    def test_multi_line_and_inline_bodies(self, worked_example: str, clean_source: str) -> None:
        inline = scan_diagram(worked_example)
        assert inline.ok
        assert inline.entity_names() == ["Employee", "Department"]
        assert inline.entity("Employee").inline
        assert [a.name for a in inline.entity("Employee").attributes] == [
            "employee_id", "name", "name",
        ]

        block = scan_diagram(clean_source)
        assert not block.entity("Department").inline
        assert block.entity("Department").line_number == 2

    def test_braces_inside_descriptions_do_not_close_block(self) -> None:
        source = diagram(
            """
            erDiagram
                Note { string id PK string body "uses {braces} inside" }
            """
        )
        spans = scan_diagram(source)
        assert spans.ok, spans.errors
        body = spans.entity("Note").attributes[1]
        assert body.description == "uses {braces} inside"

    def test_comments_inside_body_are_ignored(self) -> None:
        source = diagram(
            """
            erDiagram
                Note {
                    %% a } brace in a comment
                    string id PK
                }
            """
        )
        spans = scan_diagram(source)
        assert spans.ok, spans.errors
        assert [a.name for a in spans.entity("Note").attributes] == ["id"]

    def test_relationship_spans(self, clean_source: str) -> None:
        spans = scan_diagram(clean_source)
        assert len(spans.relationships) == 1
        rel = spans.relationships[0]
        assert (rel.from_entity, rel.token, rel.to_entity) == ("Department", "||--o{", "Employee")
        assert rel.label == "employs"
        assert clean_source[rel.from_start:rel.from_end] == "Department"
        assert clean_source[rel.to_start:rel.to_end] == "Employee"

    def test_unknown_lines_are_issues_not_errors(self) -> None:
        spans = scan_diagram("erDiagram\n    A { string id PK }\n    this is nonsense\n")
        assert spans.ok
        assert len(spans.issues) == 1
        assert spans.issues[0].line_number == 3

    def test_key_tokens_are_case_insensitive(self) -> None:
        spans = scan_diagram("erDiagram\n    A { string id pk }\n")
        assert spans.entity("A").has_primary_key


class TestFindClosingBrace:
    """Tests for brace-depth matching."""

    def test_nested_quote(self) -> None:
        text = 'A { string x "}" }'
        assert find_closing_brace(text, 2) == len(text) - 1

    def test_unterminated(self) -> None:
        assert find_closing_brace("A { string x", 2) == -1


# ===========================================================================
# Text surgery
# ===========================================================================


class TestEdits:
    """Tests for apply_edits and removal_edit."""

    def test_edits_apply_in_descending_order(self) -> None:
        assert apply_edits("abcdef", [(0, 1, "X"), (4, 6, "YZW")]) == "XbcdYZW"

    def test_overlapping_edits_raise(self) -> None:
        with pytest.raises(ValueError):
            apply_edits("abcdefgh", [(0, 5, "x"), (3, 8, "y")])

    def test_removal_takes_whole_line(self) -> None:
        source = "a\nbb\nc\n"
        assert apply_edits(source, [removal_edit(source, 2, 4)]) == "a\nc\n"

    def test_removal_inside_shared_line(self) -> None:
        source = "x { string a string b }\n"
        start = source.index("string b")
        edit = removal_edit(source, start, start + len("string b"))
        assert apply_edits(source, [edit]) == "x { string a }\n"


# ===========================================================================
# Cardinality
# ===========================================================================


@pytest.mark.parametrize(
    "token, expected",
    [
        ("||--o{", Cardinality.ONE_TO_MANY),
        ("||..o{", Cardinality.ONE_TO_MANY),
        ("|o--o{", Cardinality.ZERO_TO_MANY),
        ("}o--||", Cardinality.MANY_TO_ONE),
        ("}o--o{", Cardinality.MANY_TO_MANY),
        ("}|--|{", Cardinality.MANY_TO_MANY),
        ("||--||", Cardinality.ONE_TO_ONE),
        ("|o--||", Cardinality.ONE_TO_ONE),
        ("oo--oo", Cardinality.UNKNOWN),
        ("--", Cardinality.UNKNOWN),
        ("||o{", Cardinality.UNKNOWN),
    ],
)
def test_classify_cardinality(token: str, expected: Cardinality) -> None:
    assert classify_cardinality(token) == expected


# ===========================================================================
# Parser
# ===========================================================================


class TestParseErd:
    """Tests for MermaidERDParser.parse."""

    def test_failure_returns_errors_only(self) -> None:
        result = parse_erd("")
        assert not result.ok
        assert result.errors == ["ERD content is empty."]
        assert result.entities == []

    def test_worked_example_has_no_parser_warnings(self, worked_example: str) -> None:
        result = MermaidERDParser().parse(worked_example)
        assert result.ok
        assert [e.name for e in result.entities] == ["Employee", "Department"]
        assert len(result.relationships) == 2
        assert all(r.cardinality == Cardinality.ONE_TO_MANY.value for r in result.relationships)
        assert result.warnings == []

    def test_primary_key_is_required(self, clean_source: str) -> None:
        result = parse_erd(clean_source)
        dept = result.entities[0]
        assert dept.primary_keys == ["id"]
        assert dept.attributes[0].required
        assert not dept.attributes[1].required

    def test_reference_from_description(self) -> None:
        result = parse_erd(diagram(
            """
            erDiagram
                Department { string id PK }
                Employee { string id PK string dept FK "Foreign key to department" }
            """
        ))
        dept = result.entities[1].get_attribute("dept")
        assert dept.is_foreign_key
        assert dept.referenced_entity == "Department"

    def test_reference_from_name_stem(self, clean_source: str) -> None:
        result = parse_erd(clean_source)
        fk = result.entities[1].get_attribute("department_id")
        assert fk.referenced_entity == "Department"

    def test_unmatched_stem_has_no_reference(self) -> None:
        result = parse_erd("erDiagram\n    A { string id PK string widget_id FK }\n")
        assert result.entities[0].get_attribute("widget_id").referenced_entity is None

    def test_lookup_pseudo_type(self) -> None:
        result = parse_erd(diagram(
            """
            erDiagram
                Department { string id PK }
                Employee { string id PK lookup(Department) dept }
            """
        ))
        dept = result.entities[1].get_attribute("dept")
        assert dept.is_foreign_key
        assert dept.is_pseudo_type
        assert dept.referenced_entity == "Department"
        pseudo = [w for w in result.warnings if w.type == "pseudo_type_attribute"]
        assert len(pseudo) == 1
        assert pseudo[0].auto_fixable

    def test_choice_options(self) -> None:
        result = parse_erd("erDiagram\n    A { string id PK choice(low, high) level }\n")
        level = result.entities[0].get_attribute("level")
        assert level.choice_options == ["low", "high"]
        assert not level.is_foreign_key

    def test_multiple_primary_keys(self) -> None:
        result = parse_erd("erDiagram\n    A { string id PK string code PK }\n")
        types = [w.type for w in result.warnings]
        assert types == ["multiple_primary_keys"]

    def test_status_column(self) -> None:
        result = parse_erd("erDiagram\n    A { string id PK string status }\n")
        assert [w.type for w in result.warnings] == ["status_column_ignored"]
        assert not result.warnings[0].auto_fixable

    def test_missing_entity(self, dangling_source: str) -> None:
        result = parse_erd(dangling_source)
        missing = [w for w in result.warnings if w.type == "missing_entity"]
        assert len(missing) == 1
        assert missing[0].entity == "Shelf"
        assert missing[0].auto_fixable
        assert missing[0].fix_data.referenced_by == "Warehouse"

    def test_unrecognized_line(self) -> None:
        result = parse_erd("erDiagram\n    A { string id PK }\n    this is nonsense\n")
        assert result.ok
        assert [w.type for w in result.warnings] == ["unrecognized_line"]
        assert result.warnings[0].message.startswith("Line 3:")

    def test_corrected_erd_expands_many_to_many(self, many_to_many_source: str) -> None:
        result = parse_erd(many_to_many_source)
        assert "StudentCourse {" in result.corrected_erd
        assert "}o--o{" not in result.corrected_erd
        assert 'Student ||--o{ StudentCourse : "has"' in result.corrected_erd

    def test_corrected_erd_of_clean_source_is_unchanged(self, clean_source: str) -> None:
        assert parse_erd(clean_source).corrected_erd == clean_source
