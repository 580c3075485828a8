"""
tests/test_cli.py
End-to-end tests for the erdfix command-line interface.

Tests cover:
- Validate mode: report, JSON output, corrected ERD output, exit codes
- Bulk fix and single-warning fix modes
- Input errors: missing diagram, unreadable file, bad config
- Reading the diagram from stdin
"""

from __future__ import annotations

import io
import json
import logging
import pathlib
from typing import Iterator, List

import pytest

from erdfix.cli import (
    EXIT_FIX_ERROR,
    EXIT_INPUT_ERROR,
    EXIT_SUCCESS,
    EXIT_VALIDATION_ERROR,
    cli_main,
)
from erdfix.service import ERDValidationService


@pytest.fixture(autouse=True)
def _restore_erdfix_logger() -> Iterator[None]:
    """The CLI reconfigures the package logger; put it back afterwards."""
    pkg_logger = logging.getLogger("erdfix")
    handlers = list(pkg_logger.handlers)
    level = pkg_logger.level
    propagate = pkg_logger.propagate
    yield
    pkg_logger.handlers[:] = handlers
    pkg_logger.setLevel(level)
    pkg_logger.propagate = propagate


def _run(argv: List[str]) -> int:
    with pytest.raises(SystemExit) as excinfo:
        cli_main(argv)
    return excinfo.value.code


def _write(tmp_path: pathlib.Path, name: str, text: str) -> pathlib.Path:
    path = tmp_path / name
    path.write_text(text, encoding="utf-8")
    return path


# ===========================================================================
# Validate mode
# ===========================================================================


class TestValidateMode:
    """Tests for the default validate mode."""

    def test_report_and_success_exit(
        self, diagram_path: pathlib.Path, capsys: pytest.CaptureFixture
    ) -> None:
        assert _run(["-d", str(diagram_path)]) == EXIT_SUCCESS
        out = capsys.readouterr().out
        assert "ERD Validation Report" in out
        assert "Warnings (3" in out
        assert "duplicate_relationship" in out

    def test_structural_failure_exit(
        self, tmp_path: pathlib.Path, dangling_source: str, capsys: pytest.CaptureFixture
    ) -> None:
        path = _write(tmp_path, "dangling.mmd", dangling_source)
        assert _run(["-d", str(path)]) == EXIT_VALIDATION_ERROR
        assert "non-existent entity: 'Shelf'" in capsys.readouterr().out

    def test_json_output(self, diagram_path: pathlib.Path, capsys: pytest.CaptureFixture) -> None:
        assert _run(["-d", str(diagram_path), "--json"]) == EXIT_SUCCESS
        body = json.loads(capsys.readouterr().out)
        assert body["success"] is True
        assert body["summary"]["warningCount"] == 3

    def test_corrected_erd_written(
        self, tmp_path: pathlib.Path, many_to_many_source: str
    ) -> None:
        path = _write(tmp_path, "m2m.mmd", many_to_many_source)
        out = tmp_path / "out" / "corrected.mmd"
        assert _run(["-d", str(path), "-o", str(out), "-q"]) == EXIT_SUCCESS
        assert "StudentCourse {" in out.read_text(encoding="utf-8")

    def test_quiet_prints_nothing(self, diagram_path: pathlib.Path, capsys: pytest.CaptureFixture) -> None:
        assert _run(["-d", str(diagram_path), "-q"]) == EXIT_SUCCESS
        assert capsys.readouterr().out == ""

    def test_no_known_entities_flag(
        self, tmp_path: pathlib.Path, known_entity_source: str, capsys: pytest.CaptureFixture
    ) -> None:
        path = _write(tmp_path, "known.mmd", known_entity_source)
        assert _run(["-d", str(path), "--json", "--no-known-entities"]) == EXIT_SUCCESS
        body = json.loads(capsys.readouterr().out)
        assert body["warnings"][0]["autoFixable"] is True

    def test_stdin(
        self,
        worked_example: str,
        monkeypatch: pytest.MonkeyPatch,
        capsys: pytest.CaptureFixture,
    ) -> None:
        monkeypatch.setattr("sys.stdin", io.StringIO(worked_example))
        assert _run(["-d", "-", "--json"]) == EXIT_SUCCESS
        assert json.loads(capsys.readouterr().out)["summary"]["entityCount"] == 2


# ===========================================================================
# Fix modes
# ===========================================================================


class TestFixModes:
    """Tests for --fix, --fix-types and --fix-warning."""

    def test_bulk_fix_to_file(self, diagram_path: pathlib.Path, tmp_path: pathlib.Path) -> None:
        out = tmp_path / "fixed.mmd"
        assert _run(["-d", str(diagram_path), "--fix", "autoFixableOnly", "-o", str(out), "-q"]) == EXIT_SUCCESS
        fixed = out.read_text(encoding="utf-8")
        assert fixed.count("||--o{") == 1
        assert ERDValidationService().validate(fixed).warnings == []

    def test_bulk_fix_prints_content_without_output(
        self, diagram_path: pathlib.Path, capsys: pytest.CaptureFixture
    ) -> None:
        assert _run(["-d", str(diagram_path), "--fix-types", "duplicate_relationship"]) == EXIT_SUCCESS
        out = capsys.readouterr().out
        assert "ERD Bulk Fix Report" in out
        assert "Applied:    1" in out
        assert out.count('Employee ||--o{ Department : "works_in"') == 1, "fixed diagram follows the report"

    def test_empty_fix_types(self, diagram_path: pathlib.Path) -> None:
        assert _run(["-d", str(diagram_path), "--fix-types", " , "]) == EXIT_INPUT_ERROR

    def test_fix_warning(
        self, diagram_path: pathlib.Path, worked_example: str, capsys: pytest.CaptureFixture
    ) -> None:
        warnings = ERDValidationService().validate(worked_example).warnings
        target = [w for w in warnings if w.type == "duplicate_attribute"][0]
        assert _run(["-d", str(diagram_path), "--fix-warning", target.id, "--json"]) == EXIT_SUCCESS
        body = json.loads(capsys.readouterr().out)
        assert body["success"] is True
        assert body["appliedFix"]["warningType"] == "duplicate_attribute"

    def test_fix_warning_malformed_id(self, diagram_path: pathlib.Path) -> None:
        assert _run(["-d", str(diagram_path), "--fix-warning", "bogus", "-q"]) == EXIT_FIX_ERROR

    def test_modes_are_exclusive(self, diagram_path: pathlib.Path) -> None:
        code = _run(["-d", str(diagram_path), "--fix", "all", "--fix-warning", "warning_1"])
        assert code == 2


# ===========================================================================
# Input errors
# ===========================================================================


class TestInputErrors:
    """Tests for argument and input failures."""

    def test_missing_diagram_argument(self) -> None:
        assert _run([]) == EXIT_INPUT_ERROR

    def test_missing_diagram_file(self, tmp_path: pathlib.Path) -> None:
        assert _run(["-d", str(tmp_path / "absent.mmd")]) == EXIT_INPUT_ERROR

    def test_bad_config(self, diagram_path: pathlib.Path, tmp_path: pathlib.Path) -> None:
        config = _write(tmp_path, "bad.yaml", "maxNameLength: 3\n")
        assert _run(["-d", str(diagram_path), "--config", str(config)]) == EXIT_INPUT_ERROR

    def test_good_config(self, diagram_path: pathlib.Path, tmp_path: pathlib.Path) -> None:
        config = _write(tmp_path, "ok.yaml", "engine:\n  detectKnownEntities: false\n")
        assert _run(["-d", str(diagram_path), "--config", str(config), "-q"]) == EXIT_SUCCESS

    def test_version(self, capsys: pytest.CaptureFixture) -> None:
        assert _run(["--version"]) == 0
        assert "NexaFlow ERDFix v" in capsys.readouterr().out
