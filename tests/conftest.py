"""
tests/conftest.py
Shared fixtures for the erdfix test suite.

Diagram sources are plain strings; file-based fixtures write them into
pytest's ``tmp_path``. No external mocking libraries are used.
"""

from __future__ import annotations

import pathlib
import textwrap

import pytest

from erdfix.models import EngineConfig
from erdfix.service import ERDValidationService


def diagram(text: str) -> str:
    """Dedent a triple-quoted diagram and drop the leading newline."""
    return textwrap.dedent(text).lstrip("\n")


# ---------------------------------------------------------------------------
# Diagram sources
# ---------------------------------------------------------------------------


@pytest.fixture()
def worked_example() -> str:
    """Duplicate column plus duplicate relationship, inline bodies."""
    return diagram(
        """
        erDiagram
            Employee { string employee_id PK string name string name }
            Department { string department_id PK }
            Employee ||--o{ Department : "works_in"
            Employee ||--o{ Department : "works_in"
        """
    )


@pytest.fixture()
def clean_source() -> str:
    """A diagram that produces no diagnostics at all."""
    return diagram(
        """
        erDiagram
            Department {
                string id PK "Unique identifier"
                string title
            }
            Employee {
                string id PK "Unique identifier"
                string department_id FK "Foreign key to Department"
            }
            Department ||--o{ Employee : "employs"
        """
    )


@pytest.fixture()
def many_to_many_source() -> str:
    return diagram(
        """
        erDiagram
            Student {
                string id PK
            }
            Course {
                string id PK
            }
            Student }o--o{ Course : "enrolls"
        """
    )


@pytest.fixture()
def dangling_source() -> str:
    return diagram(
        """
        erDiagram
            Warehouse {
                string id PK
            }
            Warehouse ||--o{ Shelf : "holds"
        """
    )


@pytest.fixture()
def known_entity_source() -> str:
    """Account is a platform entity; Project is custom."""
    return diagram(
        """
        erDiagram
            Account {
                string name
            }
            Project {
                string id PK
                string account_id FK "Foreign key to Account"
            }
            Account ||--o{ Project : "owns"
        """
    )


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


@pytest.fixture()
def engine_config() -> EngineConfig:
    return EngineConfig()


@pytest.fixture()
def service(engine_config: EngineConfig) -> ERDValidationService:
    return ERDValidationService(config=engine_config)


# ---------------------------------------------------------------------------
# Files
# ---------------------------------------------------------------------------


@pytest.fixture()
def diagram_path(worked_example: str, tmp_path: pathlib.Path) -> pathlib.Path:
    path = tmp_path / "model.mmd"
    path.write_text(worked_example, encoding="utf-8")
    return path
