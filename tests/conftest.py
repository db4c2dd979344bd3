from __future__ import annotations

from pathlib import Path

import pytest

from tests._fixtures.minifiers import StubMinifier
from tests._fixtures.project_builder import ProjectBuilder


@pytest.fixture
def project(tmp_path: Path) -> ProjectBuilder:
    """Provide a Lighthouse-shaped project rooted at the pytest tmp_path."""
    return ProjectBuilder(tmp_path).write_default()


@pytest.fixture
def empty_project(tmp_path: Path) -> ProjectBuilder:
    """Provide an empty project directory."""
    return ProjectBuilder(tmp_path)


@pytest.fixture
def minifier() -> StubMinifier:
    return StubMinifier()
