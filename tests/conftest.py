"""Shared fixtures for DNASpec tests."""

import copy
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest
import yaml

from dnaspec.manifest import MANIFEST_FILE
from dnaspec.operations import init_project

MANIFEST_DATA: dict[str, Any] = {
    "version": 1,
    "guidelines": [
        {
            "name": "python-style",
            "file": "guidelines/python-style.md",
            "description": "Python style conventions",
            "applicable_scenarios": ["Writing Python code", "Reviewing Python code"],
            "prompts": ["code-review"],
        },
        {
            "name": "rest-api",
            "file": "guidelines/rest-api.md",
            "description": "REST API design",
            "applicable_scenarios": ["Designing REST APIs"],
            "prompts": [],
        },
    ],
    "prompts": [
        {
            "name": "code-review",
            "file": "prompts/code-review.md",
            "description": "Review code against the guidelines",
        },
        {
            "name": "debugging",
            "file": "prompts/debugging.md",
            "description": "Debug systematically",
        },
    ],
}


def _manifest_data() -> dict[str, Any]:
    """Fresh copy of the default manifest document."""
    return copy.deepcopy(MANIFEST_DATA)


def write_source(directory: Path, data: dict[str, Any] | None = None) -> Path:
    """Write a DNA source: a manifest plus one file per entry."""
    data = _manifest_data() if data is None else data
    directory.mkdir(parents=True, exist_ok=True)
    with open(directory / MANIFEST_FILE, "w") as f:
        yaml.safe_dump(data, f, sort_keys=False)

    for entry in [*(data.get("guidelines") or []), *(data.get("prompts") or [])]:
        target = directory / entry["file"]
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(f"# {entry['name']}\n\nContent of {entry['name']}.\n")
    return directory


@pytest.fixture
def make_source() -> Callable[..., Path]:
    """Factory writing a DNA source directory."""
    return write_source


@pytest.fixture
def project_root(tmp_path: Path) -> Path:
    """An initialized project directory."""
    root = tmp_path / "project"
    root.mkdir()
    init_project(root)
    return root


@pytest.fixture
def local_source(project_root: Path) -> Path:
    """A DNA source stored inside the project."""
    return write_source(project_root / "dna-repo")


@pytest.fixture
def outside_source(tmp_path: Path) -> Path:
    """A DNA source stored outside the project."""
    return write_source(tmp_path / "shared-dna")


@pytest.fixture
def manifest_doc() -> dict[str, Any]:
    """Fresh copy of the default manifest document."""
    return _manifest_data()
