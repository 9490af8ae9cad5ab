"""Tests for manifest loading and validation."""

from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest
import yaml

from dnaspec.exceptions import ManifestError, ManifestValidationError, ValidationIssue
from dnaspec.manifest import (
    MANIFEST_FILE,
    create_example_manifest,
    load_manifest,
    load_validated_manifest,
    validate_manifest,
)


class TestLoadManifest:
    """Test load_manifest."""

    def test_load_valid_manifest(self, make_source: Callable[..., Path], tmp_path: Path) -> None:
        """Test loading a well-formed manifest."""
        root = make_source(tmp_path / "dna")

        manifest = load_manifest(root / MANIFEST_FILE)

        assert manifest.version == 1
        assert manifest.guideline_names() == ["python-style", "rest-api"]
        assert manifest.guideline("rest-api").prompts == []

    def test_missing_file(self, tmp_path: Path) -> None:
        """Test a missing manifest is reported."""
        with pytest.raises(ManifestError, match="not found"):
            load_manifest(tmp_path / MANIFEST_FILE)

    def test_invalid_yaml(self, tmp_path: Path) -> None:
        """Test unparsable YAML is reported."""
        path = tmp_path / MANIFEST_FILE
        path.write_text("guidelines: [unclosed\n")

        with pytest.raises(ManifestError, match="parse"):
            load_manifest(path)

    def test_wrong_shape(self, tmp_path: Path) -> None:
        """Test structural errors carry the offending field."""
        path = tmp_path / MANIFEST_FILE
        path.write_text("version: 1\nguidelines: not-a-list\n")

        with pytest.raises(ManifestValidationError) as exc_info:
            load_manifest(path)

        assert [issue.field for issue in exc_info.value.issues] == ["guidelines"]

    def test_blank_lists(self, tmp_path: Path) -> None:
        """Test blank list keys load as empty lists."""
        path = tmp_path / MANIFEST_FILE
        path.write_text("version: 1\nguidelines:\nprompts:\n")

        manifest = load_manifest(path)

        assert manifest.guidelines == []
        assert manifest.prompts == []


class TestValidateManifest:
    """Test validate_manifest rules."""

    @pytest.fixture
    def root(self, make_source: Callable[..., Path], tmp_path: Path) -> Path:
        """A valid DNA source directory."""
        return make_source(tmp_path / "dna")

    def _validate(self, root: Path, data: dict[str, Any]) -> list[ValidationIssue]:
        with open(root / MANIFEST_FILE, "w") as f:
            yaml.safe_dump(data, f)
        return validate_manifest(load_manifest(root / MANIFEST_FILE), root)

    def _messages(self, root: Path, data: dict[str, Any]) -> list[str]:
        return [issue.message for issue in self._validate(root, data)]

    def test_valid_manifest(self, root: Path, manifest_doc: dict[str, Any]) -> None:
        """Test a valid manifest has no issues."""
        assert self._validate(root, manifest_doc) == []

    def test_missing_version(self, root: Path, manifest_doc: dict[str, Any]) -> None:
        """Test version is required."""
        del manifest_doc["version"]

        issues = self._validate(root, manifest_doc)

        assert issues == [ValidationIssue("version", "missing required field: version")]

    def test_duplicate_and_invalid_names(
        self, root: Path, manifest_doc: dict[str, Any]
    ) -> None:
        """Test duplicate and non-spinal-case names are reported."""
        manifest_doc["guidelines"][1]["name"] = "python-style"
        manifest_doc["prompts"][1]["name"] = "Debugging_Prompt"

        messages = self._messages(root, manifest_doc)

        assert "duplicate guideline name: python-style" in messages
        assert any("invalid naming format: 'Debugging_Prompt'" in m for m in messages)

    @pytest.mark.parametrize(
        ("file", "expected"),
        [
            ("/etc/passwd", "absolute paths not allowed"),
            ("guidelines/../../secret.md", "path traversal not allowed"),
            ("docs/style.md", "path must be within guidelines/"),
            ("guidelines/missing.md", "file not found"),
        ],
    )
    def test_guideline_file_rules(
        self,
        root: Path,
        manifest_doc: dict[str, Any],
        file: str,
        expected: str,
    ) -> None:
        """Test guideline file path rules."""
        manifest_doc["guidelines"][0]["file"] = file

        messages = self._messages(root, manifest_doc)

        assert len(messages) == 1
        assert messages[0].startswith(expected)

    def test_symlink_escaping_source(
        self, root: Path, manifest_doc: dict[str, Any], tmp_path: Path
    ) -> None:
        """Test a symlinked file pointing outside the source is rejected."""
        secret = tmp_path / "secret.md"
        secret.write_text("secret")
        (root / "guidelines" / "linked.md").symlink_to(secret)
        manifest_doc["guidelines"][0]["file"] = "guidelines/linked.md"

        messages = self._messages(root, manifest_doc)

        assert messages == ["file resolves outside the source root: guidelines/linked.md"]

    def test_prompt_must_be_under_prompts(
        self, root: Path, manifest_doc: dict[str, Any]
    ) -> None:
        """Test prompt files must live under prompts/."""
        manifest_doc["prompts"][0]["file"] = "guidelines/python-style.md"

        messages = self._messages(root, manifest_doc)

        assert messages == ["path must be within prompts/: guidelines/python-style.md"]

    def test_empty_scenarios(self, root: Path, manifest_doc: dict[str, Any]) -> None:
        """Test guidelines need applicable scenarios."""
        manifest_doc["guidelines"][1]["applicable_scenarios"] = []

        issues = self._validate(root, manifest_doc)

        assert [i.field for i in issues] == ["guidelines[1].applicable_scenarios"]
        assert "empty applicable_scenarios" in issues[0].message

    def test_missing_description(self, root: Path, manifest_doc: dict[str, Any]) -> None:
        """Test descriptions are required."""
        del manifest_doc["prompts"][1]["description"]

        issues = self._validate(root, manifest_doc)

        assert issues == [
            ValidationIssue("prompts[1].description", "missing required field: description")
        ]

    def test_dangling_prompt_reference(
        self, root: Path, manifest_doc: dict[str, Any]
    ) -> None:
        """Test guidelines may only reference declared prompts."""
        manifest_doc["guidelines"][0]["prompts"] = ["code-review", "ghost"]

        issues = self._validate(root, manifest_doc)

        assert issues == [
            ValidationIssue(
                "guidelines[0].prompts",
                "guideline 'python-style' references non-existent prompt 'ghost'",
            )
        ]

    def test_all_issues_collected(self, root: Path, manifest_doc: dict[str, Any]) -> None:
        """Test validation does not stop at the first issue."""
        del manifest_doc["version"]
        manifest_doc["guidelines"][0]["file"] = "/abs.md"
        manifest_doc["guidelines"][1]["applicable_scenarios"] = []
        manifest_doc["prompts"][0]["name"] = "BAD"

        issues = self._validate(root, manifest_doc)

        # The renamed prompt also leaves python-style with a dangling reference.
        assert len(issues) == 5


class TestLoadValidatedManifest:
    """Test load_validated_manifest."""

    def test_valid_source(self, make_source: Callable[..., Path], tmp_path: Path) -> None:
        """Test a valid source loads."""
        root = make_source(tmp_path / "dna")
        assert len(load_validated_manifest(root).prompts) == 2

    def test_invalid_source(self, make_source: Callable[..., Path], tmp_path: Path) -> None:
        """Test issues are attached to the raised error."""
        root = make_source(tmp_path / "dna")
        (root / "guidelines" / "rest-api.md").unlink()
        (root / "prompts" / "debugging.md").unlink()

        with pytest.raises(ManifestValidationError, match="2 validation errors") as exc_info:
            load_validated_manifest(root)

        assert [i.field for i in exc_info.value.issues] == [
            "guidelines[1].file",
            "prompts[1].file",
        ]


class TestCreateExampleManifest:
    """Test create_example_manifest."""

    def test_creates_loadable_manifest(self, tmp_path: Path) -> None:
        """Test the example parses and only lacks its referenced files."""
        path = create_example_manifest(tmp_path / MANIFEST_FILE)

        manifest = load_manifest(path)
        issues = validate_manifest(manifest, tmp_path)

        assert manifest.guideline_names() == ["python-style"]
        assert {i.message.split(":")[0] for i in issues} == {"file not found"}

    def test_refuses_to_overwrite(self, tmp_path: Path) -> None:
        """Test an existing manifest is left alone."""
        path = tmp_path / MANIFEST_FILE
        path.write_text("version: 1\n")

        with pytest.raises(ManifestError, match="already exists"):
            create_example_manifest(path)

        assert path.read_text() == "version: 1\n"
