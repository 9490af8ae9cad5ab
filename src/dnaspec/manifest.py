"""Loading and validation of DNA source manifests (``dnaspec-manifest.yaml``)."""

from __future__ import annotations

import logging
from pathlib import Path, PurePosixPath

import yaml
from pydantic import ValidationError

from .exceptions import ConfinementError, ManifestError, ManifestValidationError, ValidationIssue
from .models import Manifest, ManifestGuideline, ManifestPrompt
from .naming import is_spinal_case
from .paths import resolve_within_root
from .schemas import MANIFEST_SCHEMA, schema_issues

logger = logging.getLogger(__name__)

MANIFEST_FILE = "dnaspec-manifest.yaml"

GUIDELINES_PREFIX = "guidelines/"
PROMPTS_PREFIX = "prompts/"

EXAMPLE_MANIFEST = """\
# DNASpec Manifest
# This file defines the guidelines and prompts available in this DNA repository.

version: 1

guidelines:
  # Example guideline entry
  - name: python-style
    file: guidelines/python-style.md
    description: Python language style conventions and best practices
    applicable_scenarios:
      - "Writing Python code"
      - "Reviewing Python code"
      - "Setting up Python projects"
    prompts:
      - code-review
      - implementation

  # Add more guidelines here
  # - name: rest-api
  #   file: guidelines/rest-api.md
  #   description: RESTful API design guidelines
  #   applicable_scenarios:
  #     - "Designing REST APIs"
  #     - "Implementing API endpoints"

prompts:
  # Example prompt entry
  - name: code-review
    file: prompts/code-review.md
    description: Prompt for conducting thorough code reviews

  - name: implementation
    file: prompts/implementation.md
    description: Prompt for implementing new features

  # Add more prompts here
  # - name: debugging
  #   file: prompts/debugging.md
  #   description: Prompt for systematic debugging
"""


def load_manifest(path: str | Path) -> Manifest:
    """Load a manifest and check its structure.

    Only the document shape is checked here; use :func:`validate_manifest`
    for naming, file and cross-reference rules.

    Args:
        path: Path to a ``dnaspec-manifest.yaml`` file

    Returns:
        Parsed manifest

    Raises:
        ManifestError: If the file is missing or is not valid YAML
        ManifestValidationError: If the document has the wrong shape
    """
    manifest_path = Path(path)
    if not manifest_path.exists():
        msg = f"Manifest file not found: {manifest_path}"
        raise ManifestError(msg, details={"path": str(manifest_path)})

    try:
        with manifest_path.open(encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        msg = f"Failed to parse manifest YAML: {e}"
        raise ManifestError(msg, details={"path": str(manifest_path)}) from e
    except OSError as e:
        msg = f"Failed to read manifest file: {e}"
        raise ManifestError(msg, details={"path": str(manifest_path)}) from e

    if data is None:
        data = {}

    issues = schema_issues(data, MANIFEST_SCHEMA)
    if issues:
        raise ManifestValidationError(issues, details={"path": str(manifest_path)})

    try:
        return Manifest.model_validate(data)
    except ValidationError as e:
        msg = f"Manifest validation failed: {e}"
        raise ManifestError(msg, details={"path": str(manifest_path)}) from e


def load_validated_manifest(source_root: str | Path) -> Manifest:
    """Load ``dnaspec-manifest.yaml`` from ``source_root`` and validate it fully.

    Raises:
        ManifestError: If the manifest cannot be read
        ManifestValidationError: If any validation rule is violated
    """
    root = Path(source_root)
    manifest_path = root / MANIFEST_FILE
    manifest = load_manifest(manifest_path)
    issues = validate_manifest(manifest, root)
    if issues:
        raise ManifestValidationError(issues, details={"path": str(manifest_path)})
    return manifest


def validate_manifest(manifest: Manifest, base_dir: str | Path) -> list[ValidationIssue]:
    """Collect every rule violation in ``manifest``.

    Args:
        manifest: Parsed manifest
        base_dir: Directory the manifest's file paths are relative to

    Returns:
        All validation issues; empty when the manifest is valid
    """
    issues: list[ValidationIssue] = []

    if not manifest.version:
        issues.append(ValidationIssue("version", "missing required field: version"))

    guideline_names: set[str] = set()
    for index, guideline in enumerate(manifest.guidelines):
        issues.extend(
            _validate_guideline(guideline, f"guidelines[{index}]", base_dir, guideline_names)
        )

    prompt_names: set[str] = set()
    for index, prompt in enumerate(manifest.prompts):
        issues.extend(_validate_prompt(prompt, f"prompts[{index}]", base_dir, prompt_names))

    for index, guideline in enumerate(manifest.guidelines):
        for prompt_name in guideline.prompts:
            if prompt_name not in prompt_names:
                issues.append(
                    ValidationIssue(
                        f"guidelines[{index}].prompts",
                        f"guideline '{guideline.name}' references non-existent prompt '{prompt_name}'",
                    )
                )

    return issues


def _validate_name(name: str, field: str, kind: str, seen: set[str]) -> list[ValidationIssue]:
    if not name:
        return [ValidationIssue(field, "missing required field: name")]

    issues = []
    if name in seen:
        issues.append(ValidationIssue(field, f"duplicate {kind} name: {name}"))
    seen.add(name)
    if not is_spinal_case(name):
        issues.append(
            ValidationIssue(
                field,
                f"invalid naming format: '{name}' "
                "(expected spinal-case: lowercase letters and hyphens only)",
            )
        )
    return issues


def _validate_guideline(
    guideline: ManifestGuideline,
    prefix: str,
    base_dir: str | Path,
    seen: set[str],
) -> list[ValidationIssue]:
    issues = _validate_name(guideline.name, f"{prefix}.name", "guideline", seen)
    issues.extend(_validate_file(guideline.file, f"{prefix}.file", base_dir, GUIDELINES_PREFIX))
    if not guideline.description:
        issues.append(ValidationIssue(f"{prefix}.description", "missing required field: description"))
    if not guideline.applicable_scenarios:
        issues.append(
            ValidationIssue(
                f"{prefix}.applicable_scenarios",
                f"guideline '{guideline.name}' has empty applicable_scenarios "
                "(required for AGENTS.md)",
            )
        )
    return issues


def _validate_prompt(
    prompt: ManifestPrompt,
    prefix: str,
    base_dir: str | Path,
    seen: set[str],
) -> list[ValidationIssue]:
    issues = _validate_name(prompt.name, f"{prefix}.name", "prompt", seen)
    issues.extend(_validate_file(prompt.file, f"{prefix}.file", base_dir, PROMPTS_PREFIX))
    if not prompt.description:
        issues.append(ValidationIssue(f"{prefix}.description", "missing required field: description"))
    return issues


def _validate_file(
    file: str,
    field: str,
    base_dir: str | Path,
    expected_prefix: str,
) -> list[ValidationIssue]:
    """Check that ``file`` is a relative path under ``expected_prefix`` that exists."""
    if not file:
        return [ValidationIssue(field, "missing required field: file")]

    posix = PurePosixPath(file)
    if posix.is_absolute() or Path(file).is_absolute():
        return [ValidationIssue(field, f"absolute paths not allowed: {file}")]
    if ".." in posix.parts:
        return [ValidationIssue(field, f"path traversal not allowed: {file}")]
    if not file.startswith(expected_prefix):
        return [ValidationIssue(field, f"path must be within {expected_prefix}: {file}")]

    try:
        resolved = resolve_within_root(base_dir, file)
    except ConfinementError:
        return [ValidationIssue(field, f"file resolves outside the source root: {file}")]

    if not resolved.is_file():
        return [ValidationIssue(field, f"file not found: {file}")]
    return []


def create_example_manifest(path: str | Path) -> Path:
    """Write :data:`EXAMPLE_MANIFEST` to ``path``.

    Raises:
        ManifestError: If a file already exists at ``path``
    """
    manifest_path = Path(path)
    if manifest_path.exists():
        msg = f"{manifest_path.name} already exists"
        raise ManifestError(msg, details={"path": str(manifest_path)})

    manifest_path.write_text(EXAMPLE_MANIFEST, encoding="utf-8")
    logger.info("Created example manifest at %s", manifest_path)
    return manifest_path
