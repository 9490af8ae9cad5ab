"""Custom exceptions for DNASpec."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


class DnaSpecError(Exception):
    """Base exception for all DNASpec errors."""

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.details = details or {}


class ConfigError(DnaSpecError):
    """Raised when the project configuration cannot be loaded or is invalid."""


class SourceNotFoundError(ConfigError):
    """Raised when a named source is not present in the project configuration."""


class ConfinementError(DnaSpecError):
    """Raised when a path resolves outside of its declared root.

    Callers may choose to only warn about this one (e.g. a legacy absolute
    source path recorded before paths were stored relative).
    """


class PathTraversalError(ConfinementError):
    """Raised when a path climbs above its root through ``..`` segments."""


@dataclass(frozen=True)
class ValidationIssue:
    """A single manifest or configuration problem tied to a field."""

    field: str
    message: str

    def __str__(self) -> str:
        if self.field:
            return f"{self.field}: {self.message}"
        return self.message


class ManifestError(DnaSpecError):
    """Raised when a manifest cannot be read or parsed."""


class ManifestValidationError(ManifestError):
    """Raised when a manifest has one or more validation issues."""

    def __init__(
        self,
        issues: list[ValidationIssue],
        details: dict[str, Any] | None = None,
    ) -> None:
        if len(issues) == 1:
            message = f"manifest validation failed: {issues[0]}"
        else:
            message = f"manifest validation failed: {len(issues)} validation errors"
        super().__init__(message, details)
        self.issues = list(issues)


class SourceError(DnaSpecError):
    """Raised when a source cannot be fetched from its origin."""


class SelectionError(DnaSpecError):
    """Raised when requested guideline names do not exist in the manifest."""


class TransactionError(DnaSpecError):
    """Raised when a batch copy or atomic write fails and was rolled back."""


class CriticalStateError(DnaSpecError):
    """Raised when files changed on disk but the project state was not saved.

    The project configuration must be reconciled by hand; retrying the
    operation may compound the damage.
    """


class GenerationError(DnaSpecError):
    """Raised when one or more agent integration files fail to generate."""

    def __init__(
        self,
        errors: list[Exception],
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(f"generation completed with {len(errors)} errors", details)
        self.errors = list(errors)
