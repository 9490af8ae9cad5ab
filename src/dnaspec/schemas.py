"""JSON schemas for the structural validation of YAML documents."""

from __future__ import annotations

from typing import Any

import jsonschema

from .exceptions import ValidationIssue

_STRING_LIST: dict[str, Any] = {"type": ["array", "null"], "items": {"type": "string"}}

MANIFEST_SCHEMA: dict[str, Any] = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "title": "DNASpec Manifest",
    "type": "object",
    "properties": {
        "version": {"type": "integer"},
        "guidelines": {
            "type": ["array", "null"],
            "items": {
                "type": "object",
                "properties": {
                    "name": {"type": "string"},
                    "file": {"type": "string"},
                    "description": {"type": "string"},
                    "applicable_scenarios": _STRING_LIST,
                    "prompts": _STRING_LIST,
                },
            },
        },
        "prompts": {
            "type": ["array", "null"],
            "items": {
                "type": "object",
                "properties": {
                    "name": {"type": "string"},
                    "file": {"type": "string"},
                    "description": {"type": "string"},
                },
            },
        },
    },
}

PROJECT_SCHEMA: dict[str, Any] = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "title": "DNASpec Project Configuration",
    "type": "object",
    "required": ["version"],
    "properties": {
        "version": {"type": "integer"},
        "agents": {"type": ["array", "null"], "items": {"type": "string"}},
        "sources": {
            "type": ["array", "null"],
            "items": {
                "type": "object",
                "required": ["name", "type"],
                "properties": {
                    "name": {"type": "string"},
                    "type": {"enum": ["git-repo", "local-path"]},
                    "url": {"type": "string"},
                    "path": {"type": "string"},
                    "ref": {"type": "string"},
                    "commit": {"type": "string"},
                    "guidelines": {
                        "type": ["array", "null"],
                        "items": {
                            "type": "object",
                            "required": ["name", "file"],
                            "properties": {
                                "name": {"type": "string"},
                                "file": {"type": "string"},
                                "description": {"type": "string"},
                                "applicable_scenarios": _STRING_LIST,
                                "prompts": _STRING_LIST,
                            },
                        },
                    },
                    "prompts": {
                        "type": ["array", "null"],
                        "items": {
                            "type": "object",
                            "required": ["name", "file"],
                            "properties": {
                                "name": {"type": "string"},
                                "file": {"type": "string"},
                                "description": {"type": "string"},
                            },
                        },
                    },
                },
            },
        },
    },
}


def _field_path(path: Any) -> str:
    """Render a jsonschema error path as ``guidelines[0].name``."""
    rendered = ""
    for part in path:
        if isinstance(part, int):
            rendered += f"[{part}]"
        elif rendered:
            rendered += f".{part}"
        else:
            rendered = str(part)
    return rendered


def schema_issues(data: Any, schema: dict[str, Any]) -> list[ValidationIssue]:
    """Collect every structural violation of ``data`` against ``schema``."""
    validator = jsonschema.Draft7Validator(schema)
    errors = sorted(validator.iter_errors(data), key=lambda e: list(map(str, e.absolute_path)))
    return [
        ValidationIssue(field=_field_path(error.absolute_path), message=error.message)
        for error in errors
    ]
