"""Naming rules for sources, guidelines and prompts."""

from __future__ import annotations

import re
from pathlib import PurePath
from urllib.parse import urlparse

SPINAL_CASE = re.compile(r"^[a-z][a-z0-9]*(-[a-z0-9]+)*$")

_NON_ALNUM = re.compile(r"[^a-z0-9]+")


def is_spinal_case(name: str) -> bool:
    """Lowercase words joined by single hyphens, starting with a letter."""
    return bool(SPINAL_CASE.match(name))


def sanitize_name(name: str) -> str:
    """Turn an arbitrary string into a source name."""
    return _NON_ALNUM.sub("-", name.lower()).strip("-")


def extract_repo_name(git_url: str) -> str:
    """Repository name from an HTTPS or SSH git URL.

    ``https://github.com/company/dna-guidelines.git`` -> ``dna-guidelines``
    ``git@github.com:company/dna.git`` -> ``dna``
    """
    if git_url.startswith("git@"):
        _, _, path = git_url.partition(":")
    else:
        path = urlparse(git_url).path or git_url

    name = path.rstrip("/").split("/")[-1]
    if name.endswith(".git"):
        name = name[: -len(".git")]
    return name or "unknown"


def derive_source_name(url: str | None = None, path: str | None = None) -> str:
    """Derive a default source name from a git URL or a local path."""
    if url:
        raw = extract_repo_name(url)
    elif path:
        raw = PurePath(path).name
    else:
        raw = ""
    return sanitize_name(raw)
