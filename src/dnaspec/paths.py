"""Confinement of filesystem paths to a project root."""

from __future__ import annotations

import logging
import os
from pathlib import Path, PurePath

from .exceptions import ConfinementError, PathTraversalError

logger = logging.getLogger(__name__)


def _clean(path: str | os.PathLike[str]) -> Path:
    """Absolute, lexically normalized form of ``path`` (no filesystem access)."""
    return Path(os.path.normpath(os.path.abspath(path)))


def _real(path: Path) -> Path:
    """Resolve symlinks; components that do not exist yet are kept as-is."""
    try:
        return path.resolve(strict=False)
    except (OSError, RuntimeError):
        # Symlink loops and similar; fall back to the cleaned form.
        logger.debug("Could not resolve %s, using cleaned path", path)
        return path


def is_within(parent: str | os.PathLike[str], child: str | os.PathLike[str]) -> bool:
    """Whether ``child`` equals ``parent`` or lies underneath it.

    Both paths must already be cleaned and resolved. The prefix test uses a
    trailing separator so ``/root`` never contains ``/rootless``.
    """
    parent_str = os.fspath(parent)
    child_str = os.fspath(child)
    if parent_str == child_str:
        return True
    if not parent_str.endswith(os.sep):
        parent_str += os.sep
    return child_str.startswith(parent_str)


def has_parent_segment(path: str | os.PathLike[str]) -> bool:
    """Whether ``path`` contains a ``..`` component."""
    return ".." in PurePath(path).parts


def resolve_within_root(
    root: str | os.PathLike[str],
    candidate: str | os.PathLike[str],
) -> Path:
    """Resolve ``candidate`` (absolute or root-relative) inside ``root``.

    Args:
        root: Directory the result must stay within
        candidate: Absolute path, or path relative to ``root``

    Returns:
        The absolute, symlink-resolved path

    Raises:
        PathTraversalError: If ``..`` segments climb above the root
        ConfinementError: If the resolved path (possibly through a symlink)
            lies outside the root
    """
    clean_root = _clean(root)
    joined = Path(candidate) if Path(candidate).is_absolute() else clean_root / candidate
    lexical = _clean(joined)

    if has_parent_segment(candidate) and not is_within(clean_root, lexical):
        msg = f"path traversal outside project root: {candidate}"
        raise PathTraversalError(
            msg,
            details={"root": str(clean_root), "path": os.fspath(candidate)},
        )

    real_root = _real(clean_root)
    real_path = _real(lexical)
    if not is_within(real_root, real_path):
        msg = f"path escapes project root: {candidate}"
        raise ConfinementError(
            msg,
            details={"root": str(real_root), "path": str(real_path)},
        )

    return real_path


def make_relative_to_root(
    root: str | os.PathLike[str],
    absolute_path: str | os.PathLike[str],
) -> str:
    """Express ``absolute_path`` relative to ``root``.

    Returns:
        The relative path, or ``"."`` when the path is the root itself

    Raises:
        ConfinementError: If the path lies outside the root
    """
    real_root = _real(_clean(root))
    real_path = _real(_clean(absolute_path))

    if not is_within(real_root, real_path):
        msg = f"path is outside project root: {absolute_path}"
        raise ConfinementError(
            msg,
            details={"root": str(real_root), "path": str(real_path)},
        )

    return os.path.relpath(real_path, real_root)


def validate_local_path(
    root: str | os.PathLike[str],
    path: str | os.PathLike[str],
) -> None:
    """Raise if ``path`` (absolute or relative) is not inside ``root``."""
    resolve_within_root(root, path)
