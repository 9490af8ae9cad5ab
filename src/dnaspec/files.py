"""All-or-nothing file copies and atomic writes."""

from __future__ import annotations

import logging
import os
import shutil
import stat
import tempfile
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .exceptions import ConfinementError, TransactionError
from .paths import resolve_within_root

logger = logging.getLogger(__name__)

TEMP_PREFIX = ".dnaspec-tmp-"


def write_atomic(path: str | os.PathLike[str], content: str) -> None:
    """Write ``content`` to ``path`` via a sibling temp file and a rename.

    A reader sees either the old file or the complete new one. On failure
    the temp file is removed and the previous file is left untouched.

    Raises:
        TransactionError: If the temp file cannot be written or renamed
    """
    target = Path(path)
    try:
        fd, tmp_name = tempfile.mkstemp(prefix=TEMP_PREFIX, dir=target.parent)
    except OSError as e:
        msg = f"Failed to create temp file for {target}: {e}"
        raise TransactionError(msg, details={"path": str(target)}) from e

    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="") as handle:
            handle.write(content)
            handle.flush()
            os.fsync(handle.fileno())
        os.chmod(tmp_name, _target_mode(target))
        os.replace(tmp_name, target)
    except OSError as e:
        try:
            os.unlink(tmp_name)
        except FileNotFoundError:
            pass
        msg = f"Failed to write {target}: {e}"
        raise TransactionError(msg, details={"path": str(target)}) from e


def _target_mode(target: Path) -> int:
    # mkstemp creates 0600 files; keep the mode a plain write would give.
    try:
        return stat.S_IMODE(os.stat(target).st_mode)
    except FileNotFoundError:
        umask = os.umask(0)
        os.umask(umask)
        return 0o666 & ~umask


def dump_yaml(document: Mapping[str, Any]) -> str:
    """Deterministic YAML rendering used for every persisted document."""
    return yaml.safe_dump(
        dict(document),
        sort_keys=False,
        default_flow_style=False,
        allow_unicode=True,
    )


def write_state(path: str | os.PathLike[str], document: Mapping[str, Any]) -> None:
    """Serialize ``document`` as YAML and persist it atomically."""
    write_atomic(path, dump_yaml(document))
    logger.debug("Persisted state to %s", path)


@dataclass
class _CopyJournal:
    """Undo log for a single :func:`copy_batch` call."""

    created_files: list[Path] = field(default_factory=list)
    overwritten: dict[Path, bytes] = field(default_factory=dict)
    created_dirs: list[Path] = field(default_factory=list)

    def make_parents(self, target: Path) -> None:
        missing = []
        parent = target.parent
        while not parent.exists():
            missing.append(parent)
            parent = parent.parent
        for directory in reversed(missing):
            directory.mkdir()
            self.created_dirs.append(directory)

    def record(self, target: Path) -> None:
        if target in self.created_files or target in self.overwritten:
            return
        if target.exists():
            self.overwritten[target] = target.read_bytes()
        else:
            self.created_files.append(target)

    def rollback(self) -> None:
        """Best-effort restore of the destination tree."""
        for target in reversed(self.created_files):
            try:
                target.unlink()
            except FileNotFoundError:
                pass
            except OSError as e:
                logger.warning("Rollback could not remove %s: %s", target, e)
        for target, original in self.overwritten.items():
            try:
                target.write_bytes(original)
            except OSError as e:
                logger.warning("Rollback could not restore %s: %s", target, e)
        for directory in reversed(self.created_dirs):
            try:
                directory.rmdir()
            except OSError as e:
                logger.warning("Rollback could not remove directory %s: %s", directory, e)


def copy_batch(
    source_root: str | os.PathLike[str],
    dest_root: str | os.PathLike[str],
    files: Iterable[str],
) -> list[Path]:
    """Copy every relative path in ``files`` from ``source_root`` to ``dest_root``.

    Destination directories are created as needed and existing destination
    files are overwritten. Either every file is copied, or the destination
    is restored to its state before the call.

    Args:
        source_root: Directory the files are read from
        dest_root: Directory the files are written to
        files: Paths relative to both roots

    Returns:
        The destination paths written, in order

    Raises:
        TransactionError: If any file fails to copy (after rollback)
    """
    dest_root = Path(dest_root)
    journal = _CopyJournal()
    written: list[Path] = []
    relative = "<destination root>"

    try:
        journal.make_parents(dest_root / "_")
        seen: set[Path] = set()
        for relative in files:
            source = resolve_within_root(source_root, relative)
            target = resolve_within_root(dest_root, relative)
            if target in seen:
                continue
            seen.add(target)
            journal.make_parents(target)
            journal.record(target)
            shutil.copyfile(source, target)
            written.append(target)
            logger.debug("Copied %s -> %s", source, target)
    except (OSError, ConfinementError) as e:
        journal.rollback()
        msg = f"Failed to copy {relative}: {e}"
        raise TransactionError(
            msg,
            details={"source_root": str(source_root), "dest_root": str(dest_root)},
        ) from e

    return written
