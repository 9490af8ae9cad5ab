"""Marker-delimited regions that DNASpec owns inside otherwise user-owned files."""

from __future__ import annotations

import logging
import os
from enum import Enum
from pathlib import Path

from .files import write_atomic

logger = logging.getLogger(__name__)

MANAGED_BLOCK_START = "<!-- DNASPEC:START -->"
MANAGED_BLOCK_END = "<!-- DNASPEC:END -->"

DEFAULT_HEADER = (
    "# DNASpec Agent Instructions\n\n"
    "This file contains DNA (Development Norms & Architecture) guidelines "
    "for AI assistants.\n\n"
)


class MergeOutcome(str, Enum):
    """What :func:`merge_managed_file` did to the target file."""

    CREATED = "created"
    APPENDED = "appended"
    REPLACED = "replaced"
    UNCHANGED = "unchanged"


def find_managed_block(content: str) -> tuple[int, int] | None:
    """Locate the managed region.

    The region runs from the first end marker that has a start marker
    before it back to the nearest such start marker. Stray markers outside
    that pair are left alone.

    Returns:
        ``(start, end)`` offsets covering both markers, or None when no end
        marker follows a start marker
    """
    end = content.find(MANAGED_BLOCK_END)
    while end != -1:
        start = content.rfind(MANAGED_BLOCK_START, 0, end)
        if start != -1:
            return start, end + len(MANAGED_BLOCK_END)
        end = content.find(MANAGED_BLOCK_END, end + len(MANAGED_BLOCK_END))
    return None


def format_managed_block(block: str) -> str:
    """Wrap ``block`` in the start and end markers."""
    if not block.endswith("\n"):
        block += "\n"
    return f"{MANAGED_BLOCK_START}\n{block}{MANAGED_BLOCK_END}"


def replace_managed_block(content: str, block: str) -> str:
    """Replace the managed region, or append one if there is none."""
    span = find_managed_block(content)
    if span is None:
        return append_managed_block(content, block)
    start, end = span
    return content[:start] + format_managed_block(block) + content[end:]


def append_managed_block(content: str, block: str) -> str:
    """Append a managed region after a blank separating line."""
    if content and not content.endswith("\n"):
        content += "\n"
    if content:
        content += "\n"
    return content + format_managed_block(block) + "\n"


def create_file_with_managed_block(block: str, header: str = DEFAULT_HEADER) -> str:
    """Content for a new file: ``header`` followed by the managed region."""
    return header + format_managed_block(block) + "\n"


def merge_managed_text(
    existing: str | None,
    block: str,
    header: str = DEFAULT_HEADER,
) -> str:
    """Merge ``block`` into ``existing`` text (None when the file is absent).

    Text outside the markers is preserved byte for byte, and merging the
    same block twice yields the same text as merging it once.
    """
    if existing is None:
        return create_file_with_managed_block(block, header)
    return replace_managed_block(existing, block)


def remove_managed_block(content: str) -> tuple[str, bool]:
    """Drop the managed region and the blank lines that surrounded it.

    Returns:
        The cleaned content and whether a region was found
    """
    span = find_managed_block(content)
    if span is None:
        return content, False

    start, end = span
    before = content[:start].rstrip("\n")
    after = content[end:].lstrip("\n")
    if before and after:
        cleaned = f"{before}\n\n{after}"
    else:
        cleaned = before or after
    if cleaned and not cleaned.endswith("\n"):
        cleaned += "\n"
    return cleaned, True


def merge_managed_file(
    path: str | os.PathLike[str],
    block: str,
    header: str = DEFAULT_HEADER,
) -> MergeOutcome:
    """Regenerate the managed region of the file at ``path``.

    The file is written atomically and only when its content changes.

    Raises:
        OSError: If the existing file cannot be read
        TransactionError: If the atomic write fails
    """
    target = Path(path)
    try:
        existing: str | None = target.read_text(encoding="utf-8")
    except FileNotFoundError:
        existing = None

    merged = merge_managed_text(existing, block, header)
    if existing is None:
        outcome = MergeOutcome.CREATED
    elif merged == existing:
        logger.debug("Managed block in %s already up to date", target)
        return MergeOutcome.UNCHANGED
    elif find_managed_block(existing) is None:
        outcome = MergeOutcome.APPENDED
    else:
        outcome = MergeOutcome.REPLACED

    target.parent.mkdir(parents=True, exist_ok=True)
    write_atomic(target, merged)
    logger.debug("Managed block in %s %s", target, outcome.value)
    return outcome


def strip_managed_file(path: str | os.PathLike[str]) -> bool:
    """Remove the managed region from the file at ``path``.

    Returns:
        True if a region was removed, False if the file or region is absent
    """
    target = Path(path)
    try:
        content = target.read_text(encoding="utf-8")
    except FileNotFoundError:
        return False

    cleaned, removed = remove_managed_block(content)
    if removed:
        write_atomic(target, cleaned)
        logger.debug("Removed managed block from %s", target)
    return removed
