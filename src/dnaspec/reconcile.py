"""Reconciliation of recorded guideline metadata against a fresh manifest."""

from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from enum import Enum

from .exceptions import SelectionError
from .models import (
    Manifest,
    ManifestGuideline,
    ManifestPrompt,
    ProjectGuideline,
    ProjectPrompt,
    ProjectSource,
)


@dataclass(frozen=True)
class GuidelineComparison:
    """Partition of guideline names between project state and a manifest.

    ``unchanged``, ``updated`` and ``orphaned`` follow project order;
    ``new`` follows manifest order.
    """

    unchanged: tuple[str, ...] = ()
    updated: tuple[str, ...] = ()
    new: tuple[str, ...] = ()
    orphaned: tuple[str, ...] = ()

    @property
    def has_changes(self) -> bool:
        return bool(self.updated or self.new or self.orphaned)


class AddNewPolicy(str, Enum):
    """How guidelines that appear only in the manifest are handled."""

    ASK = "ask"
    ALL = "all"
    NONE = "none"


def compare_guidelines(
    current: Sequence[ProjectGuideline],
    manifest_guidelines: Sequence[ManifestGuideline],
) -> GuidelineComparison:
    """Partition ``current`` and ``manifest_guidelines`` by name.

    Same-named entries are unchanged when description, scenarios and prompt
    references (both lists in order) are equal. File bodies are not compared.
    """
    by_name = {g.name: g for g in manifest_guidelines}
    current_names = {g.name for g in current}

    unchanged: list[str] = []
    updated: list[str] = []
    orphaned: list[str] = []
    for guideline in current:
        latest = by_name.get(guideline.name)
        if latest is None:
            orphaned.append(guideline.name)
        elif guideline.same_metadata(latest):
            unchanged.append(guideline.name)
        else:
            updated.append(guideline.name)

    new = [g.name for g in manifest_guidelines if g.name not in current_names]

    return GuidelineComparison(
        unchanged=tuple(unchanged),
        updated=tuple(updated),
        new=tuple(new),
        orphaned=tuple(orphaned),
    )


def select_retained(
    comparison: GuidelineComparison,
    add_new: AddNewPolicy = AddNewPolicy.NONE,
    confirm_new: Callable[[Sequence[str]], Iterable[str]] | None = None,
) -> list[str]:
    """Names to keep after an update.

    Unchanged and updated guidelines are always kept and orphaned ones are
    dropped. New guidelines are kept according to ``add_new``; with
    :attr:`AddNewPolicy.ASK` the ``confirm_new`` callable receives the new
    names and returns the ones to keep.

    Raises:
        ValueError: If ``add_new`` is ASK and no ``confirm_new`` is given
        SelectionError: If ``confirm_new`` returns a name that is not new
    """
    retained = [*comparison.unchanged, *comparison.updated]
    if not comparison.new or add_new == AddNewPolicy.NONE:
        return retained
    if add_new == AddNewPolicy.ALL:
        return retained + list(comparison.new)

    if confirm_new is None:
        msg = "add_new=ask requires a confirm_new callback"
        raise ValueError(msg)

    chosen = list(dict.fromkeys(confirm_new(comparison.new)))
    unknown = [name for name in chosen if name not in comparison.new]
    if unknown:
        msg = f"Not new guidelines: {', '.join(unknown)}"
        raise SelectionError(msg, details={"names": unknown})
    return retained + chosen


def select_guidelines_by_name(
    manifest: Manifest,
    names: Iterable[str],
) -> list[ManifestGuideline]:
    """Manifest entries for ``names``, in manifest order.

    Raises:
        SelectionError: If any name is not in the manifest
    """
    wanted = list(dict.fromkeys(names))
    available = set(manifest.guideline_names())
    missing = [name for name in wanted if name not in available]
    if missing:
        msg = f"Guidelines not found in manifest: {', '.join(missing)}"
        raise SelectionError(
            msg,
            details={"missing": missing, "available": sorted(available)},
        )
    return [g for g in manifest.guidelines if g.name in wanted]


def extract_referenced_prompts(
    guidelines: Iterable[ManifestGuideline],
    prompts: Sequence[ManifestPrompt],
) -> list[ProjectPrompt]:
    """Prompts referenced by at least one of ``guidelines``, in manifest order."""
    referenced = {name for g in guidelines for name in g.prompts}
    return [ProjectPrompt.from_manifest(p) for p in prompts if p.name in referenced]


def rebuild_source(
    source: ProjectSource,
    manifest: Manifest,
    retained: Iterable[str],
    commit: str | None = None,
) -> ProjectSource:
    """Return ``source`` with guidelines and prompts rebuilt from ``manifest``.

    Every retained guideline takes the manifest's current metadata, and the
    prompt list becomes exactly the prompts those guidelines reference.
    Previously recorded guidelines keep their position; newly retained ones
    follow in manifest order. Retained names missing from the manifest are
    ignored.
    """
    keep = set(retained)
    recorded = source.guideline_names()
    order = [name for name in recorded if name in keep]
    order += [name for name in manifest.guideline_names() if name in keep and name not in recorded]
    selected = [g for g in (manifest.guideline(name) for name in order) if g is not None]
    return source.model_copy(
        update={
            "guidelines": [ProjectGuideline.from_manifest(g) for g in selected],
            "prompts": extract_referenced_prompts(selected, manifest.prompts),
            "commit": commit if commit is not None else source.commit,
        }
    )
