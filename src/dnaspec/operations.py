"""Project-level operations behind the CLI commands.

Every mutating operation reads the project configuration, computes a new
one, copies files with :func:`~dnaspec.files.copy_batch` and persists the
result with :func:`~dnaspec.files.write_state`. None of them prompt: any
choice the user makes is passed in explicitly.
"""

from __future__ import annotations

import logging
import os
import shutil
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from .agents import (
    AGENT_TARGETS,
    CleanupSummary,
    GenerationSummary,
    cleanup_agent_files,
    generate_agent_files,
    generated_files_for_source,
    is_valid_agent,
    resolve_agents,
)
from .exceptions import (
    ConfigError,
    ConfinementError,
    CriticalStateError,
    DnaSpecError,
    SourceNotFoundError,
    TransactionError,
)
from .files import copy_batch
from .models import (
    ManifestGuideline,
    ProjectConfig,
    ProjectGuideline,
    ProjectSource,
    SourceType,
)
from .naming import derive_source_name, is_spinal_case
from .paths import make_relative_to_root, resolve_within_root, validate_local_path
from .project import (
    CONTENT_DIR,
    PROJECT_CONFIG_FILE,
    SUPPORTED_VERSION,
    config_path,
    content_dir,
    create_example_project_config,
    load_project_config,
    migrate_to_relative_paths,
    save_project_config,
)
from .reconcile import (
    AddNewPolicy,
    GuidelineComparison,
    compare_guidelines,
    extract_referenced_prompts,
    rebuild_source,
    select_guidelines_by_name,
    select_retained,
)
from .source import FetchedSource, fetch_for_record

logger = logging.getLogger(__name__)

Fetcher = Callable[[ProjectSource, Path], FetchedSource]


class AgentMode(str, Enum):
    """Where :func:`update_agents` takes the agent selection from."""

    SAVED = "saved"
    EXPLICIT = "explicit"


def load_project(project_root: str | os.PathLike[str]) -> ProjectConfig:
    """Load ``dnaspec.yaml`` from ``project_root``.

    Absolute local source paths inside the project come back relative and
    are written that way on the next save.
    """
    return migrate_to_relative_paths(load_project_config(config_path(project_root)), project_root)


def init_project(project_root: str | os.PathLike[str]) -> Path:
    """Create a starter ``dnaspec.yaml``.

    Raises:
        ConfigError: If the project is already initialized
    """
    return create_example_project_config(config_path(project_root))


def require_source(config: ProjectConfig, name: str) -> ProjectSource:
    """Find a source by name or raise :class:`SourceNotFoundError`."""
    source = config.find_source(name)
    if source is None:
        msg = f"Source not found: {name}"
        raise SourceNotFoundError(msg, details={"available": config.source_names()})
    return source


def _source_dir(project_root: str | os.PathLike[str], name: str) -> Path:
    # Names are used as directory names; anything else could escape dnaspec/.
    if not is_spinal_case(name):
        msg = f"invalid source name: '{name}' (expected spinal-case)"
        raise ConfigError(msg, details={"name": name})
    return content_dir(project_root, name)


def _persist(
    project_root: str | os.PathLike[str],
    config: ProjectConfig,
    changed: str,
) -> None:
    """Save ``config`` after files were already changed on disk."""
    path = config_path(project_root)
    try:
        save_project_config(path, config)
    except TransactionError as e:
        msg = (
            f"{changed}, but updating {PROJECT_CONFIG_FILE} failed: {e}. "
            f"Reconcile {PROJECT_CONFIG_FILE} by hand before running dnaspec again."
        )
        raise CriticalStateError(msg, details={"path": str(path)}) from e


def _prune_content(directory: Path, keep: Iterable[str]) -> list[Path]:
    """Best-effort removal of files under ``directory`` not listed in ``keep``."""
    if not directory.is_dir():
        return []
    wanted = {(directory / relative).resolve() for relative in keep}
    removed = []
    for candidate in sorted(directory.rglob("*"), reverse=True):
        try:
            if candidate.is_dir():
                if not any(candidate.iterdir()):
                    candidate.rmdir()
            elif candidate.resolve() not in wanted:
                candidate.unlink()
                removed.append(candidate)
                logger.info("Removed %s (no longer selected)", candidate)
        except OSError as e:
            logger.warning("Could not prune %s: %s", candidate, e)
    return removed


@dataclass(frozen=True)
class AddReport:
    """Outcome of :func:`add_source`."""

    config: ProjectConfig
    source: ProjectSource
    destination: Path
    copied: list[Path] = field(default_factory=list)
    dry_run: bool = False
    absolute_path: bool = False


def build_source_entry(
    project_root: str | os.PathLike[str],
    config: ProjectConfig,
    fetched: FetchedSource,
    selected: Sequence[ManifestGuideline],
    name: str | None = None,
) -> ProjectSource:
    """Build the configuration record for a new source.

    Raises:
        ConfigError: If the name is not spinal-case or is already taken
    """
    source_name = name or derive_source_name(fetched.url, fetched.path)
    if not is_spinal_case(source_name):
        msg = (
            f"invalid source name: '{source_name}' "
            "(expected spinal-case, use --name to choose one)"
        )
        raise ConfigError(msg, details={"name": source_name})
    if config.find_source(source_name) is not None:
        msg = (
            f"source with name '{source_name}' already exists, "
            "use --name to specify a different name"
        )
        raise ConfigError(msg, details={"name": source_name})

    path = fetched.path
    if fetched.source_type == SourceType.LOCAL_PATH and path:
        try:
            path = make_relative_to_root(project_root, path)
        except ConfinementError:
            logger.warning("Local source %s is outside the project; storing absolute path", path)

    return ProjectSource(
        name=source_name,
        source_type=fetched.source_type,
        url=fetched.url,
        path=path,
        ref=fetched.ref,
        commit=fetched.commit,
        guidelines=[ProjectGuideline.from_manifest(g) for g in selected],
        prompts=extract_referenced_prompts(selected, fetched.manifest.prompts),
    )


def add_source(
    project_root: str | os.PathLike[str],
    config: ProjectConfig,
    fetched: FetchedSource,
    selected: Iterable[str],
    name: str | None = None,
    dry_run: bool = False,
) -> AddReport:
    """Add a fetched source with the selected guidelines.

    The selected guideline files and the prompts they reference are copied
    to ``dnaspec/<name>/`` as one batch, then the configuration is saved.

    Raises:
        SelectionError: If a selected name is not in the manifest
        ConfigError: If the source name is invalid or taken
        TransactionError: If copying fails (nothing is left behind)
        CriticalStateError: If files were copied but the config was not saved
    """
    guidelines = select_guidelines_by_name(fetched.manifest, selected)
    source = build_source_entry(project_root, config, fetched, guidelines, name)
    destination = _source_dir(project_root, source.name)
    absolute = bool(source.path) and os.path.isabs(source.path or "")

    if dry_run:
        return AddReport(config, source, destination, dry_run=True, absolute_path=absolute)

    logger.info("Copying %d files to %s", len(source.content_files()), destination)
    copied = copy_batch(fetched.content_root, destination, source.content_files())
    updated = config.with_source(source)
    _persist(project_root, updated, f"Files were copied to {destination}")
    logger.info("Added source %s", source.name)
    return AddReport(updated, source, destination, copied, absolute_path=absolute)


@dataclass(frozen=True)
class UpdatePlan:
    """What an update of one source would change."""

    source: ProjectSource
    fetched: FetchedSource
    comparison: GuidelineComparison | None

    @property
    def up_to_date(self) -> bool:
        return self.comparison is None


def plan_update(source: ProjectSource, fetched: FetchedSource) -> UpdatePlan:
    """Compare a recorded source with its freshly fetched snapshot.

    An unchanged, non-empty revision marker means the source is up to date
    and no comparison is made.
    """
    if source.commit and fetched.commit == source.commit:
        logger.debug("Source %s already at %s", source.name, source.commit)
        return UpdatePlan(source, fetched, None)
    comparison = compare_guidelines(source.guidelines, fetched.manifest.guidelines)
    return UpdatePlan(source, fetched, comparison)


@dataclass(frozen=True)
class ApplyReport:
    """Outcome of :func:`apply_update`."""

    config: ProjectConfig
    source: ProjectSource
    copied: list[Path] = field(default_factory=list)
    pruned: list[Path] = field(default_factory=list)


def apply_update(
    project_root: str | os.PathLike[str],
    config: ProjectConfig,
    name: str,
    fetched: FetchedSource,
    retained: Iterable[str],
) -> ApplyReport:
    """Rebuild a source from ``fetched`` keeping the ``retained`` guidelines.

    Files are recopied even when metadata is unchanged. Once the config is
    saved, files under ``dnaspec/<name>/`` that are no longer referenced are
    removed on a best-effort basis.

    Raises:
        SourceNotFoundError: If ``name`` is not configured
        TransactionError: If copying fails (nothing is left behind)
        CriticalStateError: If files were copied but the config was not saved
    """
    current = require_source(config, name)
    commit = fetched.commit if current.source_type == SourceType.GIT_REPO else None
    source = rebuild_source(current, fetched.manifest, retained, commit=commit)
    destination = _source_dir(project_root, name)

    copied = copy_batch(fetched.content_root, destination, source.content_files())
    updated = config.with_source(source)
    _persist(project_root, updated, f"Files were copied to {destination}")
    pruned = _prune_content(destination, source.content_files())
    logger.info("Updated source %s", name)
    return ApplyReport(updated, source, copied, pruned)


@dataclass(frozen=True)
class SourceUpdateResult:
    """Per-source outcome inside :class:`UpdateSummary`."""

    name: str
    previous_commit: str | None = None
    commit: str | None = None
    comparison: GuidelineComparison | None = None
    added: tuple[str, ...] = ()
    copied: int = 0
    pruned: int = 0
    dry_run: bool = False

    @property
    def up_to_date(self) -> bool:
        return self.comparison is None


@dataclass
class UpdateSummary:
    """Outcome of :func:`update_sources`; failures do not stop other sources."""

    config: ProjectConfig
    results: list[SourceUpdateResult] = field(default_factory=list)
    errors: dict[str, DnaSpecError] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.errors


def update_sources(
    project_root: str | os.PathLike[str],
    config: ProjectConfig,
    names: Sequence[str],
    add_new: AddNewPolicy = AddNewPolicy.NONE,
    confirm_new: Callable[[Sequence[str]], Iterable[str]] | None = None,
    dry_run: bool = False,
    fetcher: Fetcher = fetch_for_record,
) -> UpdateSummary:
    """Update each named source from its origin.

    Errors are collected per source. A :class:`CriticalStateError` is raised
    immediately since continuing could compound the damage.
    """
    root = Path(project_root)
    summary = UpdateSummary(config=config)

    for name in names:
        try:
            result = _update_one(root, summary, name, add_new, confirm_new, dry_run, fetcher)
        except CriticalStateError:
            raise
        except DnaSpecError as e:
            logger.warning("Update of %s failed: %s", name, e)
            summary.errors[name] = e
            continue
        summary.results.append(result)

    return summary


def _update_one(
    root: Path,
    summary: UpdateSummary,
    name: str,
    add_new: AddNewPolicy,
    confirm_new: Callable[[Sequence[str]], Iterable[str]] | None,
    dry_run: bool,
    fetcher: Fetcher,
) -> SourceUpdateResult:
    record = require_source(summary.config, name)
    with fetcher(record, root) as fetched:
        plan = plan_update(record, fetched)
        if plan.up_to_date:
            return SourceUpdateResult(name, record.commit, record.commit)

        comparison = plan.comparison
        retained = select_retained(comparison, add_new, confirm_new)
        added = tuple(n for n in retained if n in comparison.new)
        if dry_run:
            return SourceUpdateResult(
                name, record.commit, fetched.commit, comparison, added, dry_run=True
            )

        report = apply_update(root, summary.config, name, fetched, retained)
        summary.config = report.config
        return SourceUpdateResult(
            name,
            record.commit,
            report.source.commit,
            comparison,
            added,
            copied=len(report.copied),
            pruned=len(report.pruned),
        )


@dataclass(frozen=True)
class AgentsReport:
    """Outcome of :func:`update_agents`."""

    config: ProjectConfig
    agents: list[str] = field(default_factory=list)
    generation: GenerationSummary | None = None
    cleanup: CleanupSummary | None = None


def update_agents(
    project_root: str | os.PathLike[str],
    config: ProjectConfig,
    mode: AgentMode = AgentMode.SAVED,
    agent_ids: Sequence[str] | None = None,
) -> AgentsReport:
    """Generate agent integration files.

    With no sources configured, the managed blocks are stripped from
    AGENTS.md and CLAUDE.md instead. :attr:`AgentMode.SAVED` uses the agents
    stored in the configuration; :attr:`AgentMode.EXPLICIT` stores
    ``agent_ids`` first.

    Raises:
        ConfigError: If no agents are saved (SAVED) or an id is unknown
        GenerationError: If any file failed to generate
    """
    root = Path(project_root)
    if not config.sources:
        logger.info("No sources configured, removing managed blocks")
        return AgentsReport(config, list(config.agents), cleanup=cleanup_agent_files(root))

    if mode == AgentMode.SAVED:
        if not config.agents:
            msg = "no agents configured, run without --no-ask to select agents"
            raise ConfigError(msg)
        selected = list(config.agents)
    else:
        selected = [t.id for t in resolve_agents(agent_ids or [])]
        config = config.with_agents(selected)
        save_project_config(config_path(root), config)

    generation = generate_agent_files(root, config, selected)
    return AgentsReport(config, selected, generation=generation)


@dataclass(frozen=True)
class SyncReport:
    """Outcome of :func:`sync_project`."""

    update: UpdateSummary
    agents: AgentsReport | None = None


def sync_project(
    project_root: str | os.PathLike[str],
    dry_run: bool = False,
    fetcher: Fetcher = fetch_for_record,
) -> SyncReport:
    """Update every source without adding new guidelines, then regenerate agent files.

    Never prompts. Agent files are not regenerated when any source failed
    or on a dry run.
    """
    config = load_project(project_root)
    summary = update_sources(
        project_root,
        config,
        config.source_names(),
        add_new=AddNewPolicy.NONE,
        dry_run=dry_run,
        fetcher=fetcher,
    )
    if not summary.ok or dry_run or not config.sources:
        return SyncReport(summary)

    return SyncReport(summary, update_agents(project_root, summary.config, AgentMode.SAVED))


@dataclass(frozen=True)
class RemovalPlan:
    """What :func:`remove_source` would delete."""

    name: str
    content_dir: Path
    content_exists: bool
    guideline_files: int
    prompt_files: int
    generated_files: list[Path] = field(default_factory=list)


def describe_removal(
    project_root: str | os.PathLike[str],
    config: ProjectConfig,
    name: str,
) -> RemovalPlan:
    """Inventory of the files belonging to source ``name``."""
    require_source(config, name)
    directory = _source_dir(project_root, name)
    exists = directory.is_dir()

    def count(sub: str) -> int:
        return sum(1 for _ in (directory / sub).glob("*")) if exists else 0

    return RemovalPlan(
        name=name,
        content_dir=directory,
        content_exists=exists,
        guideline_files=count("guidelines"),
        prompt_files=count("prompts"),
        generated_files=generated_files_for_source(project_root, name),
    )


@dataclass(frozen=True)
class RemovalReport:
    """Outcome of :func:`remove_source`."""

    config: ProjectConfig
    deleted_files: int
    content_dir_removed: bool


def remove_source(
    project_root: str | os.PathLike[str],
    config: ProjectConfig,
    name: str,
) -> RemovalReport:
    """Delete a source's generated files and content, then drop it from the config.

    Missing files are skipped, so running it again after a
    :class:`TransactionError` finishes a partial removal.

    Raises:
        SourceNotFoundError: If ``name`` is not configured
        TransactionError: If a file cannot be deleted (config unchanged)
        CriticalStateError: If files were deleted but the config was not saved
    """
    plan = describe_removal(project_root, config, name)

    deleted = 0
    for generated in plan.generated_files:
        try:
            generated.unlink()
        except FileNotFoundError:
            continue
        except OSError as e:
            msg = f"failed to delete {generated}: {e}"
            raise TransactionError(msg, details={"path": str(generated)}) from e
        deleted += 1

    if plan.content_exists:
        try:
            shutil.rmtree(plan.content_dir)
        except OSError as e:
            msg = f"failed to delete source directory {plan.content_dir}: {e}"
            raise TransactionError(msg, details={"path": str(plan.content_dir)}) from e

    updated = config.without_source(name)
    _persist(project_root, updated, f"Files of source '{name}' were deleted")
    logger.info("Removed source %s", name)
    return RemovalReport(updated, deleted, plan.content_exists)


@dataclass
class ProjectValidationReport:
    """Errors, warnings and checked files from :func:`validate_project`."""

    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    validated_files: list[str] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.errors


def validate_project(
    project_root: str | os.PathLike[str],
    config: ProjectConfig,
) -> ProjectValidationReport:
    """Check a loaded configuration against the project directory."""
    root = Path(project_root)
    report = ProjectValidationReport()

    if config.version != SUPPORTED_VERSION:
        report.errors.append(
            f"Unsupported config version: {config.version} "
            f"(only version {SUPPORTED_VERSION} is supported)"
        )

    seen: set[str] = set()
    for source in config.sources:
        if source.name in seen:
            report.errors.append(f"Duplicate source name: '{source.name}'")
        seen.add(source.name)
        _validate_source(root, source, report)

    known = ", ".join(t.id for t in AGENT_TARGETS)
    for agent_id in config.agents:
        if not is_valid_agent(agent_id):
            report.errors.append(f"Unknown agent ID: '{agent_id}' (recognized: {known})")

    return report


def _validate_source(root: Path, source: ProjectSource, report: ProjectValidationReport) -> None:
    kind = source.source_type.value
    if not source.name:
        report.errors.append("Source missing required field: name")
    elif not is_spinal_case(source.name):
        report.errors.append(f"Source '{source.name}' has an invalid name (expected spinal-case)")
        return

    if source.source_type == SourceType.GIT_REPO:
        if not source.url:
            report.errors.append(f"Source '{source.name}' ({kind}) missing required field: url")
        if not source.commit:
            report.errors.append(f"Source '{source.name}' ({kind}) missing required field: commit")
    elif not source.path:
        report.errors.append(f"Source '{source.name}' ({kind}) missing required field: path")
    elif os.path.isabs(source.path):
        report.warnings.append(
            f"Source '{source.name}' uses absolute path: {source.path}\n"
            f"    Consider manually editing {PROJECT_CONFIG_FILE} to use a relative path"
        )
    else:
        try:
            validate_local_path(root, source.path)
        except ConfinementError as e:
            report.errors.append(f"Source '{source.name}' path validation failed: {e}")

    if not source.name:
        return
    source_dir = content_dir(root, source.name)
    for relative in source.content_files():
        display = f"{CONTENT_DIR}/{source.name}/{relative}"
        try:
            exists = resolve_within_root(source_dir, relative).is_file()
        except ConfinementError:
            report.errors.append(f"File escapes source directory: {display}")
            continue
        if exists:
            report.validated_files.append(display)
        else:
            report.errors.append(f"File not found: {display}")
