"""AI agent integration targets and generation of their files."""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path, PurePosixPath

from .exceptions import ConfigError, DnaSpecError, GenerationError
from .files import write_atomic
from .managed import (
    MANAGED_BLOCK_END,
    MANAGED_BLOCK_START,
    MergeOutcome,
    merge_managed_file,
    strip_managed_file,
)
from .models import ProjectConfig, ProjectPrompt
from .paths import resolve_within_root
from .project import CONTENT_DIR, content_dir

logger = logging.getLogger(__name__)

AGENTS_MD = "AGENTS.md"
CLAUDE_MD = "CLAUDE.md"

# Source and prompt names are spinal-case and never contain "--".
NAME_SEPARATOR = "--"


class TemplateKind(str, Enum):
    """Front-matter layout of a generated prompt file."""

    CLAUDE_COMMAND = "claude-command"
    COPILOT_PROMPT = "copilot-prompt"
    CURSOR_COMMAND = "cursor-command"
    WINDSURF_WORKFLOW = "windsurf-workflow"
    ANTIGRAVITY_WORKFLOW = "antigravity-workflow"


@dataclass(frozen=True)
class AgentTarget:
    """A supported AI agent and where its prompt files go."""

    id: str
    display_name: str
    description: str
    directory: str
    file_template: str
    template: TemplateKind
    artifact: str

    def file_name(self, source_name: str, prompt_name: str) -> str:
        return self.file_template.format(key=f"{source_name}{NAME_SEPARATOR}{prompt_name}")


AGENT_TARGETS: tuple[AgentTarget, ...] = (
    AgentTarget(
        id="antigravity",
        display_name="Antigravity",
        description="AI development assistant",
        directory=".agent/workflows",
        file_template="dnaspec-{key}.md",
        template=TemplateKind.ANTIGRAVITY_WORKFLOW,
        artifact="Antigravity workflow",
    ),
    AgentTarget(
        id="claude-code",
        display_name="Claude Code",
        description="Anthropic's AI assistant with slash commands",
        directory=".claude/commands/dnaspec",
        file_template="{key}.md",
        template=TemplateKind.CLAUDE_COMMAND,
        artifact="Claude command",
    ),
    AgentTarget(
        id="cursor",
        display_name="Cursor",
        description="AI-first code editor",
        directory=".cursor/commands",
        file_template="dnaspec-{key}.md",
        template=TemplateKind.CURSOR_COMMAND,
        artifact="Cursor command",
    ),
    AgentTarget(
        id="github-copilot",
        display_name="GitHub Copilot",
        description="GitHub's AI pair programmer",
        directory=".github/prompts",
        file_template="dnaspec-{key}.prompt.md",
        template=TemplateKind.COPILOT_PROMPT,
        artifact="Copilot prompt",
    ),
    AgentTarget(
        id="windsurf",
        display_name="Windsurf",
        description="AI-powered code editor",
        directory=".windsurf/workflows",
        file_template="dnaspec-{key}.md",
        template=TemplateKind.WINDSURF_WORKFLOW,
        artifact="Windsurf workflow",
    ),
)


def get_agent(agent_id: str) -> AgentTarget | None:
    """Look up a target by id."""
    for target in AGENT_TARGETS:
        if target.id == agent_id:
            return target
    return None


def is_valid_agent(agent_id: str) -> bool:
    return get_agent(agent_id) is not None


def resolve_agents(agent_ids: Iterable[str]) -> list[AgentTarget]:
    """Targets for ``agent_ids`` in table order.

    Raises:
        ConfigError: If any id is unknown
    """
    wanted = list(agent_ids)
    unknown = [agent_id for agent_id in wanted if not is_valid_agent(agent_id)]
    if unknown:
        known = ", ".join(t.id for t in AGENT_TARGETS)
        msg = f"Unknown agent(s): {', '.join(unknown)} (available: {known})"
        raise ConfigError(msg, details={"unknown": unknown})
    return [t for t in AGENT_TARGETS if t.id in wanted]


def output_for(
    target: AgentTarget,
    source_name: str,
    prompt_name: str,
) -> tuple[PurePosixPath, TemplateKind]:
    """Project-relative output path and template kind for one prompt."""
    path = PurePosixPath(target.directory) / target.file_name(source_name, prompt_name)
    return path, target.template


def source_glob(target: AgentTarget, source_name: str) -> str:
    """Glob, relative to the target directory, matching one source's files."""
    return target.file_name(source_name, "*")


def _title(name: str) -> str:
    return " ".join(part[:1].upper() + part[1:] for part in name.split("-") if part)


def _quoted(value: str) -> str:
    # JSON strings are valid double-quoted YAML scalars.
    return json.dumps(value, ensure_ascii=False)


def render_prompt_file(
    target: AgentTarget,
    source_name: str,
    prompt: ProjectPrompt,
    body: str,
) -> str:
    """Front matter for ``target`` followed by the managed prompt body."""
    key = f"{source_name}{NAME_SEPARATOR}{prompt.name}"
    description = _quoted(prompt.description)

    if target.template == TemplateKind.CLAUDE_COMMAND:
        front = [
            f"name: {_quoted(f'DNASpec: {_title(source_name)} {_title(prompt.name)}')}",
            f"description: {description}",
            "category: DNASpec",
            f"tags: [dnaspec, {_quoted(key)}]",
        ]
    elif target.template == TemplateKind.CURSOR_COMMAND:
        front = [
            f"name: /dnaspec-{key}",
            f"id: dnaspec-{key}",
            "category: DNASpec",
            f"description: {description}",
        ]
    elif target.template == TemplateKind.WINDSURF_WORKFLOW:
        front = [f"description: {description}", "auto_execution_mode: 3"]
    else:
        front = [f"description: {description}"]

    lines = ["---", *front, "---"]
    if target.template == TemplateKind.COPILOT_PROMPT:
        lines += ["", "$ARGUMENTS", ""]
    lines += [MANAGED_BLOCK_START, body.strip(), MANAGED_BLOCK_END]
    return "\n".join(lines) + "\n"


def render_agents_block(config: ProjectConfig) -> str:
    """Managed block content for AGENTS.md and CLAUDE.md."""
    lines = [
        "## DNASpec Instructions",
        "",
        "The project MUST follow shared DNA (Development Norms & Architecture) "
        f"guidelines stored in the `@/{CONTENT_DIR}` directory. DNA contains reusable "
        "patterns and best practices applicable across different projects.",
        "",
        "These instructions are for AI assistants working in this project.",
        "",
    ]

    if not config.sources:
        lines += [
            "No DNA sources configured yet. Run 'dnaspec add' to add guidelines.",
            "",
        ]
    else:
        lines.append(
            "When working on the codebase, open and refer to the following "
            "DNA guidelines as needed:"
        )
        for source in config.sources:
            for guideline in source.guidelines:
                lines.append(f"- `@/{CONTENT_DIR}/{source.name}/{guideline.file}` for")
                scenarios = guideline.applicable_scenarios or [guideline.description]
                lines.extend(f"   * {scenario}" for scenario in scenarios)
        lines.append("")

    lines.append("Keep this managed block so 'dnaspec update-agents' can refresh the instructions.")
    return "\n".join(lines) + "\n"


@dataclass
class GenerationSummary:
    """What :func:`generate_agent_files` wrote, removed and failed on."""

    agents_md: MergeOutcome | None = None
    claude_md: MergeOutcome | None = None
    prompt_files: dict[str, list[Path]] = field(default_factory=dict)
    removed: list[Path] = field(default_factory=list)
    errors: list[Exception] = field(default_factory=list)

    def count(self, agent_id: str) -> int:
        return len(self.prompt_files.get(agent_id, []))


def generate_agent_files(
    project_root: str | os.PathLike[str],
    config: ProjectConfig,
    agent_ids: Sequence[str],
) -> GenerationSummary:
    """Write AGENTS.md, CLAUDE.md and prompt files for the selected agents.

    AGENTS.md is always generated; CLAUDE.md only for ``claude-code``.
    A failure on one file does not stop the others.

    Raises:
        ConfigError: If an agent id is unknown (nothing is written)
        GenerationError: After generation, if any file failed; the summary
            is available as ``details["summary"]``
    """
    targets = resolve_agents(agent_ids)
    root = Path(project_root)
    summary = GenerationSummary()
    block = render_agents_block(config)

    try:
        summary.agents_md = merge_managed_file(root / AGENTS_MD, block)
    except (OSError, DnaSpecError) as e:
        summary.errors.append(_wrapped(f"failed to generate {AGENTS_MD}", e))

    if any(t.id == "claude-code" for t in targets):
        try:
            summary.claude_md = merge_managed_file(root / CLAUDE_MD, block)
        except (OSError, DnaSpecError) as e:
            summary.errors.append(_wrapped(f"failed to generate {CLAUDE_MD}", e))

    for source in config.sources:
        expected: dict[str, set[Path]] = {t.id: set() for t in targets}
        source_dir = content_dir(root, source.name)
        for prompt in source.prompts:
            outputs = {t.id: root / output_for(t, source.name, prompt.name)[0] for t in targets}
            # Keep earlier output of an unreadable prompt out of pruning.
            for target in targets:
                expected[target.id].add(outputs[target.id])
            try:
                body = resolve_within_root(source_dir, prompt.file).read_text(encoding="utf-8")
            except (OSError, DnaSpecError) as e:
                summary.errors.append(
                    _wrapped(f"failed to read prompt {source.name}/{prompt.name}", e)
                )
                continue

            for target in targets:
                output = outputs[target.id]
                try:
                    output.parent.mkdir(parents=True, exist_ok=True)
                    write_atomic(output, render_prompt_file(target, source.name, prompt, body))
                except (OSError, DnaSpecError) as e:
                    summary.errors.append(
                        _wrapped(
                            f"failed to generate {target.artifact} for {source.name}/{prompt.name}",
                            e,
                        )
                    )
                    continue
                summary.prompt_files.setdefault(target.id, []).append(output)
                logger.debug("Generated %s", output)

        for target in targets:
            stale = _prune_stale(
                root / target.directory,
                source_glob(target, source.name),
                expected[target.id],
            )
            summary.removed.extend(stale)

    if summary.errors:
        raise GenerationError(summary.errors, details={"summary": summary})
    return summary


def _wrapped(message: str, error: Exception) -> DnaSpecError:
    wrapped = DnaSpecError(f"{message}: {error}")
    wrapped.__cause__ = error
    return wrapped


def _prune_stale(directory: Path, pattern: str, keep: set[Path]) -> list[Path]:
    removed = []
    if not directory.is_dir():
        return removed
    for candidate in sorted(directory.glob(pattern)):
        if candidate in keep or not candidate.is_file():
            continue
        try:
            candidate.unlink()
        except OSError as e:
            logger.warning("Could not remove stale file %s: %s", candidate, e)
            continue
        logger.info("Removed stale generated file %s", candidate)
        removed.append(candidate)
    return removed


def generated_files_for_source(
    project_root: str | os.PathLike[str],
    source_name: str,
) -> list[Path]:
    """Existing generated prompt files of ``source_name`` across all targets."""
    root = Path(project_root)
    found: list[Path] = []
    for target in AGENT_TARGETS:
        directory = root / target.directory
        if not directory.is_dir():
            continue
        matches = sorted(directory.glob(source_glob(target, source_name)))
        found.extend(p for p in matches if p.is_file())
    return found


@dataclass(frozen=True)
class CleanupSummary:
    agents_md: bool = False
    claude_md: bool = False

    @property
    def cleaned(self) -> bool:
        return self.agents_md or self.claude_md


def cleanup_agent_files(project_root: str | os.PathLike[str]) -> CleanupSummary:
    """Strip the managed block from AGENTS.md and CLAUDE.md, keeping user text."""
    root = Path(project_root)
    return CleanupSummary(
        agents_md=strip_managed_file(root / AGENTS_MD),
        claude_md=strip_managed_file(root / CLAUDE_MD),
    )
