"""Tests for AI agent file generation."""

import fnmatch
from pathlib import Path

import pytest
import yaml

from dnaspec.agents import (
    AGENT_TARGETS,
    AGENTS_MD,
    CLAUDE_MD,
    cleanup_agent_files,
    generate_agent_files,
    generated_files_for_source,
    get_agent,
    output_for,
    render_agents_block,
    render_prompt_file,
    resolve_agents,
    source_glob,
)
from dnaspec.exceptions import ConfigError, GenerationError
from dnaspec.managed import MANAGED_BLOCK_END, MANAGED_BLOCK_START, MergeOutcome
from dnaspec.models import ProjectConfig, ProjectGuideline, ProjectPrompt, ProjectSource, SourceType


def _front_matter(content: str) -> dict:
    _, front, _ = content.split("---\n", 2)
    return yaml.safe_load(front)


@pytest.fixture
def prompt() -> ProjectPrompt:
    """A prompt whose description needs YAML quoting."""
    return ProjectPrompt(
        name="code-review",
        file="prompts/code-review.md",
        description='Review: check "style" & tests',
    )


@pytest.fixture
def config(prompt: ProjectPrompt) -> ProjectConfig:
    """Config with one source holding one guideline and one prompt."""
    return ProjectConfig(
        agents=["claude-code"],
        sources=[
            ProjectSource(
                name="company-dna",
                source_type=SourceType.GIT_REPO,
                url="https://github.com/company/dna.git",
                commit="abc",
                guidelines=[
                    ProjectGuideline(
                        name="go-style",
                        file="guidelines/go-style.md",
                        description="Go style",
                        applicable_scenarios=["Writing Go code", "Reviewing Go code"],
                        prompts=["code-review"],
                    )
                ],
                prompts=[prompt],
            )
        ],
    )


@pytest.fixture
def project(tmp_path: Path, config: ProjectConfig) -> Path:
    """Project directory with the copied content of ``config``."""
    source_dir = tmp_path / "dnaspec" / "company-dna"
    (source_dir / "guidelines").mkdir(parents=True)
    (source_dir / "prompts").mkdir()
    (source_dir / "guidelines" / "go-style.md").write_text("# Go style\n")
    (source_dir / "prompts" / "code-review.md").write_text("Review the change.\n")
    return tmp_path


class TestAgentTargets:
    """Test the agent table."""

    def test_ids_unique(self) -> None:
        """Test every target id is unique."""
        ids = [t.id for t in AGENT_TARGETS]
        assert len(ids) == len(set(ids))

    def test_output_paths(self) -> None:
        """Test each target's output location."""
        paths = {t.id: str(output_for(t, "company-dna", "code-review")[0]) for t in AGENT_TARGETS}

        assert paths == {
            "antigravity": ".agent/workflows/dnaspec-company-dna--code-review.md",
            "claude-code": ".claude/commands/dnaspec/company-dna--code-review.md",
            "cursor": ".cursor/commands/dnaspec-company-dna--code-review.md",
            "github-copilot": ".github/prompts/dnaspec-company-dna--code-review.prompt.md",
            "windsurf": ".windsurf/workflows/dnaspec-company-dna--code-review.md",
        }

    def test_outputs_distinct_across_sources(self) -> None:
        """Test same-named prompts of different sources do not collide."""
        for target in AGENT_TARGETS:
            first, _ = output_for(target, "team-a", "review")
            second, _ = output_for(target, "team-b", "review")
            assert first != second

    def test_source_glob_matches_only_its_source(self) -> None:
        """Test the glob separates sources sharing a name prefix."""
        target = get_agent("cursor")
        pattern = source_glob(target, "team")

        assert fnmatch.fnmatch(target.file_name("team", "review"), pattern)
        assert not fnmatch.fnmatch(target.file_name("team-b", "review"), pattern)

    def test_resolve_agents(self) -> None:
        """Test ids resolve in table order."""
        assert [t.id for t in resolve_agents(["windsurf", "claude-code"])] == [
            "claude-code",
            "windsurf",
        ]

    def test_resolve_unknown_agent(self) -> None:
        """Test unknown ids are rejected."""
        with pytest.raises(ConfigError, match="vim-copilot"):
            resolve_agents(["cursor", "vim-copilot"])


class TestRenderPromptFile:
    """Test render_prompt_file."""

    def test_claude_command(self, prompt: ProjectPrompt) -> None:
        """Test Claude front matter and managed body."""
        content = render_prompt_file(get_agent("claude-code"), "company-dna", prompt, "Body\n")

        front = _front_matter(content)
        assert front["name"] == "DNASpec: Company Dna Code Review"
        assert front["description"] == prompt.description
        assert front["tags"] == ["dnaspec", "company-dna--code-review"]
        assert content.endswith(f"{MANAGED_BLOCK_START}\nBody\n{MANAGED_BLOCK_END}\n")

    def test_cursor_command(self, prompt: ProjectPrompt) -> None:
        """Test Cursor front matter."""
        content = render_prompt_file(get_agent("cursor"), "company-dna", prompt, "Body")

        front = _front_matter(content)
        assert front["name"] == "/dnaspec-company-dna--code-review"
        assert front["id"] == "dnaspec-company-dna--code-review"

    def test_copilot_prompt(self, prompt: ProjectPrompt) -> None:
        """Test Copilot prompts take arguments before the managed body."""
        content = render_prompt_file(get_agent("github-copilot"), "company-dna", prompt, "Body")

        assert "---\n\n$ARGUMENTS\n\n" + MANAGED_BLOCK_START in content
        assert _front_matter(content) == {"description": prompt.description}

    def test_windsurf_workflow(self, prompt: ProjectPrompt) -> None:
        """Test Windsurf workflows run automatically."""
        content = render_prompt_file(get_agent("windsurf"), "company-dna", prompt, "Body")
        assert _front_matter(content)["auto_execution_mode"] == 3


class TestRenderAgentsBlock:
    """Test render_agents_block."""

    def test_lists_guidelines_with_scenarios(self, config: ProjectConfig) -> None:
        """Test each guideline is listed with its scenarios."""
        block = render_agents_block(config)

        assert "- `@/dnaspec/company-dna/guidelines/go-style.md` for" in block
        assert "   * Writing Go code\n   * Reviewing Go code\n" in block

    def test_no_sources(self) -> None:
        """Test an empty project points at 'dnaspec add'."""
        block = render_agents_block(ProjectConfig())
        assert "No DNA sources configured yet" in block


class TestGenerateAgentFiles:
    """Test generate_agent_files."""

    def test_generates_files(self, project: Path, config: ProjectConfig) -> None:
        """Test AGENTS.md, CLAUDE.md and prompt files are written."""
        summary = generate_agent_files(project, config, ["claude-code", "cursor"])

        assert summary.agents_md == MergeOutcome.CREATED
        assert summary.claude_md == MergeOutcome.CREATED
        assert summary.count("claude-code") == 1
        assert summary.count("cursor") == 1
        claude = project / ".claude" / "commands" / "dnaspec" / "company-dna--code-review.md"
        assert "Review the change." in claude.read_text()
        assert "go-style.md" in (project / AGENTS_MD).read_text()

    def test_claude_md_only_for_claude(self, project: Path, config: ProjectConfig) -> None:
        """Test CLAUDE.md is left alone unless claude-code is selected."""
        summary = generate_agent_files(project, config, ["cursor"])

        assert summary.claude_md is None
        assert not (project / CLAUDE_MD).exists()
        assert (project / AGENTS_MD).exists()

    def test_preserves_user_content(self, project: Path, config: ProjectConfig) -> None:
        """Test text outside the managed block survives regeneration."""
        agents_md = project / AGENTS_MD
        agents_md.write_text("# Team notes\n\nBe kind.\n")

        generate_agent_files(project, config, [])
        generate_agent_files(project, config, [])

        content = agents_md.read_text()
        assert content.startswith("# Team notes\n\nBe kind.\n\n")
        assert content.count(MANAGED_BLOCK_START) == 1

    def test_unknown_agent_writes_nothing(self, project: Path, config: ProjectConfig) -> None:
        """Test unknown agent ids fail before any file is written."""
        with pytest.raises(ConfigError):
            generate_agent_files(project, config, ["cursor", "unknown"])

        assert not (project / AGENTS_MD).exists()

    def test_prunes_stale_prompt_files(self, project: Path, config: ProjectConfig) -> None:
        """Test generated files of prompts no longer selected are removed."""
        commands = project / ".cursor" / "commands"
        commands.mkdir(parents=True)
        stale = commands / "dnaspec-company-dna--old-prompt.md"
        stale.write_text("old")
        other_source = commands / "dnaspec-company-dna-extra--review.md"
        other_source.write_text("keep")
        user_file = commands / "my-command.md"
        user_file.write_text("keep")

        summary = generate_agent_files(project, config, ["cursor"])

        assert summary.removed == [stale]
        assert not stale.exists()
        assert other_source.exists()
        assert user_file.exists()

    def test_missing_prompt_collects_error(self, project: Path, config: ProjectConfig) -> None:
        """Test a missing prompt file is reported after the others are written."""
        generate_agent_files(project, config, ["cursor"])
        previous = project / ".cursor" / "commands" / "dnaspec-company-dna--code-review.md"
        (project / "dnaspec" / "company-dna" / "prompts" / "code-review.md").unlink()

        with pytest.raises(GenerationError, match="1 errors") as exc_info:
            generate_agent_files(project, config, ["cursor"])

        summary = exc_info.value.details["summary"]
        assert summary.agents_md == MergeOutcome.UNCHANGED
        assert summary.removed == []
        assert "company-dna/code-review" in str(exc_info.value.errors[0])
        assert "Review the change." in previous.read_text()

    def test_generated_files_for_source(self, project: Path, config: ProjectConfig) -> None:
        """Test generated files are found per source across targets."""
        all_ids = [t.id for t in AGENT_TARGETS]
        generate_agent_files(project, config, all_ids)

        found = generated_files_for_source(project, "company-dna")

        assert len(found) == len(AGENT_TARGETS)
        assert generated_files_for_source(project, "company") == []


class TestCleanupAgentFiles:
    """Test cleanup_agent_files."""

    def test_strips_blocks(self, tmp_path: Path) -> None:
        """Test managed blocks are removed and user text kept."""
        (tmp_path / AGENTS_MD).write_text(
            f"# Notes\n\n{MANAGED_BLOCK_START}\nold\n{MANAGED_BLOCK_END}\n"
        )

        summary = cleanup_agent_files(tmp_path)

        assert summary.agents_md
        assert not summary.claude_md
        assert summary.cleaned
        assert (tmp_path / AGENTS_MD).read_text() == "# Notes\n"

    def test_nothing_to_clean(self, tmp_path: Path) -> None:
        """Test missing files are reported as not cleaned."""
        assert not cleanup_agent_files(tmp_path).cleaned
