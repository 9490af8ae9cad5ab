"""DNASpec command-line interface."""

from __future__ import annotations

import logging
import os
import sys
from collections.abc import Sequence
from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as get_version
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from . import __version__
from .agents import AGENT_TARGETS, GenerationSummary, get_agent
from .exceptions import (
    CriticalStateError,
    DnaSpecError,
    GenerationError,
    ManifestValidationError,
)
from .manifest import MANIFEST_FILE, create_example_manifest, load_manifest, validate_manifest
from .models import Manifest, ProjectSource, SourceType
from .operations import (
    AgentMode,
    AgentsReport,
    SourceUpdateResult,
    UpdateSummary,
    add_source,
    describe_removal,
    init_project,
    load_project,
    remove_source,
    sync_project,
    update_agents,
    update_sources,
    validate_project,
)
from .paths import make_relative_to_root
from .project import PROJECT_CONFIG_FILE
from .reconcile import AddNewPolicy
from .source import FetchedSource, fetch_for_record, fetch_git_source, fetch_local_source

app = typer.Typer(
    name="dnaspec",
    help="DNASpec: share DNA (Development Norms & Architecture) guidelines across projects",
    add_completion=False,
)
manifest_app = typer.Typer(
    help="Create and validate dnaspec-manifest.yaml in a DNA repository",
    add_completion=False,
)
app.add_typer(manifest_app, name="manifest")

console = Console()

PROJECT_OPTION_HELP = "Project directory containing dnaspec.yaml"


def _get_version_string() -> str:
    try:
        return get_version("dnaspec")
    except PackageNotFoundError:
        return f"{__version__} (development)"


def version_callback(value: bool) -> None:
    """Callback for --version flag."""
    if value:
        console.print(f"dnaspec version {_get_version_string()}")
        raise typer.Exit


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


@app.callback()
def main_callback(
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Show debug logging",
    ),
    version: bool = typer.Option(
        False,
        "--version",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit",
    ),
) -> None:
    """DNASpec: share DNA guidelines across projects and AI agents."""
    _configure_logging(verbose)


def _print_error(error: DnaSpecError) -> None:
    if isinstance(error, CriticalStateError):
        console.print(f"[red]Critical:[/red] {escape(str(error))}")
        return
    console.print(f"[red]Error:[/red] {escape(str(error))}")
    if isinstance(error, ManifestValidationError) and len(error.issues) > 1:
        for issue in error.issues:
            console.print(f"  - {escape(str(issue))}")
    available = error.details.get("available")
    if available:
        console.print("\nAvailable:")
        for name in available:
            console.print(f"  - {name}")


def _short(commit: str | None) -> str:
    return (commit or "")[:8]


@app.command()
def init(
    project: Path = typer.Option(Path("."), "--project", "-p", help=PROJECT_OPTION_HELP),
) -> None:
    """Create a new dnaspec.yaml in the project directory."""
    try:
        path = init_project(project)
    except DnaSpecError as e:
        _print_error(e)
        raise typer.Exit(1) from e

    console.print(f"[green]✓[/green] Created {path}")
    console.print("\n[bold]Next steps:[/bold]")
    console.print("  1. Run [cyan]dnaspec add[/cyan] to add DNA sources (git repositories or local directories)")
    console.print("  2. Select which guidelines to include from each source")
    console.print("\nExamples:")
    console.print("  [cyan]dnaspec add --git-repo https://github.com/company/dna[/cyan]")
    console.print("  [cyan]dnaspec add path/to/local/dna[/cyan]")


def _print_guidelines(manifest: Manifest) -> None:
    table = Table(title="Available guidelines")
    table.add_column("#", justify="right")
    table.add_column("Name", style="cyan")
    table.add_column("Description")
    for index, guideline in enumerate(manifest.guidelines, start=1):
        table.add_row(str(index), guideline.name, guideline.description)
    console.print(table)


def _prompt_guidelines(manifest: Manifest) -> list[str]:
    """Ask which guidelines to add; accepts names, numbers or 'all'."""
    _print_guidelines(manifest)
    answer = typer.prompt("Guidelines to add (comma-separated names or numbers, 'all')", default="all")
    names = manifest.guideline_names()
    if answer.strip().lower() == "all":
        return names

    selected = []
    for token in (t.strip() for t in answer.split(",")):
        if not token:
            continue
        if token.isdigit() and 1 <= int(token) <= len(names):
            selected.append(names[int(token) - 1])
        else:
            selected.append(token)
    return selected


@app.command()
def add(
    path: str | None = typer.Argument(None, help="Local DNA directory"),
    git_repo: str | None = typer.Option(None, "--git-repo", help="Git repository URL"),
    git_ref: str | None = typer.Option(None, "--git-ref", help="Git branch or tag"),
    name: str | None = typer.Option(
        None,
        "--name",
        help="Custom source name (derived from the URL or path if omitted)",
    ),
    add_all: bool = typer.Option(False, "--all", help="Add all guidelines without prompting"),
    guidelines: list[str] = typer.Option(
        [],
        "--guideline",
        "-g",
        help="Add a specific guideline by name (can be repeated)",
    ),
    dry_run: bool = typer.Option(False, "--dry-run", help="Preview changes without writing files"),
    project: Path = typer.Option(Path("."), "--project", "-p", help=PROJECT_OPTION_HELP),
) -> None:
    """Add a DNA source (git repository or local directory) to the project."""
    if not git_repo and not path:
        console.print("[red]Error:[/red] must specify either --git-repo or a local path")
        raise typer.Exit(1)
    if git_repo and path:
        console.print("[red]Error:[/red] cannot specify both --git-repo and a local path")
        raise typer.Exit(1)
    if add_all and guidelines:
        console.print("[red]Error:[/red] cannot use both --all and --guideline")
        raise typer.Exit(1)

    interactive = not add_all and not guidelines
    try:
        config = load_project(project)

        if path and not _confirm_local_path(project, path, interactive):
            console.print("Canceled")
            raise typer.Exit(1)

        if git_repo:
            console.print(f"Cloning {git_repo}...")
            fetched = fetch_git_source(git_repo, git_ref)
        else:
            console.print("Loading local source...")
            fetched = fetch_local_source(path)

        with fetched:
            console.print("[green]✓[/green] Source loaded")
            if add_all:
                selected = fetched.manifest.guideline_names()
            elif guidelines:
                selected = list(guidelines)
            else:
                selected = _prompt_guidelines(fetched.manifest)

            if not selected:
                console.print("No guidelines selected")
                return

            report = add_source(project, config, fetched, selected, name=name, dry_run=dry_run)
    except DnaSpecError as e:
        _print_error(e)
        raise typer.Exit(1) from e

    source = report.source
    if report.dry_run:
        console.print("\n[bold blue]Dry run - would add source:[/bold blue]")
        console.print(f"  Name: {source.name}")
        console.print(f"  Type: {source.source_type.value}")
        if source.url:
            console.print(f"  URL: {source.url}")
        if source.path:
            console.print(f"  Path: {source.path}")
        console.print(f"  Guidelines: {len(source.guidelines)}")
        console.print(f"  Prompts: {len(source.prompts)}")
        return

    console.print(f"\n[green]✓[/green] Added source {source.name}")
    console.print(f"  Guidelines: {len(source.guidelines)}")
    console.print(f"  Prompts: {len(source.prompts)}")
    console.print(f"  Files copied to: {report.destination}")
    console.print("\nRun [cyan]dnaspec update-agents[/cyan] to configure AI agents")


def _confirm_local_path(project: Path, path: str, interactive: bool) -> bool:
    """Warn about sources outside the project; ask only when interactive."""
    try:
        make_relative_to_root(project, Path(path).absolute())
    except DnaSpecError:
        pass
    else:
        return True

    console.print("\n[yellow]Warning:[/yellow] Local source is outside the project directory")
    console.print(f"  Project: {project.resolve()}")
    console.print(f"  Source: {Path(path).resolve()}")
    console.print("This absolute path won't work on other machines.\n")
    return not interactive or typer.confirm("Continue with absolute path?")


def _confirm_new(manifest: Manifest, new: Sequence[str]) -> list[str]:
    console.print("\nNew guidelines available:")
    for name in new:
        guideline = manifest.guideline(name)
        description = guideline.description if guideline else ""
        console.print(f"  - {name}: {description}")
    return list(new) if typer.confirm("Add new guidelines?", default=False) else []


def _print_update_result(result: SourceUpdateResult) -> None:
    if result.up_to_date:
        console.print(f"[green]✓[/green] Already at latest commit {_short(result.commit)}")
        return

    if result.previous_commit and result.commit:
        console.print(
            f"  Commit: {_short(result.previous_commit)} -> {_short(result.commit)} [dim](changed)[/dim]"
        )
    comparison = result.comparison
    for name in comparison.updated:
        console.print(f"  [green]✓[/green] updated {name}")
    for name in result.added:
        console.print(f"  [green]+[/green] added {name}")
    for name in comparison.orphaned:
        console.print(f"  [dim]- {name} (no longer in manifest)[/dim]")

    if result.dry_run:
        console.print("\n[bold blue]Dry run - preview:[/bold blue]")
        console.print(f"  Would update: {len(comparison.updated)} guidelines")
        console.print(f"  Would add: {len(result.added)} guidelines")
        console.print(f"  Removed from source: {len(comparison.orphaned)} guidelines")
    else:
        console.print(f"  Copied {result.copied} file(s)")


def _print_update_summary(summary: UpdateSummary) -> None:
    for result in summary.results:
        console.print(f"\n[bold]{result.name}[/bold]")
        _print_update_result(result)
    for name, error in summary.errors.items():
        console.print(f"\n[bold]{name}[/bold]")
        console.print(f"[red]✗ Failed:[/red] {escape(str(error))}")


@app.command()
def update(
    name: str | None = typer.Argument(None, help="Source to update"),
    update_all: bool = typer.Option(False, "--all", help="Update all sources"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Preview changes without writing files"),
    add_new: AddNewPolicy | None = typer.Option(
        None,
        "--add-new",
        help="Policy for new guidelines: all, none or ask (default: ask)",
        case_sensitive=False,
    ),
    project: Path = typer.Option(Path("."), "--project", "-p", help=PROJECT_OPTION_HELP),
) -> None:
    """Update source(s) from their origin."""
    if not name and not update_all:
        console.print("[red]Error:[/red] must specify either a source name or --all")
        raise typer.Exit(1)
    if name and update_all:
        console.print("[red]Error:[/red] cannot specify both a source name and --all")
        raise typer.Exit(1)

    policy = add_new or AddNewPolicy.ASK
    try:
        config = load_project(project)
        if update_all and not config.sources:
            console.print("No sources configured")
            return
        names = config.source_names() if update_all else [name]

        # Sources are updated one at a time; remember the manifest being reconciled.
        latest: dict[str, Manifest] = {}

        def fetch(source: ProjectSource, root: Path) -> FetchedSource:
            fetched = _fetch_with_progress(source, root)
            latest["manifest"] = fetched.manifest
            return fetched

        def confirm(new: Sequence[str]) -> list[str]:
            return _confirm_new(latest["manifest"], new)

        summary = update_sources(
            project,
            config,
            names,
            add_new=policy,
            confirm_new=confirm,
            dry_run=dry_run,
            fetcher=fetch,
        )
    except DnaSpecError as e:
        _print_error(e)
        raise typer.Exit(1) from e

    _print_update_summary(summary)
    if not summary.ok:
        console.print(f"\n[red]Error:[/red] failed to update {len(summary.errors)} source(s)")
        raise typer.Exit(1)
    if dry_run:
        console.print("\nNo changes made (dry run)")
    elif any(not r.up_to_date for r in summary.results):
        console.print("\nRun [cyan]dnaspec update-agents[/cyan] to regenerate agent files")


def _fetch_with_progress(source: ProjectSource, root: Path) -> FetchedSource:
    if source.source_type == SourceType.GIT_REPO:
        console.print(f"\nFetching latest from {source.url}...")
    else:
        console.print("\nRefreshing from local directory...")
    return fetch_for_record(source, root)


@app.command()
def sync(
    dry_run: bool = typer.Option(False, "--dry-run", help="Preview changes without writing files"),
    project: Path = typer.Option(Path("."), "--project", "-p", help=PROJECT_OPTION_HELP),
) -> None:
    """Update all sources and regenerate agent files without prompting.

    New guidelines are never added; agent files use the saved agent selection.
    """
    try:
        report = sync_project(project, dry_run=dry_run, fetcher=_fetch_with_progress)
    except GenerationError as e:
        _print_generation(e.details.get("summary"))
        _print_error(e)
        raise typer.Exit(1) from e
    except DnaSpecError as e:
        _print_error(e)
        raise typer.Exit(1) from e

    summary = report.update
    if not summary.results and not summary.errors:
        console.print("No sources configured")
        return

    _print_update_summary(summary)
    if not summary.ok:
        console.print(f"\n[red]Error:[/red] failed to update {len(summary.errors)} source(s)")
        raise typer.Exit(1)
    if dry_run:
        console.print("\nNo changes made (dry run)")
        return

    console.print("\n[green]✓[/green] All sources updated")
    if report.agents is not None:
        _print_agents_report(report.agents)
    console.print("\n[green]✓[/green] Sync complete")


@app.command()
def remove(
    name: str = typer.Argument(..., help="Source to remove"),
    force: bool = typer.Option(False, "--force", "-f", help="Skip confirmation"),
    project: Path = typer.Option(Path("."), "--project", "-p", help=PROJECT_OPTION_HELP),
) -> None:
    """Remove a source, its copied files and its generated agent files."""
    try:
        config = load_project(project)
        plan = describe_removal(project, config, name)

        console.print("\nThe following will be deleted:")
        console.print(f"  - {PROJECT_CONFIG_FILE} entry for {name}")
        if plan.content_exists:
            console.print(
                f"  - {plan.content_dir} directory "
                f"({plan.guideline_files} guidelines, {plan.prompt_files} prompts)"
            )
        else:
            console.print(f"  - {plan.content_dir} directory (not found, will skip)")
        for generated in plan.generated_files:
            console.print(f"  - {generated}")

        if not force and not typer.confirm("\nThis cannot be undone. Continue?", default=False):
            console.print("Canceled. No changes made.")
            return

        report = remove_source(project, config, name)
    except DnaSpecError as e:
        _print_error(e)
        raise typer.Exit(1) from e

    console.print(f"\n[green]✓[/green] Removed source {name}")
    console.print(f"  Cleaned up {report.deleted_files} generated file(s)")
    console.print("\nRun [cyan]dnaspec update-agents[/cyan] to regenerate AGENTS.md")


@app.command("list")
def list_sources(
    project: Path = typer.Option(Path("."), "--project", "-p", help=PROJECT_OPTION_HELP),
) -> None:
    """Show configured agents, sources, guidelines and prompts."""
    try:
        config = load_project(project)
    except DnaSpecError as e:
        _print_error(e)
        raise typer.Exit(1) from e

    console.print("[bold]Configured agents:[/bold]")
    if not config.agents:
        console.print("  None configured")
    for agent_id in config.agents:
        target = get_agent(agent_id)
        console.print(f"  - {target.display_name if target else agent_id}")

    console.print("\n[bold]Sources:[/bold]")
    if not config.sources:
        console.print("  No sources configured")
        return

    for source in config.sources:
        console.print(f"\n[cyan]{source.name}[/cyan] ({source.source_type.value})")
        if source.source_type == SourceType.GIT_REPO:
            console.print(f"  URL: {source.url}")
            if source.ref:
                console.print(f"  Ref: {source.ref}")
            if source.commit:
                console.print(f"  Commit: {_short(source.commit)}")
        elif source.path:
            kind = "absolute" if os.path.isabs(source.path) else "relative"
            console.print(f"  Path: {source.path} [dim]({kind})[/dim]")

        console.print("  Guidelines:")
        if not source.guidelines:
            console.print("    None")
        for guideline in source.guidelines:
            console.print(f"    - {guideline.name}: {guideline.description}")

        console.print("  Prompts:")
        if not source.prompts:
            console.print("    None")
        for prompt in source.prompts:
            console.print(f"    - {prompt.name}: {prompt.description}")


@app.command()
def validate(
    project: Path = typer.Option(Path("."), "--project", "-p", help=PROJECT_OPTION_HELP),
) -> None:
    """Validate dnaspec.yaml against the project directory."""
    try:
        config = load_project(project)
    except DnaSpecError as e:
        _print_error(e)
        raise typer.Exit(1) from e

    console.print(f"Validating {PROJECT_CONFIG_FILE}...")
    report = validate_project(project, config)
    console.print(f"[green]✓[/green] {len(config.sources)} sources configured")

    if not report.valid:
        console.print(f"\n[red]✗[/red] Validation found {len(report.errors)} errors:")
        for error in report.errors:
            console.print(f"  - {escape(error)}")
        raise typer.Exit(1)

    if report.validated_files:
        console.print("[green]✓[/green] All referenced files exist:")
        for file in report.validated_files:
            console.print(f"  - {file}")
    if report.warnings:
        console.print(f"\n[yellow]⚠[/yellow] Found {len(report.warnings)} warning(s):")
        for warning in report.warnings:
            console.print(f"  - {warning}")
        console.print("\n[green]✓ Configuration is valid (with warnings)[/green]")
    else:
        console.print("\n[green]✓ Configuration is valid[/green]")


def _prompt_agents(saved: Sequence[str]) -> list[str]:
    table = Table(title="Available agents")
    table.add_column("ID", style="cyan")
    table.add_column("Name")
    table.add_column("Description")
    for target in AGENT_TARGETS:
        table.add_row(target.id, target.display_name, target.description)
    console.print(table)

    answer = typer.prompt(
        "Agents to enable (comma-separated ids)",
        default=",".join(saved) if saved else "",
        show_default=bool(saved),
    )
    return [token.strip() for token in answer.split(",") if token.strip()]


def _print_generation(summary: GenerationSummary | None) -> None:
    if summary is None:
        return
    if summary.agents_md is not None:
        console.print(f"  [green]✓[/green] AGENTS.md ({summary.agents_md.value})")
    if summary.claude_md is not None:
        console.print(f"  [green]✓[/green] CLAUDE.md ({summary.claude_md.value})")
    for target in AGENT_TARGETS:
        count = summary.count(target.id)
        if count:
            console.print(f"  [green]✓[/green] Generated {count} {target.artifact}(s)")
    if summary.removed:
        console.print(f"  Removed {len(summary.removed)} stale file(s)")
    if summary.errors:
        console.print(f"\n  [red]{len(summary.errors)} error(s) occurred:[/red]")
        for error in summary.errors:
            console.print(f"    • {escape(str(error))}")


def _print_agents_report(report: AgentsReport) -> None:
    if report.cleanup is not None:
        console.print("No DNA sources configured.")
        if not report.cleanup.cleaned:
            console.print("No DNASPEC blocks found to remove.")
            return
        console.print("[green]Removed DNASPEC blocks from:[/green]")
        if report.cleanup.agents_md:
            console.print("  [green]✓[/green] AGENTS.md")
        if report.cleanup.claude_md:
            console.print("  [green]✓[/green] CLAUDE.md")
        return

    console.print("\nGenerating agent files...")
    _print_generation(report.generation)


@app.command("update-agents")
def update_agents_command(
    no_ask: bool = typer.Option(
        False,
        "--no-ask",
        help="Skip agent selection, use saved configuration",
    ),
    agents: list[str] = typer.Option(
        [],
        "--agent",
        "-a",
        help="Enable an agent by id without prompting (can be repeated)",
    ),
    project: Path = typer.Option(Path("."), "--project", "-p", help=PROJECT_OPTION_HELP),
) -> None:
    """Select AI agents and generate their integration files.

    Writes AGENTS.md for every agent, plus CLAUDE.md and per-prompt command,
    prompt or workflow files for the selected agents.
    """
    if no_ask and agents:
        console.print("[red]Error:[/red] cannot use both --no-ask and --agent")
        raise typer.Exit(1)

    try:
        config = load_project(project)
        if no_ask or not config.sources:
            report = update_agents(project, config, AgentMode.SAVED)
        else:
            selected = list(agents) or _prompt_agents(config.agents)
            report = update_agents(project, config, AgentMode.EXPLICIT, selected)
            console.print(f"[green]✓[/green] Updated {PROJECT_CONFIG_FILE}")
    except GenerationError as e:
        _print_generation(e.details.get("summary"))
        _print_error(e)
        raise typer.Exit(1) from e
    except DnaSpecError as e:
        _print_error(e)
        raise typer.Exit(1) from e

    _print_agents_report(report)
    if report.generation is not None:
        console.print("\n[green]✓[/green] Agent files generated successfully")


@app.command()
def version() -> None:
    """Show DNASpec version information."""
    console.print(f"dnaspec version {_get_version_string()}")


@manifest_app.command("init")
def manifest_init(
    path: Path = typer.Option(Path("."), "--path", help="DNA repository directory"),
) -> None:
    """Create an example dnaspec-manifest.yaml."""
    try:
        manifest_path = create_example_manifest(path / MANIFEST_FILE)
    except DnaSpecError as e:
        _print_error(e)
        raise typer.Exit(1) from e

    console.print(f"[green]✓[/green] Created {manifest_path}")
    console.print("\n[bold]Next steps:[/bold]")
    console.print(f"  1. Edit {MANIFEST_FILE} to describe your guidelines and prompts")
    console.print("  2. Run [cyan]dnaspec manifest validate[/cyan] to check it")


@manifest_app.command("validate")
def manifest_validate(
    path: Path = typer.Option(Path("."), "--path", help="DNA repository directory"),
) -> None:
    """Validate dnaspec-manifest.yaml and the files it references."""
    try:
        manifest = load_manifest(path / MANIFEST_FILE)
    except DnaSpecError as e:
        _print_error(e)
        raise typer.Exit(1) from e

    issues = validate_manifest(manifest, path)
    if issues:
        console.print(f"[red]✗[/red] Validation found {len(issues)} errors:")
        for issue in issues:
            console.print(f"  - {escape(str(issue))}")
        raise typer.Exit(1)

    console.print(f"[green]✓[/green] {MANIFEST_FILE} is valid")
    console.print(f"  Guidelines: {len(manifest.guidelines)}")
    console.print(f"  Prompts: {len(manifest.prompts)}")


def main() -> None:
    """Entry point for the CLI."""
    try:
        app()
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted[/yellow]")
        sys.exit(130)


if __name__ == "__main__":
    main()
