"""Loading and persisting the project configuration (``dnaspec.yaml``)."""

from __future__ import annotations

import logging
import os
from pathlib import Path

import yaml
from pydantic import ValidationError

from .exceptions import ConfigError, ConfinementError
from .files import write_state
from .models import ProjectConfig, SourceType
from .paths import make_relative_to_root
from .schemas import PROJECT_SCHEMA, schema_issues

logger = logging.getLogger(__name__)

PROJECT_CONFIG_FILE = "dnaspec.yaml"
CONTENT_DIR = "dnaspec"
SUPPORTED_VERSION = 1

EXAMPLE_PROJECT_CONFIG = """\
# DNASpec Project Configuration
# This file tracks the DNA (Development Norms & Architecture) sources used by
# this project. It is maintained by the dnaspec command; edit with care.
#
# Add sources with:
#   dnaspec add --git-repo https://github.com/company/dna
#   dnaspec add path/to/local/dna

version: 1

# AI agents to generate integration files for (see 'dnaspec update-agents')
agents: []

# DNA sources, added with 'dnaspec add'
sources: []
"""


def config_path(project_root: str | os.PathLike[str]) -> Path:
    """Location of ``dnaspec.yaml`` inside ``project_root``."""
    return Path(project_root) / PROJECT_CONFIG_FILE


def content_dir(project_root: str | os.PathLike[str], source_name: str) -> Path:
    """Directory holding the copied files of ``source_name``."""
    return Path(project_root) / CONTENT_DIR / source_name


def load_project_config(path: str | os.PathLike[str]) -> ProjectConfig:
    """Load and validate a project configuration file.

    Args:
        path: Path to ``dnaspec.yaml``

    Returns:
        Validated project configuration

    Raises:
        ConfigError: If the file is missing, unparsable or has the wrong shape
    """
    config_file = Path(path)
    if not config_file.exists():
        msg = f"{config_file.name} not found, run 'dnaspec init' first"
        raise ConfigError(msg, details={"path": str(config_file)})

    try:
        with config_file.open(encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        msg = f"Failed to parse project config YAML: {e}"
        raise ConfigError(msg, details={"path": str(config_file)}) from e
    except OSError as e:
        msg = f"Failed to read project config: {e}"
        raise ConfigError(msg, details={"path": str(config_file)}) from e

    if data is None:
        data = {}

    issues = schema_issues(data, PROJECT_SCHEMA)
    if issues:
        msg = f"Invalid project config: {'; '.join(str(i) for i in issues)}"
        raise ConfigError(
            msg,
            details={"path": str(config_file), "issues": [str(i) for i in issues]},
        )

    try:
        return ProjectConfig.model_validate(data)
    except ValidationError as e:
        msg = f"Project config validation failed: {e}"
        raise ConfigError(msg, details={"path": str(config_file)}) from e


def save_project_config(path: str | os.PathLike[str], config: ProjectConfig) -> None:
    """Persist ``config`` atomically.

    Raises:
        TransactionError: If the write fails; the previous file is untouched
    """
    write_state(path, config.to_document())


def create_example_project_config(path: str | os.PathLike[str]) -> Path:
    """Write the commented starter configuration to ``path``.

    Raises:
        ConfigError: If a file already exists at ``path``
    """
    config_file = Path(path)
    if config_file.exists():
        msg = f"Project configuration already exists: {config_file.name}"
        raise ConfigError(msg, details={"path": str(config_file)})

    config_file.write_text(EXAMPLE_PROJECT_CONFIG, encoding="utf-8")
    logger.info("Created project configuration at %s", config_file)
    return config_file


def migrate_to_relative_paths(
    config: ProjectConfig,
    project_root: str | os.PathLike[str],
) -> ProjectConfig:
    """Rewrite absolute local source paths under the root as relative paths.

    Paths outside the project root stay absolute and are logged.
    """
    sources = []
    for source in config.sources:
        if (
            source.source_type == SourceType.LOCAL_PATH
            and source.path
            and os.path.isabs(source.path)
        ):
            try:
                relative = make_relative_to_root(project_root, source.path)
            except ConfinementError:
                logger.warning(
                    "Source %s keeps absolute path %s (outside project root)",
                    source.name,
                    source.path,
                )
            else:
                logger.info("Source %s path migrated to %s", source.name, relative)
                source = source.model_copy(update={"path": relative})
        sources.append(source)
    return config.model_copy(update={"sources": sources})
