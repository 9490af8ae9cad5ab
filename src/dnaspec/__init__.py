"""DNASpec: share DNA (Development Norms & Architecture) guidelines across projects."""

__version__ = "0.1.0"
__author__ = "DNASpec Contributors"
__description__ = "Sync DNA guidelines and prompts into projects and AI agent files"

from .exceptions import DnaSpecError
from .models import Manifest, ProjectConfig, ProjectSource, SourceType
from .operations import AgentMode, add_source, remove_source, sync_project, update_agents
from .reconcile import AddNewPolicy, GuidelineComparison, compare_guidelines

__all__ = [
    "AddNewPolicy",
    "AgentMode",
    "DnaSpecError",
    "GuidelineComparison",
    "Manifest",
    "ProjectConfig",
    "ProjectSource",
    "SourceType",
    "add_source",
    "compare_guidelines",
    "remove_source",
    "sync_project",
    "update_agents",
]
