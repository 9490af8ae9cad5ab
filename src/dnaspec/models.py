"""Core data models for DNASpec manifests and project configuration."""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _none_as_empty(value: Any) -> Any:
    """YAML keys left blank load as ``None``; treat them as empty lists."""
    return [] if value is None else value


class SourceType(str, Enum):
    """Origin kinds a source can be fetched from."""

    GIT_REPO = "git-repo"
    LOCAL_PATH = "local-path"


class ManifestGuideline(BaseModel):
    """A guideline entry as published in a source manifest."""

    name: str = Field(default="", description="Unique spinal-case guideline name")
    file: str = Field(default="", description="Path relative to the source root")
    description: str = Field(default="", description="Short human description")
    applicable_scenarios: list[str] = Field(
        default_factory=list,
        description="Situations in which the guideline applies",
    )
    prompts: list[str] = Field(
        default_factory=list,
        description="Names of prompts this guideline references",
    )

    @field_validator("applicable_scenarios", "prompts", mode="before")
    @classmethod
    def none_as_empty_list(cls, v: Any) -> Any:
        """Blank YAML keys load as None; treat them as empty lists."""
        return _none_as_empty(v)


class ManifestPrompt(BaseModel):
    """A prompt entry as published in a source manifest."""

    name: str = Field(default="", description="Unique spinal-case prompt name")
    file: str = Field(default="", description="Path relative to the source root")
    description: str = Field(default="", description="Short human description")


class Manifest(BaseModel):
    """Snapshot of the guidelines and prompts available at an origin."""

    version: int = Field(default=0, description="Manifest format version")
    guidelines: list[ManifestGuideline] = Field(default_factory=list)
    prompts: list[ManifestPrompt] = Field(default_factory=list)

    @field_validator("guidelines", "prompts", mode="before")
    @classmethod
    def none_as_empty_list(cls, v: Any) -> Any:
        """Blank YAML keys load as None; treat them as empty lists."""
        return _none_as_empty(v)

    def guideline(self, name: str) -> ManifestGuideline | None:
        """Find a guideline by name."""
        for guideline in self.guidelines:
            if guideline.name == name:
                return guideline
        return None

    def guideline_names(self) -> list[str]:
        """Names of all guidelines, in manifest order."""
        return [g.name for g in self.guidelines]


class ProjectGuideline(BaseModel):
    """A guideline recorded in the project configuration."""

    name: str
    file: str
    description: str = ""
    applicable_scenarios: list[str] = Field(default_factory=list)
    prompts: list[str] = Field(default_factory=list)

    @field_validator("applicable_scenarios", "prompts", mode="before")
    @classmethod
    def none_as_empty_list(cls, v: Any) -> Any:
        """Blank YAML keys load as None; treat them as empty lists."""
        return _none_as_empty(v)

    @classmethod
    def from_manifest(cls, guideline: ManifestGuideline) -> ProjectGuideline:
        """Copy metadata from a manifest entry."""
        return cls(
            name=guideline.name,
            file=guideline.file,
            description=guideline.description,
            applicable_scenarios=list(guideline.applicable_scenarios),
            prompts=list(guideline.prompts),
        )

    def same_metadata(self, guideline: ManifestGuideline) -> bool:
        """Compare description, scenarios and prompt references, in order.

        File bodies are not considered; they are recopied from the source
        on every update regardless of this result.
        """
        return (
            self.description == guideline.description
            and self.applicable_scenarios == guideline.applicable_scenarios
            and self.prompts == guideline.prompts
        )


class ProjectPrompt(BaseModel):
    """A prompt recorded in the project configuration."""

    name: str
    file: str
    description: str = ""

    @classmethod
    def from_manifest(cls, prompt: ManifestPrompt) -> ProjectPrompt:
        """Copy metadata from a manifest entry."""
        return cls(name=prompt.name, file=prompt.file, description=prompt.description)


class ProjectSource(BaseModel):
    """A DNA source tracked by the project."""

    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(..., description="Unique source name, used as directory name")
    source_type: SourceType = Field(..., alias="type", description="Origin kind")
    url: str | None = Field(default=None, description="Git repository URL")
    path: str | None = Field(default=None, description="Local directory path")
    ref: str | None = Field(default=None, description="Git branch or tag")
    commit: str | None = Field(
        default=None,
        description="Revision marker of the last fetched snapshot",
    )
    guidelines: list[ProjectGuideline] = Field(default_factory=list)
    prompts: list[ProjectPrompt] = Field(default_factory=list)

    @field_validator("guidelines", "prompts", mode="before")
    @classmethod
    def none_as_empty_list(cls, v: Any) -> Any:
        """Blank YAML keys load as None; treat them as empty lists."""
        return _none_as_empty(v)

    def guideline_names(self) -> list[str]:
        """Names of the recorded guidelines, in order."""
        return [g.name for g in self.guidelines]

    def content_files(self) -> list[str]:
        """Relative paths of every guideline and prompt file of this source."""
        return [g.file for g in self.guidelines] + [p.file for p in self.prompts]


class ProjectConfig(BaseModel):
    """The persisted project state (``dnaspec.yaml``)."""

    version: int = Field(default=1, description="Project configuration version")
    agents: list[str] = Field(
        default_factory=list,
        description="Selected agent integration ids",
    )
    sources: list[ProjectSource] = Field(default_factory=list)

    @field_validator("agents", "sources", mode="before")
    @classmethod
    def none_as_empty_list(cls, v: Any) -> Any:
        """Blank YAML keys load as None; treat them as empty lists."""
        return _none_as_empty(v)

    def find_source(self, name: str) -> ProjectSource | None:
        """Find a source by name."""
        for source in self.sources:
            if source.name == name:
                return source
        return None

    def source_names(self) -> list[str]:
        """Names of all configured sources, in order."""
        return [s.name for s in self.sources]

    def with_source(self, source: ProjectSource) -> ProjectConfig:
        """Return a copy with ``source`` replacing the same-named entry or appended."""
        sources = list(self.sources)
        for index, existing in enumerate(sources):
            if existing.name == source.name:
                sources[index] = source
                break
        else:
            sources.append(source)
        return self.model_copy(update={"sources": sources})

    def without_source(self, name: str) -> ProjectConfig:
        """Return a copy with the named source removed."""
        sources = [s for s in self.sources if s.name != name]
        return self.model_copy(update={"sources": sources})

    def with_agents(self, agents: list[str]) -> ProjectConfig:
        """Return a copy with the selected agent ids replaced."""
        return self.model_copy(update={"agents": list(agents)})

    def to_document(self) -> dict[str, Any]:
        """Plain data suitable for YAML serialization."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
