"""Tests for guideline reconciliation."""

import pytest

from dnaspec.exceptions import SelectionError
from dnaspec.models import (
    Manifest,
    ManifestGuideline,
    ManifestPrompt,
    ProjectGuideline,
    ProjectSource,
    SourceType,
)
from dnaspec.reconcile import (
    AddNewPolicy,
    GuidelineComparison,
    compare_guidelines,
    extract_referenced_prompts,
    rebuild_source,
    select_guidelines_by_name,
    select_retained,
)


def manifest_guideline(
    name: str,
    description: str = "desc",
    scenarios: list[str] | None = None,
    prompts: list[str] | None = None,
) -> ManifestGuideline:
    return ManifestGuideline(
        name=name,
        file=f"guidelines/{name}.md",
        description=description,
        applicable_scenarios=scenarios if scenarios is not None else ["scenario"],
        prompts=prompts or [],
    )


def recorded(guideline: ManifestGuideline) -> ProjectGuideline:
    return ProjectGuideline.from_manifest(guideline)


class TestCompareGuidelines:
    """Test compare_guidelines."""

    def test_updated_and_new(self) -> None:
        """Test a changed description and an added guideline."""
        current = [recorded(manifest_guideline("a", description="old"))]
        latest = [manifest_guideline("a", description="new"), manifest_guideline("b")]

        comparison = compare_guidelines(current, latest)

        assert comparison == GuidelineComparison(updated=("a",), new=("b",))

    def test_all_partitions(self) -> None:
        """Test each name lands in exactly one partition."""
        current = [
            recorded(manifest_guideline("a")),
            recorded(manifest_guideline("b")),
            recorded(manifest_guideline("c", scenarios=["one"])),
        ]
        latest = [
            manifest_guideline("d"),
            manifest_guideline("c", scenarios=["one", "two"]),
            manifest_guideline("a"),
            manifest_guideline("e"),
        ]

        comparison = compare_guidelines(current, latest)

        assert comparison.unchanged == ("a",)
        assert comparison.updated == ("c",)
        assert comparison.orphaned == ("b",)
        assert comparison.new == ("d", "e")

    def test_prompt_order_is_significant(self) -> None:
        """Test reordered prompt references count as an update."""
        current = [recorded(manifest_guideline("a", prompts=["x", "y"]))]
        latest = [manifest_guideline("a", prompts=["y", "x"])]

        assert compare_guidelines(current, latest).updated == ("a",)

    def test_scenario_order_is_significant(self) -> None:
        """Test reordered scenarios count as an update."""
        current = [recorded(manifest_guideline("a", scenarios=["x", "y"]))]
        latest = [manifest_guideline("a", scenarios=["y", "x"])]

        assert compare_guidelines(current, latest).updated == ("a",)

    def test_no_changes(self) -> None:
        """Test identical metadata has no changes."""
        guideline = manifest_guideline("a")
        comparison = compare_guidelines([recorded(guideline)], [guideline])

        assert comparison.unchanged == ("a",)
        assert not comparison.has_changes

    def test_empty_inputs(self) -> None:
        """Test empty inputs give an empty comparison."""
        assert compare_guidelines([], []) == GuidelineComparison()

    def test_inputs_not_modified(self) -> None:
        """Test comparison does not mutate its arguments."""
        current = [recorded(manifest_guideline("a", description="old"))]
        latest = [manifest_guideline("a", description="new")]

        compare_guidelines(current, latest)

        assert current[0].description == "old"
        assert latest[0].description == "new"


class TestSelectRetained:
    """Test select_retained."""

    @pytest.fixture
    def comparison(self) -> GuidelineComparison:
        """Comparison with every partition populated."""
        return GuidelineComparison(
            unchanged=("a",), updated=("b",), new=("c", "d"), orphaned=("e",)
        )

    def test_add_none(self, comparison: GuidelineComparison) -> None:
        """Test new guidelines are skipped and orphans dropped."""
        assert select_retained(comparison, AddNewPolicy.NONE) == ["a", "b"]

    def test_add_all(self, comparison: GuidelineComparison) -> None:
        """Test every new guideline is kept."""
        assert select_retained(comparison, AddNewPolicy.ALL) == ["a", "b", "c", "d"]

    def test_ask_uses_callback(self, comparison: GuidelineComparison) -> None:
        """Test the callback receives the new names and picks a subset."""
        offered = []

        def confirm(names):
            offered.extend(names)
            return ["d"]

        retained = select_retained(comparison, AddNewPolicy.ASK, confirm)

        assert offered == ["c", "d"]
        assert retained == ["a", "b", "d"]

    def test_ask_without_callback(self, comparison: GuidelineComparison) -> None:
        """Test ASK requires a callback when there are new guidelines."""
        with pytest.raises(ValueError, match="confirm_new"):
            select_retained(comparison, AddNewPolicy.ASK)

    def test_ask_without_new_guidelines(self) -> None:
        """Test ASK does not need a callback when nothing is new."""
        comparison = GuidelineComparison(unchanged=("a",))
        assert select_retained(comparison, AddNewPolicy.ASK) == ["a"]

    def test_ask_rejects_unknown_names(self, comparison: GuidelineComparison) -> None:
        """Test the callback may only confirm new names."""
        with pytest.raises(SelectionError, match="e"):
            select_retained(comparison, AddNewPolicy.ASK, lambda names: ["e"])


class TestSelection:
    """Test selection helpers."""

    @pytest.fixture
    def manifest(self) -> Manifest:
        """Manifest with three guidelines and three prompts."""
        return Manifest(
            version=1,
            guidelines=[
                manifest_guideline("first", prompts=["review"]),
                manifest_guideline("second"),
                manifest_guideline("third", prompts=["debug", "review"]),
            ],
            prompts=[
                ManifestPrompt(name="debug", file="prompts/debug.md", description="Debug"),
                ManifestPrompt(name="review", file="prompts/review.md", description="Review"),
                ManifestPrompt(name="unused", file="prompts/unused.md", description="Unused"),
            ],
        )

    def test_select_by_name_in_manifest_order(self, manifest: Manifest) -> None:
        """Test selected guidelines follow manifest order."""
        selected = select_guidelines_by_name(manifest, ["third", "first"])
        assert [g.name for g in selected] == ["first", "third"]

    def test_select_missing_names(self, manifest: Manifest) -> None:
        """Test unknown names are reported together."""
        with pytest.raises(SelectionError, match="missing-one") as exc_info:
            select_guidelines_by_name(manifest, ["first", "missing-one", "missing-two"])

        assert exc_info.value.details["missing"] == ["missing-one", "missing-two"]

    def test_referenced_prompts_only(self, manifest: Manifest) -> None:
        """Test only referenced prompts are kept, in manifest order."""
        prompts = extract_referenced_prompts(manifest.guidelines, manifest.prompts)
        assert [p.name for p in prompts] == ["debug", "review"]

    def test_no_references(self, manifest: Manifest) -> None:
        """Test guidelines without references select no prompts."""
        second = manifest.guideline("second")
        assert extract_referenced_prompts([second], manifest.prompts) == []


class TestRebuildSource:
    """Test rebuild_source."""

    @pytest.fixture
    def source(self) -> ProjectSource:
        """Recorded source with two guidelines."""
        return ProjectSource(
            name="company-dna",
            source_type=SourceType.GIT_REPO,
            url="https://github.com/company/dna.git",
            commit="abc123",
            guidelines=[
                recorded(manifest_guideline("zeta", description="old")),
                recorded(manifest_guideline("alpha")),
            ],
        )

    @pytest.fixture
    def manifest(self) -> Manifest:
        """Manifest listing guidelines in a different order."""
        return Manifest(
            version=1,
            guidelines=[
                manifest_guideline("alpha"),
                manifest_guideline("beta", prompts=["review"]),
                manifest_guideline("zeta", description="new"),
            ],
            prompts=[
                ManifestPrompt(name="review", file="prompts/review.md", description="Review"),
            ],
        )

    def test_keeps_recorded_order(self, source: ProjectSource, manifest: Manifest) -> None:
        """Test recorded guidelines keep position and new ones follow."""
        rebuilt = rebuild_source(source, manifest, ["alpha", "beta", "zeta"], commit="def456")

        assert rebuilt.guideline_names() == ["zeta", "alpha", "beta"]
        assert rebuilt.commit == "def456"

    def test_refreshes_metadata(self, source: ProjectSource, manifest: Manifest) -> None:
        """Test retained guidelines take the manifest's metadata."""
        rebuilt = rebuild_source(source, manifest, ["zeta", "alpha"])

        assert rebuilt.guidelines[0].description == "new"
        assert rebuilt.commit == "abc123"

    def test_prompts_follow_retained_guidelines(
        self, source: ProjectSource, manifest: Manifest
    ) -> None:
        """Test prompts are exactly those referenced by retained guidelines."""
        without_beta = rebuild_source(source, manifest, ["zeta", "alpha"])
        with_beta = rebuild_source(source, manifest, ["zeta", "alpha", "beta"])

        assert without_beta.prompts == []
        assert [p.name for p in with_beta.prompts] == ["review"]

    def test_drops_unretained(self, source: ProjectSource, manifest: Manifest) -> None:
        """Test guidelines not retained are dropped."""
        rebuilt = rebuild_source(source, manifest, ["alpha"])

        assert rebuilt.guideline_names() == ["alpha"]
        assert source.guideline_names() == ["zeta", "alpha"]
