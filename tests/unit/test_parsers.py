"""Unit tests for the per-format manifest parsers."""

from __future__ import annotations

import typing as typ

import pytest

from pipescan.scanner import (
    MAX_INCLUDE_FRAGMENTS,
    AzurePipelinesParser,
    GithubActionsMetadataParser,
    GithubActionsWorkflowParser,
    GitlabciParser,
    PipelineAsCodeTektonParser,
    default_parsers,
    resolve_gitlab_includes,
)
from tests.helpers.fakes import CHECKOUT_WORKFLOW, write_tree
from tests.helpers.log_capture import capture_module_logs

if typ.TYPE_CHECKING:
    from pathlib import Path

    from pipescan.manifests import PackageInsights

ACTION_METADATA = "name: Build\nruns:\n  using: node20\n  main: index.js\n"


def _reader(files: dict[str, str]) -> tuple[typ.Callable[[str], bytes | None], list]:
    """Return a fragment reader over ``files`` and the list of paths it read."""
    reads: list[str] = []

    def read(path: str) -> bytes | None:
        reads.append(path)
        content = files.get(path)
        return None if content is None else content.encode()

    return read, reads


class TestPatterns:
    """Each parser claims only its own files."""

    @pytest.mark.parametrize(
        ("parser", "path", "expected"),
        [
            (GithubActionsWorkflowParser(), ".github/workflows/ci.yml", True),
            (GithubActionsWorkflowParser(), ".github/workflows/ci.yaml", True),
            (GithubActionsWorkflowParser(), ".github/workflows/sub/ci.yml", False),
            (GithubActionsWorkflowParser(), "docs/.github/workflows/ci.yml", False),
            (GithubActionsMetadataParser(), "action.yml", True),
            (GithubActionsMetadataParser(), "tools/build/action.yaml", True),
            (GithubActionsMetadataParser(), "tools/reaction.yml", False),
            (AzurePipelinesParser(), "azure-pipelines.yml", True),
            (AzurePipelinesParser(), "ci/.azure-pipelines-release.yaml", True),
            (AzurePipelinesParser(), "azure-pipelines.json", False),
            (GitlabciParser(), ".gitlab-ci.yml", True),
            (GitlabciParser(), "ci/.gitlab-ci.yml", False),
            (PipelineAsCodeTektonParser(), ".tekton/pull-request.yaml", True),
            (PipelineAsCodeTektonParser(), ".tekton/tasks/build.yaml", False),
        ],
    )
    def test_matches(self, parser: typ.Any, path: str, expected: bool) -> None:
        """Path patterns are anchored the way each platform discovers files."""
        assert parser.matches(path) is expected, f"{type(parser).__name__}: {path}"

    def test_default_parsers_cover_every_format(self) -> None:
        """The built-in set has one parser per supported format."""
        kinds = {type(parser) for parser in default_parsers()}
        assert kinds == {
            GithubActionsWorkflowParser,
            GithubActionsMetadataParser,
            AzurePipelinesParser,
            GitlabciParser,
            PipelineAsCodeTektonParser,
        }


class TestDocumentParsers:
    """Single-document parsers append only valid documents."""

    def test_valid_workflow_is_appended(self, package: PackageInsights) -> None:
        """A decodable workflow lands in the package record."""
        GithubActionsWorkflowParser().parse_from_memory(
            CHECKOUT_WORKFLOW.encode(), ".github/workflows/ci.yml", package
        )

        (workflow,) = package.github_actions_workflows
        assert workflow.path == ".github/workflows/ci.yml"

    def test_invalid_workflow_is_excluded(self, package: PackageInsights) -> None:
        """A workflow without jobs is logged and left out."""
        with capture_module_logs("pipescan.scanner.parsers") as logs:
            GithubActionsWorkflowParser().parse_from_memory(
                b"on: push\n", ".github/workflows/empty.yml", package
            )

        assert package.github_actions_workflows == []
        assert logs.messages("DEBUG") == [
            "ignoring invalid github actions workflow .github/workflows/empty.yml"
        ]

    def test_undecodable_file_is_excluded(self, package: PackageInsights) -> None:
        """YAML syntax errors are absorbed at DEBUG."""
        with capture_module_logs("pipescan.scanner.parsers") as logs:
            GithubActionsWorkflowParser().parse_from_memory(
                b"jobs: [unterminated\n", ".github/workflows/bad.yml", package
            )

        assert package.github_actions_workflows == []
        (message,) = logs.messages("DEBUG")
        assert message.startswith("failed to decode github actions workflow")

    def test_parse_reads_relative_path(
        self, tmp_path: Path, package: PackageInsights
    ) -> None:
        """Files on disk are recorded by their repository-relative path."""
        write_tree(tmp_path, {"tools/action.yml": ACTION_METADATA})

        GithubActionsMetadataParser().parse(
            tmp_path / "tools" / "action.yml", tmp_path, package
        )

        assert [meta.path for meta in package.github_actions_metadata] == [
            "tools/action.yml"
        ]

    def test_each_format_lands_in_its_list(self, package: PackageInsights) -> None:
        """Azure and Tekton documents populate their own collections."""
        AzurePipelinesParser().parse_from_memory(
            b"steps: [bash: make]\n", "azure-pipelines.yml", package
        )
        PipelineAsCodeTektonParser().parse_from_memory(
            b"apiVersion: tekton.dev/v1\nkind: PipelineRun\n",
            ".tekton/pr.yaml",
            package,
        )

        assert [p.path for p in package.azure_pipelines] == ["azure-pipelines.yml"]
        assert [p.path for p in package.pipeline_as_code_tekton] == [".tekton/pr.yaml"]


class TestGitlabIncludes:
    """Local include resolution."""

    def test_follows_local_includes_breadth_first(self) -> None:
        """Fragments are returned in discovery order."""
        read, _ = _reader(
            {
                "/.gitlab-ci.yml": (
                    "include: [ci/a.yml, ci/b.yml]\nroot:\n  script: x\n"
                ),
                "/ci/a.yml": "include: /ci/c.yml\na:\n  script: x\n",
                "/ci/b.yml": "b:\n  script: x\n",
                "/ci/c.yml": "c:\n  script: x\n",
            }
        )

        configs = resolve_gitlab_includes(read)

        assert [config.path for config in configs] == [
            ".gitlab-ci.yml",
            "ci/a.yml",
            "ci/b.yml",
            "ci/c.yml",
        ]

    def test_include_cycle_terminates(self) -> None:
        """A -> B -> A visits each file once."""
        read, reads = _reader(
            {
                "/.gitlab-ci.yml": "include: a.yml\n",
                "/a.yml": "include: ./b.yml\n",
                "/b.yml": "include: [/a.yml, /.gitlab-ci.yml]\n",
            }
        )

        configs = resolve_gitlab_includes(read)

        assert [config.path for config in configs] == [
            ".gitlab-ci.yml",
            "a.yml",
            "b.yml",
        ]
        assert reads == ["/.gitlab-ci.yml", "/a.yml", "/b.yml"]

    def test_stops_at_fragment_limit(self) -> None:
        """A long include chain is cut at the fragment cap."""
        files = {"/.gitlab-ci.yml": "include: ci/0.yml\n"}
        for index in range(200):
            files[f"/ci/{index}.yml"] = f"include: ci/{index + 1}.yml\n"
        read, _ = _reader(files)

        configs = resolve_gitlab_includes(read)

        assert len(configs) == MAX_INCLUDE_FRAGMENTS
        assert configs[-1].path == f"ci/{MAX_INCLUDE_FRAGMENTS - 2}.yml"

    def test_skips_wildcards_variables_and_missing_files(self) -> None:
        """Paths that cannot be resolved statically are never read."""
        read, reads = _reader(
            {
                "/.gitlab-ci.yml": (
                    "include:\n"
                    "  - ci/*.yml\n"
                    "  - $CI_DIR/jobs.yml\n"
                    "  - missing.yml\n"
                    "  - https://example.test/remote.yml\n"
                )
            }
        )

        configs = resolve_gitlab_includes(read)

        assert [config.path for config in configs] == [".gitlab-ci.yml"]
        assert reads == ["/.gitlab-ci.yml", "/missing.yml"]

    def test_undecodable_fragment_is_skipped(self) -> None:
        """A broken include does not stop the walk."""
        read, _ = _reader(
            {
                "/.gitlab-ci.yml": "include: [bad.yml, good.yml]\n",
                "/bad.yml": "job: [unterminated\n",
                "/good.yml": "job:\n  script: make\n",
            }
        )

        configs = resolve_gitlab_includes(read)

        assert [config.path for config in configs] == [".gitlab-ci.yml", "good.yml"]

    def test_parse_reads_includes_from_disk(
        self, tmp_path: Path, package: PackageInsights
    ) -> None:
        """The on-disk parser resolves includes against the checkout root."""
        write_tree(
            tmp_path,
            {
                ".gitlab-ci.yml": "include: ci/build.yml\n",
                "ci/build.yml": "build:\n  script: make\n",
            },
        )

        GitlabciParser().parse(tmp_path / ".gitlab-ci.yml", tmp_path, package)

        assert [config.path for config in package.gitlabci_configs] == [
            ".gitlab-ci.yml",
            "ci/build.yml",
        ]
        assert package.gitlabci_configs[1].jobs[0].name == "build"

    def test_parse_from_memory_takes_one_fragment(
        self, package: PackageInsights
    ) -> None:
        """In-memory parsing never follows includes."""
        GitlabciParser().parse_from_memory(
            b"include: ci/build.yml\njob:\n  script: make\n", ".gitlab-ci.yml", package
        )

        (config,) = package.gitlabci_configs
        assert config.local_includes() == ["ci/build.yml"]
