"""Per-format parsers that append decoded manifests to a package record.

Each parser owns a path pattern. A file whose content fails to decode is
logged at DEBUG and left out of the record; read errors propagate to the
scanner.
"""

from __future__ import annotations

import collections
import collections.abc as cabc
import posixpath
import re
import typing as typ

from pipescan.logging import get_logger, log_debug
from pipescan.manifests.azure import AzurePipeline, decode_pipeline
from pipescan.manifests.errors import ManifestDecodeError
from pipescan.manifests.github_actions import (
    GithubActionsMetadata,
    GithubActionsWorkflow,
    decode_metadata,
    decode_workflow,
)
from pipescan.manifests.gitlab import GitlabciConfig, parse_config
from pipescan.manifests.nodes import compose_first
from pipescan.manifests.tekton import PipelineAsCodeTekton, decode_pipeline_run

if typ.TYPE_CHECKING:
    from pathlib import Path

    from pipescan.manifests.package import PackageInsights

logger = get_logger(__name__)

MAX_INCLUDE_FRAGMENTS = 150
GITLAB_ROOT_CONFIG = "/.gitlab-ci.yml"

type FragmentReader = cabc.Callable[[str], bytes | None]


class Parser(typ.Protocol):
    """A decoder for one family of pipeline files."""

    pattern: re.Pattern[str]

    def matches(self, path: str) -> bool:
        """Return True when the repository-relative ``path`` is handled."""
        ...

    def parse(self, file_path: Path, repo_root: Path, package: PackageInsights) -> None:
        """Read ``file_path`` and append what it decodes to ``package``."""
        ...

    def parse_from_memory(
        self, data: bytes, path: str, package: PackageInsights
    ) -> None:
        """Decode ``data`` as the file at ``path`` and append it."""
        ...


class _Manifest(typ.Protocol):
    def is_valid(self) -> bool: ...


class _DocumentParser[D: _Manifest]:
    """Shared read-decode-append flow for single-document formats."""

    pattern: re.Pattern[str]
    kind: str

    def matches(self, path: str) -> bool:
        return self.pattern.search(path) is not None

    def parse(self, file_path: Path, repo_root: Path, package: PackageInsights) -> None:
        path = file_path.relative_to(repo_root).as_posix()
        self.parse_from_memory(file_path.read_bytes(), path, package)

    def parse_from_memory(
        self, data: bytes, path: str, package: PackageInsights
    ) -> None:
        try:
            document = self.decode(data, path)
        except ManifestDecodeError as exc:
            log_debug(logger, "failed to decode %s %s: %s", self.kind, path, exc)
            return
        if not document.is_valid():
            log_debug(logger, "ignoring invalid %s %s", self.kind, path)
            return
        self.append(package, document)

    def decode(self, data: bytes, path: str) -> D:
        raise NotImplementedError

    def append(self, package: PackageInsights, document: D) -> None:
        raise NotImplementedError


class GithubActionsWorkflowParser(_DocumentParser[GithubActionsWorkflow]):
    """Workflows under ``.github/workflows/``."""

    pattern = re.compile(r"^\.github/workflows/[^/]+\.ya?ml$")
    kind = "github actions workflow"

    def decode(self, data: bytes, path: str) -> GithubActionsWorkflow:
        return decode_workflow(compose_first(data), path)

    def append(self, package: PackageInsights, document: GithubActionsWorkflow) -> None:
        package.github_actions_workflows.append(document)


class GithubActionsMetadataParser(_DocumentParser[GithubActionsMetadata]):
    """``action.yml`` metadata anywhere in the tree."""

    pattern = re.compile(r"(^|/)action\.ya?ml$")
    kind = "github actions metadata"

    def decode(self, data: bytes, path: str) -> GithubActionsMetadata:
        return decode_metadata(compose_first(data), path)

    def append(self, package: PackageInsights, document: GithubActionsMetadata) -> None:
        package.github_actions_metadata.append(document)


class AzurePipelinesParser(_DocumentParser[AzurePipeline]):
    """``azure-pipelines*.yml`` files anywhere in the tree."""

    pattern = re.compile(r"\.?azure-pipelines(-.+)?\.ya?ml$")
    kind = "azure pipeline"

    def decode(self, data: bytes, path: str) -> AzurePipeline:
        return decode_pipeline(compose_first(data), path)

    def append(self, package: PackageInsights, document: AzurePipeline) -> None:
        package.azure_pipelines.append(document)


class PipelineAsCodeTektonParser(_DocumentParser[PipelineAsCodeTekton]):
    """Tekton pipeline runs under ``.tekton/``."""

    pattern = re.compile(r"^\.tekton/[^/]+\.ya?ml$")
    kind = "tekton pipeline run"

    def decode(self, data: bytes, path: str) -> PipelineAsCodeTekton:
        return decode_pipeline_run(compose_first(data), path)

    def append(self, package: PackageInsights, document: PipelineAsCodeTekton) -> None:
        package.pipeline_as_code_tekton.append(document)


def _repo_path(path: str) -> str:
    """Return ``path`` as a normalized absolute repository path."""
    return posixpath.normpath("/" + path.lstrip("/"))


def resolve_gitlab_includes(read: FragmentReader) -> list[GitlabciConfig]:
    """Breadth-first walk of local includes starting at the root config.

    Parameters
    ----------
    read : FragmentReader
        Returns the bytes of a normalized repository path, or ``None`` when
        the file does not exist.

    Returns
    -------
    list[GitlabciConfig]
        At most :data:`MAX_INCLUDE_FRAGMENTS` fragments in discovery order.
        Paths are visited once, so include cycles terminate. Wildcard and
        variable paths are skipped, as are missing or undecodable files.

    """
    visited: set[str] = set()
    queue: collections.deque[str] = collections.deque([GITLAB_ROOT_CONFIG])
    configs: list[GitlabciConfig] = []

    while queue and len(configs) < MAX_INCLUDE_FRAGMENTS:
        repo_path = _repo_path(queue.popleft())
        if repo_path in visited:
            continue
        visited.add(repo_path)
        if "*" in repo_path or "$" in repo_path:
            continue

        data = read(repo_path)
        if data is None:
            continue
        try:
            config = parse_config(data, repo_path[1:])
        except ManifestDecodeError as exc:
            log_debug(
                logger, "failed to decode gitlab ci config %s: %s", repo_path, exc
            )
            continue

        queue.extend(config.local_includes())
        configs.append(config)
    return configs


class GitlabciParser:
    """The root ``.gitlab-ci.yml`` plus everything it includes locally."""

    pattern = re.compile(r"^\.gitlab-ci\.yml$")
    kind = "gitlab ci config"

    def matches(self, path: str) -> bool:
        return self.pattern.search(path) is not None

    def parse(self, file_path: Path, repo_root: Path, package: PackageInsights) -> None:
        del file_path

        def read(repo_path: str) -> bytes | None:
            candidate = repo_root / repo_path.lstrip("/")
            if not candidate.is_file():
                return None
            return candidate.read_bytes()

        package.gitlabci_configs.extend(resolve_gitlab_includes(read))

    def parse_from_memory(
        self, data: bytes, path: str, package: PackageInsights
    ) -> None:
        try:
            config = parse_config(data, path)
        except ManifestDecodeError as exc:
            log_debug(logger, "failed to decode %s %s: %s", self.kind, path, exc)
            return
        package.gitlabci_configs.append(config)


def default_parsers() -> list[Parser]:
    """Return one instance of every built-in parser."""
    return [
        GithubActionsWorkflowParser(),
        GithubActionsMetadataParser(),
        AzurePipelinesParser(),
        GitlabciParser(),
        PipelineAsCodeTektonParser(),
    ]
