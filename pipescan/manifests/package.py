"""The package record: one scanned repository and everything found in it."""

from __future__ import annotations

import msgspec

from pipescan.identity import normalize_purl, parse_purl

from .azure import AzurePipeline
from .github_actions import GithubActionsMetadata, GithubActionsWorkflow
from .gitlab import GitlabciConfig
from .tekton import PipelineAsCodeTekton

_SCM_HOSTS = {"github": "github.com", "gitlab": "gitlab.com"}


class PackageInsights(msgspec.Struct, kw_only=True):
    """Scan state for one repository.

    Created once per scan pass, filled by the inventory scanner and the
    dependency query, then treated as read-only.
    """

    version: str = ""
    first_seen_at: str = ""
    updated_at: str = ""
    last_commited_at: str = ""

    purl: str = ""
    package_ecosystem: str = ""
    package_name: str = ""
    package_namespace: str = ""
    package_version: str = ""

    source_scm_type: str = ""
    source_git_repo: str = ""
    source_git_repo_path: str = ""
    source_git_ref: str = ""
    source_git_commit_sha: str = ""

    package_dependencies: list[str] = msgspec.field(default_factory=list)
    build_dependencies: list[str] = msgspec.field(default_factory=list)

    github_actions_workflows: list[GithubActionsWorkflow] = msgspec.field(
        default_factory=list
    )
    github_actions_metadata: list[GithubActionsMetadata] = msgspec.field(
        default_factory=list
    )
    gitlabci_configs: list[GitlabciConfig] = msgspec.field(default_factory=list)
    azure_pipelines: list[AzurePipeline] = msgspec.field(default_factory=list)
    pipeline_as_code_tekton: list[PipelineAsCodeTekton] = msgspec.field(
        default_factory=list
    )

    def normalize_purl(self) -> None:
        """Canonicalize ``purl`` and copy its parts into the package fields.

        Raises
        ------
        MalformedIdentityError
            If ``purl`` is empty or malformed.

        """
        purl = normalize_purl(parse_purl(self.purl))
        self.purl = purl.to_string()
        self.package_ecosystem = purl.type
        self.package_name = purl.name
        self.package_namespace = purl.namespace or ""
        self.package_version = purl.version or ""

    def source_git_repo_uri(self) -> str:
        """Return the web address of the source repository."""
        host = _SCM_HOSTS.get(self.source_scm_type)
        if host is None:
            return f"https://{self.source_git_repo}"
        return f"https://{host}/{self.source_git_repo}"
