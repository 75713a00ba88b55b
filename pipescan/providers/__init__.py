"""Source-control providers and the git client."""

from __future__ import annotations

from .errors import (
    CloneError,
    GitCommandError,
    GitError,
    GitExitError,
    GitNotFoundError,
    ListingError,
    ScmApiError,
    ScmConfigError,
    ScmResponseShapeError,
)
from .factory import SUPPORTED_PROVIDERS, build_scm_client
from .github import GitHubConfig, GitHubScmClient
from .gitlab import GitLabConfig, GitLabScmClient
from .gitops import (
    GitClient,
    GitCommand,
    GitOperations,
    LocalGitClient,
    SubprocessGitCommand,
)
from .local import LocalScmClient, describe_checkout, parse_remote_url
from .scm import RepoBatch, ScmClient, ScmRepository, ScmSettings, domain_from_url

__all__ = [
    "SUPPORTED_PROVIDERS",
    "CloneError",
    "GitClient",
    "GitCommand",
    "GitCommandError",
    "GitError",
    "GitExitError",
    "GitHubConfig",
    "GitHubScmClient",
    "GitLabConfig",
    "GitLabScmClient",
    "GitNotFoundError",
    "GitOperations",
    "ListingError",
    "LocalGitClient",
    "LocalScmClient",
    "RepoBatch",
    "ScmApiError",
    "ScmClient",
    "ScmConfigError",
    "ScmRepository",
    "ScmResponseShapeError",
    "ScmSettings",
    "SubprocessGitCommand",
    "build_scm_client",
    "describe_checkout",
    "domain_from_url",
    "parse_remote_url",
]
