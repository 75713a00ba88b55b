"""Build the source-control client for a provider name."""

from __future__ import annotations

import typing as typ

from .errors import ScmConfigError
from .github import GitHubScmClient
from .gitlab import GitLabScmClient
from .local import LocalScmClient
from .scm import GITHUB_PROVIDER, GITLAB_PROVIDER, LOCAL_PROVIDER

if typ.TYPE_CHECKING:
    from pathlib import Path

    import httpx

    from .gitops import GitOperations
    from .scm import ScmClient

SUPPORTED_PROVIDERS = (GITHUB_PROVIDER, GITLAB_PROVIDER, LOCAL_PROVIDER)


async def build_scm_client(  # noqa: PLR0913
    provider: str,
    *,
    token: str = "",
    base_url: str = "",
    http_client: httpx.AsyncClient | None = None,
    repo_path: str | Path | None = None,
    git: GitOperations | None = None,
) -> ScmClient:
    """Return the client for ``provider``.

    Parameters
    ----------
    provider : str
        ``github``, ``gitlab`` or ``local``.
    token : str
        API token; required for the hosted providers.
    base_url : str
        Host of a self-managed instance; empty selects the public service.
    http_client : httpx.AsyncClient | None
        Shared HTTP client, mostly for tests.
    repo_path : str | Path | None
        Checkout directory; required for ``local``.
    git : GitOperations | None
        Git client used to read the local checkout's remote.

    Raises
    ------
    ScmConfigError
        If the provider is unknown or a required setting is missing.

    """
    match provider.strip().lower():
        case "github":
            return GitHubScmClient.from_base_url(
                token, base_url, http_client=http_client
            )
        case "gitlab":
            return GitLabScmClient.from_base_url(
                token, base_url, http_client=http_client
            )
        case "local":
            if repo_path is None:
                raise ScmConfigError.missing_repo_path()
            return await LocalScmClient.open(repo_path, git)
        case _:
            raise ScmConfigError.unsupported_provider(provider)
