"""Provider for a checkout already on disk."""

from __future__ import annotations

import re
import typing as typ
import urllib.parse
from pathlib import Path

from .errors import ScmConfigError
from .gitops import LocalGitClient
from .scm import (
    GITHUB_PROVIDER,
    GITLAB_PROVIDER,
    LOCAL_PROVIDER,
    RepoBatch,
    ScmRepository,
    split_repo_and_org,
)

if typ.TYPE_CHECKING:
    from .gitops import GitOperations

_SCP_LIKE_REMOTE = re.compile(r"^(?:[^@/:]+@)?(?P<host>[^/:]+):(?P<path>[^/].*)$")
_WELL_KNOWN_HOSTS = {"github.com": GITHUB_PROVIDER, "gitlab.com": GITLAB_PROVIDER}


def parse_remote_url(remote: str) -> tuple[str, str] | None:
    """Return ``(host, path)`` of a git remote, or None for a local path.

    Both URL remotes and the scp-like ``git@host:org/repo.git`` form are
    understood; a trailing ``.git`` is dropped.

    Examples
    --------
    >>> parse_remote_url("git@github.com:acme/widgets.git")
    ('github.com', 'acme/widgets')
    >>> parse_remote_url("/srv/git/widgets") is None
    True

    """
    text = remote.strip()
    if "://" in text:
        parts = urllib.parse.urlsplit(text)
        host = parts.hostname or ""
        path = parts.path
    elif match := _SCP_LIKE_REMOTE.match(text):
        host, path = match.group("host"), match.group("path")
    else:
        return None
    path = path.strip("/").removesuffix(".git")
    if not host or not path or _has_empty_segment(path):
        return None
    return (host.lower(), path)


def _has_empty_segment(path: str) -> bool:
    return any(not segment for segment in path.split("/"))


def repository_from_remote(remote: str, checkout: str | Path) -> ScmRepository:
    """Describe the repository behind ``remote``.

    GitHub.com and GitLab.com remotes map to the ``github`` and ``gitlab``
    providers with an ``org/name`` identifier. Other hosts become their own
    provider with a ``host/org/name`` identifier. A remote without a host
    falls back to the ``local`` provider, named after the checkout folder.
    """
    parsed = parse_remote_url(remote)
    if parsed is None:
        name = Path(checkout).resolve().name or "repository"
        return ScmRepository(provider=LOCAL_PROVIDER, identifier=name)

    host, path = parsed
    provider = _WELL_KNOWN_HOSTS.get(host)
    if provider is not None:
        return ScmRepository(provider=provider, identifier=path)
    return ScmRepository(provider=host, identifier=f"{host}/{path}")


async def describe_checkout(
    path: str | Path, git: GitOperations | None = None
) -> ScmRepository:
    """Return the repository checked out at ``path``."""
    client = git or LocalGitClient()
    remote = await client.remote_origin_url(path)
    return repository_from_remote(remote, path)


class LocalScmClient:
    """:class:`~pipescan.providers.scm.ScmClient` for a single checkout.

    Create instances with :meth:`open`, which resolves the provider from the
    checkout's ``origin`` remote.
    """

    def __init__(self, repo_path: str | Path, repository: ScmRepository) -> None:
        """Wrap ``repository``, already resolved from ``repo_path``."""
        self._repo_path = Path(repo_path)
        self._repository = repository

    @classmethod
    async def open(
        cls, repo_path: str | Path, git: GitOperations | None = None
    ) -> LocalScmClient:
        """Resolve ``repo_path`` and return a client for it.

        Raises
        ------
        ScmConfigError
            If ``repo_path`` is not a directory.

        """
        path = Path(repo_path)
        if not path.is_dir():
            raise ScmConfigError.missing_repo_path()
        return cls(path, await describe_checkout(path, git))

    @property
    def repo_path(self) -> Path:
        """Return the checkout directory."""
        return self._repo_path

    @property
    def repository(self) -> ScmRepository:
        """Return the repository resolved from the checkout."""
        return self._repository

    @property
    def provider_name(self) -> str:
        """Return the provider resolved from the remote."""
        return self._repository.provider

    @property
    def base_url(self) -> str:
        """Return an empty host; local checkouts are never cloned."""
        return ""

    @property
    def token(self) -> str:
        """Return an empty token."""
        return ""

    async def aclose(self) -> None:
        """Release nothing."""

    async def iter_org_repos(self, org: str) -> typ.AsyncIterator[RepoBatch]:
        """Refuse to list; a local checkout has no organization.

        Raises
        ------
        ScmConfigError
            Always.

        """
        del org
        raise ScmConfigError.unsupported_operation(
            LOCAL_PROVIDER, "organization listing"
        )
        yield RepoBatch(total_count=0)  # pragma: no cover

    async def get_repo(self, org: str, name: str) -> ScmRepository:
        """Return the checkout's repository regardless of ``org`` and ``name``."""
        del org, name
        return self._repository

    async def provider_version(self) -> str:
        """Return an empty version."""
        return ""

    def parse_repo_and_org(self, text: str) -> tuple[str, str]:
        """Split ``org/name``."""
        return split_repo_and_org(text)
