"""Provider-neutral repository models and the source-control client protocol."""

from __future__ import annotations

import dataclasses
import os
import typing as typ
import urllib.parse

from .errors import ScmConfigError

if typ.TYPE_CHECKING:
    import collections.abc as cabc

GITHUB_PROVIDER = "github"
GITLAB_PROVIDER = "gitlab"
LOCAL_PROVIDER = "local"

TOKEN_ENV_VARS = ("PIPESCAN_TOKEN", "GH_TOKEN", "GITHUB_TOKEN", "GITLAB_TOKEN")
BASE_URL_ENV_VAR = "PIPESCAN_SCM_BASE_URL"


@dataclasses.dataclass(frozen=True, slots=True)
class ScmRepository:
    """A repository as reported by a source-control provider.

    Attributes
    ----------
    provider : str
        Provider name, used as the package-URL type of the repository.
    identifier : str
        Path of the repository on its host, e.g. ``acme/widgets`` or
        ``group/subgroup/project``.
    is_fork : bool
        True when the repository is a fork of another one.
    is_archived : bool
        True when the repository is read-only.
    default_branch : str
        Default branch name when the provider reported one.

    """

    provider: str
    identifier: str
    is_fork: bool = False
    is_archived: bool = False
    default_branch: str = ""

    def build_git_url(self, base_url: str) -> str:
        """Return the HTTPS clone URL of this repository on ``base_url``.

        Examples
        --------
        >>> ScmRepository("github", "acme/widgets").build_git_url("github.com")
        'https://github.com/acme/widgets'

        """
        return f"https://{domain_from_url(base_url)}/{self.identifier}"


@dataclasses.dataclass(frozen=True, slots=True)
class RepoBatch:
    """One page of an organization listing."""

    total_count: int
    repositories: tuple[ScmRepository, ...] = ()


class ScmClient(typ.Protocol):
    """Interface shared by every source-control provider client."""

    @property
    def provider_name(self) -> str:
        """Return the provider name used in package URLs."""
        ...

    @property
    def base_url(self) -> str:
        """Return the host repositories are cloned from."""
        ...

    @property
    def token(self) -> str:
        """Return the API token, also used to authenticate clones."""
        ...

    def iter_org_repos(self, org: str) -> cabc.AsyncIterator[RepoBatch]:
        """Yield pages of the repositories that belong to ``org``."""
        ...

    async def get_repo(self, org: str, name: str) -> ScmRepository:
        """Return a single repository."""
        ...

    async def provider_version(self) -> str:
        """Return the version of the provider's server software."""
        ...

    def parse_repo_and_org(self, text: str) -> tuple[str, str]:
        """Split ``text`` into ``(org, name)``."""
        ...

    async def aclose(self) -> None:
        """Release any owned HTTP resources."""
        ...


def domain_from_url(value: str) -> str:
    """Return the host (and port) of ``value``, which may omit its scheme.

    Examples
    --------
    >>> domain_from_url("https://github.example.com/")
    'github.example.com'
    >>> domain_from_url("gitlab.com")
    'gitlab.com'

    """
    text = value.strip()
    if "://" not in text:
        text = f"https://{text}"
    return urllib.parse.urlsplit(text).netloc.rsplit("@", 1)[-1]


def split_repo_and_org(text: str) -> tuple[str, str]:
    """Split ``org/name`` at the first slash.

    Everything after the first slash is the repository name, so GitLab
    subgroup paths such as ``group/sub/project`` keep their nesting.

    Raises
    ------
    ScmConfigError
        If either side of the slash is empty.

    """
    org, sep, name = text.strip().strip("/").partition("/")
    if not sep or not org or not name:
        raise ScmConfigError.invalid_repo(text)
    return (org, name)


def _first_env(names: cabc.Iterable[str]) -> str:
    for name in names:
        value = os.environ.get(name, "").strip()
        if value:
            return value
    return ""


@dataclasses.dataclass(frozen=True, slots=True)
class ScmSettings:
    """Provider selection and credentials for a scan."""

    provider: str = GITHUB_PROVIDER
    token: str = ""
    base_url: str = ""

    @classmethod
    def from_env(cls, provider: str = GITHUB_PROVIDER) -> ScmSettings:
        """Read ``PIPESCAN_TOKEN`` (or a provider token) and the base URL."""
        return cls(
            provider=provider,
            token=_first_env(TOKEN_ENV_VARS),
            base_url=os.environ.get(BASE_URL_ENV_VAR, "").strip(),
        )
