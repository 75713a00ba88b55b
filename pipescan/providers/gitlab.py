"""GitLab client over the v4 REST API."""

from __future__ import annotations

import dataclasses
import typing as typ
import urllib.parse

import httpx

from pipescan import __version__
from pipescan.logging import get_logger, log_debug, log_info

from .errors import ScmApiError, ScmConfigError, ScmResponseShapeError
from .scm import (
    GITLAB_PROVIDER,
    RepoBatch,
    ScmRepository,
    domain_from_url,
    split_repo_and_org,
)

logger = get_logger(__name__)

GITLAB_DOMAIN = "gitlab.com"
PAGE_SIZE = 100
_HTTP_ERROR_STATUS_THRESHOLD = 400
_HTTP_NOT_FOUND = 404
_PROVIDER_LABEL = "GitLab"


@dataclasses.dataclass(frozen=True, slots=True)
class GitLabConfig:
    """Configuration for GitLab.com or a self-managed instance."""

    token: str
    domain: str = GITLAB_DOMAIN
    timeout_s: float = 20.0
    user_agent: str = f"pipescan/{__version__}"

    @property
    def api_url(self) -> str:
        """Return the v4 REST API root."""
        return f"https://{self.domain}/api/v4"


def _project_from_payload(project: dict[str, typ.Any]) -> ScmRepository | None:
    """Convert a project payload; empty projects have nothing to clone."""
    identifier = project.get("path_with_namespace")
    if not isinstance(identifier, str) or project.get("empty_repo"):
        return None
    branch = project.get("default_branch")
    return ScmRepository(
        provider=GITLAB_PROVIDER,
        identifier=identifier,
        is_fork=bool(project.get("forked_from_project")),
        is_archived=bool(project.get("archived")),
        default_branch=branch if isinstance(branch, str) else "",
    )


def _header_int(response: httpx.Response, name: str, default: int) -> int:
    try:
        return int(response.headers.get(name, ""))
    except ValueError:
        return default


def _strip_edition(version: str) -> str:
    """Drop the ``-ee`` edition suffix GitLab appends to its version."""
    return version.removesuffix("-ee")


class GitLabScmClient:
    """:class:`~pipescan.providers.scm.ScmClient` for GitLab."""

    def __init__(
        self,
        config: GitLabConfig,
        *,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialise the client with the provided API configuration."""
        if not config.token.strip():
            raise ScmConfigError.missing_token(_PROVIDER_LABEL)

        self._config = config
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(
            timeout=config.timeout_s,
            headers={
                "PRIVATE-TOKEN": config.token,
                "User-Agent": config.user_agent,
                "Accept": "application/json",
            },
        )

    @classmethod
    def from_base_url(
        cls,
        token: str,
        base_url: str = "",
        *,
        http_client: httpx.AsyncClient | None = None,
    ) -> GitLabScmClient:
        """Build a client for ``base_url``, defaulting to GitLab.com."""
        domain = domain_from_url(base_url) if base_url else GITLAB_DOMAIN
        return cls(GitLabConfig(token=token, domain=domain), http_client=http_client)

    @property
    def provider_name(self) -> str:
        """Return ``gitlab``."""
        return GITLAB_PROVIDER

    @property
    def base_url(self) -> str:
        """Return the GitLab host."""
        return self._config.domain

    @property
    def token(self) -> str:
        """Return the API token."""
        return self._config.token

    async def aclose(self) -> None:
        """Close any owned HTTP resources."""
        if self._owns_client:
            await self._client.aclose()

    async def iter_org_repos(self, org: str) -> typ.AsyncIterator[RepoBatch]:
        """Yield pages of the projects in group ``org`` and its subgroups.

        Pagination follows the ``X-Next-Page`` header; ``X-Total`` gives the
        expected total when GitLab reports it.

        Raises
        ------
        ScmApiError
            If the group does not exist or the API fails.
        ScmResponseShapeError
            If a page is not a list of projects.

        """
        path = f"/groups/{urllib.parse.quote(org, safe='')}/projects"
        page = "1"
        while page:
            response = await self._get(
                path,
                params={
                    "per_page": PAGE_SIZE,
                    "page": page,
                    "include_subgroups": "true",
                },
            )
            if response.status_code == _HTTP_NOT_FOUND:
                raise ScmApiError.org_not_found(_PROVIDER_LABEL, org)
            self._raise_for_status(response)

            projects = _json(response)
            if not isinstance(projects, list):
                raise ScmResponseShapeError.missing("projects")
            total = _header_int(response, "X-Total", len(projects))
            if total == 0 and not projects:
                log_info(logger, "group %s has no projects", org)
                return

            repositories = tuple(
                repo
                for project in projects
                if isinstance(project, dict)
                and (repo := _project_from_payload(project)) is not None
            )
            yield RepoBatch(total_count=total, repositories=repositories)
            page = response.headers.get("X-Next-Page", "").strip()

    async def get_repo(self, org: str, name: str) -> ScmRepository:
        """Return project ``org/name``.

        Raises
        ------
        ScmApiError
            If the project does not exist, is empty, or the API fails.

        """
        identifier = f"{org}/{name}"
        response = await self._get(
            f"/projects/{urllib.parse.quote(identifier, safe='')}"
        )
        if response.status_code == _HTTP_NOT_FOUND:
            raise ScmApiError.repo_not_found(_PROVIDER_LABEL, identifier)
        self._raise_for_status(response)

        payload = _json(response)
        repo = (
            _project_from_payload(payload) if isinstance(payload, dict) else None
        )
        if repo is None:
            raise ScmApiError.repo_not_found(_PROVIDER_LABEL, identifier)
        return repo

    async def provider_version(self) -> str:
        """Return the instance version from ``/metadata`` or ``/version``."""
        response = await self._get("/metadata")
        if response.status_code == _HTTP_NOT_FOUND:
            log_debug(logger, "GitLab /metadata not available, trying /version")
            response = await self._get("/version")
        self._raise_for_status(response)

        payload = _json(response)
        if not isinstance(payload, dict) or not isinstance(
            payload.get("version"), str
        ):
            raise ScmResponseShapeError.missing("version")
        return _strip_edition(payload["version"])

    def parse_repo_and_org(self, text: str) -> tuple[str, str]:
        """Split ``group/project``; subgroups stay in the project part."""
        return split_repo_and_org(text)

    async def _get(
        self, path: str, *, params: dict[str, typ.Any] | None = None
    ) -> httpx.Response:
        try:
            return await self._client.get(
                f"{self._config.api_url}{path}", params=params
            )
        except httpx.HTTPError as exc:
            raise ScmApiError.transport_error(_PROVIDER_LABEL, exc) from exc

    @staticmethod
    def _raise_for_status(response: httpx.Response) -> None:
        if response.status_code >= _HTTP_ERROR_STATUS_THRESHOLD:
            raise ScmApiError.http_error(_PROVIDER_LABEL, response.status_code)


def _json(response: httpx.Response) -> object:
    try:
        return response.json()
    except ValueError as exc:
        raise ScmResponseShapeError.missing("response") from exc
