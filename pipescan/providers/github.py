"""GitHub client: organization listing over GraphQL, server version over REST."""

from __future__ import annotations

import dataclasses
import typing as typ

import httpx

from pipescan import __version__
from pipescan.logging import get_logger, log_info

from .errors import ScmApiError, ScmConfigError, ScmResponseShapeError
from .scm import (
    GITHUB_PROVIDER,
    RepoBatch,
    ScmRepository,
    domain_from_url,
    split_repo_and_org,
)

logger = get_logger(__name__)

GITHUB_DOMAIN = "github.com"
_HTTP_ERROR_STATUS_THRESHOLD = 400
_PROVIDER_LABEL = "GitHub"

_REPOSITORY_FIELDS = """
  nameWithOwner
  isFork
  isArchived
  isEmpty
  defaultBranchRef { name }
"""

_ORG_REPOS_QUERY = f"""
query($login: String!, $after: String) {{
  repositoryOwner(login: $login) {{
    repositories(
      first: 100
      after: $after
      isLocked: false
      orderBy: {{field: UPDATED_AT, direction: DESC}}
    ) {{
      totalCount
      pageInfo {{
        hasNextPage
        endCursor
      }}
      nodes {{{_REPOSITORY_FIELDS}}}
    }}
  }}
}}
"""

_REPO_QUERY = f"""
query($owner: String!, $name: String!) {{
  repository(owner: $owner, name: $name) {{{_REPOSITORY_FIELDS}}}
}}
"""


@dataclasses.dataclass(frozen=True, slots=True)
class GitHubConfig:
    """Configuration for GitHub.com or a GitHub Enterprise Server host."""

    token: str
    domain: str = GITHUB_DOMAIN
    timeout_s: float = 20.0
    user_agent: str = f"pipescan/{__version__}"

    @property
    def graphql_endpoint(self) -> str:
        """Return the GraphQL endpoint for ``domain``."""
        if self.domain == GITHUB_DOMAIN:
            return "https://api.github.com/graphql"
        return f"https://{self.domain}/api/graphql"

    @property
    def rest_endpoint(self) -> str:
        """Return the REST API root for ``domain``."""
        if self.domain == GITHUB_DOMAIN:
            return "https://api.github.com"
        return f"https://{self.domain}/api/v3"


def _string_keyed(node: object, *, field: str) -> dict[str, typ.Any]:
    if not isinstance(node, dict):
        raise ScmResponseShapeError.missing(field)
    return {key: value for key, value in node.items() if isinstance(key, str)}


def _parse_graphql_payload(payload_raw: object) -> dict[str, typ.Any]:
    """Validate a GraphQL response payload and return its data field."""
    payload = _string_keyed(payload_raw, field="response")
    errors = payload.get("errors")
    if errors:
        raise ScmApiError.graphql_errors(errors)
    return _string_keyed(payload.get("data"), field="data")


def _next_cursor(connection: dict[str, typ.Any]) -> str | None:
    """Return the next pagination cursor, or None when pagination is complete."""
    page_info = connection.get("pageInfo")
    if not isinstance(page_info, dict) or not page_info.get("hasNextPage"):
        return None
    after_cursor = page_info.get("endCursor")
    return after_cursor if isinstance(after_cursor, str) else None


def _repository_from_node(node: dict[str, typ.Any]) -> ScmRepository | None:
    """Convert a repository node; empty repositories have nothing to clone."""
    identifier = node.get("nameWithOwner")
    if not isinstance(identifier, str) or node.get("isEmpty"):
        return None
    branch_ref = node.get("defaultBranchRef")
    branch = branch_ref.get("name") if isinstance(branch_ref, dict) else None
    return ScmRepository(
        provider=GITHUB_PROVIDER,
        identifier=identifier,
        is_fork=bool(node.get("isFork")),
        is_archived=bool(node.get("isArchived")),
        default_branch=branch if isinstance(branch, str) else "",
    )


def _total_count(connection: dict[str, typ.Any]) -> int:
    total = connection.get("totalCount")
    if not isinstance(total, int):
        raise ScmResponseShapeError.missing("repositories.totalCount")
    return total


class GitHubScmClient:
    """:class:`~pipescan.providers.scm.ScmClient` for GitHub."""

    def __init__(
        self,
        config: GitHubConfig,
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
                "Authorization": f"Bearer {config.token}",
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
    ) -> GitHubScmClient:
        """Build a client for ``base_url``, defaulting to GitHub.com."""
        domain = domain_from_url(base_url) if base_url else GITHUB_DOMAIN
        return cls(GitHubConfig(token=token, domain=domain), http_client=http_client)

    @property
    def provider_name(self) -> str:
        """Return ``github``."""
        return GITHUB_PROVIDER

    @property
    def base_url(self) -> str:
        """Return the GitHub host."""
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
        """Yield pages of unlocked repositories, most recently updated first.

        Raises
        ------
        ScmApiError
            If the organization does not exist or the API fails.
        ScmResponseShapeError
            If a page lacks the expected connection fields.

        """
        after_cursor: str | None = None
        while True:
            data = await self._graphql(
                _ORG_REPOS_QUERY, {"login": org, "after": after_cursor}
            )
            if data.get("repositoryOwner") is None:
                raise ScmApiError.org_not_found(_PROVIDER_LABEL, org)
            owner = _string_keyed(data["repositoryOwner"], field="repositoryOwner")
            connection = _string_keyed(
                owner.get("repositories"), field="repositories"
            )
            total = _total_count(connection)
            if total == 0:
                log_info(logger, "organization %s has no repositories", org)
                return

            nodes = connection.get("nodes")
            if not isinstance(nodes, list):
                raise ScmResponseShapeError.missing("repositories.nodes")
            repositories = tuple(
                repo
                for node in nodes
                if isinstance(node, dict)
                and (repo := _repository_from_node(node)) is not None
            )
            yield RepoBatch(total_count=total, repositories=repositories)

            after_cursor = _next_cursor(connection)
            if after_cursor is None:
                return

    async def get_repo(self, org: str, name: str) -> ScmRepository:
        """Return ``org/name``.

        Raises
        ------
        ScmApiError
            If the repository does not exist, is empty, or the API fails.

        """
        data = await self._graphql(_REPO_QUERY, {"owner": org, "name": name})
        node = data.get("repository")
        repo = _repository_from_node(node) if isinstance(node, dict) else None
        if repo is None:
            raise ScmApiError.repo_not_found(_PROVIDER_LABEL, f"{org}/{name}")
        return repo

    async def provider_version(self) -> str:
        """Return the Enterprise Server version, or ``github.com``."""
        response = await self._request("GET", f"{self._config.rest_endpoint}/meta")
        payload = _string_keyed(_json(response), field="meta")
        version = payload.get("installed_version")
        return version if isinstance(version, str) and version else GITHUB_DOMAIN

    def parse_repo_and_org(self, text: str) -> tuple[str, str]:
        """Split ``owner/name``."""
        return split_repo_and_org(text)

    async def _request(
        self, method: str, url: str, **kwargs: typ.Any
    ) -> httpx.Response:
        try:
            response = await self._client.request(method, url, **kwargs)
        except httpx.HTTPError as exc:
            raise ScmApiError.transport_error(_PROVIDER_LABEL, exc) from exc
        if response.status_code >= _HTTP_ERROR_STATUS_THRESHOLD:
            raise ScmApiError.http_error(_PROVIDER_LABEL, response.status_code)
        return response

    async def _graphql(
        self, query: str, variables: dict[str, typ.Any]
    ) -> dict[str, typ.Any]:
        """Execute a GraphQL query and return the validated data field."""
        response = await self._request(
            "POST",
            self._config.graphql_endpoint,
            json={"query": query, "variables": variables},
        )
        return _parse_graphql_payload(_json(response))


def _json(response: httpx.Response) -> object:
    try:
        return response.json()
    except ValueError as exc:
        raise ScmResponseShapeError.missing("response") from exc
