"""Unit tests for the GitLab provider client."""

from __future__ import annotations

import typing as typ

import httpx
import pytest

from pipescan.providers import (
    GitLabConfig,
    GitLabScmClient,
    ScmApiError,
    ScmResponseShapeError,
)


def _project(
    path: str, *, fork: bool = False, empty: bool = False
) -> dict[str, typ.Any]:
    project: dict[str, typ.Any] = {
        "path_with_namespace": path,
        "archived": False,
        "empty_repo": empty,
        "default_branch": "main",
    }
    if fork:
        project["forked_from_project"] = {"id": 1}
    return project


def _client(
    handler: typ.Callable[[httpx.Request], httpx.Response],
) -> tuple[GitLabScmClient, httpx.AsyncClient]:
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    client = GitLabScmClient(
        GitLabConfig(token="glpat", domain="gitlab.example.com"),
        http_client=http_client,
    )
    return client, http_client


class TestIterOrgRepos:
    """Group listing over REST."""

    @pytest.mark.asyncio
    async def test_follows_next_page_header(self) -> None:
        """Pages are requested until X-Next-Page is empty."""
        requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            if request.url.params["page"] == "1":
                return httpx.Response(
                    200,
                    json=[_project("acme/sub/a"), _project("acme/b", fork=True)],
                    headers={"X-Total": "3", "X-Next-Page": "2"},
                )
            return httpx.Response(
                200,
                json=[_project("acme/c"), _project("acme/void", empty=True)],
                headers={"X-Total": "3", "X-Next-Page": ""},
            )

        client, http_client = _client(handler)
        async with http_client:
            batches = [batch async for batch in client.iter_org_repos("acme/platform")]

        raw_path = requests[0].url.raw_path.decode().partition("?")[0]
        assert raw_path == "/api/v4/groups/acme%2Fplatform/projects"
        assert requests[0].url.params["include_subgroups"] == "true"
        assert [request.url.params["page"] for request in requests] == ["1", "2"]
        identifiers = [r.identifier for b in batches for r in b.repositories]
        assert identifiers == ["acme/sub/a", "acme/b", "acme/c"]
        assert batches[0].repositories[1].is_fork is True

    @pytest.mark.asyncio
    async def test_missing_total_header(self) -> None:
        """Without X-Total the page length is used."""
        client, http_client = _client(
            lambda _request: httpx.Response(200, json=[_project("acme/a")])
        )

        async with http_client:
            batches = [batch async for batch in client.iter_org_repos("acme")]

        assert [batch.total_count for batch in batches] == [1]

    @pytest.mark.asyncio
    async def test_unknown_group(self) -> None:
        """404 means the group does not exist."""
        client, http_client = _client(lambda _request: httpx.Response(404))

        async with http_client:
            with pytest.raises(ScmApiError, match="does not exist"):
                _ = [batch async for batch in client.iter_org_repos("ghost")]

    @pytest.mark.asyncio
    async def test_non_list_payload(self) -> None:
        """A page that is not a list is a shape error."""
        client, http_client = _client(
            lambda _request: httpx.Response(200, json={"message": "?"})
        )

        async with http_client:
            with pytest.raises(ScmResponseShapeError):
                _ = [batch async for batch in client.iter_org_repos("acme")]


class TestGetRepo:
    """Single project lookups."""

    @pytest.mark.asyncio
    async def test_quotes_project_path(self) -> None:
        """Nested project paths are URL-encoded into one segment."""
        paths: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            paths.append(request.url.raw_path.decode())
            return httpx.Response(200, json=_project("acme/sub/widgets"))

        client, http_client = _client(handler)
        async with http_client:
            repo = await client.get_repo("acme", "sub/widgets")

        assert paths == ["/api/v4/projects/acme%2Fsub%2Fwidgets"]
        assert repo.provider == "gitlab"
        assert repo.identifier == "acme/sub/widgets"

    @pytest.mark.asyncio
    async def test_not_found(self) -> None:
        """404 raises repo_not_found."""
        client, http_client = _client(lambda _request: httpx.Response(404))

        async with http_client:
            with pytest.raises(ScmApiError) as excinfo:
                await client.get_repo("acme", "missing")

        assert excinfo.value.status_code == 404


class TestProviderVersion:
    """Instance version lookup."""

    @pytest.mark.asyncio
    async def test_metadata_endpoint(self) -> None:
        """/metadata is preferred and the edition suffix stripped."""
        client, http_client = _client(
            lambda _request: httpx.Response(200, json={"version": "17.2.1-ee"})
        )

        async with http_client:
            assert await client.provider_version() == "17.2.1"

    @pytest.mark.asyncio
    async def test_falls_back_to_version_endpoint(self) -> None:
        """Older instances only serve /version."""
        paths: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            paths.append(request.url.path)
            if request.url.path.endswith("/metadata"):
                return httpx.Response(404)
            return httpx.Response(200, json={"version": "15.11.0"})

        client, http_client = _client(handler)
        async with http_client:
            assert await client.provider_version() == "15.11.0"

        assert paths == ["/api/v4/metadata", "/api/v4/version"]

    @pytest.mark.asyncio
    async def test_transport_error(self) -> None:
        """Connection failures are wrapped."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectTimeout("timed out", request=request)

        client, http_client = _client(handler)
        async with http_client:
            with pytest.raises(ScmApiError, match="request failed"):
                await client.provider_version()
