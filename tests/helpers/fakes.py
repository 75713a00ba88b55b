"""Deterministic stand-ins for the policy engine, SCM and git clients."""

from __future__ import annotations

import asyncio
import datetime as dt
import re
import typing as typ
from pathlib import Path

from pipescan.identity import MalformedIdentityError, purl_from_github_actions
from pipescan.policy import FINDINGS_QUERY, INVENTORY_QUERY, PolicyEngineError
from pipescan.providers import CloneError, RepoBatch, ScmApiError
from pipescan.providers.scm import split_repo_and_org

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    from pipescan.providers import ScmRepository

COMMIT_SHA = "3f786850e387550fdab836ed7e6dc881de23001b"
COMMIT_DATE = dt.datetime(2024, 5, 1, 12, 0, tzinfo=dt.UTC)
UNPINNED_RULE = "unpinned_action"
UNPINNABLE_RULE = "unpinnable_action"

_PINNED_VERSION = re.compile(r"^[0-9a-f]{40}$")

CHECKOUT_WORKFLOW = """\
name: T
on: [push]
jobs:
  test:
    runs-on: ubuntu-latest
    steps:
    - uses: actions/checkout@v4
"""

PINNED_WORKFLOW = f"""\
name: Release
on:
  push:
    tags: ["v*"]
permissions: read-all
jobs:
  release:
    runs-on: ubuntu-latest
    steps:
    - uses: actions/checkout@{COMMIT_SHA}
    - run: make release
"""


def _step_purls(package: dict[str, typ.Any]) -> set[str]:
    purls: set[str] = set()
    for workflow in package.get("github_actions_workflows", []):
        for job in workflow.get("jobs", []):
            for step in job.get("steps", []):
                uses = step.get("uses", "")
                if not uses or uses.startswith("./"):
                    continue
                try:
                    purls.add(purl_from_github_actions(uses).to_string())
                except MalformedIdentityError:
                    continue
    return purls


def _is_pinned(purl: str) -> bool:
    version = purl.partition("@")[2].partition("#")[0]
    return _PINNED_VERSION.match(version) is not None


class FakePolicyEngine:
    """Policy engine with two built-in rules.

    The inventory query reports every ``uses:`` step as a build dependency.
    The findings query flags dependencies not pinned to a commit SHA and
    dependencies the reputation data marks as risky.
    """

    def __init__(self, *, fail_on: str | None = None) -> None:
        self.calls: list[tuple[str, typ.Any]] = []
        self._fail_on = fail_on

    def queries(self) -> list[str]:
        """Return the evaluated queries in call order."""
        return [query for query, _ in self.calls]

    async def evaluate(self, query: str, input_: typ.Any) -> typ.Any:  # noqa: ANN401
        self.calls.append((query, input_))
        if query == self._fail_on:
            raise PolicyEngineError.http_error(query, 500)
        if query == INVENTORY_QUERY:
            purls: set[str] = set()
            for package in input_["packages"]:
                purls |= _step_purls(package)
            return {"build_dependencies": sorted(purls), "package_dependencies": []}
        if query == FINDINGS_QUERY:
            return self._findings(input_)
        raise PolicyEngineError.missing_result(query)

    def _findings(self, input_: dict[str, typ.Any]) -> dict[str, typ.Any]:
        reputation = input_.get("reputation") or {}
        risky = {
            entry["purl"]
            for entry in reputation.get("packages", [])
            if entry.get("risk", 0) >= 1
        }
        findings = []
        for package in input_["packages"]:
            for dependency in package.get("build_dependencies", []):
                if not _is_pinned(dependency):
                    findings.append(
                        {
                            "rule_id": UNPINNED_RULE,
                            "purl": package["purl"],
                            "meta": {"details": dependency},
                        }
                    )
                if dependency in risky:
                    findings.append(
                        {
                            "rule_id": UNPINNABLE_RULE,
                            "purl": package["purl"],
                            "meta": {"details": dependency},
                        }
                    )
        return {
            "findings": findings,
            "rules": {
                UNPINNED_RULE: {"id": UNPINNED_RULE, "level": "warning"},
                UNPINNABLE_RULE: {"id": UNPINNABLE_RULE, "level": "note"},
            },
        }


class FakeScmClient:
    """In-memory provider that pages through a fixed repository list."""

    def __init__(  # noqa: PLR0913
        self,
        repositories: cabc.Sequence[ScmRepository] = (),
        *,
        page_size: int = 2,
        provider: str = "github",
        version: str = "3.14.0",
        fail_after_pages: int | None = None,
        version_error: Exception | None = None,
    ) -> None:
        self._repositories = list(repositories)
        self._page_size = page_size
        self._provider = provider
        self._version = version
        self._fail_after_pages = fail_after_pages
        self._version_error = version_error
        self.listed: list[str] = []
        self.closed = False

    @property
    def provider_name(self) -> str:
        return self._provider

    @property
    def base_url(self) -> str:
        return "github.com"

    @property
    def token(self) -> str:
        return "fake-token"

    async def iter_org_repos(self, org: str) -> typ.AsyncIterator[RepoBatch]:
        self.listed.append(org)
        total = len(self._repositories)
        for page, start in enumerate(range(0, total, self._page_size)):
            if self._fail_after_pages is not None and page >= self._fail_after_pages:
                raise ScmApiError.http_error("GitHub", 502)
            yield RepoBatch(
                total_count=total,
                repositories=tuple(
                    self._repositories[start : start + self._page_size]
                ),
            )
            await asyncio.sleep(0)

    async def get_repo(self, org: str, name: str) -> ScmRepository:
        identifier = f"{org}/{name}"
        for repo in self._repositories:
            if repo.identifier == identifier:
                return repo
        raise ScmApiError.repo_not_found("GitHub", identifier)

    async def provider_version(self) -> str:
        if self._version_error is not None:
            raise self._version_error
        return self._version

    def parse_repo_and_org(self, text: str) -> tuple[str, str]:
        return split_repo_and_org(text)

    async def aclose(self) -> None:
        self.closed = True


def _identifier(url: str) -> str:
    """Return ``org/name`` from ``https://host/org/name``."""
    return url.split("://", 1)[-1].split("/", 1)[1]


class FakeGitClient:
    """Git client that materializes fixture trees instead of cloning.

    ``trees`` maps ``org/name`` to ``{relative path: file content}``. Clones
    of identifiers in ``failing`` raise :class:`CloneError`. Clones of identifiers
    in ``crashing`` raise a plain :class:`RuntimeError`. While ``gate``
    is unset every clone blocks, which keeps clones in flight for
    concurrency and cancellation tests.
    """

    def __init__(
        self,
        trees: cabc.Mapping[str, cabc.Mapping[str, str]] | None = None,
        *,
        failing: cabc.Collection[str] = (),
        crashing: cabc.Collection[str] = (),
        gate: asyncio.Event | None = None,
        clone_delay: float = 0.0,
        remote: str = "https://github.com/acme/widgets.git",
    ) -> None:
        self._trees = dict(trees or {})
        self._failing = set(failing)
        self._crashing = set(crashing)
        self._gate = gate
        self._clone_delay = clone_delay
        self._remote = remote
        self.in_flight = 0
        self.max_in_flight = 0
        self.started = 0
        self.cloned: list[str] = []
        self.clone_paths: list[Path] = []
        self.tokens: list[str] = []

    async def clone(self, path: str | Path, url: str, token: str, ref: str) -> None:
        identifier = _identifier(url)
        self.started += 1
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        self.clone_paths.append(Path(path))
        self.tokens.append(token)
        try:
            if self._gate is not None:
                await self._gate.wait()
            await asyncio.sleep(self._clone_delay)
            if identifier in self._crashing:
                msg = f"unexpected state in {identifier}"
                raise RuntimeError(msg)
            if identifier in self._failing:
                raise CloneError(
                    f"failed to clone {url}: remote rejected",
                    command=f"git fetch origin {ref}",
                )
            for relative, content in self._trees.get(identifier, {}).items():
                target = Path(path) / relative
                target.parent.mkdir(parents=True, exist_ok=True)
                target.write_text(content, encoding="utf-8")
            self.cloned.append(identifier)
        finally:
            self.in_flight -= 1

    async def commit_sha(self, path: str | Path) -> str:
        del path
        return COMMIT_SHA

    async def last_commit_date(self, path: str | Path) -> dt.datetime:
        del path
        return COMMIT_DATE

    async def remote_origin_url(self, path: str | Path) -> str:
        del path
        return self._remote

    async def head_branch_name(self, path: str | Path, token: str = "") -> str:
        del path, token
        return "main"


def write_tree(root: Path, files: cabc.Mapping[str, str]) -> Path:
    """Write ``files`` under ``root`` and return ``root``."""
    for relative, content in files.items():
        target = root / relative
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content, encoding="utf-8")
    return root
