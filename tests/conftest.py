"""Shared fixtures for unit and feature tests."""

from __future__ import annotations

import typing as typ

import pytest

from pipescan.manifests import PackageInsights
from pipescan.providers import ScmRepository
from tests.helpers.fakes import (
    CHECKOUT_WORKFLOW,
    PINNED_WORKFLOW,
    FakeGitClient,
    FakePolicyEngine,
    FakeScmClient,
)

if typ.TYPE_CHECKING:
    from pathlib import Path


@pytest.fixture
def policy_engine() -> FakePolicyEngine:
    """Return a policy engine with the unpinned-action rule."""
    return FakePolicyEngine()


@pytest.fixture
def package() -> PackageInsights:
    """Return an empty package record for ``acme/widgets``."""
    return PackageInsights(
        purl="pkg:github/acme/widgets",
        source_scm_type="github",
        source_git_repo="acme/widgets",
        source_git_ref="main",
    )


@pytest.fixture
def org_repositories() -> list[ScmRepository]:
    """Return three repositories of the ``acme`` organization."""
    return [
        ScmRepository("github", "acme/widgets", default_branch="main"),
        ScmRepository("github", "acme/gadgets", default_branch="main"),
        ScmRepository("github", "acme/gizmos", default_branch="main"),
    ]


@pytest.fixture
def org_trees() -> dict[str, dict[str, str]]:
    """Return fixture checkouts for :func:`org_repositories`."""
    return {
        "acme/widgets": {".github/workflows/ci.yml": CHECKOUT_WORKFLOW},
        "acme/gadgets": {".github/workflows/release.yml": PINNED_WORKFLOW},
        "acme/gizmos": {
            ".github/workflows/ci.yml": CHECKOUT_WORKFLOW,
            "README.md": "# gizmos\n",
        },
    }


@pytest.fixture
def fake_scm(org_repositories: list[ScmRepository]) -> FakeScmClient:
    """Return a provider listing :func:`org_repositories` two per page."""
    return FakeScmClient(org_repositories)


@pytest.fixture
def fake_git(org_trees: dict[str, dict[str, str]]) -> FakeGitClient:
    """Return a git client that materializes :func:`org_trees`."""
    return FakeGitClient(org_trees)


@pytest.fixture
def temp_root(tmp_path: Path) -> Path:
    """Return an isolated directory for temporary clones."""
    root = tmp_path / "clones"
    root.mkdir()
    return root
