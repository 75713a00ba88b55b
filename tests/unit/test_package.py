"""Unit tests for the package record's identity helpers."""

from __future__ import annotations

import pytest

from pipescan.identity import MalformedIdentityError
from pipescan.manifests import PackageInsights


class TestSourceGitRepoUri:
    """Tests for PackageInsights.source_git_repo_uri."""

    @pytest.mark.parametrize(
        ("scm_type", "expected"),
        [
            ("github", "https://github.com/acme/widgets"),
            ("gitlab", "https://gitlab.com/acme/widgets"),
        ],
    )
    def test_known_providers_use_public_host(
        self, scm_type: str, expected: str
    ) -> None:
        """Well-known providers prefix their public host."""
        package = PackageInsights(
            source_scm_type=scm_type, source_git_repo="acme/widgets"
        )

        assert package.source_git_repo_uri() == expected

    def test_other_hosts_carry_their_own_name(self) -> None:
        """A self-hosted repository already names its host."""
        package = PackageInsights(
            source_scm_type="git.example.com",
            source_git_repo="git.example.com/acme/widgets",
        )

        assert package.source_git_repo_uri() == "https://git.example.com/acme/widgets"


class TestNormalizePurl:
    """Tests for PackageInsights.normalize_purl."""

    def test_copies_identity_fields(self) -> None:
        """The canonical purl is split into the package fields."""
        package = PackageInsights(purl="pkg:githubactions/Actions/CheckOut@v4")

        package.normalize_purl()

        assert package.purl == "pkg:githubactions/actions/checkout@v4"
        assert (
            package.package_ecosystem,
            package.package_namespace,
            package.package_name,
            package.package_version,
        ) == ("githubactions", "actions", "checkout", "v4")

    def test_rejects_empty_purl(self) -> None:
        """A package without an identity cannot be normalized."""
        with pytest.raises(MalformedIdentityError):
            PackageInsights().normalize_purl()
