"""Behavioural tests for organization scans."""

from __future__ import annotations

import asyncio
import typing as typ

import pytest
from pytest_bdd import given, parsers, scenario, then, when

from pipescan.analyze import TEMP_DIR_PREFIX, Analyzer
from pipescan.policy import Config
from pipescan.providers import ScmRepository
from tests.helpers.fakes import FakeGitClient, FakePolicyEngine, FakeScmClient

if typ.TYPE_CHECKING:
    from pathlib import Path

    from pipescan.analyze import AnalysisReport


def run_async[T](coro: typ.Coroutine[typ.Any, typ.Any, T]) -> T:
    """Run async coroutines in sync BDD step functions."""
    return asyncio.run(coro)


def _workflow(uses: str) -> str:
    return (
        "name: CI\n"
        "on: [push]\n"
        "jobs:\n"
        "  build:\n"
        "    runs-on: ubuntu-latest\n"
        "    steps:\n"
        f"    - uses: {uses}\n"
    )


class OrgScanContext(typ.TypedDict, total=False):
    """Shared state used by BDD steps."""

    temp_root: Path
    repositories: dict[str, ScmRepository]
    trees: dict[str, dict[str, str]]
    failing: set[str]
    config: Config
    report: AnalysisReport


@scenario(
    "../org_scan.feature",
    "Unpinned actions are reported across an organization",
)
def test_unpinned_actions_reported() -> None:
    """Behavioural test: unpinned actions become findings per repository."""


@scenario(
    "../org_scan.feature",
    "Forks are skipped when fork filtering is enabled",
)
def test_forks_skipped() -> None:
    """Behavioural test: forks are left out when configured."""


@scenario(
    "../org_scan.feature",
    "A failing clone does not stop the other repositories",
)
def test_failing_clone_isolated() -> None:
    """Behavioural test: one clone failure is recorded as a skip."""


@pytest.fixture
def org_scan_context(tmp_path: Path) -> OrgScanContext:
    """Provide an isolated temp root for each scenario."""
    temp_root = tmp_path / "clones"
    temp_root.mkdir()
    return {
        "temp_root": temp_root,
        "repositories": {},
        "trees": {},
        "failing": set(),
        "config": Config(),
    }


@given(
    parsers.parse('an organization "{org}" with repositories "{names}"'),
)
def organization_with_repositories(
    org_scan_context: OrgScanContext, org: str, names: str
) -> None:
    """Register repositories without any manifests."""
    for name in (part.strip() for part in names.split(",")):
        identifier = f"{org}/{name}"
        org_scan_context["repositories"][identifier] = ScmRepository(
            "github", identifier, default_branch="main"
        )
        org_scan_context["trees"][identifier] = {"README.md": f"# {name}\n"}


@given(parsers.parse('repository "{identifier}" uses "{uses}"'))
def repository_uses_action(
    org_scan_context: OrgScanContext, identifier: str, uses: str
) -> None:
    """Add a workflow that references ``uses``."""
    org_scan_context["trees"][identifier][".github/workflows/ci.yml"] = _workflow(
        uses
    )


@given(parsers.parse('repository "{identifier}" is a fork'))
def repository_is_fork(org_scan_context: OrgScanContext, identifier: str) -> None:
    """Mark a registered repository as a fork."""
    repo = org_scan_context["repositories"][identifier]
    org_scan_context["repositories"][identifier] = ScmRepository(
        repo.provider, repo.identifier, is_fork=True, default_branch="main"
    )


@given(parsers.parse('repository "{identifier}" cannot be cloned'))
def repository_clone_fails(org_scan_context: OrgScanContext, identifier: str) -> None:
    """Make clones of ``identifier`` fail."""
    org_scan_context["failing"].add(identifier)


@given("fork filtering is enabled")
def fork_filtering_enabled(org_scan_context: OrgScanContext) -> None:
    """Enable ``ignore_forks``."""
    org_scan_context["config"] = Config(ignore_forks=True)


@when(parsers.parse('the organization "{org}" is scanned with {workers:d} workers'))
def scan_organization(org_scan_context: OrgScanContext, org: str, workers: int) -> None:
    """Run an organization scan against the fakes."""
    analyzer = Analyzer(
        FakeScmClient(list(org_scan_context["repositories"].values())),
        FakeGitClient(
            org_scan_context["trees"], failing=org_scan_context["failing"]
        ),
        FakePolicyEngine(),
        config=org_scan_context["config"],
        temp_root=org_scan_context["temp_root"],
    )
    org_scan_context["report"] = run_async(
        analyzer.analyze_org(org, max_workers=workers)
    )


@then(parsers.parse("the report lists {count:d} packages"))
def report_lists_packages(org_scan_context: OrgScanContext, count: int) -> None:
    """Check the number of scanned packages."""
    assert len(org_scan_context["report"].packages) == count


@then(parsers.parse('"{purl}" has an "{rule_id}" finding'))
def package_has_finding(
    org_scan_context: OrgScanContext, purl: str, rule_id: str
) -> None:
    """Check a finding was raised for ``purl``."""
    findings = org_scan_context["report"].findings.findings
    assert any(f.purl == purl and f.rule_id == rule_id for f in findings), (
        f"Expected {rule_id} for {purl}; got {findings!r}"
    )


@then(parsers.parse('"{identifier}" is skipped because "{reason}"'))
def repository_skipped_because(
    org_scan_context: OrgScanContext, identifier: str, reason: str
) -> None:
    """Check the recorded skip reason."""
    skipped = {s.identifier: s.reason for s in org_scan_context["report"].skipped}
    assert skipped.get(identifier) == reason


@then(parsers.parse('"{identifier}" is skipped'))
def repository_skipped(org_scan_context: OrgScanContext, identifier: str) -> None:
    """Check the repository is listed among the skipped ones."""
    skipped = [s.identifier for s in org_scan_context["report"].skipped]
    assert identifier in skipped


@then("no temporary clones remain")
def no_temporary_clones(org_scan_context: OrgScanContext) -> None:
    """Check every clone directory was removed."""
    leftovers = list(org_scan_context["temp_root"].glob(f"{TEMP_DIR_PREFIX}*"))
    assert leftovers == []
