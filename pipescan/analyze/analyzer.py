"""Scan organizations, single repositories and local checkouts.

An organization scan streams repository pages from the provider and admits
each repository through an :class:`AdmissionLimiter`. Every admitted
repository is cloned into its own ``pipescan-`` temporary directory, scanned
into the shared :class:`~pipescan.scanner.inventory.Inventory`, and deleted
again. A failing repository is logged and recorded as skipped; it never
stops its siblings.
"""

from __future__ import annotations

import asyncio
import dataclasses
import datetime as dt
import os
import shutil
import tempfile
import time
import typing as typ
from pathlib import Path

import msgspec

from pipescan.identity import MalformedIdentityError
from pipescan.logging import (
    get_logger,
    log_debug,
    log_exception,
    log_info,
    log_warning,
)
from pipescan.manifests.package import PackageInsights
from pipescan.policy.config import Config
from pipescan.policy.errors import PolicyEngineError
from pipescan.providers.errors import (
    GitError,
    ListingError,
    ScmApiError,
    ScmResponseShapeError,
)
from pipescan.providers.local import describe_checkout
from pipescan.providers.scm import ScmRepository
from pipescan.scanner.errors import ScanError
from pipescan.scanner.inventory import Inventory
from pipescan.scanner.results import FindingsResult

from .admission import AdmissionLimiter, ScanProgress
from .observability import ScanEventLogger, ScanRunSummary

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    from pipescan.policy.engine import PolicyEngine
    from pipescan.providers.gitops import GitOperations
    from pipescan.providers.scm import ScmClient
    from pipescan.reputation.static import ReputationClient

logger = get_logger(__name__)

TEMP_DIR_PREFIX = "pipescan-"
DEFAULT_MAX_WORKERS = 2
MAX_WORKERS_ENV_VAR = "PIPESCAN_MAX_WORKERS"
HEAD_REF = "HEAD"

_WORKER_ERRORS: tuple[type[Exception], ...] = (
    GitError,
    ScanError,
    PolicyEngineError,
    MalformedIdentityError,
    OSError,
)
_LISTING_ERRORS: tuple[type[Exception], ...] = (ScmApiError, ScmResponseShapeError)


@dataclasses.dataclass(frozen=True, slots=True)
class AnalyzerSettings:
    """Runtime settings for organization scans."""

    max_workers: int = DEFAULT_MAX_WORKERS

    @classmethod
    def from_env(cls) -> AnalyzerSettings:
        """Read ``PIPESCAN_MAX_WORKERS``; unset or invalid keeps the default."""
        raw = os.environ.get(MAX_WORKERS_ENV_VAR, "").strip()
        if not raw:
            return cls()
        try:
            value = int(raw)
        except ValueError:
            log_warning(logger, "ignoring invalid %s=%r", MAX_WORKERS_ENV_VAR, raw)
            return cls()
        if value < 1:
            log_warning(logger, "ignoring invalid %s=%r", MAX_WORKERS_ENV_VAR, raw)
            return cls()
        return cls(max_workers=value)


class SkippedRepository(msgspec.Struct, kw_only=True):
    """A repository left out of the report, and why."""

    identifier: str
    reason: str


class AnalysisReport(msgspec.Struct, kw_only=True):
    """Everything a scan produced."""

    findings: FindingsResult = msgspec.field(default_factory=FindingsResult)
    packages: list[PackageInsights] = msgspec.field(default_factory=list)
    skipped: list[SkippedRepository] = msgspec.field(default_factory=list)


def cleanup_temp_dirs(temp_root: str | Path | None = None) -> int:
    """Delete every ``pipescan-`` directory under the temp root.

    Returns the number of directories removed. Removal failures are logged
    and skipped so the remaining directories are still attempted.
    """
    root = Path(temp_root or tempfile.gettempdir())
    removed = 0
    for candidate in sorted(root.glob(f"{TEMP_DIR_PREFIX}*")):
        if not candidate.is_dir():
            continue
        try:
            shutil.rmtree(candidate)
        except OSError as exc:
            log_warning(logger, "failed to remove %s: %s", candidate, exc)
            continue
        removed += 1
    return removed


def _package_purl(repo: ScmRepository) -> str:
    return f"pkg:{repo.provider}/{repo.identifier.lower()}"


class Analyzer:
    """Drive clones, scans and policy evaluation for one provider.

    Parameters
    ----------
    scm : ScmClient
        Provider client used for listing and clone credentials.
    git : GitOperations
        Git client; a :class:`~pipescan.providers.gitops.LocalGitClient`
        for local checkouts.
    engine : PolicyEngine
        Policy engine evaluating the inventory and findings queries.
    config : Config | None
        Rule configuration; also controls fork and archive filtering.
    reputation_client : ReputationClient | None
        Optional reputation source for findings.
    progress : ScanProgress | None
        Counter advanced once per finished or skipped repository.
    settings : AnalyzerSettings | None
        Worker count used when ``analyze_org`` is given none.
    temp_root : str | Path | None
        Directory that holds the temporary clones; the system default
        when None.

    """

    def __init__(  # noqa: PLR0913
        self,
        scm: ScmClient,
        git: GitOperations,
        engine: PolicyEngine,
        *,
        config: Config | None = None,
        reputation_client: ReputationClient | None = None,
        progress: ScanProgress | None = None,
        settings: AnalyzerSettings | None = None,
        temp_root: str | Path | None = None,
    ) -> None:
        """Bind the analyzer to its collaborators."""
        self._scm = scm
        self._git = git
        self._engine = engine
        self._config = config or Config()
        self._reputation_client = reputation_client
        self._progress = progress or ScanProgress()
        self._settings = settings or AnalyzerSettings()
        self._temp_root = temp_root
        self._events = ScanEventLogger()

    @property
    def progress(self) -> ScanProgress:
        """Return the progress counter."""
        return self._progress

    async def _provider_version(self) -> str:
        try:
            return await self._scm.provider_version()
        except _LISTING_ERRORS as exc:
            log_warning(
                logger, "failed to read %s version: %s", self._scm.provider_name, exc
            )
            return ""

    def _new_inventory(self, provider: str, provider_version: str) -> Inventory:
        return Inventory(
            self._engine,
            self._reputation_client,
            provider=provider,
            provider_version=provider_version,
            config=self._config,
        )

    def _skip_reason(self, repo: ScmRepository) -> str | None:
        if self._config.ignore_forks and repo.is_fork:
            return "fork"
        if self._config.ignore_archived and repo.is_archived:
            return "archived"
        return None

    async def _package_insights(
        self, repo: ScmRepository, workdir: str | Path, ref: str
    ) -> PackageInsights:
        """Describe the checkout of ``repo`` in ``workdir``."""
        committed_at = await self._git.last_commit_date(workdir)
        commit_sha = await self._git.commit_sha(workdir)
        if ref == HEAD_REF:
            git_ref = await self._git.head_branch_name(workdir, self._scm.token)
        else:
            git_ref = ref
        now = dt.datetime.now(dt.UTC).isoformat()
        package = PackageInsights(
            first_seen_at=now,
            updated_at=now,
            purl=_package_purl(repo),
            last_commited_at=committed_at.isoformat(),
            source_scm_type=repo.provider,
            source_git_repo=repo.identifier,
            source_git_ref=git_ref,
            source_git_commit_sha=commit_sha,
        )
        package.normalize_purl()
        return package

    async def _scan_repository(
        self, repo: ScmRepository, inventory: Inventory, ref: str = HEAD_REF
    ) -> PackageInsights:
        """Clone, scan and merge one repository; the clone is always removed."""
        workdir = tempfile.mkdtemp(prefix=TEMP_DIR_PREFIX, dir=self._temp_root)
        try:
            url = repo.build_git_url(self._scm.base_url)
            log_debug(logger, "cloning %s into %s", url, workdir)
            await self._git.clone(workdir, url, self._scm.token, ref)
            package = await self._package_insights(repo, workdir, ref)
            return await inventory.add_package(package, workdir)
        finally:
            await asyncio.to_thread(shutil.rmtree, workdir, ignore_errors=True)

    async def _scan_admitted(
        self,
        repo: ScmRepository,
        inventory: Inventory,
        limiter: AdmissionLimiter,
        skipped: list[SkippedRepository],
    ) -> None:
        try:
            await self._scan_repository(repo, inventory)
        except _WORKER_ERRORS as exc:
            self._record_failure(repo, exc, skipped)
        except Exception as exc:
            log_exception(logger, f"unexpected error scanning {repo.identifier}", exc)
            self._record_failure(repo, exc, skipped)
        finally:
            await limiter.release()
            self._progress.advance()

    def _record_failure(
        self,
        repo: ScmRepository,
        exc: Exception,
        skipped: list[SkippedRepository],
    ) -> None:
        self._events.log_repo_failed(repo.identifier, exc)
        reason = str(exc) or type(exc).__name__
        skipped.append(SkippedRepository(identifier=repo.identifier, reason=reason))

    def _cleanup(self) -> None:
        removed = cleanup_temp_dirs(self._temp_root)
        self._events.log_temp_cleaned(removed)

    async def _admit_all(  # noqa: PLR0913
        self,
        org: str,
        inventory: Inventory,
        limiter: AdmissionLimiter,
        skipped: list[SkippedRepository],
        tasks: set[asyncio.Task[None]],
    ) -> None:
        """Stream the listing and start one task per admitted repository."""
        async for batch in self._scm.iter_org_repos(org):
            self._progress.set_total(batch.total_count)
            for repo in batch.repositories:
                reason = self._skip_reason(repo)
                if reason is not None:
                    self._events.log_repo_skipped(repo.identifier, reason)
                    skipped.append(
                        SkippedRepository(identifier=repo.identifier, reason=reason)
                    )
                    self._progress.advance()
                    continue
                await limiter.acquire()
                task = asyncio.create_task(
                    self._scan_admitted(repo, inventory, limiter, skipped)
                )
                tasks.add(task)

    async def analyze_org(
        self, org: str, *, max_workers: int | None = None
    ) -> AnalysisReport:
        """Scan every repository of ``org``.

        Raises
        ------
        ListingError
            If the repository listing fails; outstanding scans are cancelled.
        ReputationError
            If the reputation client fails.
        PolicyEngineError
            If the findings query fails.

        """
        capacity = max_workers or self._settings.max_workers
        started = time.monotonic()
        self._events.log_run_started(org, capacity)

        inventory = self._new_inventory(
            self._scm.provider_name, await self._provider_version()
        )
        limiter = AdmissionLimiter(capacity)
        skipped: list[SkippedRepository] = []
        tasks: set[asyncio.Task[None]] = set()
        try:
            try:
                await self._admit_all(org, inventory, limiter, skipped, tasks)
            except _LISTING_ERRORS as exc:
                await _cancel_all(tasks)
                raise ListingError(org, exc) from exc
            await asyncio.gather(*tasks)
        except asyncio.CancelledError:
            await _cancel_all(tasks)
            self._cleanup()
            raise

        report = await self._report(inventory, skipped)
        self._log_completed(org, report, started)
        return report

    async def analyze_repo(self, repo: str, *, ref: str = HEAD_REF) -> AnalysisReport:
        """Scan a single ``org/name`` repository at ``ref``.

        Raises
        ------
        ScmConfigError
            If ``repo`` is not in ``org/name`` form.
        ScmApiError
            If the repository cannot be looked up.
        CloneError
            If the repository cannot be cloned.
        ScanError, PolicyEngineError, ReputationError
            If scanning or evaluation fails.

        """
        started = time.monotonic()
        self._events.log_run_started(repo, 1)
        org, name = self._scm.parse_repo_and_org(repo)
        repository = await self._scm.get_repo(org, name)
        inventory = self._new_inventory(
            self._scm.provider_name, await self._provider_version()
        )
        try:
            await self._scan_repository(repository, inventory, ref)
        except asyncio.CancelledError:
            self._cleanup()
            raise
        report = await self._report(inventory, [])
        self._log_completed(repo, report, started)
        return report

    async def analyze_local(self, path: str | Path) -> AnalysisReport:
        """Scan the checkout at ``path`` in place.

        Provenance (remote, commit, branch) is read from git when available;
        a plain directory still scans.
        """
        started = time.monotonic()
        self._events.log_run_started(str(path), 1)
        repo = await describe_checkout(path, self._git)
        log_info(logger, "scanning local checkout %s as %s", path, repo.identifier)
        inventory = self._new_inventory(repo.provider, "")
        package = await self._package_insights(repo, path, HEAD_REF)
        package.source_git_repo_path = str(Path(path).resolve())
        await inventory.add_package(package, path)
        report = await self._report(inventory, [])
        self._log_completed(str(path), report, started)
        return report

    async def analyze_files(
        self,
        repo: str,
        files: cabc.Mapping[str, bytes],
        *,
        provider: str = "github",
        ref: str = "",
    ) -> AnalysisReport:
        """Scan manifest contents that were fetched without a checkout.

        ``files`` maps repository-relative paths to file contents. No git
        metadata is read, so the package carries only ``repo`` and ``ref``.

        Raises
        ------
        MalformedIdentityError
            If ``repo`` does not form a valid package identity.
        PolicyEngineError, ReputationError
            If evaluation fails.

        """
        started = time.monotonic()
        self._events.log_run_started(repo, 1)
        now = dt.datetime.now(dt.UTC).isoformat()
        package = PackageInsights(
            first_seen_at=now,
            updated_at=now,
            purl=_package_purl(ScmRepository(provider, repo)),
            source_scm_type=provider,
            source_git_repo=repo,
            source_git_ref=ref,
        )
        package.normalize_purl()
        inventory = self._new_inventory(provider, "")
        await inventory.add_files(package, files)
        report = await self._report(inventory, [])
        self._log_completed(repo, report, started)
        return report

    async def _report(
        self, inventory: Inventory, skipped: list[SkippedRepository]
    ) -> AnalysisReport:
        findings = await inventory.findings()
        return AnalysisReport(
            findings=findings,
            packages=list(inventory.packages),
            skipped=sorted(skipped, key=lambda item: item.identifier),
        )

    def _log_completed(
        self, target: str, report: AnalysisReport, started: float
    ) -> None:
        self._events.log_run_completed(
            ScanRunSummary(
                target=target,
                packages=len(report.packages),
                skipped=len(report.skipped),
                findings=len(report.findings.findings),
            ),
            dt.timedelta(seconds=time.monotonic() - started),
        )


async def _cancel_all(tasks: set[asyncio.Task[None]]) -> None:
    """Cancel ``tasks`` and wait for their cleanup to finish."""
    pending = list(tasks)
    for task in pending:
        task.cancel()
    await asyncio.gather(*pending, return_exceptions=True)
