"""Aggregate scanned packages and evaluate them with the policy engine."""

from __future__ import annotations

import asyncio
import typing as typ

from pipescan.logging import get_logger, log_debug
from pipescan.policy.config import Config
from pipescan.policy.engine import FINDINGS_QUERY, INVENTORY_QUERY, evaluate_as
from pipescan.reputation.models import ReputationResponse

from .inventory_scanner import InventoryScanner, MemoryInventoryScanner
from .results import FindingsResult, InventoryResult

if typ.TYPE_CHECKING:
    import collections.abc as cabc
    from pathlib import Path

    from pipescan.manifests.package import PackageInsights
    from pipescan.policy.engine import PolicyEngine
    from pipescan.reputation.static import ReputationClient

logger = get_logger(__name__)


class Inventory:
    """Thread-safe collection of scanned packages.

    Workers call :meth:`add_package` concurrently; appends are serialized by
    an :class:`asyncio.Lock` so no package is lost.

    Examples
    --------
    >>> inventory = Inventory(engine)  # doctest: +SKIP
    >>> await inventory.add_package(package, "/tmp/checkout")  # doctest: +SKIP
    >>> result = await inventory.findings()  # doctest: +SKIP

    """

    def __init__(  # noqa: PLR0913
        self,
        engine: PolicyEngine,
        reputation_client: ReputationClient | None = None,
        *,
        provider: str = "github",
        provider_version: str = "",
        config: Config | None = None,
        scanner: InventoryScanner | None = None,
    ) -> None:
        """Create an empty inventory evaluated by ``engine``."""
        self._engine = engine
        self._reputation_client = reputation_client
        self._provider = provider
        self._provider_version = provider_version
        self._config = config or Config()
        self._scanner = scanner or InventoryScanner()
        self._packages: list[PackageInsights] = []
        self._lock = asyncio.Lock()

    @property
    def packages(self) -> tuple[PackageInsights, ...]:
        """Return a snapshot of the packages added so far."""
        return tuple(self._packages)

    async def scan_package(
        self, package: PackageInsights, workdir: str | Path
    ) -> PackageInsights:
        """Scan ``workdir`` into ``package`` and infer its dependencies.

        Raises
        ------
        ScanError
            If the checkout cannot be walked.
        PolicyEngineError
            If the inventory query fails.

        """
        await asyncio.to_thread(self._scanner.run, workdir, package)
        return await self._infer_dependencies(package)

    async def scan_files(
        self, package: PackageInsights, files: cabc.Mapping[str, bytes]
    ) -> PackageInsights:
        """Decode manifests already in memory, keyed by repository path.

        GitLab includes are not followed because there is no tree to read
        them from.
        """
        MemoryInventoryScanner(files).run(package)
        return await self._infer_dependencies(package)

    async def _infer_dependencies(self, package: PackageInsights) -> PackageInsights:
        result = await evaluate_as(
            self._engine, INVENTORY_QUERY, {"packages": [package]}, InventoryResult
        )
        package.build_dependencies = result.build_dependencies
        package.package_dependencies = result.package_dependencies
        log_debug(
            logger,
            "scanned %s: %d build and %d package dependencies",
            package.purl,
            len(result.build_dependencies),
            len(result.package_dependencies),
        )
        return package

    async def add_package(
        self, package: PackageInsights, workdir: str | Path
    ) -> PackageInsights:
        """Scan ``package`` and append it to the inventory."""
        scanned = await self.scan_package(package, workdir)
        async with self._lock:
            self._packages.append(scanned)
        return scanned

    async def add_files(
        self, package: PackageInsights, files: cabc.Mapping[str, bytes]
    ) -> PackageInsights:
        """Scan in-memory ``files`` into ``package`` and append it."""
        scanned = await self.scan_files(package, files)
        async with self._lock:
            self._packages.append(scanned)
        return scanned

    def purls(self) -> list[str]:
        """Return the sorted union of every package's dependencies."""
        return sorted(
            {
                purl
                for package in self._packages
                for purl in (*package.build_dependencies, *package.package_dependencies)
            }
        )

    async def _reputation(self) -> ReputationResponse | None:
        if self._reputation_client is None:
            return None
        return await self._reputation_client.get_reputation(self.purls())

    async def findings(self) -> FindingsResult:
        """Evaluate the findings query over every package added so far.

        Raises
        ------
        ReputationError
            If a configured reputation client fails.
        PolicyEngineError
            If the findings query fails.

        """
        async with self._lock:
            packages = list(self._packages)
        reputation = await self._reputation()
        return await evaluate_as(
            self._engine,
            FINDINGS_QUERY,
            {
                "packages": packages,
                "reputation": reputation,
                "provider": self._provider,
                "version": self._provider_version,
                "config": self._config,
            },
            FindingsResult,
        )
