"""Command-line interface for pipescan.

Usage:
    pipescan analyze-org acme
    pipescan analyze-repo acme/widgets --ref main
    pipescan analyze-local ./widgets
    pipescan analyze-files .github/workflows/ci.yml --repo acme/widgets

Environment variables:
    PIPESCAN_TOKEN         - SCM token (GH_TOKEN, GITHUB_TOKEN, GITLAB_TOKEN)
    PIPESCAN_SCM_BASE_URL  - Self-managed GitHub or GitLab host
    PIPESCAN_OPA_URL       - Open Policy Agent server evaluating the rules
    PIPESCAN_OPA_TOKEN     - Bearer token for the OPA server
    PIPESCAN_MAX_WORKERS   - Concurrent repository scans (default: 2)
    PIPESCAN_LOG_LEVEL     - Log level (default: INFO)
"""

from __future__ import annotations

import asyncio
import dataclasses
import os
import signal
import sys
import typing as typ
from pathlib import Path

import msgspec
from cyclopts import App, Parameter

from pipescan import __version__
from pipescan.analyze import (
    Analyzer,
    AnalyzerSettings,
    ScanProgress,
    cleanup_temp_dirs,
)
from pipescan.identity import MalformedIdentityError
from pipescan.logging import (
    configure_logging,
    get_logger,
    log_error,
    log_info,
    log_warning,
)
from pipescan.policy import (
    ConfigError,
    OpaServerConfig,
    OpaServerEngine,
    PolicyConfigError,
    PolicyEngineError,
    load_config,
)
from pipescan.providers import (
    GitClient,
    GitError,
    ListingError,
    LocalGitClient,
    ScmApiError,
    ScmConfigError,
    ScmResponseShapeError,
    build_scm_client,
)
from pipescan.reputation import ReputationError, StaticReputationClient
from pipescan.scanner import ScanError

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    from pipescan.analyze import AnalysisReport
    from pipescan.policy import Config
    from pipescan.providers import GitOperations

logger = get_logger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_INTERRUPTED = 130

TOKEN_ENV_VARS = ("PIPESCAN_TOKEN", "GH_TOKEN", "GITHUB_TOKEN", "GITLAB_TOKEN")

_FAILURES: tuple[type[Exception], ...] = (
    ListingError,
    ScmApiError,
    ScmConfigError,
    ScmResponseShapeError,
    ConfigError,
    PolicyConfigError,
    PolicyEngineError,
    ReputationError,
    GitError,
    ScanError,
    MalformedIdentityError,
)

app = App(
    name="pipescan",
    help="Scan CI/CD pipeline manifests for supply-chain weaknesses",
    version=__version__,
)


@dataclasses.dataclass(frozen=True, slots=True)
class RunOptions:
    """Options shared by every analyze command."""

    scm: str = "github"
    scm_base_url: str = ""
    token: str = ""
    opa_url: str = ""
    config: Path | None = None
    max_workers: int | None = None
    ignore_forks: bool = False
    output: Path | None = None


class InterruptHandler:
    """Signal callback: cancel the scan first, hard-exit on a repeat.

    The first SIGINT or SIGTERM cancels ``task`` so the analyzer can remove
    its temporary clones. A second signal exits immediately with status 130.
    """

    def __init__(
        self,
        task: asyncio.Task[typ.Any],
        *,
        exit_fn: cabc.Callable[[int], object] = os._exit,
    ) -> None:
        """Bind the handler to the task it cancels."""
        self._task = task
        self._exit_fn = exit_fn
        self.received = 0

    def __call__(self) -> None:
        """Handle one signal delivery."""
        self.received += 1
        if self.received > 1:
            self._exit_fn(EXIT_INTERRUPTED)
            return
        log_warning(logger, "interrupt received, cleaning up; repeat to force exit")
        self._task.cancel()


async def _run_interruptible[T](coro: cabc.Coroutine[typ.Any, typ.Any, T]) -> T:
    """Await ``coro`` with SIGINT and SIGTERM wired to :class:`InterruptHandler`."""
    loop = asyncio.get_running_loop()
    task = asyncio.current_task()
    installed: list[signal.Signals] = []
    if task is not None:
        handler = InterruptHandler(task)
        for signum in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(signum, handler)
            except (NotImplementedError, RuntimeError):
                continue
            installed.append(signum)
    try:
        return await coro
    finally:
        for signum in installed:
            loop.remove_signal_handler(signum)


def _log_progress(done: int, total: int) -> None:
    log_info(logger, "progress: %d/%d repositories", done, total)


def read_manifests(paths: cabc.Sequence[Path], root: Path) -> dict[str, bytes]:
    """Read ``paths`` keyed by their POSIX path relative to ``root``.

    Raises
    ------
    ScanError
        If a file lies outside ``root`` or cannot be read.

    """
    base = root.resolve()
    manifests: dict[str, bytes] = {}
    for path in paths:
        resolved = (root / path).resolve()
        if not resolved.is_relative_to(base):
            raise ScanError.outside_root(str(root), str(path))
        relative = resolved.relative_to(base).as_posix()
        try:
            manifests[relative] = resolved.read_bytes()
        except OSError as exc:
            raise ScanError.read_failed(str(root), relative, exc) from exc
    return manifests


def _load_run_config(options: RunOptions) -> Config:
    config = load_config(options.config)
    if options.ignore_forks:
        config.ignore_forks = True
    return config


def _policy_engine(opa_url: str) -> OpaServerEngine:
    if not opa_url.strip():
        raise PolicyConfigError.missing_endpoint()
    token = os.environ.get("PIPESCAN_OPA_TOKEN", "").strip()
    return OpaServerEngine(OpaServerConfig(endpoint=opa_url.strip(), token=token))


async def run_analysis(
    options: RunOptions,
    action: cabc.Callable[[Analyzer], cabc.Awaitable[AnalysisReport]],
    *,
    repo_path: Path | None = None,
) -> AnalysisReport:
    """Wire up clients from ``options`` and run ``action`` on an analyzer.

    ``repo_path`` selects the local provider and a non-cloning git client.
    """
    config = _load_run_config(options)
    engine = _policy_engine(options.opa_url)
    git: GitOperations = LocalGitClient() if repo_path is not None else GitClient()
    try:
        scm = await build_scm_client(
            "local" if repo_path is not None else options.scm,
            token=options.token,
            base_url=options.scm_base_url,
            repo_path=repo_path,
            git=git,
        )
        try:
            analyzer = Analyzer(
                scm,
                git,
                engine,
                config=config,
                reputation_client=StaticReputationClient(),
                progress=ScanProgress(_log_progress),
                settings=AnalyzerSettings.from_env(),
            )
            return await action(analyzer)
        finally:
            await scm.aclose()
    finally:
        await engine.aclose()


def write_report(report: AnalysisReport, output: Path | None) -> None:
    """Write ``report`` as indented JSON to ``output`` or stdout."""
    encoded = msgspec.json.format(msgspec.json.encode(report), indent=2)
    if output is None:
        sys.stdout.write(encoded.decode("utf-8"))
        sys.stdout.write("\n")
        return
    output.write_bytes(encoded + b"\n")
    log_info(logger, "wrote report to %s", output)


def _execute(
    options: RunOptions,
    action: cabc.Callable[[Analyzer], cabc.Awaitable[AnalysisReport]],
    *,
    log_level: str,
    repo_path: Path | None = None,
) -> int:
    """Run one analysis to completion and map the outcome to an exit code."""
    normalized_level, invalid_level = configure_logging(log_level)
    if invalid_level:
        log_warning(
            logger,
            "Invalid log level %r, falling back to %s",
            log_level,
            normalized_level,
        )
    if options.max_workers is not None and options.max_workers < 1:
        log_error(logger, "--max-workers must be at least 1")
        return EXIT_FAILURE

    try:
        report = asyncio.run(
            _run_interruptible(run_analysis(options, action, repo_path=repo_path))
        )
    except (asyncio.CancelledError, KeyboardInterrupt):
        cleanup_temp_dirs()
        log_warning(logger, "scan interrupted")
        return EXIT_INTERRUPTED
    except _FAILURES as exc:
        log_error(logger, "%s", exc)
        return EXIT_FAILURE

    try:
        write_report(report, options.output)
    except OSError as exc:
        log_error(logger, "failed to write report: %s", exc)
        return EXIT_FAILURE
    return EXIT_OK


ScmOption = typ.Annotated[str, Parameter(env_var="PIPESCAN_SCM")]
BaseUrlOption = typ.Annotated[str, Parameter(env_var="PIPESCAN_SCM_BASE_URL")]
TokenOption = typ.Annotated[str, Parameter(env_var=TOKEN_ENV_VARS)]
OpaUrlOption = typ.Annotated[str, Parameter(env_var="PIPESCAN_OPA_URL")]
MaxWorkersOption = typ.Annotated[int | None, Parameter(env_var="PIPESCAN_MAX_WORKERS")]
LogLevelOption = typ.Annotated[str, Parameter(env_var="PIPESCAN_LOG_LEVEL")]


@app.command
def analyze_org(  # noqa: PLR0913
    org: str,
    *,
    scm: ScmOption = "github",
    scm_base_url: BaseUrlOption = "",
    token: TokenOption = "",
    opa_url: OpaUrlOption = "",
    config: Path | None = None,
    max_workers: MaxWorkersOption = None,
    ignore_forks: bool = False,
    log_level: LogLevelOption = "INFO",
    output: Path | None = None,
) -> int:
    """Scan every repository of a GitHub organization or GitLab group.

    Args:
        org: Organization login or group path.
        scm: Source-control provider, ``github`` or ``gitlab``.
        scm_base_url: Host of a self-managed instance.
        token: API token, also used to clone.
        opa_url: Open Policy Agent server that evaluates the rules.
        config: Rule configuration file (default: ``.pipescan.yml``).
        max_workers: Number of repositories scanned at once.
        ignore_forks: Skip forked repositories.
        log_level: Log level.
        output: Write the JSON report here instead of stdout.

    Returns:
        Exit code: 0 on success, 1 on failure, 130 when interrupted.

    """
    options = RunOptions(
        scm=scm,
        scm_base_url=scm_base_url,
        token=token,
        opa_url=opa_url,
        config=config,
        max_workers=max_workers,
        ignore_forks=ignore_forks,
        output=output,
    )
    return _execute(
        options,
        lambda analyzer: analyzer.analyze_org(org, max_workers=max_workers),
        log_level=log_level,
    )


@app.command
def analyze_repo(  # noqa: PLR0913
    repo: str,
    *,
    ref: str = "HEAD",
    scm: ScmOption = "github",
    scm_base_url: BaseUrlOption = "",
    token: TokenOption = "",
    opa_url: OpaUrlOption = "",
    config: Path | None = None,
    log_level: LogLevelOption = "INFO",
    output: Path | None = None,
) -> int:
    """Scan a single repository.

    Args:
        repo: Repository as ``owner/name``.
        ref: Branch, tag or commit to scan.
        scm: Source-control provider, ``github`` or ``gitlab``.
        scm_base_url: Host of a self-managed instance.
        token: API token, also used to clone.
        opa_url: Open Policy Agent server that evaluates the rules.
        config: Rule configuration file (default: ``.pipescan.yml``).
        log_level: Log level.
        output: Write the JSON report here instead of stdout.

    Returns:
        Exit code: 0 on success, 1 on failure, 130 when interrupted.

    """
    options = RunOptions(
        scm=scm,
        scm_base_url=scm_base_url,
        token=token,
        opa_url=opa_url,
        config=config,
        output=output,
    )
    return _execute(
        options,
        lambda analyzer: analyzer.analyze_repo(repo, ref=ref),
        log_level=log_level,
    )


@app.command
def analyze_local(
    path: Path,
    *,
    opa_url: OpaUrlOption = "",
    config: Path | None = None,
    log_level: LogLevelOption = "INFO",
    output: Path | None = None,
) -> int:
    """Scan a checkout on disk without cloning.

    Args:
        path: Repository working tree.
        opa_url: Open Policy Agent server that evaluates the rules.
        config: Rule configuration file (default: ``.pipescan.yml``).
        log_level: Log level.
        output: Write the JSON report here instead of stdout.

    Returns:
        Exit code: 0 on success, 1 on failure, 130 when interrupted.

    """
    options = RunOptions(opa_url=opa_url, config=config, output=output)
    return _execute(
        options,
        lambda analyzer: analyzer.analyze_local(path),
        log_level=log_level,
        repo_path=path,
    )


@app.command
def analyze_files(  # noqa: PLR0913
    files: list[Path],
    *,
    repo: str,
    root: Path = Path(),
    ref: str = "",
    scm: ScmOption = "github",
    opa_url: OpaUrlOption = "",
    config: Path | None = None,
    log_level: LogLevelOption = "INFO",
    output: Path | None = None,
) -> int:
    """Scan individual manifest files without cloning or walking a tree.

    Each file keeps its path relative to ``root``, which decides the parser
    that reads it. GitLab includes are not followed.

    Args:
        files: Manifest files, relative to ``root``.
        repo: Repository the files belong to, as ``owner/name``.
        root: Repository root the file paths are relative to.
        ref: Branch, tag or commit the files were taken from.
        scm: Provider used for the package identity.
        opa_url: Open Policy Agent server that evaluates the rules.
        config: Rule configuration file (default: ``.pipescan.yml``).
        log_level: Log level.
        output: Write the JSON report here instead of stdout.

    Returns:
        Exit code: 0 on success, 1 on failure, 130 when interrupted.

    """

    async def action(analyzer: Analyzer) -> AnalysisReport:
        manifests = await asyncio.to_thread(read_manifests, files, root)
        return await analyzer.analyze_files(repo, manifests, provider=scm, ref=ref)

    options = RunOptions(scm=scm, opa_url=opa_url, config=config, output=output)
    return _execute(options, action, log_level=log_level, repo_path=root)


def main() -> int:
    """Entry point for the CLI."""
    return app()


if __name__ == "__main__":
    sys.exit(main())
