"""Structured scan events and error categorization.

Events are emitted through the standard library logger as
``[event] key=value`` messages so log aggregators can parse them.
"""

from __future__ import annotations

import dataclasses
import enum
import logging
import typing as typ

from pipescan.identity import MalformedIdentityError
from pipescan.policy.errors import ConfigError, PolicyConfigError, PolicyEngineError
from pipescan.providers.errors import (
    GitError,
    GitNotFoundError,
    ScmApiError,
    ScmConfigError,
    ScmResponseShapeError,
)
from pipescan.reputation.errors import ReputationError
from pipescan.scanner.errors import ScanError

if typ.TYPE_CHECKING:
    import datetime as dt

logger = logging.getLogger(__name__)

# HTTP status code threshold for server errors (5xx)
_HTTP_SERVER_ERROR_THRESHOLD = 500


class ScanEventType(enum.StrEnum):
    """Structured log event types for scan observability."""

    RUN_STARTED = "scan.run.started"
    RUN_COMPLETED = "scan.run.completed"
    REPO_SKIPPED = "scan.repo.skipped"
    REPO_FAILED = "scan.repo.failed"
    TEMP_CLEANED = "scan.temp.cleaned"


class ErrorCategory(enum.StrEnum):
    """Categories for error classification in alerts."""

    TRANSIENT = "transient"
    CLIENT_ERROR = "client_error"
    SCHEMA_DRIFT = "schema_drift"
    CONFIGURATION = "configuration"
    GIT = "git"
    SCAN = "scan"
    POLICY = "policy"
    IDENTITY = "identity"
    UNKNOWN = "unknown"


@dataclasses.dataclass(frozen=True, slots=True)
class ScanRunSummary:
    """Counts reported when a scan run completes."""

    target: str
    packages: int
    skipped: int
    findings: int


_EXCEPTION_CATEGORY_MAP: tuple[tuple[type[BaseException], ErrorCategory], ...] = (
    (ScmResponseShapeError, ErrorCategory.SCHEMA_DRIFT),
    (ScmConfigError, ErrorCategory.CONFIGURATION),
    (ConfigError, ErrorCategory.CONFIGURATION),
    (PolicyConfigError, ErrorCategory.CONFIGURATION),
    (GitNotFoundError, ErrorCategory.CONFIGURATION),
    (GitError, ErrorCategory.GIT),
    (ScanError, ErrorCategory.SCAN),
    (MalformedIdentityError, ErrorCategory.IDENTITY),
    (ReputationError, ErrorCategory.TRANSIENT),
)


def _status_category(status_code: int | None, default: ErrorCategory) -> ErrorCategory:
    if status_code is not None and status_code >= _HTTP_SERVER_ERROR_THRESHOLD:
        return ErrorCategory.TRANSIENT
    return default


def categorize_error(exc: BaseException) -> ErrorCategory:
    """Categorize an exception for alerting purposes.

    Returns:
        ErrorCategory indicating the type of failure for alert routing.

    """
    # API errors split on status code: 5xx and transport failures are transient
    if isinstance(exc, ScmApiError):
        if exc.status_code is None:
            return ErrorCategory.TRANSIENT
        return _status_category(exc.status_code, ErrorCategory.CLIENT_ERROR)
    if isinstance(exc, PolicyEngineError):
        return _status_category(exc.status_code, ErrorCategory.POLICY)

    for exc_type, category in _EXCEPTION_CATEGORY_MAP:
        if isinstance(exc, exc_type):
            return category

    return ErrorCategory.UNKNOWN


class ScanEventLogger:
    """Emit structured scan events via Python logging.

    All log events use lazy interpolation. Run progress and
    skipped repositories are INFO; failed repositories are WARNING because
    the run carries on without them.
    """

    def log_run_started(self, target: str, max_workers: int) -> None:
        """Log the start of an organization or repository scan."""
        logger.info(
            "[%s] target=%s max_workers=%d",
            ScanEventType.RUN_STARTED,
            target,
            max_workers,
        )

    def log_run_completed(
        self, summary: ScanRunSummary, duration: dt.timedelta
    ) -> None:
        """Log scan completion with counts."""
        logger.info(
            "[%s] target=%s duration_seconds=%.3f packages=%d skipped=%d findings=%d",
            ScanEventType.RUN_COMPLETED,
            summary.target,
            duration.total_seconds(),
            summary.packages,
            summary.skipped,
            summary.findings,
        )

    def log_repo_skipped(self, identifier: str, reason: str) -> None:
        """Log a repository excluded by configuration."""
        logger.info(
            "[%s] repo=%s reason=%s",
            ScanEventType.REPO_SKIPPED,
            identifier,
            reason,
        )

    def log_repo_failed(self, identifier: str, error: BaseException) -> None:
        """Log a repository whose scan failed, with its error category."""
        logger.warning(
            "[%s] repo=%s error_type=%s error_category=%s error_message=%s",
            ScanEventType.REPO_FAILED,
            identifier,
            type(error).__name__,
            categorize_error(error),
            str(error),
        )

    def log_temp_cleaned(self, removed: int) -> None:
        """Log removal of leftover scan directories."""
        logger.info("[%s] removed=%d", ScanEventType.TEMP_CLEANED, removed)
