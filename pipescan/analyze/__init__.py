"""Orchestration of organization, repository and local scans."""

from __future__ import annotations

from .admission import AdmissionLimiter, ScanProgress
from .analyzer import (
    DEFAULT_MAX_WORKERS,
    TEMP_DIR_PREFIX,
    AnalysisReport,
    Analyzer,
    AnalyzerSettings,
    SkippedRepository,
    cleanup_temp_dirs,
)
from .observability import ErrorCategory, ScanEventLogger, categorize_error

__all__ = [
    "DEFAULT_MAX_WORKERS",
    "TEMP_DIR_PREFIX",
    "AdmissionLimiter",
    "AnalysisReport",
    "Analyzer",
    "AnalyzerSettings",
    "ErrorCategory",
    "ScanEventLogger",
    "ScanProgress",
    "SkippedRepository",
    "categorize_error",
    "cleanup_temp_dirs",
]
