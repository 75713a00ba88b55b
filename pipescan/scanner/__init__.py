"""Repository scanning: parsers, the tree walker and the inventory."""

from __future__ import annotations

from .errors import ScanError
from .inventory import Inventory
from .inventory_scanner import InventoryScanner, MemoryInventoryScanner
from .parsers import (
    MAX_INCLUDE_FRAGMENTS,
    AzurePipelinesParser,
    GithubActionsMetadataParser,
    GithubActionsWorkflowParser,
    GitlabciParser,
    Parser,
    PipelineAsCodeTektonParser,
    default_parsers,
    resolve_gitlab_includes,
)
from .results import Finding, FindingMeta, FindingsResult, InventoryResult, Rule

__all__ = [
    "MAX_INCLUDE_FRAGMENTS",
    "AzurePipelinesParser",
    "Finding",
    "FindingMeta",
    "FindingsResult",
    "GithubActionsMetadataParser",
    "GithubActionsWorkflowParser",
    "GitlabciParser",
    "Inventory",
    "InventoryResult",
    "InventoryScanner",
    "MemoryInventoryScanner",
    "Parser",
    "PipelineAsCodeTektonParser",
    "Rule",
    "ScanError",
    "default_parsers",
    "resolve_gitlab_includes",
]
