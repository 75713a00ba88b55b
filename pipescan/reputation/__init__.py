"""Package reputation lookups."""

from __future__ import annotations

from .errors import ReputationError
from .models import PackageReputation, RepoReputation, ReputationResponse
from .static import ReputationClient, StaticReputationClient, load_unpinnable_actions

__all__ = [
    "PackageReputation",
    "RepoReputation",
    "ReputationClient",
    "ReputationError",
    "ReputationResponse",
    "StaticReputationClient",
    "load_unpinnable_actions",
]
