"""Reputation data passed to the findings query."""

from __future__ import annotations

import msgspec


class PackageReputation(msgspec.Struct, kw_only=True):
    purl: str
    repo: str = ""
    risk: float = 0.0
    attributes: dict[str, str] = msgspec.field(default_factory=dict)


class RepoReputation(msgspec.Struct, kw_only=True):
    repo: str
    attributes: dict[str, str] = msgspec.field(default_factory=dict)


class ReputationResponse(msgspec.Struct, kw_only=True):
    """Reputation records for the packages and repositories queried."""

    packages: list[PackageReputation] = msgspec.field(default_factory=list)
    repos: list[RepoReputation] = msgspec.field(default_factory=list)
