"""Typed results of the inventory and findings queries."""

from __future__ import annotations

import hashlib

import msgspec


class InventoryResult(msgspec.Struct, kw_only=True):
    """Dependencies the policy engine inferred for one package."""

    build_dependencies: list[str] = msgspec.field(default_factory=list)
    package_dependencies: list[str] = msgspec.field(default_factory=list)


class FindingMeta(msgspec.Struct, kw_only=True, omit_defaults=True):
    """Location and context of a finding.

    Engines report ``step`` either as a step index or as a step name; it is
    always stored as text.
    """

    path: str = ""
    line: int = 0
    job: str = ""
    step: str | int = ""
    osv_id: str = ""
    details: str = ""
    event_triggers: list[str] = msgspec.field(default_factory=list)
    blobsha: str = ""

    def __post_init__(self) -> None:
        """Store ``step`` as text."""
        self.step = str(self.step)


class Finding(msgspec.Struct, kw_only=True):
    """One rule violation attributed to a package."""

    rule_id: str
    purl: str
    meta: FindingMeta = msgspec.field(default_factory=FindingMeta)

    def fingerprint(self) -> str:
        """Return a stable sha256 hex digest identifying this finding.

        The digest covers path, line, job, step and rule id, so the same
        violation keeps its fingerprint across scans.
        """
        text = (
            f"{self.meta.path}{self.meta.line}{self.meta.job}"
            f"{self.meta.step}{self.rule_id}"
        )
        return hashlib.sha256(text.encode("utf-8")).hexdigest()


class RuleRef(msgspec.Struct, kw_only=True):
    ref: str = ""
    description: str = ""


class RuleConfig(msgspec.Struct, kw_only=True):
    default: object = None
    description: str = ""
    value: object = None


class Rule(msgspec.Struct, kw_only=True, omit_defaults=True):
    """Catalogue entry for a rule the engine evaluated."""

    id: str
    title: str = ""
    description: str = ""
    level: str = ""
    refs: list[RuleRef] = msgspec.field(default_factory=list)
    config: dict[str, RuleConfig] = msgspec.field(default_factory=dict)


class FindingsResult(msgspec.Struct, kw_only=True):
    """Findings across every package plus the rules that produced them."""

    findings: list[Finding] = msgspec.field(default_factory=list)
    rules: dict[str, Rule] = msgspec.field(default_factory=dict)
