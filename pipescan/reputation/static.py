"""Offline reputation client backed by a bundled list of unpinnable actions.

An action is unpinnable when pinning its own reference does not pin what it
runs, for example a Docker action built from a floating image tag.
"""

from __future__ import annotations

import importlib.resources
import typing as typ

from pipescan.identity import GITHUB_ACTIONS_TYPE, MalformedIdentityError, parse_purl
from pipescan.identity.purl import full_name

from .errors import ReputationError
from .models import PackageReputation, ReputationResponse

if typ.TYPE_CHECKING:
    import collections.abc as cabc

UNPINNABLE_ACTIONS_RESOURCE = "unpinnable_actions.txt"


class ReputationClient(typ.Protocol):
    """Source of reputation data for package identities."""

    async def get_reputation(self, purls: cabc.Sequence[str]) -> ReputationResponse:
        """Return reputation records for ``purls``."""
        ...


def load_unpinnable_actions() -> frozenset[str]:
    """Read the bundled list; blank lines and ``#`` comments are ignored.

    Raises
    ------
    ReputationError
        If the bundled resource cannot be read.

    """
    resource = importlib.resources.files(__package__).joinpath(
        UNPINNABLE_ACTIONS_RESOURCE
    )
    try:
        text = resource.read_text(encoding="utf-8")
    except OSError as exc:
        raise ReputationError.unavailable(exc) from exc
    return frozenset(
        line.strip()
        for line in text.splitlines()
        if line.strip() and not line.lstrip().startswith("#")
    )


class StaticReputationClient:
    """:class:`ReputationClient` that flags known unpinnable actions."""

    def __init__(self, unpinnable_actions: cabc.Iterable[str] | None = None) -> None:
        """Use ``unpinnable_actions`` or the bundled list."""
        self._unpinnable = (
            frozenset(unpinnable_actions)
            if unpinnable_actions is not None
            else load_unpinnable_actions()
        )

    def is_unpinnable(self, purl: str) -> bool:
        """Return True when ``purl`` names a listed action, ignoring its version."""
        try:
            parsed = parse_purl(purl)
        except MalformedIdentityError:
            return False
        if parsed.type != GITHUB_ACTIONS_TYPE:
            return False
        prefix = f"pkg:{GITHUB_ACTIONS_TYPE}/{full_name(parsed)}"
        if parsed.subpath:
            prefix = f"{prefix}/{parsed.subpath}"
        return prefix in self._unpinnable

    async def get_reputation(self, purls: cabc.Sequence[str]) -> ReputationResponse:
        """Return a ``risk=1`` record for every unpinnable action in ``purls``."""
        return ReputationResponse(
            packages=[
                PackageReputation(
                    purl=purl, risk=1.0, attributes={"unpinnable": "true"}
                )
                for purl in purls
                if self.is_unpinnable(purl)
            ]
        )
