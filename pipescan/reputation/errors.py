"""Reputation lookup errors."""

from __future__ import annotations


class ReputationError(RuntimeError):
    """Raised when reputation data cannot be retrieved."""

    @classmethod
    def unavailable(cls, reason: object) -> ReputationError:
        """Return an error for a reputation source that could not be read."""
        return cls(f"Reputation data unavailable: {reason}")
