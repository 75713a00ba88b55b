"""Package identity errors."""

from __future__ import annotations


class MalformedIdentityError(ValueError):
    """Raised when a package URL cannot be parsed or constructed."""

    @classmethod
    def unparseable(cls, text: str, reason: object) -> MalformedIdentityError:
        """Return an error for a string that is not a valid package URL."""
        return cls(f"invalid package URL {text!r}: {reason}")

    @classmethod
    def empty_reference(cls) -> MalformedIdentityError:
        """Return an error for an empty action reference."""
        return cls("action reference must be non-empty")

    @classmethod
    def path_traversal(cls, uses: str) -> MalformedIdentityError:
        """Return an error for a local reference that escapes the repository."""
        return cls(f"action reference {uses!r} must not contain '..'")

    @classmethod
    def unresolved_local(cls, uses: str) -> MalformedIdentityError:
        """Return an error for a local reference without a source repository."""
        return cls(f"local action reference {uses!r} needs a source repository")

    @classmethod
    def missing_version(cls, uses: str) -> MalformedIdentityError:
        """Return an error for a reference not in ``name@version`` form."""
        return cls(f"action reference {uses!r} must be in 'name@version' form")
