"""Errors raised while scanning a checkout."""

from __future__ import annotations


class ScanError(RuntimeError):
    """Raised when a repository tree cannot be scanned."""

    def __init__(self, root: str, reason: str) -> None:
        """Initialise with the scanned root and the failure reason."""
        self.root = root
        self.reason = reason
        super().__init__(f"Scan of {root} failed: {reason}")

    @classmethod
    def walk_failed(cls, root: str, exc: OSError) -> ScanError:
        """Return an error for a directory walk that could not continue."""
        return cls(root, f"cannot walk {exc.filename or root}: {exc.strerror or exc}")

    @classmethod
    def read_failed(cls, root: str, path: str, exc: OSError) -> ScanError:
        """Return an error for a pipeline file that could not be read."""
        return cls(root, f"cannot read {path}: {exc.strerror or exc}")

    @classmethod
    def outside_root(cls, root: str, path: str) -> ScanError:
        """Return an error for a file that is not inside the scanned root."""
        return cls(root, f"{path} is outside the repository root")
