"""Manifest decoding errors."""

from __future__ import annotations


class ManifestDecodeError(ValueError):
    """Raised when a pipeline file cannot be decoded into a manifest document.

    Parsers absorb this error: the offending file is logged and left out of
    the package record.
    """

    def __init__(self, message: str, *, line: int | None = None) -> None:
        """Initialise with a message and the 1-based source line, if known."""
        self.line = line
        super().__init__(message if line is None else f"line {line}: {message}")

    @classmethod
    def invalid_yaml(cls, reason: object) -> ManifestDecodeError:
        """Return an error for input that is not well-formed YAML."""
        return cls(f"invalid YAML: {reason}")

    @classmethod
    def unexpected_shape(
        cls, field: str, shape: str, *, line: int | None = None
    ) -> ManifestDecodeError:
        """Return an error for a node whose shape has no decode rule."""
        return cls(f"{field}: unexpected {shape} node", line=line)

    @classmethod
    def invalid_value(
        cls, field: str, reason: object, *, line: int | None = None
    ) -> ManifestDecodeError:
        """Return an error for a value the decoder rejects."""
        return cls(f"{field}: {reason}", line=line)

    @classmethod
    def missing_document(cls, field: str) -> ManifestDecodeError:
        """Return an error for a multi-document file missing its body."""
        return cls(f"{field}: expected a second YAML document")
