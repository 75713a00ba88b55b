"""Walk a checkout and feed every matching file to the parsers."""

from __future__ import annotations

import os
import typing as typ
from pathlib import Path

from pipescan.logging import get_logger, log_error

from .errors import ScanError
from .parsers import Parser, default_parsers

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    from pipescan.manifests.package import PackageInsights

logger = get_logger(__name__)

SKIPPED_DIRS = frozenset({".git"})


class InventoryScanner:
    """Dispatch the files of a directory tree to their parsers.

    Every parser whose pattern matches a file is invoked; matching does not
    stop at the first parser. Read errors are logged per file and the walk
    continues.

    Examples
    --------
    >>> from pipescan.manifests import PackageInsights
    >>> scanner = InventoryScanner()
    >>> package = PackageInsights(purl="pkg:github/acme/widgets")
    >>> scanner.run("/tmp/checkout", package)  # doctest: +SKIP

    """

    def __init__(self, parsers: cabc.Sequence[Parser] | None = None) -> None:
        """Create a scanner using ``parsers`` or the built-in set."""
        self._parsers = list(parsers) if parsers is not None else default_parsers()

    @property
    def parsers(self) -> list[Parser]:
        """Return the parsers in dispatch order."""
        return list(self._parsers)

    def run(self, root: str | Path, package: PackageInsights) -> None:
        """Scan ``root`` and append decoded manifests to ``package``.

        Raises
        ------
        ScanError
            If the directory walk itself fails.

        """
        root_path = Path(root)
        root_text = str(root_path)

        def fail(exc: OSError) -> None:
            raise ScanError.walk_failed(root_text, exc) from exc

        if not root_path.is_dir():
            raise ScanError(root_text, "not a directory")

        for dirpath, dirnames, filenames in os.walk(root_path, onerror=fail):
            dirnames[:] = sorted(name for name in dirnames if name not in SKIPPED_DIRS)
            current = Path(dirpath)
            for filename in sorted(filenames):
                file_path = current / filename
                if not file_path.is_file():
                    continue
                relative = file_path.relative_to(root_path).as_posix()
                self._dispatch(file_path, root_path, relative, package)

    def _dispatch(
        self,
        file_path: Path,
        root: Path,
        relative: str,
        package: PackageInsights,
    ) -> None:
        for parser in self._parsers:
            if not parser.matches(relative):
                continue
            try:
                parser.parse(file_path, root, package)
            except OSError as exc:
                error = ScanError.read_failed(str(root), relative, exc)
                log_error(logger, "error parsing matched file %s: %s", relative, error)


class MemoryInventoryScanner:
    """Run the same dispatch over an in-memory ``{path: bytes}`` mapping."""

    def __init__(
        self,
        files: cabc.Mapping[str, bytes],
        parsers: cabc.Sequence[Parser] | None = None,
    ) -> None:
        """Create a scanner over ``files`` keyed by repository-relative path."""
        self._files = dict(files)
        self._parsers = list(parsers) if parsers is not None else default_parsers()

    def run(self, package: PackageInsights) -> None:
        """Append the manifests decoded from the mapping to ``package``."""
        for path in sorted(self._files):
            data = self._files[path]
            for parser in self._parsers:
                if parser.matches(path):
                    parser.parse_from_memory(data, path, package)
