"""Loading stub source units from disk."""

from __future__ import annotations

import fnmatch
import logging
from pathlib import Path

from stubindex.core.exceptions import SourceError
from stubindex.core.models import Diagnostic, DiagnosticKind, SourceUnit

logger = logging.getLogger(__name__)

DEFAULT_EXCLUDES = [
    "vendor",
    "node_modules",
    "tmp",
]


def load_units(
    directory: Path,
    pattern: str = "**/*.rb",
    exclude_patterns: list[str] | None = None,
) -> tuple[list[SourceUnit], list[Diagnostic]]:
    """Read every stub file under a directory.

    Units are named by their path relative to `directory` (POSIX separators),
    which is also the order the builder applies them in. Files that cannot be
    read are reported as diagnostics and skipped.

    Raises:
        SourceError: The directory does not exist, or it has stub files but
            none of them could be read
    """
    if not directory.is_dir():
        raise SourceError(f"Stub directory not found: {directory}")

    all_excludes = DEFAULT_EXCLUDES + (exclude_patterns or [])
    units: list[SourceUnit] = []
    diagnostics: list[Diagnostic] = []

    for file in sorted(directory.glob(pattern)):
        if not file.is_file():
            continue
        relative_path = file.relative_to(directory).as_posix()
        if _should_exclude(relative_path, all_excludes):
            continue
        try:
            text = file.read_text(encoding="utf-8")
        except (UnicodeDecodeError, OSError) as e:
            logger.warning("Cannot read %s: %s", relative_path, e)
            diagnostics.append(
                Diagnostic(
                    kind=DiagnosticKind.UNREADABLE_SOURCE,
                    message=f"Cannot read {relative_path}: {e}",
                    unit=relative_path,
                )
            )
            continue
        units.append(SourceUnit(relative_path, text))

    if diagnostics and not units:
        raise SourceError(f"None of the stub files under {directory} could be read")

    logger.info("Loaded %d stub units from %s", len(units), directory)
    return units, diagnostics


def _should_exclude(path: str, patterns: list[str]) -> bool:
    """Check if a path matches any exclusion pattern.

    Any path component starting with '.' (hidden files/directories) is excluded.
    """
    for part in Path(path).parts:
        if part.startswith("."):
            return True
        for pattern in patterns:
            if fnmatch.fnmatch(part, pattern):
                return True
    return False
