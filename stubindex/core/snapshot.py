"""Holder that swaps in rebuilt indexes without disturbing readers."""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable
from pathlib import Path

from stubindex.config import StubIndexConfig
from stubindex.core.builder import build, build_from_directory
from stubindex.core.index import StubIndex
from stubindex.core.models import Diagnostic, SourceUnit

logger = logging.getLogger(__name__)


class IndexHolder:
    """Owns the current StubIndex.

    Rebuilds run outside the lock; only the reference swap is serialized.
    A reader keeps whatever snapshot it acquired, so it never sees a
    half-built table.
    """

    def __init__(self, config: StubIndexConfig | None = None) -> None:
        self._config = config or StubIndexConfig()
        self._lock = threading.Lock()
        self._index = StubIndex({})
        self._generation = 0

    @property
    def generation(self) -> int:
        """Number of snapshots swapped in so far."""
        return self._generation

    def snapshot(self) -> StubIndex:
        """Current index. Callers keep using it even after a later rebuild."""
        return self._index

    @property
    def diagnostics(self) -> tuple[Diagnostic, ...]:
        return self._index.diagnostics

    def rebuild(self, units: Iterable[SourceUnit]) -> StubIndex:
        """Build a new index from units and make it current."""
        index, _ = build(units, self._config)
        return self._swap(index)

    def rebuild_from_directory(self, directory: Path | None = None) -> StubIndex:
        """Rebuild from the stub files under `directory` (default: the configured source dir)."""
        index, _ = build_from_directory(directory or self._config.source_root, self._config)
        return self._swap(index)

    def _swap(self, index: StubIndex) -> StubIndex:
        with self._lock:
            self._index = index
            self._generation += 1
            generation = self._generation
        logger.info("Swapped in index generation %d (%d namespaces)", generation, len(index))
        return index
