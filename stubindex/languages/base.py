"""Protocol for stub parsers."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from stubindex.core.models import SourceUnit
    from stubindex.languages.models import ParseResult


class StubParser(Protocol):
    """Protocol for stub parsers."""

    def parse_unit(self, unit: SourceUnit) -> ParseResult:
        """Extract declaration events from an in-memory unit."""
        ...

    def parse_text(self, source: str, unit: str = "<string>") -> ParseResult:
        """Extract declaration events from stub source text."""
        ...
