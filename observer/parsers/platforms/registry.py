"""Session parser registry for platform-specific implementations."""
from __future__ import annotations

from observer import config
from observer.config import SourceRoots, resolve_source_roots
from observer.models import SourceType
from observer.parsers.common import SessionParser
from observer.parsers.platforms.claude_code.parser import ClaudeCodeParser
from observer.parsers.platforms.codex.parser import CodexParser
from observer.parsers.platforms.gemini.parser import GeminiParser
from observer.pricing import PricingMode


class ParserRegistry:
    """Maps each source to the parser that handles it.

    The importer only ever looks parsers up by source, so a new tool is added
    by registering another parser here.
    """

    def __init__(self) -> None:
        self._parsers: dict[SourceType, SessionParser] = {}

    def register(self, parser: SessionParser) -> None:
        self._parsers[parser.source] = parser

    def get(self, source: SourceType) -> SessionParser | None:
        return self._parsers.get(source)

    def sources(self) -> list[SourceType]:
        return list(self._parsers)

    def __contains__(self, source: object) -> bool:
        return source in self._parsers


def build_default_registry(
    roots: SourceRoots | None = None,
    pricing_mode: PricingMode = PricingMode.AUTO,
    include_transcripts: bool | None = None,
) -> ParserRegistry:
    """Build a registry holding the Claude Code, Codex and Gemini parsers."""
    if roots is None:
        roots = resolve_source_roots()
    if include_transcripts is None:
        include_transcripts = config.IMPORT_TRANSCRIPTS

    registry = ParserRegistry()
    registry.register(
        ClaudeCodeParser(roots.claude, pricing_mode=pricing_mode, include_transcripts=include_transcripts)
    )
    registry.register(CodexParser(roots.codex))
    registry.register(GeminiParser(roots.gemini))
    return registry
