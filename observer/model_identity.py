"""Model name normalization shared by pricing and the session parsers."""
from __future__ import annotations

import re

from observer.models import SourceType

_DATE_SUFFIX_PATTERN = re.compile(r"(?:-\d{8}|-\d{4}-\d{2}-\d{2})+$")

# Vendor namespaces that tools sometimes prepend to model identifiers.
_PROVIDER_PREFIXES: dict[SourceType, tuple[str, ...]] = {
    SourceType.CLAUDE: ("anthropic/",),
    SourceType.CODEX: ("openai/",),
    SourceType.GEMINI: ("google/", "models/"),
}


def normalize_model_name(source: SourceType, raw_model: str | None) -> str:
    """Strip whitespace and known provider prefixes before a rate-table lookup.

    Example:
      anthropic/claude-sonnet-4-5 -> claude-sonnet-4-5
    """
    trimmed = (raw_model or "").strip()
    changed = True
    while changed:
        changed = False
        for prefix in _PROVIDER_PREFIXES.get(source, ()):
            if trimmed.lower().startswith(prefix):
                trimmed = trimmed[len(prefix):]
                changed = True
    return trimmed


def canonical_model_name(raw_model: str | None) -> str:
    """Return a canonical model identifier with build/date suffixes removed.

    Example:
      claude-opus-4-5-20251101 -> claude-opus-4-5
    """
    raw = (raw_model or "").strip().lower()
    if not raw:
        return ""
    normalized = re.sub(r"[\s_]+", "-", raw)
    normalized = re.sub(r"-{2,}", "-", normalized).strip("-")
    stripped = _DATE_SUFFIX_PATTERN.sub("", normalized).strip("-")
    return stripped or normalized
