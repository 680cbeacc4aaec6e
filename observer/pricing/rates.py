"""Per-tool model rate tables loaded from YAML."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from observer import config
from observer.model_identity import canonical_model_name, normalize_model_name
from observer.models import SourceType

logger = logging.getLogger("observer.pricing")

_DATA_DIR = Path(__file__).resolve().parent / "data"
_TABLE_FILES = {
    SourceType.CLAUDE: "claude.yaml",
    SourceType.CODEX: "codex.yaml",
    SourceType.GEMINI: "gemini.yaml",
}

# Rate tables quote USD per million tokens.
_MTOK = 1e-6


@dataclass(frozen=True)
class ModelPricing:
    input_cost_per_token: float = 0.0
    output_cost_per_token: float = 0.0
    cache_read_cost_per_token: float = 0.0
    cache_write_cost_per_token: float = 0.0
    deprecated: bool = False


@dataclass
class RateTable:
    provider: str
    last_updated: str = ""
    models: dict[str, ModelPricing] = field(default_factory=dict)
    aliases: dict[str, str] = field(default_factory=dict)

    def lookup(self, model: str) -> ModelPricing | None:
        if model in self.models:
            return self.models[model]
        canonical = self.aliases.get(model)
        if canonical is not None:
            return self.models.get(canonical)
        return None

    def list_models(self) -> list[str]:
        return sorted(self.models)


def _as_float(entry: dict[str, Any], key: str) -> float:
    raw = entry.get(key) or 0.0
    try:
        return float(raw)
    except (TypeError, ValueError):
        return 0.0


def parse_rate_table(payload: Any, origin: str = "<memory>") -> RateTable:
    if not isinstance(payload, dict):
        raise ValueError(f"{origin}: rate table must be a mapping")
    models = payload.get("models") or {}
    if not isinstance(models, dict):
        raise ValueError(f"{origin}: 'models' must be a mapping")

    table = RateTable(
        provider=str(payload.get("provider") or ""),
        last_updated=str(payload.get("last_updated") or ""),
    )
    for model_name, entry in models.items():
        entry = entry or {}
        name = str(model_name).strip()
        table.models[name] = ModelPricing(
            input_cost_per_token=_as_float(entry, "input_cost_per_mtok") * _MTOK,
            output_cost_per_token=_as_float(entry, "output_cost_per_mtok") * _MTOK,
            cache_read_cost_per_token=_as_float(entry, "cache_read_cost_per_mtok") * _MTOK,
            cache_write_cost_per_token=_as_float(entry, "cache_write_cost_per_mtok") * _MTOK,
            deprecated=bool(entry.get("deprecated", False)),
        )
        for alias in entry.get("aliases") or []:
            table.aliases[str(alias).strip()] = name
    return table


def load_rate_table(path: Path) -> RateTable:
    with path.open("r", encoding="utf-8") as handle:
        payload = yaml.safe_load(handle)
    return parse_rate_table(payload, origin=str(path))


_tables: dict[SourceType, RateTable | None] = {}


def _table_path(source: SourceType) -> Path:
    filename = _TABLE_FILES[source]
    if config.PRICING_DIR:
        override = Path(config.PRICING_DIR).expanduser() / filename
        if override.is_file():
            return override
    return _DATA_DIR / filename


def get_rate_table(source: SourceType) -> RateTable | None:
    """Return the cached rate table for a tool, loading it on first use."""
    if source not in _tables:
        path = _table_path(source)
        try:
            _tables[source] = load_rate_table(path)
        except (OSError, ValueError, yaml.YAMLError) as exc:
            logger.warning("Failed to load %s pricing from %s: %s", source.value, path, exc)
            _tables[source] = None
    return _tables[source]


def reset_rate_tables() -> None:
    _tables.clear()


def get_model_pricing(source: SourceType, model: str | None) -> ModelPricing | None:
    """Resolve pricing for a raw model name: exact, alias, then without a date suffix."""
    table = get_rate_table(source)
    if table is None:
        return None
    normalized = normalize_model_name(source, model)
    if not normalized:
        return None
    pricing = table.lookup(normalized)
    if pricing is not None:
        return pricing
    canonical = canonical_model_name(normalized)
    if canonical and canonical != normalized:
        return table.lookup(canonical)
    return None
