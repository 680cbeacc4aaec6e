"""AI Observer importer configuration."""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default

# Project root (one level up from observer/)
PROJECT_ROOT = Path(__file__).resolve().parent.parent

# Database
DATABASE_PATH = os.getenv("AI_OBSERVER_DATABASE_PATH", str(Path("data") / "ai-observer.sqlite3"))

# Pricing tables
PRICING_DIR = os.getenv("AI_OBSERVER_PRICING_DIR", "")

# Import behaviour
IMPORT_TRANSCRIPTS = _env_bool("AI_OBSERVER_IMPORT_TRANSCRIPTS", False)
JSONL_MAX_LINE_BYTES = _env_int("AI_OBSERVER_JSONL_MAX_LINE_BYTES", 16 * 1024 * 1024)

# Logging
LOG_LEVEL = os.getenv("AI_OBSERVER_LOG_LEVEL", "INFO")

# Self-instrumentation
OTEL_ENABLED = _env_bool("AI_OBSERVER_OTEL_ENABLED", False)
OTEL_ENDPOINT = os.getenv("AI_OBSERVER_OTEL_ENDPOINT", "http://localhost:4318")
OTEL_SERVICE_NAME = os.getenv("AI_OBSERVER_OTEL_SERVICE_NAME", "ai-observer-importer")


@dataclass(frozen=True)
class SourceRoots:
    """Discovery roots for each supported tool."""

    claude: tuple[Path, ...] = field(default_factory=tuple)
    codex: tuple[Path, ...] = field(default_factory=tuple)
    gemini: tuple[Path, ...] = field(default_factory=tuple)


def _split_paths(raw: str) -> tuple[Path, ...]:
    return tuple(Path(part.strip()).expanduser() for part in raw.split(",") if part.strip())


def resolve_source_roots(env: Mapping[str, str] | None = None, home: Path | None = None) -> SourceRoots:
    """Resolve per-tool session roots: explicit override first, then tool home, then defaults."""
    env = os.environ if env is None else env
    if home is None:
        try:
            home = Path.home()
        except RuntimeError:
            home = None

    claude: tuple[Path, ...] = _split_paths(env.get("AI_OBSERVER_CLAUDE_PATH", ""))
    if not claude and home is not None:
        # XDG location first, legacy location second
        claude = (home / ".config" / "claude" / "projects", home / ".claude" / "projects")

    codex = _split_paths(env.get("AI_OBSERVER_CODEX_PATH", ""))
    if not codex:
        codex_home = env.get("CODEX_HOME", "").strip()
        if codex_home:
            codex = (Path(codex_home).expanduser() / "sessions",)
        elif home is not None:
            codex = (home / ".codex" / "sessions",)

    gemini = _split_paths(env.get("AI_OBSERVER_GEMINI_PATH", ""))
    if not gemini:
        gemini_home = env.get("GEMINI_HOME", "").strip()
        if gemini_home:
            gemini = (Path(gemini_home).expanduser() / "tmp",)
        elif home is not None:
            gemini = (home / ".gemini" / "tmp",)

    return SourceRoots(claude=claude, codex=codex, gemini=gemini)
