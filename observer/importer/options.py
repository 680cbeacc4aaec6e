"""Import run configuration and argument validation."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from observer.date_utils import end_of_day, parse_date, start_of_day
from observer.errors import ConfigurationError
from observer.models import SourceType, all_sources, parse_source_type
from observer.pricing import PricingMode, parse_pricing_mode


@dataclass(frozen=True)
class ImportOptions:
    dry_run: bool = False
    force: bool = False
    from_date: Optional[datetime] = None
    to_date: Optional[datetime] = None
    purge: bool = False
    skip_confirm: bool = False
    verbose: bool = False
    pricing_mode: PricingMode = PricingMode.AUTO

    def has_date_filter(self) -> bool:
        return self.from_date is not None or self.to_date is not None

    def in_range(self, first: Optional[datetime], last: Optional[datetime]) -> bool:
        """Whole-file date filter: keep a file whose time span touches `[from, to]`."""
        if not self.has_date_filter():
            return True
        if first is None and last is None:
            return False
        first = first or last
        last = last or first
        if self.from_date is not None and last < self.from_date:
            return False
        if self.to_date is not None and first > self.to_date:
            return False
        return True

    def contains(self, ts: datetime) -> bool:
        """Per-record filter: `ts` lies inside `[from, to]`, both ends inclusive."""
        if self.from_date is not None and ts < self.from_date:
            return False
        if self.to_date is not None and ts > self.to_date:
            return False
        return True


def parse_source_selector(text: str) -> list[SourceType]:
    """Resolve `claude-code`, `codex`, `gemini` or `all` (any casing)."""
    token = (text or "").strip().lower()
    if token == "all":
        return all_sources()
    source = parse_source_type(token)
    if source is None:
        raise ConfigurationError(f"invalid source: {text!r} (valid: claude-code, codex, gemini, all)")
    return [source]


def parse_date_arg(value: Optional[str]) -> Optional[datetime]:
    """`YYYY-MM-DD` to the start of that UTC day."""
    if not value:
        return None
    try:
        return start_of_day(parse_date(value))
    except ValueError as exc:
        raise ConfigurationError(f"invalid --from date: {exc}") from exc


def parse_to_date_arg(value: Optional[str]) -> Optional[datetime]:
    """`YYYY-MM-DD` to the last instant of that UTC day, so the bound is inclusive."""
    if not value:
        return None
    try:
        return end_of_day(parse_date(value))
    except ValueError as exc:
        raise ConfigurationError(f"invalid --to date: {exc}") from exc


def build_import_options(
    *,
    from_arg: Optional[str] = None,
    to_arg: Optional[str] = None,
    dry_run: bool = False,
    force: bool = False,
    purge: bool = False,
    skip_confirm: bool = False,
    verbose: bool = False,
    pricing_mode: Optional[str] = None,
) -> ImportOptions:
    from_date = parse_date_arg(from_arg)
    to_date = parse_to_date_arg(to_arg)
    if from_date is not None and to_date is not None and from_date > to_date:
        raise ConfigurationError("--from date must be before --to date")
    return ImportOptions(
        dry_run=dry_run,
        force=force,
        from_date=from_date,
        to_date=to_date,
        purge=purge,
        skip_confirm=skip_confirm,
        verbose=verbose,
        pricing_mode=parse_pricing_mode(pricing_mode),
    )
