"""Per-file import state: fingerprints, change classification and the import gate."""
from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from observer.date_utils import parse_timestamp
from observer.db.repositories.import_state import SqliteImportStateRepository
from observer.errors import StateTrackerError
from observer.models import FileState, FileStatus, SourceType

logger = logging.getLogger("observer.import")

_CHUNK_SIZE = 1024 * 1024


def compute_file_hash(path: Path) -> str:
    """SHA-256 of the full file contents, read in chunks."""
    digest = hashlib.sha256()
    try:
        with Path(path).open("rb") as handle:
            for chunk in iter(lambda: handle.read(_CHUNK_SIZE), b""):
                digest.update(chunk)
    except OSError as exc:
        raise StateTrackerError(path, f"fingerprinting file: {exc}") from exc
    return digest.hexdigest()


def should_import_file(status: FileStatus, force: bool) -> bool:
    """New and modified files are always imported; unchanged ones only when forced."""
    if status in (FileStatus.NEW, FileStatus.MODIFIED):
        return True
    return force


@dataclass(frozen=True)
class FileCheck:
    status: FileStatus
    file_hash: str


class FileStateTracker:
    """Reads and writes the `import_state` table through its repository."""

    def __init__(self, repo: SqliteImportStateRepository):
        self.repo = repo

    async def inspect_file(self, source: SourceType, path: Path) -> FileCheck:
        """Fingerprint `path` and compare it with the stored state."""
        file_hash = compute_file_hash(path)
        stored = await self.repo.get_state(source.value, str(path))
        if stored is None:
            return FileCheck(FileStatus.NEW, file_hash)
        if stored["file_hash"] != file_hash:
            return FileCheck(FileStatus.MODIFIED, file_hash)
        return FileCheck(FileStatus.CURRENT, file_hash)

    async def check_file_status(self, source: SourceType, path: Path) -> FileStatus:
        return (await self.inspect_file(source, path)).status

    async def record_import(
        self,
        source: SourceType,
        path: Path,
        record_count: int,
        file_hash: str | None = None,
    ) -> None:
        """Upsert the state row for `path`.

        Pass the hash computed at classification time so the stored
        fingerprint matches the bytes that were actually parsed.
        """
        if file_hash is None:
            file_hash = compute_file_hash(path)
        await self.repo.upsert_state({
            "source": source.value,
            "file_path": str(path),
            "file_hash": file_hash,
            "imported_at": datetime.now(timezone.utc).isoformat(),
            "record_count": record_count,
        })

    async def get_imported_files(self, source: SourceType) -> list[FileState]:
        rows = await self.repo.list_by_source(source.value)
        states: list[FileState] = []
        for row in rows:
            imported_at = parse_timestamp(row.get("imported_at")) or datetime.fromtimestamp(0, timezone.utc)
            states.append(
                FileState(
                    source=source,
                    file_path=row["file_path"],
                    file_hash=row["file_hash"],
                    imported_at=imported_at,
                    record_count=int(row.get("record_count") or 0),
                )
            )
        return states

    async def clear_source(self, source: SourceType) -> int:
        deleted = await self.repo.delete_by_source(source.value)
        logger.info("Cleared import state for %s (%d file(s))", source.value, deleted)
        return deleted

    async def import_stats(self) -> dict[SourceType, int]:
        counts = await self.repo.count_by_source()
        return {source: counts.get(source.value, 0) for source in SourceType}
