"""SQLite store for basic (filesystem) metadata."""

from __future__ import annotations

import logging
import sqlite3
import threading
import time
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Iterator, List, Protocol

from fileinsights.errors import StoreError
from fileinsights.models import BasicRecord, Page, SourceType

LOGGER = logging.getLogger(__name__)

LAST_30_DAYS = "Last 30 Days"
LAST_YEAR = "Last Year"
OLDER = "Older"
AGE_BUCKETS = (LAST_30_DAYS, LAST_YEAR, OLDER)

SECONDS_PER_DAY = 86400


class BasicStore(Protocol):
    """Operations the pipeline and analytics need from the basic metadata store."""

    def upsert(self, record: BasicRecord) -> BasicRecord: ...

    def find_by_path(self, path: str) -> BasicRecord | None: ...

    def find_by_path_prefix(self, prefix: str) -> List[BasicRecord]: ...

    def delete_by_path(self, path: str) -> bool: ...

    def delete_by_path_prefix(self, prefix: str) -> int: ...

    def count_grouped_by_age_bucket(self, now: float | None = None) -> Dict[str, int]: ...

    def find_by_type_paginated(
        self,
        source_type: SourceType,
        path_prefix: str | None = None,
        page: int = 0,
        size: int = 20,
    ) -> Page[BasicRecord]: ...


def _to_timestamp(value: datetime) -> float:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.timestamp()


def _from_timestamp(value: float) -> datetime:
    return datetime.fromtimestamp(value, tz=timezone.utc)


class SQLiteBasicStore:
    """Persistence layer for :class:`BasicRecord` rows keyed by ``(path, name)``."""

    def __init__(self, db_path: Path) -> None:
        self.db_path = Path(db_path)
        # Walks may write from a worker pool; all access goes through one lock.
        self._lock = threading.RLock()
        try:
            self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        except sqlite3.Error as exc:
            raise StoreError(f"Unable to open basic store at {self.db_path}: {exc}") from exc
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode=WAL;")
        self._conn.execute("PRAGMA synchronous=NORMAL;")
        self._ensure_schema()

    @property
    def connection(self) -> sqlite3.Connection:
        return self._conn

    def close(self) -> None:
        self._conn.close()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        with self._lock:
            try:
                yield self._conn
                self._conn.commit()
            except sqlite3.Error as exc:
                self._conn.rollback()
                raise StoreError(str(exc)) from exc
            except Exception:
                self._conn.rollback()
                raise

    @contextmanager
    def _reading(self) -> Iterator[sqlite3.Connection]:
        with self._lock:
            try:
                yield self._conn
            except sqlite3.Error as exc:
                raise StoreError(str(exc)) from exc

    def _ensure_schema(self) -> None:
        with self.transaction() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS file_metadata (
                    id INTEGER PRIMARY KEY,
                    path TEXT NOT NULL,
                    name TEXT NOT NULL,
                    size INTEGER NOT NULL CHECK (size >= 0),
                    ctime REAL NOT NULL,
                    mtime REAL NOT NULL,
                    atime REAL NOT NULL,
                    type TEXT NOT NULL,
                    remote_host TEXT,
                    remote_share TEXT,
                    updated_at TEXT DEFAULT CURRENT_TIMESTAMP,
                    UNIQUE(path, name)
                )
                """
            )
            conn.execute("CREATE INDEX IF NOT EXISTS idx_file_metadata_path ON file_metadata(path)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_file_metadata_type ON file_metadata(type)")

    @staticmethod
    def _row_to_record(row: sqlite3.Row) -> BasicRecord:
        return BasicRecord(
            id=row["id"],
            path=row["path"],
            name=row["name"],
            size=row["size"],
            ctime=_from_timestamp(row["ctime"]),
            mtime=_from_timestamp(row["mtime"]),
            atime=_from_timestamp(row["atime"]),
            source_type=SourceType.parse(row["type"]),
            remote_host=row["remote_host"],
            remote_share=row["remote_share"],
        )

    def upsert(self, record: BasicRecord) -> BasicRecord:
        """Insert the record or overwrite the row sharing its ``(path, name)``."""
        with self.transaction() as conn:
            conn.execute(
                """
                INSERT INTO file_metadata(path, name, size, ctime, mtime, atime, type, remote_host, remote_share)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(path, name) DO UPDATE SET
                    size = excluded.size,
                    ctime = excluded.ctime,
                    mtime = excluded.mtime,
                    atime = excluded.atime,
                    type = excluded.type,
                    remote_host = excluded.remote_host,
                    remote_share = excluded.remote_share,
                    updated_at = CURRENT_TIMESTAMP
                """,
                (
                    record.path,
                    record.name,
                    record.size,
                    _to_timestamp(record.ctime),
                    _to_timestamp(record.mtime),
                    _to_timestamp(record.atime),
                    record.source_type.value,
                    record.remote_host,
                    record.remote_share,
                ),
            )
            row = conn.execute(
                "SELECT id FROM file_metadata WHERE path = ? AND name = ?",
                (record.path, record.name),
            ).fetchone()
        record.id = row["id"]
        return record

    def find_by_id(self, record_id: int) -> BasicRecord | None:
        with self._reading() as conn:
            row = conn.execute("SELECT * FROM file_metadata WHERE id = ?", (record_id,)).fetchone()
        return self._row_to_record(row) if row else None

    def find_by_path(self, path: str) -> BasicRecord | None:
        with self._reading() as conn:
            row = conn.execute(
                "SELECT * FROM file_metadata WHERE path = ? ORDER BY id LIMIT 1", (path,)
            ).fetchone()
        return self._row_to_record(row) if row else None

    def find_by_path_prefix(self, prefix: str) -> List[BasicRecord]:
        with self._reading() as conn:
            rows = conn.execute(
                "SELECT * FROM file_metadata WHERE substr(path, 1, ?) = ? ORDER BY path",
                (len(prefix), prefix),
            ).fetchall()
        return [self._row_to_record(row) for row in rows]

    def list_all(self, page: int = 0, size: int = 20) -> Page[BasicRecord]:
        with self._reading() as conn:
            total = conn.execute("SELECT COUNT(*) FROM file_metadata").fetchone()[0]
            rows = conn.execute(
                "SELECT * FROM file_metadata ORDER BY id LIMIT ? OFFSET ?",
                (size, page * size),
            ).fetchall()
        return Page(items=[self._row_to_record(row) for row in rows], page=page, size=size, total=total)

    def delete_by_path(self, path: str) -> bool:
        with self.transaction() as conn:
            cursor = conn.execute("DELETE FROM file_metadata WHERE path = ?", (path,))
        return cursor.rowcount > 0

    def delete_by_path_prefix(self, prefix: str) -> int:
        with self.transaction() as conn:
            cursor = conn.execute(
                "DELETE FROM file_metadata WHERE substr(path, 1, ?) = ?",
                (len(prefix), prefix),
            )
        LOGGER.info("Deleted %d basic records under %s", cursor.rowcount, prefix)
        return cursor.rowcount

    def count_grouped_by_age_bucket(self, now: float | None = None) -> Dict[str, int]:
        """Count records by whole days elapsed since their access time.

        Buckets are computed at query time against ``now`` (epoch seconds).
        """
        reference = time.time() if now is None else now
        with self._reading() as conn:
            rows = conn.execute(
                """
                SELECT
                    CASE
                        WHEN CAST((? - atime) / ? AS INTEGER) <= 30 THEN ?
                        WHEN CAST((? - atime) / ? AS INTEGER) <= 365 THEN ?
                        ELSE ?
                    END AS age_group,
                    COUNT(*) AS total
                FROM file_metadata
                GROUP BY age_group
                """,
                (
                    reference,
                    SECONDS_PER_DAY,
                    LAST_30_DAYS,
                    reference,
                    SECONDS_PER_DAY,
                    LAST_YEAR,
                    OLDER,
                ),
            ).fetchall()
        counts = {bucket: 0 for bucket in AGE_BUCKETS}
        for row in rows:
            counts[row["age_group"]] = row["total"]
        return counts

    def find_by_type_paginated(
        self,
        source_type: SourceType,
        path_prefix: str | None = None,
        page: int = 0,
        size: int = 20,
    ) -> Page[BasicRecord]:
        source_type = SourceType.parse(source_type)
        where = "type = ?"
        params: list = [source_type.value]
        if path_prefix:
            where += " AND substr(path, 1, ?) = ?"
            params.extend([len(path_prefix), path_prefix])

        with self._reading() as conn:
            total = conn.execute(f"SELECT COUNT(*) FROM file_metadata WHERE {where}", params).fetchone()[0]
            rows = conn.execute(
                f"SELECT * FROM file_metadata WHERE {where} ORDER BY path LIMIT ? OFFSET ?",
                [*params, size, page * size],
            ).fetchall()
        return Page(items=[self._row_to_record(row) for row in rows], page=page, size=size, total=total)
