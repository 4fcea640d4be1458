"""SQLite document store for extracted content and document properties."""

from __future__ import annotations

import json
import logging
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterator, List, Protocol

from fileinsights.errors import InvalidInputError, StoreError
from fileinsights.models import ContentRecord, SourceType

LOGGER = logging.getLogger(__name__)

DEFAULT_MAX_TERMS = 1000


class ContentStore(Protocol):
    """Operations the pipeline and analytics need from the content index."""

    def upsert(self, path: str, record: ContentRecord) -> None: ...

    def delete_by_id(self, path: str) -> bool: ...

    def delete_by_path_prefix(self, prefix: str) -> int: ...

    def query_by_path_prefix(
        self, prefix: str, type_filter: SourceType | None = None
    ) -> List[ContentRecord]: ...

    def term_aggregation(self, field: str, max_terms: int = DEFAULT_MAX_TERMS) -> Dict[str, int]: ...


def _json_path(field: str) -> str:
    escaped = field.replace("\\", "\\\\").replace('"', '\\"')
    return f'$."{escaped}"'


class SQLiteContentStore:
    """One JSON document per file, keyed by the file path."""

    def __init__(self, db_path: Path) -> None:
        self.db_path = Path(db_path)
        self._lock = threading.RLock()
        try:
            self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        except sqlite3.Error as exc:
            raise StoreError(f"Unable to open content store at {self.db_path}: {exc}") from exc
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
                CREATE TABLE IF NOT EXISTS content_documents (
                    path TEXT PRIMARY KEY,
                    file_name TEXT,
                    content TEXT NOT NULL DEFAULT '',
                    properties TEXT NOT NULL DEFAULT '{}',
                    source_type TEXT,
                    indexed_at TEXT DEFAULT CURRENT_TIMESTAMP
                )
                """
            )

    @staticmethod
    def _row_to_record(row: sqlite3.Row) -> ContentRecord:
        return ContentRecord(
            path=row["path"],
            file_name=row["file_name"] or "",
            extracted_text=row["content"],
            properties=json.loads(row["properties"]) if row["properties"] else {},
            source_type=SourceType.parse(row["source_type"]) if row["source_type"] else None,
        )

    def upsert(self, path: str, record: ContentRecord) -> None:
        """Index ``record`` under ``path``, replacing any previous document."""
        if not path or not path.strip():
            raise InvalidInputError("File path must not be null or empty for content indexing.")

        with self.transaction() as conn:
            conn.execute(
                """
                INSERT INTO content_documents(path, file_name, content, properties, source_type)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(path) DO UPDATE SET
                    file_name = excluded.file_name,
                    content = excluded.content,
                    properties = excluded.properties,
                    source_type = excluded.source_type,
                    indexed_at = CURRENT_TIMESTAMP
                """,
                (
                    path,
                    record.file_name,
                    record.extracted_text,
                    json.dumps(record.properties, ensure_ascii=True),
                    record.source_type.value if record.source_type else None,
                ),
            )
        LOGGER.debug("Indexed content for %s", path)

    def get(self, path: str) -> ContentRecord | None:
        with self._reading() as conn:
            row = conn.execute("SELECT * FROM content_documents WHERE path = ?", (path,)).fetchone()
        return self._row_to_record(row) if row else None

    def delete_by_id(self, path: str) -> bool:
        with self.transaction() as conn:
            cursor = conn.execute("DELETE FROM content_documents WHERE path = ?", (path,))
        if cursor.rowcount == 0:
            LOGGER.warning("No content document found for file path: %s", path)
            return False
        return True

    def delete_by_path_prefix(self, prefix: str) -> int:
        with self.transaction() as conn:
            cursor = conn.execute(
                "DELETE FROM content_documents WHERE substr(path, 1, ?) = ?",
                (len(prefix), prefix),
            )
        LOGGER.info("Deleted %d content documents for folder path: %s", cursor.rowcount, prefix)
        return cursor.rowcount

    def query_by_path_prefix(
        self, prefix: str, type_filter: SourceType | None = None
    ) -> List[ContentRecord]:
        sql = "SELECT * FROM content_documents WHERE substr(path, 1, ?) = ?"
        params: list = [len(prefix), prefix]
        if type_filter is not None:
            sql += " AND source_type = ?"
            params.append(SourceType.parse(type_filter).value)
        sql += " ORDER BY path"

        with self._reading() as conn:
            rows = conn.execute(sql, params).fetchall()
        LOGGER.info("Retrieved %d content records for folder path: %s", len(rows), prefix)
        return [self._row_to_record(row) for row in rows]

    def term_aggregation(self, field: str, max_terms: int = DEFAULT_MAX_TERMS) -> Dict[str, int]:
        """Count documents per distinct value of property ``field``."""
        with self._reading() as conn:
            rows = conn.execute(
                """
                SELECT json_extract(properties, ?) AS term, COUNT(*) AS doc_count
                FROM content_documents
                WHERE json_extract(properties, ?) IS NOT NULL
                GROUP BY term
                ORDER BY doc_count DESC, term ASC
                LIMIT ?
                """,
                (_json_path(field), _json_path(field), max_terms),
            ).fetchall()
        return {str(row["term"]): row["doc_count"] for row in rows}
