"""Shared fixtures for FileInsights tests."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Dict

import pytest

from fileinsights.errors import ExtractionError
from fileinsights.extraction.extractor import CONTENT_TYPE, ExtractedContent
from fileinsights.index.basic_store import SQLiteBasicStore
from fileinsights.index.content_store import SQLiteContentStore
from fileinsights.models import BasicRecord, SourceType


class StubExtractor:
    """Extractor double: plain-text content, failing for names in ``broken``."""

    def __init__(self, broken: set[str] | None = None) -> None:
        self.broken = broken or set()
        self.calls: list[str] = []

    def extract(self, data: bytes, file_name: str | None = None) -> ExtractedContent:
        self.calls.append(file_name or "")
        if file_name in self.broken:
            raise ExtractionError(f"Unparseable content in {file_name}")
        return ExtractedContent(
            text=data.decode("utf-8", errors="replace"),
            properties={CONTENT_TYPE: "text/plain", "resourceName": file_name or ""},
        )


@pytest.fixture
def basic_store(tmp_path: Path):
    store = SQLiteBasicStore(tmp_path / "basic.db")
    yield store
    store.close()


@pytest.fixture
def content_store(tmp_path: Path):
    store = SQLiteContentStore(tmp_path / "content.db")
    yield store
    store.close()


@pytest.fixture
def stub_extractor() -> StubExtractor:
    return StubExtractor()


@pytest.fixture
def sample_tree(tmp_path: Path) -> Path:
    """A folder with files at depth 0, 1 and 2.

    tree/
    ├── a.txt
    ├── b.txt
    └── sub/
        ├── c.txt
        └── deeper/
            └── d.txt
    """
    root = tmp_path / "tree"
    deeper = root / "sub" / "deeper"
    deeper.mkdir(parents=True)
    (root / "a.txt").write_text("alpha")
    (root / "b.txt").write_text("bravo")
    (root / "sub" / "c.txt").write_text("charlie")
    (deeper / "d.txt").write_text("delta")
    return root


def make_record(path: str, *, atime: datetime | None = None, size: int = 10, **kwargs) -> BasicRecord:
    moment = datetime(2024, 1, 1, tzinfo=timezone.utc)
    fields: Dict = dict(
        path=path,
        name=Path(path).name,
        size=size,
        ctime=moment,
        mtime=moment,
        atime=atime or moment,
        source_type=SourceType.LOCAL,
    )
    fields.update(kwargs)
    return BasicRecord(**fields)


def days_ago(now: datetime, days: float) -> datetime:
    return now - timedelta(days=days)
