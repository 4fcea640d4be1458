"""Application configuration defaults."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from fileinsights.index.content_store import DEFAULT_MAX_TERMS
from fileinsights.index.pipeline import DEFAULT_UPLOAD_PREFIX

DB_ENV_VAR = "FILEINSIGHTS_DB"
CONTENT_DB_ENV_VAR = "FILEINSIGHTS_CONTENT_DB"


def _get_default_data_dir() -> Path:
    """Local data/ when running from a checkout, otherwise the user's Documents."""
    local_dir = Path("data")
    if local_dir.is_dir():
        return local_dir
    return Path.home() / "Documents" / "FileInsights"


def _env_path(name: str) -> Path | None:
    value = os.environ.get(name, "").strip()
    return Path(value) if value else None


@dataclass(slots=True)
class AppConfig:
    db_path: Path | None = None
    content_db_path: Path | None = None
    extraction_timeout: float | None = 60.0
    workers: int = 1
    max_terms: int = DEFAULT_MAX_TERMS
    max_text_chars: int | None = 5_000_000
    upload_prefix: str = DEFAULT_UPLOAD_PREFIX

    def __post_init__(self) -> None:
        if self.db_path is None:
            self.db_path = _env_path(DB_ENV_VAR) or _get_default_data_dir() / "file_metadata.db"
        if self.content_db_path is None:
            self.content_db_path = (
                _env_path(CONTENT_DB_ENV_VAR) or Path(self.db_path).with_name("content_metadata.db")
            )

    @staticmethod
    def _resolve(path: Path, base_dir: Path | None) -> Path:
        if Path(path).is_absolute() or base_dir is None:
            return Path(path)
        return base_dir / path

    def resolve_db_path(self, base_dir: Path | None = None) -> Path:
        return self._resolve(self.db_path, base_dir)

    def resolve_content_db_path(self, base_dir: Path | None = None) -> Path:
        return self._resolve(self.content_db_path, base_dir)
