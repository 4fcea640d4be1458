"""Filesystem helpers: path normalization, directory listing and record builders."""

from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Iterator

from fileinsights.extraction.extractor import ExtractedContent
from fileinsights.models import BasicRecord, ContentRecord, RemoteShare, SourceType


class EntryKind(str, Enum):
    FILE = "file"
    DIRECTORY = "directory"


@dataclass(slots=True, frozen=True)
class FsEntry:
    """One directory entry, tagged as a file or a directory."""

    path: Path
    name: str
    kind: EntryKind


def normalize_path(path: str | os.PathLike[str]) -> str:
    """Return the absolute, normalized form of ``path``.

    Symlinks are not resolved so that stored keys match what the user walked.
    """
    return os.path.normpath(os.path.abspath(os.fspath(path)))


def folder_prefix(path: str | os.PathLike[str]) -> str:
    """Normalized folder path ending in a separator, for prefix queries."""
    normalized = normalize_path(path)
    if normalized.endswith(os.sep):
        return normalized
    return normalized + os.sep


def list_entries(directory: Path) -> Iterator[FsEntry]:
    """Yield the direct children of ``directory`` sorted by name.

    Symlinks and special files are skipped, as are entries removed while
    the listing is in progress.
    """
    with os.scandir(directory) as it:
        children = sorted(it, key=lambda entry: entry.name)
    for child in children:
        try:
            if child.is_dir(follow_symlinks=False):
                yield FsEntry(Path(child.path), child.name, EntryKind.DIRECTORY)
            elif child.is_file(follow_symlinks=False):
                yield FsEntry(Path(child.path), child.name, EntryKind.FILE)
        except FileNotFoundError:
            continue


def _utc(timestamp: float) -> datetime:
    return datetime.fromtimestamp(timestamp, tz=timezone.utc)


def build_basic_record(
    path: Path,
    source_type: SourceType = SourceType.LOCAL,
    *,
    name: str | None = None,
    key: str | None = None,
    share: RemoteShare | None = None,
) -> BasicRecord:
    """Build a BasicRecord from ``stat`` information of ``path``.

    ``key`` overrides the stored path, used for uploads spooled to a
    temporary file.
    """
    stat = path.stat()
    return BasicRecord(
        path=key or normalize_path(path),
        name=name or path.name,
        size=stat.st_size,
        ctime=_utc(stat.st_ctime),
        mtime=_utc(stat.st_mtime),
        atime=_utc(stat.st_atime),
        source_type=source_type,
        remote_host=share.host if share else None,
        remote_share=share.share_path if share else None,
    )


def build_content_record(
    path: str,
    name: str,
    extracted: ExtractedContent,
    source_type: SourceType | None = None,
) -> ContentRecord:
    return ContentRecord(
        path=path,
        file_name=name,
        extracted_text=extracted.text,
        properties=dict(extracted.properties),
        source_type=source_type,
    )
