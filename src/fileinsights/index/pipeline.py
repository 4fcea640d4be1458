"""Folder walk and dual-write pipeline."""

from __future__ import annotations

import logging
import os
import posixpath
import tempfile
import threading
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, Set

from fileinsights.errors import ExtractionError, InvalidInputError
from fileinsights.extraction.extractor import ContentExtractor, ExtractedContent
from fileinsights.index.basic_store import BasicStore
from fileinsights.index.content_store import ContentStore
from fileinsights.models import (
    STAGE_BASIC,
    STAGE_CONTENT,
    STAGE_EXTRACTION,
    STAGE_LISTING,
    BasicRecord,
    DeleteStats,
    FileFailure,
    RemoteShare,
    SourceType,
    WalkStats,
)
from fileinsights.utils.files import (
    EntryKind,
    build_basic_record,
    build_content_record,
    folder_prefix,
    list_entries,
    normalize_path,
)

LOGGER = logging.getLogger(__name__)

DEFAULT_UPLOAD_PREFIX = "/uploads"


def _call_with_timeout(func: Callable[..., Any], timeout: float, *args: Any) -> Any:
    """Run ``func`` on a daemon thread and give up after ``timeout`` seconds.

    A parser stuck on a malformed file keeps its thread, but the caller
    moves on.
    """
    outcome: Dict[str, Any] = {}

    def target() -> None:
        try:
            outcome["value"] = func(*args)
        except Exception as exc:
            outcome["error"] = exc

    worker = threading.Thread(target=target, name="content-extraction", daemon=True)
    worker.start()
    worker.join(timeout)
    if worker.is_alive():
        raise ExtractionError(f"Extraction timed out after {timeout:g}s")
    if "error" in outcome:
        raise outcome["error"]
    return outcome["value"]


def validate_folder(folder: str | os.PathLike[str] | None) -> Path:
    """Return the normalized folder path or raise InvalidInputError."""
    if folder is None or not str(folder).strip():
        raise InvalidInputError("Folder path must not be empty")
    path = Path(normalize_path(folder))
    if not path.exists():
        raise InvalidInputError(f"Folder does not exist: {path}")
    if not path.is_dir():
        raise InvalidInputError(f"Provided path is not a directory: {path}")
    return path


class Walker:
    """Walks directory trees and writes basic and content metadata per file."""

    def __init__(
        self,
        basic_store: BasicStore,
        content_store: ContentStore,
        extractor: ContentExtractor,
        *,
        extraction_timeout: float | None = None,
        workers: int = 1,
        upload_prefix: str = DEFAULT_UPLOAD_PREFIX,
    ) -> None:
        self.basic_store = basic_store
        self.content_store = content_store
        self.extractor = extractor
        self.extraction_timeout = extraction_timeout
        self.workers = max(1, workers)
        self.upload_prefix = upload_prefix

    def walk(
        self,
        root: str | os.PathLike[str],
        source_type: SourceType | str = SourceType.LOCAL,
        *,
        share: RemoteShare | None = None,
        cancel: threading.Event | None = None,
    ) -> WalkStats:
        """Process every regular file under ``root``.

        Per-file failures are logged and collected in the returned stats;
        only an invalid root raises.
        """
        source_type = SourceType.parse(source_type)
        if share is not None and source_type is SourceType.LOCAL:
            raise InvalidInputError("Remote share details require an NFS or SMB source type")
        root_path = validate_folder(root)

        LOGGER.info("Walking %s (%s)", root_path, source_type.value)
        stats = WalkStats()
        files = self._iter_files(root_path, stats, cancel)

        if self.workers == 1:
            for path in files:
                stats.record(self.process_file(path, source_type, share))
        else:
            self._process_parallel(files, source_type, share, stats)

        stats.cancelled = cancel is not None and cancel.is_set()
        LOGGER.info(
            "Walk of %s finished: processed %d, failed %d, basic only %d%s",
            root_path,
            stats.processed,
            stats.failed,
            stats.basic_only,
            " (cancelled)" if stats.cancelled else "",
        )
        return stats

    def _iter_files(
        self, root: Path, stats: WalkStats, cancel: threading.Event | None
    ) -> Iterator[Path]:
        stack = [root]
        while stack:
            if cancel is not None and cancel.is_set():
                return
            directory = stack.pop()
            try:
                entries = list(list_entries(directory))
            except OSError as exc:
                LOGGER.warning("Unable to list %s: %s", directory, exc)
                stats.failures.append(FileFailure(str(directory), STAGE_LISTING, str(exc)))
                continue

            subdirectories = []
            for entry in entries:
                if cancel is not None and cancel.is_set():
                    return
                if entry.kind is EntryKind.FILE:
                    yield entry.path
                else:
                    subdirectories.append(entry.path)
            # Reversed so the stack pops subdirectories in sorted order.
            stack.extend(reversed(subdirectories))

    def _process_parallel(
        self,
        files: Iterator[Path],
        source_type: SourceType,
        share: RemoteShare | None,
        stats: WalkStats,
    ) -> None:
        pending: Set[Future] = set()
        with ThreadPoolExecutor(max_workers=self.workers, thread_name_prefix="walker") as pool:
            for path in files:
                pending.add(pool.submit(self.process_file, path, source_type, share))
                if len(pending) >= self.workers * 2:
                    done, pending = wait(pending, return_when=FIRST_COMPLETED)
                    for future in done:
                        stats.record(future.result())
            for future in pending:
                stats.record(future.result())

    def process_file(
        self,
        path: Path,
        source_type: SourceType | str = SourceType.LOCAL,
        share: RemoteShare | None = None,
    ) -> FileFailure | None:
        """Write both records for one file.

        Returns ``None`` on full success, otherwise the failure of the step
        that stopped. A failed content step leaves the basic record in place.
        """
        source_type = SourceType.parse(source_type)
        path = Path(path)

        try:
            record = build_basic_record(path, source_type, share=share)
            self.basic_store.upsert(record)
        except Exception as exc:
            LOGGER.error("Failed to store basic metadata for %s: %s", path, exc)
            return FileFailure(str(path), STAGE_BASIC, str(exc))

        try:
            extracted = self._extract(path.read_bytes(), path.name)
        except Exception as exc:
            LOGGER.error("Failed to extract content from %s: %s", path, exc)
            return FileFailure(record.path, STAGE_EXTRACTION, str(exc))

        try:
            document = build_content_record(record.path, record.name, extracted, source_type)
            self.content_store.upsert(record.path, document)
        except Exception as exc:
            LOGGER.error("Failed to index content for %s: %s", path, exc)
            return FileFailure(record.path, STAGE_CONTENT, str(exc))

        LOGGER.debug("Processed %s", record.path)
        return None

    def _extract(self, data: bytes, file_name: str) -> ExtractedContent:
        if self.extraction_timeout:
            return _call_with_timeout(self.extractor.extract, self.extraction_timeout, data, file_name)
        return self.extractor.extract(data, file_name)

    def process_upload(
        self,
        data: bytes,
        file_name: str,
        source_type: SourceType | str = SourceType.LOCAL,
    ) -> BasicRecord:
        """Process a single uploaded file; errors propagate to the caller."""
        name = os.path.basename((file_name or "").replace("\\", "/")).strip()
        if not name or name in {".", ".."}:
            raise InvalidInputError(f"Invalid upload file name: {file_name!r}")
        source_type = SourceType.parse(source_type)
        key = posixpath.join(self.upload_prefix, name)

        with tempfile.TemporaryDirectory(prefix="upload-") as tmp_dir:
            spooled = Path(tmp_dir) / name
            spooled.write_bytes(data)
            record = build_basic_record(spooled, source_type, name=name, key=key)

        self.basic_store.upsert(record)
        extracted = self._extract(data, name)
        self.content_store.upsert(key, build_content_record(key, name, extracted, source_type))
        LOGGER.info("Processed upload %s", key)
        return record

    def delete_folder(
        self, folder: str | os.PathLike[str], *, cancel: threading.Event | None = None
    ) -> DeleteStats:
        """Remove both records for every stored file under ``folder``.

        Works from stored records, so the folder need not exist any more.
        """
        if folder is None or not str(folder).strip():
            raise InvalidInputError("Folder path must not be empty")
        prefix = folder_prefix(folder)
        stats = DeleteStats()

        for record in self.basic_store.find_by_path_prefix(prefix):
            if cancel is not None and cancel.is_set():
                break
            failed = False
            try:
                self.basic_store.delete_by_path(record.path)
            except Exception as exc:
                LOGGER.error("Failed to delete basic metadata for %s: %s", record.path, exc)
                stats.failures.append(FileFailure(record.path, STAGE_BASIC, str(exc)))
                failed = True
            try:
                self.content_store.delete_by_id(record.path)
            except Exception as exc:
                LOGGER.error("Failed to delete content for %s: %s", record.path, exc)
                stats.failures.append(FileFailure(record.path, STAGE_CONTENT, str(exc)))
                failed = True
            if failed:
                stats.failed += 1
            else:
                stats.deleted += 1

        if cancel is None or not cancel.is_set():
            # Content documents whose basic record never made it.
            stats.content_swept = self.content_store.delete_by_path_prefix(prefix)

        LOGGER.info(
            "Deleted metadata under %s: %d files, %d failed, %d extra content documents",
            prefix,
            stats.deleted,
            stats.failed,
            stats.content_swept,
        )
        return stats

    def reset_folder(self, folder: str | os.PathLike[str]) -> Dict[str, int]:
        """Prefix delete on both stores; a store failure propagates."""
        if folder is None or not str(folder).strip():
            raise InvalidInputError("Folder path must not be empty")
        prefix = folder_prefix(folder)
        LOGGER.info("Resetting basic metadata for folder: %s", prefix)
        basic = self.basic_store.delete_by_path_prefix(prefix)
        LOGGER.info("Resetting content metadata for folder: %s", prefix)
        content = self.content_store.delete_by_path_prefix(prefix)
        return {"basic": basic, "content": content}
