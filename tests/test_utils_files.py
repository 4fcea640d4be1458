"""Tests for filesystem helpers."""

from __future__ import annotations

import os
from pathlib import Path

import pytest

from fileinsights.extraction.extractor import ExtractedContent
from fileinsights.models import RemoteShare, SourceType
from fileinsights.utils.files import (
    EntryKind,
    build_basic_record,
    build_content_record,
    folder_prefix,
    list_entries,
    normalize_path,
)


class TestPaths:
    def test_normalize_path_makes_absolute(self, tmp_path: Path, monkeypatch) -> None:
        monkeypatch.chdir(tmp_path)
        assert normalize_path("sub/../file.txt") == str(tmp_path / "file.txt")

    def test_folder_prefix_appends_separator(self, tmp_path: Path) -> None:
        assert folder_prefix(tmp_path) == str(tmp_path) + os.sep

    def test_folder_prefix_idempotent(self, tmp_path: Path) -> None:
        once = folder_prefix(tmp_path)
        assert folder_prefix(once) == once


class TestListEntries:
    def test_sorted_and_tagged(self, tmp_path: Path) -> None:
        (tmp_path / "b.txt").write_text("b")
        (tmp_path / "a.txt").write_text("a")
        (tmp_path / "dir").mkdir()

        entries = list(list_entries(tmp_path))

        assert [e.name for e in entries] == ["a.txt", "b.txt", "dir"]
        assert [e.kind for e in entries] == [EntryKind.FILE, EntryKind.FILE, EntryKind.DIRECTORY]

    def test_skips_symlinks(self, tmp_path: Path) -> None:
        target = tmp_path / "real.txt"
        target.write_text("x")
        try:
            (tmp_path / "link.txt").symlink_to(target)
        except (OSError, NotImplementedError):
            pytest.skip("symlinks not supported")

        names = [e.name for e in list_entries(tmp_path)]

        assert names == ["real.txt"]

    def test_missing_directory_raises(self, tmp_path: Path) -> None:
        with pytest.raises(OSError):
            list(list_entries(tmp_path / "missing"))


class TestBuilders:
    def test_build_basic_record(self, tmp_path: Path) -> None:
        path = tmp_path / "doc.txt"
        path.write_text("12345")

        record = build_basic_record(path, SourceType.LOCAL)

        assert record.path == str(path)
        assert record.name == "doc.txt"
        assert record.size == 5
        assert record.mtime.timestamp() == pytest.approx(path.stat().st_mtime)
        assert record.remote_host is None

    def test_build_basic_record_with_share(self, tmp_path: Path) -> None:
        path = tmp_path / "doc.txt"
        path.write_text("x")
        share = RemoteShare(host="filer", share_path="/exports", username="u", password="p")

        record = build_basic_record(path, SourceType.NFS, share=share)

        assert record.source_type is SourceType.NFS
        assert record.remote_host == "filer"
        assert record.remote_share == "/exports"
        assert "p" not in record.to_dict().values()

    def test_build_basic_record_key_override(self, tmp_path: Path) -> None:
        path = tmp_path / "spooled.bin"
        path.write_bytes(b"abc")

        record = build_basic_record(path, name="report.pdf", key="/uploads/report.pdf")

        assert record.path == "/uploads/report.pdf"
        assert record.name == "report.pdf"

    def test_build_content_record(self) -> None:
        extracted = ExtractedContent(text="hi", properties={"Content-Type": "text/plain"})

        record = build_content_record("/data/a.txt", "a.txt", extracted, SourceType.SMB)

        assert record.extracted_text == "hi"
        assert record.properties == {"Content-Type": "text/plain"}
        assert record.properties is not extracted.properties
        assert record.source_type is SourceType.SMB
