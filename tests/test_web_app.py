"""Tests for the FastAPI web application."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from fileinsights.config import AppConfig
from fileinsights.errors import StoreError
from fileinsights.web.app import _ensure_db_parent, app, get_config


@pytest.fixture
def config(tmp_path: Path) -> AppConfig:
    return AppConfig(
        db_path=tmp_path / "db" / "basic.db",
        content_db_path=tmp_path / "db" / "content.db",
        extraction_timeout=10,
    )


@pytest.fixture
def client(config: AppConfig):
    app.dependency_overrides[get_config] = lambda: config
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def processed_tree(client: TestClient, sample_tree: Path) -> Path:
    response = client.post("/api/files/process", params={"folderPath": str(sample_tree)})
    assert response.status_code == 200
    return sample_tree


class TestHelperFunctions:
    def test_ensure_db_parent_creates_directory(self, tmp_path: Path) -> None:
        db_path = tmp_path / "subdir" / "test.db"
        _ensure_db_parent(db_path)
        assert db_path.parent.exists()


class TestProcessEndpoint:
    def test_process_folder(self, client: TestClient, sample_tree: Path) -> None:
        response = client.post(
            "/api/files/process", params={"folderPath": str(sample_tree), "pathType": "nfs"}
        )

        assert response.status_code == 200
        body = response.json()
        assert body["message"] == "Folder processed successfully."
        assert body["stats"]["processed"] == 4
        assert body["stats"]["failures"] == []

    def test_missing_folder(self, client: TestClient, tmp_path: Path) -> None:
        response = client.post("/api/files/process", params={"folderPath": str(tmp_path / "nope")})

        assert response.status_code == 400
        assert "Invalid folder path" in response.json()["detail"]

    def test_blank_folder(self, client: TestClient) -> None:
        response = client.post("/api/files/process", params={"folderPath": "  "})
        assert response.status_code == 400

    def test_unknown_path_type(self, client: TestClient, sample_tree: Path) -> None:
        response = client.post(
            "/api/files/process", params={"folderPath": str(sample_tree), "pathType": "ftp"}
        )
        assert response.status_code == 400

    def test_partial_failure_still_succeeds(self, client: TestClient, sample_tree: Path) -> None:
        with patch(
            "fileinsights.extraction.extractor.ContentExtractor.extract",
            side_effect=RuntimeError("parser crashed"),
        ):
            response = client.post("/api/files/process", params={"folderPath": str(sample_tree)})

        assert response.status_code == 200
        stats = response.json()["stats"]
        assert stats["processed"] == 4
        assert stats["basic_only"] == 4


class TestMetadataEndpoint:
    def test_basic_metadata(self, client: TestClient, processed_tree: Path) -> None:
        response = client.get("/api/files/metadata", params={"folderPath": str(processed_tree)})

        assert response.status_code == 200
        names = sorted(item["name"] for item in response.json())
        assert names == ["a.txt", "b.txt", "c.txt", "d.txt"]

    def test_advanced_metadata(self, client: TestClient, processed_tree: Path) -> None:
        response = client.get(
            "/api/files/metadata",
            params={"folderPath": str(processed_tree / "sub"), "type": "advanced"},
        )

        assert response.status_code == 200
        documents = response.json()
        assert [doc["fileName"] for doc in documents] == ["c.txt", "d.txt"]
        assert documents[0]["content"] == "charlie"
        assert documents[0]["metadataMap"]["Content-Type"] == "text/plain"

    def test_path_type_filter(self, client: TestClient, processed_tree: Path) -> None:
        response = client.get(
            "/api/files/metadata", params={"folderPath": str(processed_tree), "pathType": "SMB"}
        )
        assert response.status_code == 404

    def test_not_found(self, client: TestClient, tmp_path: Path) -> None:
        response = client.get("/api/files/metadata", params={"folderPath": str(tmp_path / "none")})
        assert response.status_code == 404

    def test_by_type_paginated(self, client: TestClient, processed_tree: Path) -> None:
        response = client.get(
            "/api/files/by-type",
            params={"pathType": "Local", "pathPrefix": str(processed_tree), "page": 1, "size": 3},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["total"] == 4
        assert body["pages"] == 2
        assert len(body["items"]) == 1


class TestResetIndex:
    def test_reset_removes_everything(self, client: TestClient, processed_tree: Path) -> None:
        response = client.delete("/api/files/reset-index", params={"folderPath": str(processed_tree)})

        assert response.status_code == 200
        assert response.json()["stats"]["deleted"] == 4
        basic = client.get("/api/files/metadata", params={"folderPath": str(processed_tree)})
        advanced = client.get(
            "/api/files/metadata", params={"folderPath": str(processed_tree), "type": "advanced"}
        )
        assert basic.status_code == 404
        assert advanced.status_code == 404

    def test_reset_store_failure(self, client: TestClient, processed_tree: Path) -> None:
        with patch(
            "fileinsights.index.basic_store.SQLiteBasicStore.find_by_path_prefix",
            side_effect=StoreError("database is locked"),
        ):
            response = client.delete(
                "/api/files/reset-index", params={"folderPath": str(processed_tree)}
            )

        assert response.status_code == 500
        assert "Error resetting index" in response.json()["detail"]


class TestUpload:
    def test_upload(self, client: TestClient) -> None:
        response = client.post("/upload", files={"file": ("notes.txt", b"uploaded", "text/plain")})

        assert response.status_code == 200
        assert response.json()["metadata"]["path"] == "/uploads/notes.txt"

    def test_empty_upload(self, client: TestClient) -> None:
        response = client.post("/upload", files={"file": ("empty.txt", b"", "text/plain")})

        assert response.status_code == 400
        assert response.json()["detail"] == "File is empty"

    def test_dot_file_name_rejected(self, client: TestClient) -> None:
        response = client.post("/upload", files={"file": ("..", b"hello", "text/plain")})

        assert response.status_code == 400
        assert "Invalid upload file name" in response.json()["detail"]

    def test_upload_extraction_failure(self, client: TestClient) -> None:
        with patch(
            "fileinsights.extraction.extractor.ContentExtractor.extract",
            side_effect=RuntimeError("parser crashed"),
        ):
            response = client.post("/upload", files={"file": ("x.bin", b"\x00\x01", "application/octet-stream")})

        assert response.status_code == 500
        assert "Failed to process file" in response.json()["detail"]


class TestMetadataRecords:
    def _payload(self, **overrides) -> dict:
        moment = datetime(2024, 2, 3, tzinfo=timezone.utc).isoformat()
        payload = {
            "path": "/data/manual.txt",
            "name": "manual.txt",
            "size": 12,
            "ctime": moment,
            "mtime": moment,
            "atime": moment,
            "sourceType": "SMB",
        }
        payload.update(overrides)
        return payload

    def test_save_and_get(self, client: TestClient) -> None:
        saved = client.post("/api/metadata/save", json=self._payload())

        assert saved.status_code == 200
        record_id = saved.json()["id"]
        fetched = client.get(f"/api/metadata/{record_id}")
        assert fetched.status_code == 200
        assert fetched.json()["sourceType"] == "SMB"

    def test_save_negative_size(self, client: TestClient) -> None:
        response = client.post("/api/metadata/save", json=self._payload(size=-5))
        assert response.status_code == 400

    def test_get_missing(self, client: TestClient) -> None:
        assert client.get("/api/metadata/999").status_code == 404

    def test_list(self, client: TestClient) -> None:
        client.post("/api/metadata/save", json=self._payload())
        client.post("/api/metadata/save", json=self._payload(path="/data/other.txt", name="other.txt"))

        response = client.get("/api/metadata", params={"page": 0, "size": 1})

        assert response.status_code == 200
        assert response.json()["total"] == 2
        assert len(response.json()["items"]) == 1


class TestAnalytics:
    def test_by_age(self, client: TestClient) -> None:
        now = datetime.now(timezone.utc)
        for name, age in [("a.txt", 1), ("b.txt", 100), ("c.txt", 1000)]:
            moment = (now - timedelta(days=age)).isoformat()
            client.post(
                "/api/metadata/save",
                json={"path": f"/data/{name}", "name": name, "size": 1, "ctime": moment, "mtime": moment, "atime": moment},
            )

        response = client.get("/api/analytics/by-age")

        assert response.status_code == 200
        assert response.json() == {"Last 30 Days": 1, "Last Year": 1, "Older": 1}

    def test_by_type(self, client: TestClient, processed_tree: Path) -> None:
        response = client.get("/api/analytics/by-type")

        assert response.status_code == 200
        assert response.json() == {"text/plain": 4}

    def test_by_type_degrades(self, client: TestClient) -> None:
        with patch(
            "fileinsights.index.content_store.SQLiteContentStore.term_aggregation",
            side_effect=StoreError("index unavailable"),
        ):
            response = client.get("/api/analytics/by-type")

        assert response.status_code == 200
        assert response.json() == {}
