"""FastAPI application exposing processing, metadata and analytics endpoints."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, AsyncIterator, Dict, Iterator, List

from fastapi import APIRouter, Depends, FastAPI, File, HTTPException, Query, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, ConfigDict, Field

from fileinsights.analytics import AnalyticsAggregator
from fileinsights.config import AppConfig
from fileinsights.errors import InvalidInputError, StoreError
from fileinsights.extraction.extractor import ContentExtractor
from fileinsights.index.basic_store import SQLiteBasicStore
from fileinsights.index.content_store import SQLiteContentStore
from fileinsights.index.pipeline import Walker
from fileinsights.models import BasicRecord, Page, SourceType
from fileinsights.utils.files import folder_prefix

LOGGER = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_: FastAPI) -> AsyncIterator[None]:
    logging.basicConfig(level=logging.INFO, format="[%(levelname)s] %(message)s")
    yield


app = FastAPI(title="FileInsights API", version="0.1.0", lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

files_router = APIRouter(prefix="/api/files", tags=["files"])
metadata_router = APIRouter(prefix="/api/metadata", tags=["metadata"])
analytics_router = APIRouter(prefix="/api/analytics", tags=["analytics"])


class BasicRecordPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    path: str
    name: str
    size: int
    ctime: datetime
    mtime: datetime
    atime: datetime
    source_type: str = Field(default=SourceType.LOCAL.value, alias="sourceType")
    remote_host: str | None = Field(default=None, alias="remoteHost")
    remote_share: str | None = Field(default=None, alias="remoteShare")


@dataclass(slots=True)
class Services:
    basic_store: SQLiteBasicStore
    content_store: SQLiteContentStore
    walker: Walker
    analytics: AnalyticsAggregator


def get_config() -> AppConfig:
    return AppConfig()


def _ensure_db_parent(db_path: Path) -> None:
    db_path.parent.mkdir(parents=True, exist_ok=True)


def get_services(config: AppConfig = Depends(get_config)) -> Iterator[Services]:
    """Open both stores for the duration of one request."""
    basic_path = config.resolve_db_path(Path.cwd())
    content_path = config.resolve_content_db_path(Path.cwd())
    _ensure_db_parent(basic_path)
    _ensure_db_parent(content_path)

    try:
        basic_store = SQLiteBasicStore(basic_path)
        content_store = SQLiteContentStore(content_path)
    except StoreError as exc:
        LOGGER.error("Unable to open metadata stores: %s", exc)
        raise HTTPException(status_code=503, detail=f"Metadata store unavailable: {exc}") from exc

    walker = Walker(
        basic_store,
        content_store,
        ContentExtractor(max_text_chars=config.max_text_chars),
        extraction_timeout=config.extraction_timeout,
        workers=config.workers,
        upload_prefix=config.upload_prefix,
    )
    analytics = AnalyticsAggregator(basic_store, content_store, max_terms=config.max_terms)
    try:
        yield Services(basic_store, content_store, walker, analytics)
    finally:
        basic_store.close()
        content_store.close()


def _parse_source_type(value: str | None) -> SourceType | None:
    if value is None or not value.strip():
        return None
    try:
        return SourceType.parse(value)
    except InvalidInputError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


def _require_folder(folder_path: str) -> str:
    if not folder_path or not folder_path.strip():
        raise HTTPException(status_code=400, detail="Folder path must not be empty")
    return folder_path.strip()


def _page_to_dict(page: Page[BasicRecord]) -> Dict[str, Any]:
    return {
        "items": [record.to_dict() for record in page.items],
        "page": page.page,
        "size": page.size,
        "total": page.total,
        "pages": page.pages,
    }


@files_router.post("/process")
async def process_folder(
    folder_path: str = Query(..., alias="folderPath"),
    path_type: str = Query(SourceType.LOCAL.value, alias="pathType"),
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    source_type = _parse_source_type(path_type) or SourceType.LOCAL
    folder = _require_folder(folder_path)
    try:
        stats = await asyncio.to_thread(services.walker.walk, folder, source_type)
    except InvalidInputError as exc:
        LOGGER.warning("Invalid folder path: %s", folder)
        raise HTTPException(status_code=400, detail=f"Invalid folder path: {exc}") from exc
    except Exception as exc:
        LOGGER.exception("Error processing folder: %s", folder)
        raise HTTPException(status_code=500, detail=f"Error processing folder: {exc}") from exc

    return {"status": "ok", "message": "Folder processed successfully.", "stats": stats.to_dict()}


@files_router.get("/metadata")
async def get_folder_metadata(
    folder_path: str = Query(..., alias="folderPath"),
    metadata_type: str = Query("basic", alias="type"),
    path_type: str | None = Query(None, alias="pathType"),
    services: Services = Depends(get_services),
) -> List[Dict[str, Any]]:
    source_type = _parse_source_type(path_type)
    prefix = folder_prefix(_require_folder(folder_path))

    try:
        if metadata_type.lower() == "advanced":
            LOGGER.info("Fetching advanced metadata for folder: %s", prefix)
            documents = services.content_store.query_by_path_prefix(prefix, source_type)
            results = [document.to_dict() for document in documents]
        else:
            LOGGER.info("Fetching basic metadata for folder: %s", prefix)
            records = services.basic_store.find_by_path_prefix(prefix)
            results = [
                record.to_dict()
                for record in records
                if source_type is None or record.source_type is source_type
            ]
    except StoreError as exc:
        LOGGER.error("Error retrieving metadata for folder %s: %s", prefix, exc)
        raise HTTPException(status_code=500, detail=f"Error retrieving metadata: {exc}") from exc

    if not results:
        raise HTTPException(status_code=404, detail=f"No {metadata_type} metadata found for {prefix}")
    return results


@files_router.get("/by-type")
async def get_metadata_by_type(
    path_type: str = Query(..., alias="pathType"),
    path_prefix: str | None = Query(None, alias="pathPrefix"),
    page: int = Query(0, ge=0),
    size: int = Query(20, ge=1, le=500),
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    source_type = _parse_source_type(path_type)
    if source_type is None:
        raise HTTPException(status_code=400, detail="pathType must not be empty")
    try:
        result = services.basic_store.find_by_type_paginated(source_type, path_prefix, page, size)
    except StoreError as exc:
        raise HTTPException(status_code=500, detail=f"Error retrieving metadata: {exc}") from exc
    return _page_to_dict(result)


@files_router.delete("/reset-index")
async def reset_index(
    folder_path: str = Query(..., alias="folderPath"),
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    folder = _require_folder(folder_path)
    try:
        stats = await asyncio.to_thread(services.walker.delete_folder, folder)
    except InvalidInputError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except Exception as exc:
        LOGGER.exception("Error resetting index for folder: %s", folder)
        raise HTTPException(status_code=500, detail=f"Error resetting index: {exc}") from exc

    return {
        "status": "ok",
        "message": f"Index reset successfully for folder: {folder}",
        "stats": stats.to_dict(),
    }


@metadata_router.post("/save")
async def save_metadata(
    payload: BasicRecordPayload,
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    try:
        record = BasicRecord(
            path=payload.path,
            name=payload.name,
            size=payload.size,
            ctime=payload.ctime,
            mtime=payload.mtime,
            atime=payload.atime,
            source_type=payload.source_type,
            remote_host=payload.remote_host,
            remote_share=payload.remote_share,
        )
    except InvalidInputError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    try:
        services.basic_store.upsert(record)
    except StoreError as exc:
        LOGGER.error("Error saving metadata for %s: %s", record.path, exc)
        raise HTTPException(status_code=500, detail="Error saving metadata.") from exc
    return {"status": "ok", "message": "File metadata saved successfully.", "id": record.id}


@metadata_router.get("")
async def list_metadata(
    page: int = Query(0, ge=0),
    size: int = Query(20, ge=1, le=500),
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    return _page_to_dict(services.basic_store.list_all(page, size))


@metadata_router.get("/{record_id}")
async def get_metadata(record_id: int, services: Services = Depends(get_services)) -> Dict[str, Any]:
    record = services.basic_store.find_by_id(record_id)
    if record is None:
        raise HTTPException(status_code=404, detail=f"Metadata with ID {record_id} not found")
    return record.to_dict()


@analytics_router.get("/by-age")
async def file_data_by_age(services: Services = Depends(get_services)) -> Dict[str, int]:
    try:
        return services.analytics.count_by_age()
    except StoreError as exc:
        raise HTTPException(status_code=500, detail=f"Error computing age analytics: {exc}") from exc


@analytics_router.get("/by-type")
async def file_data_by_type(services: Services = Depends(get_services)) -> Dict[str, int]:
    return services.analytics.count_by_type()


@app.post("/upload")
async def upload_file(
    file: UploadFile = File(...),
    path_type: str = Query(SourceType.LOCAL.value, alias="pathType"),
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    source_type = _parse_source_type(path_type) or SourceType.LOCAL
    data = await file.read()
    if not data:
        raise HTTPException(status_code=400, detail="File is empty")

    try:
        record = await asyncio.to_thread(
            services.walker.process_upload, data, file.filename or "", source_type
        )
    except InvalidInputError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except Exception as exc:
        LOGGER.exception("Failed to process upload %s", file.filename)
        raise HTTPException(status_code=500, detail=f"Failed to process file: {exc}") from exc

    return {
        "status": "ok",
        "message": "File uploaded and metadata extracted successfully",
        "metadata": record.to_dict(),
    }


app.include_router(files_router)
app.include_router(metadata_router)
app.include_router(analytics_router)
