"""Core FileInsights data models."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Generic, List, TypeVar

from fileinsights.errors import InvalidInputError

MAX_PATH_LENGTH = 1024
MAX_NAME_LENGTH = 255

T = TypeVar("T")


class SourceType(str, Enum):
    """Where a walked path resides."""

    LOCAL = "Local"
    NFS = "NFS"
    SMB = "SMB"

    @classmethod
    def parse(cls, value: "str | SourceType") -> "SourceType":
        if isinstance(value, SourceType):
            return value
        cleaned = (value or "").strip().lower()
        for member in cls:
            if member.value.lower() == cleaned:
                return member
        raise InvalidInputError(f"Unknown source type: {value!r}")


@dataclass(slots=True, frozen=True)
class RemoteShare:
    """Connection details for an NFS/SMB share, supplied per operation.

    Credentials are only ever held in memory; records keep the host and
    share path so they can be traced back to their origin.
    """

    host: str
    share_path: str
    username: str | None = None
    password: str | None = field(default=None, repr=False)


@dataclass(slots=True)
class BasicRecord:
    """Filesystem attributes of one file."""

    path: str
    name: str
    size: int
    ctime: datetime
    mtime: datetime
    atime: datetime
    source_type: SourceType = SourceType.LOCAL
    remote_host: str | None = None
    remote_share: str | None = None
    id: int | None = None

    def __post_init__(self) -> None:
        if not self.path or not self.path.strip():
            raise InvalidInputError("Record path must not be empty")
        if len(self.path) > MAX_PATH_LENGTH:
            raise InvalidInputError(f"Record path exceeds {MAX_PATH_LENGTH} characters")
        if not self.name or not self.name.strip():
            raise InvalidInputError("Record name must not be empty")
        if len(self.name) > MAX_NAME_LENGTH:
            raise InvalidInputError(f"Record name exceeds {MAX_NAME_LENGTH} characters")
        if self.size < 0:
            raise InvalidInputError(f"Record size must be non-negative, got {self.size}")
        self.source_type = SourceType.parse(self.source_type)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "path": self.path,
            "name": self.name,
            "size": self.size,
            "ctime": self.ctime.isoformat(),
            "mtime": self.mtime.isoformat(),
            "atime": self.atime.isoformat(),
            "sourceType": self.source_type.value,
            "remoteHost": self.remote_host,
            "remoteShare": self.remote_share,
        }


@dataclass(slots=True)
class ContentRecord:
    """Text and document properties extracted from one file."""

    path: str
    file_name: str
    extracted_text: str = ""
    properties: Dict[str, str] = field(default_factory=dict)
    source_type: SourceType | None = None

    def __post_init__(self) -> None:
        if not self.path or not self.path.strip():
            raise InvalidInputError("File path must not be empty for content indexing")
        if self.source_type is not None:
            self.source_type = SourceType.parse(self.source_type)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "filePath": self.path,
            "fileName": self.file_name,
            "content": self.extracted_text,
            "metadataMap": dict(self.properties),
            "sourceType": self.source_type.value if self.source_type else None,
        }


STAGE_LISTING = "listing"
STAGE_BASIC = "basic"
STAGE_EXTRACTION = "extraction"
STAGE_CONTENT = "content"


@dataclass(slots=True)
class FileFailure:
    path: str
    stage: str
    reason: str


@dataclass(slots=True)
class WalkStats:
    """Outcome of one walk: counts plus the files that did not make it."""

    processed: int = 0
    failed: int = 0
    basic_only: int = 0
    cancelled: bool = False
    failures: List[FileFailure] = field(default_factory=list)

    def record(self, failure: FileFailure | None) -> None:
        """Account for one visited file; ``None`` means both records were written."""
        if failure is None:
            self.processed += 1
            return
        self.failures.append(failure)
        if failure.stage == STAGE_BASIC:
            self.failed += 1
        else:
            self.processed += 1
            self.basic_only += 1

    def to_dict(self) -> Dict[str, Any]:
        return {
            "processed": self.processed,
            "failed": self.failed,
            "basic_only": self.basic_only,
            "cancelled": self.cancelled,
            "failures": [
                {"path": f.path, "stage": f.stage, "reason": f.reason} for f in self.failures
            ],
        }


@dataclass(slots=True)
class DeleteStats:
    deleted: int = 0
    failed: int = 0
    content_swept: int = 0
    failures: List[FileFailure] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "deleted": self.deleted,
            "failed": self.failed,
            "content_swept": self.content_swept,
            "failures": [
                {"path": f.path, "stage": f.stage, "reason": f.reason} for f in self.failures
            ],
        }


@dataclass(slots=True)
class Page(Generic[T]):
    items: List[T]
    page: int
    size: int
    total: int

    @property
    def pages(self) -> int:
        if self.size <= 0:
            return 0
        return (self.total + self.size - 1) // self.size
