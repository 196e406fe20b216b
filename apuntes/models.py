from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import PurePosixPath
from typing import Optional

from pyuca import Collator

DELIMITER = "/"
FOLDER_MIME_TYPE = "application/vnd.cloudflare.folder"
DEFAULT_MIME_TYPE = "application/octet-stream"

MIME_TYPES = {
    "pdf": "application/pdf",
    "doc": "application/msword",
    "docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "xls": "application/vnd.ms-excel",
    "xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "ppt": "application/vnd.ms-powerpoint",
    "pptx": "application/vnd.openxmlformats-officedocument.presentationml.presentation",
    "txt": "text/plain",
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
    "gif": "image/gif",
    "zip": "application/zip",
    "rar": "application/x-rar-compressed",
    "mp4": "video/mp4",
    "mp3": "audio/mpeg",
}


class ErrorKind(str, Enum):
    STORE_UNAVAILABLE = "StoreUnavailable"
    INVALID_PREFIX = "InvalidPrefix"
    DEPTH_EXCEEDED = "DepthExceeded"
    PARTIAL_AGGREGATION_FAILURE = "PartialAggregationFailure"
    CANCELLED = "Cancelled"


class EntryKind(str, Enum):
    FOLDER = "folder"
    FILE = "file"


@dataclass(frozen=True)
class ObjectRecord:
    key: str
    size: int = 0
    last_modified: Optional[datetime] = None

    @property
    def is_folder_marker(self) -> bool:
        return self.key.endswith(DELIMITER)


@dataclass(frozen=True)
class ListingPage:
    objects: tuple[ObjectRecord, ...] = ()
    common_prefixes: tuple[str, ...] = ()
    next_token: Optional[str] = None


@dataclass(frozen=True)
class StoreEntry:
    key: str
    kind: EntryKind
    display_name: str
    mime_type: str
    size: Optional[int] = None
    last_modified: Optional[datetime] = None
    url: Optional[str] = None

    @property
    def is_folder(self) -> bool:
        return self.kind is EntryKind.FOLDER


@dataclass(frozen=True)
class CountResult:
    prefix: str
    total_files: int = 0
    error: Optional[ErrorKind] = None
    message: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def mime_type_for(name: str) -> str:
    suffix = PurePosixPath(name).suffix
    ext = suffix.lstrip(".").lower()
    if not ext:
        return DEFAULT_MIME_TYPE
    return MIME_TYPES.get(ext, DEFAULT_MIME_TYPE)


def display_segment(full_key: str, parent_prefix: str) -> str:
    name = full_key[len(parent_prefix) :] if parent_prefix else full_key
    return name.strip(DELIMITER)


_collator: Optional[Collator] = None


def collator() -> Collator:
    """Shared Unicode Collation Algorithm collator, loaded on first use."""

    global _collator
    if _collator is None:
        _collator = Collator()
    return _collator


def sort_key(entry: StoreEntry) -> tuple[int, tuple[int, ...], str]:
    """Folders first, then collation order: base letters, then accents, then
    lowercase before uppercase. The raw name breaks any remaining tie."""

    return (
        0 if entry.is_folder else 1,
        collator().sort_key(entry.display_name),
        entry.display_name,
    )
