from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel

from .browse import FolderListing
from .models import CountResult, StoreEntry


class EntryModel(BaseModel):
    """A folder or file directly under the listed prefix."""

    key: str
    kind: str
    displayName: str
    mimeType: str
    size: Optional[int] = None
    lastModified: Optional[datetime] = None
    url: Optional[str] = None

    @classmethod
    def from_entry(cls, entry: StoreEntry) -> "EntryModel":
        return cls(
            key=entry.key,
            kind=entry.kind.value,
            displayName=entry.display_name,
            mimeType=entry.mime_type,
            size=entry.size,
            lastModified=entry.last_modified,
            url=entry.url,
        )


class ListResponse(BaseModel):
    prefix: str
    entries: list[EntryModel] = []
    total: int = 0

    @classmethod
    def from_listing(cls, listing: FolderListing) -> "ListResponse":
        entries = [EntryModel.from_entry(entry) for entry in listing.entries]
        return cls(prefix=listing.prefix, entries=entries, total=len(entries))


class CountResponse(BaseModel):
    prefix: str
    totalFiles: int


class FolderCountModel(BaseModel):
    """Recursive count for one folder; ``error`` set means "unavailable", not zero."""

    prefix: str
    totalFiles: int = 0
    error: Optional[str] = None
    message: Optional[str] = None

    @classmethod
    def from_result(cls, result: CountResult) -> "FolderCountModel":
        return cls(
            prefix=result.prefix,
            totalFiles=result.total_files,
            error=result.error.value if result.error else None,
            message=result.message,
        )


class BrowseResponse(ListResponse):
    counts: dict[str, FolderCountModel] = {}
    partial: bool = False

    @classmethod
    def from_listing(cls, listing: FolderListing) -> "BrowseResponse":
        entries = [EntryModel.from_entry(entry) for entry in listing.entries]
        return cls(
            prefix=listing.prefix,
            entries=entries,
            total=len(entries),
            counts={
                key: FolderCountModel.from_result(result)
                for key, result in listing.counts.items()
            },
            partial=listing.partial,
        )


class ErrorResponse(BaseModel):
    error: str
    message: str


class HealthResponse(BaseModel):
    status: str
    timestamp: datetime
    environment: str
