from __future__ import annotations

import asyncio
import logging
from typing import Optional
from urllib.parse import quote

from .models import (
    DELIMITER,
    FOLDER_MIME_TYPE,
    EntryKind,
    ObjectRecord,
    StoreEntry,
    display_segment,
    mime_type_for,
    sort_key,
)
from .s3 import S3Store

logger = logging.getLogger(__name__)


class ListingEngine:
    """Immediate children of a prefix, partitioned into folders and files."""

    def __init__(self, store: S3Store, public_url: Optional[str] = None) -> None:
        self._store = store
        self._public_url = (public_url or "").rstrip("/")

    async def list(
        self, prefix: str, cancel: Optional[asyncio.Event] = None
    ) -> list[StoreEntry]:
        folders: dict[str, StoreEntry] = {}
        files: dict[str, StoreEntry] = {}
        async for page in self._store.iter_pages(
            prefix, delimiter=DELIMITER, cancel=cancel
        ):
            for common_prefix in page.common_prefixes:
                if common_prefix == prefix or common_prefix in folders:
                    continue
                folders[common_prefix] = self._folder_entry(common_prefix, prefix)
            for record in page.objects:
                if not self._is_direct_file(record, prefix):
                    continue
                files[record.key] = self._file_entry(record)
        entries = sorted([*folders.values(), *files.values()], key=sort_key)
        logger.debug(
            "Listed %r: %d folders, %d files", prefix, len(folders), len(files)
        )
        return entries

    async def search(
        self, prefix: str, term: str, cancel: Optional[asyncio.Event] = None
    ) -> list[StoreEntry]:
        entries = await self.list(prefix, cancel=cancel)
        needle = term.strip().casefold()
        if not needle:
            return entries
        return [entry for entry in entries if needle in entry.display_name.casefold()]

    def public_url_for(self, key: str) -> Optional[str]:
        if not self._public_url:
            return None
        return f"{self._public_url}/{quote(key)}"

    def _is_direct_file(self, record: ObjectRecord, prefix: str) -> bool:
        if record.is_folder_marker:
            return False
        if not record.key.startswith(prefix):
            return False
        relative = record.key[len(prefix) :]
        return bool(relative) and DELIMITER not in relative

    def _folder_entry(self, common_prefix: str, parent: str) -> StoreEntry:
        return StoreEntry(
            key=common_prefix,
            kind=EntryKind.FOLDER,
            display_name=display_segment(common_prefix, parent),
            mime_type=FOLDER_MIME_TYPE,
        )

    def _file_entry(self, record: ObjectRecord) -> StoreEntry:
        name = record.key.rsplit(DELIMITER, 1)[-1]
        return StoreEntry(
            key=record.key,
            kind=EntryKind.FILE,
            display_name=name,
            mime_type=mime_type_for(name),
            size=record.size,
            last_modified=record.last_modified,
            url=self.public_url_for(record.key),
        )
