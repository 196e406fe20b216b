from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Optional

from .aggregate import DEFAULT_POOL_SIZE, AggregationOrchestrator, summarize
from .counter import DEFAULT_MAX_DEPTH, RecursiveCounter
from .listing import ListingEngine
from .models import CountResult, StoreEntry
from .prefix import scope
from .s3 import S3Store

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FolderListing:
    prefix: str
    entries: tuple[StoreEntry, ...] = ()
    counts: dict[str, CountResult] = field(default_factory=dict)
    partial: bool = False

    @property
    def folders(self) -> tuple[StoreEntry, ...]:
        return tuple(entry for entry in self.entries if entry.is_folder)

    @property
    def files(self) -> tuple[StoreEntry, ...]:
        return tuple(entry for entry in self.entries if not entry.is_folder)


class BrowseService:
    """Entry point used by the HTTP and CLI surfaces.

    Caller-supplied paths are scoped under ``root_prefix`` before any store
    call is made.
    """

    def __init__(
        self,
        store: S3Store,
        *,
        root_prefix: str = "",
        public_url: Optional[str] = None,
        pool_size: int = DEFAULT_POOL_SIZE,
        max_depth: int = DEFAULT_MAX_DEPTH,
    ) -> None:
        self.store = store
        self.root_prefix = root_prefix
        self.listing = ListingEngine(store, public_url=public_url)
        self.counter = RecursiveCounter(store, max_depth=max_depth)
        self.orchestrator = AggregationOrchestrator(self.counter, pool_size=pool_size)

    @classmethod
    def from_settings(cls, settings, store: Optional[S3Store] = None) -> "BrowseService":
        if store is None:
            settings.validate()
            store = S3Store.from_settings(settings)
        return cls(
            store,
            root_prefix=settings.root_prefix,
            public_url=settings.public_base_url,
            pool_size=settings.pool_size,
            max_depth=settings.max_depth,
        )

    def resolve(self, raw: Optional[str]) -> str:
        return scope(raw or "", self.root_prefix)

    async def list(
        self, raw: Optional[str], cancel: Optional[asyncio.Event] = None
    ) -> FolderListing:
        prefix = self.resolve(raw)
        entries = await self.listing.list(prefix, cancel=cancel)
        return FolderListing(prefix=prefix, entries=tuple(entries))

    async def search(
        self, raw: Optional[str], term: str, cancel: Optional[asyncio.Event] = None
    ) -> FolderListing:
        prefix = self.resolve(raw)
        entries = await self.listing.search(prefix, term, cancel=cancel)
        return FolderListing(prefix=prefix, entries=tuple(entries))

    async def count(
        self, raw: Optional[str], cancel: Optional[asyncio.Event] = None
    ) -> CountResult:
        prefix = self.resolve(raw)
        total = await self.counter.count_files(prefix, cancel=cancel)
        return CountResult(prefix=prefix, total_files=total)

    async def browse(
        self, raw: Optional[str], cancel: Optional[asyncio.Event] = None
    ) -> FolderListing:
        listing = await self.list(raw, cancel=cancel)
        counts = await self.orchestrator.count_all_folders(listing.folders, cancel=cancel)
        partial = summarize(counts) is not None
        logger.info(
            "Browsed %r: %d entries, %d folder counts%s",
            listing.prefix,
            len(listing.entries),
            len(counts),
            " (partial)" if partial else "",
        )
        return FolderListing(
            prefix=listing.prefix,
            entries=listing.entries,
            counts=counts,
            partial=partial,
        )
