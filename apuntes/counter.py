from __future__ import annotations

import asyncio
import logging
from typing import Optional

from .errors import DepthExceeded
from .models import DELIMITER
from .s3 import S3Store

logger = logging.getLogger(__name__)

DEFAULT_MAX_DEPTH = 64


class RecursiveCounter:
    """Counts every file below a prefix with a flat, delimiter-free scan.

    Folder marker keys (ending in the delimiter) are not files. Failures
    propagate: a walk that cannot finish never reports a partial total.
    """

    def __init__(self, store: S3Store, max_depth: int = DEFAULT_MAX_DEPTH) -> None:
        self._store = store
        self.max_depth = max(1, int(max_depth))

    async def count_files(
        self, prefix: str, cancel: Optional[asyncio.Event] = None
    ) -> int:
        total = 0
        pages = 0
        async for page in self._store.iter_pages(prefix, cancel=cancel):
            pages += 1
            for record in page.objects:
                if record.is_folder_marker:
                    continue
                self._check_depth(prefix, record.key)
                total += 1
        logger.debug("Counted %d files under %r in %d pages", total, prefix, pages)
        return total

    def _check_depth(self, prefix: str, key: str) -> None:
        relative = key[len(prefix) :] if key.startswith(prefix) else key
        depth = relative.count(DELIMITER)
        if depth > self.max_depth:
            raise DepthExceeded(
                f"Key {key!r} is nested {depth} levels below {prefix!r} "
                f"(limit {self.max_depth})",
                prefix=prefix,
            )
