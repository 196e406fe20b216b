from __future__ import annotations

import asyncio
import functools
import logging
from typing import AsyncIterator, Optional

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from .errors import OperationCancelled, StoreUnavailable
from .models import ListingPage, ObjectRecord

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 1000
DEFAULT_CALL_TIMEOUT = 10.0
DEFAULT_MAX_ATTEMPTS = 5
DEFAULT_MAX_CONCURRENCY = 5


class S3Store:
    """Paginated ``ListObjectsV2`` access to a single bucket.

    The boto3 client is created once and shared by every caller. Each page
    request runs in a worker thread and is bounded by ``call_timeout``;
    throttling and transient failures are retried inside botocore using the
    adaptive retry mode before they surface as :class:`StoreUnavailable`.
    At most ``max_concurrency`` page requests are live at once, counting
    threads still running after their caller timed out.
    """

    def __init__(
        self,
        bucket: str,
        *,
        client: Optional[object] = None,
        endpoint_url: Optional[str] = None,
        access_key: Optional[str] = None,
        secret_key: Optional[str] = None,
        region: Optional[str] = None,
        page_size: int = DEFAULT_PAGE_SIZE,
        call_timeout: Optional[float] = DEFAULT_CALL_TIMEOUT,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
    ) -> None:
        self.bucket = bucket
        self._client_instance = client
        self._endpoint_url = endpoint_url
        self._access_key = access_key
        self._secret_key = secret_key
        self._region = region
        self.page_size = max(1, min(int(page_size), DEFAULT_PAGE_SIZE))
        self.call_timeout = call_timeout
        self._max_attempts = max(1, int(max_attempts))
        self.max_concurrency = max(1, int(max_concurrency))
        self._slots: Optional[asyncio.Semaphore] = None
        self._slots_loop: Optional[asyncio.AbstractEventLoop] = None

    @classmethod
    def from_settings(cls, settings) -> "S3Store":
        return cls(
            settings.bucket,
            endpoint_url=settings.endpoint_url,
            access_key=settings.access_key_id,
            secret_key=settings.secret_access_key,
            region=settings.region,
            page_size=settings.page_size,
            call_timeout=settings.call_timeout,
            max_attempts=settings.max_attempts,
            max_concurrency=settings.pool_size,
        )

    def _client(self):
        if self._client_instance is not None:
            return self._client_instance
        config = Config(
            signature_version="s3v4",
            retries={"mode": "adaptive", "max_attempts": self._max_attempts},
            connect_timeout=self.call_timeout or 60,
            read_timeout=self.call_timeout or 60,
        )
        session = boto3.session.Session()
        self._client_instance = session.client(
            "s3",
            endpoint_url=self._endpoint_url,
            aws_access_key_id=self._access_key,
            aws_secret_access_key=self._secret_key,
            region_name=self._region,
            config=config,
        )
        return self._client_instance

    async def list_page(
        self,
        prefix: str,
        *,
        delimiter: Optional[str] = None,
        continuation: Optional[str] = None,
    ) -> ListingPage:
        slots = self._call_slots()
        await slots.acquire()
        call = asyncio.ensure_future(
            asyncio.to_thread(self._list_page, prefix, delimiter, continuation)
        )
        # The slot is held until the thread returns, even after a timeout.
        call.add_done_callback(functools.partial(_release_slot, slots))
        try:
            if self.call_timeout:
                return await asyncio.wait_for(
                    asyncio.shield(call), timeout=self.call_timeout
                )
            return await call
        except asyncio.TimeoutError as exc:
            logger.warning(
                "Listing %r timed out after %.1fs", prefix, self.call_timeout
            )
            raise StoreUnavailable(
                f"Listing {prefix!r} timed out after {self.call_timeout}s",
                prefix=prefix,
            ) from exc

    def _call_slots(self) -> asyncio.Semaphore:
        loop = asyncio.get_running_loop()
        if self._slots_loop is not loop:
            self._slots = asyncio.Semaphore(self.max_concurrency)
            self._slots_loop = loop
        return self._slots

    def _list_page(
        self, prefix: str, delimiter: Optional[str], continuation: Optional[str]
    ) -> ListingPage:
        kwargs = {
            "Bucket": self.bucket,
            "Prefix": prefix,
            "MaxKeys": self.page_size,
        }
        if delimiter:
            kwargs["Delimiter"] = delimiter
        if continuation:
            kwargs["ContinuationToken"] = continuation
        try:
            response = self._client().list_objects_v2(**kwargs)
        except (BotoCoreError, ClientError) as exc:
            logger.error("Listing %r in bucket %r failed: %s", prefix, self.bucket, exc)
            raise StoreUnavailable(str(exc), prefix=prefix) from exc
        return self._parse_page(response)

    def _parse_page(self, response: object) -> ListingPage:
        if not isinstance(response, dict):
            raise StoreUnavailable("Malformed listing response from store")
        objects: list[ObjectRecord] = []
        for entry in response.get("Contents", []) or []:
            key = entry.get("Key")
            if not key:
                continue
            objects.append(
                ObjectRecord(
                    key=key,
                    size=int(entry.get("Size", 0) or 0),
                    last_modified=entry.get("LastModified"),
                )
            )
        prefixes = [
            common["Prefix"]
            for common in response.get("CommonPrefixes", []) or []
            if common.get("Prefix")
        ]
        next_token: Optional[str] = None
        if response.get("IsTruncated"):
            next_token = response.get("NextContinuationToken")
            if not next_token:
                raise StoreUnavailable(
                    "Store reported a truncated listing without a continuation token"
                )
        return ListingPage(
            objects=tuple(objects),
            common_prefixes=tuple(prefixes),
            next_token=next_token,
        )

    async def iter_pages(
        self,
        prefix: str,
        *,
        delimiter: Optional[str] = None,
        cancel: Optional[asyncio.Event] = None,
    ) -> AsyncIterator[ListingPage]:
        """Yield every page under ``prefix`` until the store reports completion."""

        continuation: Optional[str] = None
        seen_tokens: set[str] = set()
        while True:
            if cancel is not None and cancel.is_set():
                raise OperationCancelled(f"Listing {prefix!r} cancelled", prefix=prefix)
            page = await self.list_page(
                prefix, delimiter=delimiter, continuation=continuation
            )
            yield page
            if page.next_token is None:
                break
            if page.next_token in seen_tokens:
                raise StoreUnavailable(
                    f"Store repeated continuation token while listing {prefix!r}",
                    prefix=prefix,
                )
            seen_tokens.add(page.next_token)
            continuation = page.next_token


def _release_slot(slots: asyncio.Semaphore, call: asyncio.Future) -> None:
    slots.release()
    if not call.cancelled():
        # Marks a late failure as retrieved once its caller has timed out.
        call.exception()
