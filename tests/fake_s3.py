from __future__ import annotations

import threading
import time
from datetime import datetime, timezone
from typing import Iterable, Mapping, Optional, Union

from botocore.exceptions import ClientError

MODIFIED = datetime(2024, 3, 1, 12, 30, tzinfo=timezone.utc)


def throttled(operation: str = "ListObjectsV2") -> ClientError:
    return ClientError(
        {"Error": {"Code": "SlowDown", "Message": "Please reduce your request rate."}},
        operation,
    )


class FakeS3Client:
    """In-memory ``list_objects_v2`` with S3 delimiter and pagination rules."""

    def __init__(
        self,
        objects: Union[Mapping[str, int], Iterable[str]] = (),
        *,
        fail_prefixes: Iterable[str] = (),
        fail_on_call: Optional[int] = None,
        delay: float = 0.0,
    ) -> None:
        if isinstance(objects, Mapping):
            self.objects = dict(objects)
        else:
            self.objects = {key: (0 if key.endswith("/") else 100) for key in objects}
        self.fail_prefixes = tuple(fail_prefixes)
        self.fail_on_call = fail_on_call
        self.delay = delay
        self.calls: list[dict] = []
        self.in_flight = 0
        self.max_in_flight = 0
        self._lock = threading.Lock()

    def list_objects_v2(self, **kwargs):
        with self._lock:
            self.calls.append(kwargs)
            call_number = len(self.calls)
            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                time.sleep(self.delay)
            prefix = kwargs.get("Prefix", "")
            if self.fail_on_call is not None and call_number == self.fail_on_call:
                raise throttled()
            if any(prefix.startswith(failing) for failing in self.fail_prefixes):
                raise throttled()
            return self._page(
                prefix,
                kwargs.get("Delimiter"),
                int(kwargs.get("MaxKeys", 1000)),
                kwargs.get("ContinuationToken"),
            )
        finally:
            with self._lock:
                self.in_flight -= 1

    def _page(
        self,
        prefix: str,
        delimiter: Optional[str],
        max_keys: int,
        token: Optional[str],
    ) -> dict:
        items: list[tuple[str, str]] = []
        for key in sorted(self.objects):
            if not key.startswith(prefix):
                continue
            rest = key[len(prefix) :]
            if delimiter and delimiter in rest:
                common = prefix + rest[: rest.index(delimiter) + len(delimiter)]
                if not items or items[-1] != ("prefix", common):
                    items.append(("prefix", common))
                continue
            items.append(("object", key))

        start = int(token.split("-", 1)[1]) if token else 0
        page = items[start : start + max_keys]
        truncated = start + max_keys < len(items)
        response: dict = {"KeyCount": len(page), "IsTruncated": truncated}
        contents = [
            {
                "Key": value,
                "Size": self.objects[value],
                "LastModified": MODIFIED,
                "StorageClass": "STANDARD",
            }
            for kind, value in page
            if kind == "object"
        ]
        prefixes = [{"Prefix": value} for kind, value in page if kind == "prefix"]
        if contents:
            response["Contents"] = contents
        if prefixes:
            response["CommonPrefixes"] = prefixes
        if truncated:
            response["NextContinuationToken"] = f"token-{start + max_keys}"
        return response


MEDICINA = {
    "apuntes/Medicina/": 0,
    "apuntes/Medicina/anatomy.pdf": 1024,
    "apuntes/Medicina/Year1/notes.docx": 2048,
}
