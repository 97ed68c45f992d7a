# Copyright (c) 2022-present, FriendliAI Inc. All rights reserved.

"""Process-local object store.

Behaves like an S3 bucket for the operations the transfer engine uses: sessions
persist until completed or aborted, part listing is paginated, parts other than the
last must be at least ``min_part_size`` bytes at completion, and ETags are MD5
digests. Several clients can share one :class:`MemoryBackend` to simulate
independent processes working on the same store.
"""

from __future__ import annotations

import hashlib
import io
import itertools
from dataclasses import dataclass, field
from threading import Lock
from typing import Any, BinaryIO, Dict, List, Optional, Tuple

from objtransfer.errors import ObjectNotFoundError, StoreError
from objtransfer.schema.transfer import (
    CommittedPart,
    ObjectHandle,
    ObjectMetadata,
    TransferSession,
    UploadedPartETag,
)
from objtransfer.store.base import ObjectStoreClient

MAX_PART_NUMBER = 10000


@dataclass
class _StoredPart:
    data: bytes
    etag: str


@dataclass
class _Upload:
    bucket: str
    key: str
    upload_id: str
    initiated: int
    parts: Dict[int, _StoredPart] = field(default_factory=dict)


@dataclass
class MemoryBackend:
    """Shared state of the in-memory store."""

    objects: Dict[Tuple[str, str], bytes] = field(default_factory=dict)
    uploads: Dict[str, _Upload] = field(default_factory=dict)
    lock: Lock = field(default_factory=Lock)
    _counter: Any = field(default_factory=itertools.count)

    def next_id(self) -> int:
        """Monotonic sequence used for upload IDs and initiation order."""
        return next(self._counter)


def _etag(data: bytes) -> str:
    return f'"{hashlib.md5(data).hexdigest()}"'


class InMemoryObjectStoreClient(ObjectStoreClient[MemoryBackend]):
    """Object store client that keeps everything in memory."""

    def __init__(
        self,
        client: Optional[MemoryBackend] = None,
        min_part_size: int = 1,
        page_size: int = 1000,
    ) -> None:
        """Initialize InMemoryObjectStoreClient."""
        super().__init__(client or MemoryBackend())
        self.min_part_size = min_part_size
        self._page_size = page_size

    def _get_upload(self, session: TransferSession, operation: str) -> _Upload:
        upload = self.client.uploads.get(session.upload_id)
        if upload is None or (upload.bucket, upload.key) != (
            session.bucket,
            session.key,
        ):
            raise ObjectNotFoundError(
                f"No such upload: {session.upload_id}", operation=operation
            )
        return upload

    def find_open_session(self, bucket: str, key: str) -> Optional[str]:
        with self.client.lock:
            candidates = [
                upload
                for upload in self.client.uploads.values()
                if upload.bucket == bucket and upload.key == key
            ]
        if not candidates:
            return None
        return max(candidates, key=lambda upload: upload.initiated).upload_id

    def open_session(self, bucket: str, key: str) -> str:
        with self.client.lock:
            seq = self.client.next_id()
            upload_id = f"upload-{seq:06d}"
            self.client.uploads[upload_id] = _Upload(
                bucket=bucket, key=key, upload_id=upload_id, initiated=seq
            )
        return upload_id

    def list_committed_parts(
        self, session: TransferSession, cursor: Optional[str] = None
    ) -> Tuple[List[CommittedPart], Optional[str]]:
        marker = int(cursor) if cursor is not None else 0
        with self.client.lock:
            upload = self._get_upload(session, "list_committed_parts")
            numbers = sorted(n for n in upload.parts if n > marker)
            page = numbers[: self._page_size]
            parts = [
                CommittedPart(
                    part_number=n,
                    size=len(upload.parts[n].data),
                    etag=upload.parts[n].etag,
                )
                for n in page
            ]
        next_cursor = str(page[-1]) if len(numbers) > len(page) else None
        return parts, next_cursor

    def upload_part(
        self, session: TransferSession, part_number: int, body: Any, size: int
    ) -> str:
        if not 1 <= part_number <= MAX_PART_NUMBER:
            raise StoreError(
                "Part number must be between 1 and 10000",
                operation="upload_part",
                part_number=part_number,
            )

        data = body.read(size) if size else b""
        if len(data) != size:
            raise StoreError(
                f"Expected {size} bytes but received {len(data)}",
                operation="upload_part",
                part_number=part_number,
            )

        etag = _etag(data)
        with self.client.lock:
            upload = self._get_upload(session, "upload_part")
            upload.parts[part_number] = _StoredPart(data=data, etag=etag)
        return etag

    def complete_session(
        self, session: TransferSession, parts: List[UploadedPartETag]
    ) -> ObjectHandle:
        with self.client.lock:
            upload = self._get_upload(session, "complete_session")
            if not parts:
                raise StoreError("No parts to complete", operation="complete_session")

            chunks: List[bytes] = []
            prev = 0
            for idx, part in enumerate(parts):
                if part.part_number <= prev:
                    raise StoreError(
                        "Parts must be in ascending order",
                        operation="complete_session",
                        part_number=part.part_number,
                    )
                prev = part.part_number
                stored = upload.parts.get(part.part_number)
                if stored is None or stored.etag != part.etag:
                    raise StoreError(
                        "Part is missing or its ETag does not match",
                        operation="complete_session",
                        part_number=part.part_number,
                    )
                if idx < len(parts) - 1 and len(stored.data) < self.min_part_size:
                    raise StoreError(
                        "Part is smaller than the minimum allowed size",
                        operation="complete_session",
                        part_number=part.part_number,
                    )
                chunks.append(stored.data)

            digest = hashlib.md5(
                b"".join(
                    bytes.fromhex(upload.parts[p.part_number].etag.strip('"'))
                    for p in parts
                )
            ).hexdigest()
            etag = f'"{digest}-{len(parts)}"'
            self.client.objects[(session.bucket, session.key)] = b"".join(chunks)
            del self.client.uploads[session.upload_id]
        return ObjectHandle(bucket=session.bucket, key=session.key, etag=etag)

    def abort_session(self, session: TransferSession) -> None:
        with self.client.lock:
            self._get_upload(session, "abort_session")
            del self.client.uploads[session.upload_id]

    def get_object_metadata(self, bucket: str, key: str) -> ObjectMetadata:
        with self.client.lock:
            data = self.client.objects.get((bucket, key))
        if data is None:
            raise ObjectNotFoundError(
                f"No such key: {bucket}/{key}", operation="get_object_metadata"
            )
        return ObjectMetadata(bucket=bucket, key=key, size=len(data), etag=_etag(data))

    def open_object_stream(self, bucket: str, key: str) -> BinaryIO:
        with self.client.lock:
            data = self.client.objects.get((bucket, key))
        if data is None:
            raise ObjectNotFoundError(
                f"No such key: {bucket}/{key}", operation="open_object_stream"
            )
        return io.BytesIO(data)

    def put_object(self, bucket: str, key: str, body: Any, size: int) -> ObjectHandle:
        data = body.read(size) if size else b""
        with self.client.lock:
            self.client.objects[(bucket, key)] = data
        return ObjectHandle(bucket=bucket, key=key, etag=_etag(data))
