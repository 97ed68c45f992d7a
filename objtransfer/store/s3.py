# Copyright (c) 2022-present, FriendliAI Inc. All rights reserved.

"""S3 compatible object store client (AWS S3, MinIO)."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, BinaryIO, Dict, List, Optional, Tuple

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from objtransfer.di.injector import get_settings
from objtransfer.errors import ObjectNotFoundError, StoreError
from objtransfer.logging import get_logger
from objtransfer.schema.config import StoreConfig
from objtransfer.schema.transfer import (
    CommittedPart,
    ObjectHandle,
    ObjectMetadata,
    TransferSession,
    UploadedPartETag,
)
from objtransfer.store.base import ObjectStoreClient
from objtransfer.utils.humanize import MiB

if TYPE_CHECKING:
    from mypy_boto3_s3.client import S3Client

logger = get_logger(__name__)

_NOT_FOUND_CODES = {"404", "NoSuchKey", "NoSuchBucket", "NoSuchUpload", "NotFound"}


def _store_error(
    exc: Exception, operation: str, part_number: Optional[int] = None
) -> StoreError:
    if isinstance(exc, ClientError):
        code = str(exc.response.get("Error", {}).get("Code", ""))
        message = exc.response.get("Error", {}).get("Message") or str(exc)
        if code in _NOT_FOUND_CODES:
            return ObjectNotFoundError(
                f"{code}: {message}", operation=operation, part_number=part_number
            )
        return StoreError(
            f"{code}: {message}", operation=operation, part_number=part_number
        )
    return StoreError(str(exc), operation=operation, part_number=part_number)


class _S3BodyStream:
    """Streaming body whose transport failures surface as ``OSError``."""

    def __init__(self, body: Any) -> None:
        self._body = body

    def read(self, size: int = -1) -> bytes:
        try:
            if size is None or size < 0:
                return self._body.read()
            return self._body.read(size)
        except BotoCoreError as exc:
            raise OSError(f"Object stream interrupted: {exc}") from exc

    def close(self) -> None:
        self._body.close()


class S3ObjectStoreClient(ObjectStoreClient["S3Client"]):
    """Object store client backed by boto3."""

    min_part_size = 5 * MiB

    def __init__(self, client: S3Client, page_size: int = 1000) -> None:
        """Initialize S3ObjectStoreClient."""
        super().__init__(client)
        self._page_size = page_size

    def find_open_session(self, bucket: str, key: str) -> Optional[str]:
        """Find the latest unfinished upload of ``key``."""
        kwargs: Dict[str, Any] = {"Bucket": bucket, "Prefix": key}
        candidates = []
        try:
            while True:
                resp = self.client.list_multipart_uploads(**kwargs)
                for upload in resp.get("Uploads", []):
                    # Listing is by prefix, so ``key`` also matches ``key.bak``.
                    if upload["Key"] == key:
                        candidates.append(upload)
                if not resp.get("IsTruncated"):
                    break
                kwargs["KeyMarker"] = resp["NextKeyMarker"]
                kwargs["UploadIdMarker"] = resp["NextUploadIdMarker"]
        except (ClientError, BotoCoreError) as exc:
            raise _store_error(exc, "find_open_session") from exc

        if not candidates:
            return None
        latest = max(candidates, key=lambda upload: upload["Initiated"])
        return latest["UploadId"]

    def open_session(self, bucket: str, key: str) -> str:
        """Create a multipart upload."""
        try:
            resp = self.client.create_multipart_upload(Bucket=bucket, Key=key)
        except (ClientError, BotoCoreError) as exc:
            raise _store_error(exc, "open_session") from exc
        return resp["UploadId"]

    def list_committed_parts(
        self, session: TransferSession, cursor: Optional[str] = None
    ) -> Tuple[List[CommittedPart], Optional[str]]:
        """List one page of the parts committed to the upload."""
        kwargs: Dict[str, Any] = {
            "Bucket": session.bucket,
            "Key": session.key,
            "UploadId": session.upload_id,
            "MaxParts": self._page_size,
        }
        if cursor is not None:
            kwargs["PartNumberMarker"] = int(cursor)

        try:
            resp = self.client.list_parts(**kwargs)
        except (ClientError, BotoCoreError) as exc:
            raise _store_error(exc, "list_committed_parts") from exc

        parts = [
            CommittedPart(
                part_number=part["PartNumber"], size=part["Size"], etag=part["ETag"]
            )
            for part in resp.get("Parts", [])
        ]
        next_cursor = None
        if resp.get("IsTruncated"):
            next_cursor = str(resp["NextPartNumberMarker"])
        return parts, next_cursor

    def upload_part(
        self, session: TransferSession, part_number: int, body: Any, size: int
    ) -> str:
        """Upload a part of the multipart upload."""
        try:
            resp = self.client.upload_part(
                Bucket=session.bucket,
                Key=session.key,
                UploadId=session.upload_id,
                PartNumber=part_number,
                Body=body,
                ContentLength=size,
            )
        except (ClientError, BotoCoreError) as exc:
            raise _store_error(exc, "upload_part", part_number) from exc
        return resp["ETag"]

    def complete_session(
        self, session: TransferSession, parts: List[UploadedPartETag]
    ) -> ObjectHandle:
        """Complete the multipart upload."""
        try:
            resp = self.client.complete_multipart_upload(
                Bucket=session.bucket,
                Key=session.key,
                UploadId=session.upload_id,
                MultipartUpload={
                    "Parts": [
                        {"ETag": part.etag, "PartNumber": part.part_number}
                        for part in parts
                    ]
                },
            )
        except (ClientError, BotoCoreError) as exc:
            raise _store_error(exc, "complete_session") from exc
        return ObjectHandle(
            bucket=session.bucket, key=session.key, etag=resp.get("ETag")
        )

    def abort_session(self, session: TransferSession) -> None:
        """Abort the multipart upload."""
        try:
            self.client.abort_multipart_upload(
                Bucket=session.bucket, Key=session.key, UploadId=session.upload_id
            )
        except (ClientError, BotoCoreError) as exc:
            raise _store_error(exc, "abort_session") from exc

    def get_object_metadata(self, bucket: str, key: str) -> ObjectMetadata:
        """Head the object."""
        try:
            resp = self.client.head_object(Bucket=bucket, Key=key)
        except (ClientError, BotoCoreError) as exc:
            raise _store_error(exc, "get_object_metadata") from exc
        return ObjectMetadata(
            bucket=bucket, key=key, size=resp["ContentLength"], etag=resp.get("ETag")
        )

    def open_object_stream(self, bucket: str, key: str) -> BinaryIO:
        """Get the object body as a stream."""
        try:
            resp = self.client.get_object(Bucket=bucket, Key=key)
        except (ClientError, BotoCoreError) as exc:
            raise _store_error(exc, "open_object_stream") from exc
        return _S3BodyStream(resp["Body"])  # type: ignore[return-value]

    def put_object(self, bucket: str, key: str, body: Any, size: int) -> ObjectHandle:
        """Put the object in a single request."""
        try:
            resp = self.client.put_object(
                Bucket=bucket, Key=key, Body=body, ContentLength=size
            )
        except (ClientError, BotoCoreError) as exc:
            raise _store_error(exc, "put_object") from exc
        return ObjectHandle(bucket=bucket, key=key, etag=resp.get("ETag"))


def build_s3_client(config: StoreConfig) -> S3Client:
    """Build a boto3 S3 client from the store profile.

    Missing credentials fall back to the boto3 credential chain (environment
    variables, shared credentials file, instance profile).
    """
    kwargs: Dict[str, Any] = {}
    if config.endpoint_url is not None:
        kwargs["endpoint_url"] = config.endpoint_url
    if config.region is not None:
        kwargs["region_name"] = config.region
    if config.access_key_id is not None:
        kwargs["aws_access_key_id"] = config.access_key_id
    if config.secret_access_key is not None:
        kwargs["aws_secret_access_key"] = config.secret_access_key

    logger.debug("Building S3 client (endpoint: %s)", config.endpoint_url or "default")
    return boto3.client("s3", **kwargs)


def build_store_client(config: StoreConfig) -> S3ObjectStoreClient:
    """Build the object store client used by the CLI."""
    settings = get_settings()
    return S3ObjectStoreClient(
        build_s3_client(config), page_size=settings.list_page_size
    )
