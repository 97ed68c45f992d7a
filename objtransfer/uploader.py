# Copyright (c) 2022-present, FriendliAI Inc. All rights reserved.

"""Resumable multipart upload."""

# pylint: disable=too-many-arguments, too-many-locals

from __future__ import annotations

import os
import time
from pathlib import Path
from typing import BinaryIO, List, Optional, Union

from objtransfer.cancel import CancellationToken
from objtransfer.di.injector import get_settings
from objtransfer.errors import PartSizeMismatchError, StoreError, TransferIOError
from objtransfer.ledger import PartLedger, ensure_complete
from objtransfer.logging import get_logger
from objtransfer.progress import ProgressCallback, ProgressTracker
from objtransfer.schema.transfer import (
    PartDescriptor,
    TransferSession,
    TransferSummary,
    UploadedPartETag,
)
from objtransfer.settings import Settings
from objtransfer.store.base import ObjectStoreClient
from objtransfer.utils.chunking import ChunksizeAdjuster, count_parts
from objtransfer.utils.fs import open_source
from objtransfer.utils.io import SectionReader

logger = get_logger(__name__)


class UploadCoordinator:
    """Uploads a local file as a multipart object, resuming unfinished sessions.

    Parts are uploaded one at a time in increasing part number order. Parts that
    the store already holds for an open session of the same key are skipped, so
    calling :meth:`upload` again after any failure continues where the previous
    attempt stopped.
    """

    def __init__(
        self,
        client: ObjectStoreClient,
        settings: Optional[Settings] = None,
    ) -> None:
        """Initialize UploadCoordinator."""
        self._client = client
        self._settings = settings or get_settings()
        self._adjuster = ChunksizeAdjuster(
            min_size=client.min_part_size, max_parts=self._settings.max_num_parts
        )

    def upload(
        self,
        bucket: str,
        key: str,
        source_path: Union[str, Path],
        part_size: Optional[int] = None,
        *,
        progress_callback: Optional[ProgressCallback] = None,
        cancel_token: Optional[CancellationToken] = None,
        restart_on_mismatch: bool = False,
        resumable: bool = True,
    ) -> TransferSummary:
        """Upload a local file to ``bucket/key``.

        Args:
            bucket (str): Destination bucket.
            key (str): Destination object key.
            source_path (Union[str, Path]): Path to the local file.
            part_size (Optional[int], optional): Nominal part size in bytes. Defaults
                to ``Settings.default_part_size``. Use the same value when retrying,
                since an open session can only be resumed with its original layout.
            progress_callback (Optional[ProgressCallback], optional): Called with
                ``(bytes_so_far, total_bytes)``. Defaults to None.
            cancel_token (Optional[CancellationToken], optional): Checked before every
                part. Defaults to None.
            restart_on_mismatch (bool, optional): Abort an open session whose parts
                do not match the layout and start over instead of failing. Defaults
                to False.
            resumable (bool, optional): Send the file as a multipart upload that a
                later call can resume. When False, the whole file is sent in a
                single request and a failure leaves nothing on the store. Defaults
                to True.

        Raises:
            TransferIOError: Raised when the source cannot be opened or read.
            InvalidConfigError: Raised when the part size is below the store minimum.
            StoreError: Raised when the store rejects an operation. The session is
                left open so that the next call resumes it.
            PartSizeMismatchError: Raised when the open session was started with a
                different part size or source size.
            IncompleteTransferError: Raised when the recorded parts do not cover the
                source. The session is not finalized.
            TransferCancelledError: Raised when ``cancel_token`` is cancelled. The
                session is left open.

        Returns:
            TransferSummary: Summary of the upload.

        """
        start = time.monotonic()
        path = Path(source_path)

        with open_source(path) as f:
            try:
                total_size = os.fstat(f.fileno()).st_size
            except OSError as exc:
                raise TransferIOError(f"Cannot stat '{path}': {exc}") from exc

            tracker = ProgressTracker(total_size, progress_callback)
            if total_size == 0 or not resumable:
                return self._upload_single(
                    f, bucket, key, total_size, tracker, cancel_token, start
                )

            part_size = self._adjuster.adjust_chunksize(
                part_size or self._settings.default_part_size, total_size
            )
            session = self._acquire_session(bucket, key, part_size, total_size)
            ledger = PartLedger.fetch(self._client, session)
            try:
                ledger.check_layout(part_size, total_size)
            except PartSizeMismatchError as exc:
                if not restart_on_mismatch:
                    raise
                logger.warning(
                    "Aborting session %s and starting over: %s", session.upload_id, exc
                )
                self._client.abort_session(session)
                session = self._open_session(bucket, key, part_size, total_size)
                ledger = PartLedger([])

            parts = self._upload_parts(f, session, ledger, tracker, cancel_token)

        num_parts = count_parts(total_size, part_size)
        ensure_complete(parts, num_parts, total_size)

        handle = self._client.complete_session(
            session,
            [UploadedPartETag(part_number=p.part_number, etag=p.etag) for p in parts],
        )
        tracker.finish()

        uploaded = [p.part_number for p in parts if p.part_number not in ledger]
        summary = TransferSummary(
            bucket=bucket,
            key=key,
            total_bytes=total_size,
            transferred_bytes=sum(p.size for p in parts if p.part_number not in ledger),
            elapsed=time.monotonic() - start,
            upload_id=session.upload_id,
            etag=handle.etag,
            uploaded_parts=uploaded,
            skipped_parts=[p.part_number for p in parts if p.part_number in ledger],
            resumed=session.resumed,
        )
        logger.info(
            "Uploaded %s/%s (%d bytes, %d part(s) uploaded, %d skipped)",
            bucket,
            key,
            total_size,
            len(summary.uploaded_parts),
            len(summary.skipped_parts),
        )
        return summary

    def _upload_single(
        self,
        f: BinaryIO,
        bucket: str,
        key: str,
        total_size: int,
        tracker: ProgressTracker,
        cancel_token: Optional[CancellationToken],
        start: float,
    ) -> TransferSummary:
        # Multipart parts must be non-empty, so an empty source always comes here.
        if cancel_token is not None:
            cancel_token.raise_if_cancelled()

        body = tracker.wrap_section(SectionReader(f, 0, total_size))
        try:
            handle = self._client.put_object(bucket, key, body, total_size)
        except OSError as exc:
            raise TransferIOError(f"Cannot read the source: {exc}") from exc
        tracker.finish()

        logger.info(
            "Uploaded %s/%s in a single request (%d bytes)", bucket, key, total_size
        )
        return TransferSummary(
            bucket=bucket,
            key=key,
            total_bytes=total_size,
            transferred_bytes=total_size,
            elapsed=time.monotonic() - start,
            etag=handle.etag,
        )

    def _acquire_session(
        self, bucket: str, key: str, part_size: int, total_size: int
    ) -> TransferSession:
        upload_id = self._client.find_open_session(bucket, key)
        if upload_id is None:
            return self._open_session(bucket, key, part_size, total_size)

        logger.info("Resuming upload session %s for %s/%s", upload_id, bucket, key)
        return TransferSession(
            bucket=bucket,
            key=key,
            upload_id=upload_id,
            part_size=part_size,
            total_size=total_size,
            resumed=True,
        )

    def _open_session(
        self, bucket: str, key: str, part_size: int, total_size: int
    ) -> TransferSession:
        upload_id = self._client.open_session(bucket, key)
        logger.info("Opened upload session %s for %s/%s", upload_id, bucket, key)
        return TransferSession(
            bucket=bucket,
            key=key,
            upload_id=upload_id,
            part_size=part_size,
            total_size=total_size,
        )

    def _upload_parts(
        self,
        f: BinaryIO,
        session: TransferSession,
        ledger: PartLedger,
        tracker: ProgressTracker,
        cancel_token: Optional[CancellationToken],
    ) -> List[PartDescriptor]:
        assert session.part_size is not None and session.total_size is not None

        parts: List[PartDescriptor] = []
        part_number = 0
        offset = 0
        while offset < session.total_size:
            part_number += 1
            if cancel_token is not None and cancel_token.cancelled:
                logger.warning(
                    "Upload cancelled before part %d; session %s is kept",
                    part_number,
                    session.upload_id,
                )
                cancel_token.raise_if_cancelled()

            committed = ledger.get(part_number)
            if committed is not None:
                logger.debug("Part %d is already committed, skipping", part_number)
                parts.append(
                    PartDescriptor(
                        part_number=part_number,
                        offset=offset,
                        size=committed.size,
                        etag=committed.etag,
                        committed=True,
                    )
                )
                tracker.advance_to(offset + committed.size)
                # Trust the size the store recorded when the part was uploaded.
                offset += committed.size
                continue

            size = min(session.part_size, session.total_size - offset)
            etag = self._upload_part(f, session, part_number, offset, size, tracker)
            tracker.advance_to(offset + size)
            parts.append(
                PartDescriptor(
                    part_number=part_number,
                    offset=offset,
                    size=size,
                    etag=etag,
                    committed=True,
                )
            )
            offset += size

        return parts

    def _upload_part(
        self,
        f: BinaryIO,
        session: TransferSession,
        part_number: int,
        offset: int,
        size: int,
        tracker: ProgressTracker,
    ) -> str:
        body = tracker.wrap_section(SectionReader(f, offset, size))
        logger.debug(
            "Uploading part %d (bytes %d-%d)", part_number, offset, offset + size - 1
        )
        try:
            return self._client.upload_part(session, part_number, body, size)
        except StoreError:
            logger.warning(
                "Part %d failed; session %s is kept for resumption",
                part_number,
                session.upload_id,
            )
            raise
        except OSError as exc:
            raise TransferIOError(
                f"Cannot read part {part_number} of the source: {exc}"
            ) from exc
