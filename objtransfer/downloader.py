# Copyright (c) 2022-present, FriendliAI Inc. All rights reserved.

"""Streaming object download."""

from __future__ import annotations

import time
from contextlib import closing
from pathlib import Path
from typing import Optional, Union

from objtransfer.cancel import CancellationToken
from objtransfer.di.injector import get_settings
from objtransfer.errors import TransferIOError
from objtransfer.logging import get_logger
from objtransfer.progress import ProgressCallback, ProgressTracker
from objtransfer.schema.transfer import TransferSummary
from objtransfer.settings import Settings
from objtransfer.store.base import ObjectStoreClient
from objtransfer.utils.fs import open_destination

logger = get_logger(__name__)


class DownloadStreamer:
    """Copies a stored object to a local file.

    Downloads are not resumable: a failed download leaves a partial file behind and
    the next call starts over from the first byte.
    """

    def __init__(
        self,
        client: ObjectStoreClient,
        settings: Optional[Settings] = None,
    ) -> None:
        """Initialize DownloadStreamer."""
        self._client = client
        self._settings = settings or get_settings()

    def download(
        self,
        bucket: str,
        key: str,
        dest_path: Union[str, Path],
        *,
        progress_callback: Optional[ProgressCallback] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> TransferSummary:
        """Download ``bucket/key`` to ``dest_path``, replacing any existing file.

        Args:
            bucket (str): Source bucket.
            key (str): Source object key.
            dest_path (Union[str, Path]): Local destination. Parent directories are
                created.
            progress_callback (Optional[ProgressCallback], optional): Called with
                ``(bytes_so_far, total_bytes)``. Defaults to None.
            cancel_token (Optional[CancellationToken], optional): Checked between
                chunks. Defaults to None.

        Raises:
            StoreError: Raised when the object cannot be found or read from the store.
            TransferIOError: Raised when the destination cannot be written, or the
                stream fails or ends early. The partial file is left in place.
            TransferCancelledError: Raised when ``cancel_token`` is cancelled.

        Returns:
            TransferSummary: Summary of the download.

        """
        start = time.monotonic()
        path = Path(dest_path)

        metadata = self._client.get_object_metadata(bucket, key)
        stream = self._client.open_object_stream(bucket, key)
        tracker = ProgressTracker(metadata.size, progress_callback)

        written = 0
        with closing(stream), open_destination(path) as out:
            writer = tracker.wrap_writer(out)
            while True:
                if cancel_token is not None and cancel_token.cancelled:
                    logger.warning(
                        "Download of %s/%s cancelled after %d bytes",
                        bucket,
                        key,
                        written,
                    )
                    cancel_token.raise_if_cancelled()
                try:
                    chunk = stream.read(self._settings.io_chunk_size)
                except OSError as exc:
                    raise TransferIOError(
                        f"Object stream of {bucket}/{key} failed after "
                        f"{written} bytes: {exc}"
                    ) from exc
                if not chunk:
                    break
                if written + len(chunk) > metadata.size:
                    raise TransferIOError(
                        f"Object stream of {bucket}/{key} is longer than the "
                        f"{metadata.size} bytes reported by the store"
                    )
                try:
                    writer.write(chunk)
                except OSError as exc:
                    raise TransferIOError(f"Cannot write to '{path}': {exc}") from exc
                written += len(chunk)

        if written != metadata.size:
            raise TransferIOError(
                f"Object stream of {bucket}/{key} ended after {written} "
                f"of {metadata.size} bytes"
            )
        tracker.finish()

        logger.info(
            "Downloaded %s/%s to %s (%d bytes)", bucket, key, path, metadata.size
        )
        return TransferSummary(
            bucket=bucket,
            key=key,
            total_bytes=metadata.size,
            transferred_bytes=written,
            elapsed=time.monotonic() - start,
            etag=metadata.etag,
        )
