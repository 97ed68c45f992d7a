# Copyright (c) 2022-present, FriendliAI Inc. All rights reserved.

"""Functional entry points for uploads and downloads."""

from __future__ import annotations

from pathlib import Path
from typing import Optional, Union

from objtransfer.cancel import CancellationToken
from objtransfer.downloader import DownloadStreamer
from objtransfer.progress import ProgressCallback
from objtransfer.schema.transfer import TransferSummary
from objtransfer.store.base import ObjectStoreClient
from objtransfer.uploader import UploadCoordinator


def upload(
    client: ObjectStoreClient,
    bucket: str,
    key: str,
    path: Union[str, Path],
    part_size: Optional[int] = None,
    *,
    progress_callback: Optional[ProgressCallback] = None,
    cancel_token: Optional[CancellationToken] = None,
    restart_on_mismatch: bool = False,
    resumable: bool = True,
) -> TransferSummary:
    """Upload a local file, resuming an unfinished session of the same key.

    Examples:
        Basic usage:

        ```python
        import boto3

        import objtransfer
        from objtransfer.store.s3 import S3ObjectStoreClient

        client = S3ObjectStoreClient(boto3.client("s3"))
        summary = objtransfer.upload(
            client, "my-bucket", "images/mysql.tar.gz", "mysql.tar.gz",
            part_size=40 * 1024 * 1024,
        )
        ```

        Calling it again after a failure uploads only the missing parts. Pass
        `resumable=False` to send the file in a single request instead.

    """
    return UploadCoordinator(client).upload(
        bucket,
        key,
        path,
        part_size,
        progress_callback=progress_callback,
        cancel_token=cancel_token,
        restart_on_mismatch=restart_on_mismatch,
        resumable=resumable,
    )


def download(
    client: ObjectStoreClient,
    bucket: str,
    key: str,
    path: Union[str, Path],
    *,
    progress_callback: Optional[ProgressCallback] = None,
    cancel_token: Optional[CancellationToken] = None,
) -> TransferSummary:
    """Download an object to a local file."""
    return DownloadStreamer(client).download(
        bucket,
        key,
        path,
        progress_callback=progress_callback,
        cancel_token=cancel_token,
    )
