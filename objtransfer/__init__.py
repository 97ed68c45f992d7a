# Copyright (c) 2022-present, FriendliAI Inc. All rights reserved.

"""Resumable chunked object transfer between local disk and object stores."""

from __future__ import annotations

from objtransfer.cancel import CancellationToken
from objtransfer.di.injector import set_default_modules
from objtransfer.di.modules import default_modules
from objtransfer.downloader import DownloadStreamer
from objtransfer.progress import ProgressTracker
from objtransfer.transfer import download, upload
from objtransfer.uploader import UploadCoordinator

set_default_modules(default_modules)

__all__ = [
    "CancellationToken",
    "DownloadStreamer",
    "ProgressTracker",
    "UploadCoordinator",
    "download",
    "upload",
]
