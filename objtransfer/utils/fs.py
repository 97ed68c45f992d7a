# Copyright (c) 2022-present, FriendliAI Inc. All rights reserved.

"""Local File System Utilities."""

from __future__ import annotations

import os
from pathlib import Path
from typing import BinaryIO

from objtransfer.errors import TransferIOError


def open_source(path: Path) -> BinaryIO:
    """Open a file for reading, translating OS failures."""
    if path.is_dir():
        raise TransferIOError(f"'{path}' is a directory")
    try:
        return open(path, "rb")
    except OSError as exc:
        raise TransferIOError(f"Cannot open '{path}': {exc}") from exc


def open_destination(path: Path) -> BinaryIO:
    """Create or truncate a file for writing, creating parent directories."""
    dirpath = path.parent
    try:
        os.makedirs(dirpath, exist_ok=True)
    except OSError as exc:
        raise TransferIOError(
            f"Cannot create directory({dirpath}) to download file: {exc!r}"
        ) from exc
    try:
        return open(path, "wb")
    except OSError as exc:
        raise TransferIOError(f"Cannot open '{path}' for writing: {exc}") from exc
