# Copyright (c) 2022-present, FriendliAI Inc. All rights reserved.

"""Bounded stream views."""

from __future__ import annotations

import io
import os
from typing import BinaryIO


class SectionReader:
    """Read-only view of ``[offset, offset + length)`` of a seekable file.

    The view keeps its own cursor and seeks the underlying file before every read.
    ``seek`` and ``tell`` are relative to the section start so that HTTP clients can
    rewind the body when they resend a request.
    """

    def __init__(self, stream: BinaryIO, offset: int, length: int) -> None:
        """Initialize SectionReader."""
        self._stream = stream
        self._offset = offset
        self._length = length
        self._cursor = 0

    @property
    def offset(self) -> int:
        """Position of the section start in the underlying file."""
        return self._offset

    def __len__(self) -> int:
        """Length of the section in bytes."""
        return self._length

    def readable(self) -> bool:
        """Sections are always readable."""
        return True

    def seekable(self) -> bool:
        """Sections are always seekable."""
        return True

    def read(self, size: int = -1) -> bytes:
        """Read at most ``size`` bytes without crossing the section end."""
        remaining = self._length - self._cursor
        if remaining <= 0:
            return b""
        if size is None or size < 0 or size > remaining:
            size = remaining

        self._stream.seek(self._offset + self._cursor)
        data = self._stream.read(size)
        self._cursor += len(data)
        return data

    def seek(self, offset: int, whence: int = os.SEEK_SET) -> int:
        """Move the cursor within the section."""
        if whence == os.SEEK_SET:
            target = offset
        elif whence == os.SEEK_CUR:
            target = self._cursor + offset
        elif whence == os.SEEK_END:
            target = self._length + offset
        else:
            raise ValueError(f"Invalid whence ({whence})")

        if target < 0:
            raise io.UnsupportedOperation("Cannot seek before the section start")
        self._cursor = min(target, self._length)
        return self._cursor

    def tell(self) -> int:
        """Current position relative to the section start."""
        return self._cursor
