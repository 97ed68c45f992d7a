# Copyright (c) 2022-present, FriendliAI Inc. All rights reserved.

"""Object transfer errors."""

from __future__ import annotations

from typing import List, Optional


class ObjTransferError(Exception):
    """Object transfer exception base."""


class InvalidConfigError(ObjTransferError):
    """Invalid configuration provided."""

    def __init__(self, detail: Optional[str] = None) -> None:
        """Initialize InvalidConfigError."""
        super().__init__(f"Invalid configuration provided: {detail}")


class TransferIOError(ObjTransferError):
    """Local file could not be opened, read or written."""

    def __init__(self, detail: Optional[str] = None) -> None:
        """Initialize TransferIOError."""
        super().__init__(f"Local I/O failed: {detail}")


class StoreError(ObjTransferError):
    """The object store rejected an operation."""

    def __init__(
        self,
        detail: Optional[str] = None,
        *,
        operation: Optional[str] = None,
        part_number: Optional[int] = None,
    ) -> None:
        """Initialize StoreError."""
        self.operation = operation
        self.part_number = part_number
        where = operation or "store"
        if part_number is not None:
            where = f"{where} (part {part_number})"
        super().__init__(f"Object store error in {where}: {detail}")


class ObjectNotFoundError(StoreError):
    """Requested object or session does not exist."""


class PartSizeMismatchError(ObjTransferError):
    """Committed parts of an open session disagree with the requested layout."""

    def __init__(self, detail: Optional[str] = None) -> None:
        """Initialize PartSizeMismatchError."""
        super().__init__(f"Part layout mismatch: {detail}")


class IncompleteTransferError(ObjTransferError):
    """Upload loop ended without accounting for every part."""

    def __init__(
        self, detail: Optional[str] = None, missing_parts: Optional[List[int]] = None
    ) -> None:
        """Initialize IncompleteTransferError."""
        self.missing_parts = missing_parts or []
        super().__init__(
            f"Upload is incomplete, retry to resume the session: {detail}"
        )


class TransferCancelledError(ObjTransferError):
    """Transfer was cancelled by the caller."""

    def __init__(self, detail: Optional[str] = None) -> None:
        """Initialize TransferCancelledError."""
        super().__init__(f"Transfer cancelled: {detail}")
