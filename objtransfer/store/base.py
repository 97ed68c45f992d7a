# Copyright (c) 2022-present, FriendliAI Inc. All rights reserved.

"""Object store client interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, BinaryIO, Generic, List, Optional, Tuple, TypeVar

from objtransfer.schema.transfer import (
    CommittedPart,
    ObjectHandle,
    ObjectMetadata,
    TransferSession,
    UploadedPartETag,
)
from objtransfer.utils.humanize import MiB

T = TypeVar("T")


class ObjectStoreClient(ABC, Generic[T]):
    """Operations the transfer engine needs from an object store.

    Implementations raise :class:`~objtransfer.errors.StoreError` (or its
    :class:`~objtransfer.errors.ObjectNotFoundError` subclass) when the store
    rejects an operation.
    """

    min_part_size: int = 5 * MiB

    def __init__(self, client: T) -> None:
        """Initialize object store client."""
        self.client = client

    @abstractmethod
    def find_open_session(self, bucket: str, key: str) -> Optional[str]:
        """Find the upload ID of an unfinished session for exactly ``key``."""

    @abstractmethod
    def open_session(self, bucket: str, key: str) -> str:
        """Start a new multipart upload session and return its upload ID."""

    @abstractmethod
    def list_committed_parts(
        self, session: TransferSession, cursor: Optional[str] = None
    ) -> Tuple[List[CommittedPart], Optional[str]]:
        """List one page of committed parts.

        Args:
            session (TransferSession): The session to inspect.
            cursor (Optional[str], optional): Cursor returned by the previous page.
                Defaults to None, which starts from the first part.

        Returns:
            Tuple[List[CommittedPart], Optional[str]]: Parts of the page and the
                cursor of the next page, or None when this is the last page.

        """

    @abstractmethod
    def upload_part(
        self, session: TransferSession, part_number: int, body: Any, size: int
    ) -> str:
        """Upload ``size`` bytes read from ``body`` as a part and return its ETag."""

    @abstractmethod
    def complete_session(
        self, session: TransferSession, parts: List[UploadedPartETag]
    ) -> ObjectHandle:
        """Assemble the parts, in the given order, into the final object."""

    @abstractmethod
    def abort_session(self, session: TransferSession) -> None:
        """Discard the session and every part committed to it."""

    @abstractmethod
    def get_object_metadata(self, bucket: str, key: str) -> ObjectMetadata:
        """Get the metadata of a stored object."""

    @abstractmethod
    def open_object_stream(self, bucket: str, key: str) -> BinaryIO:
        """Open a readable byte stream over a stored object."""

    @abstractmethod
    def put_object(self, bucket: str, key: str, body: Any, size: int) -> ObjectHandle:
        """Store a whole object in one request."""
