# Copyright (c) 2022-present, FriendliAI Inc. All rights reserved.

"""Transfer request and response schemas."""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel


class TransferSession(BaseModel):
    """Resumable multipart upload session."""

    bucket: str
    key: str
    upload_id: str
    part_size: Optional[int] = None
    total_size: Optional[int] = None
    resumed: bool = False


class CommittedPart(BaseModel):
    """Part already committed to the store for a session."""

    part_number: int
    size: int
    etag: str


class PartDescriptor(BaseModel):
    """Byte range of the source that forms one part."""

    part_number: int
    offset: int
    size: int
    etag: Optional[str] = None
    committed: bool = False

    @property
    def end(self) -> int:
        """Exclusive end offset of the part."""
        return self.offset + self.size


class UploadedPartETag(BaseModel):
    """Schema of entity tag info of uploaded part."""

    etag: str
    part_number: int


class ObjectMetadata(BaseModel):
    """Stored object metadata."""

    bucket: str
    key: str
    size: int
    etag: Optional[str] = None


class ObjectHandle(BaseModel):
    """Reference to a finalized object."""

    bucket: str
    key: str
    etag: Optional[str] = None


class TransferSummary(BaseModel):
    """Outcome of one upload or download call."""

    bucket: str
    key: str
    total_bytes: int
    transferred_bytes: int
    elapsed: float
    upload_id: Optional[str] = None
    etag: Optional[str] = None
    uploaded_parts: List[int] = []
    skipped_parts: List[int] = []
    resumed: bool = False
