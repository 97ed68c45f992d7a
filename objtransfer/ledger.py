# Copyright (c) 2022-present, FriendliAI Inc. All rights reserved.

"""Committed part bookkeeping for resumable uploads."""

from __future__ import annotations

from typing import Dict, Iterable, Iterator, List, Optional, Set

from objtransfer.errors import (
    IncompleteTransferError,
    PartSizeMismatchError,
    StoreError,
)
from objtransfer.logging import get_logger
from objtransfer.schema.transfer import CommittedPart, PartDescriptor, TransferSession
from objtransfer.store.base import ObjectStoreClient
from objtransfer.utils.chunking import count_parts

logger = get_logger(__name__)


def list_committed_parts(
    client: ObjectStoreClient, session: TransferSession
) -> List[CommittedPart]:
    """List every part committed to the session, ordered by part number.

    Pages are requested until the store stops returning a cursor, so sessions with
    more parts than one listing page are never truncated.

    Args:
        client (ObjectStoreClient): Store that owns the session.
        session (TransferSession): The session to inspect.

    Raises:
        StoreError: Raised when the listing fails, repeats a cursor, or reports the
            same part twice.

    Returns:
        List[CommittedPart]: Committed parts in ascending part number order.

    """
    parts: List[CommittedPart] = []
    seen_cursors: Set[str] = set()
    cursor: Optional[str] = None
    while True:
        page, cursor = client.list_committed_parts(session, cursor)
        parts.extend(page)
        if cursor is None:
            break
        if cursor in seen_cursors:
            raise StoreError(
                f"Part listing returned cursor '{cursor}' twice",
                operation="list_committed_parts",
            )
        seen_cursors.add(cursor)

    parts.sort(key=lambda part: part.part_number)
    for prev, part in zip(parts, parts[1:]):
        if prev.part_number == part.part_number:
            raise StoreError(
                "Part listing reported the part twice",
                operation="list_committed_parts",
                part_number=part.part_number,
            )
    return parts


class PartLedger:
    """Read-only view of the parts committed to one session."""

    def __init__(self, parts: Iterable[CommittedPart]) -> None:
        """Initialize PartLedger."""
        self._parts: Dict[int, CommittedPart] = {}
        for part in parts:
            if part.part_number < 1 or part.size <= 0:
                raise StoreError(
                    f"Invalid committed part (size: {part.size})",
                    operation="list_committed_parts",
                    part_number=part.part_number,
                )
            self._parts[part.part_number] = part

    @classmethod
    def fetch(cls, client: ObjectStoreClient, session: TransferSession) -> PartLedger:
        """Query the store for the committed parts of the session."""
        ledger = cls(list_committed_parts(client, session))
        logger.debug(
            "Session %s has %d committed part(s) (%d bytes)",
            session.upload_id,
            len(ledger),
            ledger.committed_bytes,
        )
        return ledger

    def __len__(self) -> int:
        """Number of committed parts."""
        return len(self._parts)

    def __contains__(self, part_number: object) -> bool:
        """Check whether the part is committed."""
        return part_number in self._parts

    def __iter__(self) -> Iterator[CommittedPart]:
        """Iterate committed parts in part number order."""
        return iter(sorted(self._parts.values(), key=lambda part: part.part_number))

    def get(self, part_number: int) -> Optional[CommittedPart]:
        """Get the committed part, if any."""
        return self._parts.get(part_number)

    @property
    def committed_bytes(self) -> int:
        """Total size of the committed parts."""
        return sum(part.size for part in self._parts.values())

    def check_layout(self, part_size: int, total_size: int) -> None:
        """Verify that the committed parts fit the requested part layout.

        Part boundaries are fixed when a part is first uploaded, so a session
        started with another part size, or for a source of another size, cannot be
        resumed.

        Args:
            part_size (int): Nominal part size of this attempt.
            total_size (int): Size of the source.

        Raises:
            PartSizeMismatchError: Raised when a committed part does not have the
                size this attempt would give it.

        """
        num_parts = count_parts(total_size, part_size)
        last_size = total_size - (num_parts - 1) * part_size
        for part in self:
            if part.part_number > num_parts:
                raise PartSizeMismatchError(
                    f"Part {part.part_number} is committed but the source only has "
                    f"{num_parts} part(s) of {part_size} bytes"
                )
            expected = last_size if part.part_number == num_parts else part_size
            if part.size != expected:
                raise PartSizeMismatchError(
                    f"Part {part.part_number} was committed with {part.size} bytes, "
                    f"expected {expected} bytes"
                )


def ensure_complete(
    parts: List[PartDescriptor], num_parts: int, total_size: int
) -> None:
    """Check that the recorded parts tile the whole source before finalizing.

    Args:
        parts (List[PartDescriptor]): Parts recorded by the upload loop.
        num_parts (int): Number of part iterations taken.
        total_size (int): Size of the source.

    Raises:
        IncompleteTransferError: Raised when a part is missing or not committed, part
            numbers are not the contiguous sequence ``1..num_parts``, byte ranges
            leave a gap or overlap, or the sizes do not add up to ``total_size``.

    """
    by_number = {part.part_number: part for part in parts if part.committed}
    missing = [n for n in range(1, num_parts + 1) if n not in by_number]
    if missing:
        raise IncompleteTransferError(
            f"part(s) {missing} are not committed", missing_parts=missing
        )
    if len(parts) != num_parts or len(by_number) != num_parts:
        raise IncompleteTransferError(
            f"recorded {len(parts)} part(s) for {num_parts} part iteration(s)"
        )

    offset = 0
    for n in range(1, num_parts + 1):
        part = by_number[n]
        if part.offset != offset:
            raise IncompleteTransferError(
                f"part {n} starts at byte {part.offset}, expected {offset}"
            )
        offset = part.end

    if offset != total_size:
        raise IncompleteTransferError(
            f"parts cover {offset} bytes of a {total_size}-byte source"
        )
