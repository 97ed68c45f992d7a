# Copyright (c) 2022-present, FriendliAI Inc. All rights reserved.

"""Cooperative transfer cancellation."""

from __future__ import annotations

from threading import Event
from typing import Optional

from objtransfer.errors import TransferCancelledError


class CancellationToken:
    """Thread-safe flag checked by transfers at part and chunk boundaries.

    Cancelling never interrupts a part that is already being uploaded; the transfer
    stops at the next boundary and the upload session stays open for resumption.
    """

    def __init__(self) -> None:
        """Initialize CancellationToken."""
        self._event = Event()
        self._reason: Optional[str] = None

    def cancel(self, reason: Optional[str] = None) -> None:
        """Request cancellation."""
        self._reason = reason
        self._event.set()

    @property
    def cancelled(self) -> bool:
        """Whether cancellation was requested."""
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        """Raise TransferCancelledError if cancellation was requested."""
        if self._event.is_set():
            raise TransferCancelledError(self._reason or "requested by caller")
