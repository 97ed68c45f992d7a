# Copyright (c) 2022-present, FriendliAI Inc. All rights reserved.

"""Transfer progress tracking."""

from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Callable, Iterator, Optional

from tqdm import tqdm
from tqdm.utils import CallbackIOWrapper

from objtransfer.utils.humanize import KiB
from objtransfer.utils.io import SectionReader

ProgressCallback = Callable[[int, int], None]


class ProgressTracker:
    """Cumulative byte counter reported through a ``(transferred, total)`` callback.

    The counter never decreases. Until :meth:`finish` is called it stays below
    ``total``, so the callback sees ``transferred == total`` exactly once, when the
    transfer is known to be complete.
    """

    def __init__(
        self,
        total: int,
        callback: Optional[ProgressCallback] = None,
        initial: int = 0,
    ) -> None:
        """Initialize ProgressTracker."""
        self._total = total
        self._callback = callback
        self._limit = max(total - 1, 0)
        self._transferred = min(initial, self._limit)
        self._completed = False

    @property
    def total(self) -> int:
        """Total number of bytes expected."""
        return self._total

    @property
    def transferred(self) -> int:
        """Number of bytes reported so far."""
        return self._transferred

    def update(self, n: int) -> None:
        """Record ``n`` more bytes. Zero-byte reads and writes are ignored."""
        if n <= 0:
            return
        self.advance_to(self._transferred + n)

    def advance_to(self, position: int) -> None:
        """Record that every byte before ``position`` has been transferred.

        Positions at or behind the current count are ignored.
        """
        if self._completed:
            return

        position = min(position, self._limit)
        if position <= self._transferred:
            return
        self._transferred = position
        self._notify()

    def finish(self) -> None:
        """Report the transfer as complete."""
        if self._completed:
            return

        self._completed = True
        self._transferred = self._total
        self._notify()

    def wrap_section(self, section: SectionReader) -> CallbackIOWrapper:
        """Wrap ``section.read`` to report the furthest position read so far.

        Rewinding the section and reading it again, as HTTP clients do to checksum
        or resend a request body, does not count the same bytes twice.
        """
        return CallbackIOWrapper(
            lambda _: self.advance_to(section.offset + section.tell()),
            section,
            "read",
        )

    def wrap_writer(self, stream: Any) -> CallbackIOWrapper:
        """Wrap ``stream.write`` to report the length of every write."""
        return CallbackIOWrapper(self.update, stream, "write")

    def _notify(self) -> None:
        if self._callback is not None:
            self._callback(self._transferred, self._total)


@contextmanager
def tqdm_progress(desc: str) -> Iterator[ProgressCallback]:
    """Render progress callbacks with a tqdm bar."""
    pbar: Optional[tqdm] = None

    def callback(transferred: int, total: int) -> None:
        nonlocal pbar
        if pbar is None:
            pbar = tqdm(
                desc=desc,
                total=total,
                unit="B",
                unit_scale=True,
                unit_divisor=KiB,
            )
        pbar.update(transferred - pbar.n)

    try:
        yield callback
    finally:
        if pbar is not None:
            pbar.close()
