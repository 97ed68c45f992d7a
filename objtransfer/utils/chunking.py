# Copyright (c) 2022-present, FriendliAI Inc. All rights reserved.

"""Part size planning utils."""

from __future__ import annotations

from objtransfer.errors import InvalidConfigError
from objtransfer.logging import get_logger
from objtransfer.utils.humanize import format_ibytes

logger = get_logger(__name__)


# Adapted from ChunksizeAdjuster of boto/s3transfer.
# See https://github.com/boto/s3transfer.
class ChunksizeAdjuster:
    """Upload part size adjuster."""

    def __init__(self, min_size: int, max_parts: int) -> None:
        """Initializes ChunksizeAdjuster."""
        self._min_size = min_size
        self._max_parts = max_parts

    def adjust_chunksize(self, current_chunksize: int, file_size: int) -> int:
        """Get a part size that fits within the store limits.

        A part size below the store minimum is rejected instead of being raised.

        Args:
            current_chunksize (int): The requested part size.
            file_size (int): The size of the file to upload.

        Raises:
            InvalidConfigError: Raised when the part size is not positive or is
                smaller than the store minimum.

        Returns:
            int: A part size that keeps the number of parts within the limit. The
                result only depends on the arguments, so retries with the same
                input produce the same part boundaries.

        """
        if current_chunksize <= 0:
            raise InvalidConfigError(f"Part size must be positive: {current_chunksize}")
        if current_chunksize < self._min_size:
            raise InvalidConfigError(
                f"Part size {format_ibytes(current_chunksize)} is smaller than the "
                f"store minimum {format_ibytes(self._min_size)}"
            )
        return self._adjust_for_max_parts(current_chunksize, file_size)

    def _adjust_for_max_parts(self, current_chunksize: int, file_size: int) -> int:
        chunksize = current_chunksize
        num_parts = count_parts(file_size, chunksize)

        while num_parts > self._max_parts:
            chunksize *= 2
            num_parts = count_parts(file_size, chunksize)

        if chunksize != current_chunksize:
            logger.debug(
                (
                    "Part size would result in the number of parts exceeding the "
                    "maximum. Setting to %s from %s."
                ),
                chunksize,
                current_chunksize,
            )

        return chunksize


def count_parts(file_size: int, part_size: int) -> int:
    """Number of parts needed to cover the file."""
    return -(-file_size // part_size)

