# Copyright (c) 2022-present, FriendliAI Inc. All rights reserved.

"""Transfer Settings."""

from __future__ import annotations

import os

from objtransfer.utils.humanize import KiB, MiB, parse_bytes


class Settings:
    """Transfer settings."""

    default_part_size = 40 * MiB
    max_num_parts = 10000
    io_chunk_size = 256 * KiB
    list_page_size = 1000


class ProductionSettings(Settings):
    """Settings with overrides from the environment."""

    default_part_size = parse_bytes(
        os.environ.get("OBJTRANSFER_PART_SIZE", f"{Settings.default_part_size}")
    )
    io_chunk_size = parse_bytes(
        os.environ.get("OBJTRANSFER_IO_CHUNK_SIZE", f"{Settings.io_chunk_size}")
    )
