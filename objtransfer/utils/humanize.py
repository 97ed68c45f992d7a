# Copyright (c) 2022-present, FriendliAI Inc. All rights reserved.

"""Byte sizes and durations from/to human friendly format."""

from __future__ import annotations

from math import floor, log2
from re import IGNORECASE, compile
from typing import Final, List

Byte: Final = 1
KiB: Final = Byte * 1024
MiB: Final = KiB * 1024
GiB: Final = MiB * 1024
TiB: Final = GiB * 1024

KB: Final = Byte * 1000
MB: Final = KB * 1000
GB: Final = MB * 1000
TB: Final = GB * 1000

_ByteStringRe: Final = compile(r"^([\d.]+)\s?([a-z]?i?b?)$", IGNORECASE)
_ByteSuffixLookup: Final = {
    "b": Byte,
    "kib": KiB,
    "kb": KB,
    "mib": MiB,
    "mb": MB,
    "gib": GiB,
    "gb": GB,
    "tib": TiB,
    "tb": TB,
    # Without suffix
    "ki": KiB,
    "k": KB,
    "mi": MiB,
    "m": MB,
    "gi": GiB,
    "g": GB,
    "ti": TiB,
    "t": TB,
}

_IecUnits = ["B", "KiB", "MiB", "GiB", "TiB", "PiB", "EiB"]


def parse_bytes(_s: str) -> int:
    """Parse a human-readable byte string such as ``40MiB`` into a byte count.

    Args:
        _s: the string to parse.

    Returns:
        parsed number of bytes, rounded down.

    Raises:
        ValueError: if the string cannot be parsed.

    """
    s = _s.replace(",", "").strip()
    matches = _ByteStringRe.fullmatch(s)

    if matches is None:
        msg = f"Cannot parse bytes {s}"
        raise ValueError(msg)

    digit = float(matches[1])
    suffix = matches[2]

    if suffix:
        multiplier = _ByteSuffixLookup.get(suffix.lower())
        if multiplier is None:
            msg = f"Unknown byte unit {suffix}"
            raise ValueError(msg)
        digit *= multiplier

    return int(digit)


def format_ibytes(v: float) -> str:
    """Format a number to a human readable IEC byte string."""
    return _humanize_bytes(v, 1024, _IecUnits)


def _humanize_bytes(v: float, base: int, units: List[str]) -> str:
    if v < 10:  # noqa: PLR2004
        return f"{int(v)} {units[0]}"

    exp = min(floor(log2(v) / log2(base)), len(units) - 1)
    unit = units[exp]

    val = round((v / base**exp) * 10) / 10

    if val < 10:  # noqa: PLR2004
        return f"{val:.1f} {unit}"

    return f"{int(val)} {unit}"


def format_elapsed(seconds: float) -> str:
    """Format elapsed seconds as ``{m} min {s} s``."""
    minutes = int(seconds) // 60
    secs = int(seconds) % 60
    if minutes:
        return f"{minutes} min {secs} s"
    return f"{seconds:.2f} s"
