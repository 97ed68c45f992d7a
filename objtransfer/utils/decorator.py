# Copyright (c) 2022-present, FriendliAI Inc. All rights reserved.

"""Decorator utils."""

from __future__ import annotations

import functools
from typing import Any, Callable

from objtransfer.errors import ObjTransferError
from objtransfer.utils.format import secho_error_and_exit


def check_transfer(func: Callable[..., Any]) -> Callable[..., Any]:
    """Print transfer errors and exit with a non-zero status."""

    @functools.wraps(func)
    def inner(*args, **kwargs) -> Any:
        try:
            return func(*args, **kwargs)
        except ObjTransferError as exc:
            secho_error_and_exit(str(exc))

    return inner
