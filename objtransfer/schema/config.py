# Copyright (c) 2022-present, FriendliAI Inc. All rights reserved.

"""Schema of Store Config."""

from __future__ import annotations

from pathlib import Path
from typing import Optional, Union

import pydantic
import yaml

from objtransfer.errors import InvalidConfigError
from objtransfer.utils.compat import model_parse
from objtransfer.utils.humanize import parse_bytes


class StoreConfig(pydantic.BaseModel):
    """Object store connection profile."""

    endpoint_url: Optional[str] = None
    region: Optional[str] = None
    access_key_id: Optional[str] = None
    secret_access_key: Optional[str] = None
    part_size: Optional[str] = None

    def part_size_bytes(self) -> Optional[int]:
        """Get the configured part size in bytes."""
        if self.part_size is None:
            return None
        try:
            return parse_bytes(self.part_size)
        except ValueError as exc:
            raise InvalidConfigError(str(exc)) from exc


def load_store_config(path: Union[str, Path, None]) -> StoreConfig:
    """Load a store profile from a YAML file.

    Args:
        path (Union[str, Path, None]): Path to the YAML file. An empty profile is
            returned when it is None.

    Raises:
        InvalidConfigError: Raised when the file cannot be read, is not valid YAML,
            or has invalid fields.

    Returns:
        StoreConfig: Parsed profile.

    """
    if path is None:
        return StoreConfig()

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except OSError as exc:
        raise InvalidConfigError(f"Cannot read config file '{path}': {exc}") from exc
    except yaml.YAMLError as exc:
        raise InvalidConfigError(f"Config file '{path}' is not valid YAML") from exc

    if not isinstance(data, dict):
        raise InvalidConfigError(f"Config file '{path}' must be a mapping")

    try:
        return model_parse(StoreConfig, data)
    except pydantic.ValidationError as exc:
        raise InvalidConfigError(str(exc)) from exc
