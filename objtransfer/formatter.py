# Copyright (c) 2022-present, FriendliAI Inc. All rights reserved.

"""Object Transfer CLI Output Formatter."""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Union, cast

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table


def get_value(data: Dict[str, Any], keys: str) -> str:
    """Get value of `key` from `data`.

    Unlike dict.get method, it is available to access the nested value in `data`.

    Args:
        data (Dict[str, Any]): Data to read.
        keys (str): Dot(.)-separated nested keys in data to access the value.

    Returns:
        str: The retrieved data, or "-" when it is missing.

    """
    value: Any = data
    for key in keys.split("."):
        # e.g. `data.results[2].a`
        getitem_match = re.match(r"(.+)\[(-?\d+)\]$", key)
        if getitem_match:
            value = value.get(getitem_match.group(1))[int(getitem_match.group(2))]
        else:
            value = value.get(key)
        if value is None:
            break
    if isinstance(value, Enum):
        value = value.value
    if value is None:
        return "-"
    if isinstance(value, list):
        return ", ".join(str(v) for v in value) or "-"
    return str(value)


@dataclass
class Formatter:
    """Formatter helps data formatting and visualization."""

    name: str

    def __post_init__(self) -> None:
        """Post-init formatter."""
        self._console = Console()


@dataclass
class ListFormatter(Formatter):
    """Base interface for list data formatter."""

    fields: List[str]
    headers: List[str]

    def __post_init__(self) -> None:
        """Post-init formatter."""
        super().__post_init__()
        assert len(self.fields) == len(self.headers)

        self._styling_map: Dict[str, Any] = {}
        self._converters: Dict[str, Callable[[str], str]] = {}

    def apply_styling(self, header: str, **kwargs) -> None:
        """Apply the styling."""
        self._styling_map[header] = kwargs

    def add_converter(self, field_name: str, converter: Callable[[str], str]) -> None:
        """Convert the rendered value of a field, e.g. bytes to a human size."""
        self._converters[field_name] = converter

    def _render_row(self, data: Dict[str, Any]) -> List[str]:
        row = []
        for f in self.fields:
            value = get_value(data, f)
            if f in self._converters and value != "-":
                value = self._converters[f](value)
            row.append(value)
        return row


@dataclass
class TableFormatter(ListFormatter):
    """Table formatter for visualizing tabulated data."""

    caption: Optional[str] = None
    table: Optional[Table] = None

    def render(self, data: List[Dict[str, Any]]) -> None:
        """Print the rendered output."""
        self._console.print(self.get_renderable(data))

    def get_renderable(self, data: List[Dict[str, Any]]) -> Table:
        """Get rendered visualizer."""
        self.table = Table(title=self.name, caption=self.caption, box=box.SIMPLE)
        for header in self.headers:
            self.table.add_column(header, **self._styling_map.get(header, {}))
        for d in data:
            self.table.add_row(*self._render_row(d))
        return self.table


@dataclass
class PanelFormatter(ListFormatter):
    """Panel formatter for visualizing information detail in a panel."""

    subtitle: Optional[str] = None
    panel: Optional[Panel] = None

    def render(self, data: Union[List[Dict[str, Any]], Dict[str, Any]]) -> None:
        """Print the rendered output."""
        self._console.print(self.get_renderable(data))

    def get_renderable(
        self, data: Union[List[Dict[str, Any]], Dict[str, Any]]
    ) -> Panel:
        """Get rendered visualizer."""
        if not isinstance(data, list):
            data = [data]

        table = Table(box=None, show_header=False)
        table.add_column("k", style="dim bold")
        table.add_column("v")
        for d in data:
            for k, v in zip(self.headers, self._render_row(d)):
                table.add_row(k, v)
        self.panel = Panel(table, title=self.name, subtitle=self.subtitle)
        return cast(Panel, self.panel)
