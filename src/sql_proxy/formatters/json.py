"""JSON formatter for envelope rows."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

from sql_proxy.formatters.base import registry

if TYPE_CHECKING:
    from collections.abc import Iterator


def _serialize_value(val: Any) -> Any:
    if isinstance(val, (int, float, str, bool, type(None))):
        return val
    if isinstance(val, (list, dict)):
        return val
    return str(val)


class JSONFormatter:
    def __init__(self, compact: bool = False) -> None:
        self.compact = compact

    def format(self, rows: list[dict[str, Any]]) -> Iterator[str]:
        serialized = [
            {key: _serialize_value(val) for key, val in row.items()} for row in rows
        ]
        if self.compact:
            yield json.dumps(serialized, default=str)
        else:
            yield json.dumps(serialized, indent=2, default=str)


registry.register("json", JSONFormatter)
