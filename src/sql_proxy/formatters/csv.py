"""CSV formatter for envelope rows (RFC 4180 compliant)."""

from __future__ import annotations

import csv
from io import StringIO
from typing import TYPE_CHECKING, Any

from sql_proxy.formatters.base import column_names, registry

if TYPE_CHECKING:
    from collections.abc import Iterator


def _write_row(values: list[str]) -> str:
    buf = StringIO()
    writer = csv.writer(buf)
    writer.writerow(values)
    return buf.getvalue().rstrip("\r\n")


class CSVFormatter:
    def __init__(self, no_header: bool = False) -> None:
        self.no_header = no_header

    def format(self, rows: list[dict[str, Any]]) -> Iterator[str]:
        columns = column_names(rows)
        if not self.no_header and columns:
            yield _write_row(columns)

        for row in rows:
            yield _write_row(
                ["" if row.get(col) is None else str(row[col]) for col in columns]
            )


registry.register("csv", CSVFormatter)
