"""Query description source resolution for SQL Proxy.

Resolves the JSON query description from one of three sources:
1. Inline (-e flag)  (highest priority)
2. File path         (middle priority)
3. stdin             (lowest priority)
"""

from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Any

from sql_proxy.core.exceptions import InputError


def _read_source(inline: str | None, file_path: str | None) -> tuple[str, str]:
    if inline is not None:
        return inline, "inline query"

    if file_path is not None:
        p = Path(file_path)
        if not p.exists():
            msg = (
                f"Query file not found: {file_path}\n"
                "Use -e for inline queries or pipe the description via stdin."
            )
            raise InputError(msg)
        return p.read_text(), file_path

    if not sys.stdin.isatty():
        return sys.stdin.read(), "stdin"

    msg = "No query provided. Use -e, file path, or pipe to stdin."
    raise InputError(msg)


def resolve_query_source(
    inline: str | None,
    file_path: str | None,
) -> dict[str, Any]:
    """Resolve a JSON query description from inline, file, or stdin.

    Precedence: inline > file > stdin.
    Raises InputError when no source is available or the text is not a
    JSON object.
    """
    text, origin = _read_source(inline, file_path)
    try:
        description = json.loads(text)
    except json.JSONDecodeError as e:
        msg = f"Invalid JSON in {origin}: {e.msg} (line {e.lineno}, column {e.colno})"
        raise InputError(msg) from e
    if not isinstance(description, dict):
        msg = f"Query description in {origin} must be a JSON object"
        raise InputError(msg)
    return description
