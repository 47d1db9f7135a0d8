"""Laravel `.env` parsing and key rewriting."""

from __future__ import annotations

import re
from typing import Dict, List, Mapping, Optional

_KEY_LINE = re.compile(r"^\s*(?:export\s+)?([A-Za-z_][A-Za-z0-9_]*)\s*=")
_SAFE_VALUE = re.compile(r"^[A-Za-z0-9_./:@+,=-]*$")


def format_value(value: str) -> str:
    if _SAFE_VALUE.match(value):
        return value
    if "'" not in value:
        # phpdotenv treats single-quoted values literally
        return f"'{value}'"
    escaped = value.replace("\\", "\\\\").replace('"', '\\"').replace("$", "\\$")
    return f'"{escaped}"'


def read_value(text: str, key: str) -> Optional[str]:
    """Return the first value assigned to `key`, unquoted."""
    for line in text.splitlines():
        match = _KEY_LINE.match(line)
        if match and match.group(1) == key:
            value = line[match.end():].strip()
            if len(value) >= 2 and value[0] == value[-1] and value[0] in ('"', "'"):
                value = value[1:-1]
            return value
    return None


def rewrite(text: str, overrides: Mapping[str, str]) -> str:
    """Replace every assignment of each key in `overrides`.

    Lines for other keys, comments and blank lines are kept verbatim. Keys not
    present in `text` are appended at the end.
    """
    seen: Dict[str, bool] = {key: False for key in overrides}
    lines: List[str] = []
    for line in text.splitlines():
        match = _KEY_LINE.match(line)
        if match and match.group(1) in overrides:
            key = match.group(1)
            lines.append(f"{key}={format_value(overrides[key])}")
            seen[key] = True
        else:
            lines.append(line)

    missing = [key for key, found in seen.items() if not found]
    if missing:
        if lines and lines[-1].strip():
            lines.append("")
        for key in missing:
            lines.append(f"{key}={format_value(overrides[key])}")
    return "\n".join(lines) + "\n"
