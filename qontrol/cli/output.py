"""Plain output helpers shared by the subcommands."""

from __future__ import annotations

import json
import sys
from typing import Any, Dict, List, Optional, Sequence, TextIO


def print_json(value: Any, out: Optional[TextIO] = None) -> None:
    (out or sys.stdout).write(json.dumps(value, indent=2) + "\n")


def format_cell(value: Any) -> str:
    if value is None:
        return "-"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return json.dumps(value)
    return str(value)


def print_table(rows: List[Dict[str, Any]], columns: Sequence[str], out: Optional[TextIO] = None) -> None:
    """Left-aligned columns with an upper-case header and a dashed rule."""
    out = out or sys.stdout
    if not rows:
        return

    widths = [len(c) for c in columns]
    cells = [[format_cell(row.get(c)) for c in columns] for row in rows]
    for row in cells:
        for i, cell in enumerate(row):
            widths[i] = max(widths[i], len(cell))

    out.write("  ".join(c.upper().ljust(widths[i]) for i, c in enumerate(columns)).rstrip() + "\n")
    out.write("  ".join("-" * w for w in widths) + "\n")
    for row in cells:
        out.write("  ".join(cell.ljust(widths[i]) for i, cell in enumerate(row)).rstrip() + "\n")
