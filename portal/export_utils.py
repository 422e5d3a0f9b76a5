"""
Shared helpers for CSV exports (gradebook and roster).
"""

import re


def sanitize_csv_cell(value):
    """Neutralize spreadsheet formula injection in a CSV cell.

    Cells starting with =, +, -, @, tab or carriage return are prefixed
    with a single quote. Non-string values are returned unchanged, so
    negative numbers stay numeric.

    Args:
        value: The cell value to sanitize.

    Returns:
        The sanitized cell value.
    """
    if not isinstance(value, str):
        return value
    if value and value[0] in ("=", "+", "-", "@", "\t", "\r"):
        return "'" + value
    return value


def sanitize_filename(title: str, default: str = "export") -> str:
    """Sanitize a title for use as a download filename (max 80 characters)."""
    clean = re.sub(r"[^\w\s\-]", "", title or "")
    clean = re.sub(r"\s+", "_", clean.strip())
    return clean[:80] or default
