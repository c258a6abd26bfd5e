"""
Utility functions for AI Metrics Hub.
Atomic file writes, JSON loading and spreadsheet-friendly CSV rendering.

Usage:
    from scripts.lib.utils import atomic_write_json, atomic_write_text, render_csv
"""
import json
import os
from pathlib import Path
from typing import Any, Iterable, Optional, Sequence

from scripts.lib.logger import setup_logger

logger = setup_logger(__name__)

CSV_BOM = "\ufeff"


def atomic_write_text(content: str, file_path: str | Path) -> Path:
    """
    Write text to file atomically using temp file + rename.

    Raises OSError on failure after removing the temp file.
    """
    file_path = Path(file_path)
    temp_path = file_path.with_suffix(file_path.suffix + ".tmp")
    file_path.parent.mkdir(parents=True, exist_ok=True)

    try:
        with open(temp_path, "w", encoding="utf-8", newline="") as f:
            f.write(content)
        os.replace(temp_path, file_path)
    except OSError:
        if temp_path.exists():
            temp_path.unlink()
        raise

    logger.debug("Atomically wrote %d chars to %s", len(content), file_path)
    return file_path


def atomic_write_json(data: Any, file_path: str | Path, indent: int = 2) -> bool:
    """
    Write JSON data to file atomically using temp file + rename.
    Prevents a half-written snapshot if the process dies mid-write.

    Args:
        data: Object to serialize as JSON.
        file_path: Target file path.
        indent: JSON indentation level.

    Returns:
        True if successful, False otherwise.
    """
    try:
        content = json.dumps(data, ensure_ascii=False, indent=indent, default=str)
        atomic_write_text(content, file_path)
        return True
    except (OSError, TypeError, ValueError) as e:
        logger.error("Failed to write JSON to %s: %s", file_path, e)
        return False


def load_json(path: str | Path) -> Optional[Any]:
    """Load a JSON file. Returns None (with a warning) if missing or invalid."""
    path = Path(path)
    if not path.exists():
        logger.warning("File not found: %s", path)
        return None
    try:
        with open(path, "r", encoding="utf-8-sig") as f:
            return json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        logger.warning("Could not parse %s: %s", path, e)
        return None


def sanitize_csv_field(value: Any) -> str:
    """Flatten a value into a CSV cell: commas and newlines become spaces."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    text = str(value)
    return text.replace("\r\n", " ").replace("\n", " ").replace("\r", " ").replace(",", " ")


def render_csv(header: Sequence[str], rows: Iterable[Sequence[Any]]) -> str:
    """
    Render rows as BOM-prefixed, comma-delimited CSV text.

    Fields are sanitized rather than quoted so the output opens cleanly in
    spreadsheets and diffs line-by-line.
    """
    lines = [",".join(sanitize_csv_field(h) for h in header)]
    for row in rows:
        lines.append(",".join(sanitize_csv_field(v) for v in row))
    return CSV_BOM + "\n".join(lines) + "\n"


def first_env(names: Sequence[str], default: Optional[str] = None) -> Optional[str]:
    """Return the first non-empty environment variable among ``names``."""
    for name in names:
        value = os.getenv(name)
        if value:
            return value
    return default
