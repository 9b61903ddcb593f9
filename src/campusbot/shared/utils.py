"""
Utilities Module - Common helper functions.
==========================================

Provides utility functions for:
- Text normalization of scraped fragments
- Number, date and file-size decoding
- Synthetic record id generation
- JSON file I/O and directory management
"""

import json
import math
import mimetypes
import re
import time
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

from campusbot.shared.logging import get_logger

logger = get_logger(__name__)


# ─────────────────────────────────────────────────────────────────────────────
# Text Normalization
# ─────────────────────────────────────────────────────────────────────────────

_WHITESPACE_RE = re.compile(r"[ \t\r\f\v\u00a0]+")
_NEWLINES_RE = re.compile(r"\n\s*\n+")


def normalize_whitespace(text: Optional[str]) -> str:
    """
    Collapse runs of spaces and blank lines, then strip.

    Example:
        >>> normalize_whitespace("  SE   301\\n\\n\\n intro ")
        'SE 301\\n\\nintro'
    """
    if not text:
        return ""
    text = _WHITESPACE_RE.sub(" ", text)
    text = "\n".join(line.strip() for line in text.split("\n"))
    text = _NEWLINES_RE.sub("\n\n", text)
    return text.strip()


# ─────────────────────────────────────────────────────────────────────────────
# Number Decoding
# ─────────────────────────────────────────────────────────────────────────────

_INT_RE = re.compile(r"-?\d[\d,]*")
_FLOAT_RE = re.compile(r"-?\d[\d,]*(?:\.\d+)?")


def parse_int(text: Optional[str], default: int = 0) -> int:
    """
    Extract the first integer from text ('1,234 views' -> 1234).

    Negative values are clamped to the default since every counted field
    (credits, views, capacity) is non-negative.
    """
    if not text:
        return default
    match = _INT_RE.search(text)
    if not match:
        return default
    value = int(match.group(0).replace(",", ""))
    return value if value >= 0 else default


def parse_float(text: Optional[str], default: float = 0.0) -> float:
    """Extract the first decimal number from text ('100.5 pts' -> 100.5)."""
    if not text:
        return default
    match = _FLOAT_RE.search(text)
    if not match:
        return default
    value = float(match.group(0).replace(",", ""))
    return value if value >= 0 else default


FILE_SIZE_UNITS = {
    "B": 1,
    "KB": 1024,
    "MB": 1024 ** 2,
    "GB": 1024 ** 3,
}

_FILE_SIZE_RE = re.compile(r"^([\d.]+)\s*([KMG]?B)$", re.IGNORECASE)


def parse_file_size(text: Optional[str]) -> int:
    """
    Convert human-readable size text into bytes.

    Returns 0 for anything that does not match '<number><unit>'.

    Example:
        >>> parse_file_size("3.2MB")
        3355443
        >>> parse_file_size("512KB")
        524288
        >>> parse_file_size("bogus")
        0
    """
    if not text:
        return 0
    match = _FILE_SIZE_RE.match(text.strip())
    if not match:
        return 0
    try:
        size = float(match.group(1))
    except ValueError:
        return 0
    return math.floor(size * FILE_SIZE_UNITS[match.group(2).upper()])


def guess_mime_type(name: str, explicit: str = "") -> str:
    """Prefer an explicit type tag, else derive one from the file extension."""
    if explicit:
        return explicit.strip().lower()
    guessed, _ = mimetypes.guess_type(name)
    return guessed or "application/octet-stream"


# ─────────────────────────────────────────────────────────────────────────────
# Date Decoding
# ─────────────────────────────────────────────────────────────────────────────

DATE_FORMATS = (
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%d %H:%M",
    "%Y-%m-%d",
    "%Y.%m.%d %H:%M",
    "%Y.%m.%d",
    "%Y/%m/%d %H:%M",
    "%Y/%m/%d",
    "%Y년 %m월 %d일 %H:%M",
    "%Y년 %m월 %d일",
)


def parse_datetime(text: Optional[str]) -> Optional[datetime]:
    """
    Parse the date formats used by the campus sites.

    Returns None when the text is empty or in an unknown format.
    """
    if not text:
        return None
    text = normalize_whitespace(text).rstrip(".")
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        pass
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue
    logger.debug(f"Unrecognized date text: {text!r}")
    return None


# ─────────────────────────────────────────────────────────────────────────────
# ID Generation
# ─────────────────────────────────────────────────────────────────────────────


def generate_record_id(namespace: str, ordinal: int, timestamp_ms: Optional[int] = None) -> str:
    """
    Generate a synthetic id for a record whose markup carries none.

    Format: {namespace}-{timestamp_ms}-{ordinal}

    Example:
        >>> generate_record_id("notice", 3, timestamp_ms=1700000000000)
        'notice-1700000000000-3'
    """
    if timestamp_ms is None:
        timestamp_ms = int(time.time() * 1000)
    return f"{namespace}-{timestamp_ms}-{ordinal}"


def make_cache_key(*parts: Any) -> str:
    """
    Join query parts into a cache key.

    Example:
        >>> make_cache_key("course", "신촌", 20)
        'course:신촌:20'
    """
    return ":".join(str(part) for part in parts)


# ─────────────────────────────────────────────────────────────────────────────
# Directory Management & JSON I/O
# ─────────────────────────────────────────────────────────────────────────────


def ensure_directory(path: Path) -> Path:
    """Ensure a directory exists, creating it if necessary."""
    path.mkdir(parents=True, exist_ok=True)
    return path


def save_json(path: Path, data: Any, indent: int = 2) -> None:
    """Save data to a UTF-8 JSON file, creating parent directories."""
    ensure_directory(path.parent)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f, ensure_ascii=False, indent=indent, default=str)
    logger.debug(f"Saved JSON: {path}")


def load_json(path: Path) -> Any:
    """
    Load data from a JSON file.

    Raises:
        FileNotFoundError: If file doesn't exist
    """
    with open(path, encoding="utf-8") as f:
        return json.load(f)
