"""
Shared utility functions for the quill_engine package.

Consolidates the small helpers (ID generation, timestamps, slugs, tolerant
JSON reads) that the parser, patch interpreter and continuity modules all
need.
"""

import json
import re
import secrets
import time
import unicodedata

_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


# ---------------------------------------------------------------------------
# Time and identifiers
# ---------------------------------------------------------------------------

def now_ms() -> int:
    """Return the current wall-clock time as integer epoch milliseconds."""
    return int(time.time() * 1000)


def _to_base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def make_id(prefix: str) -> str:
    """Generate a locally-unique, time-ordered ID.

    Format is ``<prefix>_<base36 epoch ms>_<5 random chars>``, e.g.
    ``"issue_m5g3k2_ab4f7"``.
    """
    suffix = "".join(secrets.choice(_BASE36) for _ in range(5))
    return f"{prefix}_{_to_base36(now_ms())}_{suffix}"


def make_slug(text: str) -> str:
    """Convert a human-readable name to a URL-friendly slug.

    Examples:
        "Elara Voss"       -> "elara-voss"
        "The Iron Court"   -> "the-iron-court"
        "Mira's Haven"     -> "mira-s-haven"
    """
    text = unicodedata.normalize("NFKD", text or "")
    text = text.encode("ascii", "ignore").decode("ascii")
    text = text.strip().lower()
    text = re.sub(r"[^a-z0-9]+", "-", text)
    return text.strip("-")[:80]


# ---------------------------------------------------------------------------
# JSON I/O
# ---------------------------------------------------------------------------

def safe_read_json(path, default=None):
    """Read a JSON file, returning *default* if the file is missing or corrupt.

    Parameters
    ----------
    path : str or pathlib.Path
        Absolute path to the JSON file.
    default
        Value returned when the file cannot be read (default ``None``).

    Returns
    -------
    object
        Parsed JSON content, or *default* on failure.
    """
    try:
        with open(path, "r", encoding="utf-8") as fh:
            return json.load(fh)
    except (FileNotFoundError, json.JSONDecodeError, OSError):
        return default
