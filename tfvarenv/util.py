"""Small shared helpers: timestamps, identity, display formatting."""

from __future__ import annotations

import getpass
import os
import re
from datetime import datetime, timezone

_FRACTION_RE = re.compile(r"\.(\d+)")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def format_timestamp(ts: datetime) -> str:
    """Serialize a timestamp for ledger storage (ISO-8601 with offset)."""
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts.isoformat()


def parse_timestamp(value: str) -> datetime:
    """
    Parse a ledger timestamp.

    Accepts Python isoformat output as well as RFC 3339 strings with a
    trailing ``Z`` and nanosecond fractions, which ``fromisoformat`` rejects
    on older interpreters. Naive values are taken as UTC.
    """
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    match = _FRACTION_RE.search(text)
    if match:
        digits = match.group(1)[:6].ljust(6, "0")
        text = text[: match.start()] + "." + digits + text[match.end():]
    ts = datetime.fromisoformat(text)
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts


def current_user() -> str:
    """Operator identity recorded in ledgers."""
    user = os.environ.get("USER", "")
    if user:
        return user
    try:
        return getpass.getuser()
    except (KeyError, OSError):
        return "unknown"


def short_id(version_id: str | None, length: int = 8) -> str:
    if not version_id:
        return "-"
    return version_id[:length]


def format_size(size: int) -> str:
    units = ["B", "KB", "MB", "GB"]
    value = float(size)
    for unit in units:
        if value < 1024 or unit == units[-1]:
            return f"{int(value)} {unit}" if unit == "B" else f"{value:.1f} {unit}"
        value /= 1024
    return f"{size} B"


def format_duration(seconds: float) -> str:
    if seconds < 60:
        return f"{seconds:.1f}s"
    minutes, secs = divmod(int(seconds), 60)
    return f"{minutes}m{secs:02d}s"
