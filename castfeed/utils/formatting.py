"""
Helper functions for formatting data into human-readable strings.
"""

from typing import Any


def format_clock(seconds: float | None) -> str:
    """Formats seconds as a feed clock string, e.g. 765 -> '12:45'."""
    if not seconds:
        return "0:00"
    total = int(seconds)
    minutes, secs = divmod(total, 60)
    return f"{minutes}:{secs:02d}"


def parse_clock(value: str | None) -> int | None:
    """
    Parses a clock string ('M:SS' or 'H:MM:SS') back into seconds.

    Returns None when the value is empty or malformed.
    """
    if not value:
        return None
    parts = value.strip().split(":")
    if not 1 <= len(parts) <= 3 or not all(p.isdigit() for p in parts):
        return None
    seconds = 0
    for part in parts:
        seconds = seconds * 60 + int(part)
    return seconds


def format_count(value: int) -> str:
    """Compacts large counters for display (1234 -> '1.2K', 3_400_000 -> '3.4M')."""
    if value >= 1_000_000:
        return f"{value / 1_000_000:.1f}M"
    if value >= 1_000:
        return f"{value / 1_000:.1f}K"
    return str(value)


def extract_host_name(creator: dict[str, Any] | None) -> str:
    """Picks the best display name for a podcast creator row."""
    if not creator:
        return "Unknown Host"
    return creator.get("display_name") or creator.get("username") or "Unknown Host"
