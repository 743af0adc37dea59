"""Formatting utilities for consistent output across the terminal views and exports."""

import math
from datetime import datetime, timezone


def format_duration(ms: float) -> str:
    """Format an elapsed time in milliseconds for humans.

    Returns:
        "1h 2m 3s", "2m 3s" or "3s" depending on magnitude.
    """
    seconds = int(ms // 1000)
    minutes = seconds // 60
    hours = minutes // 60

    if hours > 0:
        return f"{hours}h {minutes % 60}m {seconds % 60}s"
    if minutes > 0:
        return f"{minutes}m {seconds % 60}s"
    return f"{seconds}s"


def format_memory(size_bytes: float) -> str:
    """Format a byte count as KB below 1 MB, GB from 1024 MB, MB otherwise."""
    mb = size_bytes / (1024 * 1024)
    if mb < 1:
        return f"{size_bytes / 1024:.1f} KB"
    if mb >= 1024:
        return f"{mb / 1024:.2f} GB"
    return f"{mb:.1f} MB"


def format_memory_mb(mb: float) -> str:
    """Format a value already expressed in megabytes."""
    return format_memory(mb * 1024 * 1024)


def format_cpu(cpu: float) -> str:
    """Format a CPU percentage with one decimal."""
    return f"{cpu:.1f}%"


def round2(value: float) -> float:
    """Round to two decimals for exported values, halves rounding up."""
    return math.floor(value * 100 + 0.5) / 100


def format_iso_utc(moment: datetime) -> str:
    """ISO-8601 UTC timestamp with milliseconds, e.g. 2026-01-31T14:05:09.123Z."""
    return moment.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")
