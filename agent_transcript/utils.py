#!/usr/bin/env python3
"""Display formatting helpers for reconstructed sessions."""

from datetime import datetime, timezone
from typing import Optional


def format_timestamp(timestamp_ms: Optional[int]) -> str:
    """Format epoch milliseconds for display, in UTC."""
    if timestamp_ms is None:
        return ""
    try:
        dt = datetime.fromtimestamp(timestamp_ms / 1000, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return str(timestamp_ms)
    return dt.strftime("%Y-%m-%d %H:%M:%S")


def format_timestamp_range(
    first_timestamp: Optional[int], last_timestamp: Optional[int]
) -> str:
    """Format timestamp range for display.

    Returns:
        Formatted string like "2025-01-01 10:00:00 - 2025-01-01 11:00:00"
        or single timestamp if both are equal, or empty string if neither provided.
    """
    if first_timestamp is not None and last_timestamp is not None:
        if first_timestamp == last_timestamp:
            return format_timestamp(first_timestamp)
        return f"{format_timestamp(first_timestamp)} - {format_timestamp(last_timestamp)}"
    if first_timestamp is not None:
        return format_timestamp(first_timestamp)
    return ""


def format_duration(duration_ms: int) -> str:
    """Format a duration as "45s", "3m 05s" or "1h 02m"."""
    total_seconds = max(0, duration_ms) // 1000
    hours, remainder = divmod(total_seconds, 3600)
    minutes, seconds = divmod(remainder, 60)
    if hours:
        return f"{hours}h {minutes:02d}m"
    if minutes:
        return f"{minutes}m {seconds:02d}s"
    return f"{seconds}s"


def format_cost(cost_usd: float) -> str:
    if cost_usd < 0.01:
        return f"${cost_usd:.4f}"
    return f"${cost_usd:.2f}"


def format_tokens(tokens: int) -> str:
    """Abbreviate a token count: 950, 12.3k, 1.2M."""
    if tokens >= 1_000_000:
        return f"{tokens / 1_000_000:.1f}M"
    if tokens >= 1000:
        return f"{tokens / 1000:.1f}k"
    return str(tokens)


def truncate(text: str, limit: int = 80) -> str:
    """Single-line preview of text, cut at `limit` characters."""
    flat = " ".join(text.split())
    if len(flat) <= limit:
        return flat
    return flat[: limit - 3] + "..."
