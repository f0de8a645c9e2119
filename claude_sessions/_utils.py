"""Formatting helpers shared by the TUI and the ``--list`` output."""

from __future__ import annotations

from datetime import datetime


def _context_color(pct: float) -> str:
    """Return a color string for the given context-usage percentage.

    Four tiers:
      green   0-50%  plenty of room
      yellow  50-75% getting full
      orange  75-90% almost full
      red     90%+   near limit
    """
    if pct >= 90:
        return "#ff4444"
    if pct >= 75:
        return "#ff8800"
    if pct >= 50:
        return "#ffaa00"
    return "#44aa44"


def format_number(num: int) -> str:
    """``1234567`` -> ``1,234,567``."""
    return f"{num:,}"


def format_tokens(num: int) -> str:
    """Compact token count: ``950``, ``12.3k``, ``1.2M``."""
    if num < 1000:
        return str(num)
    if num < 1_000_000:
        return f"{num / 1000:.1f}k"
    return f"{num / 1_000_000:.1f}M"


def format_currency(amount: float) -> str:
    return f"${amount:,.2f}"


def format_duration(seconds: float) -> str:
    """``3h 12m``, ``45m``, or ``< 1m``."""
    hours = int(seconds) // 3600
    minutes = (int(seconds) % 3600) // 60
    if hours > 0:
        return f"{hours}h {minutes}m"
    if minutes > 0:
        return f"{minutes}m"
    return "< 1m"


def format_percentage(value: float) -> str:
    return f"{value:.1f}%"


def format_relative_time(when: datetime, now: datetime | None = None) -> str:
    """``just now``, ``5m ago``, ``3h ago``, ``2d ago``."""
    now = now or datetime.now(tz=when.tzinfo)
    seconds = (now - when).total_seconds()
    if seconds < 60:
        return "just now"
    if seconds < 3600:
        return f"{int(seconds / 60)}m ago"
    if seconds < 86400:
        return f"{int(seconds / 3600)}h ago"
    return f"{int(seconds / 86400)}d ago"


def format_line_delta(added: int, removed: int) -> str:
    """``+120 -8``."""
    return f"+{added} -{removed}"


def truncate(text: str, max_length: int) -> str:
    """Truncate text to max_length, appending "\u2026" if truncated."""
    text = " ".join(text.split())
    if len(text) <= max_length:
        return text
    return text[: max_length - 1] + "\u2026"
