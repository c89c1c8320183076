"""Utility functions for CLI output."""

from cli.constants import GREEN, RESET
from common.types import ProgressEntry, ProgressSnapshot


def format_file_size(size_bytes: int) -> str:
    """
    Format file size in bytes to human-readable format with appropriate unit.

    Uses binary units (1024-based) and automatically selects the most
    appropriate unit (B, KiB, MiB, GiB, TiB).

    Args:
        size_bytes: File size in bytes

    Returns:
        Formatted string with size and unit (e.g., "1.50 MiB", "512 B")
    """
    if size_bytes < 1024:
        return f"{size_bytes} B"

    units = ['KiB', 'MiB', 'GiB', 'TiB']
    size = size_bytes / 1024.0

    for unit in units:
        if size < 1024.0:
            return f"{size:.2f} {unit}"
        size /= 1024.0

    return f"{size:.2f} PiB"


def _percent(entry: ProgressEntry) -> float:
    if entry.total <= 0:
        return 100.0
    return min(100.0, entry.completed * 100.0 / entry.total)


def format_entry(entry: ProgressEntry, color: bool = True) -> str:
    """Format one progress level as 'label: done / total (pct%)'."""
    percent = f"{_percent(entry):.1f}%"
    if color:
        percent = f"{GREEN}{percent}{RESET}"
    text = (
        f"{entry.label}: {format_file_size(entry.completed)} / "
        f"{format_file_size(entry.total)} ({percent})"
    )
    if entry.annotation:
        text += f" [{entry.annotation}]"
    return text


def format_snapshot(snapshot: ProgressSnapshot, color: bool = True) -> str:
    """Root progress, followed by the file that last reported when it differs from the root."""
    line = format_entry(snapshot.root, color)
    if len(snapshot.entries) > 1:
        line += f" | {format_entry(snapshot.leaf, color)}"
    return line
