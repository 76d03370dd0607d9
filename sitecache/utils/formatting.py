"""
Helper functions for formatting data into human-readable strings.
"""


def format_size(bytes_size: int) -> str:
    """Formats bytes into a human-readable size string (e.g., '145.3 KB')."""
    if bytes_size <= 0:
        return "0 B"
    units = ["B", "KB", "MB", "GB", "TB"]
    i = 0
    size = float(bytes_size)
    while size >= 1024 and i < len(units) - 1:
        size /= 1024
        i += 1
    if i == 0:
        return f"{bytes_size} B"
    return f"{size:.1f} {units[i]}"


def format_ratio(ratio: float) -> str:
    """Formats a 0..1 ratio as a percentage."""
    return f"{ratio * 100:.1f}%"
