"""
Formatting utilities for leaderboard display.
"""


def format_duration(seconds: int | None) -> str:
    """
    Format a duration as 'H:MM:SS' or 'M:SS'.

    Args:
        seconds: Duration in whole seconds

    Returns:
        Formatted string (e.g., '1:02:03', '4:05'), '—' for None/negative
    """
    if seconds is None or seconds < 0:
        return "—"

    h, rem = divmod(int(seconds), 3600)
    m, s = divmod(rem, 60)

    if h:
        return f"{h}:{m:02d}:{s:02d}"
    return f"{m}:{s:02d}"


def format_distance_km(meters: float | None) -> str:
    """Format meters as '12.5 km' or '850 m'."""
    if meters is None:
        return "—"
    if meters < 1000:
        return f"{int(round(meters))} m"
    return f"{meters / 1000:.1f} km"
