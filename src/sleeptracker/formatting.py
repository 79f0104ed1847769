"""Plain-text rendering of sleep history."""

from collections.abc import Sequence
from datetime import datetime

from sleeptracker.tracker.models import SleepNight

TITLE = "Here is your sleep data"

QUALITY_LABELS = {
    0: "Very bad",
    1: "Poor",
    2: "So-so",
    3: "OK",
    4: "Pretty good",
    5: "Excellent",
}


def quality_label(quality: int | None) -> str:
    """Human label for a 0-5 rating; ``--`` when unrated."""
    return QUALITY_LABELS.get(quality, "--")


def format_timestamp(millis: int) -> str:
    return datetime.fromtimestamp(millis / 1000).strftime("%A %b-%d-%Y Time: %H:%M")


def format_duration(millis: int) -> str:
    """Render a duration as ``H:MM:SS``."""
    seconds = max(millis, 0) // 1000
    hours, rest = divmod(seconds, 3600)
    minutes, seconds = divmod(rest, 60)
    return f"{hours}:{minutes:02d}:{seconds:02d}"


def format_nights(nights: Sequence[SleepNight]) -> str:
    """Render the full history, one block per night, in the order given."""
    if not nights:
        return ""
    lines = [TITLE]
    for night in nights:
        lines.append("")
        lines.append(f"Start:\t{format_timestamp(night.start_time_milli)}")
        if night.in_progress:
            lines.append("End:\tin progress")
            continue
        lines.append(f"End:\t{format_timestamp(night.end_time_milli)}")
        lines.append(f"Quality:\t{quality_label(night.sleep_quality)}")
        lines.append(f"Hours:Minutes:Seconds:\t{format_duration(night.duration_milli)}")
    return "\n".join(lines)
