"""MCP server exposing the sleep tracker as tools."""

from mcp.server.fastmcp import FastMCP

from sleeptracker.formatting import format_duration, quality_label
from sleeptracker.tracker.controller import SleepTrackerController
from sleeptracker.tracker.models import SleepNight
from sleeptracker.tracker.quality import SleepQualityController
from sleeptracker.tracker.store import SqliteSleepStore

mcp = FastMCP("sleeptracker")
store = SqliteSleepStore()


def _night_dict(night: SleepNight) -> dict:
    return {
        "id": night.night_id,
        "start_time_milli": night.start_time_milli,
        "end_time_milli": night.end_time_milli,
        "in_progress": night.in_progress,
        "duration": format_duration(night.duration_milli),
        "quality": night.sleep_quality,
        "quality_label": quality_label(night.sleep_quality),
    }


@mcp.tool()
async def start_sleep() -> dict | str:
    """Start tracking a night of sleep.

    Refuses when a night is already in progress; stop it first with stop_sleep.
    """
    async with SleepTrackerController(store) as tracker:
        await tracker.initialized.wait()
        if not tracker.start_enabled.value:
            return "A night is already in progress"
        night = await tracker.start().wait()
    return _night_dict(night)


@mcp.tool()
async def stop_sleep() -> dict | str:
    """Stop the night in progress and return it, ready to be rated with rate_sleep."""
    async with SleepTrackerController(store) as tracker:
        await tracker.initialized.wait()
        night = await tracker.stop().wait()
    if night is None:
        return "No night in progress"
    return _night_dict(night)


@mcp.tool()
async def rate_sleep(night_id: int, quality: int) -> dict | str:
    """Rate a finished night.

    Args:
        night_id: The night ID returned by stop_sleep or sleep_history
        quality: 0 (very bad) to 5 (excellent)
    """
    rater = SleepQualityController(store, night_id)
    try:
        night = await rater.set_sleep_quality(quality)
    except ValueError as exc:
        return str(exc)
    return _night_dict(night)


@mcp.tool()
async def sleep_status() -> dict:
    """Report whether a night is in progress and which actions are available."""
    async with SleepTrackerController(store) as tracker:
        await tracker.initialized.wait()
        tonight = tracker.tonight.value
        return {
            "tonight": _night_dict(tonight) if tonight else None,
            "start_enabled": tracker.start_enabled.value,
            "stop_enabled": tracker.stop_enabled.value,
            "clear_enabled": tracker.clear_enabled.value,
        }


@mcp.tool()
async def sleep_history(limit: int = 20) -> list[dict]:
    """List recorded nights, newest first.

    Args:
        limit: Maximum nights to return (default 20)
    """
    nights = await store.all()
    return [_night_dict(n) for n in nights[:limit]]


@mcp.tool()
async def clear_history() -> dict:
    """Delete every recorded night."""
    async with SleepTrackerController(store) as tracker:
        await tracker.initialized.wait()
        await tracker.clear().wait()
    return {"status": "cleared"}
