"""Tests for history text rendering."""

from sleeptracker.formatting import TITLE, format_duration, format_nights, quality_label
from sleeptracker.tracker.models import SleepNight


def test_quality_labels():
    assert quality_label(0) == "Very bad"
    assert quality_label(3) == "OK"
    assert quality_label(5) == "Excellent"
    assert quality_label(None) == "--"


def test_format_duration():
    assert format_duration(0) == "0:00:00"
    assert format_duration(3_661_000) == "1:01:01"
    assert format_duration(8 * 3600 * 1000 + 59_999) == "8:00:59"


def test_empty_history_is_blank():
    assert format_nights([]) == ""


def test_format_nights():
    nights = [
        SleepNight(night_id=2, start_time_milli=10_000_000),
        SleepNight(night_id=1, start_time_milli=0, end_time_milli=7_200_000, sleep_quality=4),
    ]
    text = format_nights(nights)
    assert text.startswith(TITLE)
    assert text.count("Start:") == 2
    assert "in progress" in text
    assert "Pretty good" in text
    assert "2:00:00" in text
    # Order is preserved: the open night comes first
    assert text.index("in progress") < text.index("Pretty good")
