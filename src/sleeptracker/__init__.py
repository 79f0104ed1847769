"""SleepTracker - track sleep sessions and their quality."""

__version__ = "0.1.0"
