"""Errors raised by the sleep session core."""


class StorageError(Exception):
    """A store operation failed (I/O, constraint violation, unavailable backend)."""
