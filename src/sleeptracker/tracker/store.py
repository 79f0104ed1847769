"""Sleep night storage: the persistence contract and its implementations."""

import logging
import sqlite3
import threading
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from pathlib import Path

import anyio

from sleeptracker.config import DB_PATH, NIGHTS_TABLE, ensure_dirs
from sleeptracker.tracker.errors import StorageError
from sleeptracker.tracker.models import SleepNight

logger = logging.getLogger(__name__)

ChangeListener = Callable[[], Awaitable[None]]

SCHEMA = f"""
CREATE TABLE IF NOT EXISTS {NIGHTS_TABLE} (
    night_id INTEGER PRIMARY KEY AUTOINCREMENT,
    start_time_milli INTEGER NOT NULL,
    end_time_milli INTEGER NOT NULL,
    quality_rating INTEGER
);
"""


class SleepStore(ABC):
    """Persistence contract for sleep nights.

    Every method may raise ``StorageError``. Mutations notify the listeners
    registered with ``subscribe`` once they have been committed, which is how
    the ``all()`` view is observed for live updates.
    """

    def __init__(self) -> None:
        self._listeners: list[ChangeListener] = []

    @abstractmethod
    async def insert(self, night: SleepNight) -> int: ...

    @abstractmethod
    async def update(self, night: SleepNight) -> None: ...

    @abstractmethod
    async def get(self, night_id: int) -> SleepNight | None: ...

    @abstractmethod
    async def most_recent(self) -> SleepNight | None: ...

    @abstractmethod
    async def all(self) -> list[SleepNight]: ...

    @abstractmethod
    async def clear_all(self) -> None: ...

    def close(self) -> None:
        pass

    # ── Change notification ──────────────────────────────────────

    def subscribe(self, listener: ChangeListener) -> Callable[[], None]:
        """Register ``listener``; returns a callable that unregisters it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def _changed(self) -> None:
        for listener in list(self._listeners):
            try:
                await listener()
            except Exception as exc:
                # The write is already committed; a listener cannot undo it
                logger.warning("change listener %r failed: %s", listener, exc)


class InMemorySleepStore(SleepStore):
    """Non-durable store; records are copied in and out."""

    def __init__(self, nights: list[SleepNight] | None = None) -> None:
        super().__init__()
        self._nights: dict[int, SleepNight] = {}
        self._last_id = 0
        for night in nights or []:
            self._put_new(night)

    def _put_new(self, night: SleepNight) -> int:
        self._last_id += 1
        self._nights[self._last_id] = night.model_copy(update={"night_id": self._last_id})
        return self._last_id

    async def insert(self, night: SleepNight) -> int:
        night_id = self._put_new(night)
        await self._changed()
        return night_id

    async def update(self, night: SleepNight) -> None:
        if night.night_id not in self._nights:
            raise StorageError(f"Night {night.night_id} not found")
        self._nights[night.night_id] = night.model_copy()
        await self._changed()

    async def get(self, night_id: int) -> SleepNight | None:
        night = self._nights.get(night_id)
        return night.model_copy() if night else None

    async def most_recent(self) -> SleepNight | None:
        if not self._nights:
            return None
        return self._nights[max(self._nights)].model_copy()

    async def all(self) -> list[SleepNight]:
        return [self._nights[k].model_copy() for k in sorted(self._nights, reverse=True)]

    async def clear_all(self) -> None:
        # Ids keep counting up so they are never reused
        self._nights.clear()
        await self._changed()


class SqliteSleepStore(SleepStore):
    """SQLite-backed sleep night storage.

    Queries are blocking, so each one runs in a worker thread. Cancelling the
    awaiting task abandons the thread; a write that already reached SQLite
    stays committed.
    """

    def __init__(self, db_path: Path | None = None):
        super().__init__()
        self.db_path = db_path or DB_PATH
        self._conn: sqlite3.Connection | None = None
        self._lock = threading.Lock()

    def _get_conn(self) -> sqlite3.Connection:
        if self._conn is None:
            if self.db_path == DB_PATH:
                ensure_dirs()
            self._conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
            self._conn.executescript(SCHEMA)
        return self._conn

    def close(self) -> None:
        with self._lock:
            if self._conn:
                self._conn.close()
                self._conn = None

    def _row_to_night(self, row: sqlite3.Row) -> SleepNight:
        return SleepNight(
            night_id=row["night_id"],
            start_time_milli=row["start_time_milli"],
            end_time_milli=row["end_time_milli"],
            sleep_quality=row["quality_rating"],
        )

    async def _run(self, fn: Callable, *args):
        def locked():
            with self._lock:
                try:
                    return fn(self._get_conn(), *args)
                except sqlite3.Error as exc:
                    raise StorageError(f"{fn.__name__} failed: {exc}") from exc

        return await anyio.to_thread.run_sync(locked, abandon_on_cancel=True)

    # ── Blocking queries (worker thread) ─────────────────────────

    @staticmethod
    def _insert(conn: sqlite3.Connection, night: SleepNight) -> int:
        cursor = conn.execute(
            f"""INSERT INTO {NIGHTS_TABLE}
            (start_time_milli, end_time_milli, quality_rating)
            VALUES (?, ?, ?)""",
            (night.start_time_milli, night.end_time_milli, night.sleep_quality),
        )
        conn.commit()
        return cursor.lastrowid

    @staticmethod
    def _update(conn: sqlite3.Connection, night: SleepNight) -> int:
        cursor = conn.execute(
            f"""UPDATE {NIGHTS_TABLE}
            SET start_time_milli = ?, end_time_milli = ?, quality_rating = ?
            WHERE night_id = ?""",
            (night.start_time_milli, night.end_time_milli, night.sleep_quality, night.night_id),
        )
        conn.commit()
        return cursor.rowcount

    @staticmethod
    def _get(conn: sqlite3.Connection, night_id: int) -> sqlite3.Row | None:
        return conn.execute(
            f"SELECT * FROM {NIGHTS_TABLE} WHERE night_id = ?", (night_id,)
        ).fetchone()

    @staticmethod
    def _most_recent(conn: sqlite3.Connection) -> sqlite3.Row | None:
        return conn.execute(
            f"SELECT * FROM {NIGHTS_TABLE} ORDER BY night_id DESC LIMIT 1"
        ).fetchone()

    @staticmethod
    def _all(conn: sqlite3.Connection) -> list[sqlite3.Row]:
        return conn.execute(
            f"SELECT * FROM {NIGHTS_TABLE} ORDER BY night_id DESC"
        ).fetchall()

    @staticmethod
    def _clear(conn: sqlite3.Connection) -> None:
        # AUTOINCREMENT keeps ids from being reused after the delete
        conn.execute(f"DELETE FROM {NIGHTS_TABLE}")
        conn.commit()

    # ── Async contract ───────────────────────────────────────────

    async def insert(self, night: SleepNight) -> int:
        night_id = await self._run(self._insert, night)
        logger.debug("inserted night %s", night_id)
        await self._changed()
        return night_id

    async def update(self, night: SleepNight) -> None:
        if night.night_id is None:
            raise StorageError("Cannot update a night that was never inserted")
        if not await self._run(self._update, night):
            raise StorageError(f"Night {night.night_id} not found")
        logger.debug("updated night %s", night.night_id)
        await self._changed()

    async def get(self, night_id: int) -> SleepNight | None:
        row = await self._run(self._get, night_id)
        return self._row_to_night(row) if row else None

    async def most_recent(self) -> SleepNight | None:
        row = await self._run(self._most_recent)
        return self._row_to_night(row) if row else None

    async def all(self) -> list[SleepNight]:
        rows = await self._run(self._all)
        return [self._row_to_night(r) for r in rows]

    async def clear_all(self) -> None:
        await self._run(self._clear)
        logger.debug("cleared all nights")
        await self._changed()
