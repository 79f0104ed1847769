"""Rating the quality of a finished night."""

import logging

from sleeptracker.tracker.models import MAX_QUALITY, MIN_QUALITY, SleepNight
from sleeptracker.tracker.state import EventCell
from sleeptracker.tracker.store import SleepStore

logger = logging.getLogger(__name__)


class SleepQualityController:
    """Set the quality of one night, then signal a return to the tracker."""

    def __init__(self, store: SleepStore, night_id: int) -> None:
        self.store = store
        self.night_id = night_id
        self.navigate_to_tracker: EventCell[bool] = EventCell(name="navigate_to_tracker")

    async def set_sleep_quality(self, quality: int) -> SleepNight:
        """Persist ``quality`` for the night and fire ``navigate_to_tracker``.

        Raises ``ValueError`` for an out-of-range rating, an unknown night, or a
        night that is still in progress. Store failures propagate as
        ``StorageError``.
        """
        if not MIN_QUALITY <= quality <= MAX_QUALITY:
            raise ValueError(f"Quality must be between {MIN_QUALITY} and {MAX_QUALITY}, got {quality}")
        night = await self.store.get(self.night_id)
        if night is None:
            raise ValueError(f"Night {self.night_id} not found")
        if night.in_progress:
            raise ValueError(f"Night {self.night_id} is still in progress")
        night.sleep_quality = quality
        await self.store.update(night)
        logger.info("rated night %s as %s", self.night_id, quality)
        self.navigate_to_tracker.fire(True)
        return night

    def acknowledge_navigation_event(self) -> None:
        self.navigate_to_tracker.acknowledge()
