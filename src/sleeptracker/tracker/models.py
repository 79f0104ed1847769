"""Sleep night data model."""

import time

from pydantic import BaseModel, Field, model_validator

MIN_QUALITY = 0
MAX_QUALITY = 5


def now_millis() -> int:
    """Current wall-clock time in milliseconds since the epoch."""
    return time.time_ns() // 1_000_000


class SleepNight(BaseModel):
    """One sleep interval.

    A night whose end time equals its start time is still in progress.
    """

    night_id: int | None = Field(default=None, description="Assigned by the store on insert")
    start_time_milli: int = Field(default_factory=now_millis)
    end_time_milli: int | None = Field(default=None, description="Defaults to the start time")
    sleep_quality: int | None = Field(default=None, ge=MIN_QUALITY, le=MAX_QUALITY)

    model_config = {"validate_assignment": True}

    @model_validator(mode="after")
    def _check_interval(self) -> "SleepNight":
        if self.end_time_milli is None:
            # Goes through __dict__ so validate_assignment does not re-enter
            self.__dict__["end_time_milli"] = self.start_time_milli
        if self.end_time_milli < self.start_time_milli:
            raise ValueError("end_time_milli must not be earlier than start_time_milli")
        return self

    @property
    def in_progress(self) -> bool:
        return self.end_time_milli == self.start_time_milli

    @property
    def duration_milli(self) -> int:
        return self.end_time_milli - self.start_time_milli
