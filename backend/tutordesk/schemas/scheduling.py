"""
Conflict-detection value types and their API shapes.

BusyInterval bounds may be "HH:MM[:SS]" strings, time objects, datetimes
or ISO datetime strings; the detector normalizes them through the business
timezone before comparing.
"""

from dataclasses import dataclass
from datetime import date, datetime, time
from typing import List, Optional, Union

from pydantic import Field

from ..core.enums import BusySlotType
from .base import StandardizedModel, StrictModel

TimeLike = Union[str, time, datetime]


@dataclass(frozen=True)
class BusyInterval:
    """A [start, end) range on one date that is already taken."""

    start: TimeLike
    end: TimeLike
    type: BusySlotType = BusySlotType.LESSON
    label: Optional[str] = None
    source_id: Optional[str] = None


@dataclass(frozen=True)
class AvailabilityWindow:
    start: TimeLike
    end: TimeLike


@dataclass(frozen=True)
class FreeStart:
    time: str
    minutes: int
    is_busy: bool


class BusyIntervalResponse(StandardizedModel):
    start: str
    end: str
    type: BusySlotType
    label: Optional[str] = None
    source_id: Optional[str] = None


class FreeStartResponse(StandardizedModel):
    time: str
    is_busy: bool


class AvailabilityWindowResponse(StandardizedModel):
    start: str
    end: str


class DayScheduleResponse(StandardizedModel):
    day: date
    timezone: str
    windows: List[AvailabilityWindowResponse]
    busy: List[BusyIntervalResponse]
    starts: List[FreeStartResponse]


class ConflictCheckRequest(StrictModel):
    scheduled_at: datetime
    duration_min: int = Field(..., gt=0, le=480)
    exclude_lesson_id: Optional[str] = None
    exclude_session_id: Optional[str] = None


class ConflictCheckResponse(StandardizedModel):
    is_busy: bool
    conflicts: List[BusyIntervalResponse]
