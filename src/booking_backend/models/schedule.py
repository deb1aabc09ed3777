'''
Pydantic models for schedule blocks and weekly availability templates.
'''
import datetime
from typing import Union

from pydantic import BaseModel, ConfigDict, Field

from ..database.db_enums import WeekdayEnum


class BlockedTimeInput(BaseModel):
    time_slot: Union[str, int] = Field(..., alias="timeSlot")
    label: str = "Blocked"
    date: datetime.date

    model_config = ConfigDict(populate_by_name=True)


class BlockedTimesCreate(BaseModel):
    blocked_times: list[BlockedTimeInput] = Field(..., alias="blockedTimes", min_length=1)

    model_config = ConfigDict(populate_by_name=True)


class BlockedTimeDelete(BaseModel):
    time_slot: Union[str, int] = Field(..., alias="timeSlot")
    date: datetime.date

    model_config = ConfigDict(populate_by_name=True)


class BlockedTimeRead(BaseModel):
    time_slot: datetime.time = Field(..., serialization_alias="timeSlot")
    label: str
    date: datetime.date

    model_config = ConfigDict(from_attributes=True)


class AvailabilityCreate(BaseModel):
    weekday: WeekdayEnum
    start_time: Union[str, int]
    end_time: Union[str, int]
    appointment_type: str = Field(..., min_length=1)


class AvailabilityRead(BaseModel):
    id: int
    weekday: str
    start_time: datetime.time
    end_time: datetime.time
    appointment_type: str

    model_config = ConfigDict(from_attributes=True)


class BlockedTimesRead(BaseModel):
    success: bool = True
    blocked_times: list[BlockedTimeRead] = Field(..., serialization_alias="blockedTimes")


class UnavailableTimesRead(BaseModel):
    """Blocked and booked start times of one date, merged."""
    blocked_times: list[str] = Field(..., serialization_alias="blockedTimes")
