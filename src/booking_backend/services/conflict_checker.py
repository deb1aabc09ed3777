'''
Slot availability checks used before an appointment is inserted or moved.

These queries give a fast, readable rejection. The unique constraint on
appointments(date, time) remains the guard that holds under concurrency.
'''
import datetime
from typing import Annotated, Optional

from fastapi import Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..common.config import settings
from ..common.exceptions import SlotConflict
from ..common.logger import log
from ..database import models as db_models
from ..database.engine import get_db_session


class ConflictChecker:
    """
    Answers "may an appointment occupy this (date, time)?".
    """
    def __init__(self, db: Annotated[AsyncSession, Depends(get_db_session)]):
        self.db = db

    async def has_conflict(
        self,
        date: datetime.date,
        time: datetime.time,
        excluding_id: Optional[int] = None
    ) -> bool:
        """True when another appointment already holds the slot."""
        stmt = select(db_models.Appointments.id).filter(
            db_models.Appointments.date == date,
            db_models.Appointments.time == time
        )
        if excluding_id is not None:
            stmt = stmt.filter(db_models.Appointments.id != excluding_id)
        result = await self.db.execute(stmt.limit(1))
        return result.scalar_one_or_none() is not None

    async def is_blocked(self, date: datetime.date, time: datetime.time) -> bool:
        """True when an administrator blocked this exact slot."""
        stmt = select(db_models.ScheduleBlocks.id).filter(
            db_models.ScheduleBlocks.date == date,
            db_models.ScheduleBlocks.time_slot == time
        ).limit(1)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none() is not None

    async def is_offered(self, date: datetime.date, time: datetime.time, title: str) -> bool:
        """
        True when a weekly availability row for the date's weekday starts at
        `time` and its appointment type matches the title (case-insensitive,
        either one containing the other).
        """
        weekday = date.strftime('%A')
        stmt = select(db_models.WeeklyAvailability).filter(
            db_models.WeeklyAvailability.weekday == weekday,
            db_models.WeeklyAvailability.start_time == time
        )
        result = await self.db.execute(stmt)
        wanted = (title or "").strip().lower()
        for row in result.scalars().all():
            offered = (row.appointment_type or "").strip().lower()
            if offered and (wanted in offered or offered in wanted):
                return True
        return False

    async def check_slot(
        self,
        date: datetime.date,
        time: datetime.time,
        excluding_id: Optional[int] = None,
        *,
        respect_blocks: bool,
        title: Optional[str] = None
    ) -> None:
        """
        Raises SlotConflict for the first rule the slot fails.
        Blocks and the weekly template only bind client-facing bookings.
        """
        if await self.has_conflict(date, time, excluding_id):
            log.warning(f"Slot {date} {time} is already booked.")
            raise SlotConflict(f"The time slot {date} {time} is already booked.")

        if not respect_blocks:
            return

        if await self.is_blocked(date, time):
            log.warning(f"Slot {date} {time} is blocked by the schedule.")
            raise SlotConflict(f"The time slot {date} {time} is not available.")

        if settings.REQUIRE_WEEKLY_AVAILABILITY and title is not None:
            if not await self.is_offered(date, time, title):
                log.warning(f"Slot {date} {time} is not offered for '{title}'.")
                raise SlotConflict(f"'{title}' is not offered on {date} at {time}.")
