'''
Administrator schedule management: blocked slots and the weekly
availability template offered to clients.
'''
import datetime
from typing import Annotated, Optional, Union

from fastapi import Depends, HTTPException, status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..common.exceptions import ValidationError
from ..common.logger import log
from ..core.time_normalizer import format_time, parse_time
from ..database import models as db_models
from ..database.db_enums import WeekdayEnum
from ..database.engine import get_db_session
from ..models import schedule as schedule_models

WEEKDAY_ORDER = {day.value: index for index, day in enumerate(WeekdayEnum)}


class ScheduleService:
    """
    Service for schedule blocks and weekly availability.
    """
    def __init__(self, db: Annotated[AsyncSession, Depends(get_db_session)]):
        self.db = db

    # --- Schedule blocks ---

    async def save_blocks(self, blocks_data: schedule_models.BlockedTimesCreate) -> list[db_models.ScheduleBlocks]:
        """
        Blocks each (date, time) given. Re-blocking an existing slot only
        replaces its label.
        """
        saved = []
        for entry in blocks_data.blocked_times:
            time_slot = parse_time(entry.time_slot, "timeSlot")
            label = (entry.label or "").strip() or "Blocked"

            stmt = select(db_models.ScheduleBlocks).filter(
                db_models.ScheduleBlocks.date == entry.date,
                db_models.ScheduleBlocks.time_slot == time_slot
            )
            result = await self.db.execute(stmt)
            block = result.scalars().first()
            if block:
                block.label = label
            else:
                block = db_models.ScheduleBlocks(date=entry.date, time_slot=time_slot, label=label)
                self.db.add(block)
            await self.db.flush()
            saved.append(block)

        log.info(f"Saved {len(saved)} schedule block(s).")
        return saved

    async def list_blocks(self, date: Optional[datetime.date] = None) -> list[db_models.ScheduleBlocks]:
        stmt = select(db_models.ScheduleBlocks)
        if date is not None:
            stmt = stmt.filter(db_models.ScheduleBlocks.date == date)
        stmt = stmt.order_by(db_models.ScheduleBlocks.date, db_models.ScheduleBlocks.time_slot)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def delete_block(self, date: datetime.date, time_slot: Union[str, int]) -> dict[str, bool]:
        parsed = parse_time(time_slot, "timeSlot")
        stmt = select(db_models.ScheduleBlocks).filter(
            db_models.ScheduleBlocks.date == date,
            db_models.ScheduleBlocks.time_slot == parsed
        )
        result = await self.db.execute(stmt)
        block = result.scalars().first()
        if not block:
            log.warning(f"Tried to delete non-existing block {date} {format_time(parsed)}")
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Blocked time not found.")
        await self.db.delete(block)
        await self.db.flush()
        log.info(f"Unblocked {date} {format_time(parsed)}.")
        return {"success": True}

    async def get_unavailable_times(self, date: datetime.date) -> list[str]:
        """Blocked and booked start times of a date, as sorted HH:MM:SS strings."""
        blocked = await self.db.execute(
            select(db_models.ScheduleBlocks.time_slot).filter(db_models.ScheduleBlocks.date == date)
        )
        booked = await self.db.execute(
            select(db_models.Appointments.time).filter(db_models.Appointments.date == date)
        )
        times = set(blocked.scalars().all()) | set(booked.scalars().all())
        return [format_time(t) for t in sorted(times)]

    # --- Weekly availability ---

    async def list_availability(self, weekday: str, appointment_type: str) -> list[db_models.WeeklyAvailability]:
        stmt = select(db_models.WeeklyAvailability).filter(
            func.lower(db_models.WeeklyAvailability.weekday) == weekday.strip().lower(),
            func.lower(db_models.WeeklyAvailability.appointment_type) == appointment_type.strip().lower()
        ).order_by(db_models.WeeklyAvailability.start_time)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def list_all_availability(self) -> list[db_models.WeeklyAvailability]:
        """Every template row, Monday first, then by start time."""
        result = await self.db.execute(select(db_models.WeeklyAvailability))
        rows = list(result.scalars().all())
        return sorted(rows, key=lambda row: (WEEKDAY_ORDER.get(row.weekday, len(WEEKDAY_ORDER)), row.start_time))

    async def create_availability(self, availability_data: schedule_models.AvailabilityCreate) -> db_models.WeeklyAvailability:
        start = parse_time(availability_data.start_time, "start_time")
        end = parse_time(availability_data.end_time, "end_time")
        if end <= start:
            raise ValidationError("end_time must be after start_time.")

        availability = db_models.WeeklyAvailability(
            weekday=availability_data.weekday.value,
            start_time=start,
            end_time=end,
            appointment_type=availability_data.appointment_type.strip()
        )
        self.db.add(availability)
        await self.db.flush()
        log.info(f"Added availability {availability.id}: {availability.weekday} {format_time(start)}-{format_time(end)} ({availability.appointment_type}).")
        return availability

    async def delete_availability(self, availability_id: int) -> dict[str, bool]:
        availability = await self.db.get(db_models.WeeklyAvailability, availability_id)
        if not availability:
            log.warning(f"Tried to delete non-existing availability: {availability_id}")
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Availability not found.")
        await self.db.delete(availability)
        await self.db.flush()
        log.info(f"Deleted availability {availability_id}.")
        return {"success": True}
