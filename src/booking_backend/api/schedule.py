'''
API endpoints for schedule blocks and weekly availability.
'''
import datetime
from typing import Annotated, Any, List, Optional

from fastapi import APIRouter, Depends, Query, status

from ..models import schedule as schedule_models
from ..services.schedule_service import ScheduleService


class ScheduleAPI:
    """
    A class to encapsulate the schedule-block and availability endpoints.
    """
    def __init__(self):
        self.router = APIRouter(tags=["Schedule"])
        self._register_routes()

    def _register_routes(self):
        """Registers all the API routes for this class."""
        self.router.add_api_route(
                "/api/schedule/block",
                self.save_blocks,
                methods=["POST"],
                response_model=schedule_models.BlockedTimesRead)

        self.router.add_api_route(
                "/api/schedule/block",
                self.list_blocks,
                methods=["GET"],
                response_model=schedule_models.BlockedTimesRead,
                response_model_exclude={"success"})

        self.router.add_api_route(
                "/api/schedule/block",
                self.delete_block,
                methods=["DELETE"])

        self.router.add_api_route(
                "/blocked-times",
                self.get_unavailable_times,
                methods=["GET"],
                response_model=schedule_models.UnavailableTimesRead)

        self.router.add_api_route(
                "/availability",
                self.list_availability,
                methods=["GET"],
                response_model=List[schedule_models.AvailabilityRead])

        self.router.add_api_route(
                "/admin-availability",
                self.list_all_availability,
                methods=["GET"],
                response_model=List[schedule_models.AvailabilityRead])

        self.router.add_api_route(
                "/availability",
                self.create_availability,
                methods=["POST"],
                status_code=status.HTTP_201_CREATED)

        self.router.add_api_route(
                "/availability/{availability_id}",
                self.delete_availability,
                methods=["DELETE"])

    async def save_blocks(
        self,
        blocks_data: schedule_models.BlockedTimesCreate,
        schedule_service: Annotated[ScheduleService, Depends(ScheduleService)]
    ) -> Any:
        """
        Blocks one or more time slots.
        """
        blocks = await schedule_service.save_blocks(blocks_data)
        return schedule_models.BlockedTimesRead(
            blocked_times=[schedule_models.BlockedTimeRead.model_validate(b) for b in blocks]
        )

    async def list_blocks(
        self,
        schedule_service: Annotated[ScheduleService, Depends(ScheduleService)],
        date: Annotated[Optional[datetime.date], Query()] = None
    ) -> Any:
        """
        Retrieves the blocked slots, optionally for one date.
        """
        blocks = await schedule_service.list_blocks(date)
        return schedule_models.BlockedTimesRead(
            blocked_times=[schedule_models.BlockedTimeRead.model_validate(b) for b in blocks]
        )

    async def delete_block(
        self,
        block_data: schedule_models.BlockedTimeDelete,
        schedule_service: Annotated[ScheduleService, Depends(ScheduleService)]
    ) -> dict[str, bool]:
        """
        Removes a blocked slot.
        """
        return await schedule_service.delete_block(block_data.date, block_data.time_slot)

    async def get_unavailable_times(
        self,
        date: Annotated[datetime.date, Query()],
        schedule_service: Annotated[ScheduleService, Depends(ScheduleService)]
    ) -> Any:
        """
        Retrieves every start time of a date that cannot be booked.
        """
        times = await schedule_service.get_unavailable_times(date)
        return schedule_models.UnavailableTimesRead(blocked_times=times)

    async def list_availability(
        self,
        weekday: Annotated[str, Query()],
        appointment_type: Annotated[str, Query(alias="appointmentType")],
        schedule_service: Annotated[ScheduleService, Depends(ScheduleService)]
    ) -> List[Any]:
        """
        Retrieves the offered start times of a weekday for one appointment type.
        """
        return await schedule_service.list_availability(weekday, appointment_type)

    async def list_all_availability(
        self,
        schedule_service: Annotated[ScheduleService, Depends(ScheduleService)]
    ) -> List[Any]:
        """
        Retrieves the whole weekly availability template.
        """
        return await schedule_service.list_all_availability()

    async def create_availability(
        self,
        availability_data: schedule_models.AvailabilityCreate,
        schedule_service: Annotated[ScheduleService, Depends(ScheduleService)]
    ) -> dict[str, Any]:
        """
        Adds a row to the weekly availability template.
        """
        availability = await schedule_service.create_availability(availability_data)
        return {
            "success": True,
            "availability": schedule_models.AvailabilityRead.model_validate(availability)
        }

    async def delete_availability(
        self,
        availability_id: int,
        schedule_service: Annotated[ScheduleService, Depends(ScheduleService)]
    ) -> dict[str, bool]:
        """
        Removes a row from the weekly availability template.
        """
        return await schedule_service.delete_availability(availability_id)

# Instantiate the class and export its router
schedule_api = ScheduleAPI()
router = schedule_api.router
