'''
API endpoints for booking and administering appointments.
'''
import datetime
from typing import Annotated, Any, List

from fastapi import APIRouter, Depends, Query, status

from ..models import appointment as appointment_models
from ..services.booking_service import AppointmentService
from ..services.finance_service import PaymentLinkService


class AppointmentsAPI:
    """
    A class to encapsulate the booking and administrator endpoints for appointments.
    """
    def __init__(self):
        self.router = APIRouter(
            prefix="/appointments",
            tags=["Appointments"]
        )
        self._register_routes()

    def _register_routes(self):
        """Registers all the API routes for this class."""
        self.router.add_api_route(
                "",
                self.list_appointments,
                methods=["GET"],
                response_model=List[appointment_models.AppointmentRead])

        self.router.add_api_route(
                "/by-date",
                self.list_appointments_by_date,
                methods=["GET"],
                response_model=List[appointment_models.AppointmentRead])

        self.router.add_api_route(
                "",
                self.create_appointments,
                methods=["POST"],
                status_code=status.HTTP_201_CREATED,
                response_model=appointment_models.AppointmentCreateResponse)

        self.router.add_api_route(
                "/{appointment_id}",
                self.update_appointment,
                methods=["PATCH"],
                response_model=appointment_models.AppointmentRead)

        self.router.add_api_route(
                "/{appointment_id}/paid",
                self.set_paid_status,
                methods=["PATCH"],
                response_model=appointment_models.AppointmentRead)

        self.router.add_api_route(
                "/{appointment_id}",
                self.delete_appointment,
                methods=["DELETE"])

    async def list_appointments(
        self,
        appointment_service: Annotated[AppointmentService, Depends(AppointmentService)]
    ) -> List[Any]:
        """
        Retrieves every appointment, ordered by date and time.
        """
        return await appointment_service.list_appointments()

    async def list_appointments_by_date(
        self,
        date: Annotated[datetime.date, Query()],
        appointment_service: Annotated[AppointmentService, Depends(AppointmentService)]
    ) -> List[Any]:
        """
        Retrieves the appointments of a single date.
        """
        return await appointment_service.list_appointments_by_date(date)

    async def create_appointments(
        self,
        booking_data: appointment_models.AppointmentCreate,
        appointment_service: Annotated[AppointmentService, Depends(AppointmentService)],
        link_service: Annotated[PaymentLinkService, Depends(PaymentLinkService)]
    ) -> Any:
        """
        Books a single or recurring appointment.
        An unpaid, priced booking also gets the link to pay for it.
        """
        result = await appointment_service.create_appointments(booking_data)
        payment_link = await link_service.link_for_booking(result.created[0], booking_data.payment_method)
        return appointment_models.AppointmentCreateResponse(
            message=f"{len(result.created)} appointment(s) booked successfully.",
            appointment=result.created[0],
            appointments=result.created,
            errors=result.errors,
            payment_link=payment_link,
            payment_method=booking_data.payment_method
        )

    async def update_appointment(
        self,
        appointment_id: int,
        update_data: appointment_models.AppointmentUpdate,
        appointment_service: Annotated[AppointmentService, Depends(AppointmentService)]
    ) -> Any:
        """
        Edits an appointment. Only the allow-listed fields can be changed.
        """
        return await appointment_service.update_appointment(appointment_id, update_data)

    async def set_paid_status(
        self,
        appointment_id: int,
        paid_data: appointment_models.PaidStatusUpdate,
        appointment_service: Annotated[AppointmentService, Depends(AppointmentService)]
    ) -> Any:
        """
        Marks an appointment paid or unpaid.
        """
        return await appointment_service.set_paid_status(appointment_id, paid_data.paid)

    async def delete_appointment(
        self,
        appointment_id: int,
        appointment_service: Annotated[AppointmentService, Depends(AppointmentService)]
    ) -> dict[str, str]:
        """
        Cancels an appointment on the administrator's behalf.
        """
        return await appointment_service.delete_appointment(appointment_id)

# Instantiate the class and export its router
appointments_api = AppointmentsAPI()
router = appointments_api.router
