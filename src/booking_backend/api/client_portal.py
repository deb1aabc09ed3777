'''
API endpoints for the client portal (self-service).
'''
from typing import Annotated, Any, List

from fastapi import APIRouter, Depends

from ..models import appointment as appointment_models
from ..models import client as client_models
from ..services.client_portal_service import ClientPortalService
from ..services.security import require_client_portal_identity


class ClientPortalAPI:
    """
    A class to encapsulate the client-portal endpoints.
    """
    def __init__(self):
        self.router = APIRouter(
            prefix="/client",
            tags=["Client Portal"]
        )
        self._register_routes()

    def _register_routes(self):
        """Registers all the API routes for this class."""
        self.router.add_api_route(
                "/me",
                self.get_me,
                methods=["GET"],
                response_model=client_models.ClientProfileRead)

        self.router.add_api_route(
                "/appointments",
                self.list_my_appointments,
                methods=["GET"],
                response_model=List[appointment_models.AppointmentRead])

        self.router.add_api_route(
                "/appointments/{appointment_id}/cancel",
                self.cancel_appointment,
                methods=["POST"],
                response_model=appointment_models.SelfServiceResponse,
                response_model_exclude_none=True)

        self.router.add_api_route(
                "/appointments/{appointment_id}/reschedule",
                self.reschedule_appointment,
                methods=["POST"],
                response_model=appointment_models.SelfServiceResponse)

    async def get_me(
        self,
        identity: Annotated[client_models.PortalIdentity, Depends(require_client_portal_identity)],
        portal_service: Annotated[ClientPortalService, Depends(ClientPortalService)]
    ) -> Any:
        """
        Retrieves the signed-in user and their billing client.
        """
        return await portal_service.get_profile(identity)

    async def list_my_appointments(
        self,
        identity: Annotated[client_models.PortalIdentity, Depends(require_client_portal_identity)],
        portal_service: Annotated[ClientPortalService, Depends(ClientPortalService)]
    ) -> List[Any]:
        """
        Retrieves the appointments billed to the signed-in user's clients.
        """
        return await portal_service.list_appointments(identity)

    async def cancel_appointment(
        self,
        appointment_id: int,
        identity: Annotated[client_models.PortalIdentity, Depends(require_client_portal_identity)],
        portal_service: Annotated[ClientPortalService, Depends(ClientPortalService)]
    ) -> Any:
        """
        Cancels one of the user's appointments. Allowed once per appointment.
        """
        return await portal_service.cancel(appointment_id, identity)

    async def reschedule_appointment(
        self,
        appointment_id: int,
        reschedule_data: appointment_models.RescheduleRequest,
        identity: Annotated[client_models.PortalIdentity, Depends(require_client_portal_identity)],
        portal_service: Annotated[ClientPortalService, Depends(ClientPortalService)]
    ) -> Any:
        """
        Moves one of the user's appointments. Allowed once per appointment.
        """
        appointment = await portal_service.reschedule(
            appointment_id,
            identity,
            reschedule_data.date,
            reschedule_data.time,
            reschedule_data.end_time
        )
        return {"success": True, "appointment": appointment_models.AppointmentRead.model_validate(appointment)}

# Instantiate the class and export its router
client_portal_api = ClientPortalAPI()
router = client_portal_api.router
