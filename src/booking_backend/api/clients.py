'''
API endpoints for the administrator's client list.
'''
from typing import Annotated, Any, List

from fastapi import APIRouter, Depends, status

from ..models import client as client_models
from ..services.client_service import ClientService


class ClientsAPI:
    """
    A class to encapsulate the client management endpoints.
    """
    def __init__(self):
        self.router = APIRouter(
            prefix="/api/clients",
            tags=["Clients"]
        )
        self._register_routes()

    def _register_routes(self):
        """Registers all the API routes for this class."""
        self.router.add_api_route(
                "",
                self.list_clients,
                methods=["GET"],
                response_model=List[client_models.ClientRead])

        self.router.add_api_route(
                "",
                self.create_client,
                methods=["POST"],
                status_code=status.HTTP_201_CREATED,
                response_model=client_models.ClientRead)

        self.router.add_api_route(
                "/{client_id}",
                self.update_client,
                methods=["PATCH"],
                response_model=client_models.ClientRead)

        self.router.add_api_route(
                "/{client_id}",
                self.delete_client,
                methods=["DELETE"])

    async def list_clients(
        self,
        client_service: Annotated[ClientService, Depends(ClientService)]
    ) -> List[Any]:
        """
        Retrieves every client, newest first.
        """
        return await client_service.list_clients()

    async def create_client(
        self,
        client_data: client_models.ClientCreate,
        client_service: Annotated[ClientService, Depends(ClientService)]
    ) -> Any:
        return await client_service.create_client(client_data)

    async def update_client(
        self,
        client_id: int,
        update_data: client_models.ClientUpdate,
        client_service: Annotated[ClientService, Depends(ClientService)]
    ) -> Any:
        """
        Edits a client. Only the allow-listed fields can be changed.
        """
        return await client_service.update_client(client_id, update_data)

    async def delete_client(
        self,
        client_id: int,
        client_service: Annotated[ClientService, Depends(ClientService)]
    ) -> dict[str, str]:
        """
        Deletes a client and every appointment booked for them.
        """
        return await client_service.delete_client(client_id)

# Instantiate the class and export its router
clients_api = ClientsAPI()
router = clients_api.router
