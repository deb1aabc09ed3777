'''
API endpoints for payment links, payment reconciliation and the profits ledger.
'''
from typing import Annotated, Any, List

from fastapi import APIRouter, Depends, Response, status

from ..models import appointment as appointment_models
from ..models import finance as finance_models
from ..services.finance_service import LedgerService, PaymentLinkService, PaymentReconciler


class PaymentsAPI:
    """
    A class to encapsulate the payment and ledger endpoints.
    """
    def __init__(self):
        self.router = APIRouter(
            prefix="/api",
            tags=["Payments"]
        )
        self._register_routes()

    def _register_routes(self):
        """Registers all the API routes for this class."""
        self.router.add_api_route(
                "/create-payment-link",
                self.create_payment_link,
                methods=["POST"],
                response_model=finance_models.PaymentLinkResponse)

        self.router.add_api_route(
                "/finalize-payment-and-book",
                self.finalize_payment_and_book,
                methods=["POST"],
                status_code=status.HTTP_201_CREATED)

        self.router.add_api_route(
                "/profits",
                self.list_profits,
                methods=["GET"],
                response_model=List[finance_models.LedgerEntryRead])

        self.router.add_api_route(
                "/profits",
                self.create_profit_entry,
                methods=["POST"],
                status_code=status.HTTP_201_CREATED,
                response_model=finance_models.LedgerEntryRead)

    async def create_payment_link(
        self,
        link_data: finance_models.PaymentLinkRequest,
        link_service: Annotated[PaymentLinkService, Depends(PaymentLinkService)]
    ) -> Any:
        """
        Creates a Square checkout link for an amount, with Square's fees added.
        """
        description = link_data.description or link_data.item_name
        url = await link_service.create_square_link(link_data.amount, description)
        return finance_models.PaymentLinkResponse(url=url)

    async def finalize_payment_and_book(
        self,
        payment_data: finance_models.FinalizePaymentRequest,
        response: Response,
        reconciler: Annotated[PaymentReconciler, Depends(PaymentReconciler)]
    ) -> dict[str, Any]:
        """
        Books the appointment behind a completed external payment.
        Replaying an already processed transaction answers 200 with the
        original appointment.
        """
        appointment, created = await reconciler.finalize(
            payment_data.transaction_id,
            payment_data.appointment_data
        )
        if not created:
            response.status_code = status.HTTP_200_OK
        return {"appointment": appointment_models.AppointmentRead.model_validate(appointment)}

    async def list_profits(
        self,
        ledger_service: Annotated[LedgerService, Depends(LedgerService)]
    ) -> List[Any]:
        """
        Retrieves every ledger entry, newest first.
        """
        return await ledger_service.list_ledger_entries()

    async def create_profit_entry(
        self,
        entry_data: finance_models.LedgerEntryCreate,
        ledger_service: Annotated[LedgerService, Depends(LedgerService)]
    ) -> Any:
        """
        Records a manual ledger entry.
        """
        return await ledger_service.create_manual_entry(entry_data)

# Instantiate the class and export its router
payments_api = PaymentsAPI()
router = payments_api.router
