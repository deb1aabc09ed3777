import uuid
import httpx # Using httpx for async requests
from decimal import Decimal
from fastapi import HTTPException, status

from ..common.config import settings
from ..common.logger import log
from ..database.db_enums import PaymentProcessor, PaymentStatus
from ..models.finance import PaymentConfirmation


class SquarePaymentGateway:
    """
    Looks up payments on the Square Payments API and creates checkout links.
    A payment is only trusted once Square itself reports it as COMPLETED.
    """
    TIMEOUT_SECONDS = 10.0

    def __init__(self):
        self.base_url = settings.square_api_url
        self.access_token = settings.SQUARE_ACCESS_TOKEN
        self.api_version = settings.SQUARE_VERSION
        self.location_id = settings.SQUARE_LOCATION_ID

    def _headers(self) -> dict:
        return {
            "Authorization": f"Bearer {self.access_token}",
            "Square-Version": self.api_version,
            "Content-Type": "application/json",
        }

    @staticmethod
    def _parse_status(raw_status: str | None) -> PaymentStatus:
        try:
            return PaymentStatus((raw_status or "").upper())
        except ValueError:
            log.warning(f"Square returned an unknown payment status: {raw_status!r}")
            return PaymentStatus.FAILED

    async def get_payment(self, transaction_id: str) -> PaymentConfirmation:
        """
        Fetches a payment by id and returns its confirmation.
        Square reports amounts in cents; the confirmation carries dollars.
        """
        log.info(f"Fetching Square payment {transaction_id}")
        try:
            async with httpx.AsyncClient(timeout=self.TIMEOUT_SECONDS) as client:
                response = await client.get(
                    f"{self.base_url}/payments/{transaction_id}",
                    headers=self._headers()
                )
                response.raise_for_status() # Raise an exception for HTTP errors (4xx or 5xx)
                data = response.json()

            payment = data.get("payment") or {}
            amount = None
            amount_money = payment.get("amount_money") or {}
            if amount_money.get("amount") is not None:
                amount = (Decimal(amount_money["amount"]) / 100).quantize(Decimal("0.01"))

            confirmation = PaymentConfirmation(
                transaction_id=payment.get("id") or transaction_id,
                status=self._parse_status(payment.get("status")),
                amount=amount,
                processor=PaymentProcessor.SQUARE.value
            )
            log.info(f"Square payment {transaction_id} status: {confirmation.status.value}, amount: {amount}")
            return confirmation

        except httpx.RequestError as e:
            log.error(f"HTTP request to Square failed for payment {transaction_id}: {e}", exc_info=True)
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail="Payment service is currently unavailable. Please Try Again!"
            )
        except httpx.HTTPStatusError as e:
            log.error(f"Square returned an error for payment {transaction_id}: {e.response.status_code} - {e.response.text}", exc_info=True)
            raise HTTPException(
                status_code=status.HTTP_502_BAD_GATEWAY,
                detail="Could not verify the payment with the payment processor."
            )

    async def create_payment_link(self, amount: Decimal, description: str, name: str = "Payment for Services") -> str:
        """
        Creates a Square quick-pay checkout link charging exactly `amount`
        dollars and returns its URL.
        """
        cents = int((Decimal(amount) * 100).to_integral_value())
        payload = {
            "idempotency_key": str(uuid.uuid4()),
            "quick_pay": {
                "name": name,
                "price_money": {"amount": cents, "currency": "USD"},
                "location_id": self.location_id,
            },
            "description": description,
        }
        log.info(f"Creating Square payment link for {amount} ({description})")
        try:
            async with httpx.AsyncClient(timeout=self.TIMEOUT_SECONDS) as client:
                response = await client.post(
                    f"{self.base_url}/online-checkout/payment-links",
                    json=payload,
                    headers=self._headers()
                )
                response.raise_for_status()
                data = response.json()

            url = (data.get("payment_link") or {}).get("url")
            if not url:
                log.error(f"Square answered without a payment link URL: {data}")
                raise HTTPException(
                    status_code=status.HTTP_502_BAD_GATEWAY,
                    detail="Could not create a payment link with the payment processor."
                )
            log.info(f"Square payment link created: {url}")
            return url

        except httpx.RequestError as e:
            log.error(f"HTTP request to Square failed while creating a payment link: {e}", exc_info=True)
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail="Payment service is currently unavailable. Please Try Again!"
            )
        except httpx.HTTPStatusError as e:
            log.error(f"Square refused the payment link: {e.response.status_code} - {e.response.text}", exc_info=True)
            raise HTTPException(
                status_code=status.HTTP_502_BAD_GATEWAY,
                detail="Could not create a payment link with the payment processor."
            )
