'''
Pydantic models for the ledger ("profits") and payment reconciliation.
'''
import datetime
from decimal import Decimal
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from ..database.db_enums import PaymentStatus


class PaidAppointmentData(BaseModel):
    """
    The appointment carried through an external checkout and booked once
    the payment is confirmed.
    """
    title: str
    client_name: str
    client_email: Optional[str] = None
    client_phone: Optional[str] = None
    category: Optional[str] = None
    date: datetime.date
    time: Union[str, int]
    end_time: Optional[Union[str, int]] = None
    description: Optional[str] = None
    price: Optional[Decimal] = None
    amount_paid: Optional[Decimal] = None
    payment_method: Optional[str] = None


class FinalizePaymentRequest(BaseModel):
    transaction_id: str = Field(..., alias="transactionId", min_length=1)
    appointment_data: PaidAppointmentData = Field(..., alias="appointmentData")

    model_config = ConfigDict(populate_by_name=True)


class PaymentConfirmation(BaseModel):
    """What the payment processor reports about a transaction."""
    transaction_id: str
    status: PaymentStatus
    amount: Optional[Decimal] = None
    processor: str

    @property
    def is_completed(self) -> bool:
        return self.status == PaymentStatus.COMPLETED


class LedgerEntryCreate(BaseModel):
    """Validates a manual ledger entry."""
    category: str
    description: str
    amount: Decimal
    type: str
    processor: Optional[str] = None


class LedgerEntryRead(BaseModel):
    id: int
    category: str
    description: str
    amount: Decimal
    type: str
    processor: Optional[str] = None
    processor_txn_id: Optional[str] = None
    appointment_id: Optional[int] = None
    created_at: Optional[datetime.datetime] = None

    model_config = ConfigDict(from_attributes=True)


class PaymentLinkRequest(BaseModel):
    """Asks for a Square checkout link for an amount before fees."""
    amount: Decimal = Field(..., gt=0)
    email: Optional[str] = None
    description: Optional[str] = None
    item_name: Optional[str] = Field(None, alias="itemName")

    model_config = ConfigDict(populate_by_name=True)


class PaymentLinkResponse(BaseModel):
    url: str
