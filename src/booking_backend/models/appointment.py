'''
Pydantic models for appointment requests and responses.
'''
import datetime
from decimal import Decimal
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field

# --- 1. API Input Models (for POST/PATCH) ---

class AppointmentCreate(BaseModel):
    """
    Validates the body of POST /appointments.
    `time` / `end_time` accept 'HH:MM', 'HH:MM:SS' or a bare hour.
    """
    title: str
    date: datetime.date
    time: Union[str, int]
    end_time: Optional[Union[str, int]] = None

    client_id: Optional[int] = None
    client_name: Optional[str] = None
    client_email: Optional[str] = None
    client_phone: Optional[str] = None
    category: Optional[str] = None
    payment_method: Optional[str] = None

    description: Optional[str] = None
    addons: Optional[str] = None
    amount_paid: Decimal = Decimal("0")
    price: Optional[Decimal] = None

    recurrence: Optional[str] = ""
    occurrences: int = 1
    weekdays: list[str] = Field(default_factory=list)
    is_admin: bool = Field(False, alias="isAdmin")

    model_config = ConfigDict(populate_by_name=True)


class AppointmentUpdate(BaseModel):
    """
    The fields an administrator may change through PATCH /appointments/{id}.
    Any other key in the body is rejected.
    """
    title: Optional[str] = None
    description: Optional[str] = None
    date: Optional[datetime.date] = None
    time: Optional[Union[str, int]] = None
    end_time: Optional[Union[str, int]] = None
    client_id: Optional[int] = None

    model_config = ConfigDict(extra='forbid')


class PaidStatusUpdate(BaseModel):
    paid: bool


class RescheduleRequest(BaseModel):
    date: datetime.date
    time: Union[str, int]
    end_time: Optional[Union[str, int]] = None


# --- 2. API Output Models ---

class AppointmentRead(BaseModel):
    id: int
    title: str
    client_id: int
    date: datetime.date
    time: datetime.time
    end_time: datetime.time
    description: Optional[str] = None
    price: Decimal
    paid: bool
    addons: Optional[str] = None
    client_cancel_count: int
    client_reschedule_count: int

    model_config = ConfigDict(from_attributes=True)


class AppointmentCreateResponse(BaseModel):
    message: str
    appointment: AppointmentRead
    appointments: list[AppointmentRead]
    errors: list[str] = Field(default_factory=list)
    payment_link: Optional[str] = Field(None, alias="paymentLink")
    payment_method: Optional[str] = Field(None, alias="paymentMethod")

    model_config = ConfigDict(populate_by_name=True)


class SelfServiceResponse(BaseModel):
    success: bool
    appointment: Optional[AppointmentRead] = None


class BookingResult(BaseModel):
    """Outcome of one booking request: the appointments made and the dates skipped."""
    created: list[AppointmentRead]
    errors: list[str] = Field(default_factory=list)
