'''
Appointment booking: turns a (possibly recurring) booking request into
conflict-free appointments, and the administrator operations on them.
'''
import datetime
from decimal import Decimal
from typing import Annotated, Any, Optional

from fastapi import Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..common.config import settings
from ..common.exceptions import BookingError, NoSlotsAvailable, SlotConflict, ValidationError
from ..common.logger import log
from ..core.pricing import extract_price_from_title
from ..core.recurrence import expand_recurrence
from ..core.time_normalizer import add_minutes, format_time, minutes_between, parse_time
from ..database import models as db_models
from ..database.engine import get_db_session
from ..models import appointment as appointment_models
from .client_service import ClientService
from .conflict_checker import ConflictChecker
from .finance_service import LedgerService


class AppointmentService:
    """
    Service for creating, editing, and deleting appointments.
    """
    def __init__(
        self,
        db: Annotated[AsyncSession, Depends(get_db_session)],
        client_service: Annotated[ClientService, Depends(ClientService)],
        conflict_checker: Annotated[ConflictChecker, Depends(ConflictChecker)],
        ledger_service: Annotated[LedgerService, Depends(LedgerService)]
    ):
        self.db = db
        self.client_service = client_service
        self.conflict_checker = conflict_checker
        self.ledger_service = ledger_service

    # --- Internal Helpers ---

    async def _get_appointment_by_id_internal(self, appointment_id: int) -> db_models.Appointments:
        """Fetches an appointment by ID. Raises 404 if not found."""
        appointment = await self.db.get(db_models.Appointments, appointment_id)
        if not appointment:
            log.warning(f"Tried to fetch non-existing appointment: {appointment_id}")
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Appointment not found.")
        return appointment

    async def _insert_appointment(self, appointment: db_models.Appointments) -> db_models.Appointments:
        """Inserts in a savepoint. Losing the (date, time) unique key raises SlotConflict."""
        try:
            async with self.db.begin_nested():
                self.db.add(appointment)
                await self.db.flush()
        except IntegrityError:
            log.warning(f"Unique slot violation inserting {appointment.date} {appointment.time}.")
            raise SlotConflict(
                f"The time slot {appointment.date} {format_time(appointment.time)} is already booked."
            )
        return appointment

    async def _resolve_client(self, request: appointment_models.AppointmentCreate) -> db_models.Clients:
        """Only administrators may bill a booking to an existing client by id."""
        if request.is_admin and request.client_id is not None:
            return await self.client_service.get_client_by_id(request.client_id)
        if request.client_id is not None:
            log.warning(f"Ignoring client_id {request.client_id} on a client booking.")
        return await self.client_service.resolve_or_create(
            request.client_name,
            request.client_email,
            request.client_phone,
            request.category,
            request.payment_method
        )

    @staticmethod
    def _price_for(request: appointment_models.AppointmentCreate) -> Decimal:
        """Admin's explicit price, else the amount paid, else a `$NN` token in the title."""
        if request.is_admin and request.price is not None:
            return request.price
        if request.amount_paid and request.amount_paid > 0:
            return request.amount_paid
        return extract_price_from_title(request.title)

    # --- Booking ---

    async def create_appointments(
        self,
        request: appointment_models.AppointmentCreate
    ) -> appointment_models.BookingResult:
        """
        Books every date the request expands to.

        Client bookings are all-or-nothing: the client, the appointments and
        the ledger row share one savepoint, and the first unavailable date
        aborts the request with SlotConflict. Administrator bookings skip
        unavailable dates and report them in `errors`.
        """
        title = (request.title or "").strip()
        names_client = bool((request.client_name or "").strip())
        if request.is_admin and request.client_id is not None:
            names_client = True
        if not title or not names_client:
            raise ValidationError("Missing required appointment details.")

        start = parse_time(request.time, "time")
        if request.end_time is not None:
            end = parse_time(request.end_time, "end_time")
        else:
            end = add_minutes(start, settings.DEFAULT_SESSION_MINUTES)

        dates = expand_recurrence(request.date, request.recurrence, request.occurrences, request.weekdays)
        price = self._price_for(request)
        paid = (not request.is_admin) and request.amount_paid > 0
        log.info(
            f"Booking '{title}' at {format_time(start)} on {len(dates)} date(s) "
            f"(admin={request.is_admin}, paid={paid})."
        )

        def build(day: datetime.date, client_id: int) -> db_models.Appointments:
            return db_models.Appointments(
                title=title,
                client_id=client_id,
                date=day,
                time=start,
                end_time=end,
                description=request.description,
                addons=request.addons,
                price=price,
                paid=paid,
                client_cancel_count=0,
                client_reschedule_count=0
            )

        created: list[db_models.Appointments] = []
        errors: list[str] = []

        try:
            if request.is_admin:
                client = await self._resolve_client(request)
                for day in dates:
                    try:
                        await self.conflict_checker.check_slot(day, start, respect_blocks=False)
                        created.append(await self._insert_appointment(build(day, client.id)))
                    except SlotConflict as e:
                        log.info(f"Admin booking skipped {day}: {e.message}")
                        errors.append(f"Skipped {day.isoformat()} {format_time(start)}: {e.message}")
            else:
                async with self.db.begin_nested():
                    client = await self._resolve_client(request)
                    for day in dates:
                        await self.conflict_checker.check_slot(
                            day, start, respect_blocks=True, title=title
                        )
                        created.append(await self._insert_appointment(build(day, client.id)))

                    if paid:
                        await self.ledger_service.ensure_ledger_for_appointment(
                            created[0], request.amount_paid, request.payment_method
                        )
        except (HTTPException, BookingError):
            raise
        except Exception as e:
            log.error(f"Unexpected error while booking '{title}': {e}", exc_info=True)
            raise

        if not created:
            log.warning(f"Booking '{title}' produced no appointments. Errors: {errors}")
            raise NoSlotsAvailable()

        log.info(f"Booked {len(created)} appointment(s) for client {client.id}; skipped {len(errors)}.")
        return appointment_models.BookingResult(
            created=[appointment_models.AppointmentRead.model_validate(a) for a in created],
            errors=errors
        )

    # --- Reads ---

    async def list_appointments(self) -> list[db_models.Appointments]:
        stmt = select(db_models.Appointments).order_by(
            db_models.Appointments.date, db_models.Appointments.time
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def list_appointments_by_date(self, date: datetime.date) -> list[db_models.Appointments]:
        stmt = select(db_models.Appointments).filter(
            db_models.Appointments.date == date
        ).order_by(db_models.Appointments.time)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    # --- Administrator edits ---

    async def update_appointment(
        self,
        appointment_id: int,
        update_data: appointment_models.AppointmentUpdate
    ) -> db_models.Appointments:
        """
        Applies the allow-listed fields that were sent.
        Moving the appointment re-checks the target slot, excluding itself.
        """
        log.info(f"Updating appointment {appointment_id}.")
        appointment = await self._get_appointment_by_id_internal(appointment_id)

        changes: dict[str, Any] = {
            key: value
            for key, value in update_data.model_dump(exclude_unset=True).items()
            if value is not None or key == "description"
        }
        if not changes:
            return appointment

        new_date = changes.get("date", appointment.date)
        new_time = parse_time(changes["time"], "time") if "time" in changes else appointment.time
        if "end_time" in changes:
            new_end = parse_time(changes["end_time"], "end_time")
        elif new_time != appointment.time:
            new_end = add_minutes(new_time, minutes_between(appointment.time, appointment.end_time))
        else:
            new_end = appointment.end_time

        if "client_id" in changes:
            await self.client_service.get_client_by_id(changes["client_id"])

        if new_date != appointment.date or new_time != appointment.time:
            await self.conflict_checker.check_slot(
                new_date, new_time, excluding_id=appointment.id, respect_blocks=False
            )

        try:
            async with self.db.begin_nested():
                for key in ("title", "description", "client_id"):
                    if key in changes:
                        setattr(appointment, key, changes[key])
                appointment.date = new_date
                appointment.time = new_time
                appointment.end_time = new_end
                await self.db.flush()
        except IntegrityError:
            log.warning(f"Unique slot violation moving appointment {appointment_id} to {new_date} {new_time}.")
            raise SlotConflict(f"The time slot {new_date} {format_time(new_time)} is already booked.")

        await self.db.refresh(appointment)
        log.info(f"Appointment {appointment_id} updated: {sorted(changes)}")
        return appointment

    async def delete_appointment(self, appointment_id: int) -> dict[str, str]:
        log.info(f"Deleting appointment {appointment_id}.")
        appointment = await self._get_appointment_by_id_internal(appointment_id)
        await self.db.delete(appointment)
        await self.db.flush()
        return {"message": "Appointment deleted successfully."}

    async def set_paid_status(self, appointment_id: int, paid: bool) -> db_models.Appointments:
        """
        Sets the paid flag. Marking a priced appointment paid records it in the
        ledger once, net of the fees of the client's payment method.
        """
        appointment = await self._get_appointment_by_id_internal(appointment_id)
        client = await self.client_service.get_client_by_id(appointment.client_id)

        appointment.paid = paid
        await self.db.flush()
        log.info(f"Appointment {appointment_id} marked paid={paid}.")

        price: Optional[Decimal] = appointment.price
        if paid and price and price > 0:
            await self.ledger_service.ensure_ledger_for_appointment(
                appointment, price, client.payment_method or "Other"
            )
        return appointment
