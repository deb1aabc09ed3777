'''
Client self-service: each appointment may be cancelled once or rescheduled
once by its owner. Anything further goes through an administrator.
'''
import datetime
from typing import Annotated, Optional, Union

from fastapi import Depends
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..common.exceptions import LimitReached, OwnershipError, SlotConflict
from ..common.logger import log
from ..core.time_normalizer import add_minutes, format_time, minutes_between, parse_time
from ..database import models as db_models
from ..database.engine import get_db_session
from ..models import client as client_models
from .client_service import ClientService
from .conflict_checker import ConflictChecker


class ClientPortalService:
    """
    Service behind the client portal. Every method acts on behalf of the
    identity passed in and only on that identity's appointments.
    """
    def __init__(
        self,
        db: Annotated[AsyncSession, Depends(get_db_session)],
        client_service: Annotated[ClientService, Depends(ClientService)],
        conflict_checker: Annotated[ConflictChecker, Depends(ConflictChecker)]
    ):
        self.db = db
        self.client_service = client_service
        self.conflict_checker = conflict_checker

    async def _get_owned_appointment(
        self,
        appointment_id: int,
        identity: client_models.PortalIdentity
    ) -> db_models.Appointments:
        """
        Fetches an appointment billed to one of the identity's clients.
        Missing and foreign appointments both raise OwnershipError (404).
        """
        stmt = select(db_models.Appointments).join(
            db_models.Clients, db_models.Appointments.client_id == db_models.Clients.id
        ).filter(
            db_models.Appointments.id == appointment_id,
            db_models.Clients.user_id == identity.user_id
        )
        result = await self.db.execute(stmt)
        appointment = result.scalars().first()
        if appointment is None:
            log.warning(f"SECURITY: User {identity.user_id} requested appointment {appointment_id} they do not own.")
            raise OwnershipError()
        return appointment

    # --- Reads ---

    async def get_profile(self, identity: client_models.PortalIdentity) -> client_models.ClientProfileRead:
        clients = await self.client_service.get_clients_for_user(identity.user_id)
        return client_models.ClientProfileRead(
            user_id=identity.user_id,
            username=identity.username,
            name=identity.name,
            email=identity.email,
            client=client_models.ClientRead.model_validate(clients[0]) if clients else None
        )

    async def list_appointments(self, identity: client_models.PortalIdentity) -> list[db_models.Appointments]:
        stmt = select(db_models.Appointments).join(
            db_models.Clients, db_models.Appointments.client_id == db_models.Clients.id
        ).filter(
            db_models.Clients.user_id == identity.user_id
        ).order_by(db_models.Appointments.date, db_models.Appointments.time)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    # --- Self-service actions ---

    async def cancel(self, appointment_id: int, identity: client_models.PortalIdentity) -> dict[str, bool]:
        """
        Uses the appointment's one self-service cancellation and removes it.
        The counter is claimed with a conditional UPDATE so two concurrent
        requests cannot both succeed.
        """
        log.info(f"User {identity.user_id} cancelling appointment {appointment_id}.")
        appointment = await self._get_owned_appointment(appointment_id, identity)
        if appointment.client_cancel_count >= 1:
            log.warning(f"Cancel limit reached for appointment {appointment_id}.")
            raise LimitReached()

        stmt = update(db_models.Appointments).where(
            db_models.Appointments.id == appointment_id,
            db_models.Appointments.client_cancel_count < 1
        ).values(client_cancel_count=db_models.Appointments.client_cancel_count + 1)
        result = await self.db.execute(stmt)
        if result.rowcount == 0:
            log.warning(f"Cancel counter for appointment {appointment_id} was claimed concurrently.")
            raise LimitReached()

        await self.db.delete(appointment)
        await self.db.flush()
        log.info(f"Appointment {appointment_id} cancelled by user {identity.user_id}.")
        return {"success": True}

    async def reschedule(
        self,
        appointment_id: int,
        identity: client_models.PortalIdentity,
        new_date: datetime.date,
        new_time: Union[str, int],
        new_end_time: Optional[Union[str, int]] = None
    ) -> db_models.Appointments:
        """
        Uses the appointment's one self-service reschedule.
        Without a new end time the original duration is kept.
        """
        log.info(f"User {identity.user_id} rescheduling appointment {appointment_id} to {new_date} {new_time}.")
        appointment = await self._get_owned_appointment(appointment_id, identity)
        if appointment.client_reschedule_count >= 1:
            log.warning(f"Reschedule limit reached for appointment {appointment_id}.")
            raise LimitReached()

        start = parse_time(new_time, "time")
        if new_end_time is not None:
            end = parse_time(new_end_time, "end_time")
        else:
            end = add_minutes(start, minutes_between(appointment.time, appointment.end_time))

        await self.conflict_checker.check_slot(
            new_date, start, excluding_id=appointment_id, respect_blocks=True
        )

        stmt = update(db_models.Appointments).where(
            db_models.Appointments.id == appointment_id,
            db_models.Appointments.client_reschedule_count < 1
        ).values(
            date=new_date,
            time=start,
            end_time=end,
            client_reschedule_count=db_models.Appointments.client_reschedule_count + 1
        )
        try:
            async with self.db.begin_nested():
                result = await self.db.execute(stmt)
        except IntegrityError:
            log.warning(f"Unique slot violation rescheduling appointment {appointment_id} to {new_date} {start}.")
            raise SlotConflict(f"The time slot {new_date} {format_time(start)} is already booked.")

        if result.rowcount == 0:
            log.warning(f"Reschedule counter for appointment {appointment_id} was claimed concurrently.")
            raise LimitReached()

        await self.db.refresh(appointment)
        log.info(f"Appointment {appointment_id} rescheduled to {appointment.date} {format_time(appointment.time)}.")
        return appointment
