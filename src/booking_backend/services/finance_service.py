'''
Ledger ("profits") bookkeeping and the payment side of bookings: checkout
links and the reconciliation of external payments.
'''
import datetime
from decimal import Decimal
from typing import Annotated, Optional
from urllib.parse import urlencode

from fastapi import Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..common.config import settings
from ..common.exceptions import LedgerDuplicate, PaymentNotCompleted, SlotConflict
from ..common.logger import log
from ..core.pricing import compute_profit, extract_price_from_title, square_charge_amount
from ..core.time_normalizer import add_minutes, format_time, parse_time
from ..database import models as db_models
from ..database.engine import get_db_session
from ..database.db_enums import PaymentProcessor
from ..models import appointment as appointment_models
from ..models import finance as finance_models
from .client_service import ClientService
from .conflict_checker import ConflictChecker
from .payment_gateway import SquarePaymentGateway


def ledger_description(title: str, date: datetime.date, time: datetime.time) -> str:
    return f"Tutoring Payment – {title} ({date.isoformat()} {format_time(time)})"


# --- Service 1: Ledger ---

class LedgerService:
    """
    Writes and reads ledger rows. Each paid appointment and each processor
    transaction is recorded at most once; rows are never updated.
    """
    def __init__(self, db: Annotated[AsyncSession, Depends(get_db_session)]):
        self.db = db

    async def get_entry_for_appointment(self, appointment_id: int) -> Optional[db_models.Profits]:
        stmt = select(db_models.Profits).filter(db_models.Profits.appointment_id == appointment_id)
        result = await self.db.execute(stmt)
        return result.scalars().first()

    async def get_entry_by_transaction(self, transaction_id: str) -> Optional[db_models.Profits]:
        stmt = select(db_models.Profits).filter(db_models.Profits.processor_txn_id == transaction_id)
        result = await self.db.execute(stmt)
        return result.scalars().first()

    async def _insert(self, entry: db_models.Profits) -> db_models.Profits:
        """Inserts in a savepoint. A unique-key violation raises LedgerDuplicate."""
        try:
            async with self.db.begin_nested():
                self.db.add(entry)
                await self.db.flush()
        except IntegrityError as e:
            raise LedgerDuplicate(str(e)) from e
        return entry

    async def ensure_ledger_for_appointment(
        self,
        appointment: db_models.Appointments,
        amount,
        processor: Optional[str],
        transaction_id: Optional[str] = None
    ) -> Optional[db_models.Profits]:
        """
        Records the payment of an appointment unless it is already recorded.
        Returns the new row, or None when a row already existed.
        """
        if await self.get_entry_for_appointment(appointment.id):
            log.info(f"Ledger entry for appointment {appointment.id} already exists. Skipping.")
            return None

        entry = db_models.Profits(
            category=settings.LEDGER_CATEGORY,
            description=ledger_description(appointment.title, appointment.date, appointment.time),
            amount=compute_profit(amount, processor),
            type=settings.LEDGER_TYPE,
            processor=processor,
            processor_txn_id=transaction_id,
            appointment_id=appointment.id
        )
        try:
            await self._insert(entry)
        except LedgerDuplicate:
            log.info(f"Ledger entry for appointment {appointment.id} was recorded concurrently. Skipping.")
            return None
        log.info(f"Recorded ledger entry {entry.id} ({entry.amount}) for appointment {appointment.id}.")
        return entry

    async def list_ledger_entries(self) -> list[db_models.Profits]:
        stmt = select(db_models.Profits).order_by(
            db_models.Profits.created_at.desc(), db_models.Profits.id.desc()
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def create_manual_entry(self, entry_data: finance_models.LedgerEntryCreate) -> db_models.Profits:
        """Records an entry that is not tied to an appointment or transaction."""
        log.info(f"Creating manual ledger entry: {entry_data.category} / {entry_data.amount}")
        entry = db_models.Profits(**entry_data.model_dump())
        self.db.add(entry)
        await self.db.flush()
        await self.db.refresh(entry)
        return entry


# --- Service 2: Payment Reconciliation ---

class PaymentReconciler:
    """
    Turns a confirmed external payment into a paid appointment plus exactly
    one ledger row keyed by the processor's transaction id.
    """
    def __init__(
        self,
        db: Annotated[AsyncSession, Depends(get_db_session)],
        client_service: Annotated[ClientService, Depends(ClientService)],
        conflict_checker: Annotated[ConflictChecker, Depends(ConflictChecker)],
        ledger_service: Annotated[LedgerService, Depends(LedgerService)],
        gateway: Annotated[SquarePaymentGateway, Depends(SquarePaymentGateway)]
    ):
        self.db = db
        self.client_service = client_service
        self.conflict_checker = conflict_checker
        self.ledger_service = ledger_service
        self.gateway = gateway

    compute_profit = staticmethod(compute_profit)

    async def _appointment_for_entry(self, entry: db_models.Profits) -> db_models.Appointments:
        appointment = None
        if entry.appointment_id is not None:
            appointment = await self.db.get(db_models.Appointments, entry.appointment_id)
        if appointment is None:
            log.warning(f"Transaction {entry.processor_txn_id} was processed but its appointment no longer exists.")
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="This payment has already been processed."
            )
        return appointment

    async def finalize(
        self,
        transaction_id: str,
        appointment_data: finance_models.PaidAppointmentData
    ) -> tuple[db_models.Appointments, bool]:
        """
        Books the appointment a payment was made for.
        Returns (appointment, created). Replaying a processed transaction id
        returns the original appointment with created=False.
        """
        log.info(f"Finalizing payment {transaction_id} for '{appointment_data.title}' on {appointment_data.date}.")
        existing = await self.ledger_service.get_entry_by_transaction(transaction_id)
        if existing:
            log.info(f"Transaction {transaction_id} already finalized. Returning the original appointment.")
            return await self._appointment_for_entry(existing), False

        confirmation = await self.gateway.get_payment(transaction_id)
        if not confirmation.is_completed:
            log.warning(f"Payment {transaction_id} is {confirmation.status.value}, not completed. Nothing booked.")
            raise PaymentNotCompleted(f"Payment status is {confirmation.status.value}.")

        start = parse_time(appointment_data.time, "time")
        if appointment_data.end_time is not None:
            end = parse_time(appointment_data.end_time, "end_time")
        else:
            end = add_minutes(start, settings.DEFAULT_SESSION_MINUTES)

        paid_amount = confirmation.amount
        if paid_amount is None:
            paid_amount = appointment_data.amount_paid or Decimal("0")
        price = appointment_data.price or extract_price_from_title(appointment_data.title) or paid_amount
        processor = confirmation.processor

        try:
            # TODO: refund through the processor when the slot was taken during checkout.
            await self.conflict_checker.check_slot(appointment_data.date, start, respect_blocks=False)

            async with self.db.begin_nested():
                client = await self.client_service.resolve_or_create(
                    appointment_data.client_name,
                    appointment_data.client_email,
                    appointment_data.client_phone,
                    appointment_data.category,
                    appointment_data.payment_method or processor
                )
                appointment = db_models.Appointments(
                    title=appointment_data.title,
                    client_id=client.id,
                    date=appointment_data.date,
                    time=start,
                    end_time=end,
                    description=appointment_data.description,
                    price=price,
                    paid=True
                )
                self.db.add(appointment)
                try:
                    await self.db.flush()
                except IntegrityError:
                    raise SlotConflict(f"The time slot {appointment_data.date} {format_time(start)} is already booked.")

                entry = db_models.Profits(
                    category=settings.LEDGER_CATEGORY,
                    description=ledger_description(appointment.title, appointment.date, appointment.time),
                    amount=compute_profit(paid_amount, processor),
                    type=settings.LEDGER_TYPE,
                    processor=processor,
                    processor_txn_id=transaction_id,
                    appointment_id=appointment.id
                )
                self.db.add(entry)
                try:
                    await self.db.flush()
                except IntegrityError as e:
                    raise LedgerDuplicate(str(e)) from e
        except (SlotConflict, LedgerDuplicate):
            # A concurrent finalize of the same transaction usually takes the slot first.
            winner = await self.ledger_service.get_entry_by_transaction(transaction_id)
            if winner is None:
                raise
            log.info(f"Transaction {transaction_id} was finalized concurrently. Returning the winner's appointment.")
            return await self._appointment_for_entry(winner), False

        log.info(f"Payment {transaction_id} finalized as appointment {appointment.id} for client {client.id}.")
        return appointment, True


# --- Service 3: Payment Links ---

class PaymentLinkService:
    """
    Hands out the link a client follows to pay for a booking.
    Square links charge the price plus Square's fees; Zelle and CashApp
    payers are sent to the frontend's payment page.
    """
    MANUAL_LINK_METHODS = {PaymentProcessor.ZELLE.value.lower(), PaymentProcessor.CASHAPP.value.lower()}

    def __init__(self, gateway: Annotated[SquarePaymentGateway, Depends(SquarePaymentGateway)]):
        self.gateway = gateway

    async def create_square_link(self, amount: Decimal, description: Optional[str] = None) -> str:
        charge = square_charge_amount(amount)
        log.info(f"Square link for {amount}: charging {charge} to cover fees.")
        return await self.gateway.create_payment_link(
            charge, description or "Please complete your payment."
        )

    async def link_for_booking(
        self,
        appointment: appointment_models.AppointmentRead,
        payment_method: Optional[str]
    ) -> Optional[str]:
        """
        The payment link for a freshly booked, unpaid, priced appointment,
        or None. A Square failure is logged and gives None; the booking stands.
        """
        if appointment.paid or not appointment.price or appointment.price <= 0 or not payment_method:
            return None

        method = payment_method.strip().lower()
        if method == PaymentProcessor.SQUARE.value.lower():
            description = (
                f"Payment for {appointment.title} on {appointment.date.isoformat()} "
                f"at {format_time(appointment.time)}"
            )
            try:
                return await self.create_square_link(appointment.price, description)
            except HTTPException as e:
                log.error(f"No Square link for appointment {appointment.id}: {e.detail}")
                return None

        if method in self.MANUAL_LINK_METHODS:
            query = urlencode({"price": str(appointment.price), "appointment_type": appointment.title.strip()})
            return f"{settings.PAYMENT_PAGE_URL}?{query}"

        return None
