"""
Tests for the LedgerService, the PaymentReconciler and the PaymentLinkService.
"""
import pytest
from datetime import time
from decimal import Decimal
from unittest.mock import AsyncMock
from fastapi import HTTPException
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from src.booking_backend.common.config import settings
from src.booking_backend.common.exceptions import PaymentNotCompleted, SlotConflict
from src.booking_backend.database import models as db_models
from src.booking_backend.database.db_enums import PaymentStatus
from src.booking_backend.models.appointment import AppointmentRead
from src.booking_backend.models.finance import LedgerEntryCreate, PaidAppointmentData, PaymentConfirmation
from src.booking_backend.services.finance_service import (
    LedgerService,
    PaymentLinkService,
    PaymentReconciler,
    ledger_description
)

from tests.constants import (
    TEST_MONDAY,
    TEST_TIME,
    TEST_CLIENT_NAME,
    TEST_CLIENT_EMAIL,
    TEST_SERVICE_CATEGORY,
    TEST_TXN_ID,
    TEST_PAYMENT_LINK
)
from tests.database import factories


async def count_rows(db_session: AsyncSession, model) -> int:
    result = await db_session.execute(select(func.count()).select_from(model))
    return result.scalar_one()


def paid_appointment_data(**overrides) -> PaidAppointmentData:
    data = {
        "title": "Algebra Tutoring $45",
        "client_name": TEST_CLIENT_NAME,
        "client_email": TEST_CLIENT_EMAIL,
        "date": TEST_MONDAY,
        "time": "10:00",
    }
    data.update(overrides)
    return PaidAppointmentData(**data)


def test_ledger_description():
    assert ledger_description("Algebra", TEST_MONDAY, TEST_TIME) == "Tutoring Payment – Algebra (2030-06-03 10:00:00)"


@pytest.mark.anyio
class TestLedgerService:

    async def test_ensure_ledger_is_idempotent(self, ledger_service: LedgerService, db_session: AsyncSession):
        appointment = factories.AppointmentFactory(price=Decimal("45.00"), paid=True)
        await db_session.flush()

        entry = await ledger_service.ensure_ledger_for_appointment(appointment, appointment.price, "Zelle")
        assert entry is not None
        assert entry.amount == Decimal("45.00")
        assert entry.processor == "Zelle"
        assert entry.appointment_id == appointment.id

        assert await ledger_service.ensure_ledger_for_appointment(appointment, appointment.price, "Zelle") is None
        assert await count_rows(db_session, db_models.Profits) == 1

    async def test_ensure_ledger_tolerates_concurrent_insert(
        self,
        ledger_service: LedgerService,
        db_session: AsyncSession,
        mocker
    ):
        """The lookup misses, the unique key catches it, and the caller sees None."""
        appointment = factories.AppointmentFactory(price=Decimal("45.00"), paid=True)
        await db_session.flush()
        factories.ProfitFactory(appointment_id=appointment.id)
        await db_session.flush()

        mocker.patch.object(ledger_service, "get_entry_for_appointment", new_callable=AsyncMock, return_value=None)

        assert await ledger_service.ensure_ledger_for_appointment(appointment, appointment.price, "Zelle") is None
        assert await count_rows(db_session, db_models.Profits) == 1

    async def test_square_fee_is_deducted(self, ledger_service: LedgerService, db_session: AsyncSession):
        appointment = factories.AppointmentFactory(price=Decimal("100.00"), paid=True)
        await db_session.flush()

        entry = await ledger_service.ensure_ledger_for_appointment(appointment, Decimal("100.00"), "square")
        assert entry.amount == Decimal("96.80")

    async def test_manual_entry_and_listing(self, ledger_service: LedgerService, db_session: AsyncSession):
        older = factories.ProfitFactory(description="Older entry")
        await db_session.flush()

        manual = await ledger_service.create_manual_entry(LedgerEntryCreate(
            category="Expense",
            description="Printer ink",
            amount=Decimal("-25.00"),
            type="Supplies"
        ))
        assert manual.id is not None
        assert manual.appointment_id is None
        assert manual.processor_txn_id is None

        entries = await ledger_service.list_ledger_entries()
        assert [e.id for e in entries] == [manual.id, older.id]


@pytest.mark.anyio
class TestFinalizePayment:

    async def test_finalize_books_paid_appointment(
        self,
        payment_reconciler: PaymentReconciler,
        mock_payment_gateway,
        db_session: AsyncSession
    ):
        appointment, created = await payment_reconciler.finalize(TEST_TXN_ID, paid_appointment_data())

        assert created is True
        assert appointment.paid is True
        assert appointment.price == Decimal("45.00")
        assert appointment.time == time(10, 0)
        assert appointment.end_time == time(11, 0)
        mock_payment_gateway.get_payment.assert_awaited_once_with(TEST_TXN_ID)

        entry = (await db_session.execute(select(db_models.Profits))).scalars().one()
        assert entry.processor_txn_id == TEST_TXN_ID
        assert entry.appointment_id == appointment.id
        assert entry.processor == "Square"
        # 103.30 - (103.30 * 2.9% + 0.30)
        assert entry.amount == Decimal("100.00")

        client = await db_session.get(db_models.Clients, appointment.client_id)
        assert client.payment_method == "Square"
        print(f"Finalized {TEST_TXN_ID} as appointment {appointment.id}")

    async def test_explicit_price_wins_over_title(self, payment_reconciler: PaymentReconciler):
        appointment, _ = await payment_reconciler.finalize(
            TEST_TXN_ID, paid_appointment_data(price=Decimal("60"), category=TEST_SERVICE_CATEGORY)
        )
        assert appointment.price == Decimal("60")

    async def test_replay_returns_original_appointment(
        self,
        payment_reconciler: PaymentReconciler,
        mock_payment_gateway,
        db_session: AsyncSession
    ):
        first, created = await payment_reconciler.finalize(TEST_TXN_ID, paid_appointment_data())
        again, created_again = await payment_reconciler.finalize(TEST_TXN_ID, paid_appointment_data(time="15:00"))

        assert created is True
        assert created_again is False
        assert again.id == first.id
        # A replay never asks the processor again.
        assert mock_payment_gateway.get_payment.await_count == 1
        assert await count_rows(db_session, db_models.Appointments) == 1
        assert await count_rows(db_session, db_models.Profits) == 1

    async def test_incomplete_payment_books_nothing(
        self,
        payment_reconciler: PaymentReconciler,
        mock_payment_gateway,
        db_session: AsyncSession
    ):
        mock_payment_gateway.get_payment = AsyncMock(return_value=PaymentConfirmation(
            transaction_id=TEST_TXN_ID,
            status=PaymentStatus.PENDING,
            amount=Decimal("45.00"),
            processor="Square"
        ))

        with pytest.raises(PaymentNotCompleted) as e:
            await payment_reconciler.finalize(TEST_TXN_ID, paid_appointment_data())

        assert e.value.status_code == 400
        assert await count_rows(db_session, db_models.Appointments) == 0
        assert await count_rows(db_session, db_models.Clients) == 0
        assert await count_rows(db_session, db_models.Profits) == 0

    async def test_taken_slot_books_nothing(self, payment_reconciler: PaymentReconciler, db_session: AsyncSession):
        factories.AppointmentFactory(date=TEST_MONDAY, time=TEST_TIME)
        await db_session.flush()

        with pytest.raises(SlotConflict):
            await payment_reconciler.finalize(TEST_TXN_ID, paid_appointment_data())

        assert await count_rows(db_session, db_models.Appointments) == 1
        assert await count_rows(db_session, db_models.Profits) == 0

    async def test_blocks_do_not_stop_a_paid_booking(self, payment_reconciler: PaymentReconciler, db_session: AsyncSession):
        factories.ScheduleBlockFactory(date=TEST_MONDAY, time_slot=TEST_TIME)
        await db_session.flush()

        _, created = await payment_reconciler.finalize(TEST_TXN_ID, paid_appointment_data())
        assert created is True

    async def test_concurrent_finalize_returns_winner(
        self,
        payment_reconciler: PaymentReconciler,
        db_session: AsyncSession,
        mocker
    ):
        """
        Another request finalized the same transaction between our replay
        check and our ledger insert: our booking is rolled back and the
        winner's appointment is returned.
        """
        winner_appointment = factories.AppointmentFactory(paid=True)
        await db_session.flush()
        winner_entry = factories.ProfitFactory(processor_txn_id=TEST_TXN_ID, appointment_id=winner_appointment.id)
        await db_session.flush()

        mocker.patch.object(
            payment_reconciler.ledger_service,
            "get_entry_by_transaction",
            new_callable=AsyncMock,
            side_effect=[None, winner_entry]
        )

        appointment, created = await payment_reconciler.finalize(TEST_TXN_ID, paid_appointment_data())

        assert created is False
        assert appointment.id == winner_appointment.id
        assert await count_rows(db_session, db_models.Appointments) == 1
        assert await count_rows(db_session, db_models.Clients) == 1
        assert await count_rows(db_session, db_models.Profits) == 1

    @pytest.mark.parametrize("precheck_passes", [False, True])
    async def test_concurrent_finalize_holding_the_slot_returns_winner(
        self,
        payment_reconciler: PaymentReconciler,
        db_session: AsyncSession,
        mocker,
        precheck_passes: bool
    ):
        """
        The winning request already booked the same slot for the same
        transaction. Whether the slot check or the insert notices it, the
        loser answers with the winner's appointment instead of a conflict.
        """
        winner_appointment = factories.AppointmentFactory(date=TEST_MONDAY, time=TEST_TIME, paid=True)
        await db_session.flush()
        winner_entry = factories.ProfitFactory(processor_txn_id=TEST_TXN_ID, appointment_id=winner_appointment.id)
        await db_session.flush()

        mocker.patch.object(
            payment_reconciler.ledger_service,
            "get_entry_by_transaction",
            new_callable=AsyncMock,
            side_effect=[None, winner_entry]
        )
        if precheck_passes:
            mocker.patch.object(payment_reconciler.conflict_checker, "check_slot", new_callable=AsyncMock)

        appointment, created = await payment_reconciler.finalize(TEST_TXN_ID, paid_appointment_data())

        assert created is False
        assert appointment.id == winner_appointment.id
        assert await count_rows(db_session, db_models.Appointments) == 1
        assert await count_rows(db_session, db_models.Clients) == 1
        assert await count_rows(db_session, db_models.Profits) == 1


def booked_appointment(**overrides) -> AppointmentRead:
    data = {
        "id": 7,
        "title": "Algebra Tutoring $45",
        "client_id": 1,
        "date": TEST_MONDAY,
        "time": TEST_TIME,
        "end_time": time(11, 0),
        "price": Decimal("45.00"),
        "paid": False,
        "client_cancel_count": 0,
        "client_reschedule_count": 0,
    }
    data.update(overrides)
    return AppointmentRead(**data)


@pytest.mark.anyio
class TestPaymentLinkService:

    async def test_square_link_adds_fees(self, payment_link_service: PaymentLinkService, mock_payment_gateway):
        url = await payment_link_service.create_square_link(Decimal("45"), "Algebra")

        assert url == TEST_PAYMENT_LINK
        mock_payment_gateway.create_payment_link.assert_awaited_once_with(Decimal("46.61"), "Algebra")

    async def test_square_booking_gets_a_link(self, payment_link_service: PaymentLinkService, mock_payment_gateway):
        url = await payment_link_service.link_for_booking(booked_appointment(), "Square")

        assert url == TEST_PAYMENT_LINK
        charge, description = mock_payment_gateway.create_payment_link.await_args.args
        assert charge == Decimal("46.61")
        assert description == "Payment for Algebra Tutoring $45 on 2030-06-03 at 10:00:00"

    @pytest.mark.parametrize("method", ["Zelle", "cashapp"])
    async def test_manual_methods_get_the_payment_page(
        self,
        payment_link_service: PaymentLinkService,
        mock_payment_gateway,
        method: str
    ):
        url = await payment_link_service.link_for_booking(booked_appointment(), method)

        assert url == f"{settings.PAYMENT_PAGE_URL}?price=45.00&appointment_type=Algebra+Tutoring+%2445"
        mock_payment_gateway.create_payment_link.assert_not_awaited()

    @pytest.mark.parametrize("overrides, method", [
        ({"price": Decimal("0.00")}, "Square"),
        ({"paid": True}, "Square"),
        ({}, None),
        ({}, "Other"),
    ])
    async def test_no_link_needed(
        self,
        payment_link_service: PaymentLinkService,
        mock_payment_gateway,
        overrides: dict,
        method
    ):
        assert await payment_link_service.link_for_booking(booked_appointment(**overrides), method) is None
        mock_payment_gateway.create_payment_link.assert_not_awaited()

    async def test_square_failure_leaves_booking_without_link(
        self,
        payment_link_service: PaymentLinkService,
        mock_payment_gateway
    ):
        mock_payment_gateway.create_payment_link = AsyncMock(
            side_effect=HTTPException(status_code=503, detail="Payment service is currently unavailable.")
        )

        assert await payment_link_service.link_for_booking(booked_appointment(), "Square") is None


def test_compute_profit_is_exposed():
    assert PaymentReconciler.compute_profit(Decimal("10.00"), "Zelle") == Decimal("10.00")
