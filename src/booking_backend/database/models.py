from typing import Optional

from sqlalchemy import Boolean, CheckConstraint, Date, DateTime, Enum, ForeignKeyConstraint, Index, Integer, Numeric, PrimaryKeyConstraint, String, Text, Time, UniqueConstraint, func, text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
import datetime
import decimal

class Base(DeclarativeBase):
    pass


class Users(Base):
    __tablename__ = 'users'
    __table_args__ = (
        PrimaryKeyConstraint('id', name='users_pkey'),
        UniqueConstraint('username', name='users_username_key'),
        UniqueConstraint('email', name='users_email_key')
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(Text)
    username: Mapped[str] = mapped_column(String(255))
    email: Mapped[str] = mapped_column(String(255))
    password_hash: Mapped[str] = mapped_column(String(255))
    role: Mapped[str] = mapped_column(Enum('user', 'client', 'admin', name='user_role'), default='user', server_default=text("'user'"))
    phone: Mapped[Optional[str]] = mapped_column(Text)
    user_type: Mapped[Optional[str]] = mapped_column(Enum('student', 'client', name='user_type_enum'))

    clients: Mapped[list['Clients']] = relationship('Clients', back_populates='user')


class Clients(Base):
    __tablename__ = 'clients'
    __table_args__ = (
        ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='SET NULL', name='clients_user_id_fkey'),
        PrimaryKeyConstraint('id', name='clients_pkey'),
        # email is the natural key outside tutoring categories (email_key is NULL for tutoring rows)
        UniqueConstraint('email_key', name='clients_email_key_key'),
        UniqueConstraint('full_name', 'email', 'category', name='unique_person_per_category'),
        Index('idx_clients_email', 'email')
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    full_name: Mapped[str] = mapped_column(Text)
    email: Mapped[Optional[str]] = mapped_column(String(255))
    phone: Mapped[Optional[str]] = mapped_column(Text)
    category: Mapped[Optional[str]] = mapped_column(Text)
    payment_method: Mapped[Optional[str]] = mapped_column(Text)
    user_id: Mapped[Optional[int]] = mapped_column(Integer)
    email_key: Mapped[Optional[str]] = mapped_column(String(255))

    user: Mapped[Optional['Users']] = relationship('Users', back_populates='clients')
    appointments: Mapped[list['Appointments']] = relationship('Appointments', back_populates='client', cascade='all, delete-orphan')


class Appointments(Base):
    __tablename__ = 'appointments'
    __table_args__ = (
        CheckConstraint('client_cancel_count >= 0 AND client_cancel_count <= 1', name='client_cancel_once'),
        CheckConstraint('client_reschedule_count >= 0 AND client_reschedule_count <= 1', name='client_reschedule_once'),
        ForeignKeyConstraint(['client_id'], ['clients.id'], ondelete='CASCADE', name='appointments_client_id_fkey'),
        PrimaryKeyConstraint('id', name='appointments_pkey'),
        # the authoritative guard against double booking
        UniqueConstraint('date', 'time', name='unique_appointment_slot'),
        Index('idx_appointments_client', 'client_id')
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(Text)
    client_id: Mapped[int] = mapped_column(Integer)
    date: Mapped[datetime.date] = mapped_column(Date)
    time: Mapped[datetime.time] = mapped_column(Time)
    end_time: Mapped[datetime.time] = mapped_column(Time)
    price: Mapped[decimal.Decimal] = mapped_column(Numeric(10, 2), default=decimal.Decimal('0.00'), server_default=text('0'))
    paid: Mapped[bool] = mapped_column(Boolean, default=False, server_default=text('false'))
    client_cancel_count: Mapped[int] = mapped_column(Integer, default=0, server_default=text('0'))
    client_reschedule_count: Mapped[int] = mapped_column(Integer, default=0, server_default=text('0'))
    description: Mapped[Optional[str]] = mapped_column(Text)
    addons: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[Optional[datetime.datetime]] = mapped_column(DateTime(True), server_default=func.now())

    client: Mapped['Clients'] = relationship('Clients', back_populates='appointments')


class Profits(Base):
    """Ledger rows. Inserted once per paid appointment / transaction, never updated."""
    __tablename__ = 'profits'
    __table_args__ = (
        ForeignKeyConstraint(['appointment_id'], ['appointments.id'], ondelete='SET NULL', name='profits_appointment_id_fkey'),
        PrimaryKeyConstraint('id', name='profits_pkey'),
        UniqueConstraint('appointment_id', name='profits_appointment_id_key'),
        UniqueConstraint('processor_txn_id', name='profits_processor_txn_id_key')
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    category: Mapped[str] = mapped_column(Text)
    description: Mapped[str] = mapped_column(Text)
    amount: Mapped[decimal.Decimal] = mapped_column(Numeric(10, 2))
    type: Mapped[str] = mapped_column(Text)
    processor: Mapped[Optional[str]] = mapped_column(Text)
    processor_txn_id: Mapped[Optional[str]] = mapped_column(String(255))
    appointment_id: Mapped[Optional[int]] = mapped_column(Integer)
    created_at: Mapped[Optional[datetime.datetime]] = mapped_column(DateTime(True), server_default=func.now())


class ScheduleBlocks(Base):
    __tablename__ = 'schedule_blocks'
    __table_args__ = (
        PrimaryKeyConstraint('id', name='schedule_blocks_pkey'),
        UniqueConstraint('date', 'time_slot', name='unique_block_time')
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    date: Mapped[datetime.date] = mapped_column(Date)
    time_slot: Mapped[datetime.time] = mapped_column(Time)
    label: Mapped[str] = mapped_column(Text, default='Blocked', server_default=text("'Blocked'"))


class WeeklyAvailability(Base):
    __tablename__ = 'weekly_availability'
    __table_args__ = (
        PrimaryKeyConstraint('id', name='weekly_availability_pkey'),
        Index('idx_weekly_availability_weekday', 'weekday', 'start_time')
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    weekday: Mapped[str] = mapped_column(Text)
    start_time: Mapped[datetime.time] = mapped_column(Time)
    end_time: Mapped[datetime.time] = mapped_column(Time)
    appointment_type: Mapped[str] = mapped_column(Text)
