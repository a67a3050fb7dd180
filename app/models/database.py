"""
Database Models

SQLAlchemy ORM models for the barbershop booking system.
"""

from datetime import date, datetime, time
from decimal import Decimal
from enum import Enum
from typing import Optional, List

from sqlalchemy import (
    Boolean, Date, DateTime, ForeignKey, Index, Integer, Numeric, String, Text,
    Time, Enum as SQLEnum, text
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    """Base class for all database models."""
    pass


class TimestampMixin:
    """Mixin that adds created_at and updated_at timestamp columns."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        server_default=text("CURRENT_TIMESTAMP"),
        nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime,
        server_default=text("CURRENT_TIMESTAMP"),
        nullable=False
    )


class BookingStatus(str, Enum):
    """Booking status enumeration.

    CONFIRMED is the only non-terminal status.
    """
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"
    NO_SHOW = "no_show"


# Statuses that occupy a provider's time
BLOCKING_STATUSES = (BookingStatus.CONFIRMED, BookingStatus.COMPLETED)


class Service(Base, TimestampMixin):
    """
    Service model (haircut, beard trim, ...).

    Reference data; the booking core only reads it.
    """

    __tablename__ = "services"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False)
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    display_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    def __repr__(self) -> str:
        return f"<Service(id={self.id}, name='{self.name}', duration={self.duration_minutes})>"


class Provider(Base, TimestampMixin):
    """
    Provider model (barbers).

    Counters are only ever changed with a single UPDATE ... SET n = n + 1.
    """

    __tablename__ = "providers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    bio: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    rating: Mapped[Optional[Decimal]] = mapped_column(Numeric(2, 1), nullable=True)
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    display_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_bookings: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    completed_bookings: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    bookings: Mapped[List["Booking"]] = relationship(
        "Booking",
        back_populates="provider"
    )

    def __repr__(self) -> str:
        return f"<Provider(id={self.id}, name='{self.name}')>"


class Customer(Base, TimestampMixin):
    """
    Customer profile keyed by messaging identity (phone number).

    Created lazily by the ledger on first booking.
    """

    __tablename__ = "customers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    identity: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    total_bookings: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    completed_bookings: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    cancelled_bookings: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    no_show_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    loyalty_points: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    lifetime_loyalty_points: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # Most-booked service and provider, with how often each was booked
    preferred_service_id: Mapped[Optional[int]] = mapped_column(
        Integer,
        ForeignKey("services.id"),
        nullable=True
    )
    preferred_service_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    preferred_provider_id: Mapped[Optional[int]] = mapped_column(
        Integer,
        ForeignKey("providers.id"),
        nullable=True
    )
    preferred_provider_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    first_visit: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    last_visit: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    def __repr__(self) -> str:
        return f"<Customer(id={self.id}, identity='{self.identity}')>"


class Booking(Base):
    """
    Booking model (reservation).

    Only the booking ledger writes rows here. For one provider and date,
    CONFIRMED/COMPLETED rows never have overlapping [start_time, end_time).
    """

    __tablename__ = "bookings"
    __table_args__ = (
        Index("idx_booking_provider_date", "provider_id", "booking_date"),
        Index("idx_booking_customer", "customer_identity"),
        Index("idx_booking_status_date", "status", "booking_date"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    booking_code: Mapped[str] = mapped_column(String(10), unique=True, nullable=False)
    customer_identity: Mapped[str] = mapped_column(String(64), nullable=False)
    service_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("services.id"),
        nullable=False
    )
    provider_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("providers.id"),
        nullable=False
    )
    booking_date: Mapped[date] = mapped_column(Date, nullable=False)
    start_time: Mapped[time] = mapped_column(Time, nullable=False)
    end_time: Mapped[time] = mapped_column(Time, nullable=False)
    status: Mapped[BookingStatus] = mapped_column(
        SQLEnum(BookingStatus),
        default=BookingStatus.CONFIRMED,
        nullable=False
    )

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    day_before_reminder_sent: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    day_before_reminder_sent_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    short_horizon_reminder_sent: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    short_horizon_reminder_sent_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    service: Mapped["Service"] = relationship("Service", lazy="joined")
    provider: Mapped["Provider"] = relationship(
        "Provider",
        back_populates="bookings",
        lazy="joined"
    )

    def __repr__(self) -> str:
        return (
            f"<Booking(code='{self.booking_code}', provider={self.provider_id}, "
            f"date={self.booking_date}, start={self.start_time}, status={self.status.value})>"
        )
