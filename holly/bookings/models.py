"""
Holly Transportation - Booking Models

Minimal ride-booking entity. It exists so the authorization gate and the
audit trail have a protected resource to guard: owners see and cancel
their own bookings, admins see all of them and change their status.
"""

from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import uuid4

from sqlmodel import SQLModel, Field
from sqlalchemy import Column, DateTime, String, Text

from holly.auth.models import utcnow


class ServiceType(str, Enum):
    DOCTOR_APPOINTMENT = "doctor_appointment"
    PHYSICAL_THERAPY = "physical_therapy"
    DIALYSIS = "dialysis"
    PHARMACY = "pharmacy"
    OTHER = "other"


class BookingStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


def new_booking_id() -> str:
    return str(uuid4())


class Booking(SQLModel, table=True):
    """
    One requested ride.

    Attributes:
        id: Booking identifier
        user_id: Owner (the user who booked)
        pickup_address: Where the ride starts
        destination_address: Where the ride ends
        appointment_date: Date of the appointment
        appointment_time: Free-form time, e.g. "09:30"
        service_type: ServiceType value
        status: BookingStatus value
    """
    __tablename__ = "bookings"

    id: str = Field(
        default_factory=new_booking_id,
        sa_column=Column(String(64), primary_key=True),
    )
    user_id: str = Field(foreign_key="users.id", nullable=False, index=True)
    pickup_address: str = Field(sa_column=Column(Text, nullable=False))
    destination_address: str = Field(sa_column=Column(Text, nullable=False))
    appointment_date: datetime = Field(sa_column=Column(DateTime, nullable=False))
    appointment_time: str = Field(sa_column=Column(String(16), nullable=False))
    service_type: str = Field(sa_column=Column(String(32), nullable=False))
    special_needs: Optional[str] = Field(default=None, sa_column=Column(Text, nullable=True))
    status: str = Field(
        default=BookingStatus.PENDING.value,
        sa_column=Column(String(16), nullable=False, default=BookingStatus.PENDING.value),
    )
    notes: Optional[str] = Field(default=None, sa_column=Column(Text, nullable=True))
    created_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime, nullable=False, default=utcnow),
    )
