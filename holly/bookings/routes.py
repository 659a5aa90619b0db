"""
Holly Transportation - Booking Routes

Protected-entity endpoints:
- POST   /bookings               authenticated; creates a booking you own
- GET    /bookings               authenticated; own bookings, or all for admins
- PATCH  /bookings/{id}/status   admin; audited booking_status_updated
- DELETE /bookings/{id}          admin; audited booking_deleted
- DELETE /bookings/{id}/user     owner; audited booking_deleted
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Path, Request
from pydantic import BaseModel, Field
from sqlmodel import Session as DBSession, select

from holly.audit import recorder
from holly.audit.models import AuditAction
from holly.auth.dependencies import (
    AuthContext,
    get_client_ip,
    get_db,
    get_user_agent,
    require_admin,
    require_authenticated,
)
from holly.bookings.models import Booking, BookingStatus, ServiceType


router = APIRouter()


# =============================================================================
# Request/Response Models
# =============================================================================

class BookingCreateRequest(BaseModel):
    pickup_address: str = Field(..., min_length=1, max_length=500)
    destination_address: str = Field(..., min_length=1, max_length=500)
    appointment_date: datetime
    appointment_time: str = Field(..., min_length=1, max_length=16)
    service_type: ServiceType
    special_needs: Optional[str] = Field(default=None, max_length=2000)
    notes: Optional[str] = Field(default=None, max_length=2000)


class BookingStatusRequest(BaseModel):
    status: BookingStatus


class BookingResponse(BaseModel):
    id: str
    user_id: str
    pickup_address: str
    destination_address: str
    appointment_date: datetime
    appointment_time: str
    service_type: str
    special_needs: Optional[str] = None
    status: str
    notes: Optional[str] = None
    created_at: datetime


def _to_response(booking: Booking) -> BookingResponse:
    return BookingResponse(
        id=booking.id,
        user_id=booking.user_id,
        pickup_address=booking.pickup_address,
        destination_address=booking.destination_address,
        appointment_date=booking.appointment_date,
        appointment_time=booking.appointment_time,
        service_type=booking.service_type,
        special_needs=booking.special_needs,
        status=booking.status,
        notes=booking.notes,
        created_at=booking.created_at,
    )


def _snapshot(booking: Booking) -> Dict[str, Any]:
    """Booking fields kept in the audit record after the row is gone."""
    return {
        "owner_id": booking.user_id,
        "pickup_address": booking.pickup_address,
        "destination_address": booking.destination_address,
        "appointment_date": booking.appointment_date,
        "appointment_time": booking.appointment_time,
        "service_type": booking.service_type,
        "status": booking.status,
    }


def _get_booking_or_404(db: DBSession, booking_id: str) -> Booking:
    booking = db.get(Booking, booking_id)
    if booking is None:
        raise HTTPException(status_code=404, detail="Booking not found")
    return booking


# =============================================================================
# Endpoints
# =============================================================================

@router.post("/bookings", response_model=BookingResponse, summary="Create Booking")
async def create_booking(
    body: BookingCreateRequest,
    auth: AuthContext = Depends(require_authenticated),
    db: DBSession = Depends(get_db),
):
    booking = Booking(
        user_id=auth.user_id,
        pickup_address=body.pickup_address,
        destination_address=body.destination_address,
        appointment_date=body.appointment_date,
        appointment_time=body.appointment_time,
        service_type=body.service_type.value,
        special_needs=body.special_needs,
        notes=body.notes,
    )
    db.add(booking)
    db.commit()
    db.refresh(booking)
    return _to_response(booking)


@router.get("/bookings", response_model=List[BookingResponse], summary="List Bookings")
async def list_bookings(
    auth: AuthContext = Depends(require_authenticated),
    db: DBSession = Depends(get_db),
):
    """Admins see every booking; everyone else sees their own."""
    statement = select(Booking).order_by(Booking.created_at.desc())
    if not auth.is_admin:
        statement = statement.where(Booking.user_id == auth.user_id)
    return [_to_response(b) for b in db.exec(statement).all()]


@router.patch("/bookings/{booking_id}/status", response_model=BookingResponse, summary="Update Booking Status")
async def update_booking_status(
    request: Request,
    body: BookingStatusRequest,
    booking_id: str = Path(..., max_length=64),
    auth: AuthContext = Depends(require_admin),
    db: DBSession = Depends(get_db),
):
    booking = _get_booking_or_404(db, booking_id)
    old_status = booking.status
    booking.status = body.status.value
    db.add(booking)
    db.commit()
    db.refresh(booking)

    await recorder.record_safely(
        db,
        auth.user_id,
        AuditAction.BOOKING_STATUS_UPDATED,
        "booking",
        entity_id=booking.id,
        details={"old_status": old_status, "new_status": booking.status},
        ip_address=get_client_ip(request),
        user_agent=get_user_agent(request),
    )
    return _to_response(booking)


@router.delete("/bookings/{booking_id}", summary="Delete Booking")
async def delete_booking(
    request: Request,
    booking_id: str = Path(..., max_length=64),
    auth: AuthContext = Depends(require_admin),
    db: DBSession = Depends(get_db),
):
    booking = _get_booking_or_404(db, booking_id)
    details = _snapshot(booking)
    details["reason"] = "Admin deleted booking"

    db.delete(booking)
    db.commit()

    await recorder.record_safely(
        db,
        auth.user_id,
        AuditAction.BOOKING_DELETED,
        "booking",
        entity_id=booking_id,
        details=details,
        ip_address=get_client_ip(request),
        user_agent=get_user_agent(request),
    )
    return {"message": "Booking deleted successfully"}


@router.delete("/bookings/{booking_id}/user", summary="Delete Own Booking")
async def delete_own_booking(
    request: Request,
    booking_id: str = Path(..., max_length=64),
    auth: AuthContext = Depends(require_authenticated),
    db: DBSession = Depends(get_db),
):
    booking = _get_booking_or_404(db, booking_id)
    if booking.user_id != auth.user_id:
        raise HTTPException(status_code=403, detail="You can only delete your own bookings")

    details = _snapshot(booking)
    details["reason"] = "User deleted own booking"

    db.delete(booking)
    db.commit()

    await recorder.record_safely(
        db,
        auth.user_id,
        AuditAction.BOOKING_DELETED,
        "booking",
        entity_id=booking_id,
        details=details,
        ip_address=get_client_ip(request),
        user_agent=get_user_agent(request),
    )
    return {"message": "Booking deleted successfully"}
