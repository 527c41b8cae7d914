from datetime import date, datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from .models import ReservationStatus, RoomStatus, RoomType


class RoomBase(BaseModel):
    """
    Base schema for room information.

    Shared fields used when creating and reading rooms.
    """
    room_number: str = Field(..., examples=["101"])
    type: RoomType = Field(..., examples=[RoomType.STANDARD])
    price_per_night: Decimal = Field(..., examples=["150.00"])


class RoomCreate(RoomBase):
    """
    Schema for registering a new room.

    New rooms always start in status Available.
    """
    pass


class RoomUpdate(BaseModel):
    """
    Schema for renaming, retyping or repricing a room.

    All fields are optional and only provided values will be updated.
    Status changes go through the dedicated status endpoint.
    """
    room_number: Optional[str] = None
    type: Optional[RoomType] = None
    price_per_night: Optional[Decimal] = None


class RoomStatusUpdate(BaseModel):
    status: RoomStatus = Field(..., examples=[RoomStatus.CLEANING])


class RoomRead(RoomBase):
    """
    Schema returned when reading room data.

    Extends RoomBase with the identifier, current status and timestamps.
    """
    id: str
    status: RoomStatus
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class AvailableRoomRead(BaseModel):
    """
    One bookable room in an availability answer.

    ``is_available`` is always true: rooms that cannot be booked are omitted.
    """
    id: str
    room_number: str
    type: RoomType
    price_per_night: Decimal
    is_available: bool = True

    model_config = ConfigDict(from_attributes=True)


class ReservationBase(BaseModel):
    room_id: str = Field(...)
    guest_name: str = Field(..., examples=["Ada Lovelace"])
    check_in: date = Field(..., examples=["2025-07-26"])
    check_out: date = Field(..., examples=["2025-07-28"])


class ReservationCreate(ReservationBase):
    """
    Schema for booking a room.

    The stay is the half-open interval [check_in, check_out).
    """
    room_id: UUID


class ReservationReschedule(BaseModel):
    """
    Schema for moving a reservation.

    All fields are optional; omitted fields keep their current value.
    """
    room_id: Optional[UUID] = None
    check_in: Optional[date] = None
    check_out: Optional[date] = None


class ReservationRead(ReservationBase):
    """
    Schema returned when reading reservation data.
    """
    id: str
    status: ReservationStatus
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)
