import uuid
from datetime import datetime
from enum import Enum as PyEnum

from sqlalchemy import (
    Column,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Numeric,
    String,
)
from sqlalchemy.orm import relationship

from .database import Base


def _new_id() -> str:
    return str(uuid.uuid4())


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


class RoomType(str, PyEnum):
    """
    Enumeration of room categories.

    Declaration order is also the display order used by availability results.
    """
    STANDARD = "Standard"
    DELUXE = "Deluxe"
    SUITE = "Suite"
    SINGLE = "Single"
    DOUBLE = "Double"
    TWIN = "Twin"
    FAMILY = "Family"


class RoomStatus(str, PyEnum):
    """
    Operational state of a room, independent of any specific reservation.

    Values
    ------
    Available
        Room can be offered for booking.
    Occupied
        A guest is currently in the room.
    Cleaning
        Housekeeping in progress.
    Maintenance
        Temporarily withdrawn for repairs.
    Reserved
        Held for an upcoming stay.
    Out of Order
        Withdrawn from inventory until further notice.
    """
    AVAILABLE = "Available"
    OCCUPIED = "Occupied"
    CLEANING = "Cleaning"
    MAINTENANCE = "Maintenance"
    RESERVED = "Reserved"
    OUT_OF_ORDER = "Out of Order"


class ReservationStatus(str, PyEnum):
    """
    Lifecycle status of a reservation.

    Values
    ------
    Confirmed
        Booking accepted; holds the room for its stay interval.
    Checked In
        Guest has arrived; still holds the room.
    Checked Out
        Stay finished. Read-only history.
    Cancelled
        Booking withdrawn. Read-only history; no longer blocks the room.
    """
    CONFIRMED = "Confirmed"
    CHECKED_IN = "Checked In"
    CHECKED_OUT = "Checked Out"
    CANCELLED = "Cancelled"


ACTIVE_RESERVATION_STATUSES = (ReservationStatus.CONFIRMED, ReservationStatus.CHECKED_IN)
CLOSED_RESERVATION_STATUSES = (ReservationStatus.CHECKED_OUT, ReservationStatus.CANCELLED)


class Room(Base):
    """
    SQLAlchemy model representing a physical hotel room.

    Attributes
    ----------
    id : str
        Opaque identifier (UUID string).
    room_number : str
        Human-facing room number as entered (trimmed), e.g. '101' or 'A-12'.
    number_key : str
        Normalized room number (trimmed, lower-cased). Unique, so the
        case-insensitive uniqueness rule holds regardless of store collation.
    type : RoomType
        Room category.
    status : RoomStatus
        Current operational status; changed only through the status machine.
    price_per_night : Decimal
        Nightly price, non-negative with at most two fractional digits.
    created_at, updated_at : datetime
        Audit timestamps.
    """
    __tablename__ = "rooms"

    id = Column(String(36), primary_key=True, default=_new_id)
    room_number = Column(String(20), nullable=False)
    number_key = Column(String(20), unique=True, nullable=False, index=True)
    type = Column(
        Enum(RoomType, name="room_type", values_callable=_enum_values),
        nullable=False,
    )
    status = Column(
        Enum(RoomStatus, name="room_status", values_callable=_enum_values),
        nullable=False,
        default=RoomStatus.AVAILABLE,
    )
    price_per_night = Column(Numeric(10, 2), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    reservations = relationship("Reservation", back_populates="room", lazy="select")


class Reservation(Base):
    """
    SQLAlchemy model representing a stay booked on a room.

    The stay occupies the half-open date interval [check_in, check_out):
    the check-out day itself is free for the next guest.

    Attributes
    ----------
    id : str
        Opaque identifier (UUID string).
    room_id : str
        Owning room.
    guest_name : str
        Name the booking was made under.
    check_in, check_out : date
        Stay interval, check_in strictly before check_out.
    status : ReservationStatus
        Lifecycle status.
    idempotency_key : str, optional
        Client-supplied key making resubmission of the same booking safe.
    created_by : str, optional
        Subject of the token that created the booking.
    """
    __tablename__ = "reservations"
    __table_args__ = (
        Index("ix_reservations_room_stay", "room_id", "check_in", "check_out"),
    )

    id = Column(String(36), primary_key=True, default=_new_id)
    room_id = Column(String(36), ForeignKey("rooms.id"), nullable=False, index=True)
    guest_name = Column(String(120), nullable=False)
    check_in = Column(Date, nullable=False)
    check_out = Column(Date, nullable=False)
    status = Column(
        Enum(ReservationStatus, name="reservation_status", values_callable=_enum_values),
        nullable=False,
        default=ReservationStatus.CONFIRMED,
    )
    idempotency_key = Column(String(64), unique=True, nullable=True)
    created_by = Column(String(64), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    room = relationship("Room", back_populates="reservations")
