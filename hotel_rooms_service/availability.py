"""
Read-only availability projection.

The answer is advisory: another request may book a listed room between this
read and a later booking attempt. Only the reservation guard decides.
"""
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import List

from sqlalchemy.orm import Session

from . import ledger
from .models import Room, RoomStatus, RoomType
from .results import Ok, Result

_TYPE_ORDER = {room_type: index for index, room_type in enumerate(RoomType)}


@dataclass(frozen=True)
class AvailableRoom:
    id: str
    room_number: str
    type: RoomType
    price_per_night: Decimal
    # always True for listed rooms; unavailable rooms are left out, not flagged
    is_available: bool = True


def _display_order(room: Room):
    return (_TYPE_ORDER[room.type], room.room_number)


def find_available(
    db: Session,
    check_in: date,
    check_out: date,
    today: date,
) -> Result[List[AvailableRoom]]:
    """
    List rooms that can be booked for ``[check_in, check_out)``.

    A room qualifies when its status is Available and none of its active
    reservations overlaps the requested stay. The check-out day of an
    existing stay is bookable.

    Parameters
    ----------
    db : Session
        Database session. Only read from; no rows are created or locked.
    check_in, check_out : date
        Requested stay.
    today : date
        Current date; check-in may not be earlier.

    Returns
    -------
    Ok[List[AvailableRoom]] or Failure
        Rooms ordered by type then room number, or a ``validation`` failure
        for an inverted, empty or past date range.
    """
    failure = ledger.validate_stay(check_in, check_out, today)
    if failure:
        return failure

    rooms = db.query(Room).filter(Room.status == RoomStatus.AVAILABLE).all()
    busy = ledger.busy_room_ids(db, [room.id for room in rooms], check_in, check_out, today)

    free = sorted((room for room in rooms if room.id not in busy), key=_display_order)
    return Ok(
        [
            AvailableRoom(
                id=room.id,
                room_number=room.room_number,
                type=room.type,
                price_per_night=room.price_per_night,
            )
            for room in free
        ]
    )
