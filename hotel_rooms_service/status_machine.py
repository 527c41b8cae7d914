import logging
from datetime import date

from sqlalchemy.orm import Session

from . import ledger
from .locking import room_transaction
from .models import Room, RoomStatus
from .results import Ok, Result, not_found, state_conflict, validation

logger = logging.getLogger(__name__)


def can_enter(db: Session, room_id: str, new_status: RoomStatus, today: date) -> bool:
    """
    Whether ``room_id`` may move to ``new_status``.

    Every status is reachable from every other one, except that a room
    committed to a guest (an active reservation exists) cannot be marked
    Available.
    """
    if new_status == RoomStatus.AVAILABLE:
        return not ledger.has_active_reservation(db, room_id, today)
    return True


def transition(db: Session, room_id: str, new_status, today: date) -> Result[Room]:
    """
    Change the operational status of a room.

    Runs under the room's lock so the active-reservation check cannot
    interleave with a concurrent booking of the same room. The reservation
    ledger is only read.

    Returns
    -------
    Ok[Room] or Failure
        ``not_found`` for an unknown room, ``state_conflict`` when entering
        Available while an active reservation exists.
    """
    try:
        new_status = RoomStatus(new_status)
    except ValueError:
        return validation(f"Unknown room status: {new_status}")

    with room_transaction(db, room_id) as room:
        if room is None:
            return not_found("Room not found")
        if not can_enter(db, room_id, new_status, today):
            logger.info("Refused to mark room %s Available: active reservations exist", room_id)
            return state_conflict("Cannot set room to Available while active reservations exist")
        previous = room.status
        room.status = new_status

    logger.info("Room %s status %s -> %s", room_id, previous.value, new_status.value)
    return Ok(room)
