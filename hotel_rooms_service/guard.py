"""
Reservation conflict guard: the only way reservations are created or moved.

The overlap check and the write happen inside one room transaction (see
:func:`hotel_rooms_service.locking.room_transaction`), so for any single room
accepted reservations form a total order in which no two active stays
overlap. Different rooms are guarded independently.
"""
import logging
from datetime import date
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from . import ledger
from .locking import room_transaction
from .models import CLOSED_RESERVATION_STATUSES, Reservation, ReservationStatus
from .results import (
    Failure,
    Ok,
    Result,
    conflict,
    not_found,
    state_conflict,
    validation,
)

logger = logging.getLogger(__name__)

MAX_GUEST_NAME_LENGTH = 120

OVERLAP_MESSAGE = "Room is already booked for this date range"


def _validate_guest(guest_name: Optional[str]) -> Optional[Failure]:
    if guest_name is None or not guest_name.strip():
        return validation("Guest name must not be blank")
    if len(guest_name.strip()) > MAX_GUEST_NAME_LENGTH:
        return validation(f"Guest name must be at most {MAX_GUEST_NAME_LENGTH} characters")
    return None


def _same_booking(
    reservation: Reservation,
    room_id: str,
    check_in: date,
    check_out: date,
    guest_name: str,
) -> bool:
    return (
        reservation.room_id == room_id
        and reservation.check_in == check_in
        and reservation.check_out == check_out
        and reservation.guest_name == guest_name.strip()
    )


def reserve(
    db: Session,
    room_id: str,
    check_in: date,
    check_out: date,
    guest_name: str,
    today: date,
    idempotency_key: Optional[str] = None,
    created_by: Optional[str] = None,
) -> Result[Reservation]:
    """
    Book ``room_id`` for ``[check_in, check_out)`` if no active stay overlaps.

    Parameters
    ----------
    db : Session
        Session owning the transaction.
    room_id : str
        Room to book.
    check_in, check_out : date
        Requested stay; check_in must be before check_out and not in the past.
    guest_name : str
        Name the booking is made under.
    today : date
        Current date.
    idempotency_key : str, optional
        Client key for safe resubmission. Resubmitting the same booking with
        the same key returns the original reservation with ``replayed=True``.
    created_by : str, optional
        Subject of the caller's token.

    Returns
    -------
    Ok[Reservation] or Failure
        ``validation`` for bad input, ``not_found`` for an unknown room,
        ``conflict`` when an active reservation overlaps or the idempotency
        key already belongs to a different booking.
    """
    failure = ledger.validate_stay(check_in, check_out, today) or _validate_guest(guest_name)
    if failure:
        return failure

    try:
        with room_transaction(db, room_id) as room:
            if room is None:
                return not_found("Room not found")

            if idempotency_key:
                previous = ledger.find_by_idempotency_key(db, idempotency_key)
                if previous is not None:
                    if _same_booking(previous, room_id, check_in, check_out, guest_name):
                        logger.info(
                            "Replayed reservation %s for idempotency key %s",
                            previous.id,
                            idempotency_key,
                        )
                        return Ok(previous, replayed=True)
                    return conflict("Idempotency key was already used for a different booking")

            clash = ledger.find_overlapping(db, room_id, check_in, check_out, today)
            if clash is not None:
                logger.info(
                    "Rejected booking of room %s for %s..%s: overlaps reservation %s",
                    room_id,
                    check_in,
                    check_out,
                    clash.id,
                )
                return conflict(OVERLAP_MESSAGE)

            reservation = Reservation(
                room_id=room_id,
                guest_name=guest_name.strip(),
                check_in=check_in,
                check_out=check_out,
                status=ReservationStatus.CONFIRMED,
                idempotency_key=idempotency_key or None,
                created_by=created_by,
            )
            db.add(reservation)
    except IntegrityError:
        # a concurrent request for another room committed the same key first
        logger.warning("Idempotency key %s was claimed concurrently", idempotency_key)
        return conflict("Duplicate booking submission")

    logger.info(
        "Reserved room %s for %s..%s as reservation %s",
        room_id,
        check_in,
        check_out,
        reservation.id,
    )
    return Ok(reservation)


def reschedule(
    db: Session,
    reservation_id: str,
    today: date,
    check_in: Optional[date] = None,
    check_out: Optional[date] = None,
    room_id: Optional[str] = None,
) -> Result[Reservation]:
    """
    Move an open reservation to new dates and/or another room.

    The overlap test is the one used by :func:`reserve`, run on the target
    room with the reservation's own row excluded. Only the target room is
    locked; leaving a room can never create an overlap there. When no room is
    given and the reservation was moved while this call waited for the lock,
    the call follows it to its current room instead of moving it back.

    A checked-in stay may only have its check-out date changed (extended or
    shortened), and not to a date in the past.

    Returns
    -------
    Ok[Reservation] or Failure
        ``not_found`` for an unknown reservation or target room,
        ``state_conflict`` for checked-out or cancelled reservations,
        ``validation`` for bad dates, ``conflict`` on overlap.
    """
    current = db.query(Reservation).filter(Reservation.id == reservation_id).first()
    if current is None:
        return not_found("Reservation not found")
    target_room_id = room_id or current.room_id

    while True:
        moved_to = None
        with room_transaction(db, target_room_id) as room:
            if room is None:
                return not_found("Room not found")
            reservation = ledger.lock_reservation(db, reservation_id)
            if reservation is None:
                return not_found("Reservation not found")
            if room_id is None and reservation.room_id != target_room_id:
                # moved by a concurrent reschedule while we waited
                moved_to = reservation.room_id
            else:
                result = _apply_reschedule(
                    db, reservation, target_room_id, check_in, check_out, today
                )
        if moved_to is None:
            break
        logger.info(
            "Reservation %s moved to room %s while waiting, retrying there",
            reservation_id,
            moved_to,
        )
        target_room_id = moved_to

    if isinstance(result, Ok):
        logger.info(
            "Rescheduled reservation %s to room %s %s..%s",
            reservation_id,
            target_room_id,
            result.value.check_in,
            result.value.check_out,
        )
    return result


def _apply_reschedule(
    db: Session,
    reservation: Reservation,
    target_room_id: str,
    check_in: Optional[date],
    check_out: Optional[date],
    today: date,
) -> Result[Reservation]:
    if reservation.status in CLOSED_RESERVATION_STATUSES:
        return state_conflict(
            f"Reservation is {reservation.status.value} and can no longer be changed"
        )

    new_check_in = check_in or reservation.check_in
    new_check_out = check_out or reservation.check_out

    if reservation.status == ReservationStatus.CHECKED_IN:
        if new_check_in != reservation.check_in or target_room_id != reservation.room_id:
            return validation("Only the check-out date of a checked-in stay can change")
        if new_check_out <= new_check_in:
            return validation("Check-in date must be before check-out date")
        if new_check_out < today:
            return validation("Check-out date cannot be in the past")
    else:
        failure = ledger.validate_stay(new_check_in, new_check_out, today)
        if failure:
            return failure

    clash = ledger.find_overlapping(
        db,
        target_room_id,
        new_check_in,
        new_check_out,
        today,
        exclude_id=reservation.id,
    )
    if clash is not None:
        logger.info(
            "Rejected reschedule of reservation %s to room %s %s..%s: overlaps %s",
            reservation.id,
            target_room_id,
            new_check_in,
            new_check_out,
            clash.id,
        )
        return conflict(OVERLAP_MESSAGE)

    reservation.room_id = target_room_id
    reservation.check_in = new_check_in
    reservation.check_out = new_check_out
    return Ok(reservation)
