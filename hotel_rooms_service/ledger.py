"""
Reservation ledger: the source of truth for whether a room is busy.

A reservation occupies the half-open interval ``[check_in, check_out)``.
It is *active* while its status is Confirmed or Checked In and its
check-out date has not passed. Only active reservations block a room.
"""
import logging
from datetime import date
from typing import Iterable, List, Optional, Set

from sqlalchemy.orm import Session

from .locking import room_transaction
from .models import (
    ACTIVE_RESERVATION_STATUSES,
    Reservation,
    ReservationStatus,
)
from .results import Ok, Result, Failure, not_found, state_conflict, validation

logger = logging.getLogger(__name__)

# reservation lifecycle: current status -> statuses it may move to
ALLOWED_TRANSITIONS = {
    ReservationStatus.CONFIRMED: {ReservationStatus.CHECKED_IN, ReservationStatus.CANCELLED},
    ReservationStatus.CHECKED_IN: {ReservationStatus.CHECKED_OUT},
    ReservationStatus.CHECKED_OUT: set(),
    ReservationStatus.CANCELLED: set(),
}


def overlaps(start_a: date, end_a: date, start_b: date, end_b: date) -> bool:
    """
    Half-open interval overlap test.

    ``[start_a, end_a)`` and ``[start_b, end_b)`` overlap iff
    ``start_a < end_b`` and ``start_b < end_a``. A stay ending on the day
    another begins does not overlap it.
    """
    return start_a < end_b and start_b < end_a


def is_active(reservation: Reservation, today: date) -> bool:
    return reservation.status in ACTIVE_RESERVATION_STATUSES and reservation.check_out >= today


def validate_stay(check_in: date, check_out: date, today: date) -> Optional[Failure]:
    """
    Check that a requested stay is a well-formed, future date range.

    Returns
    -------
    Failure or None
        A validation failure, or ``None`` when the range is acceptable.
    """
    if check_in >= check_out:
        return validation("Check-in date must be before check-out date")
    if check_in < today:
        return validation("Check-in date cannot be in the past")
    return None


def _active_candidates(db: Session, room_ids: Iterable[str], today: date):
    # coarse store-side narrowing; the overlap decision itself is made by overlaps()
    return (
        db.query(Reservation)
        .filter(Reservation.room_id.in_(list(room_ids)))
        .filter(Reservation.status.in_(ACTIVE_RESERVATION_STATUSES))
        .filter(Reservation.check_out >= today)
    )


def find_overlapping(
    db: Session,
    room_id: str,
    check_in: date,
    check_out: date,
    today: date,
    exclude_id: Optional[str] = None,
) -> Optional[Reservation]:
    """
    Return an active reservation on ``room_id`` that overlaps the given stay.

    Parameters
    ----------
    db : Session
        Database session.
    room_id : str
        Room to inspect.
    check_in, check_out : date
        Proposed stay.
    today : date
        Cut-off for the active predicate.
    exclude_id : str, optional
        Reservation to ignore (the one being rescheduled).

    Returns
    -------
    Reservation or None
        The first conflicting reservation found, if any.
    """
    for existing in _active_candidates(db, [room_id], today):
        if exclude_id is not None and existing.id == exclude_id:
            continue
        if is_active(existing, today) and overlaps(
            existing.check_in, existing.check_out, check_in, check_out
        ):
            return existing
    return None


def busy_room_ids(
    db: Session,
    room_ids: List[str],
    check_in: date,
    check_out: date,
    today: date,
) -> Set[str]:
    """Ids of the given rooms holding an active reservation overlapping the stay."""
    if not room_ids:
        return set()
    return {
        existing.room_id
        for existing in _active_candidates(db, room_ids, today)
        if overlaps(existing.check_in, existing.check_out, check_in, check_out)
    }


def has_active_reservation(db: Session, room_id: str, today: date) -> bool:
    return any(is_active(r, today) for r in _active_candidates(db, [room_id], today))


def count_reservations(db: Session, room_id: str) -> int:
    """Number of reservation rows of any status owned by the room."""
    return db.query(Reservation).filter(Reservation.room_id == room_id).count()


def find_by_idempotency_key(db: Session, key: str) -> Optional[Reservation]:
    return db.query(Reservation).filter(Reservation.idempotency_key == key).first()


def lock_reservation(db: Session, reservation_id: str) -> Optional[Reservation]:
    return (
        db.query(Reservation)
        .filter(Reservation.id == reservation_id)
        .with_for_update()
        .populate_existing()
        .one_or_none()
    )


def get_reservation(db: Session, reservation_id: str) -> Result[Reservation]:
    reservation = db.query(Reservation).filter(Reservation.id == reservation_id).first()
    if reservation is None:
        return not_found("Reservation not found")
    return Ok(reservation)


def list_reservations(
    db: Session,
    room_id: Optional[str] = None,
    status: Optional[ReservationStatus] = None,
) -> List[Reservation]:
    query = db.query(Reservation)
    if room_id is not None:
        query = query.filter(Reservation.room_id == room_id)
    if status is not None:
        query = query.filter(Reservation.status == status)
    return query.order_by(Reservation.check_in.asc(), Reservation.created_at.asc()).all()


def _advance(
    db: Session,
    reservation_id: str,
    target: ReservationStatus,
    today: date,
) -> Result[Reservation]:
    current = db.query(Reservation).filter(Reservation.id == reservation_id).first()
    if current is None:
        return not_found("Reservation not found")
    room_id = current.room_id

    while True:
        with room_transaction(db, room_id):
            reservation = lock_reservation(db, reservation_id)
            if reservation is None:
                return not_found("Reservation not found")
            moved_to = reservation.room_id if reservation.room_id != room_id else None

            if moved_to is None:
                if target not in ALLOWED_TRANSITIONS[reservation.status]:
                    return state_conflict(
                        f"Cannot move reservation from {reservation.status.value} to {target.value}"
                    )
                if target == ReservationStatus.CHECKED_IN and today < reservation.check_in:
                    return validation("Cannot check in before the arrival date")

                previous = reservation.status
                reservation.status = target
        if moved_to is None:
            break
        room_id = moved_to

    logger.info(
        "Reservation %s on room %s moved %s -> %s",
        reservation.id,
        reservation.room_id,
        previous.value,
        target.value,
    )
    return Ok(reservation)


def check_in(db: Session, reservation_id: str, today: date) -> Result[Reservation]:
    return _advance(db, reservation_id, ReservationStatus.CHECKED_IN, today)


def check_out(db: Session, reservation_id: str, today: date) -> Result[Reservation]:
    return _advance(db, reservation_id, ReservationStatus.CHECKED_OUT, today)


def cancel(db: Session, reservation_id: str, today: date) -> Result[Reservation]:
    """
    Cancel a confirmed reservation.

    A cancelled reservation stays in the ledger as read-only history and
    no longer blocks its room.
    """
    return _advance(db, reservation_id, ReservationStatus.CANCELLED, today)

