"""
Room registry: identity and static attributes of the hotel's rooms.

Room numbers are unique ignoring case and surrounding whitespace. The
comparison runs on a normalized key computed here, before the store is asked
anything, and the ``number_key`` unique index backs it up; a unique violation
coming back from the store is reported as a conflict.
"""
import logging
from decimal import Decimal, InvalidOperation
from typing import List, Optional, Union

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from . import ledger
from .locking import room_transaction
from .models import Room, RoomStatus, RoomType
from .results import Failure, Ok, Result, conflict, constraint, not_found, validation

logger = logging.getLogger(__name__)

MAX_ROOM_NUMBER_LENGTH = 20
PRICE_QUANTUM = Decimal("0.01")
# Numeric(10, 2)
MAX_PRICE = Decimal("99999999.99")

DUPLICATE_NUMBER_MESSAGE = "Room number already exists"


def normalize_room_number(number: str) -> str:
    return number.strip().lower()


def _validate_number(number: Optional[str]) -> Optional[Failure]:
    if number is None or not number.strip():
        return validation("Room number must not be blank")
    if len(number.strip()) > MAX_ROOM_NUMBER_LENGTH:
        return validation(f"Room number must be at most {MAX_ROOM_NUMBER_LENGTH} characters")
    return None


def parse_price(price: Union[Decimal, int, float, str]) -> Union[Decimal, Failure]:
    """
    Convert a nightly price to ``Decimal`` and check it.

    Returns
    -------
    Decimal or Failure
        The price, or a validation failure if it is negative, not a finite
        number, too large, or has more than two fractional digits.
    """
    try:
        value = Decimal(str(price))
    except (InvalidOperation, ValueError):
        return validation("Price per night must be a number")
    if not value.is_finite():
        return validation("Price per night must be a number")
    if value < 0:
        return validation("Price per night must not be negative")
    if value > MAX_PRICE:
        return validation(f"Price per night must not exceed {MAX_PRICE}")
    if value != value.quantize(PRICE_QUANTUM):
        return validation("Price per night must have at most two decimal places")
    return value.quantize(PRICE_QUANTUM)


def _coerce_type(room_type) -> Union[RoomType, Failure]:
    try:
        return RoomType(room_type)
    except ValueError:
        return validation(f"Unknown room type: {room_type}")


def _number_taken(db: Session, key: str, exclude_id: Optional[str] = None) -> bool:
    query = db.query(Room).filter(Room.number_key == key)
    if exclude_id is not None:
        query = query.filter(Room.id != exclude_id)
    return db.query(query.exists()).scalar()


def register(db: Session, number: str, room_type, price) -> Result[Room]:
    """
    Create a room. New rooms always start in status Available.

    Parameters
    ----------
    db : Session
        Database session.
    number : str
        Human-facing room number.
    room_type : RoomType or str
        Room category.
    price : Decimal, int, float or str
        Nightly price.

    Returns
    -------
    Ok[Room] or Failure
        ``conflict`` on a case-insensitive duplicate number, ``validation``
        on a blank number, unknown type or invalid price.
    """
    failure = _validate_number(number)
    if failure:
        return failure
    room_type = _coerce_type(room_type)
    if isinstance(room_type, Failure):
        return room_type
    price = parse_price(price)
    if isinstance(price, Failure):
        return price

    key = normalize_room_number(number)
    if _number_taken(db, key):
        return conflict(DUPLICATE_NUMBER_MESSAGE)

    room = Room(
        room_number=number.strip(),
        number_key=key,
        type=room_type,
        status=RoomStatus.AVAILABLE,
        price_per_night=price,
    )
    db.add(room)
    try:
        db.commit()
    except IntegrityError:
        # lost a race with a concurrent registration of the same number
        db.rollback()
        logger.info("Room number %r taken by a concurrent registration", number)
        return conflict(DUPLICATE_NUMBER_MESSAGE)

    db.refresh(room)
    logger.info("Registered room %s (%s, %s)", room.room_number, room.type.value, room.id)
    return Ok(room)


def get(db: Session, room_id: str) -> Result[Room]:
    room = db.query(Room).filter(Room.id == room_id).first()
    if room is None:
        return not_found("Room not found")
    return Ok(room)


def list_rooms(
    db: Session,
    room_type: Optional[RoomType] = None,
    status: Optional[RoomStatus] = None,
) -> List[Room]:
    query = db.query(Room)
    if room_type is not None:
        query = query.filter(Room.type == room_type)
    if status is not None:
        query = query.filter(Room.status == status)
    return query.order_by(Room.room_number.asc()).all()


def update(
    db: Session,
    room_id: str,
    number: Optional[str] = None,
    room_type=None,
    price=None,
) -> Result[Room]:
    """
    Rename, retype and/or reprice a room. Status is not touched here.

    Only the arguments that are not ``None`` are applied.

    Returns
    -------
    Ok[Room] or Failure
        ``not_found`` for an unknown room, ``conflict`` when the new number
        collides with another room, ``validation`` for invalid values.
    """
    room = db.query(Room).filter(Room.id == room_id).first()
    if room is None:
        return not_found("Room not found")

    key = None
    if number is not None:
        failure = _validate_number(number)
        if failure:
            return failure
        key = normalize_room_number(number)
        if _number_taken(db, key, exclude_id=room.id):
            return conflict(DUPLICATE_NUMBER_MESSAGE)
    if room_type is not None:
        room_type = _coerce_type(room_type)
        if isinstance(room_type, Failure):
            return room_type
    if price is not None:
        price = parse_price(price)
        if isinstance(price, Failure):
            return price

    if key is not None:
        room.room_number = number.strip()
        room.number_key = key
    if room_type is not None:
        room.type = room_type
    if price is not None:
        room.price_per_night = price

    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        return conflict(DUPLICATE_NUMBER_MESSAGE)

    db.refresh(room)
    logger.info("Updated room %s (%s)", room.room_number, room.id)
    return Ok(room)


def delete(db: Session, room_id: str) -> Result[None]:
    """
    Delete a room that owns no reservations at all.

    Reservations of any status, including cancelled and checked-out history,
    block deletion.

    Returns
    -------
    Ok[None] or Failure
        ``not_found`` for an unknown room, ``constraint`` if any reservation
        references the room.
    """
    with room_transaction(db, room_id) as room:
        if room is None:
            return not_found("Room not found")
        if ledger.count_reservations(db, room_id) > 0:
            return constraint("Cannot delete room with existing reservations")
        number = room.room_number
        db.delete(room)

    logger.info("Deleted room %s (%s)", number, room_id)
    return Ok(None)
