import logging
from datetime import date
from typing import Dict, List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, FastAPI, Header, Query, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import availability, cache, guard, ledger, registry, schemas, status_machine
from .auth import require_permission
from .clock import get_today
from .config import (
    AVAILABILITY_CACHE_TTL_SECONDS,
    LOG_LEVEL,
    ROOM_CACHE_TTL_SECONDS,
)
from .database import Base, engine, get_db
from .models import ReservationStatus, RoomStatus, RoomType
from .rate_limiter import reservation_rate_limiter
from .results import ErrorKind, unwrap

logger = logging.getLogger(__name__)


def configure_logging(level: str = LOG_LEVEL) -> None:
    """Install the service log format and apply ``level`` to the root logger."""
    logging.basicConfig(format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    logging.getLogger().setLevel(level)


configure_logging()

Base.metadata.create_all(bind=engine)

app = FastAPI(title="Hotel Rooms Service", version="1.0.0")

router_v1 = APIRouter(prefix="/api/v1")

SERVICE_NAME = "hotel_rooms"

KIND_BY_STATUS = {
    status.HTTP_401_UNAUTHORIZED: "unauthorized",
    status.HTTP_403_FORBIDDEN: ErrorKind.FORBIDDEN.value,
    status.HTTP_404_NOT_FOUND: ErrorKind.NOT_FOUND.value,
    status.HTTP_429_TOO_MANY_REQUESTS: "rate_limited",
}


def _error_body(request: Request, status_code: int, kind: Optional[str], detail) -> Dict:
    return {
        "service": SERVICE_NAME,
        "path": request.url.path,
        "method": request.method,
        "status_code": status_code,
        "kind": kind,
        "detail": detail,
    }


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    kind = getattr(exc, "kind", None)
    kind = kind.value if kind is not None else KIND_BY_STATUS.get(exc.status_code)
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(request, exc.status_code, kind, exc.detail),
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    messages = [
        f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}"
        for error in exc.errors()
    ]
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=_error_body(
            request,
            status.HTTP_400_BAD_REQUEST,
            ErrorKind.VALIDATION.value,
            "; ".join(messages) or "Invalid request",
        ),
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content=_error_body(request, 500, "internal", "Internal server error"),
    )


@app.get("/")
def root():
    """
    Health-check endpoint for the Hotel Rooms service.

    Returns
    -------
    dict
        A small JSON payload indicating that the service is running.
    """
    return {"service": SERVICE_NAME, "status": "running"}


can_view_rooms = require_permission("rooms", "view")
can_create_rooms = require_permission("rooms", "create")
can_edit_rooms = require_permission("rooms", "edit")
can_delete_rooms = require_permission("rooms", "delete")

can_view_reservations = require_permission("reservations", "view")
can_create_reservations = require_permission("reservations", "create")
can_edit_reservations = require_permission("reservations", "edit")
can_delete_reservations = require_permission("reservations", "delete")


# ---------- Rooms ----------


@router_v1.post("/rooms", response_model=schemas.RoomRead, status_code=status.HTTP_201_CREATED)
def create_room(
    room_in: schemas.RoomCreate,
    db: Session = Depends(get_db),
    _: Dict = Depends(can_create_rooms),
):
    """
    Register a new room.

    Access
    ------
    - Requires the ``rooms`` create permission.

    Behavior
    --------
    - Room numbers are unique ignoring case and surrounding whitespace.
    - Price must be non-negative with at most two decimal places.
    - The room starts in status Available.

    Raises
    ------
    HTTPException
        400 on invalid input, 409 if the room number already exists.
    """
    room = unwrap(registry.register(db, room_in.room_number, room_in.type, room_in.price_per_night))
    cache.delete_prefix(cache.ROOM_PREFIX)
    return room


@router_v1.get("/rooms", response_model=List[schemas.RoomRead])
def list_rooms(
    room_type: Optional[RoomType] = Query(default=None, alias="type"),
    room_status: Optional[RoomStatus] = Query(default=None, alias="status"),
    db: Session = Depends(get_db),
    _: Dict = Depends(can_view_rooms),
):
    """
    List rooms ordered by room number, optionally filtered by type and status.
    """
    cacheable = room_type is None and room_status is None
    cache_key = f"{cache.ROOM_PREFIX}all"

    if cacheable:
        cached = cache.get_cached_json(cache_key)
        if cached is not None:
            return cached

    rooms = registry.list_rooms(db, room_type=room_type, status=room_status)

    if cacheable:
        data = [schemas.RoomRead.model_validate(r).model_dump(mode="json") for r in rooms]
        cache.set_cached_json(cache_key, data, ttl_seconds=ROOM_CACHE_TTL_SECONDS)
        return data

    return rooms


@router_v1.get("/rooms/available", response_model=List[schemas.AvailableRoomRead])
def find_available_rooms(
    check_in: date = Query(..., alias="checkIn", examples=["2025-07-26"]),
    check_out: date = Query(..., alias="checkOut", examples=["2025-07-28"]),
    db: Session = Depends(get_db),
    today: date = Depends(get_today),
    _: Dict = Depends(can_view_rooms),
):
    """
    List rooms bookable for a stay, ordered by type then room number.

    Behavior
    --------
    - Only rooms in status Available are considered.
    - Rooms with an active reservation overlapping [checkIn, checkOut) are
      omitted. The check-out day of an existing stay is bookable.
    - Advisory only: booking goes through ``POST /reservations``, which
      re-checks atomically.
    - Answers are cached for ``AVAILABILITY_CACHE_TTL_SECONDS``. A booking
      that commits between the query and the cache write is not reflected
      until the entry expires.

    Parameters
    ----------
    check_in : date
        ``checkIn`` query parameter, ``YYYY-MM-DD``.
    check_out : date
        ``checkOut`` query parameter, ``YYYY-MM-DD``.

    Raises
    ------
    HTTPException
        400 if checkIn is not before checkOut or lies in the past.
    """
    cache_key = cache.availability_key(check_in, check_out, today)
    cached = cache.get_cached_json(cache_key)
    if cached is not None:
        return cached

    rooms = unwrap(availability.find_available(db, check_in, check_out, today))
    data = [schemas.AvailableRoomRead.model_validate(r).model_dump(mode="json") for r in rooms]
    cache.set_cached_json(cache_key, data, ttl_seconds=AVAILABILITY_CACHE_TTL_SECONDS)
    return data


@router_v1.get("/rooms/{room_id}", response_model=schemas.RoomRead)
def get_room(
    room_id: UUID,
    db: Session = Depends(get_db),
    _: Dict = Depends(can_view_rooms),
):
    """
    Retrieve a single room by its ID.

    Raises
    ------
    HTTPException
        404 if the room does not exist.
    """
    cache_key = cache.room_key(str(room_id))
    cached = cache.get_cached_json(cache_key)
    if cached is not None:
        return cached

    room = unwrap(registry.get(db, str(room_id)))
    data = schemas.RoomRead.model_validate(room).model_dump(mode="json")
    cache.set_cached_json(cache_key, data, ttl_seconds=ROOM_CACHE_TTL_SECONDS)
    return data


@router_v1.patch("/rooms/{room_id}", response_model=schemas.RoomRead)
def update_room(
    room_id: UUID,
    update_data: schemas.RoomUpdate,
    db: Session = Depends(get_db),
    _: Dict = Depends(can_edit_rooms),
):
    """
    Rename, retype or reprice a room.

    Access
    ------
    - Requires the ``rooms`` edit permission.

    Raises
    ------
    HTTPException
        400 on invalid values, 404 if the room is not found, 409 if the new
        room number belongs to another room.
    """
    room = unwrap(
        registry.update(
            db,
            str(room_id),
            number=update_data.room_number,
            room_type=update_data.type,
            price=update_data.price_per_night,
        )
    )
    cache.delete_prefix(cache.ROOM_PREFIX)
    return room


@router_v1.patch("/rooms/{room_id}/status", response_model=schemas.RoomRead)
def update_room_status(
    room_id: UUID,
    status_in: schemas.RoomStatusUpdate,
    db: Session = Depends(get_db),
    today: date = Depends(get_today),
    _: Dict = Depends(can_edit_rooms),
):
    """
    Change a room's operational status.

    Behavior
    --------
    - Any status may follow any other.
    - Setting Available is refused while the room has an active
      reservation (Confirmed or Checked In, check-out not yet passed).

    Raises
    ------
    HTTPException
        404 if the room is not found, 409 if the transition is refused.
    """
    room = unwrap(status_machine.transition(db, str(room_id), status_in.status, today))
    cache.delete_prefix(cache.ROOM_PREFIX)
    return room


@router_v1.delete("/rooms/{room_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_room(
    room_id: UUID,
    db: Session = Depends(get_db),
    _: Dict = Depends(can_delete_rooms),
):
    """
    Permanently delete a room.

    Behavior
    --------
    - Refused while any reservation references the room, including
      cancelled and checked-out history.

    Raises
    ------
    HTTPException
        404 if the room is not found, 409 if reservations exist.
    """
    unwrap(registry.delete(db, str(room_id)))
    cache.delete_prefix(cache.ROOM_PREFIX)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ---------- Reservations ----------


@router_v1.post(
    "/reservations",
    response_model=schemas.ReservationRead,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(reservation_rate_limiter)],
)
def create_reservation(
    reservation_in: schemas.ReservationCreate,
    response: Response,
    idempotency_key: Optional[str] = Header(default=None, max_length=64),
    db: Session = Depends(get_db),
    today: date = Depends(get_today),
    claims: Dict = Depends(can_create_reservations),
):
    """
    Book a room for a stay.

    Behavior
    --------
    - The overlap check and the insert are atomic per room: of two
      concurrent overlapping requests for the same room, exactly one wins.
    - With an ``Idempotency-Key`` header, resubmitting the same booking
      returns the original reservation with status 200.

    Raises
    ------
    HTTPException
        400 on invalid dates, 404 if the room does not exist, 409 if the
        room is already booked for an overlapping stay.
    """
    result = guard.reserve(
        db,
        str(reservation_in.room_id),
        reservation_in.check_in,
        reservation_in.check_out,
        reservation_in.guest_name,
        today,
        idempotency_key=idempotency_key,
        created_by=claims["sub"],
    )
    reservation = unwrap(result)
    if result.replayed:
        response.status_code = status.HTTP_200_OK
    else:
        cache.delete_prefix(cache.AVAILABILITY_PREFIX)
    return reservation


@router_v1.get("/reservations", response_model=List[schemas.ReservationRead])
def list_reservations(
    room_id: Optional[UUID] = None,
    reservation_status: Optional[ReservationStatus] = Query(default=None, alias="status"),
    db: Session = Depends(get_db),
    _: Dict = Depends(can_view_reservations),
):
    """
    List reservations ordered by check-in date, optionally by room and status.
    """
    return ledger.list_reservations(
        db,
        room_id=str(room_id) if room_id else None,
        status=reservation_status,
    )


@router_v1.get("/reservations/{reservation_id}", response_model=schemas.ReservationRead)
def get_reservation(
    reservation_id: UUID,
    db: Session = Depends(get_db),
    _: Dict = Depends(can_view_reservations),
):
    return unwrap(ledger.get_reservation(db, str(reservation_id)))


@router_v1.patch(
    "/reservations/{reservation_id}",
    response_model=schemas.ReservationRead,
    dependencies=[Depends(reservation_rate_limiter)],
)
def reschedule_reservation(
    reservation_id: UUID,
    update_data: schemas.ReservationReschedule,
    db: Session = Depends(get_db),
    today: date = Depends(get_today),
    _: Dict = Depends(can_edit_reservations),
):
    """
    Change a reservation's dates and/or room.

    Behavior
    --------
    - Re-runs the booking overlap check on the target room, ignoring the
      reservation itself.
    - Checked-out and cancelled reservations are read-only.

    Raises
    ------
    HTTPException
        400 on invalid dates, 404 if the reservation or room is not found,
        409 on overlap or when the reservation is closed.
    """
    reservation = unwrap(
        guard.reschedule(
            db,
            str(reservation_id),
            today,
            check_in=update_data.check_in,
            check_out=update_data.check_out,
            room_id=str(update_data.room_id) if update_data.room_id else None,
        )
    )
    cache.delete_prefix(cache.AVAILABILITY_PREFIX)
    return reservation


@router_v1.post("/reservations/{reservation_id}/check-in", response_model=schemas.ReservationRead)
def check_in_reservation(
    reservation_id: UUID,
    db: Session = Depends(get_db),
    today: date = Depends(get_today),
    _: Dict = Depends(can_edit_reservations),
):
    """Mark a confirmed reservation as checked in."""
    return unwrap(ledger.check_in(db, str(reservation_id), today))


@router_v1.post("/reservations/{reservation_id}/check-out", response_model=schemas.ReservationRead)
def check_out_reservation(
    reservation_id: UUID,
    db: Session = Depends(get_db),
    today: date = Depends(get_today),
    _: Dict = Depends(can_edit_reservations),
):
    """Mark a checked-in reservation as checked out; it becomes read-only history."""
    reservation = unwrap(ledger.check_out(db, str(reservation_id), today))
    cache.delete_prefix(cache.AVAILABILITY_PREFIX)
    return reservation


@router_v1.delete(
    "/reservations/{reservation_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(reservation_rate_limiter)],
)
def cancel_reservation(
    reservation_id: UUID,
    db: Session = Depends(get_db),
    today: date = Depends(get_today),
    _: Dict = Depends(can_delete_reservations),
):
    """
    Cancel a confirmed reservation.

    Behavior
    --------
    - Sets the status to Cancelled; the row is kept as history and no
      longer blocks the room.

    Raises
    ------
    HTTPException
        404 if the reservation is not found, 409 if it is not Confirmed.
    """
    unwrap(ledger.cancel(db, str(reservation_id), today))
    cache.delete_prefix(cache.AVAILABILITY_PREFIX)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


app.include_router(router_v1)
