from decimal import Decimal

import pytest

from hotel_rooms_service import registry
from hotel_rooms_service.database import SessionLocal
from hotel_rooms_service.models import RoomType
from hotel_rooms_service.results import Ok


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def make_room(db):
    def _make(number="101", room_type=RoomType.STANDARD, price=Decimal("120.00")):
        result = registry.register(db, number, room_type, price)
        assert isinstance(result, Ok), result
        return result.value

    return _make
