import os
import tempfile
from datetime import date

# must be set before the service modules read their configuration
_DB_DIR = tempfile.mkdtemp(prefix="hotel-rooms-tests-")
os.environ["DATABASE_URL"] = "sqlite:///" + os.path.join(_DB_DIR, "hotel_rooms.db")
os.environ.pop("REDIS_URL", None)

import pytest

from hotel_rooms_service.clock import get_today
from hotel_rooms_service.database import Base, engine
from hotel_rooms_service.main import app
from hotel_rooms_service.rate_limiter import reset_rate_limits

FIXED_TODAY = date(2025, 7, 20)


@pytest.fixture(autouse=True)
def reset_db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    reset_rate_limits()
    app.dependency_overrides[get_today] = lambda: FIXED_TODAY
    yield
    app.dependency_overrides.clear()
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def today():
    return FIXED_TODAY
