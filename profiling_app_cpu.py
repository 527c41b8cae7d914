import cProfile
import os
from datetime import date, datetime, timedelta, timezone

# the scenario books far more than one caller is normally allowed to
os.environ.setdefault("RESERVATION_RATE_LIMIT", "100000")

from fastapi.testclient import TestClient
from jose import jwt

from hotel_rooms_service.config import ALGORITHM, SECRET_KEY
from hotel_rooms_service.database import Base, engine
from hotel_rooms_service.main import app

client = TestClient(app)

ALL_ACTIONS = {"can_view": True, "can_create": True, "can_edit": True, "can_delete": True}


def make_headers() -> dict:
    payload = {
        "sub": "profiler",
        "permissions": [
            {"module": "rooms", **ALL_ACTIONS},
            {"module": "reservations", **ALL_ACTIONS},
        ],
        "exp": datetime.now(timezone.utc) + timedelta(minutes=30),
    }
    return {"Authorization": f"Bearer {jwt.encode(payload, SECRET_KEY, algorithm=ALGORITHM)}"}


def reset_db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)


def scenario_availability():
    """
    Register rooms, book back-to-back stays and query availability
    repeatedly to stress the overlap checks.
    """
    headers = make_headers()
    start = date.today() + timedelta(days=1)
    room_types = ["Standard", "Deluxe", "Suite", "Single", "Double", "Twin", "Family"]

    room_ids = []
    for i in range(50):
        r = client.post(
            "/api/v1/rooms",
            json={
                "room_number": f"{100 + i}",
                "type": room_types[i % len(room_types)],
                "price_per_night": "120.00",
            },
            headers=headers,
        )
        r.raise_for_status()
        room_ids.append(r.json()["id"])

    for room_id in room_ids:
        for stay in range(0, 20, 2):
            r = client.post(
                "/api/v1/reservations",
                json={
                    "room_id": room_id,
                    "guest_name": "Profiler",
                    "check_in": (start + timedelta(days=stay)).isoformat(),
                    "check_out": (start + timedelta(days=stay + 2)).isoformat(),
                },
                headers=headers,
            )
            if r.status_code != 201:
                raise RuntimeError(f"Unexpected status on reserve: {r.status_code}")

    for offset in range(30):
        r = client.get(
            "/api/v1/rooms/available",
            params={
                "checkIn": (start + timedelta(days=offset)).isoformat(),
                "checkOut": (start + timedelta(days=offset + 3)).isoformat(),
            },
            headers=headers,
        )
        r.raise_for_status()


def main():
    reset_db()
    scenario_availability()


if __name__ == "__main__":
    # run cProfile and sort by cumulative time
    cProfile.run("main()", sort="cumtime")
