from datetime import datetime, timedelta, timezone
from decimal import Decimal
from uuid import uuid4

from fastapi.testclient import TestClient
from jose import jwt

from hotel_rooms_service.config import ALGORITHM, SECRET_KEY
from hotel_rooms_service.main import app

client = TestClient(app)

ALL_ACTIONS = {"can_view": True, "can_create": True, "can_edit": True, "can_delete": True}


def make_token(subject: str, permissions) -> str:
    payload = {
        "sub": subject,
        "permissions": permissions,
        "exp": datetime.now(timezone.utc) + timedelta(minutes=15),
    }
    return jwt.encode(payload, SECRET_KEY, algorithm=ALGORITHM)


def manager_headers():
    token = make_token(
        "manager-1",
        [
            {"module": "rooms", **ALL_ACTIONS},
            {"module": "reservations", **ALL_ACTIONS},
        ],
    )
    return {"Authorization": f"Bearer {token}"}


def viewer_headers():
    token = make_token("viewer-1", [{"module": "rooms", "can_view": True}])
    return {"Authorization": f"Bearer {token}"}


def create_room(number="101", room_type="Standard", price="150.00"):
    payload = {"room_number": number, "type": room_type, "price_per_night": price}
    return client.post("/api/v1/rooms", json=payload, headers=manager_headers())


def test_health_check():
    res = client.get("/")
    assert res.status_code == 200
    assert res.json()["status"] == "running"


def test_create_room_requires_auth():
    res = client.post(
        "/api/v1/rooms",
        json={"room_number": "101", "type": "Standard", "price_per_night": "150"},
    )
    assert res.status_code in (401, 403)


def test_viewer_cannot_create_room():
    res = client.post(
        "/api/v1/rooms",
        json={"room_number": "101", "type": "Standard", "price_per_night": "150"},
        headers=viewer_headers(),
    )
    assert res.status_code == 403
    body = res.json()
    assert body["kind"] == "forbidden"
    assert body["service"] == "hotel_rooms"


def test_invalid_token_is_rejected():
    res = client.get("/api/v1/rooms", headers={"Authorization": "Bearer not-a-token"})
    assert res.status_code == 401


def test_manager_can_create_room():
    res = create_room("101", "Deluxe", "150.00")
    assert res.status_code == 201
    body = res.json()
    assert body["room_number"] == "101"
    assert body["type"] == "Deluxe"
    assert body["status"] == "Available"
    assert Decimal(str(body["price_per_night"])) == Decimal("150.00")


def test_duplicate_room_number_any_case_conflicts():
    assert create_room("a101").status_code == 201

    res = create_room("A101")
    assert res.status_code == 409
    body = res.json()
    assert body["kind"] == "conflict"
    assert "already exists" in body["detail"].lower()


def test_invalid_price_returns_400():
    res = create_room("101", price="12.345")
    assert res.status_code == 400
    assert res.json()["kind"] == "validation"

    res = create_room("101", price="-5")
    assert res.status_code == 400


def test_unknown_room_type_returns_400():
    res = create_room("101", room_type="Penthouse")
    assert res.status_code == 400
    assert res.json()["kind"] == "validation"


def test_list_rooms_with_filters():
    create_room("103", "Suite")
    create_room("101", "Standard")
    suite_id = create_room("102", "Suite").json()["id"]
    client.patch(
        f"/api/v1/rooms/{suite_id}/status",
        json={"status": "Cleaning"},
        headers=manager_headers(),
    )

    res = client.get("/api/v1/rooms", headers=viewer_headers())
    assert res.status_code == 200
    assert [r["room_number"] for r in res.json()] == ["101", "102", "103"]

    res = client.get("/api/v1/rooms", params={"type": "Suite"}, headers=viewer_headers())
    assert [r["room_number"] for r in res.json()] == ["102", "103"]

    res = client.get(
        "/api/v1/rooms",
        params={"type": "Suite", "status": "Cleaning"},
        headers=viewer_headers(),
    )
    assert [r["room_number"] for r in res.json()] == ["102"]


def test_get_room_and_not_found():
    room_id = create_room().json()["id"]

    res = client.get(f"/api/v1/rooms/{room_id}", headers=viewer_headers())
    assert res.status_code == 200
    assert res.json()["id"] == room_id

    res = client.get(f"/api/v1/rooms/{uuid4()}", headers=viewer_headers())
    assert res.status_code == 404
    assert res.json()["kind"] == "not_found"


def test_malformed_room_id_is_rejected():
    for method, path, body in (
        ("get", "/api/v1/rooms/not-a-uuid", None),
        ("patch", "/api/v1/rooms/not-a-uuid/status", {"status": "Cleaning"}),
        ("delete", "/api/v1/rooms/not-a-uuid", None),
    ):
        kwargs = {"json": body} if body is not None else {}
        res = client.request(method.upper(), path, headers=manager_headers(), **kwargs)
        assert res.status_code == 400
        assert res.json()["kind"] == "validation"


def test_update_room_fields():
    room_id = create_room("101").json()["id"]

    res = client.patch(
        f"/api/v1/rooms/{room_id}",
        json={"room_number": "101B", "type": "Twin", "price_per_night": "99.50"},
        headers=manager_headers(),
    )
    assert res.status_code == 200
    body = res.json()
    assert body["room_number"] == "101B"
    assert body["type"] == "Twin"
    assert Decimal(str(body["price_per_night"])) == Decimal("99.50")
    assert body["status"] == "Available"


def test_update_room_number_to_existing_one_conflicts():
    create_room("Room1")
    room2_id = create_room("Room2").json()["id"]

    res = client.patch(
        f"/api/v1/rooms/{room2_id}",
        json={"room_number": "ROOM1"},
        headers=manager_headers(),
    )
    assert res.status_code == 409
    assert "exists" in res.json()["detail"].lower()


def test_viewer_cannot_update_or_delete():
    room_id = create_room().json()["id"]

    res = client.patch(f"/api/v1/rooms/{room_id}", json={"price_per_night": "1"}, headers=viewer_headers())
    assert res.status_code == 403
    res = client.patch(
        f"/api/v1/rooms/{room_id}/status", json={"status": "Cleaning"}, headers=viewer_headers()
    )
    assert res.status_code == 403
    res = client.delete(f"/api/v1/rooms/{room_id}", headers=viewer_headers())
    assert res.status_code == 403


def test_status_update_and_guard():
    room_id = create_room("204").json()["id"]

    res = client.patch(
        f"/api/v1/rooms/{room_id}/status", json={"status": "Maintenance"}, headers=manager_headers()
    )
    assert res.status_code == 200
    assert res.json()["status"] == "Maintenance"

    booking = {
        "room_id": room_id,
        "guest_name": "Ada",
        "check_in": "2025-08-01",
        "check_out": "2025-08-03",
    }
    res = client.post("/api/v1/reservations", json=booking, headers=manager_headers())
    assert res.status_code == 201

    res = client.patch(
        f"/api/v1/rooms/{room_id}/status", json={"status": "Available"}, headers=manager_headers()
    )
    assert res.status_code == 409
    assert res.json()["kind"] == "state_conflict"

    res = client.get(f"/api/v1/rooms/{room_id}", headers=viewer_headers())
    assert res.json()["status"] == "Maintenance"


def test_status_update_unknown_status_returns_400():
    room_id = create_room().json()["id"]
    res = client.patch(
        f"/api/v1/rooms/{room_id}/status", json={"status": "Haunted"}, headers=manager_headers()
    )
    assert res.status_code == 400


def test_delete_room_without_reservations():
    room_id = create_room().json()["id"]

    res = client.delete(f"/api/v1/rooms/{room_id}", headers=manager_headers())
    assert res.status_code == 204

    res = client.get(f"/api/v1/rooms/{room_id}", headers=viewer_headers())
    assert res.status_code == 404


def test_delete_room_with_reservation_is_blocked():
    room_id = create_room().json()["id"]
    booking = {
        "room_id": room_id,
        "guest_name": "Ada",
        "check_in": "2025-08-01",
        "check_out": "2025-08-03",
    }
    reservation_id = client.post(
        "/api/v1/reservations", json=booking, headers=manager_headers()
    ).json()["id"]
    client.delete(f"/api/v1/reservations/{reservation_id}", headers=manager_headers())

    res = client.delete(f"/api/v1/rooms/{room_id}", headers=manager_headers())
    assert res.status_code == 409
    assert res.json()["kind"] == "constraint"


def test_available_rooms_endpoint():
    create_room("301", "Suite")
    room_id = create_room("101", "Standard").json()["id"]
    create_room("102", "Standard")
    booking = {
        "room_id": room_id,
        "guest_name": "Ada",
        "check_in": "2025-07-26",
        "check_out": "2025-07-28",
    }
    assert client.post("/api/v1/reservations", json=booking, headers=manager_headers()).status_code == 201

    res = client.get(
        "/api/v1/rooms/available",
        params={"checkIn": "2025-07-27", "checkOut": "2025-07-29"},
        headers=viewer_headers(),
    )
    assert res.status_code == 200
    rooms = res.json()
    assert [r["room_number"] for r in rooms] == ["102", "301"]
    assert all(r["is_available"] is True for r in rooms)

    res = client.get(
        "/api/v1/rooms/available",
        params={"checkIn": "2025-07-28", "checkOut": "2025-07-30"},
        headers=viewer_headers(),
    )
    assert [r["room_number"] for r in res.json()] == ["101", "102", "301"]


def test_available_rooms_invalid_ranges():
    for params in (
        {"checkIn": "2025-07-28", "checkOut": "2025-07-26"},
        {"checkIn": "2025-07-01", "checkOut": "2025-07-03"},
        {"checkIn": "07/26/2025", "checkOut": "2025-07-28"},
        {"checkIn": "2025-07-26"},
    ):
        res = client.get("/api/v1/rooms/available", params=params, headers=viewer_headers())
        assert res.status_code == 400
        assert res.json()["kind"] == "validation"
