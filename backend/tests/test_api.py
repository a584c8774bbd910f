import os
import random
import sqlite3
import sys
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

from mecalink.client.api_client import MecaLinkClient
from mecalink.data import DEMO_PASSWORD
from mecalink.main import app
from mecalink.models import Position, RequestLocation
from mecalink.services.errors import ForbiddenError, InvalidTransitionError, NotFoundError
from mecalink.services.provider_directory import provider_directory

client = TestClient(app)

PARIS = {"latitude": 48.8566, "longitude": 2.3522}
REQUEST_LOCATION = {"latitude": 48.857, "longitude": 2.351, "address": "Rue de Rivoli"}


def _login(email: str, password: str = DEMO_PASSWORD) -> str:
    response = client.post("/auth/login", json={"email": email, "password": password})
    assert response.status_code == 200
    return response.json()["access_token"]


def _headers(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


def _register_client() -> str:
    response = client.post(
        "/auth/register",
        json={
            "name": "Test Driver",
            "email": f"driver_{uuid4().hex[:8]}@mecalink.test",
            "password": "secret-pass",
            "phone": "06 00 00 00 00",
            "role": "client",
        },
    )
    assert response.status_code == 201
    return response.json()["access_token"]


def _register_garage() -> dict:
    # Far from the seeded Paris garages so nearby queries there stay unaffected.
    latitude = random.uniform(-50.0, -40.0)
    longitude = random.uniform(-100.0, -90.0)
    response = client.post(
        "/auth/register",
        json={
            "name": f"Garage {uuid4().hex[:6]}",
            "email": f"garage_{uuid4().hex[:8]}@mecalink.test",
            "password": "secret-pass",
            "phone": "01 00 00 00 00",
            "role": "provider",
            "garage": {
                "address": "1 Test Road",
                "position": {"latitude": latitude, "longitude": longitude},
                "services": ["Dépannage"],
            },
        },
    )
    assert response.status_code == 201
    return response.json()


def _create_request(token: str, provider_id: str = "gar_1") -> dict:
    response = client.post(
        "/service-requests",
        json={"provider_id": provider_id, "description": "Car won't start", "location": REQUEST_LOCATION},
        headers=_headers(token),
    )
    assert response.status_code == 201
    return response.json()


def test_health_and_ready():
    assert client.get("/health").json()["status"] == "ok"
    ready = client.get("/ready")
    assert ready.status_code == 200
    assert ready.json()["status"] == "ready"
    assert isinstance(ready.json()["push_enabled"], bool)


def test_login_and_me_for_seeded_garage():
    login = client.post("/auth/login", json={"email": "centre@mecalink.test", "password": DEMO_PASSWORD})
    assert login.status_code == 200
    payload = login.json()
    assert payload["token_type"] == "bearer"
    assert payload["account"]["role"] == "provider"
    assert payload["provider"]["id"] == "gar_1"

    me = client.get("/auth/me", headers=_headers(payload["access_token"]))
    assert me.status_code == 200
    assert me.json()["account"]["id"] == "acct_garage_1"


def test_login_with_wrong_password_is_unauthorized():
    response = client.post("/auth/login", json={"email": "client@mecalink.test", "password": "wrong-pass"})
    assert response.status_code == 401


def test_me_without_token_is_unauthorized():
    assert client.get("/auth/me").status_code == 401
    assert client.get("/auth/me", headers={"Authorization": "Bearer not.a-token"}).status_code == 401


def test_register_provider_creates_garage():
    payload = _register_garage()
    assert payload["account"]["role"] == "provider"
    provider = payload["provider"]
    assert provider["owner_account_id"] == payload["account"]["id"]

    details = client.get(f"/providers/{provider['id']}")
    assert details.status_code == 200
    assert details.json()["services"] == ["Dépannage"]


def test_register_provider_without_garage_is_rejected():
    response = client.post(
        "/auth/register",
        json={
            "name": "No Garage",
            "email": f"nogarage_{uuid4().hex[:8]}@mecalink.test",
            "password": "secret-pass",
            "phone": "01 00 00 00 00",
            "role": "provider",
        },
    )
    assert response.status_code == 400
    assert response.json()["detail"].startswith("garage")


def test_register_duplicate_email_is_rejected():
    email = f"dup_{uuid4().hex[:8]}@mecalink.test"
    body = {"name": "Dup", "email": email, "password": "secret-pass", "phone": "0600", "role": "client"}
    assert client.post("/auth/register", json=body).status_code == 201
    again = client.post("/auth/register", json=body)
    assert again.status_code == 400
    assert again.json()["detail"] == "email: already registered"


def test_register_short_password_is_unprocessable():
    body = {"name": "Short", "email": f"s_{uuid4().hex[:8]}@mecalink.test", "password": "123", "phone": "0", "role": "client"}
    assert client.post("/auth/register", json=body).status_code == 422


def test_nearby_ranks_seeded_garages():
    response = client.get("/providers/nearby", params={**PARIS, "radius": 10})
    assert response.status_code == 200
    payload = response.json()
    ids = [item["id"] for item in payload]
    assert ids[0] == "gar_1"
    assert "gar_2" in ids and "gar_3" in ids
    assert "gar_4" not in ids
    distances = [item["distance_km"] for item in payload]
    assert distances == sorted(distances)
    assert all(km <= 10 for km in distances)


def test_nearby_uses_default_radius():
    response = client.get("/providers/nearby", params=PARIS)
    assert response.status_code == 200
    assert "gar_4" not in [item["id"] for item in response.json()]


def test_nearby_with_non_positive_radius_is_empty():
    response = client.get("/providers/nearby", params={**PARIS, "radius": 0})
    assert response.status_code == 200
    assert response.json() == []


def test_nearby_rejects_out_of_range_coordinates():
    response = client.get("/providers/nearby", params={"latitude": 123, "longitude": 2.35})
    assert response.status_code == 422


def test_unknown_provider_is_not_found():
    assert client.get("/providers/gar_missing").status_code == 404


def test_profile_update_by_owner_and_rejection_for_others():
    garage = _register_garage()
    token = garage["access_token"]
    provider_id = garage["provider"]["id"]

    updated = client.put(
        "/providers/profile",
        json={"description": "Open late", "skills": ["Moteur", "Pneus"]},
        headers=_headers(token),
    )
    assert updated.status_code == 200
    assert updated.json()["description"] == "Open late"
    assert updated.json()["skills"] == ["Moteur", "Pneus"]
    assert updated.json()["services"] == ["Dépannage"]

    too_many = client.patch(
        f"/providers/{provider_id}",
        json={"skills": ["a", "b", "c", "d", "e", "f"]},
        headers=_headers(token),
    )
    assert too_many.status_code == 400

    other = _register_garage()
    forbidden = client.patch(
        f"/providers/{provider_id}",
        json={"name": "Taken over"},
        headers=_headers(other["access_token"]),
    )
    assert forbidden.status_code == 403


def test_client_has_no_provider_profile():
    token = _login("client@mecalink.test")
    assert client.get("/providers/profile", headers=_headers(token)).status_code == 404


def test_request_lifecycle_over_http():
    client_token = _register_client()
    garage_token = _login("centre@mecalink.test")
    other_garage_token = _login("bastille@mecalink.test")

    created = _create_request(client_token)
    assert created["status"] == "pending"
    assert created["client_name"] == "Test Driver"
    assert created["client_phone"] == "06 00 00 00 00"
    assert created["client_email"].startswith("driver_")
    request_id = created["id"]

    forbidden = client.patch(
        f"/service-requests/{request_id}/status",
        json={"status": "accepted"},
        headers=_headers(other_garage_token),
    )
    assert forbidden.status_code == 403

    accepted = client.patch(
        f"/service-requests/{request_id}/status",
        json={"status": "accepted"},
        headers=_headers(garage_token),
    )
    assert accepted.status_code == 200
    assert accepted.json()["accepted_at"]

    again = client.patch(
        f"/service-requests/{request_id}/status",
        json={"status": "accepted"},
        headers=_headers(garage_token),
    )
    assert again.status_code == 409
    assert again.json()["detail"] == "Invalid status transition: accepted -> accepted"

    cancel = client.patch(f"/service-requests/{request_id}/cancel", headers=_headers(client_token))
    assert cancel.status_code == 409

    completed = client.patch(
        f"/service-requests/{request_id}/status",
        json={"status": "completed"},
        headers=_headers(garage_token),
    )
    assert completed.status_code == 200
    assert completed.json()["status"] == "completed"

    history = client.get(f"/service-requests/{request_id}/history", headers=_headers(client_token))
    assert history.status_code == 200
    assert [row["to_status"] for row in history.json()] == ["pending", "accepted", "completed"]

    mine = client.get("/service-requests/client", headers=_headers(client_token))
    assert [row["id"] for row in mine.json()] == [request_id]

    incoming = client.get("/service-requests/garage", headers=_headers(garage_token))
    assert request_id in [row["id"] for row in incoming.json()]


def test_cancel_pending_request():
    client_token = _register_client()
    created = _create_request(client_token)

    intruder = client.patch(f"/service-requests/{created['id']}/cancel", headers=_headers(_register_client()))
    assert intruder.status_code == 403

    cancelled = client.patch(f"/service-requests/{created['id']}/cancel", headers=_headers(client_token))
    assert cancelled.status_code == 200
    assert cancelled.json()["cancelled_at"]


def test_request_validation_errors():
    client_token = _register_client()
    empty_description = client.post(
        "/service-requests",
        json={"provider_id": "gar_1", "description": "  ", "location": REQUEST_LOCATION},
        headers=_headers(client_token),
    )
    assert empty_description.status_code == 422

    unknown_status = client.patch(
        "/service-requests/sr_missing/status",
        json={"status": "pending"},
        headers=_headers(client_token),
    )
    assert unknown_status.status_code == 422

    unknown_provider = client.post(
        "/service-requests",
        json={"provider_id": "gar_missing", "description": "Help", "location": REQUEST_LOCATION},
        headers=_headers(client_token),
    )
    no_address = client.post(
        "/service-requests",
        json={"provider_id": "gar_1", "description": "Help", "location": {"latitude": 48.85, "longitude": 2.35}},
        headers=_headers(client_token),
    )
    assert no_address.status_code == 400
    assert no_address.json()["detail"] == "location.address: is required"

    assert unknown_provider.status_code == 404
    assert client.get("/service-requests/client", headers=_headers(client_token)).json() == []


def test_provider_cannot_create_request():
    garage_token = _login("centre@mecalink.test")
    response = client.post(
        "/service-requests",
        json={"provider_id": "gar_2", "description": "Help", "location": REQUEST_LOCATION},
        headers=_headers(garage_token),
    )
    assert response.status_code == 403


def test_requests_require_authentication():
    assert client.post(
        "/service-requests",
        json={"provider_id": "gar_1", "description": "Help", "location": REQUEST_LOCATION},
    ).status_code == 401
    assert client.get("/service-requests/client").status_code == 401


def test_request_is_hidden_from_non_parties():
    created = _create_request(_register_client())
    outsider = client.get(f"/service-requests/{created['id']}", headers=_headers(_register_client()))
    assert outsider.status_code == 403
    missing = client.get("/service-requests/sr_missing", headers=_headers(_register_client()))
    assert missing.status_code == 404


def test_garage_is_notified_and_can_mark_read():
    garage = _register_garage()
    client_token = _register_client()
    created = _create_request(client_token, provider_id=garage["provider"]["id"])

    inbox = client.get("/notifications", headers=_headers(garage["access_token"]))
    assert inbox.status_code == 200
    notification = next(item for item in inbox.json() if item["deep_link"] == f"service-request:{created['id']}")
    assert notification["category"] == "request"

    marked = client.post(f"/notifications/{notification['id']}/read", headers=_headers(garage["access_token"]))
    assert marked.status_code == 200
    assert marked.json()["read"] is True

    unread = client.get("/notifications", params={"unread_only": True}, headers=_headers(garage["access_token"]))
    assert notification["id"] not in [item["id"] for item in unread.json()]

    foreign = client.post(f"/notifications/{notification['id']}/read", headers=_headers(client_token))
    assert foreign.status_code == 404


def test_register_device_token():
    token = _register_client()
    response = client.post(
        "/notifications/register-device",
        json={"device_token": "device-abc", "platform": "ios"},
        headers=_headers(token),
    )
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_http_client_maps_errors_through_test_server():
    api = MecaLinkClient(base_url="", session=client)
    api.login("client@mecalink.test", DEMO_PASSWORD)

    providers = api.nearby_providers(Position(**PARIS), radius_km=10)
    assert providers[0].id == "gar_1"

    created = api.create_request("gar_2", "Flat battery", RequestLocation(**REQUEST_LOCATION))
    assert created.status == "pending"
    assert api.get_request(created.id).id == created.id
    assert created.id in [item.id for item in api.list_requests("client")]

    with pytest.raises(NotFoundError):
        api.get_provider("gar_missing")
    with pytest.raises(ForbiddenError):
        api.transition_request(created.id, "accepted")

    garage = MecaLinkClient(base_url="", session=client)
    garage.login("bastille@mecalink.test", DEMO_PASSWORD)
    garage.transition_request(created.id, "rejected")
    with pytest.raises(InvalidTransitionError) as excinfo:
        garage.transition_request(created.id, "accepted")
    assert excinfo.value.current_status == "rejected"


def test_failed_garage_creation_rolls_back_the_account(monkeypatch):
    def broken_add_provider(**kwargs):
        raise sqlite3.IntegrityError("UNIQUE constraint failed: providers.owner_account_id")

    monkeypatch.setattr(provider_directory, "add_provider", broken_add_provider)
    email = f"rollback_{uuid4().hex[:8]}@mecalink.test"
    with pytest.raises(sqlite3.IntegrityError):
        client.post(
            "/auth/register",
            json={
                "name": "Half Registered",
                "email": email,
                "password": "secret-pass",
                "phone": "01 00 00 00 00",
                "role": "provider",
                "garage": {"address": "1 Test Road", "position": {"latitude": -45.0, "longitude": -95.0}},
            },
        )

    login = client.post("/auth/login", json={"email": email, "password": "secret-pass"})
    assert login.status_code == 401
