from __future__ import annotations

import datetime as dt
import uuid
from dataclasses import dataclass

import pytest
from fastapi.testclient import TestClient

from spotshare.db import Database
from spotshare.main import create_app
from spotshare.models import Availability, ParkingSpot, Profile
from spotshare.security import create_access_token


@dataclass
class Resident:
    id: str
    email: str
    headers: dict[str, str]


def iso_in(hours: float) -> str:
    return (dt.datetime.now(dt.timezone.utc) + dt.timedelta(hours=hours)).isoformat()


@pytest.fixture(autouse=True)
def _env(monkeypatch):
    monkeypatch.delenv("JWT_AUDIENCE", raising=False)
    monkeypatch.delenv("CLAIM_AUTO_CONFIRM", raising=False)
    monkeypatch.delenv("CLAIM_RATE_LIMIT", raising=False)
    monkeypatch.delenv("ADMIN_EMAILS", raising=False)
    monkeypatch.setenv("APP_ENV", "test")
    monkeypatch.setenv("SMS_BACKEND", "disabled")


@pytest.fixture
def database():
    db = Database("sqlite://")
    db.create_all()
    yield db
    db.dispose()


@pytest.fixture
def app(database):
    return create_app(database)


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c


@pytest.fixture
def make_resident(client, database):
    def _make(name: str = "resident", *, approved: bool = True, admin: bool = False, phone: str | None = None) -> Resident:
        user_id = str(uuid.uuid4())
        email = f"{name}-{user_id[:8]}@example.com"
        token = create_access_token(
            user_id=user_id,
            email=email,
            user_metadata={"full_name": name.title(), "apartment_number": "4B", "phone_number": phone or ""},
        )
        headers = {"Authorization": f"Bearer {token}"}
        resp = client.get("/profile", headers=headers)
        assert resp.status_code == 200, resp.text
        if approved or admin:
            with database.session_scope() as db:
                p = db.get(Profile, user_id)
                p.is_approved = True
                p.is_admin = admin
        return Resident(id=user_id, email=email, headers=headers)

    return _make


@pytest.fixture
def make_spot(client, database):
    def _make(owner: Resident, spot_number: str = "12", *, verified: bool = True) -> str:
        resp = client.post(
            "/parking-spots",
            json={"spot_number": spot_number, "location": "Garage level 1"},
            headers=owner.headers,
        )
        assert resp.status_code == 201, resp.text
        spot_id = resp.json()["spot"]["id"]
        if verified:
            with database.session_scope() as db:
                db.get(ParkingSpot, spot_id).is_verified = True
        return spot_id

    return _make


@pytest.fixture
def make_availability(client):
    def _make(owner: Resident, spot_id: str, start_h: float = 1, end_h: float = 3, **extra) -> str:
        resp = client.post(
            "/availabilities",
            json={"spot_id": spot_id, "start_time": iso_in(start_h), "end_time": iso_in(end_h), **extra},
            headers=owner.headers,
        )
        assert resp.status_code == 201, resp.text
        return resp.json()["availability"]["id"]

    return _make


@pytest.fixture
def availability_state(database):
    def _get(availability_id: str) -> bool:
        with database.session_scope() as db:
            return db.get(Availability, availability_id).is_active

    return _get
