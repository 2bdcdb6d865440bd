from __future__ import annotations

import pytest

from conftest import iso_in

from spotshare.security import create_access_token


@pytest.fixture
def admin(make_resident):
    return make_resident("manager", admin=True)


def test_admin_routes_require_admin(client, make_resident):
    me = make_resident("resident")
    other = make_resident("other", approved=False)

    assert client.get("/admin/profiles", headers=me.headers).status_code == 403
    assert client.get("/admin/logs", headers=me.headers).status_code == 403
    assert client.post(f"/admin/profiles/{other.id}/approve", headers=me.headers).status_code == 403


def test_pending_queue_and_approval(client, admin, make_resident):
    newcomer = make_resident("newcomer", approved=False)

    pending = client.get("/admin/profiles", params={"pending": "true"}, headers=admin.headers).json()["profiles"]
    assert [p["id"] for p in pending] == [newcomer.id]

    resp = client.post(
        f"/admin/profiles/{newcomer.id}/approve",
        json={"reason": "lease checked"},
        headers=admin.headers,
    )
    assert resp.status_code == 200
    assert resp.json()["profile"]["is_approved"] is True

    assert client.get("/admin/profiles", params={"pending": "true"}, headers=admin.headers).json()["profiles"] == []
    created = client.post("/parking-spots", json={"spot_number": "9", "location": "P1"}, headers=newcomer.headers)
    assert created.status_code == 201


def test_promote_and_demote(client, admin, make_resident):
    other = make_resident("other")

    promoted = client.post(f"/admin/profiles/{other.id}/promote", headers=admin.headers)
    assert promoted.json()["profile"]["is_admin"] is True
    assert client.get("/admin/logs", headers=other.headers).status_code == 200

    demoted = client.post(f"/admin/profiles/{other.id}/demote", headers=admin.headers)
    assert demoted.json()["profile"]["is_admin"] is False
    assert demoted.json()["profile"]["is_approved"] is True


def test_admin_cannot_demote_self(client, admin):
    resp = client.post(f"/admin/profiles/{admin.id}/demote", headers=admin.headers)

    assert resp.status_code == 400


def test_unknown_profile_or_action(client, admin):
    assert client.post("/admin/profiles/missing/approve", headers=admin.headers).status_code == 404
    assert client.post(f"/admin/profiles/{admin.id}/ban", headers=admin.headers).status_code == 400


def test_verification_gates_publishing(client, admin, make_resident, make_spot):
    owner = make_resident("owner")
    spot_id = make_spot(owner, verified=False)
    window = {"spot_id": spot_id, "start_time": iso_in(1), "end_time": iso_in(2)}

    assert client.post("/availabilities", json=window, headers=owner.headers).status_code == 400

    verified = client.post(f"/admin/spots/{spot_id}/verify", headers=admin.headers)
    assert verified.status_code == 200
    assert verified.json()["spot"]["is_verified"] is True
    assert client.post("/availabilities", json=window, headers=owner.headers).status_code == 201

    client.post(f"/admin/spots/{spot_id}/unverify", json={"reason": "wrong garage"}, headers=admin.headers)
    later = {"spot_id": spot_id, "start_time": iso_in(5), "end_time": iso_in(6)}
    assert client.post("/availabilities", json=later, headers=owner.headers).status_code == 400


def test_only_admins_verify_spots(client, make_resident, make_spot):
    owner = make_resident("owner")
    spot_id = make_spot(owner, verified=False)

    assert client.post(f"/admin/spots/{spot_id}/verify", headers=owner.headers).status_code == 403


def test_admin_emails_are_provisioned_as_admins(client, monkeypatch):
    monkeypatch.setenv("ADMIN_EMAILS", "board@example.com, other@example.com")
    token = create_access_token(user_id="a1b2c3d4-0000-4000-8000-00000000000b", email="Board@Example.com")

    profile = client.get("/profile", headers={"Authorization": f"Bearer {token}"}).json()["profile"]

    assert profile["is_admin"] is True
    assert profile["is_approved"] is True


def test_admin_actions_are_logged(client, admin, make_resident, make_spot):
    newcomer = make_resident("newcomer", approved=False)
    spot_id = make_spot(admin, verified=False)
    client.post(f"/admin/profiles/{newcomer.id}/approve", json={"reason": "ok"}, headers=admin.headers)
    client.post(f"/admin/spots/{spot_id}/verify", headers=admin.headers)

    items = client.get("/admin/logs", headers=admin.headers).json()["items"]

    actions = {(i["entity_type"], i["action"], i["entity_id"]) for i in items}
    assert ("profile", "approve", newcomer.id) in actions
    assert ("parking_spot", "verify", spot_id) in actions
    assert all(i["actor_id"] == admin.id for i in items)


def test_admin_can_delete_any_spot(client, admin, make_resident, make_spot):
    owner = make_resident("owner")
    spot_id = make_spot(owner)

    assert client.delete("/parking-spots", params={"id": spot_id}, headers=admin.headers).status_code == 200


def test_sms_webhook_acknowledges(client):
    ok = client.post("/webhooks/sms", json={"type": "delivered", "id": "evt_1"})
    junk = client.post("/webhooks/sms", content=b"{not json", headers={"Content-Type": "application/json"})

    assert ok.json()["status"] == "received"
    assert junk.status_code == 200
    assert junk.json()["status"] == "error"
