from __future__ import annotations

from conftest import iso_in

from spotshare.models import Claim


def test_create_availability_for_verified_spot(client, make_resident, make_spot):
    owner = make_resident("owner")
    spot_id = make_spot(owner)

    resp = client.post(
        "/availabilities",
        json={"spot_id": spot_id, "start_time": iso_in(1), "end_time": iso_in(3), "notes": "  weekend  "},
        headers=owner.headers,
    )

    assert resp.status_code == 201
    body = resp.json()["availability"]
    assert body["spot_id"] == spot_id
    assert body["is_active"] is True
    assert body["notes"] == "weekend"


def test_overlapping_active_window_is_rejected(client, make_resident, make_spot, make_availability):
    owner = make_resident("owner")
    spot_id = make_spot(owner)
    make_availability(owner, spot_id, 1, 3)

    resp = client.post(
        "/availabilities",
        json={"spot_id": spot_id, "start_time": iso_in(2), "end_time": iso_in(4)},
        headers=owner.headers,
    )

    assert resp.status_code == 409
    assert "overlaps" in resp.json()["detail"]


def test_touching_windows_count_as_overlap(client, make_resident, make_spot):
    owner = make_resident("owner")
    spot_id = make_spot(owner)
    start, middle, end = iso_in(1), iso_in(3), iso_in(5)
    first = client.post(
        "/availabilities",
        json={"spot_id": spot_id, "start_time": start, "end_time": middle},
        headers=owner.headers,
    )
    assert first.status_code == 201

    second = client.post(
        "/availabilities",
        json={"spot_id": spot_id, "start_time": middle, "end_time": end},
        headers=owner.headers,
    )

    assert second.status_code == 409


def test_inactive_windows_do_not_block_new_ones(client, make_resident, make_spot, make_availability):
    owner = make_resident("owner")
    spot_id = make_spot(owner)
    first = make_availability(owner, spot_id, 1, 3)
    assert client.put("/availabilities", json={"id": first, "is_active": False}, headers=owner.headers).status_code == 200

    make_availability(owner, spot_id, 2, 4)


def test_same_window_on_different_spots_is_fine(make_resident, make_spot, make_availability):
    owner = make_resident("owner")
    make_availability(owner, make_spot(owner, "12"), 1, 3)
    make_availability(owner, make_spot(owner, "13"), 1, 3)


def test_end_before_start_is_rejected(client, make_resident, make_spot):
    owner = make_resident("owner")
    spot_id = make_spot(owner)

    resp = client.post(
        "/availabilities",
        json={"spot_id": spot_id, "start_time": iso_in(3), "end_time": iso_in(1)},
        headers=owner.headers,
    )

    assert resp.status_code == 400
    assert resp.json()["detail"] == "End time must be after start time"


def test_past_start_rejected_unless_published_active(client, make_resident, make_spot):
    owner = make_resident("owner")
    spot_id = make_spot(owner)

    inactive = client.post(
        "/availabilities",
        json={"spot_id": spot_id, "start_time": iso_in(-1), "end_time": iso_in(2), "is_active": False},
        headers=owner.headers,
    )
    assert inactive.status_code == 400
    assert inactive.json()["detail"] == "Start time cannot be in the past"

    active = client.post(
        "/availabilities",
        json={"spot_id": spot_id, "start_time": iso_in(-1), "end_time": iso_in(2)},
        headers=owner.headers,
    )
    assert active.status_code == 201


def test_malformed_timestamp_is_a_validation_error(client, make_resident, make_spot):
    owner = make_resident("owner")
    spot_id = make_spot(owner)

    resp = client.post(
        "/availabilities",
        json={"spot_id": spot_id, "start_time": "tomorrow-ish", "end_time": iso_in(2)},
        headers=owner.headers,
    )

    assert resp.status_code == 400
    assert resp.json()["detail"] == "Validation failed"
    assert resp.json()["errors"]


def test_non_owner_gets_not_found(client, make_resident, make_spot):
    owner = make_resident("owner")
    other = make_resident("other")
    spot_id = make_spot(owner)

    resp = client.post(
        "/availabilities",
        json={"spot_id": spot_id, "start_time": iso_in(1), "end_time": iso_in(3)},
        headers=other.headers,
    )

    assert resp.status_code == 404


def test_unverified_spot_cannot_publish(client, make_resident, make_spot):
    owner = make_resident("owner")
    spot_id = make_spot(owner, verified=False)

    resp = client.post(
        "/availabilities",
        json={"spot_id": spot_id, "start_time": iso_in(1), "end_time": iso_in(3)},
        headers=owner.headers,
    )

    assert resp.status_code == 400
    assert "verified" in resp.json()["detail"]


def test_list_filters(client, make_resident, make_spot, make_availability):
    owner = make_resident("owner")
    spot_a = make_spot(owner, "1")
    spot_b = make_spot(owner, "2")
    later = make_availability(owner, spot_a, 5, 6)
    sooner = make_availability(owner, spot_a, 1, 2)
    withdrawn = make_availability(owner, spot_b, 1, 2)
    client.put("/availabilities", json={"id": withdrawn, "is_active": False}, headers=owner.headers)
    ended = make_availability(owner, spot_b, -3, -2)

    by_spot = client.get("/availabilities", params={"spot_id": spot_a}, headers=owner.headers).json()["availabilities"]
    assert [a["id"] for a in by_spot] == [sooner, later]

    inactive = client.get("/availabilities", params={"is_active": "false"}, headers=owner.headers).json()
    assert [a["id"] for a in inactive["availabilities"]] == [withdrawn]

    available = client.get("/availabilities", params={"available": "true"}, headers=owner.headers).json()
    ids = {a["id"] for a in available["availabilities"]}
    assert ids == {sooner, later}
    assert ended not in ids


def test_partial_update_and_single_time_merge(client, make_resident, make_spot, make_availability):
    owner = make_resident("owner")
    spot_id = make_spot(owner)
    a_id = make_availability(owner, spot_id, 1, 3)

    notes = client.put("/availabilities", json={"id": a_id, "notes": "gate code 42"}, headers=owner.headers)
    assert notes.status_code == 200
    assert notes.json()["availability"]["notes"] == "gate code 42"

    bad = client.put("/availabilities", json={"id": a_id, "end_time": iso_in(0.5)}, headers=owner.headers)
    assert bad.status_code == 400


def test_update_into_overlap_is_rejected(client, make_resident, make_spot, make_availability):
    owner = make_resident("owner")
    spot_id = make_spot(owner)
    make_availability(owner, spot_id, 1, 3)
    second = make_availability(owner, spot_id, 5, 7)

    resp = client.put(
        "/availabilities",
        json={"id": second, "start_time": iso_in(2), "end_time": iso_in(6)},
        headers=owner.headers,
    )

    assert resp.status_code == 409


def test_update_by_non_owner_is_hidden(client, make_resident, make_spot, make_availability):
    owner = make_resident("owner")
    other = make_resident("other")
    a_id = make_availability(owner, make_spot(owner))

    resp = client.put("/availabilities", json={"id": a_id, "notes": "mine now"}, headers=other.headers)

    assert resp.status_code == 404


def test_owner_cannot_reopen_a_claimed_window(client, make_resident, make_spot, make_availability):
    owner = make_resident("owner")
    claimer = make_resident("claimer")
    a_id = make_availability(owner, make_spot(owner))
    assert client.post("/claims", json={"availability_id": a_id}, headers=claimer.headers).status_code == 201

    resp = client.put("/availabilities", json={"id": a_id, "is_active": True}, headers=owner.headers)

    assert resp.status_code == 409


def test_delete_cascades_to_claims(client, database, make_resident, make_spot, make_availability):
    owner = make_resident("owner")
    claimer = make_resident("claimer")
    a_id = make_availability(owner, make_spot(owner))
    claim_id = client.post("/claims", json={"availability_id": a_id}, headers=claimer.headers).json()["claim"]["id"]

    resp = client.delete("/availabilities", params={"id": a_id}, headers=owner.headers)

    assert resp.status_code == 200
    assert resp.json() == {"message": "Availability deleted successfully"}
    with database.session_scope() as db:
        assert db.get(Claim, claim_id) is None


def test_delete_requires_id_and_ownership(client, make_resident, make_spot, make_availability):
    owner = make_resident("owner")
    other = make_resident("other")
    a_id = make_availability(owner, make_spot(owner))

    assert client.delete("/availabilities", headers=owner.headers).status_code == 400
    assert client.delete("/availabilities", params={"id": a_id}, headers=other.headers).status_code == 404


def test_requests_without_token_are_rejected(client):
    resp = client.get("/availabilities")

    assert resp.status_code == 401
    assert resp.json()["detail"] == "No authorization token provided"


def test_claimed_window_still_blocks_overlap(client, make_resident, make_spot, make_availability):
    owner = make_resident("owner")
    b = make_resident("b")
    spot_id = make_spot(owner)
    claimed = make_availability(owner, spot_id, 1, 3)
    assert client.post("/claims", json={"availability_id": claimed}, headers=b.headers).status_code == 201

    overlapping = client.post(
        "/availabilities",
        json={"spot_id": spot_id, "start_time": iso_in(2), "end_time": iso_in(4)},
        headers=owner.headers,
    )
    assert overlapping.status_code == 409

    later = make_availability(owner, spot_id, 5, 6)
    moved = client.put(
        "/availabilities",
        json={"id": later, "start_time": iso_in(2.5), "end_time": iso_in(6)},
        headers=owner.headers,
    )
    assert moved.status_code == 409


def test_claimed_window_times_are_locked(client, make_resident, make_spot, make_availability):
    owner = make_resident("owner")
    b = make_resident("b")
    a_id = make_availability(owner, make_spot(owner), 1, 3)
    client.post("/claims", json={"availability_id": a_id}, headers=b.headers)

    moved = client.put(
        "/availabilities",
        json={"id": a_id, "start_time": iso_in(10), "end_time": iso_in(11)},
        headers=owner.headers,
    )
    stretched = client.put("/availabilities", json={"id": a_id, "end_time": iso_in(5)}, headers=owner.headers)
    notes = client.put("/availabilities", json={"id": a_id, "notes": "blue gate"}, headers=owner.headers)

    assert moved.status_code == 409
    assert stretched.status_code == 409
    assert notes.status_code == 200


def test_update_applies_the_create_past_start_rule(client, make_resident, make_spot, make_availability):
    owner = make_resident("owner")
    spot_id = make_spot(owner)
    running = make_availability(owner, spot_id, -1, 2)
    withdrawn = make_availability(owner, spot_id, 5, 6, is_active=False)

    extended = client.put(
        "/availabilities",
        json={"id": running, "start_time": iso_in(-1), "end_time": iso_in(3)},
        headers=owner.headers,
    )
    assert extended.status_code == 200

    backdated = client.put("/availabilities", json={"id": withdrawn, "start_time": iso_in(-1)}, headers=owner.headers)
    assert backdated.status_code == 400
    assert backdated.json()["detail"] == "Start time cannot be in the past"
