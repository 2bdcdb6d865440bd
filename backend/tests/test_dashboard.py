from __future__ import annotations


def test_dashboard_sections(client, make_resident, make_spot, make_availability):
    owner = make_resident("owner")
    b = make_resident("bea")
    spot_id = make_spot(owner, "12")
    open_id = make_availability(owner, spot_id, 1, 3)
    taken_id = make_availability(owner, spot_id, 5, 7)
    claim_id = client.post("/claims", json={"availability_id": taken_id}, headers=b.headers).json()["claim"]["id"]

    mine = client.get("/dashboard", headers=owner.headers).json()
    theirs = client.get("/dashboard", headers=b.headers).json()

    assert mine["stats"]["my_spots"] == 1
    assert mine["stats"]["available_spots"] == 0
    assert mine["stats"]["confirmed_claims_on_my_spots"] == 1
    assert [a["id"] for a in mine["my_spots"][0]["availabilities"]] == [open_id, taken_id]
    [on_mine] = mine["claims_on_my_spots"]
    assert on_mine["id"] == claim_id
    assert on_mine["claimer"]["full_name"] == "Bea"

    assert theirs["stats"]["active_claims"] == 1
    assert [a["id"] for a in theirs["available_spots"]] == [open_id]
    assert theirs["available_spots"][0]["parking_spot"]["owner"]["id"] == owner.id
    assert theirs["my_claims"][0]["availability"]["parking_spot"]["spot_number"] == "12"


def test_dashboard_for_new_resident_is_empty(client, make_resident):
    me = make_resident("new", approved=False)

    body = client.get("/dashboard", headers=me.headers).json()

    assert body["stats"]["total_claims"] == 0
    assert body["my_spots"] == []
    assert body["my_claims"] == []
