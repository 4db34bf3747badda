import math

from sqlalchemy import select

from parking_manager import config
from parking_manager.models import LogEntry, ParkingSlot


def _bulk(client, headers, *numbers, vehicle_type="car"):
    return client.post(
        "/slots/bulk",
        json={
            "slots": [
                {"slot_number": n, "size": "medium", "vehicle_type": vehicle_type, "location": "Level 1"}
                for n in numbers
            ]
        },
        headers=headers,
    )


def test_bulk_create_skips_duplicates(client, db, admin, auth_headers, make_slot):
    make_slot("A1")

    resp = _bulk(client, auth_headers(admin), "A1", "A2", "A3", "A2")

    assert resp.status_code == 201
    body = resp.json()
    assert [s["slot_number"] for s in body["data"]] == ["A2", "A3"]
    assert body["skipped"] == ["A1", "A2"]
    assert all(s["status"] == "available" for s in body["data"])
    assert len(db.execute(select(ParkingSlot)).scalars().all()) == 3
    assert "Bulk created 4 slots" in db.execute(select(LogEntry.action)).scalars().all()


def test_non_admin_sees_only_available_slots_regardless_of_search(client, make_user, auth_headers, make_slot):
    user = make_user("user@x.com")
    make_slot("C1")
    make_slot("C2", status="unavailable")
    make_slot("M1", vehicle_type="motorbike", size="small")

    listed = client.get("/slots", headers=auth_headers(user)).json()
    assert {s["slot_number"] for s in listed["data"]} == {"C1", "M1"}

    searched = client.get("/slots", params={"search": "C2"}, headers=auth_headers(user)).json()
    assert searched["data"] == []
    assert searched["meta"]["totalItems"] == 0

    by_type = client.get("/slots", params={"search": "CAR"}, headers=auth_headers(user)).json()
    assert [s["slot_number"] for s in by_type["data"]] == ["C1"]


def test_admin_sees_all_slots_and_can_filter(client, admin, auth_headers, make_slot):
    make_slot("C1")
    make_slot("C2", status="unavailable")
    make_slot("M1", vehicle_type="motorbike", size="small")

    everything = client.get("/slots", headers=auth_headers(admin)).json()
    assert [s["slot_number"] for s in everything["data"]] == ["C1", "C2", "M1"]

    bikes = client.get("/slots", params={"search": "motor"}, headers=auth_headers(admin)).json()
    assert [s["slot_number"] for s in bikes["data"]] == ["M1"]


def test_slot_listing_pagination_meta(client, admin, auth_headers, make_slot):
    for i in range(1, 8):
        make_slot(f"P{i}")

    for page in (1, 2, 3, 4):
        body = client.get("/slots", params={"page": page, "limit": 3}, headers=auth_headers(admin)).json()
        assert len(body["data"]) <= 3
        assert body["meta"] == {
            "totalItems": 7,
            "currentPage": page,
            "totalPages": math.ceil(7 / 3),
            "limit": 3,
        }

    assert [s["slot_number"] for s in client.get(
        "/slots", params={"page": 3, "limit": 3}, headers=auth_headers(admin)
    ).json()["data"]] == ["P7"]


def test_invalid_page_params_are_validation_errors(client, admin, auth_headers):
    resp = client.get("/slots", params={"page": 0}, headers=auth_headers(admin))
    assert resp.status_code == 400


def test_slot_mutations_require_admin_by_default(client, make_user, auth_headers, make_slot):
    user = make_user("user@x.com")
    slot = make_slot("C1")

    assert _bulk(client, auth_headers(user), "C9").status_code == 403
    assert client.patch(f"/slots/{slot.id}", json={"location": "Roof"}, headers=auth_headers(user)).status_code == 403
    assert client.delete(f"/slots/{slot.id}", headers=auth_headers(user)).status_code == 403


def test_slot_mutation_gate_can_be_relaxed(client, make_user, auth_headers, monkeypatch):
    monkeypatch.setenv("SLOT_MUTATIONS_REQUIRE_ADMIN", "false")
    config.get_settings.cache_clear()
    user = make_user("user@x.com")

    assert _bulk(client, auth_headers(user), "C9").status_code == 201


def test_update_and_delete_slot(client, db, admin, auth_headers, make_slot):
    slot = make_slot("C1")
    make_slot("C2")

    updated = client.patch(
        f"/slots/{slot.id}",
        json={"location": "Roof", "status": "unavailable"},
        headers=auth_headers(admin),
    )
    assert updated.status_code == 200
    assert updated.json()["location"] == "Roof"
    assert updated.json()["status"] == "unavailable"
    assert updated.json()["slot_number"] == "C1"

    clash = client.patch(f"/slots/{slot.id}", json={"slot_number": "C2"}, headers=auth_headers(admin))
    assert clash.status_code == 400

    assert client.patch("/slots/999", json={"location": "x"}, headers=auth_headers(admin)).status_code == 404

    deleted = client.delete(f"/slots/{slot.id}", headers=auth_headers(admin))
    assert deleted.status_code == 200
    assert client.delete(f"/slots/{slot.id}", headers=auth_headers(admin)).status_code == 404

    actions = db.execute(select(LogEntry.action)).scalars().all()
    assert "Slot C1 updated" in actions
    assert "Slot C1 deleted" in actions


def test_oversized_page_is_validation_error(client, admin, auth_headers):
    resp = client.get("/slots", params={"page": 10**20}, headers=auth_headers(admin))
    assert resp.status_code == 400
    assert resp.json()["error"] == "Invalid request"


def test_large_limit_is_clamped(client, admin, auth_headers, make_slot):
    make_slot("C1")

    body = client.get("/slots", params={"limit": 500}, headers=auth_headers(admin)).json()

    assert body["meta"]["limit"] == 100
    assert body["meta"]["totalPages"] == 1
    assert [s["slot_number"] for s in body["data"]] == ["C1"]


def test_database_errors_map_to_server_error_payload(client, admin, auth_headers, monkeypatch):
    from sqlalchemy.exc import OperationalError

    from parking_manager import slots

    def broken(*_args, **_kwargs):
        raise OperationalError("SELECT 1", {}, Exception("disk I/O error"))

    monkeypatch.setattr(slots, "list_slots", broken)

    resp = client.get("/slots", headers=auth_headers(admin))

    assert resp.status_code == 500
    body = resp.json()
    assert body["error"] == "Server error"
    assert "disk I/O error" in body["details"]
