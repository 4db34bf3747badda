from sqlalchemy import select

from parking_manager.models import LogEntry, SlotRequest, User, Vehicle


def _add_vehicle(client, headers, plate, vehicle_type="car", size="medium", **extra):
    body = {"plate_number": plate, "vehicle_type": vehicle_type, "size": size, **extra}
    return client.post("/vehicles", json=body, headers=headers)


# Vehicles


def test_create_vehicle_and_duplicate_plate(client, db, make_user, auth_headers):
    alice = make_user("alice@x.com")

    resp = _add_vehicle(client, auth_headers(alice), "AA-1234", other_attributes={"color": "red"})
    assert resp.status_code == 201
    body = resp.json()
    assert body["userId"] == alice.id
    assert body["other_attributes"] == {"color": "red"}

    dup = _add_vehicle(client, auth_headers(alice), "AA-1234")
    assert dup.status_code == 400
    assert dup.json()["error"] == "Plate number already exists"

    assert "Vehicle AA-1234 created" in db.execute(select(LogEntry.action)).scalars().all()


def test_vehicle_listing_is_scoped_and_carries_approval_status(client, admin, make_user, auth_headers, make_slot):
    alice = make_user("alice@x.com")
    bob = make_user("bob@x.com")
    make_slot("C1")
    approved_id = _add_vehicle(client, auth_headers(alice), "AA-1111").json()["id"]
    _add_vehicle(client, auth_headers(alice), "AA-2222", vehicle_type="motorbike", size="small")
    _add_vehicle(client, auth_headers(bob), "BB-1111")

    request_id = client.post("/requests", json={"vehicle_id": approved_id}, headers=auth_headers(alice)).json()["id"]
    assert client.post(f"/requests/{request_id}/approve", headers=auth_headers(admin)).status_code == 200

    mine = client.get("/vehicles", headers=auth_headers(alice)).json()
    assert [(v["plate_number"], v["approval_status"]) for v in mine["data"]] == [
        ("AA-1111", "approved"),
        ("AA-2222", None),
    ]
    assert mine["meta"]["totalItems"] == 2

    everyone = client.get("/vehicles", headers=auth_headers(admin)).json()
    assert everyone["meta"]["totalItems"] == 3

    bikes = client.get("/vehicles", params={"search": "MOTOR"}, headers=auth_headers(alice)).json()
    assert [v["plate_number"] for v in bikes["data"]] == ["AA-2222"]

    by_id = client.get("/vehicles", params={"search": str(approved_id)}, headers=auth_headers(admin)).json()
    assert approved_id in [v["id"] for v in by_id["data"]]


def test_get_vehicle_visibility(client, admin, make_user, auth_headers, make_vehicle):
    alice = make_user("alice@x.com")
    bob = make_user("bob@x.com")
    car = make_vehicle(alice, "AA-1234")

    own = client.get(f"/vehicles/{car.id}", headers=auth_headers(alice))
    assert own.status_code == 200
    assert own.json()["approval_status"] is None

    assert client.get(f"/vehicles/{car.id}", headers=auth_headers(admin)).status_code == 200
    assert client.get(f"/vehicles/{car.id}", headers=auth_headers(bob)).status_code == 404
    assert client.get("/vehicles/999", headers=auth_headers(alice)).status_code == 404


def test_only_owner_updates_vehicle(client, db, admin, make_user, auth_headers, make_vehicle):
    alice = make_user("alice@x.com")
    car = make_vehicle(alice, "AA-1234")
    make_vehicle(alice, "AA-9999")

    assert client.patch(f"/vehicles/{car.id}", json={"size": "large"}, headers=auth_headers(admin)).status_code == 404

    resp = client.patch(f"/vehicles/{car.id}", json={"size": "large"}, headers=auth_headers(alice))
    assert resp.status_code == 200
    assert resp.json()["size"] == "large"
    assert resp.json()["plate_number"] == "AA-1234"

    clash = client.patch(f"/vehicles/{car.id}", json={"plate_number": "AA-9999"}, headers=auth_headers(alice))
    assert clash.status_code == 400


def test_delete_vehicle_by_owner_or_admin_removes_its_requests(client, db, admin, make_user, auth_headers, make_vehicle):
    alice = make_user("alice@x.com")
    bob = make_user("bob@x.com")
    first = make_vehicle(alice, "AA-1111")
    second = make_vehicle(alice, "AA-2222")
    client.post("/requests", json={"vehicle_id": first.id}, headers=auth_headers(alice))

    assert client.delete(f"/vehicles/{first.id}", headers=auth_headers(bob)).status_code == 404
    assert client.delete(f"/vehicles/{first.id}", headers=auth_headers(alice)).status_code == 200
    assert client.delete(f"/vehicles/{second.id}", headers=auth_headers(admin)).status_code == 200

    db.expire_all()
    assert db.execute(select(Vehicle)).scalars().all() == []
    assert db.execute(select(SlotRequest)).scalars().all() == []


# Users


def test_profile_read_and_update(client, db, make_user, auth_headers):
    alice = make_user("alice@x.com")
    make_user("taken@x.com")

    me = client.get("/users/me", headers=auth_headers(alice))
    assert me.status_code == 200
    assert me.json() == {"id": alice.id, "name": "Alice", "email": "alice@x.com", "role": "user"}

    updated = client.patch(
        "/users/me",
        json={"name": "Alice Smith", "email": "ALICE.SMITH@x.com", "password": "newsecret"},
        headers=auth_headers(alice),
    )
    assert updated.status_code == 200
    assert updated.json()["email"] == "alice.smith@x.com"

    login = client.post("/auth/login", json={"email": "alice.smith@x.com", "password": "newsecret"})
    assert login.status_code == 200

    clash = client.patch("/users/me", json={"email": "taken@x.com"}, headers=auth_headers(alice))
    assert clash.status_code == 400
    assert clash.json()["error"] == "Email already exists"


def test_admin_lists_and_searches_users(client, admin, make_user, auth_headers):
    make_user("alice@x.com")
    make_user("bob@x.com", verified=False)

    everyone = client.get("/users", headers=auth_headers(admin)).json()
    assert everyone["meta"]["totalItems"] == 3
    assert {u["email"]: u["is_verified"] for u in everyone["data"]}["bob@x.com"] is False

    found = client.get("/users", params={"search": "BOB"}, headers=auth_headers(admin)).json()
    assert [u["email"] for u in found["data"]] == ["bob@x.com"]


def test_admin_deletes_user_and_their_vehicles(client, db, admin, make_user, auth_headers, make_vehicle):
    alice = make_user("alice@x.com")
    alice_id = alice.id
    make_vehicle(alice, "AA-1234")
    client.get("/users/me", headers=auth_headers(alice))

    assert client.delete(f"/users/{alice_id}", headers=auth_headers(admin)).status_code == 200
    assert client.delete(f"/users/{alice_id}", headers=auth_headers(admin)).status_code == 404

    db.expire_all()
    assert db.get(User, alice_id) is None
    assert db.execute(select(Vehicle)).scalars().all() == []
    orphaned = db.execute(select(LogEntry).where(LogEntry.action == "User profile viewed")).scalars().all()
    assert orphaned and all(entry.user_id is None for entry in orphaned)
    assert f"User {alice_id} deleted" in db.execute(select(LogEntry.action)).scalars().all()


# Logs


def test_logs_are_searchable_and_viewing_is_logged(client, admin, make_user, auth_headers):
    alice = make_user("alice@x.com")
    client.post("/auth/login", json={"email": "alice@x.com", "password": "secret123"})
    client.get("/users/me", headers=auth_headers(alice))

    first = client.get("/logs", headers=auth_headers(admin)).json()
    actions = [entry["action"] for entry in first["data"]]
    assert actions[:2] == ["User profile viewed", "User logged in"]
    assert first["data"][0]["user"] == {"id": alice.id, "name": "Alice", "email": "alice@x.com"}

    logged_in = client.get("/logs", params={"search": "LOGGED IN"}, headers=auth_headers(admin)).json()
    assert [entry["action"] for entry in logged_in["data"]] == ["User logged in"]

    by_user = client.get("/logs", params={"search": str(alice.id)}, headers=auth_headers(admin)).json()
    assert by_user["data"]
    assert all(
        entry["userId"] == alice.id or str(alice.id) in entry["action"] for entry in by_user["data"]
    )
    assert {"User logged in", "User profile viewed"} <= {entry["action"] for entry in by_user["data"]}

    latest = client.get("/logs", params={"limit": 1}, headers=auth_headers(admin)).json()
    assert latest["data"][0]["action"] == "Logs list viewed"
    assert latest["data"][0]["userId"] == admin.id
