from bson import ObjectId


def add_trainer(client, name="Sam Lee", email="sam@example.com"):
    res = client.post("/trainers", json={"name": name, "email": email, "image": "i", "experience": 3})
    return res.json()["insertedId"]


def test_payment_is_recorded_as_success(client, db):
    res = client.post("/payments", json={
        "userEmail": "amy@example.com",
        "trainerId": "abc",
        "price": 25,
        "status": "pending",
    })
    assert res.status_code == 201
    doc = db["bookings"].find_one({"_id": ObjectId(res.json()["id"])})
    assert doc["status"] == "success"
    assert doc["price"] == 25


def test_payment_requires_user_and_trainer(client, db):
    assert client.post("/payments", json={"userEmail": "amy@example.com"}).status_code == 400
    assert db["bookings"].count_documents({}) == 0


def test_bookings_for_trainer(client):
    trainer_id = add_trainer(client)
    client.post("/payments", json={"userEmail": "amy@example.com", "trainerId": trainer_id})
    client.post("/payments", json={"userEmail": "bob@example.com", "trainerId": "other"})

    bookings = client.get(f"/bookings/trainer/{trainer_id}").json()
    assert [b["userEmail"] for b in bookings] == ["amy@example.com"]


def test_user_bookings_merge_trainer_details(client, db, stamp):
    trainer_id = add_trainer(client)
    missing_trainer = str(ObjectId())
    db["bookings"].insert_many([
        {"userEmail": "amy@example.com", "trainerId": trainer_id, "status": "success", "createdAt": stamp(2)},
        {"userEmail": "amy@example.com", "trainerId": missing_trainer, "status": "success", "createdAt": stamp(1)},
        {"userEmail": "amy@example.com", "trainerId": "not-an-id", "status": "success", "createdAt": stamp(0)},
        {"userEmail": "amy@example.com", "trainerId": trainer_id, "status": "failed", "createdAt": stamp(3)},
    ])

    merged = client.get("/bookings/user/amy@example.com").json()
    assert len(merged) == 3
    assert merged[0]["trainerDetails"]["_id"] == trainer_id
    assert merged[0]["trainerDetails"]["name"] == "Sam Lee"
    assert merged[1]["trainerDetails"] is None
    assert merged[2]["trainerDetails"] is None


def test_user_without_bookings(client):
    assert client.get("/bookings/user/nobody@example.com").json() == []


def test_payment_createdat_is_server_set(client, db):
    res = client.post("/payments", json={
        "userEmail": "amy@example.com",
        "trainerId": "abc",
        "createdAt": "1999-01-01T00:00:00Z",
    })
    doc = db["bookings"].find_one({"_id": ObjectId(res.json()["id"])})
    assert doc["createdAt"] != "1999-01-01T00:00:00Z"
    assert doc["createdAt"].year >= 2024
