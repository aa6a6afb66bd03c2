from bson import ObjectId


def test_add_trainer_joins_roster(client):
    res = client.post("/trainers", json={"name": "Sam", "email": "sam@example.com", "image": "i", "experience": 0})
    assert res.status_code == 201
    trainer_id = res.json()["insertedId"]

    roster = client.get("/trainers").json()
    assert [t["_id"] for t in roster] == [trainer_id]
    assert roster[0]["availableSlots"] == []
    assert client.get(f"/trainers/{trainer_id}").json()["name"] == "Sam"


def test_add_trainer_requires_fields(client, db):
    res = client.post("/trainers", json={"name": "Sam", "image": "i"})
    assert res.status_code == 400
    assert res.json() == {"error": "Name, image, and experience are required"}
    assert db["trainers"].count_documents({}) == 0


def test_roster_excludes_applications(client, application):
    client.post("/trainers/apply", json=application)
    assert client.get("/trainers").json() == []


def test_trainer_by_email_routes_share_handler(client, application):
    client.post("/trainers", json={"name": "Sam", "email": "sam@example.com", "image": "i", "experience": 2})
    for path in ("/trainers/email/sam@example.com", "/trainers/by-email/sam@example.com"):
        res = client.get(path)
        assert res.status_code == 200
        assert res.json()["name"] == "Sam"

    # pending applicants are not trainers yet
    client.post("/trainers/apply", json=application)
    assert client.get("/trainers/email/jane@example.com").status_code == 404
    assert client.get("/trainers/by-email/nobody@example.com").status_code == 404


def test_get_trainer_unknown_or_malformed_id(client):
    assert client.get(f"/trainers/{ObjectId()}").status_code == 404
    res = client.get("/trainers/12345")
    assert res.status_code == 404
    assert res.json() == {"error": "Trainer not found"}
