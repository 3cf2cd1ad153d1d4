import os

os.environ.setdefault("DB_BACKEND", "sqlite")

from fastapi.testclient import TestClient


def _auth(user):
    return {"X-User-Id": user["id"]}


def _create(client, handle):
    response = client.post(
        "/api/users",
        json={"handle": handle, "full_name": handle.capitalize(), "email": f"{handle}@example.com"},
    )
    assert response.status_code == 201
    return response.json()


def test_requests_without_identity_are_rejected(client):
    response = client.get("/api/users")
    assert response.status_code == 401
    assert response.json()["error"] == "unauthenticated"

    response = client.get("/api/users", headers={"X-User-Id": "ghost"})
    assert response.status_code == 401
    assert response.json()["error"] == "unknown_identity"


def test_full_follow_and_message_scenario(client):
    alice = _create(client, "alice")
    bob = _create(client, "bob")

    response = client.post(f"/api/users/request/{bob['id']}", headers=_auth(alice))
    assert response.status_code == 200
    assert response.json()["receiver"]["id"] == bob["id"]

    response = client.get("/api/users/requests", headers=_auth(bob))
    assert [row["id"] for row in response.json()] == [alice["id"]]

    response = client.post(f"/api/users/requests/{alice['id']}/accept", headers=_auth(bob))
    assert response.status_code == 200
    assert response.json()["follower"]["id"] == alice["id"]

    response = client.post(f"/api/messages/send/{bob['id']}", json={"text": "hi"}, headers=_auth(alice))
    assert response.status_code == 403
    assert response.json() == {
        "error": "not_mutual_follow",
        "message": "Both users must follow each other to chat.",
    }

    response = client.post(f"/api/users/follow/{alice['id']}", headers=_auth(bob))
    assert response.status_code == 200
    assert response.json()["followers_count"] == 1
    assert response.json()["following_count"] == 1

    response = client.post(f"/api/messages/send/{bob['id']}", json={"text": "hi"}, headers=_auth(alice))
    assert response.status_code == 201
    message = response.json()
    assert message["status"] == "sent"

    response = client.patch(
        f"/api/messages/{message['id']}/status", json={"status": "delivered"}, headers=_auth(bob)
    )
    assert response.status_code == 200
    assert response.json()["updated"] is True

    response = client.patch(
        f"/api/messages/{message['id']}/status", json={"status": "delivered"}, headers=_auth(bob)
    )
    assert response.status_code == 200
    assert response.json()["message"] == "No update needed"

    response = client.post("/api/messages/mark-read", json={"sender_id": alice["id"]}, headers=_auth(bob))
    assert response.status_code == 200
    assert response.json() == {"updated_count": 1}

    response = client.get(f"/api/messages/{alice['id']}", headers=_auth(bob))
    assert [row["status"] for row in response.json()] == ["read"]


def test_error_mapping(client):
    alice = _create(client, "alice")
    bob = _create(client, "bob")

    response = client.post(f"/api/users/request/{alice['id']}", headers=_auth(alice))
    assert response.status_code == 400
    assert response.json()["error"] == "self_reference"

    client.post(f"/api/users/request/{bob['id']}", headers=_auth(alice))
    response = client.post(f"/api/users/request/{bob['id']}", headers=_auth(alice))
    assert response.status_code == 400
    assert response.json()["error"] == "duplicate_request"

    response = client.get("/api/users/nobody-here", headers=_auth(alice))
    assert response.status_code == 404
    assert response.json()["error"] == "user_not_found"

    response = client.patch("/api/messages/999/status", json={"status": "read"}, headers=_auth(alice))
    assert response.status_code == 404
    assert response.json()["error"] == "message_not_found"

    response = client.post("/api/users", json={"handle": "x"})
    assert response.status_code == 400
    assert response.json()["error"] == "validation_error"

    response = _create(client, "carol")
    response = client.post(
        "/api/users",
        json={"handle": "carol", "full_name": "Carol", "email": "carol2@example.com"},
    )
    assert response.status_code == 400
    assert response.json()["error"] == "handle_taken"


def test_empty_message_and_invalid_status(client):
    alice = _create(client, "alice")
    bob = _create(client, "bob")
    client.post(f"/api/users/follow/{bob['id']}", headers=_auth(alice))
    client.post(f"/api/users/follow/{alice['id']}", headers=_auth(bob))

    response = client.post(f"/api/messages/send/{bob['id']}", json={}, headers=_auth(alice))
    assert response.status_code == 400
    assert response.json()["error"] == "empty_message"

    message = client.post(
        f"/api/messages/send/{bob['id']}", json={"text": "hey"}, headers=_auth(alice)
    ).json()
    response = client.patch(
        f"/api/messages/{message['id']}/status", json={"status": "sent"}, headers=_auth(bob)
    )
    assert response.status_code == 400
    assert response.json()["error"] == "invalid_status"

    response = client.patch(
        f"/api/messages/{message['id']}/status", json={"status": "read"}, headers=_auth(alice)
    )
    assert response.status_code == 403
    assert response.json()["error"] == "not_message_recipient"


def test_image_message_goes_through_uploader(client):
    alice = _create(client, "alice")
    bob = _create(client, "bob")
    client.post(f"/api/users/follow/{bob['id']}", headers=_auth(alice))
    client.post(f"/api/users/follow/{alice['id']}", headers=_auth(bob))

    response = client.post(
        f"/api/messages/send/{bob['id']}",
        json={"image": "data:image/png;base64,AAAA"},
        headers=_auth(alice),
    )
    assert response.status_code == 201
    assert response.json()["image"] == client.uploader.url

    client.uploader.failures = 100
    response = client.post(
        f"/api/messages/send/{bob['id']}",
        json={"image": "data:image/png;base64,AAAA"},
        headers=_auth(alice),
    )
    assert response.status_code == 500
    assert response.json() == {"error": "upload_failed", "message": "Failed to upload image"}


def test_profile_lists_and_delete(client):
    alice = _create(client, "alice")
    bob = _create(client, "bob")
    client.post(f"/api/users/follow/{bob['id']}", headers=_auth(alice))

    response = client.get(f"/api/users/followers/{bob['id']}", headers=_auth(alice))
    assert [row["id"] for row in response.json()] == [alice["id"]]
    response = client.get(f"/api/users/following/{alice['id']}", headers=_auth(bob))
    assert [row["id"] for row in response.json()] == [bob["id"]]

    response = client.put("/api/users/profile", json={"bio": "hello"}, headers=_auth(alice))
    assert response.status_code == 200
    assert response.json()["bio"] == "hello"

    response = client.get("/api/users/me", headers=_auth(alice))
    assert response.json()["following_count"] == 1

    response = client.get("/api/users", headers=_auth(alice))
    assert [row["handle"] for row in response.json()] == ["bob"]
    assert response.json()[0]["am_following"] is True

    response = client.delete("/api/users/me", headers=_auth(alice))
    assert response.status_code == 200
    assert response.json()["cleaned_users"] == 1

    response = client.get("/api/users/me", headers=_auth(bob))
    assert response.json()["followers"] == []


def test_unexpected_errors_are_opaque(client, monkeypatch):
    from core.services import social_graph

    alice = _create(client, "alice")

    def boom(user_id):
        raise RuntimeError("database exploded")

    monkeypatch.setattr(social_graph, "get_user", boom)
    with TestClient(client.app, raise_server_exceptions=False) as raw_client:
        response = raw_client.get("/api/users/me", headers=_auth(alice))
    assert response.status_code == 500
    assert response.json() == {"error": "internal_error", "message": "Internal server error"}


def test_request_id_echoed(client):
    response = client.get("/", headers={"X-Request-Id": "abc123"})
    assert response.status_code == 200
    assert response.headers["x-request-id"] == "abc123"
    assert response.json()["endpoints"]["realtime"] == "/ws"


def test_health(client, monkeypatch):
    import app.routes.health as health

    monkeypatch.setattr(
        health,
        "_get_schema_revisions",
        lambda engine: ("0001_initial_schema", "0001_initial_schema"),
    )
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
    assert response.json()["database"]["schema_up_to_date"] is True

    monkeypatch.setattr(health, "_get_schema_revisions", lambda engine: (None, "0001_initial_schema"))
    response = client.get("/health")
    assert response.status_code == 503
