"""Tests for the HTTP endpoints."""
import logging


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


class TestUsersApi:

    def test_register_and_get(self, client):
        response = client.post("/users", json={"username": "alice", "email": "alice@example.com"})
        assert response.status_code == 201
        assert response.json() == {"name": "alice", "email": "alice@example.com", "profilePicture": None}
        assert client.get("/users/alice").json()["email"] == "alice@example.com"

    def test_unknown_user(self, client):
        assert client.get("/users/ghost").status_code == 404

    def test_duplicate_username(self, client):
        client.post("/users", json={"username": "alice"})
        response = client.post("/users", json={"username": "alice"})
        assert response.status_code == 400
        assert response.json() == {"error": "User alice already exists"}

    def test_separator_not_allowed_in_username(self, client):
        assert client.post("/users", json={"username": "mary-jane"}).status_code == 422

    def test_vapid_public_key(self, client):
        assert client.get("/push/vapid-public-key").json() == {"publicKey": "test-vapid-public-key"}


class TestChatRoomApi:

    def test_create_get_delete(self, client):
        created = client.post("/ChatRoom", json={"roomName": "alice-bob", "users": ["alice", "bob"]})
        assert created.status_code == 201
        room_id = created.json()["id"]

        room = client.get(f"/ChatRoom/{room_id}").json()
        assert room["roomName"] == "alice-bob"
        assert room["users"] == ["alice", "bob"]

        assert client.delete(f"/ChatRoom/{room_id}").status_code == 204
        assert client.get(f"/ChatRoom/{room_id}").status_code == 404
        assert client.delete(f"/ChatRoom/{room_id}").status_code == 404

    def test_update_adds_participant(self, client):
        room = client.post("/ChatRoom", json={"roomName": "MainChatRoom"}).json()
        room["users"] = ["alice"]
        response = client.put("/ChatRoom", json=room)
        assert response.status_code == 200
        assert response.json()["users"] == ["alice"]

    def test_update_unknown_room(self, client):
        assert client.put("/ChatRoom", json={"id": "missing", "roomName": "x"}).status_code == 404

    def test_room_messages_are_decrypted(self, client):
        room = client.post("/ChatRoom", json={"roomName": "alice-bob", "users": ["alice", "bob"]}).json()
        client.post("/ChatMessage", json={"from": "alice", "to": "bob", "content": "hello", "chatRoomId": room["id"]})
        fetched = client.get(f"/ChatRoom/{room['id']}").json()
        assert [m["content"] for m in fetched["chatMessages"]] == ["hello"]

    def test_usernames_user_interacted_with(self, client):
        room = client.post("/ChatRoom", json={"roomName": "alice-bob", "users": ["alice", "bob"]}).json()
        client.post("/ChatRoom", json={"roomName": "MainChatRoom", "users": ["alice", "carol"]})
        client.post("/ChatMessage", json={"from": "alice", "to": "bob", "content": "hi", "chatRoomId": room["id"]})

        response = client.get("/ChatRoom/UsernamesUserInteractedWith", params={"username": "alice"})
        assert response.json() == ["bob"]


class TestChatMessageApi:

    def test_crud(self, client):
        created = client.post("/ChatMessage", json={"from": "alice", "content": "draft", "chatRoomId": "r1"})
        assert created.status_code == 201
        message = created.json()
        assert message["from"] == "alice"

        message["content"] = "final"
        assert client.put("/ChatMessage", json=message).json()["content"] == "final"
        assert client.get(f"/ChatMessage/{message['id']}").json()["content"] == "final"
        assert [m["id"] for m in client.get("/ChatMessage").json()] == [message["id"]]

        assert client.delete(f"/ChatMessage/{message['id']}").status_code == 204
        assert client.get(f"/ChatMessage/{message['id']}").status_code == 404

    def test_update_unknown_message(self, client):
        response = client.put("/ChatMessage", json={"id": "missing", "from": "alice", "content": "x"})
        assert response.status_code == 404
        assert response.json() == {"error": "Chat message missing not found"}


def test_missing_encryption_key_with_file_database_is_logged(config, tmp_path, caplog):
    from fastapi.testclient import TestClient

    from nomadchat.main import app
    from nomadchat.storage import Database

    config.secrets.encryption.key = None
    config.database.path = str(tmp_path / "chat.duckdb")
    Database.reset_instance()
    with caplog.at_level(logging.ERROR, logger="nomadchat.main"):
        with TestClient(app):
            pass
    Database.reset_instance()

    assert any("No encryption.key" in r.getMessage() for r in caplog.records)
