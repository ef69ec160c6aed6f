"""Shared test fixtures and configuration for backend tests."""
import time
from typing import List, Tuple

import pytest
from cryptography.fernet import Fernet
from fastapi.testclient import TestClient

from nomadchat.chat.crypto import MessageCipher
from nomadchat.chat.hub import get_hub
from nomadchat.config import AppConfig, reset_config, set_config
from nomadchat.storage import Database

TEST_ENCRYPTION_KEY = Fernet.generate_key().decode("ascii")

SYNC_TARGET = "__sync__"


class FakeNotifier:
    """Records push requests instead of contacting a push service."""

    def __init__(self) -> None:
        self.sent: List[Tuple] = []

    def notify(self, subscription, payload) -> None:
        self.sent.append((subscription, payload))

    async def drain(self) -> None:
        pass


@pytest.fixture
def config():
    """In-memory database, fixed encryption key, push configured."""
    cfg = AppConfig()
    cfg.database.path = ":memory:"
    cfg.secrets.encryption.key = TEST_ENCRYPTION_KEY
    cfg.secrets.vapid.private_key = "test-vapid-private-key"
    cfg.push.public_key = "test-vapid-public-key"
    set_config(cfg)
    yield cfg
    reset_config()


@pytest.fixture
def db(config):
    Database.reset_instance()
    database = Database.get_instance(":memory:")
    yield database
    Database.reset_instance()


@pytest.fixture
def cipher():
    return MessageCipher(TEST_ENCRYPTION_KEY)


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def client(config, notifier):
    """TestClient with the app lifespan running and push recorded."""
    from nomadchat.main import app

    Database.reset_instance()
    with TestClient(app) as test_client:
        get_hub().notifier = notifier
        yield test_client
    Database.reset_instance()


@pytest.fixture
def register(client):
    """Create user profiles through the HTTP API."""
    def _register(*names: str) -> None:
        for name in names:
            response = client.post("/users", json={"username": name, "email": f"{name}@example.com"})
            assert response.status_code == 201
    return _register


def connect(ws, username=None):
    """Consume the connect handshake and optionally announce a username.

    Returns:
        The InitializeMainRoom frame.
    """
    assert ws.receive_json() == {"target": "UserConnected", "arguments": []}
    initialize = ws.receive_json()
    assert initialize["target"] == "InitializeMainRoom"
    if username is not None:
        ws.send_json({"target": "AddUserConnectionId", "arguments": [username]})
    return initialize


def drain(ws) -> list:
    """Return every frame received before a round trip of a sync frame.

    Frames from one connection are handled in order, so everything the
    server sent to ``ws`` before handling the sync frame is collected.
    """
    ws.send_json({"target": SYNC_TARGET, "arguments": []})
    frames = []
    while True:
        frame = ws.receive_json()
        if frame == {"target": "Error", "arguments": [f"Unknown hub target: {SYNC_TARGET}"]}:
            return frames
        frames.append(frame)


def frames_for(frames: list, target: str) -> list:
    return [f for f in frames if f["target"] == target]


def receive_until(ws, predicate) -> dict:
    """Block until a frame matching ``predicate`` arrives and return it."""
    while True:
        frame = ws.receive_json()
        if predicate(frame):
            return frame


def eventually(check, timeout: float = 2.0):
    """Poll ``check`` until it returns a truthy value or the timeout expires.

    Used for effects of the disconnect sequence, which finishes after the
    client side of the socket is already closed.
    """
    deadline = time.monotonic() + timeout
    while True:
        result = check()
        if result or time.monotonic() > deadline:
            return result
        time.sleep(0.02)
