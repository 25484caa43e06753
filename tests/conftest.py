import os
import tempfile

# must be set before anything imports app.config
_TMP_DIR = tempfile.mkdtemp(prefix="door-tests-")
os.environ["DB_URL"] = "sqlite:///" + os.path.join(_TMP_DIR, "test.db")
os.environ["MQTT_ENABLED"] = "false"
os.environ["SECRET_KEY"] = "test-secret"
os.environ.pop("FIREBASE_CREDENTIALS", None)

import pytest
from fastapi.testclient import TestClient

from app.database import DatabaseManager
from app.main import create_app
from app.services.context import DoorContext
from app.services.event_router import EventRouter


class RecordingPublisher:
    def __init__(self):
        self.messages = []

    def publish(self, topic, payload):
        self.messages.append((topic, payload))

    def on(self, topic):
        return [payload for t, payload in self.messages if t == topic]

    def clear(self):
        self.messages.clear()


class RecordingPushSender:
    def __init__(self):
        self.sent = []

    def send(self, tokens, title, body):
        self.sent.append((title, body))
        return len(tokens)

    def titles(self):
        return [title for title, _ in self.sent]


@pytest.fixture
def db():
    manager = DatabaseManager(os.environ["DB_URL"])
    manager.drop_all()
    manager.create_all()
    yield manager
    manager.engine.dispose()


@pytest.fixture
def publisher():
    return RecordingPublisher()


@pytest.fixture
def push_sender():
    return RecordingPushSender()


@pytest.fixture
def ctx(db, publisher, push_sender):
    return DoorContext(db, publisher, push_sender=push_sender,
                       alarm_threshold=5, offline_threshold_ms=30000)


@pytest.fixture
def router(ctx):
    return EventRouter(ctx)


@pytest.fixture
def client(ctx):
    with TestClient(create_app(ctx)) as test_client:
        yield test_client


@pytest.fixture
def make_user(ctx):
    """Create a user and return (id, bearer headers)."""
    def _make(username, role="USER", password="secret"):
        with ctx.db.get_connection() as conn:
            user_id = ctx.users.create_user(conn, username, password, role)
        headers = {"Authorization": f"Bearer {ctx.users.create_token(user_id)}"}
        return user_id, headers
    return _make


@pytest.fixture
def give_card(ctx):
    def _give(user_id, uid):
        with ctx.transaction() as conn:
            return ctx.doors.add_card(conn, user_id, uid)
    return _give


@pytest.fixture
def logs(ctx):
    """All access log rows, oldest first."""
    def _logs():
        rows = ctx.db.fetch_all("SELECT * FROM door_access_logs ORDER BY id")
        return [dict(r) for r in rows]
    return _logs
