"""
Tests for best-effort tracking: the service helpers, the /v1/track routes
and the saved-look record written by /v1/mirror/vault/save.
"""

import asyncio
import base64
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError

from mirror.core.dependencies import get_db
from mirror.core.storage import LocalImageStore
from mirror.factory import create_app
from mirror.models.tracking import ClickEvent, SavedLook, VisitorSession
from mirror.orchestrator import sessions
from mirror.orchestrator.state import AppState, MirrorMode
from mirror.services import tracking

HEADERS = {"X-Device-Id": "device-track", "User-Agent": "MirrorTest/1.0"}
LOOK_IMAGE = "data:image/jpeg;base64," + base64.b64encode(b"JPEGDATA").decode("utf-8")


def run(coro):
    return asyncio.run(coro)


class FakeSession:
    """Stands in for AsyncSession: records rows, optionally fails on flush."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.rows = []
        self.rollbacks = 0

    def add(self, row):
        self.rows.append(row)

    async def flush(self):
        if self.fail:
            raise OperationalError("INSERT", {}, Exception("database is locked"))
        for i, row in enumerate(self.rows):
            row.id = row.id or f"row-{i}"

    async def rollback(self):
        self.rollbacks += 1
        self.rows.clear()


@pytest.fixture
def image_root(tmp_path, monkeypatch):
    monkeypatch.setattr(tracking, "get_image_store", lambda: LocalImageStore(str(tmp_path)))
    return tmp_path


# ── Service helpers ───────────────────────────────────────────────────

class TestTrackingService:
    def test_session_row(self):
        db = FakeSession()
        row_id = run(tracking.track_session(db, "dev-1", timestamp=42, user_agent="UA", initial_mode="HAIR"))

        assert row_id == "row-0"
        row = db.rows[0]
        assert isinstance(row, VisitorSession)
        assert (row.device_id, row.timestamp, row.user_agent, row.initial_mode) == ("dev-1", 42, "UA", "HAIR")

    def test_timestamp_defaults_to_now(self):
        db = FakeSession()
        before = tracking.now_ms()
        run(tracking.record_event(db, None, "affiliate_click"))
        assert db.rows[0].timestamp >= before

    def test_event_payload(self):
        db = FakeSession()
        run(tracking.record_event(db, "dev-1", "paywall_cta", payload={"reason": "limit"}))

        row = db.rows[0]
        assert isinstance(row, ClickEvent)
        assert row.payload == {"reason": "limit"}

    def test_saved_look_uploads_image(self, image_root):
        db = FakeSession()
        row_id = run(tracking.record_saved_look(db, "dev-1", mode="MAKEUP", mood="Golden Hour", image=LOOK_IMAGE))

        assert row_id is not None
        row = db.rows[0]
        assert isinstance(row, SavedLook)
        assert row.mood == "Golden Hour"
        assert Path(row.image_url).read_bytes() == b"JPEGDATA"
        assert str(image_root) in row.image_url

    def test_upload_failure_still_records_row(self, monkeypatch):
        class BrokenStore:
            async def put_image(self, data, device_id, folder="looks"):
                raise OSError("disk full")

        monkeypatch.setattr(tracking, "get_image_store", BrokenStore)
        db = FakeSession()
        row_id = run(tracking.record_saved_look(db, "dev-1", mode="HAIR", mood="Modern Edge", image=LOOK_IMAGE))

        assert row_id is not None
        assert db.rows[0].image_url is None

    def test_failed_write_rolls_back(self, caplog):
        db = FakeSession(fail=True)
        row_id = run(tracking.track_session(db, "dev-1"))

        assert row_id is None
        assert db.rollbacks == 1
        assert db.rows == []
        assert "Failed to record session" in caplog.text

    def test_failed_event_rolls_back(self):
        db = FakeSession(fail=True)
        assert run(tracking.record_event(db, "dev-1", "click")) is None
        assert db.rollbacks == 1


# ── HTTP routes ───────────────────────────────────────────────────────

@pytest.fixture
def db():
    return FakeSession()


@pytest.fixture
def client(backends, db, image_root):
    sessions.set_capabilities(backends.capabilities())
    app = create_app()

    async def override_db():
        yield db

    app.dependency_overrides[get_db] = override_db
    return TestClient(app)


class TestTrackingApi:
    def test_session(self, client, db):
        response = client.post("/v1/track/session", json={"initial_mode": "CLOTHES"}, headers=HEADERS)

        assert response.status_code == 200
        assert response.json() == {"ok": True}
        assert db.rows[0].device_id == "device-track"
        assert db.rows[0].user_agent == "MirrorTest/1.0"

    def test_anonymous_session(self, client, db):
        response = client.post("/v1/track/session", json={})
        assert response.json() == {"ok": True}
        assert db.rows[0].device_id is None

    def test_event_keeps_extra_fields(self, client, db):
        body = {"event": "affiliate_click", "brand": "Dior", "timestamp": 7}
        assert client.post("/v1/track/event", json=body, headers=HEADERS).json() == {"ok": True}

        row = db.rows[0]
        assert row.event == "affiliate_click"
        assert row.timestamp == 7
        assert row.payload["brand"] == "Dior"

    def test_look(self, client, db):
        body = {"mode": "HAIR", "mood": "Modern Edge", "image": LOOK_IMAGE}
        assert client.post("/v1/track/look", json=body, headers=HEADERS).json() == {"ok": True}
        assert Path(db.rows[0].image_url).read_bytes() == b"JPEGDATA"

    def test_database_failure_is_not_an_error(self, client, db):
        db.fail = True
        response = client.post("/v1/track/event", json={"event": "click"}, headers=HEADERS)

        assert response.status_code == 200
        assert response.json() == {"ok": False}
        assert db.rollbacks == 1


class TestVaultSave:
    def _guiding(self, client):
        client.get("/v1/mirror/session", headers=HEADERS)
        machine = sessions.peek_machine("device-track")
        machine.session.mode = MirrorMode.MAKEUP
        machine.session.preference = "Golden Hour"
        machine.session.target_image = LOOK_IMAGE
        machine.state = AppState.GUIDING
        return machine

    def test_save_records_look(self, client, db):
        self._guiding(client)
        response = client.post("/v1/mirror/vault/save", headers=HEADERS)

        assert response.status_code == 200
        favorite = response.json()["data"]["favorite"]
        assert favorite["mode"] == "MAKEUP"

        row = db.rows[0]
        assert isinstance(row, SavedLook)
        assert (row.device_id, row.mode, row.mood) == ("device-track", "MAKEUP", "Golden Hour")
        assert row.timestamp == favorite["timestamp"]
        assert Path(row.image_url).read_bytes() == b"JPEGDATA"

        vault = client.get("/v1/mirror/vault", headers=HEADERS).json()["favorites"]
        assert [f["id"] for f in vault] == [favorite["id"]]

    def test_save_survives_database_failure(self, client, db):
        self._guiding(client)
        db.fail = True
        response = client.post("/v1/mirror/vault/save", headers=HEADERS)

        assert response.status_code == 200
        assert response.json()["data"]["favorite"]["preference"] == "Golden Hour"
        assert db.rollbacks == 1

    def test_nothing_to_save(self, client, db):
        client.get("/v1/mirror/session", headers=HEADERS)
        sessions.peek_machine("device-track").state = AppState.GUIDING
        response = client.post("/v1/mirror/vault/save", headers=HEADERS)

        assert response.status_code == 200
        assert db.rows == []
