"""Shared test fixtures and helpers."""

import asyncio
import os
from typing import Callable, Optional

# Settings are read at import time, so pin them before importing the app
ADMIN_UID = "admin-uid"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["ADMIN_UID"] = ADMIN_UID
os.environ["SERVICE_PROVIDER_UID"] = ADMIN_UID
os.environ["DB_LOG_SLOW_QUERIES"] = "false"
os.environ["RESEND_API_KEY"] = ""
os.environ["R2_ACCOUNT_ID"] = ""
os.environ["GOOGLE_REFRESH_TOKEN"] = ""

import pytest  # noqa: E402
from fastapi import Header, HTTPException, Query, WebSocketException, status  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from sessionbook.auth import get_admin_uid, get_current_uid, get_socket_uid  # noqa: E402
from sessionbook.database import Base, get_db  # noqa: E402
from sessionbook.domain.calls.events import RoomEventBus, get_room_event_bus  # noqa: E402
from sessionbook.domain.requests.router import get_session_factory  # noqa: E402
from sessionbook.main import app  # noqa: E402
from sessionbook.shared.errors import MediaAccessError  # noqa: E402

engine = create_engine(
    "sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db():
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def bus():
    return RoomEventBus()


async def uid_from_bearer(authorization: Optional[str] = Header(None)) -> str:
    """Test stand-in for token verification: the bearer value is the uid."""
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Not authenticated")
    return authorization[len("Bearer "):]


async def uid_from_socket_token(token: Optional[str] = Query(None)) -> str:
    """Same stand-in for WebSockets: the token query parameter is the uid."""
    if not token:
        raise WebSocketException(code=status.WS_1008_POLICY_VIOLATION, reason="Not authenticated")
    return token


def auth_header(uid: str) -> dict:
    return {"Authorization": f"Bearer {uid}"}


@pytest.fixture
def client(db, bus):
    def override_get_db():
        session = TestingSessionLocal()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_admin_uid] = lambda: ADMIN_UID
    app.dependency_overrides[get_current_uid] = uid_from_bearer
    app.dependency_overrides[get_socket_uid] = uid_from_socket_token
    app.dependency_overrides[get_room_event_bus] = lambda: bus
    app.dependency_overrides[get_session_factory] = lambda: TestingSessionLocal
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


# ============================================================================
# MEDIA / PEER CONNECTION DOUBLES
# ============================================================================


class FakeTrack:
    def __init__(self, kind: str, label: str = ""):
        self.kind = kind
        self.label = label
        self.enabled = True
        self.stopped = False
        self._ended_callbacks: list[Callable[[], None]] = []

    def stop(self) -> None:
        self.stopped = True

    def on_ended(self, callback: Callable[[], None]) -> None:
        self._ended_callbacks.append(callback)

    def end(self) -> None:
        """Simulate the browser ending the track (e.g. "Stop sharing")."""
        self.stopped = True
        for callback in self._ended_callbacks:
            callback()


class FakeMedia:
    def __init__(self, deny: bool = False):
        self.deny = deny
        self.microphone = FakeTrack("audio", "microphone")
        self.camera = FakeTrack("video", "camera")
        self.screens: list[FakeTrack] = []

    async def get_user_media(self, audio: bool = True, video: bool = True):
        if self.deny:
            raise MediaAccessError("Permission denied by user")
        return [self.microphone, self.camera]

    async def get_display_media(self):
        screen = FakeTrack("video", "screen")
        self.screens.append(screen)
        return screen


class FakeSender:
    def __init__(self, track):
        self.track = track

    async def replace_track(self, track) -> None:
        self.track = track


class FakePeerConnection:
    """
    Peer connection double. Setting the local description "gathers" two host
    candidates; once both descriptions are set the connection reports
    "connected" and delivers one remote video track.
    """

    def __init__(self, ice_servers: list[dict], name: str):
        self.ice_servers = ice_servers
        self.name = name
        self.connection_state = "new"
        self.local_description: Optional[dict] = None
        self.remote_description: Optional[dict] = None
        self.added_candidates: list[dict] = []
        self.senders: list[FakeSender] = []
        self.closed = False
        self._on_candidate = None
        self._on_track = None
        self._on_state = None

    def local_candidates(self) -> list[dict]:
        return [
            {
                "candidate": f"candidate:{n} 1 udp 2122260223 10.0.0.{n} 5000{n} typ host ({self.name})",
                "sdpMid": "0",
                "sdpMLineIndex": 0,
            }
            for n in (1, 2)
        ]

    def add_track(self, track) -> FakeSender:
        sender = FakeSender(track)
        self.senders.append(sender)
        return sender

    async def create_offer(self) -> dict:
        return {"type": "offer", "sdp": f"v=0 offer from {self.name}"}

    async def create_answer(self) -> dict:
        return {"type": "answer", "sdp": f"v=0 answer from {self.name}"}

    async def set_local_description(self, description: dict) -> None:
        self.local_description = description
        for candidate in self.local_candidates():
            self._on_candidate(candidate)
        self._maybe_connect()

    async def set_remote_description(self, description: dict) -> None:
        self.remote_description = description
        self._maybe_connect()

    async def add_ice_candidate(self, candidate: dict) -> None:
        if self.remote_description is None:
            raise RuntimeError("InvalidStateError: remote description is not set")
        self.added_candidates.append(candidate)

    def on_ice_candidate(self, callback) -> None:
        self._on_candidate = callback

    def on_track(self, callback) -> None:
        self._on_track = callback

    def on_connection_state_change(self, callback) -> None:
        self._on_state = callback

    async def close(self) -> None:
        self.closed = True
        self.connection_state = "closed"

    def _maybe_connect(self) -> None:
        if self.local_description and self.remote_description and self.connection_state == "new":
            self.connection_state = "connected"
            self._on_track(FakeTrack("video", f"remote of {self.name}"))
            self._on_state("connected")


class PeerFactory:
    def __init__(self, name: str):
        self.name = name
        self.created: list[FakePeerConnection] = []

    def __call__(self, ice_servers: list[dict]) -> FakePeerConnection:
        peer = FakePeerConnection(ice_servers, self.name)
        self.created.append(peer)
        return peer


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    """Let the event loop run until the predicate holds."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(0.01)
