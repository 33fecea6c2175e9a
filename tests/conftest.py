"""
Shared fixtures: an in-memory backend and ready-made actors.
"""

import asyncio
from pathlib import Path
from typing import Any

import pytest

from watchpost.backend.base import AuthGrant, Backend
from watchpost.config import WatchpostConfig
from watchpost.errors import AuthenticationError, BackendError
from watchpost.manager import LifecycleManager
from watchpost.models import (
    Camera,
    Evidence,
    Incident,
    IncidentDraft,
    IncidentStatus,
    ReporterContact,
    Role,
    User,
    VerificationResult,
    VerificationStatus,
)
from watchpost.session import Session, SessionStore


class FakeBackend(Backend):
    """
    In-memory backend.

    ``fail(operation, error, key)`` makes an operation raise (optionally only
    for one incident/evidence id); ``gate(operation)`` returns an event the
    operation waits on before answering, for ordering tests.
    """

    def __init__(self):
        self.users: dict[int, User] = {}
        self.passwords: dict[str, str] = {}
        self.cameras: list[Camera] = []
        self.incidents: dict[int, Incident] = {}
        self.evidence: dict[int, Evidence] = {}
        self.verifications: dict[int, VerificationResult] = {}
        self.current_user: User | None = None
        self.uploads: list[tuple[int, Path]] = []
        self.calls: list[tuple[str, Any]] = []
        self._failures: dict[tuple[str, Any], Exception] = {}
        self._gates: dict[str, asyncio.Event] = {}
        self._next_id = 1000

    # ----- Test controls -----

    def fail(self, operation: str, error: Exception, key: Any = None) -> None:
        self._failures[(operation, key)] = error

    def recover(self, operation: str, key: Any = None) -> None:
        self._failures.pop((operation, key), None)

    def gate(self, operation: str) -> asyncio.Event:
        self._gates[operation] = asyncio.Event()
        return self._gates[operation]

    def count(self, operation: str) -> int:
        return sum(1 for name, _ in self.calls if name == operation)

    def add_user(self, user: User, password: str = "secret") -> User:
        self.users[user.id] = user
        self.passwords[user.username] = password
        return user

    async def _enter(self, operation: str, key: Any = None) -> None:
        self.calls.append((operation, key))
        gate = self._gates.get(operation)
        if gate is not None:
            await gate.wait()
        error = self._failures.get((operation, key)) or self._failures.get((operation, None))
        if error is not None:
            raise error

    def _new_id(self) -> int:
        self._next_id += 1
        return self._next_id

    # ----- Identity -----

    async def authenticate(self, username: str, password: str, role: Role) -> AuthGrant:
        await self._enter("authenticate", username)
        if self.passwords.get(username) != password:
            raise AuthenticationError("Incorrect username or password")
        user = next(u for u in self.users.values() if u.username == username)
        self.current_user = user
        return AuthGrant(token=f"token-{user.id}", user=user)

    async def register_user(self, username, email, password, role=Role.VIEWER) -> User:
        await self._enter("register_user", username)
        if username in self.passwords:
            raise BackendError("Username already registered", status_code=400)
        return self.add_user(
            User(id=self._new_id(), username=username, email=email, role=role),
            password,
        )

    async def fetch_current_user(self) -> User:
        await self._enter("fetch_current_user")
        if self.current_user is None:
            raise AuthenticationError()
        return self.current_user

    async def list_users(self) -> list[User]:
        await self._enter("list_users")
        return list(self.users.values())

    async def update_user_profile(self, user_id: int, fields: dict[str, Any]) -> User:
        await self._enter("update_user_profile", user_id)
        updated = self.users[user_id].model_copy(update=fields)
        self.users[user_id] = updated
        return updated

    # ----- Incidents -----

    async def list_cameras(self) -> list[Camera]:
        await self._enter("list_cameras")
        return list(self.cameras)

    async def list_incidents(self) -> list[Incident]:
        await self._enter("list_incidents")
        return list(self.incidents.values())

    async def get_incident(self, incident_id: int) -> Incident:
        await self._enter("get_incident", incident_id)
        return self.incidents[incident_id]

    async def create_incident(self, draft: IncidentDraft) -> Incident:
        await self._enter("create_incident", draft.camera_id)
        incident = Incident(
            id=self._new_id(),
            camera_id=draft.camera_id,
            type=draft.type,
            severity=draft.severity,
            severity_score=draft.resolved_score(),
            description=draft.description,
            provenance=draft.provenance,
            reporter=draft.reporter,
        )
        self.incidents[incident.id] = incident
        return incident

    async def set_incident_acknowledged(self, incident_id: int, acknowledged: bool = True) -> Incident:
        await self._enter("set_incident_acknowledged", incident_id)
        status = IncidentStatus.ACKNOWLEDGED if acknowledged else IncidentStatus.PENDING
        incident = self.incidents[incident_id].model_copy(update={"status": status})
        self.incidents[incident_id] = incident
        return incident

    async def notify_incident_assignment(self, incident_id: int, user_ids: list[int]) -> dict[str, Any]:
        await self._enter("notify_incident_assignment", incident_id)
        if incident_id not in self.incidents:
            raise BackendError("Incident not found", status_code=404)
        self.incidents[incident_id] = self.incidents[incident_id].model_copy(
            update={"assigned_user_id": user_ids[0]}
        )
        return {"message": "Notification sent", "notified": list(user_ids)}

    # ----- Evidence -----

    async def list_evidence_for_current_user(self) -> list[Evidence]:
        await self._enter("list_evidence_for_current_user")
        return list(self.evidence.values())

    async def verify_evidence(self, evidence_id: int) -> VerificationResult:
        await self._enter("verify_evidence", evidence_id)
        return self.verifications.get(
            evidence_id,
            VerificationResult(
                evidence_id=evidence_id,
                status=VerificationStatus.VERIFIED,
                message="Evidence integrity verified",
            ),
        )

    async def upload_evidence(self, incident_id: int, file_path: Path) -> Evidence | None:
        await self._enter("upload_evidence", incident_id)
        self.uploads.append((incident_id, Path(file_path)))
        item = Evidence(id=self._new_id(), incident_id=incident_id, file_path=Path(file_path).name)
        self.evidence[item.id] = item
        return item


# ----- Actors -----


@pytest.fixture
def viewer():
    return User(id=1, username="alice", email="alice@example.com", phone="555-0100", role=Role.VIEWER)


@pytest.fixture
def other_viewer():
    return User(id=2, username="bob", email="bob@example.com", role=Role.VIEWER)


@pytest.fixture
def security():
    return User(id=3, username="guard", email="guard@example.com", phone="555-0300", role=Role.SECURITY)


@pytest.fixture
def second_security():
    return User(id=5, username="guard2", email="guard2@example.com", role=Role.SECURITY)


@pytest.fixture
def admin():
    return User(id=4, username="root", email="root@example.com", role=Role.ADMIN)


@pytest.fixture
def make_incident():
    """Factory for incidents with sensible defaults."""

    def factory(id: int, **fields) -> Incident:
        fields.setdefault("camera_id", 1)
        reporter = fields.pop("reporter", None)
        if isinstance(reporter, str):
            reporter = ReporterContact(username=reporter)
        return Incident(id=id, reporter=reporter, **fields)

    return factory


@pytest.fixture
def backend(viewer, other_viewer, security, second_security, admin):
    fake = FakeBackend()
    for user in (viewer, other_viewer, security, second_security, admin):
        fake.add_user(user)
    fake.cameras = [
        Camera(id=1, name="Lobby", admin_user_id=viewer.id),
        Camera(id=2, name="Garage", admin_user_id=other_viewer.id),
        Camera(id=30, name="AI worker"),
    ]
    return fake


@pytest.fixture
def config(tmp_path):
    return WatchpostConfig(
        base_url="http://backend.test",
        poll_interval_seconds=0.01,
        state_dir=tmp_path,
    )


@pytest.fixture
def sessions(tmp_path):
    return SessionStore(tmp_path / "state.json")


@pytest.fixture
def manager(config, backend, sessions):
    return LifecycleManager(config=config, backend=backend, sessions=sessions)


@pytest.fixture
def sign_in(backend, sessions):
    """Make ``user`` the active, resolved actor."""

    def do(user: User) -> Session:
        backend.current_user = user
        session = Session(role=user.role, token=f"token-{user.id}", user=user)
        sessions.start(session)
        return session

    return do
