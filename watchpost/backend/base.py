"""Backend interface consumed by the lifecycle components."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from watchpost.models.evidence import Evidence, VerificationResult
from watchpost.models.incident import Incident, IncidentDraft
from watchpost.models.user import Camera, Role, User


@dataclass
class AuthGrant:
    """Token and profile returned by a successful login."""

    token: str
    user: User | None = None


class Backend(ABC):
    """
    Abstract remote backend.

    Implementations raise the classified errors from ``watchpost.errors``:
    ``AuthenticationError`` for rejected tokens, ``AuthorizationError`` for
    forbidden actions, ``BackendError``/``NetworkError`` for failed calls and
    ``DataShapeError`` for unusable payloads.
    """

    # ----- Identity -----

    @abstractmethod
    async def authenticate(self, username: str, password: str, role: Role) -> AuthGrant:
        """Exchange credentials for a token."""
        pass

    @abstractmethod
    async def register_user(
        self,
        username: str,
        email: str,
        password: str,
        role: Role = Role.VIEWER,
    ) -> User:
        """Create a new account."""
        pass

    @abstractmethod
    async def fetch_current_user(self) -> User:
        """Profile of the token holder."""
        pass

    @abstractmethod
    async def list_users(self) -> list[User]:
        pass

    @abstractmethod
    async def update_user_profile(self, user_id: int, fields: dict[str, Any]) -> User:
        pass

    # ----- Incidents -----

    @abstractmethod
    async def list_cameras(self) -> list[Camera]:
        pass

    @abstractmethod
    async def list_incidents(self) -> list[Incident]:
        """All incidents; role filtering happens on the client."""
        pass

    @abstractmethod
    async def get_incident(self, incident_id: int) -> Incident:
        pass

    @abstractmethod
    async def create_incident(self, draft: IncidentDraft) -> Incident:
        pass

    @abstractmethod
    async def set_incident_acknowledged(self, incident_id: int, acknowledged: bool = True) -> Incident:
        """Idempotent. The backend notifies admin and reporter on success."""
        pass

    @abstractmethod
    async def notify_incident_assignment(self, incident_id: int, user_ids: list[int]) -> dict[str, Any]:
        """Assign one incident to the given users and notify them."""
        pass

    # ----- Evidence -----

    @abstractmethod
    async def list_evidence_for_current_user(self) -> list[Evidence]:
        """Evidence visible to the token holder (scoped by the backend)."""
        pass

    @abstractmethod
    async def verify_evidence(self, evidence_id: int) -> VerificationResult:
        """Recompute the file hash and compare it with the anchored one."""
        pass

    @abstractmethod
    async def upload_evidence(self, incident_id: int, file_path: Path) -> Evidence | None:
        pass
