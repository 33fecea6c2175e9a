"""Role-keyed session store with an explicit active-session pointer."""

from __future__ import annotations

from datetime import datetime
from pathlib import Path

import structlog
from pydantic import BaseModel, Field, ValidationError

from watchpost.models.user import Role, User

logger = structlog.get_logger(__name__)


class Session(BaseModel):
    """An authenticated session for one role."""

    role: Role
    token: str
    user: User | None = None
    created_at: datetime = Field(default_factory=datetime.utcnow)


class LocalState(BaseModel):
    """Everything the client persists between runs."""

    sessions: dict[Role, Session] = Field(default_factory=dict)
    active_role: Role | None = None

    # Developer setting for pointing the client at another backend host
    override_base_url: str | None = None

    # Number dialled when a viewer reports an incident as unseen
    emergency_contact: str | None = None


class SessionStore:
    """
    Process-wide session state.

    Sessions are kept per role so that a device used by several roles never
    mixes tokens; exactly one of them is active. Tokens are only ever read
    for the active role (or an explicitly named role), there is no fallback
    search across roles.

    Only the identity resolver writes sessions; everything else reads.
    """

    def __init__(self, path: Path | None = None):
        self.path = path
        self._state = self._load()

    # ----- Reads -----

    @property
    def active(self) -> Session | None:
        if self._state.active_role is None:
            return None
        return self._state.sessions.get(self._state.active_role)

    @property
    def active_role(self) -> Role | None:
        session = self.active
        return session.role if session else None

    def get(self, role: Role) -> Session | None:
        return self._state.sessions.get(role)

    def token(self, role: Role | None = None) -> str | None:
        """Token for ``role``, or for the active session when no role is given."""
        session = self.get(role) if role else self.active
        return session.token if session else None

    @property
    def override_base_url(self) -> str | None:
        return self._state.override_base_url

    @property
    def emergency_contact(self) -> str | None:
        return self._state.emergency_contact

    # ----- Writes -----

    def start(self, session: Session) -> None:
        """Store ``session`` under its role and make it the active one."""
        self._state.sessions[session.role] = session
        self._state.active_role = session.role
        self._persist()
        logger.info("Session started", role=session.role.value)

    def end(self, role: Role | None = None) -> bool:
        """
        Clear the session for ``role`` (default: the active one).

        Returns False when there was nothing to clear, so repeated logouts
        are harmless.
        """
        role = role or self._state.active_role
        if role is None or role not in self._state.sessions:
            return False

        del self._state.sessions[role]
        if self._state.active_role == role:
            self._state.active_role = None
        self._persist()
        logger.info("Session ended", role=role.value)
        return True

    def cache_user(self, role: Role, user: User) -> None:
        session = self._state.sessions.get(role)
        if session is None:
            return
        self._state.sessions[role] = session.model_copy(update={"user": user})
        self._persist()

    def set_override_base_url(self, url: str | None) -> None:
        self._state.override_base_url = url.rstrip("/") if url else None
        self._persist()

    def set_emergency_contact(self, number: str | None) -> None:
        self._state.emergency_contact = number or None
        self._persist()

    # ----- Persistence -----

    def _load(self) -> LocalState:
        if self.path is None or not self.path.exists():
            return LocalState()
        try:
            return LocalState.model_validate_json(self.path.read_text())
        except (OSError, ValidationError) as e:
            logger.warning("Discarding unreadable local state", path=str(self.path), error=str(e))
            return LocalState()

    def _persist(self) -> None:
        if self.path is None:
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(self._state.model_dump_json(indent=2))
