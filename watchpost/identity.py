"""Session and identity resolution - the only writer of the session store."""

from __future__ import annotations

from typing import Any

import structlog

from watchpost.backend.base import Backend
from watchpost.errors import AuthorizationError, IdentityPendingError, WatchpostError
from watchpost.models.result import Result
from watchpost.models.user import Role, User
from watchpost.session import Session, SessionStore

logger = structlog.get_logger(__name__)

# Profile fields a user may change after registration
EDITABLE_PROFILE_FIELDS = {"username", "phone"}


class IdentityResolver:
    """
    Determines who the current actor is.

    Login stores a role-scoped session and makes it active; ``resolve``
    fetches the profile behind the active token; ``handle_auth_failure``
    clears the active session once when the backend rejects its token.
    """

    def __init__(self, backend: Backend, sessions: SessionStore):
        self.backend = backend
        self.sessions = sessions

    @property
    def actor(self) -> User | None:
        """Cached profile of the active session, None until resolved."""
        session = self.sessions.active
        return session.user if session else None

    def require_actor(self) -> User:
        actor = self.actor
        if actor is None:
            raise IdentityPendingError()
        return actor

    async def login(self, username: str, password: str, role: Role | str) -> Result[Session]:
        role = Role(role)
        try:
            grant = await self.backend.authenticate(username, password, role)
        except WatchpostError as e:
            logger.warning("Login failed", role=role.value, error=e.message)
            return Result.from_error(e)

        if grant.user is not None and grant.user.role != role:
            logger.warning(
                "Login role mismatch",
                requested=role.value,
                actual=grant.user.role.value,
            )
            return Result.from_error(
                AuthorizationError(f"This account is not a {role.value} account")
            )

        session = Session(role=role, token=grant.token, user=grant.user)
        self.sessions.start(session)
        return Result.ok(session, message="Logged in")

    async def register(
        self,
        username: str,
        email: str,
        password: str,
        role: Role | str = Role.VIEWER,
    ) -> Result[User]:
        try:
            user = await self.backend.register_user(username, email, password, Role(role))
        except WatchpostError as e:
            return Result.from_error(e)
        logger.info("User registered", username=user.username, role=user.role.value)
        return Result.ok(user, message="Registration successful")

    async def resolve(self) -> Result[User]:
        """Fetch the active session's profile and cache it."""
        session = self.sessions.active
        if session is None:
            return Result.fail("Not logged in")

        try:
            user = await self.backend.fetch_current_user()
        except WatchpostError as e:
            if self._is_auth_failure(e):
                self.handle_auth_failure()
            return Result.from_error(e)

        if user.role != session.role:
            # Never migrate a session between roles
            logger.warning("Profile role differs from session role", session=session.role.value, profile=user.role.value)
            self.sessions.end(session.role)
            return Result.from_error(AuthorizationError("Session role does not match account role"))

        self.sessions.cache_user(session.role, user)
        return Result.ok(user)

    async def update_profile(self, fields: dict[str, Any]) -> Result[User]:
        actor = self.actor
        if actor is None:
            return Result.from_error(IdentityPendingError())

        if "email" in fields and fields["email"] != actor.email:
            return Result.fail("Email cannot be changed")

        changes = {
            key: value.strip() if isinstance(value, str) else value
            for key, value in fields.items()
            if key in EDITABLE_PROFILE_FIELDS and value not in (None, "")
        }
        if not changes:
            return Result.fail("Nothing to update")

        try:
            updated = await self.backend.update_user_profile(actor.id, changes)
        except WatchpostError as e:
            if self._is_auth_failure(e):
                self.handle_auth_failure()
            return Result.from_error(e)

        merged = actor.model_copy(update={
            **updated.model_dump(exclude_none=True),
            "email": actor.email,
            "role": actor.role,
        })
        self.sessions.cache_user(actor.role, merged)
        return Result.ok(merged, message="Profile updated successfully")

    def logout(self, role: Role | None = None) -> bool:
        return self.sessions.end(role)

    def handle_auth_failure(self) -> bool:
        """Forced logout after a rejected token; a no-op if already logged out."""
        role = self.sessions.active_role
        if role is None:
            return False
        logger.warning("Session expired, logging out", role=role.value)
        return self.sessions.end(role)

    @staticmethod
    def _is_auth_failure(error: WatchpostError) -> bool:
        return error.status_code == 401
