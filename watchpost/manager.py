"""Main Watchpost client facade."""

from __future__ import annotations

from typing import Any

import structlog

from watchpost.backend import Backend, HttpBackend
from watchpost.config import WatchpostConfig
from watchpost.dashboard import Dashboard
from watchpost.identity import IdentityResolver
from watchpost.models import Result, Role, User
from watchpost.session import Session, SessionStore

logger = structlog.get_logger(__name__)

STATE_FILE = "state.json"


class LifecycleManager:
    """
    Main interface for the incident lifecycle client.

    Wires configuration, the persisted session store, the backend and the
    identity resolver together, and hands out dashboards for the signed-in
    actor.

    Example:
        ```python
        manager = LifecycleManager()
        await manager.login("guard1", "secret", "security")

        async with manager.open_dashboard() as dashboard:
            report = await dashboard.assign([12, 13], security_user_id=4)
        ```
    """

    def __init__(
        self,
        config: WatchpostConfig | None = None,
        backend: Backend | None = None,
        sessions: SessionStore | None = None,
    ):
        self.config = config or WatchpostConfig.from_env()
        self.sessions = sessions or SessionStore(self.config.state_dir / STATE_FILE)
        self.backend = backend or HttpBackend(
            self.config,
            token_provider=self.sessions.token,
            base_url_provider=lambda: self.sessions.override_base_url,
        )
        self.identity = IdentityResolver(self.backend, self.sessions)

        logger.debug("LifecycleManager initialized", base_url=self.base_url)

    @property
    def base_url(self) -> str:
        return self.sessions.override_base_url or self.config.base_url

    @property
    def actor(self) -> User | None:
        return self.identity.actor

    # ----- Identity -----

    async def login(self, username: str, password: str, role: Role | str) -> Result[Session]:
        return await self.identity.login(username, password, role)

    async def register(
        self,
        username: str,
        email: str,
        password: str,
        role: Role | str = Role.VIEWER,
    ) -> Result[User]:
        return await self.identity.register(username, email, password, role)

    async def whoami(self) -> Result[User]:
        return self.settle(await self.identity.resolve())

    async def update_profile(self, fields: dict[str, Any]) -> Result[User]:
        return self.settle(await self.identity.update_profile(fields))

    def logout(self, role: Role | str | None = None) -> bool:
        return self.identity.logout(Role(role) if role else None)

    # ----- Local settings -----

    def set_base_url(self, url: str | None) -> None:
        self.sessions.set_override_base_url(url)
        logger.info("Base URL override changed", base_url=self.base_url)

    def set_emergency_contact(self, number: str | None) -> None:
        self.sessions.set_emergency_contact(number)

    # ----- Dashboards -----

    def open_dashboard(self) -> Dashboard:
        """Dashboard for the active session; enter it with ``async with``."""
        return Dashboard(self)

    def settle(self, result: Result) -> Result:
        """Force a logout when an operation failed on an expired token."""
        if result.auth_expired:
            self.identity.handle_auth_failure()
        return result
