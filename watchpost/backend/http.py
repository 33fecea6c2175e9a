"""HTTP implementation of the backend over the legacy REST API."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any, Callable

import requests
import structlog

from watchpost.backend.base import AuthGrant, Backend
from watchpost.backend import wire
from watchpost.config import WatchpostConfig
from watchpost.errors import (
    AuthenticationError,
    AuthorizationError,
    BackendError,
    DataShapeError,
    NetworkError,
    detail_message,
)
from watchpost.models.evidence import Evidence, VerificationResult
from watchpost.models.incident import Incident, IncidentDraft
from watchpost.models.user import Camera, Role, User

logger = structlog.get_logger(__name__)


class HttpBackend(Backend):
    """
    Backend client for the ``/api/v1`` REST API.

    ``requests`` is blocking, so every call runs in a worker thread via
    ``asyncio.to_thread`` and the event loop stays responsive while a
    request is in flight.
    """

    API_PREFIX = "/api/v1"

    def __init__(
        self,
        config: WatchpostConfig,
        token_provider: Callable[[], str | None] | None = None,
        base_url_provider: Callable[[], str | None] | None = None,
        http: requests.Session | None = None,
    ):
        self.config = config
        self._token_provider = token_provider or (lambda: None)
        self._base_url_provider = base_url_provider or (lambda: None)
        self._http = http or requests.Session()

    @property
    def base_url(self) -> str:
        """Persisted override first, configured URL otherwise."""
        return (self._base_url_provider() or self.config.base_url).rstrip("/")

    # ----- Transport -----

    async def _request(self, method: str, path: str, *, auth: bool = True, **kwargs) -> Any:
        return await asyncio.to_thread(self._send, method, path, auth, kwargs)

    def _send(self, method: str, path: str, auth: bool, kwargs: dict[str, Any]) -> Any:
        headers = {"Accept": "application/json"}
        if auth:
            token = self._token_provider()
            if not token:
                raise AuthenticationError("Not authenticated. Please login first.")
            headers["Authorization"] = f"Bearer {token}"

        url = f"{self.base_url}{self.API_PREFIX}{path}"
        logger.debug("Backend request", method=method, url=url)

        try:
            response = self._http.request(
                method,
                url,
                headers=headers,
                timeout=self.config.timeout_seconds,
                **kwargs,
            )
        except requests.RequestException as e:
            raise NetworkError(f"Cannot connect to backend server at {self.base_url}: {e}") from e

        payload = self._decode(response)

        if response.status_code == 401:
            raise AuthenticationError()
        if response.status_code == 403:
            raise AuthorizationError(detail_message(payload, "Permission denied"))
        if not response.ok:
            raise BackendError(
                detail_message(payload, f"Server error (status {response.status_code})"),
                status_code=response.status_code,
            )
        return payload

    @staticmethod
    def _decode(response: requests.Response) -> Any:
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            if response.ok:
                raise DataShapeError(
                    f"Server returned invalid JSON (status {response.status_code})"
                ) from e
            return None

    # ----- Identity -----

    async def authenticate(self, username: str, password: str, role: Role) -> AuthGrant:
        payload = await self._request(
            "POST",
            "/auth/login",
            auth=False,
            data={"username": username, "password": password},
        )
        if not isinstance(payload, dict) or not payload.get("access_token"):
            raise DataShapeError("Login response has no access token")

        user = None
        if isinstance(payload.get("user"), dict):
            user = wire.user_from_wire(payload["user"])
        elif payload.get("username") and (payload.get("id") or payload.get("user_id")):
            user = wire.user_from_wire({
                "id": payload.get("id") or payload.get("user_id"),
                "username": payload["username"],
                "email": payload.get("email"),
                "role": payload.get("role") or role.value,
            })
        return AuthGrant(token=payload["access_token"], user=user)

    async def register_user(
        self,
        username: str,
        email: str,
        password: str,
        role: Role = Role.VIEWER,
    ) -> User:
        payload = await self._request(
            "POST",
            "/auth/register",
            auth=False,
            json={"username": username, "email": email, "password": password, "role": role.value},
        )
        return wire.user_from_wire(payload)

    async def fetch_current_user(self) -> User:
        return wire.user_from_wire(await self._request("GET", "/users/me"))

    async def list_users(self) -> list[User]:
        payload = await self._request("GET", "/users/")
        if not isinstance(payload, list):
            raise DataShapeError("User list response is not a list")
        return [wire.user_from_wire(item) for item in payload]

    async def update_user_profile(self, user_id: int, fields: dict[str, Any]) -> User:
        payload = await self._request("PUT", f"/users/{user_id}", json=fields)
        return wire.user_from_wire(payload)

    # ----- Incidents -----

    async def list_cameras(self) -> list[Camera]:
        payload = await self._request("GET", "/cameras/")
        if not isinstance(payload, list):
            raise DataShapeError("Camera list response is not a list")
        return [wire.camera_from_wire(item) for item in payload]

    async def list_incidents(self) -> list[Incident]:
        return wire.incidents_from_wire(await self._request("GET", "/incidents/"))

    async def get_incident(self, incident_id: int) -> Incident:
        return wire.incident_from_wire(await self._request("GET", f"/incidents/{incident_id}"))

    async def create_incident(self, draft: IncidentDraft) -> Incident:
        payload = await self._request("POST", "/incidents/", json=wire.draft_to_wire(draft))
        return wire.incident_from_wire(payload)

    async def set_incident_acknowledged(self, incident_id: int, acknowledged: bool = True) -> Incident:
        payload = await self._request(
            "PUT",
            f"/incidents/{incident_id}/acknowledge",
            params={"acknowledged": str(acknowledged).lower()},
        )
        return wire.incident_from_wire(payload)

    async def notify_incident_assignment(self, incident_id: int, user_ids: list[int]) -> dict[str, Any]:
        payload = await self._request(
            "POST",
            f"/incidents/{incident_id}/notify",
            json={"user_ids": list(user_ids)},
        )
        return payload if isinstance(payload, dict) else {}

    # ----- Evidence -----

    async def list_evidence_for_current_user(self) -> list[Evidence]:
        payload = await self._request("GET", "/evidence/my/all")
        if not isinstance(payload, list):
            raise DataShapeError("Evidence list response is not a list")
        return [wire.evidence_from_wire(item) for item in payload]

    async def verify_evidence(self, evidence_id: int) -> VerificationResult:
        payload = await self._request("POST", f"/evidence/{evidence_id}/verify")
        return wire.verification_from_wire(evidence_id, payload)

    async def upload_evidence(self, incident_id: int, file_path: Path) -> Evidence | None:
        return await asyncio.to_thread(self._upload, incident_id, Path(file_path))

    def _upload(self, incident_id: int, file_path: Path) -> Evidence | None:
        with file_path.open("rb") as handle:
            payload = self._send(
                "POST",
                "/evidence/",
                True,
                {
                    "data": {"incident_id": str(incident_id)},
                    "files": {"file": (file_path.name, handle)},
                },
            )
        if isinstance(payload, dict) and "id" in payload:
            return wire.evidence_from_wire(payload, incident_id)
        return None
