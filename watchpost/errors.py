"""Error taxonomy shared by the backend layer and lifecycle components."""

from __future__ import annotations

from typing import Any


class WatchpostError(Exception):
    """Base class for classified client failures."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class AuthenticationError(WatchpostError):
    """Token missing, expired or rejected (HTTP 401)."""

    def __init__(self, message: str = "Unauthorized. Please login again."):
        super().__init__(message, status_code=401)


class AuthorizationError(WatchpostError):
    """Actor's role may not perform the requested action."""

    def __init__(self, message: str = "Permission denied"):
        super().__init__(message, status_code=403)


class BackendError(WatchpostError):
    """Backend answered with a non-success status."""


class NetworkError(BackendError):
    """Backend could not be reached."""


class DataShapeError(WatchpostError):
    """Backend payload did not have the expected shape."""


class IdentityPendingError(WatchpostError):
    """Current actor's identity has not been resolved yet."""

    def __init__(self, message: str = "User identity is not resolved yet"):
        super().__init__(message)


def detail_message(payload: Any, default: str = "Request failed") -> str:
    """
    Turn a backend error payload into a readable message.

    Handles plain strings, ``{"detail": "..."}`` and FastAPI-style validation
    lists (``{"detail": [{"loc": [...], "msg": "..."}]}``).
    """
    if not payload:
        return default
    if isinstance(payload, str):
        return payload
    if not isinstance(payload, dict):
        return str(payload)

    detail = payload.get("detail")
    if isinstance(detail, list):
        parts = []
        for item in detail:
            if isinstance(item, dict) and item.get("msg"):
                loc = ".".join(str(p) for p in item.get("loc") or [])
                parts.append(f"{loc}: {item['msg']}" if loc else item["msg"])
            else:
                parts.append(str(item))
        return "; ".join(parts) or default
    if detail:
        return str(detail)

    return payload.get("msg") or payload.get("message") or default


class TelephonyError(WatchpostError):
    """An emergency call could not be placed."""
