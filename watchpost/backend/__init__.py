"""Backend layer: abstract interface, HTTP implementation and wire codec."""

from watchpost.backend.base import AuthGrant, Backend
from watchpost.backend.http import HttpBackend

__all__ = [
    "AuthGrant",
    "Backend",
    "HttpBackend",
]
