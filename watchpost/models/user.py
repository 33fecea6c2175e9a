"""User, role and camera models."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel


class Role(str, Enum):
    """Actor roles. Fixed at registration; drive all visibility decisions."""

    VIEWER = "viewer"
    SECURITY = "security"
    ADMIN = "admin"


class User(BaseModel):
    """A registered user of the reporting system."""

    id: int
    username: str
    email: str | None = None  # immutable after registration
    phone: str | None = None
    role: Role = Role.VIEWER


class Camera(BaseModel):
    """A camera feed registered with the backend."""

    id: int
    name: str | None = None
    admin_user_id: int | None = None  # owner
