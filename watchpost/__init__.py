"""
Watchpost

Client-side incident and evidence lifecycle manager for a surveillance
incident reporting backend: role-scoped incident views, acknowledgement,
SOS escalation, assignment and blockchain-anchored evidence verification.
"""

from watchpost.config import WatchpostConfig
from watchpost.manager import LifecycleManager
from watchpost.dashboard import Dashboard
from watchpost.models import (
    Evidence,
    Incident,
    IncidentDraft,
    IncidentStatus,
    Result,
    Role,
    User,
    VerificationStatus,
)
from watchpost.backend import Backend, HttpBackend
from watchpost.session import SessionStore

__version__ = "0.1.0"

__all__ = [
    # Core
    "LifecycleManager",
    "Dashboard",
    "WatchpostConfig",
    # Models
    "Evidence",
    "Incident",
    "IncidentDraft",
    "IncidentStatus",
    "Result",
    "Role",
    "User",
    "VerificationStatus",
    # Backend
    "Backend",
    "HttpBackend",
    "SessionStore",
]
