"""Core data models for the incident lifecycle client."""

from watchpost.models.user import Camera, Role, User
from watchpost.models.incident import (
    Incident,
    IncidentCounts,
    IncidentDraft,
    IncidentStatus,
    IncidentType,
    Provenance,
    ReporterContact,
    Severity,
    severity_score,
)
from watchpost.models.evidence import Evidence, VerificationResult, VerificationStatus
from watchpost.models.result import Result

__all__ = [
    # Users
    "Camera",
    "Role",
    "User",
    # Incident
    "Incident",
    "IncidentCounts",
    "IncidentDraft",
    "IncidentStatus",
    "IncidentType",
    "Provenance",
    "ReporterContact",
    "Severity",
    "severity_score",
    # Evidence
    "Evidence",
    "VerificationResult",
    "VerificationStatus",
    # Results
    "Result",
]
