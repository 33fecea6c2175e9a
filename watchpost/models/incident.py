"""Incident model - a reported or detected security event."""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field, field_validator

from watchpost.models.evidence import Evidence
from watchpost.models.user import User


class IncidentStatus(str, Enum):
    """Lifecycle status. ``acknowledged`` is derived from this, never stored."""

    PENDING = "pending"
    ACKNOWLEDGED = "acknowledged"


class IncidentType(str, Enum):
    """Known incident categories."""

    ABUSE_VIOLENCE = "abuse_violence"
    THEFT = "theft"
    FALL_HEALTH = "fall_health"
    ACCIDENT_CAR_THEFT = "accident_car_theft"


class Severity(str, Enum):
    """Severity tier."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


SEVERITY_SCORES: dict[Severity, int] = {
    Severity.LOW: 30,
    Severity.MEDIUM: 50,
    Severity.HIGH: 90,
    Severity.CRITICAL: 100,
}


def severity_score(severity: Severity | str) -> int:
    """Canonical 0-100 score for a severity tier."""
    return SEVERITY_SCORES[Severity(severity)]


def coerce_type(value):
    """Map known type strings onto IncidentType, keeping unknown ones as-is."""
    if isinstance(value, str) and not isinstance(value, IncidentType):
        try:
            return IncidentType(value)
        except ValueError:
            return value
    return value


class Provenance(str, Enum):
    """How an incident entered the system."""

    CAMERA = "camera"                # AI-camera ingestion
    VIEWER_REPORT = "viewer_report"  # reported by a viewer to security
    SOS = "sos"                      # emergency panic action


class ReporterContact(BaseModel):
    """Identity and contact details of the person who raised an incident."""

    username: str | None = None
    phone: str | None = None
    email: str | None = None
    location: str | None = None
    notes: str | None = None

    @classmethod
    def from_user(cls, user: User | None, **extra) -> ReporterContact:
        data = {}
        if user is not None:
            data = {"username": user.username, "phone": user.phone, "email": user.email}
        data.update({key: value for key, value in extra.items() if value})
        return cls(**data)


class Incident(BaseModel):
    """
    An incident as seen by the client.

    Provenance and reporter details are explicit fields here; the legacy
    backend carries them as tagged text inside the description, which the
    wire codec translates in both directions.
    """

    id: int
    camera_id: int | None = None
    type: IncidentType | str = IncidentType.THEFT
    severity: Severity = Severity.MEDIUM
    severity_score: int = Field(default=50, ge=0, le=100)
    description: str = ""

    provenance: Provenance = Provenance.CAMERA
    reporter: ReporterContact | None = None

    status: IncidentStatus = IncidentStatus.PENDING
    assigned_user_id: int | None = None
    assigned_user: User | None = None

    timestamp: datetime = Field(default_factory=datetime.utcnow)
    evidence_items: list[Evidence] = Field(default_factory=list)

    @field_validator("type", mode="before")
    @classmethod
    def known_type(cls, value):
        return coerce_type(value)

    @property
    def acknowledged(self) -> bool:
        return self.status == IncidentStatus.ACKNOWLEDGED

    @property
    def type_label(self) -> str:
        value = self.type.value if isinstance(self.type, IncidentType) else str(self.type)
        return value.replace("_", " ")


class IncidentDraft(BaseModel):
    """An incident to be created by the client (report, SOS, unseen report)."""

    camera_id: int | None = None
    type: IncidentType | str = IncidentType.THEFT
    severity: Severity = Severity.MEDIUM
    severity_score: int | None = Field(default=None, ge=0, le=100)
    description: str = ""
    provenance: Provenance = Provenance.VIEWER_REPORT
    reporter: ReporterContact | None = None

    @field_validator("type", mode="before")
    @classmethod
    def known_type(cls, value):
        return coerce_type(value)

    def resolved_score(self) -> int:
        if self.severity_score is not None:
            return self.severity_score
        return severity_score(self.severity)


class IncidentCounts(BaseModel):
    """Aggregate counters for the admin overview."""

    total: int = 0
    pending: int = 0
    acknowledged: int = 0
