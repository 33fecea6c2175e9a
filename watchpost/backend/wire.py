"""
Translation between backend JSON payloads and client models.

The legacy backend has no fields for provenance or reporter details, so
they travel inside the incident description as tagged text::

    [SOS ALERT] Help needed

    User: alice

    Phone: 555-0100

Incoming descriptions are parsed into ``Incident.provenance`` and
``Incident.reporter``; outgoing drafts are rendered back into the same
format. The backend also reports acknowledgement twice (``status`` and an
``acknowledged`` flag); both are folded into a single ``IncidentStatus``.
"""

from __future__ import annotations

import re
from typing import Any

import structlog
from pydantic import ValidationError

from watchpost.errors import DataShapeError
from watchpost.models.evidence import Evidence, VerificationResult, VerificationStatus
from watchpost.models.incident import (
    Incident,
    IncidentDraft,
    IncidentStatus,
    Provenance,
    ReporterContact,
    severity_score,
)
from watchpost.models.user import Camera, User

logger = structlog.get_logger(__name__)

VIEWER_REPORT_TAG = "[VIEWER REPORT]"
SOS_TAG = "[SOS ALERT]"

_TAGS = {
    SOS_TAG: Provenance.SOS,
    VIEWER_REPORT_TAG: Provenance.VIEWER_REPORT,
}

# Label -> ReporterContact attribute
_LABELS = {
    "User": "username",
    "Phone": "phone",
    "Email": "email",
    "Contact": "phone",
    "Location": "location",
    "Additional Notes": "notes",
}

_FIELD_RE = re.compile(
    r"^(?P<label>" + "|".join(re.escape(label) for label in _LABELS) + r"):\s*(?P<value>.*)$",
    re.DOTALL,
)


# ----- Descriptions -----

def parse_description(text: str | None) -> tuple[Provenance, str, ReporterContact | None]:
    """Split a tagged description into provenance, body and reporter details."""
    text = (text or "").strip()

    provenance = Provenance.CAMERA
    for tag, tagged in _TAGS.items():
        if text.startswith(tag):
            provenance = tagged
            text = text[len(tag):].strip()
            break

    if provenance == Provenance.CAMERA:
        return provenance, text, None

    body: list[str] = []
    fields: dict[str, str] = {}
    for block in re.split(r"\n\s*\n", text):
        match = _FIELD_RE.match(block.strip())
        if match:
            attr = _LABELS[match.group("label")]
            fields.setdefault(attr, match.group("value").strip())
        else:
            body.append(block.strip())

    reporter = ReporterContact(**fields) if fields else None
    return provenance, "\n\n".join(b for b in body if b), reporter


def render_description(
    provenance: Provenance,
    body: str,
    reporter: ReporterContact | None = None,
) -> str:
    """Render provenance and reporter details into the legacy tagged text."""
    body = body.strip()
    if provenance == Provenance.CAMERA:
        return body

    reporter = reporter or ReporterContact()
    if provenance == Provenance.SOS:
        text = f"{SOS_TAG} {body}"
        labelled = [("User", reporter.username), ("Phone", reporter.phone), ("Email", reporter.email)]
    else:
        text = f"{VIEWER_REPORT_TAG}\n{body}"
        labelled = [
            ("Additional Notes", reporter.notes),
            ("Contact", reporter.phone),
            ("Location", reporter.location),
            ("User", reporter.username),
        ]

    for label, value in labelled:
        if value:
            text += f"\n\n{label}: {value}"
    return text


# ----- Users & cameras -----

def user_from_wire(payload: Any) -> User:
    if not isinstance(payload, dict):
        raise DataShapeError(f"Expected a user object, got {type(payload).__name__}")
    data = dict(payload)
    if "id" not in data and "user_id" in data:
        data["id"] = data["user_id"]
    try:
        return User.model_validate(data)
    except ValidationError as e:
        raise DataShapeError(f"Malformed user payload: {e}") from e


def camera_from_wire(payload: Any) -> Camera:
    try:
        return Camera.model_validate(payload)
    except ValidationError as e:
        raise DataShapeError(f"Malformed camera payload: {e}") from e


# ----- Evidence -----

def evidence_from_wire(payload: Any, incident_id: int | None = None) -> Evidence:
    if not isinstance(payload, dict):
        raise DataShapeError(f"Expected an evidence object, got {type(payload).__name__}")
    data = dict(payload)
    if incident_id is not None:
        data.setdefault("incident_id", incident_id)

    status = data.get("verification_status") or data.get("tamper_status")
    data["verification_status"] = _verification_status(status)
    try:
        return Evidence.model_validate(data)
    except ValidationError as e:
        raise DataShapeError(f"Malformed evidence payload: {e}") from e


def verification_from_wire(evidence_id: int, payload: Any) -> VerificationResult:
    if not isinstance(payload, dict) or not payload.get("status"):
        raise DataShapeError("Verification response has no status")
    status = _verification_status(payload["status"])
    if status == VerificationStatus.PENDING:
        raise DataShapeError(f"Unexpected verification status: {payload['status']}")
    return VerificationResult(
        evidence_id=evidence_id,
        status=status,
        blockchain_hash=payload.get("blockchain_hash"),
        current_hash=payload.get("current_hash"),
        message=payload.get("message"),
    )


def _verification_status(value: Any) -> VerificationStatus:
    if not value:
        return VerificationStatus.PENDING
    try:
        return VerificationStatus(str(value).upper())
    except ValueError:
        logger.warning("Unknown verification status", status=value)
        return VerificationStatus.PENDING


# ----- Incidents -----

def incident_from_wire(payload: Any) -> Incident:
    """Build an ``Incident`` from a backend incident object."""
    if not isinstance(payload, dict) or "id" not in payload:
        raise DataShapeError("Incident payload has no id")

    provenance, body, reporter = parse_description(payload.get("description"))
    acknowledged = payload.get("status") == "acknowledged" or payload.get("acknowledged") is True

    assigned_user = None
    if isinstance(payload.get("assigned_user"), dict):
        assigned_user = user_from_wire(payload["assigned_user"])

    severity = payload.get("severity") or "medium"
    data = {
        "id": payload["id"],
        "camera_id": payload.get("camera_id"),
        "type": payload.get("type") or "theft",
        "severity": severity,
        "severity_score": _score(payload.get("severity_score"), severity),
        "description": body,
        "provenance": provenance,
        "reporter": reporter,
        "status": IncidentStatus.ACKNOWLEDGED if acknowledged else IncidentStatus.PENDING,
        "assigned_user_id": payload.get("assigned_user_id"),
        "assigned_user": assigned_user,
        "evidence_items": [
            evidence_from_wire(item, payload["id"])
            for item in payload.get("evidence_items") or []
        ],
    }
    timestamp = payload.get("timestamp") or payload.get("created_at")
    if timestamp:
        data["timestamp"] = timestamp

    try:
        return Incident.model_validate(data)
    except ValidationError as e:
        raise DataShapeError(f"Malformed incident {payload['id']}: {e}") from e


def _score(value: Any, severity: Any) -> int:
    """Severity score clamped to 0-100, or the tier's canonical score if unusable."""
    if value is not None and not isinstance(value, bool):
        try:
            return max(0, min(100, round(float(value))))
        except (TypeError, ValueError, OverflowError):
            logger.warning("Unusable severity score", severity_score=value)
    try:
        return severity_score(severity)
    except ValueError:
        return 50


def incidents_from_wire(payload: Any) -> list[Incident]:
    """
    Build a list of incidents, skipping malformed entries.

    A malformed item is logged and dropped rather than failing the whole
    list; a payload that is not a list at all is a data-shape error.
    """
    if not isinstance(payload, list):
        raise DataShapeError("Incident list response is not a list")

    incidents = []
    for item in payload:
        try:
            incidents.append(incident_from_wire(item))
        except DataShapeError as e:
            logger.warning("Skipping malformed incident", error=e.message)
    return incidents


def draft_to_wire(draft: IncidentDraft) -> dict[str, Any]:
    """Request body for incident creation."""
    return {
        "camera_id": draft.camera_id,
        "type": draft.type.value if hasattr(draft.type, "value") else draft.type,
        "severity": draft.severity.value,
        "severity_score": draft.resolved_score(),
        "description": render_description(draft.provenance, draft.description, draft.reporter),
    }
