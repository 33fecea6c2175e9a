"""Evidence models and blockchain verification outcomes."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel


class VerificationStatus(str, Enum):
    """Tamper-detection status of an evidence item."""

    PENDING = "PENDING"
    VERIFIED = "VERIFIED"
    TAMPERED = "TAMPERED"
    FILE_MISSING = "FILE_MISSING"

    # Display-only: evidence was never anchored on the ledger
    NOT_REGISTERED = "NOT_REGISTERED"


class Evidence(BaseModel):
    """
    A file (image/video) attached to an incident.

    Evidence is created by the ingestion pipeline and optionally anchored
    to a tamper-evident ledger. Only the verification tracker mutates its
    verification status on the client.
    """

    id: int
    incident_id: int
    file_path: str | None = None  # relative to the static evidence server
    sha256_hash: str | None = None
    blockchain_tx_hash: str | None = None  # None = not anchored
    verification_status: VerificationStatus = VerificationStatus.PENDING

    @property
    def is_anchored(self) -> bool:
        return bool(self.blockchain_tx_hash)

    @property
    def display_status(self) -> VerificationStatus:
        """Status to show; never PENDING for evidence that was not anchored."""
        if not self.is_anchored:
            return VerificationStatus.NOT_REGISTERED
        return self.verification_status

    def file_url(self, base_url: str) -> str | None:
        """Resolve ``file_path`` against the backend's static evidence route."""
        if not self.file_path or not base_url:
            return None
        path = self.file_path.replace("\\", "/").lstrip("/")
        return f"{base_url.rstrip('/')}/evidence/{path}"


class VerificationResult(BaseModel):
    """Outcome of an explicit verify action."""

    evidence_id: int
    status: VerificationStatus
    blockchain_hash: str | None = None
    current_hash: str | None = None
    message: str | None = None
