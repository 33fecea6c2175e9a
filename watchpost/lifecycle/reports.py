"""Viewer incident reports."""

from __future__ import annotations

from pathlib import Path

import structlog

from watchpost.backend.base import Backend
from watchpost.errors import WatchpostError
from watchpost.models.incident import Incident, IncidentDraft, Provenance
from watchpost.models.result import Result
from watchpost.models.user import Camera

logger = structlog.get_logger(__name__)


class ReportSubmitter:
    """Sends a viewer's report to security, with an optional attachment."""

    def __init__(self, backend: Backend, default_camera_id: int = 1):
        self.backend = backend
        self.default_camera_id = default_camera_id

    async def submit(
        self,
        draft: IncidentDraft,
        attachment: Path | str | None = None,
        cameras: list[Camera] | None = None,
    ) -> Result[Incident]:
        if not draft.description.strip():
            return Result.fail("Please describe the incident")

        camera_id = draft.camera_id
        if camera_id is None:
            camera_id = await self._pick_camera(cameras)

        draft = draft.model_copy(
            update={
                "camera_id": camera_id,
                "provenance": Provenance.VIEWER_REPORT,
                "severity_score": draft.resolved_score(),
            }
        )

        try:
            incident = await self.backend.create_incident(draft)
        except WatchpostError as e:
            logger.error("Report submission failed", error=e.message)
            return Result.from_error(e)

        logger.info("Viewer report created", incident_id=incident.id, camera_id=camera_id)

        if attachment:
            try:
                evidence = await self.backend.upload_evidence(incident.id, Path(attachment))
            except (WatchpostError, OSError) as e:
                # The report itself already went through
                logger.warning("Attachment upload failed", incident_id=incident.id, error=str(e))
            else:
                if evidence is not None:
                    incident = incident.model_copy(
                        update={"evidence_items": [*incident.evidence_items, evidence]}
                    )

        return Result.ok(incident, message="Report submitted to security")

    async def _pick_camera(self, cameras: list[Camera] | None) -> int:
        if cameras is None:
            try:
                cameras = await self.backend.list_cameras()
            except WatchpostError as e:
                logger.warning("Could not load cameras, using default", error=e.message)
                cameras = []
        return cameras[0].id if cameras else self.default_camera_id
