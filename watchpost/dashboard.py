"""Role dashboard: one mounted view over the incident lifecycle."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

import structlog

from watchpost.errors import AuthenticationError, WatchpostError
from watchpost.lifecycle import (
    AssignmentDispatcher,
    AssignmentReport,
    EmergencyDialer,
    EvidenceVerificationTracker,
    HandledReportNotice,
    HandledReportNotifier,
    IncidentListStore,
    IncidentStateMachine,
    Poller,
    ReportSubmitter,
    SecurityBuckets,
    SOSContext,
    SOSEscalationHandler,
    VisibilityFilter,
)
from watchpost.models import (
    Camera,
    Evidence,
    Incident,
    IncidentCounts,
    IncidentDraft,
    ReporterContact,
    Result,
    Role,
    User,
    VerificationResult,
)

if TYPE_CHECKING:
    from watchpost.manager import LifecycleManager

logger = structlog.get_logger(__name__)


class Dashboard:
    """
    Everything one signed-in actor works with while a view is open.

    Use as an async context manager. Entering resolves the actor's identity
    before anything is shown, loads cameras and the first incident list,
    then starts background polling. Leaving closes the incident and evidence
    lists, so late responses are dropped, and stops the poller.

    Example:
        ```python
        async with manager.open_dashboard() as dashboard:
            for incident in dashboard.incidents():
                ...
            await dashboard.acknowledge(42)
        ```
    """

    def __init__(self, manager: LifecycleManager):
        self.manager = manager
        self.backend = manager.backend
        self.identity = manager.identity
        config = manager.config

        self.visibility = VisibilityFilter(config.ai_camera_threshold)
        self.store = IncidentListStore()
        self.state_machine = IncidentStateMachine(self.backend, self.store, self._actor)
        self.sos = SOSEscalationHandler(
            self.backend,
            emergency_contact=lambda: manager.sessions.emergency_contact,
        )
        self.evidence = EvidenceVerificationTracker(self.backend, self._actor)
        self.assignment = AssignmentDispatcher(
            self.backend,
            store=self.store,
            dismiss_seconds=config.assignment_dismiss_seconds,
        )
        self.reports = ReportSubmitter(self.backend, default_camera_id=config.default_camera_id)
        self.notifier = HandledReportNotifier(self._actor)

        self.cameras: list[Camera] = []
        self.owned_camera_ids: set[int] = set()
        self.new_incident_ids: list[int] = []
        self.notices: list[HandledReportNotice] = []

        self._poller = Poller(self.refresh, config.poll_interval_seconds, name="incidents")

    @property
    def actor(self) -> User | None:
        return self.identity.actor

    def _actor(self) -> User | None:
        return self.identity.actor

    # ----- Mount / unmount -----

    async def __aenter__(self) -> Dashboard:
        resolved = self.manager.settle(await self.identity.resolve())
        if not resolved.success:
            raise resolved.error or WatchpostError(resolved.message or "Could not resolve identity")

        actor = resolved.data
        try:
            self.cameras = await self.backend.list_cameras()
        except AuthenticationError:
            self.identity.handle_auth_failure()
            raise
        except WatchpostError as e:
            logger.warning("Could not load cameras", error=e.message)
            self.cameras = []
        self.owned_camera_ids = self.visibility.owned_camera_ids(self.cameras, actor)

        await self.refresh()
        await self._poller.__aenter__()
        logger.info("Dashboard opened", role=actor.role.value, incidents=len(self.store.incidents))
        return self

    async def __aexit__(self, *exc) -> None:
        self.store.close()
        self.evidence.close()
        await self._poller.stop()
        logger.info("Dashboard closed")

    async def refresh(self) -> None:
        """
        Reload incidents (and evidence where the role has any).

        Raises the backend's error on failure; the poller logs it and keeps
        going. An expired token also ends the session.
        """
        try:
            outcome = await self.store.refresh(self.backend.list_incidents)
            if self.actor is not None and self.actor.role != Role.SECURITY:
                evidence = await self.evidence.refresh()
                self.manager.settle(evidence)
        except AuthenticationError:
            self.identity.handle_auth_failure()
            raise

        if not outcome.applied:
            return
        self.new_incident_ids = outcome.added_ids
        if self.actor is not None and self.actor.role == Role.VIEWER:
            self.notices.extend(self.notifier.poll(self.store.incidents))

    # ----- Views -----

    def incidents(self) -> list[Incident]:
        return self.visibility.visible_incidents(
            self.store.incidents, self.actor, self.owned_camera_ids
        )

    def security_buckets(self) -> SecurityBuckets:
        return self.visibility.security_buckets(self.store.incidents, self.actor)

    def summary(self) -> IncidentCounts:
        return self.visibility.summary(self.incidents())

    def evidence_items(self) -> list[Evidence]:
        return self.evidence.items

    def drain_notices(self) -> list[HandledReportNotice]:
        notices, self.notices = self.notices, []
        return notices

    # ----- Actions -----

    async def acknowledge(self, incident_id: int) -> Result[Incident]:
        return self.manager.settle(await self.state_machine.acknowledge(incident_id))

    async def trigger_sos(
        self,
        message: str = "",
        phone: str | None = None,
        location: str | None = None,
    ) -> Result[Incident | None]:
        context = SOSContext(
            reporter=self.actor,
            message=message,
            camera_id=self._sos_camera(),
            phone=phone,
            location=location,
        )
        result = self.manager.settle(await self.sos.trigger(context))
        if result.success and result.data is not None:
            self.store.put(result.data)
        return result

    async def report_unseen(
        self,
        incident_id: int,
        dialer: EmergencyDialer | None = None,
    ) -> Result[Incident]:
        incident = self.store.get(incident_id)
        if incident is None:
            return Result.fail(f"Incident {incident_id} not found")
        result = self.manager.settle(await self.sos.report_unseen(incident, self.actor, dialer))
        if result.success:
            self.store.put(result.data)
        return result

    async def report(
        self,
        draft: IncidentDraft,
        attachment: Path | str | None = None,
    ) -> Result[Incident]:
        if draft.reporter is None or not draft.reporter.username:
            known = draft.reporter.model_dump(exclude_none=True) if draft.reporter else {}
            known.pop("username", None)
            draft = draft.model_copy(
                update={"reporter": ReporterContact.from_user(self.actor, **known)}
            )
        return self.manager.settle(await self.reports.submit(draft, attachment, self.cameras))

    async def verify(self, evidence_id: int) -> Result[VerificationResult]:
        return self.manager.settle(await self.evidence.verify(evidence_id))

    async def assignment_candidates(self) -> Result[list[User]]:
        return self.manager.settle(await self.assignment.candidates())

    async def assign(
        self,
        incident_ids: list[int],
        security_user_id: int,
    ) -> Result[AssignmentReport]:
        return self.manager.settle(await self.assignment.assign(incident_ids, security_user_id))

    def _sos_camera(self) -> int | None:
        if self.owned_camera_ids:
            return min(self.owned_camera_ids)
        if self.cameras:
            return self.cameras[0].id
        return self.manager.config.default_camera_id
