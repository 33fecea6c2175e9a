"""SOS / emergency escalation."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable

import structlog

from watchpost.backend.base import Backend
from watchpost.errors import TelephonyError, WatchpostError
from watchpost.models.incident import (
    Incident,
    IncidentDraft,
    IncidentType,
    Provenance,
    ReporterContact,
    Severity,
)
from watchpost.models.result import Result
from watchpost.models.user import User

logger = structlog.get_logger(__name__)

SOS_TYPE = IncidentType.FALL_HEALTH
SOS_SEVERITY = Severity.CRITICAL
SOS_SCORE = 100


class EmergencyDialer(ABC):
    """Places a phone call to an emergency contact."""

    @abstractmethod
    async def dial(self, number: str) -> None:
        """
        Start a call to ``number``.

        Raises:
            TelephonyError: if the call could not be placed.
        """
        pass


@dataclass
class SOSContext:
    """What the panic action knows when it fires."""

    reporter: User | None = None
    message: str = ""
    camera_id: int | None = None
    phone: str | None = None  # overrides the profile phone if given
    location: str | None = None


class SOSEscalationHandler:
    """
    Creates emergency incidents from a panic action.

    A handler lives for one dashboard session and fires at most once: the
    latch is set before the backend call starts, so repeated taps or a slow
    network never produce a second alert.
    """

    DEFAULT_MESSAGE = "Emergency SOS Alert triggered by user"

    def __init__(
        self,
        backend: Backend,
        emergency_contact: Callable[[], str | None] | None = None,
    ):
        self.backend = backend
        self._emergency_contact = emergency_contact or (lambda: None)
        self._latched = False
        self._escalated: set[int] = set()

    @property
    def sent(self) -> bool:
        return self._latched

    async def trigger(self, context: SOSContext) -> Result[Incident | None]:
        if self._latched:
            return Result.fail("SOS already sent for this session")
        self._latched = True

        draft = IncidentDraft(
            camera_id=context.camera_id,
            type=SOS_TYPE,
            severity=SOS_SEVERITY,
            severity_score=SOS_SCORE,
            description=context.message.strip() or self.DEFAULT_MESSAGE,
            provenance=Provenance.SOS,
            reporter=ReporterContact.from_user(
                context.reporter,
                phone=context.phone,
                location=context.location,
            ),
        )

        if context.camera_id is None:
            # Never block an emergency on a missing camera
            logger.warning(
                "SOS without camera context, reporting locally",
                reporter=context.reporter.username if context.reporter else None,
            )
            return Result.ok(None, message="SOS sent - security notified")

        try:
            incident = await self.backend.create_incident(draft)
        except WatchpostError as e:
            logger.error("SOS alert failed", camera_id=context.camera_id, error=e.message)
            return Result.fail(f"Failed to send SOS alert: {e.message}", error=e)

        logger.info("SOS alert created", incident_id=incident.id, camera_id=context.camera_id)
        return Result.ok(incident, message="Emergency alert has been sent to security personnel")

    async def report_unseen(
        self,
        incident: Incident,
        reporter: User | None = None,
        dialer: EmergencyDialer | None = None,
    ) -> Result[Incident]:
        """
        Escalate an incident the viewer says they have NOT seen.

        Creates an SOS incident, then calls the stored emergency contact. A
        failed call is reported in the message but never undoes the
        incident.
        """
        if incident.id in self._escalated:
            return Result.fail(f"Incident #{incident.id} was already reported as unseen")
        self._escalated.add(incident.id)

        draft = IncidentDraft(
            camera_id=incident.camera_id,
            type=SOS_TYPE,
            severity=SOS_SEVERITY,
            severity_score=SOS_SCORE,
            description=f"Viewer reported unseen incident #{incident.id}",
            provenance=Provenance.SOS,
            reporter=ReporterContact.from_user(reporter),
        )

        try:
            created = await self.backend.create_incident(draft)
        except WatchpostError as e:
            self._escalated.discard(incident.id)
            logger.error("Unseen report failed", incident_id=incident.id, error=e.message)
            return Result.fail(e.message, error=e)

        message = "Emergency incident created."
        number = self._emergency_contact()
        if number and dialer:
            try:
                await dialer.dial(number)
            except TelephonyError as e:
                logger.warning("Emergency call failed", number=number, error=e.message)
                message += f" Unable to call {number}."
            else:
                message += f" Calling {number}."

        return Result.ok(created, message=message)
