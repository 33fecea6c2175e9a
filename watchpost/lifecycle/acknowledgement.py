"""Incident state machine: pending -> acknowledged."""

from __future__ import annotations

from typing import Callable

import structlog

from watchpost.backend.base import Backend
from watchpost.errors import AuthorizationError, IdentityPendingError
from watchpost.lifecycle.optimistic import OptimisticCommand
from watchpost.lifecycle.store import IncidentListStore
from watchpost.models.incident import Incident, IncidentStatus
from watchpost.models.result import Result
from watchpost.models.user import Role, User

logger = structlog.get_logger(__name__)


class IncidentStateMachine:
    """
    Drives incident acknowledgement from the client.

    The transition is applied to the local list immediately and rolled back
    to the exact previous values if the backend call fails. At most one
    acknowledgement per incident is in flight from this client; concurrent
    acknowledgements from other devices are settled by the backend (last
    write wins).

    Notifying the admin and the original reporter is the backend's job on a
    successful acknowledgement; the client does not repeat it.
    """

    def __init__(
        self,
        backend: Backend,
        store: IncidentListStore,
        actor: Callable[[], User | None],
    ):
        self.backend = backend
        self.store = store
        self._actor = actor
        self._in_flight: set[int] = set()

    def in_flight(self, incident_id: int) -> bool:
        return incident_id in self._in_flight

    async def acknowledge(self, incident_id: int) -> Result[Incident]:
        actor = self._actor()
        if actor is None:
            return Result.from_error(IdentityPendingError())
        if actor.role == Role.VIEWER:
            return Result.from_error(
                AuthorizationError("Only security and admin users can acknowledge incidents")
            )
        if incident_id in self._in_flight:
            return Result.fail("Acknowledgement already in progress")

        incident = self.store.get(incident_id)
        if incident is None:
            return Result.fail(f"Incident {incident_id} not found")
        if incident.acknowledged:
            return Result.ok(incident, message="Incident already acknowledged")

        update: dict = {"status": IncidentStatus.ACKNOWLEDGED}
        if actor.role == Role.SECURITY:
            update["assigned_user_id"] = actor.id
            update["assigned_user"] = actor

        def apply() -> Incident:
            before = self.store.get(incident_id)
            self.store.put(before.model_copy(update=update))
            self.store.pin(incident_id, update)
            return before

        def compensate(before: Incident) -> None:
            self.store.unpin(incident_id)
            self.store.put(before)

        command = OptimisticCommand(
            f"acknowledge:{incident_id}",
            commit=lambda: self.backend.set_incident_acknowledged(incident_id, True),
            apply=apply,
            compensate=compensate,
        )

        self._in_flight.add(incident_id)
        try:
            result = await command.run()
        finally:
            self._in_flight.discard(incident_id)

        if not result.success:
            return Result.fail(
                result.message or "Failed to handle incident",
                error=result.error,
            )

        logger.info("Incident acknowledged", incident_id=incident_id, actor_id=actor.id)
        return Result.ok(
            self.store.get(incident_id),
            message="Incident handled. Admin and reporter have been notified.",
        )
