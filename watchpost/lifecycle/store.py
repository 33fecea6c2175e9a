"""Local incident list with ordered, stale-safe refreshes."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

import structlog

from watchpost.models.incident import Incident

logger = structlog.get_logger(__name__)


@dataclass
class RefreshOutcome:
    """What a single refresh did to the list."""

    sequence: int
    applied: bool
    added_ids: list[int] = field(default_factory=list)


class IncidentListStore:
    """
    The incident list a dashboard renders from.

    Every refresh takes a sequence number when it starts. A response is
    applied only if no newer one has been applied already, and it replaces
    the whole list (never merged), so overlapping refreshes settle on the
    last one started. Once closed, late responses are dropped.

    Pins keep locally confirmed changes (e.g. an acknowledgement the backend
    accepted) in place until a refresh shows the backend has caught up.
    """

    def __init__(self):
        self._incidents: dict[int, Incident] = {}
        self._pins: dict[int, dict[str, Any]] = {}
        self._issued = 0
        self._applied = 0
        self._loaded = False
        self._active = True

    @property
    def incidents(self) -> list[Incident]:
        return list(self._incidents.values())

    @property
    def loaded(self) -> bool:
        return self._loaded

    @property
    def active(self) -> bool:
        return self._active

    @property
    def applied_sequence(self) -> int:
        return self._applied

    def get(self, incident_id: int) -> Incident | None:
        return self._incidents.get(incident_id)

    def put(self, incident: Incident) -> None:
        """Replace an incident in place, or append it if unknown."""
        self._incidents[incident.id] = incident

    def pin(self, incident_id: int, fields: dict[str, Any]) -> None:
        self._pins[incident_id] = dict(fields)

    def unpin(self, incident_id: int) -> None:
        self._pins.pop(incident_id, None)

    async def refresh(self, fetch: Callable[[], Awaitable[list[Incident]]]) -> RefreshOutcome:
        """
        Fetch and apply a new list.

        Errors raised by ``fetch`` propagate; the current list is untouched.
        """
        self._issued += 1
        sequence = self._issued

        incidents = await fetch()

        if not self._active:
            logger.debug("Dropping refresh for closed store", sequence=sequence)
            return RefreshOutcome(sequence=sequence, applied=False)
        if sequence < self._applied:
            logger.debug("Discarding stale refresh", sequence=sequence, applied=self._applied)
            return RefreshOutcome(sequence=sequence, applied=False)

        previous = set(self._incidents)
        self._incidents = {i.id: self._reconcile(i) for i in incidents}
        self._applied = sequence

        added = [i for i in self._incidents if i not in previous] if self._loaded else []
        self._loaded = True
        return RefreshOutcome(sequence=sequence, applied=True, added_ids=added)

    def close(self) -> None:
        self._active = False

    def _reconcile(self, incident: Incident) -> Incident:
        fields = self._pins.get(incident.id)
        if not fields:
            return incident
        if incident.acknowledged:
            # Backend caught up
            self._pins.pop(incident.id, None)
            return incident
        return incident.model_copy(update=fields)
