"""Role-based visibility of incidents."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable

from watchpost.errors import IdentityPendingError
from watchpost.models.incident import Incident, IncidentCounts, Provenance
from watchpost.models.user import Camera, Role, User


@dataclass
class SecurityBuckets:
    """
    The three independent views a security actor works from.

    An incident may sit in more than one bucket (an SOS alert assigned to
    the actor appears under both ``sos_alerts`` and ``assigned``).
    """

    viewer_reports: list[Incident] = field(default_factory=list)
    sos_alerts: list[Incident] = field(default_factory=list)
    assigned: list[Incident] = field(default_factory=list)

    def union(self) -> list[Incident]:
        """All incidents in any bucket, first occurrence order, no repeats."""
        seen: set[int] = set()
        merged = []
        for incident in self.viewer_reports + self.sos_alerts + self.assigned:
            if incident.id not in seen:
                seen.add(incident.id)
                merged.append(incident)
        return merged


class VisibilityFilter:
    """
    Computes which incidents an actor may see.

    - viewer: incidents on owned cameras or AI worker cameras, minus viewer
      reports (those go to security only), plus the viewer's own SOS alerts
    - security: viewer reports, SOS alerts and incidents assigned to them
    - admin: everything
    """

    def __init__(self, ai_camera_threshold: int = 29):
        self.ai_camera_threshold = ai_camera_threshold

    def visible_incidents(
        self,
        incidents: Iterable[Incident],
        actor: User | None,
        owned_camera_ids: Iterable[int] = (),
    ) -> list[Incident]:
        """
        Filter ``incidents`` for ``actor``.

        Raises:
            IdentityPendingError: if the actor is not known yet. Callers must
                wait for identity resolution instead of rendering a partial
                list.
        """
        if actor is None:
            raise IdentityPendingError()

        incidents = list(incidents)
        if actor.role == Role.ADMIN:
            return incidents
        if actor.role == Role.SECURITY:
            return self.security_buckets(incidents, actor).union()

        owned = set(owned_camera_ids)
        return [i for i in incidents if self._visible_to_viewer(i, actor, owned)]

    def security_buckets(self, incidents: Iterable[Incident], actor: User | None) -> SecurityBuckets:
        if actor is None:
            raise IdentityPendingError()

        buckets = SecurityBuckets()
        for incident in incidents:
            if incident.provenance == Provenance.VIEWER_REPORT:
                buckets.viewer_reports.append(incident)
            if incident.provenance == Provenance.SOS:
                buckets.sos_alerts.append(incident)
            if incident.assigned_user_id is not None and incident.assigned_user_id == actor.id:
                buckets.assigned.append(incident)
        return buckets

    @staticmethod
    def summary(incidents: Iterable[Incident]) -> IncidentCounts:
        counts = IncidentCounts()
        for incident in incidents:
            counts.total += 1
            if incident.acknowledged:
                counts.acknowledged += 1
            else:
                counts.pending += 1
        return counts

    @staticmethod
    def owned_camera_ids(cameras: Iterable[Camera], actor: User) -> set[int]:
        return {c.id for c in cameras if c.admin_user_id is not None and c.admin_user_id == actor.id}

    def is_ai_camera(self, camera_id: int | None) -> bool:
        return camera_id is not None and camera_id >= self.ai_camera_threshold

    def _visible_to_viewer(self, incident: Incident, actor: User, owned: set[int]) -> bool:
        if incident.provenance == Provenance.SOS and self._reported_by(incident, actor):
            return True
        if incident.provenance == Provenance.VIEWER_REPORT:
            return False
        return incident.camera_id in owned or self.is_ai_camera(incident.camera_id)

    @staticmethod
    def _reported_by(incident: Incident, actor: User) -> bool:
        return bool(incident.reporter and incident.reporter.username == actor.username)
