"""Notices for viewers whose reports were handled by security."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Iterable

from watchpost.models.incident import Incident, Provenance
from watchpost.models.user import User


@dataclass
class HandledReportNotice:
    incident_id: int
    message: str


class HandledReportNotifier:
    """
    Diffs successive incident lists for the viewer's own reports.

    The first poll only records what is already handled; later polls
    announce each report that became acknowledged, once.
    """

    def __init__(self, actor: Callable[[], User | None]):
        self._actor = actor
        self._seen: set[int] = set()
        self._primed = False

    def poll(self, incidents: Iterable[Incident]) -> list[HandledReportNotice]:
        actor = self._actor()
        if actor is None:
            return []

        handled = [i for i in incidents if i.acknowledged and self._is_own_report(i, actor)]
        fresh = [i for i in handled if i.id not in self._seen]
        self._seen.update(i.id for i in handled)

        if not self._primed:
            self._primed = True
            return []

        return [
            HandledReportNotice(
                incident_id=i.id,
                message=f"Your reported incident #{i.id} ({i.type_label}) has been handled by security",
            )
            for i in fresh
        ]

    @staticmethod
    def _is_own_report(incident: Incident, actor: User) -> bool:
        return (
            incident.provenance == Provenance.VIEWER_REPORT
            and incident.reporter is not None
            and incident.reporter.username == actor.username
        )
