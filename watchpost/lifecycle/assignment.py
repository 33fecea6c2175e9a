"""Assign incidents to security personnel and notify them."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field

import structlog

from watchpost.backend.base import Backend
from watchpost.errors import WatchpostError
from watchpost.lifecycle.optimistic import OptimisticCommand
from watchpost.lifecycle.store import IncidentListStore
from watchpost.models.incident import Incident
from watchpost.models.result import Result
from watchpost.models.user import Role, User

logger = structlog.get_logger(__name__)


@dataclass
class AssignmentFailure:
    incident_id: int
    reason: str


@dataclass
class AssignmentReport:
    """Per-incident outcome of one assignment request."""

    succeeded: list[int] = field(default_factory=list)
    failed: list[AssignmentFailure] = field(default_factory=list)
    dismiss_after: float | None = None  # seconds until the dialog closes

    @property
    def success(self) -> bool:
        return bool(self.succeeded)


class AssignmentDispatcher:
    """
    Fans one assignment request out to every selected incident.

    Notifications are independent: each incident is sent on its own, all
    of them concurrently, and the request succeeds if at least one went
    through.
    """

    def __init__(
        self,
        backend: Backend,
        store: IncidentListStore | None = None,
        dismiss_seconds: float = 1.5,
    ):
        self.backend = backend
        self.store = store
        self.dismiss_seconds = dismiss_seconds

    async def candidates(self) -> Result[list[User]]:
        """Security personnel incidents can be assigned to."""
        try:
            users = await self.backend.list_users()
        except WatchpostError as e:
            return Result.from_error(e)
        return Result.ok([u for u in users if u.role == Role.SECURITY])

    async def assign(
        self,
        incident_ids: list[int],
        security_user_ids: list[int] | int | None,
    ) -> Result[AssignmentReport]:
        if not incident_ids:
            return Result.fail("Select at least one incident")
        if isinstance(security_user_ids, int):
            security_user_ids = [security_user_ids]
        if not security_user_ids or len(security_user_ids) != 1:
            return Result.fail("Select exactly one security user")

        user_id = security_user_ids[0]
        candidates = await self.candidates()
        if not candidates.success:
            return candidates
        if user_id not in {u.id for u in candidates.data}:
            logger.warning("Refusing assignment to non-security user", user_id=user_id)
            return Result.fail("Selected user is not security personnel")

        ids = list(dict.fromkeys(incident_ids))

        commands = [self._command(incident_id, user_id) for incident_id in ids]
        outcomes = await asyncio.gather(
            *(command.run() for command in commands),
            return_exceptions=True,
        )

        report = AssignmentReport()
        first_error = None
        for incident_id, outcome in zip(ids, outcomes):
            if isinstance(outcome, BaseException):
                logger.error("Assignment crashed", incident_id=incident_id, error=str(outcome))
                report.failed.append(AssignmentFailure(incident_id, str(outcome)))
            elif outcome.success:
                report.succeeded.append(incident_id)
            else:
                first_error = first_error or outcome.error
                report.failed.append(
                    AssignmentFailure(incident_id, outcome.message or "Assignment failed")
                )

        logger.info(
            "Assignment dispatched",
            user_id=user_id,
            succeeded=len(report.succeeded),
            failed=len(report.failed),
        )

        if not report.success:
            return Result.fail(
                f"Failed to assign {len(report.failed)} incident(s)",
                error=first_error,
                data=report,
            )

        report.dismiss_after = self.dismiss_seconds
        message = f"Assigned {len(report.succeeded)} incident(s)"
        if report.failed:
            message += f", {len(report.failed)} failed"
        return Result.ok(report, message=message)

    def _command(self, incident_id: int, user_id: int) -> OptimisticCommand:
        def apply() -> Incident | None:
            if self.store is None:
                return None
            before = self.store.get(incident_id)
            if before is not None:
                self.store.put(before.model_copy(update={"assigned_user_id": user_id}))
            return before

        def compensate(before: Incident | None) -> None:
            if self.store is not None and before is not None:
                self.store.put(before)

        return OptimisticCommand(
            f"assign:{incident_id}",
            commit=lambda: self.backend.notify_incident_assignment(incident_id, [user_id]),
            apply=apply,
            compensate=compensate,
        )
