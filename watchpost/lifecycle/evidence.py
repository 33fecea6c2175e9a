"""Evidence verification tracker."""

from __future__ import annotations

from typing import Callable

import structlog

from watchpost.backend.base import Backend
from watchpost.errors import AuthorizationError, IdentityPendingError, WatchpostError
from watchpost.lifecycle.optimistic import OptimisticCommand
from watchpost.models.evidence import Evidence, VerificationResult, VerificationStatus
from watchpost.models.result import Result
from watchpost.models.user import Role, User

logger = structlog.get_logger(__name__)


class EvidenceVerificationTracker:
    """
    Evidence list for the current actor plus on-demand tamper checks.

    Results of explicit verification override the statuses reported by the
    list endpoint for the rest of the session, including across refreshes.
    """

    def __init__(self, backend: Backend, actor: Callable[[], User | None]):
        self.backend = backend
        self._actor = actor
        self._items: dict[int, Evidence] = {}
        self._overrides: dict[int, VerificationStatus] = {}
        self._in_flight: set[int] = set()
        self._issued = 0
        self._applied = 0
        self._active = True

    @property
    def items(self) -> list[Evidence]:
        return list(self._items.values())

    def get(self, evidence_id: int) -> Evidence | None:
        return self._items.get(evidence_id)

    def in_flight(self, evidence_id: int) -> bool:
        return evidence_id in self._in_flight

    async def refresh(self) -> Result[list[Evidence]]:
        """
        Reload the evidence list.

        Responses are applied in request order: one that arrives after a
        newer response, or after ``close()``, leaves the items untouched.
        """
        self._issued += 1
        sequence = self._issued

        try:
            evidence = await self.backend.list_evidence_for_current_user()
        except WatchpostError as e:
            logger.warning("Evidence refresh failed", error=e.message)
            return Result.from_error(e)

        if not self._active:
            logger.debug("Dropping evidence refresh after close", sequence=sequence)
            return Result.ok(self.items)
        if sequence < self._applied:
            logger.debug("Discarding stale evidence refresh", sequence=sequence, applied=self._applied)
            return Result.ok(self.items)

        self._items = {item.id: self._overridden(item) for item in evidence}
        self._applied = sequence
        return Result.ok(self.items)

    def close(self) -> None:
        self._active = False

    async def verify(self, evidence_id: int) -> Result[VerificationResult]:
        actor = self._actor()
        if actor is None:
            return Result.from_error(IdentityPendingError())
        if actor.role == Role.SECURITY:
            return Result.from_error(
                AuthorizationError("Security personnel cannot verify evidence")
            )
        if evidence_id in self._in_flight:
            return Result.fail("Verification already in progress")

        item = self._items.get(evidence_id)
        if item is not None and not item.is_anchored:
            result = VerificationResult(
                evidence_id=evidence_id,
                status=VerificationStatus.NOT_REGISTERED,
                message="Evidence is not registered on the blockchain",
            )
            return Result.ok(result, message=result.message)

        command = OptimisticCommand(
            f"verify:{evidence_id}",
            commit=lambda: self.backend.verify_evidence(evidence_id),
            on_success=self._record,
        )

        self._in_flight.add(evidence_id)
        try:
            result = await command.run()
        finally:
            self._in_flight.discard(evidence_id)

        if not result.success:
            if isinstance(result.error, AuthorizationError):
                return Result.fail(
                    "You don't have permission to verify this evidence",
                    error=result.error,
                )
            return result

        logger.info(
            "Evidence verified",
            evidence_id=evidence_id,
            status=result.data.status.value,
        )
        return Result.ok(result.data, message=result.data.message)

    def _record(self, outcome: VerificationResult) -> None:
        self._overrides[outcome.evidence_id] = outcome.status
        item = self._items.get(outcome.evidence_id)
        if item is not None:
            self._items[item.id] = self._overridden(item)

    def _overridden(self, item: Evidence) -> Evidence:
        status = self._overrides.get(item.id)
        if status is None or status == item.verification_status:
            return item
        return item.model_copy(update={"verification_status": status})
