"""Apply-now, confirm-later commands with compensation on failure."""

from __future__ import annotations

from typing import Any, Awaitable, Callable, Generic, TypeVar

import structlog

from watchpost.errors import WatchpostError
from watchpost.models.result import Result

logger = structlog.get_logger(__name__)

S = TypeVar("S")  # snapshot taken by apply()
T = TypeVar("T")  # value produced by commit()


class OptimisticCommand(Generic[S, T]):
    """
    A local change applied before the backend confirms it.

    ``apply`` runs synchronously and returns a snapshot of whatever it
    changed; ``commit`` performs the backend call; ``compensate`` receives
    the snapshot and restores it if the commit fails. Classified failures
    become a failed ``Result``; anything else is compensated and re-raised.
    """

    def __init__(
        self,
        name: str,
        commit: Callable[[], Awaitable[T]],
        apply: Callable[[], S] | None = None,
        compensate: Callable[[S], None] | None = None,
        on_success: Callable[[T], Any] | None = None,
    ):
        self.name = name
        self._commit = commit
        self._apply = apply
        self._compensate = compensate
        self._on_success = on_success

    async def run(self) -> Result[T]:
        snapshot = self._apply() if self._apply else None

        try:
            value = await self._commit()
        except WatchpostError as e:
            self._rollback(snapshot)
            logger.warning("Command failed, rolled back", command=self.name, error=e.message)
            return Result.from_error(e)
        except BaseException:
            self._rollback(snapshot)
            raise

        if self._on_success:
            self._on_success(value)
        return Result.ok(value)

    def _rollback(self, snapshot: S | None) -> None:
        if self._compensate:
            self._compensate(snapshot)
