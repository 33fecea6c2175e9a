"""
Tests for incident assignment.
"""

import asyncio

import pytest

from watchpost.errors import BackendError, NetworkError
from watchpost.lifecycle import AssignmentDispatcher, IncidentListStore


@pytest.fixture
def store(backend, make_incident):
    backend.incidents = {i: make_incident(i) for i in (1, 2, 3)}
    store = IncidentListStore()
    asyncio.run(store.refresh(backend.list_incidents))
    return store


class TestAssign:
    """Tests for assignment fan-out."""

    def test_all_succeed(self, backend, store, security):
        """Test one notification per incident."""
        dispatcher = AssignmentDispatcher(backend, store)
        result = asyncio.run(dispatcher.assign([1, 2, 3], security.id))

        assert result.success
        assert sorted(result.data.succeeded) == [1, 2, 3]
        assert result.data.failed == []
        assert result.data.dismiss_after == 1.5
        assert backend.count("notify_incident_assignment") == 3
        assert all(store.get(i).assigned_user_id == security.id for i in (1, 2, 3))

    def test_partial_failure(self, backend, store, security):
        """Test one failure does not sink the others."""
        backend.fail("notify_incident_assignment", BackendError("Incident closed"), key=2)
        dispatcher = AssignmentDispatcher(backend, store)

        result = asyncio.run(dispatcher.assign([1, 2, 3], [security.id]))

        assert result.success
        assert sorted(result.data.succeeded) == [1, 3]
        assert [(f.incident_id, f.reason) for f in result.data.failed] == [(2, "Incident closed")]
        assert store.get(2).assigned_user_id is None
        assert store.get(1).assigned_user_id == security.id

    def test_all_fail(self, backend, store, security):
        """Test the request fails only when every incident failed."""
        backend.fail("notify_incident_assignment", BackendError("down"))
        dispatcher = AssignmentDispatcher(backend, store)

        result = asyncio.run(dispatcher.assign([1, 2], security.id))

        assert not result.success
        assert len(result.data.failed) == 2
        assert result.data.dismiss_after is None
        assert all(store.get(i).assigned_user_id is None for i in (1, 2))

    def test_requests_run_concurrently(self, backend, store, security):
        """Test all notifications are in flight at once."""
        dispatcher = AssignmentDispatcher(backend, store)

        async def scenario():
            gate = backend.gate("notify_incident_assignment")
            task = asyncio.create_task(dispatcher.assign([1, 2, 3], security.id))
            await asyncio.sleep(0.01)
            in_flight = backend.count("notify_incident_assignment")
            gate.set()
            await task
            return in_flight

        assert asyncio.run(scenario()) == 3

    def test_empty_selection(self, backend, security):
        """Test at least one incident must be selected."""
        result = asyncio.run(AssignmentDispatcher(backend).assign([], security.id))
        assert not result.success
        assert backend.count("notify_incident_assignment") == 0

    @pytest.mark.parametrize("users", [None, [], [3, 5]])
    def test_exactly_one_user(self, backend, users):
        """Test a single security user must be chosen."""
        result = asyncio.run(AssignmentDispatcher(backend).assign([1], users))
        assert not result.success
        assert backend.count("notify_incident_assignment") == 0

    def test_without_store(self, backend, store, security):
        """Test the dispatcher works without a local list."""
        result = asyncio.run(AssignmentDispatcher(backend).assign([1], security.id))
        assert result.success
        assert backend.incidents[1].assigned_user_id == security.id

    def test_custom_dismiss_delay(self, backend, store, security):
        """Test the dismiss delay is configurable."""
        dispatcher = AssignmentDispatcher(backend, store, dismiss_seconds=3)
        assert asyncio.run(dispatcher.assign([1], security.id)).data.dismiss_after == 3


class TestCandidates:
    """Tests for the assignee list."""

    def test_only_security(self, backend, security, second_security):
        """Test only security personnel are offered."""
        result = asyncio.run(AssignmentDispatcher(backend).candidates())
        assert {u.id for u in result.data} == {security.id, second_security.id}


class TestAssigneeRole:
    """Tests for who incidents can be assigned to."""

    @pytest.mark.parametrize("target", ["viewer", "admin"])
    def test_non_security_refused(self, backend, store, target, request):
        """Test nothing is sent when the target is not security personnel."""
        user = request.getfixturevalue(target)
        result = asyncio.run(AssignmentDispatcher(backend, store).assign([1, 2], user.id))

        assert not result.success
        assert result.message == "Selected user is not security personnel"
        assert backend.count("notify_incident_assignment") == 0
        assert store.get(1).assigned_user_id is None

    def test_unknown_user_refused(self, backend, store):
        """Test an id that matches no user is refused."""
        result = asyncio.run(AssignmentDispatcher(backend, store).assign([1], 999))
        assert not result.success
        assert backend.count("notify_incident_assignment") == 0

    def test_user_list_unavailable(self, backend, store, security):
        """Test assignment fails cleanly when users cannot be loaded."""
        backend.fail("list_users", NetworkError("offline"))
        result = asyncio.run(AssignmentDispatcher(backend, store).assign([1], security.id))
        assert not result.success
        assert isinstance(result.error, NetworkError)
        assert backend.count("notify_incident_assignment") == 0
