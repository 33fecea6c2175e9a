"""
Tests for the acknowledgement state machine and optimistic commands.
"""

import asyncio

import pytest

from watchpost.errors import AuthorizationError, BackendError, IdentityPendingError, NetworkError
from watchpost.lifecycle import IncidentListStore, IncidentStateMachine, OptimisticCommand
from watchpost.models import IncidentStatus


@pytest.fixture
def store(backend, make_incident):
    backend.incidents = {
        1: make_incident(1),
        2: make_incident(2, status=IncidentStatus.ACKNOWLEDGED),
    }
    store = IncidentListStore()
    asyncio.run(store.refresh(backend.list_incidents))
    return store


def _machine(backend, store, actor):
    return IncidentStateMachine(backend, store, lambda: actor)


class TestAcknowledge:
    """Tests for the pending -> acknowledged transition."""

    def test_security_acknowledge_stamps_assignee(self, backend, store, security):
        """Test a security actor becomes the assignee."""
        result = asyncio.run(_machine(backend, store, security).acknowledge(1))

        assert result.success
        assert result.message == "Incident handled. Admin and reporter have been notified."
        incident = store.get(1)
        assert incident.acknowledged
        assert incident.assigned_user_id == security.id
        assert incident.assigned_user == security
        assert backend.incidents[1].acknowledged

    def test_admin_acknowledge_leaves_assignee(self, backend, store, admin):
        """Test admins acknowledge without taking the incident."""
        result = asyncio.run(_machine(backend, store, admin).acknowledge(1))
        assert result.success
        assert store.get(1).assigned_user_id is None

    def test_already_acknowledged_is_noop(self, backend, store, security):
        """Test acknowledging twice makes no second request."""
        result = asyncio.run(_machine(backend, store, security).acknowledge(2))
        assert result.success
        assert backend.count("set_incident_acknowledged") == 0

    def test_viewer_rejected(self, backend, store, viewer):
        """Test viewers cannot acknowledge."""
        result = asyncio.run(_machine(backend, store, viewer).acknowledge(1))
        assert isinstance(result.error, AuthorizationError)
        assert not store.get(1).acknowledged
        assert backend.count("set_incident_acknowledged") == 0

    def test_unresolved_actor(self, backend, store):
        """Test nothing happens before identity is known."""
        result = asyncio.run(_machine(backend, store, None).acknowledge(1))
        assert isinstance(result.error, IdentityPendingError)

    def test_unknown_incident(self, backend, store, security):
        """Test acknowledging an incident not in the list."""
        result = asyncio.run(_machine(backend, store, security).acknowledge(99))
        assert not result.success


class TestRollback:
    """Tests for compensation on failure."""

    @pytest.mark.parametrize(
        "error",
        [BackendError("Incident locked", status_code=409), NetworkError("offline")],
    )
    def test_failure_restores_exact_state(self, backend, store, security, error):
        """Test a failed request leaves the incident exactly as before."""
        before = store.get(1)
        backend.fail("set_incident_acknowledged", error)

        result = asyncio.run(_machine(backend, store, security).acknowledge(1))

        assert not result.success
        assert result.message == error.message
        assert store.get(1) == before

    def test_failure_drops_pin(self, backend, store, security):
        """Test a rolled back change is not re-applied by the next refresh."""
        backend.fail("set_incident_acknowledged", BackendError("nope"))
        asyncio.run(_machine(backend, store, security).acknowledge(1))
        asyncio.run(store.refresh(backend.list_incidents))
        assert not store.get(1).acknowledged

    def test_unexpected_error_compensates_and_raises(self, backend, store, security):
        """Test non-classified errors still roll back before propagating."""
        before = store.get(1)
        backend.fail("set_incident_acknowledged", RuntimeError("bug"))

        with pytest.raises(RuntimeError):
            asyncio.run(_machine(backend, store, security).acknowledge(1))
        assert store.get(1) == before


class TestConcurrency:
    """Tests for in-flight handling."""

    def test_duplicate_submission_rejected(self, backend, store, security):
        """Test a second acknowledge while one is pending is refused."""
        machine = _machine(backend, store, security)

        async def scenario():
            gate = backend.gate("set_incident_acknowledged")
            first = asyncio.create_task(machine.acknowledge(1))
            await asyncio.sleep(0)
            assert machine.in_flight(1)
            assert store.get(1).acknowledged  # applied before the response
            second = await machine.acknowledge(1)
            gate.set()
            return await first, second

        first, second = asyncio.run(scenario())
        assert first.success
        assert not second.success
        assert second.message == "Acknowledgement already in progress"
        assert backend.count("set_incident_acknowledged") == 1
        assert not machine.in_flight(1)

    def test_stale_refresh_does_not_revert(self, backend, store, security, make_incident):
        """Test a refresh started before the acknowledgement cannot undo it."""
        machine = _machine(backend, store, security)
        stale = [make_incident(1), make_incident(2, status=IncidentStatus.ACKNOWLEDGED)]

        async def slow_fetch():
            await asyncio.sleep(0.01)
            return stale

        async def scenario():
            refresh = asyncio.create_task(store.refresh(slow_fetch))
            await asyncio.sleep(0)
            await machine.acknowledge(1)
            await refresh

        asyncio.run(scenario())
        assert store.get(1).acknowledged
        assert store.get(1).assigned_user_id == security.id

    def test_pin_released_once_backend_agrees(self, backend, store, security):
        """Test the pin is dropped when the backend reports the change."""
        machine = _machine(backend, store, security)
        asyncio.run(machine.acknowledge(1))
        asyncio.run(store.refresh(backend.list_incidents))

        # The backend now reverts it (e.g. revoked elsewhere); no pin remains
        backend.incidents[1] = backend.incidents[1].model_copy(
            update={"status": IncidentStatus.PENDING}
        )
        asyncio.run(store.refresh(backend.list_incidents))
        assert not store.get(1).acknowledged


class TestOptimisticCommand:
    """Tests for the generic command."""

    def test_success_calls_hook(self):
        """Test on_success receives the committed value."""
        seen = []

        async def commit():
            return 42

        command = OptimisticCommand("x", commit=commit, on_success=seen.append)
        result = asyncio.run(command.run())
        assert result.success and result.data == 42
        assert seen == [42]

    def test_compensate_gets_snapshot(self):
        """Test compensation receives what apply returned."""
        state = {"value": 1}
        restored = []

        def apply():
            snapshot = dict(state)
            state["value"] = 2
            return snapshot

        def compensate(snapshot):
            restored.append(snapshot)
            state.update(snapshot)

        async def commit():
            raise BackendError("no")

        command = OptimisticCommand("x", commit=commit, apply=apply, compensate=compensate)
        result = asyncio.run(command.run())
        assert not result.success
        assert restored == [{"value": 1}]
        assert state == {"value": 1}
