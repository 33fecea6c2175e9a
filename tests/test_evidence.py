"""
Tests for evidence verification.
"""

import asyncio

import pytest

from watchpost.errors import AuthorizationError, NetworkError
from watchpost.lifecycle import EvidenceVerificationTracker
from watchpost.models import Evidence, VerificationResult, VerificationStatus


@pytest.fixture
def loaded(backend):
    backend.evidence = {
        1: Evidence(id=1, incident_id=10, file_path="a.jpg", blockchain_tx_hash="0x01"),
        2: Evidence(id=2, incident_id=10, file_path="b.jpg"),
        3: Evidence(
            id=3,
            incident_id=11,
            blockchain_tx_hash="0x03",
            verification_status=VerificationStatus.VERIFIED,
        ),
    }
    return backend


def _tracker(backend, actor):
    tracker = EvidenceVerificationTracker(backend, lambda: actor)
    asyncio.run(tracker.refresh())
    return tracker


class TestVerify:
    """Tests for explicit verification."""

    def test_verified(self, loaded, viewer):
        """Test a verified result updates the item."""
        tracker = _tracker(loaded, viewer)
        result = asyncio.run(tracker.verify(1))

        assert result.success
        assert result.data.status == VerificationStatus.VERIFIED
        assert tracker.get(1).verification_status == VerificationStatus.VERIFIED

    def test_tampered(self, loaded, admin):
        """Test tampering is reported with both hashes."""
        loaded.verifications[1] = VerificationResult(
            evidence_id=1,
            status=VerificationStatus.TAMPERED,
            blockchain_hash="aaa",
            current_hash="bbb",
            message="Evidence has been tampered with",
        )
        tracker = _tracker(loaded, admin)
        result = asyncio.run(tracker.verify(1))

        assert result.success
        assert result.data.blockchain_hash == "aaa"
        assert result.data.current_hash == "bbb"
        assert tracker.get(1).verification_status == VerificationStatus.TAMPERED

    def test_unanchored_short_circuits(self, loaded, viewer):
        """Test evidence without a ledger hash is never sent for verification."""
        tracker = _tracker(loaded, viewer)
        result = asyncio.run(tracker.verify(2))

        assert result.success
        assert result.data.status == VerificationStatus.NOT_REGISTERED
        assert loaded.count("verify_evidence") == 0

    def test_security_rejected(self, loaded, security):
        """Test security personnel are refused before any request."""
        tracker = _tracker(loaded, security)
        result = asyncio.run(tracker.verify(1))

        assert isinstance(result.error, AuthorizationError)
        assert loaded.count("verify_evidence") == 0

    def test_forbidden_by_backend(self, loaded, viewer):
        """Test a 403 is reported as a permission problem."""
        loaded.fail("verify_evidence", AuthorizationError("Not your evidence"))
        tracker = _tracker(loaded, viewer)
        result = asyncio.run(tracker.verify(1))

        assert not result.success
        assert result.message == "You don't have permission to verify this evidence"

    def test_failure_keeps_status(self, loaded, viewer):
        """Test a failed request leaves the cached status alone."""
        loaded.fail("verify_evidence", NetworkError("offline"))
        tracker = _tracker(loaded, viewer)
        result = asyncio.run(tracker.verify(3))

        assert not result.success
        assert tracker.get(3).verification_status == VerificationStatus.VERIFIED

    def test_in_flight_guard(self, loaded, viewer):
        """Test a second verify while one is pending is refused."""
        tracker = _tracker(loaded, viewer)

        async def scenario():
            gate = loaded.gate("verify_evidence")
            first = asyncio.create_task(tracker.verify(1))
            await asyncio.sleep(0)
            second = await tracker.verify(1)
            gate.set()
            return await first, second

        first, second = asyncio.run(scenario())
        assert first.success
        assert not second.success
        assert loaded.count("verify_evidence") == 1


class TestOverrides:
    """Tests for session overrides of listed statuses."""

    def test_override_survives_refresh(self, loaded, viewer):
        """Test a verified result wins over the list endpoint for the session."""
        loaded.verifications[3] = VerificationResult(
            evidence_id=3,
            status=VerificationStatus.FILE_MISSING,
        )
        tracker = _tracker(loaded, viewer)
        asyncio.run(tracker.verify(3))
        asyncio.run(tracker.refresh())

        assert loaded.evidence[3].verification_status == VerificationStatus.VERIFIED
        assert tracker.get(3).verification_status == VerificationStatus.FILE_MISSING

    def test_refresh_failure_keeps_items(self, loaded, viewer):
        """Test a failed refresh keeps the previous list."""
        tracker = _tracker(loaded, viewer)
        loaded.fail("list_evidence_for_current_user", NetworkError("offline"))

        result = asyncio.run(tracker.refresh())
        assert not result.success
        assert len(tracker.items) == 3


class TestRefreshOrdering:
    """Tests for overlapping and late evidence refreshes."""

    def test_older_response_discarded(self, loaded, viewer):
        """Test a response that finishes after a newer one leaves the newer list."""
        tracker = EvidenceVerificationTracker(loaded, lambda: viewer)
        everything = list(loaded.evidence.values())

        async def scenario():
            old, new = asyncio.Event(), asyncio.Event()
            answers = [(old, everything[:1]), (new, everything)]

            async def fetch():
                event, items = answers.pop(0)
                await event.wait()
                return items

            loaded.list_evidence_for_current_user = fetch
            first = asyncio.create_task(tracker.refresh())
            second = asyncio.create_task(tracker.refresh())
            await asyncio.sleep(0)
            new.set()
            await second
            old.set()
            stale = await first
            return stale, [i.id for i in tracker.items]

        stale, ids = asyncio.run(scenario())
        assert ids == [1, 2, 3]
        assert [i.id for i in stale.data] == [1, 2, 3]

    def test_response_after_close_dropped(self, loaded, viewer):
        """Test a refresh that lands after close does not touch the items."""
        tracker = EvidenceVerificationTracker(loaded, lambda: viewer)

        async def scenario():
            gate = loaded.gate("list_evidence_for_current_user")
            pending = asyncio.create_task(tracker.refresh())
            await asyncio.sleep(0)
            tracker.close()
            gate.set()
            return await pending

        result = asyncio.run(scenario())
        assert result.success
        assert result.data == []
        assert tracker.items == []
