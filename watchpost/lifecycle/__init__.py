"""Incident and evidence lifecycle components."""

from watchpost.lifecycle.visibility import SecurityBuckets, VisibilityFilter
from watchpost.lifecycle.store import IncidentListStore, RefreshOutcome
from watchpost.lifecycle.optimistic import OptimisticCommand
from watchpost.lifecycle.acknowledgement import IncidentStateMachine
from watchpost.lifecycle.sos import EmergencyDialer, SOSContext, SOSEscalationHandler
from watchpost.lifecycle.evidence import EvidenceVerificationTracker
from watchpost.lifecycle.assignment import (
    AssignmentDispatcher,
    AssignmentFailure,
    AssignmentReport,
)
from watchpost.lifecycle.reports import ReportSubmitter
from watchpost.lifecycle.notifications import HandledReportNotice, HandledReportNotifier
from watchpost.lifecycle.polling import Poller

__all__ = [
    # Visibility
    "SecurityBuckets",
    "VisibilityFilter",
    # List state
    "IncidentListStore",
    "RefreshOutcome",
    "Poller",
    # Transitions
    "OptimisticCommand",
    "IncidentStateMachine",
    # Escalation
    "EmergencyDialer",
    "SOSContext",
    "SOSEscalationHandler",
    # Evidence
    "EvidenceVerificationTracker",
    # Assignment
    "AssignmentDispatcher",
    "AssignmentFailure",
    "AssignmentReport",
    # Viewer reports
    "ReportSubmitter",
    "HandledReportNotice",
    "HandledReportNotifier",
]
