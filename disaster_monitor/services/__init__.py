"""Service layer for the Natural Disaster Monitor.

This package holds the logic that sits between the Flask route
handlers and the database models: severity classification, Live
Activity push delivery over APNs, and the one-time import of the
legacy JSON store.

Nothing in this package performs HTTP request handling. Route
handlers raise the exceptions in ``disaster_monitor.errors``; the
push and migration services log their failures and never raise to
their callers.
"""

from .severity import SeverityTier, classify_severity
from .live_activity import (
    DeliveryOutcome,
    LiveActivityDispatcher,
    NullLiveActivityDispatcher,
    build_live_activity_payload,
    classify_outcome,
    create_dispatcher,
)
from .legacy_migration import MigrationSummary, migrate_legacy_store

__all__ = [
    "SeverityTier",
    "classify_severity",
    "DeliveryOutcome",
    "LiveActivityDispatcher",
    "NullLiveActivityDispatcher",
    "build_live_activity_payload",
    "classify_outcome",
    "create_dispatcher",
    "MigrationSummary",
    "migrate_legacy_store",
]
