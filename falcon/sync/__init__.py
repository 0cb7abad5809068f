"""Proxy network membership syncing."""

from falcon.sync.daemon import SyncDaemon
from falcon.sync.reconciler import MembershipReconciler, SyncDiff, is_eligible

__all__ = ["MembershipReconciler", "SyncDaemon", "SyncDiff", "is_eligible"]
