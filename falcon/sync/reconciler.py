"""Keeps the proxy container attached to the networks that need it.

Every pass starts from scratch: networks and the proxy's current
attachments are read from Docker, the eligible set is computed, and the
minimal set of connect/disconnect calls is issued. Nothing is carried over
between passes, so a failed pass is simply retried by the next one.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable

from falcon.runtime import BRIDGE_DRIVER, NetworkDescriptor, RuntimeClient

logger = logging.getLogger(__name__)


def is_eligible(network: NetworkDescriptor) -> bool:
    """Whether the proxy should be attached to ``network``.

    Only bridge networks qualify: the default bridge always, any other
    bridge once it holds a container other than the proxy.
    """
    if network.driver != BRIDGE_DRIVER:
        return False
    if network.is_default_bridge:
        return True
    count = network.attached_container_count
    return count > 1 or (count == 1 and not network.proxy_is_attached)


def desired_networks(networks: Iterable[NetworkDescriptor]) -> frozenset[str]:
    return frozenset(network.id for network in networks if is_eligible(network))


@dataclass(frozen=True)
class SyncDiff:
    """Networks to join and leave to move from the current to the desired set."""

    to_join: frozenset[str]
    to_leave: frozenset[str]

    @classmethod
    def compute(cls, desired: frozenset[str], current: frozenset[str]) -> SyncDiff:
        return cls(to_join=desired - current, to_leave=current - desired)

    @property
    def empty(self) -> bool:
        return not self.to_join and not self.to_leave


class MembershipReconciler:
    """Computes and applies the proxy's network membership diff."""

    def __init__(self, runtime: RuntimeClient, container_name: str):
        self.runtime = runtime
        self.container_name = container_name

    def plan(self) -> SyncDiff:
        """Read current state from Docker and compute the diff.

        Raises RuntimeSyncError if either lookup fails.
        """
        proxy = self.runtime.inspect_container(self.container_name)
        networks = self.runtime.list_networks(proxy.id)
        return SyncDiff.compute(desired_networks(networks), proxy.network_ids)

    def reconcile(self) -> SyncDiff:
        """Bring the proxy's attachments in line with the eligible networks.

        Joins go first so the proxy is never left without a network mid-pass.
        """
        diff = self.plan()
        if diff.empty:
            logger.debug(f"{self.container_name} network membership already in sync")
            return diff

        for network_id in sorted(diff.to_join):
            if self.runtime.connect(network_id, self.container_name):
                logger.info(f"Joined {self.container_name} to network {network_id[:12]}")

        for network_id in sorted(diff.to_leave):
            if self.runtime.disconnect(network_id, self.container_name):
                logger.info(f"Removed {self.container_name} from network {network_id[:12]}")

        return diff
