"""Per-OS host networking adapters."""

from falcon.host.platforms.base import HostPlatformAdapter, Step
from falcon.host.platforms.registry import select_adapter

__all__ = ["HostPlatformAdapter", "Step", "select_adapter"]
