"""Host platform selection."""

from __future__ import annotations

import logging
import sys

from falcon.config import Settings
from falcon.errors import UnsupportedPlatformError
from falcon.host.platforms.base import HostPlatformAdapter
from falcon.host.platforms.darwin import DarwinAdapter
from falcon.host.platforms.linux import LinuxAdapter
from falcon.host.store import HostConfigStore

logger = logging.getLogger(__name__)

_ADAPTERS: dict[str, type[HostPlatformAdapter]] = {
    DarwinAdapter.name: DarwinAdapter,
    LinuxAdapter.name: LinuxAdapter,
}


def detect_platform() -> str:
    if sys.platform.startswith("linux"):
        return "linux"
    return sys.platform


def select_adapter(settings: Settings, store: HostConfigStore) -> HostPlatformAdapter:
    """Build the adapter for the configured (or detected) platform."""
    platform = (settings.platform or detect_platform()).lower()
    adapter_cls = _ADAPTERS.get(platform)
    if adapter_cls is None:
        raise UnsupportedPlatformError(platform)
    logger.debug(f"Using {adapter_cls.__name__} for host networking")
    return adapter_cls(settings, store)
