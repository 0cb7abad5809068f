"""Host network configuration: resolver overrides, loopback alias, NetworkManager."""

from falcon.host.configurator import HostNetworkConfigurator
from falcon.host.store import HostConfigStore

__all__ = ["HostConfigStore", "HostNetworkConfigurator"]
