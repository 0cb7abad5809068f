"""Docker runtime access for falcon.

Wraps the small part of the Docker Engine API that network syncing needs:
listing networks with their attached containers, inspecting the proxy
container, connecting/disconnecting it, and subscribing to network events.
All Docker SDK errors are translated into ``RuntimeSyncError`` here so the
rest of falcon never imports ``docker.errors``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterator

import docker
from docker.errors import APIError, DockerException, NotFound

from falcon.config import Settings
from falcon.errors import ContainerNotFoundError, RuntimeSyncError

logger = logging.getLogger(__name__)

BRIDGE_DRIVER = "bridge"
DEFAULT_BRIDGE_OPTION = "com.docker.network.bridge.default_bridge"

# Only these events can change which networks the proxy should be on.
NETWORK_EVENT_FILTERS = {"type": "network", "event": ["connect", "disconnect"]}


@dataclass(frozen=True)
class NetworkDescriptor:
    """Point-in-time view of one Docker network."""

    id: str
    name: str
    driver: str
    is_default_bridge: bool
    attached_container_count: int
    proxy_is_attached: bool


@dataclass(frozen=True)
class ContainerInfo:
    """Point-in-time view of a container's network attachments."""

    id: str
    name: str
    network_ids: frozenset[str]


def describe_network(attrs: dict[str, Any], proxy_id: str) -> NetworkDescriptor:
    """Build a NetworkDescriptor from ``inspect_network`` output."""
    containers = attrs.get("Containers") or {}
    options = attrs.get("Options") or {}
    return NetworkDescriptor(
        id=attrs["Id"],
        name=attrs.get("Name", ""),
        driver=attrs.get("Driver", ""),
        is_default_bridge=options.get(DEFAULT_BRIDGE_OPTION) == "true",
        attached_container_count=len(containers),
        proxy_is_attached=proxy_id in containers,
    )


class RuntimeClient:
    """Narrow capability interface over the Docker daemon."""

    def __init__(self, docker_client: docker.DockerClient):
        self.docker = docker_client

    @classmethod
    def from_settings(cls, settings: Settings) -> RuntimeClient:
        try:
            if settings.docker_host:
                client = docker.DockerClient(base_url=settings.docker_host)
            else:
                client = docker.from_env()
        except DockerException as e:
            raise RuntimeSyncError(f"Unable to connect to Docker: {e}") from e
        return cls(client)

    def list_networks(self, proxy_id: str) -> list[NetworkDescriptor]:
        """List every network with its attached containers.

        The list endpoint does not report attached containers, so each
        network is inspected. Networks removed between the two calls are
        skipped.
        """
        try:
            summaries = self.docker.api.networks()
        except DockerException as e:
            raise RuntimeSyncError(f"Unable to list networks: {e}") from e

        descriptors = []
        for summary in summaries:
            network_id = summary["Id"]
            try:
                attrs = self.docker.api.inspect_network(network_id)
            except NotFound:
                logger.debug(f"Network {network_id[:12]} vanished during listing")
                continue
            except DockerException as e:
                raise RuntimeSyncError(f"Unable to inspect network {network_id[:12]}: {e}") from e
            descriptors.append(describe_network(attrs, proxy_id))
        return descriptors

    def inspect_container(self, name: str) -> ContainerInfo:
        """Return the container's ID and the IDs of the networks it is on."""
        try:
            container = self.docker.containers.get(name)
        except NotFound as e:
            raise ContainerNotFoundError(name) from e
        except DockerException as e:
            raise RuntimeSyncError(f"Unable to inspect container {name}: {e}") from e

        networks = container.attrs.get("NetworkSettings", {}).get("Networks") or {}
        network_ids = frozenset(
            endpoint["NetworkID"]
            for endpoint in networks.values()
            if endpoint and endpoint.get("NetworkID")
        )
        return ContainerInfo(id=container.id, name=name, network_ids=network_ids)

    def connect(self, network_id: str, container: str) -> bool:
        """Attach a container to a network.

        Returns False when it was already attached or the network is gone.
        """
        try:
            self.docker.api.connect_container_to_network(container, network_id)
        except NotFound:
            logger.warning(f"Network {network_id[:12]} no longer exists, not joining")
            return False
        except APIError as e:
            if "already exists" in str(e).lower():
                return False
            raise RuntimeSyncError(f"Unable to connect {container} to {network_id[:12]}: {e}") from e
        except DockerException as e:
            raise RuntimeSyncError(f"Unable to connect {container} to {network_id[:12]}: {e}") from e
        return True

    def disconnect(self, network_id: str, container: str) -> bool:
        """Detach a container from a network.

        Returns False when it was not attached or the network is gone.
        """
        try:
            self.docker.api.disconnect_container_from_network(container, network_id)
        except NotFound:
            return False
        except APIError as e:
            if "is not connected" in str(e).lower():
                return False
            raise RuntimeSyncError(f"Unable to disconnect {container} from {network_id[:12]}: {e}") from e
        except DockerException as e:
            raise RuntimeSyncError(f"Unable to disconnect {container} from {network_id[:12]}: {e}") from e
        return True

    def subscribe_network_events(self) -> Iterator[dict[str, Any]]:
        """Open a stream of network connect/disconnect events.

        The returned stream blocks while iterating; call ``close()`` on it
        from another thread to unblock and release the connection.
        """
        try:
            return self.docker.events(decode=True, filters=NETWORK_EVENT_FILTERS)
        except DockerException as e:
            raise RuntimeSyncError(f"Unable to subscribe to Docker events: {e}") from e
