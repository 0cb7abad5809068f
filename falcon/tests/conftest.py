from __future__ import annotations

import queue
import threading

import pytest

from falcon.config import Settings
from falcon.host.cmd import CommandResult
from falcon.runtime import ContainerInfo, NetworkDescriptor

PROXY_NAME = "falcon-proxy"
PROXY_ID = "proxy0000000000000000"


class FakeStream:
    """Blocking, closable stand-in for docker's CancellableStream."""

    _END = object()

    def __init__(self):
        self._events: queue.Queue = queue.Queue()
        self.closed = False

    def __iter__(self):
        return self

    def __next__(self):
        item = self._events.get()
        if item is self._END:
            raise StopIteration
        return item

    def push(self, action: str = "connect", network_id: str = "net") -> None:
        self._events.put({"Type": "network", "Action": action, "Actor": {"ID": network_id}})

    def end(self) -> None:
        """Simulate the daemon dropping the connection."""
        self._events.put(self._END)

    def close(self) -> None:
        self.closed = True
        self._events.put(self._END)


class FakeRuntime:
    """In-memory Docker with a proxy container and bridge/overlay networks."""

    def __init__(self):
        self._lock = threading.Lock()
        # network_id -> {"driver", "default", "containers": set}
        self.networks: dict[str, dict] = {}
        self.calls: list[tuple[str, str]] = []
        self.streams: list[FakeStream] = []
        self.subscribe_filters_applied = True
        self.fail_list = False
        self.list_gate: threading.Event | None = None
        self.list_started = threading.Event()
        self.active_reconciles = 0
        self.max_active_reconciles = 0
        self.proxy_exists = True

    def add_network(self, network_id, driver="bridge", containers=(), default=False, proxy=False):
        members = set(containers)
        if proxy:
            members.add(PROXY_ID)
        with self._lock:
            self.networks[network_id] = {"driver": driver, "default": default, "containers": members}

    def set_containers(self, network_id, containers, proxy=None):
        with self._lock:
            members = set(containers)
            if proxy is None:
                proxy = PROXY_ID in self.networks[network_id]["containers"]
            if proxy:
                members.add(PROXY_ID)
            self.networks[network_id]["containers"] = members

    def remove_network(self, network_id):
        with self._lock:
            self.networks.pop(network_id, None)

    def membership(self) -> set[str]:
        with self._lock:
            return {nid for nid, net in self.networks.items() if PROXY_ID in net["containers"]}

    # RuntimeClient interface -------------------------------------------

    def inspect_container(self, name):
        from falcon.errors import ContainerNotFoundError

        if not self.proxy_exists:
            raise ContainerNotFoundError(name)
        with self._lock:
            self.active_reconciles += 1
            self.max_active_reconciles = max(self.max_active_reconciles, self.active_reconciles)
        return ContainerInfo(id=PROXY_ID, name=name, network_ids=frozenset(self.membership()))

    def list_networks(self, proxy_id):
        from falcon.errors import RuntimeSyncError

        try:
            if self.fail_list:
                raise RuntimeSyncError("Unable to list networks: boom")
            with self._lock:
                snapshot = [
                    NetworkDescriptor(
                        id=nid,
                        name=nid,
                        driver=net["driver"],
                        is_default_bridge=net["default"],
                        attached_container_count=len(net["containers"]),
                        proxy_is_attached=proxy_id in net["containers"],
                    )
                    for nid, net in self.networks.items()
                ]
            self.list_started.set()
            if self.list_gate is not None:
                self.list_gate.wait(timeout=5)
            return snapshot
        finally:
            with self._lock:
                self.active_reconciles -= 1

    def connect(self, network_id, container):
        self.calls.append(("connect", network_id))
        with self._lock:
            net = self.networks.get(network_id)
            if net is None or PROXY_ID in net["containers"]:
                return False
            net["containers"].add(PROXY_ID)
            return True

    def disconnect(self, network_id, container):
        self.calls.append(("disconnect", network_id))
        with self._lock:
            net = self.networks.get(network_id)
            if net is None or PROXY_ID not in net["containers"]:
                return False
            net["containers"].discard(PROXY_ID)
            return True

    def subscribe_network_events(self):
        stream = FakeStream()
        self.streams.append(stream)
        return stream


class FakeHostRunner:
    """Simulates the helper commands host configuration shells out to."""

    def __init__(self, loopback_address="192.168.40.1"):
        self.address = loopback_address
        self.alias_bound = False
        self.calls: list[list[str]] = []
        # argv prefix tuple -> CommandResult returned instead of simulating
        self.overrides: dict[tuple[str, ...], CommandResult] = {}

    def __call__(self, argv, input=None):
        argv = list(argv)
        self.calls.append(argv)
        for prefix, result in self.overrides.items():
            if tuple(argv[: len(prefix)]) == prefix:
                return result
        return self._simulate(argv)

    def _ok(self, argv, stdout=""):
        return CommandResult(argv, 0, stdout, "")

    def _simulate(self, argv):
        if argv[:2] == ["ip", "-4"]:
            lines = ["1: lo    inet 127.0.0.1/8 scope host lo"]
            if self.alias_bound:
                lines.append(f"1: lo    inet {self.address}/32 scope global lo")
            return self._ok(argv, "\n".join(lines) + "\n")
        if argv[:3] == ["ip", "addr", "add"]:
            if self.alias_bound:
                return CommandResult(argv, 2, "", "RTNETLINK answers: File exists")
            self.alias_bound = True
            return self._ok(argv)
        if argv[:3] == ["ip", "addr", "del"]:
            if not self.alias_bound:
                return CommandResult(argv, 2, "", "RTNETLINK answers: Cannot assign requested address")
            self.alias_bound = False
            return self._ok(argv)
        if argv[0] == "ifconfig" and len(argv) == 2:
            out = "lo0: flags=8049<UP,LOOPBACK,RUNNING,MULTICAST> mtu 16384\n\tinet 127.0.0.1 netmask 0xff000000\n"
            if self.alias_bound:
                out += f"\tinet {self.address} netmask 0xff000000\n"
            return self._ok(argv, out)
        if argv[0] == "ifconfig" and argv[2] == "alias":
            self.alias_bound = True
            return self._ok(argv)
        if argv[0] == "ifconfig" and argv[2] == "-alias":
            if not self.alias_bound:
                return CommandResult(argv, 1, "", "ifconfig: ioctl (SIOCDIFADDR): Can't assign requested address")
            self.alias_bound = False
            return self._ok(argv)
        if argv[:2] == ["systemctl", "reload"]:
            return self._ok(argv)
        return CommandResult(argv, 127, "", f"{argv[0]}: command not found")

    def ran(self, *prefix: str) -> int:
        return sum(1 for argv in self.calls if tuple(argv[: len(prefix)]) == prefix)


NM_CONF = "# Managed by the distro\n[main]\nplugins=ifupdown,keyfile\n\n[ifupdown]\nmanaged=false\n"
RESOLV_CONF = "nameserver 1.1.1.1\nsearch lan\n"


@pytest.fixture
def runtime() -> FakeRuntime:
    return FakeRuntime()


@pytest.fixture
def host_runner() -> FakeHostRunner:
    return FakeHostRunner()


@pytest.fixture
def host_settings(tmp_path) -> Settings:
    etc = tmp_path / "etc"
    nm_dir = etc / "NetworkManager"
    nm_dir.mkdir(parents=True)
    (nm_dir / "NetworkManager.conf").write_text(NM_CONF)
    (etc / "resolv.conf").write_text(RESOLV_CONF)
    nm_run = tmp_path / "run" / "NetworkManager"
    nm_run.mkdir(parents=True)
    (nm_run / "resolv.conf").write_text("nameserver 127.0.0.1\n")

    return Settings(
        use_sudo=False,
        resolver_dir=str(etc / "resolver"),
        resolv_conf_path=str(etc / "resolv.conf"),
        manager_config_path=str(nm_dir / "NetworkManager.conf"),
        manager_resolv_path=str(nm_run / "resolv.conf"),
        dnsmasq_dir=str(nm_dir / "dnsmasq.d"),
        state_dir=str(tmp_path / "state"),
    )
