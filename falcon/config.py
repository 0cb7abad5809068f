"""falcon configuration."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """falcon settings loaded from environment variables.

    A single instance is built by the CLI and handed to each component.
    """

    debug: bool = False

    # Docker
    docker_host: str = ""  # Falls back to DOCKER_HOST / the default socket
    proxy_container_name: str = "falcon-proxy"

    # Wildcard domain and the loopback alias it resolves to
    domain: str = "docker"
    loopback_address: str = "192.168.40.1"
    loopback_prefix: int = 32
    loopback_interface: str = ""  # Platform default if empty (lo0 / lo)

    # macOS resolver overrides
    resolver_dir: str = "/etc/resolver"

    # Linux NetworkManager + dnsmasq
    resolv_conf_path: str = "/etc/resolv.conf"
    manager_config_path: str = "/etc/NetworkManager/NetworkManager.conf"
    manager_resolv_path: str = "/var/run/NetworkManager/resolv.conf"
    dnsmasq_dir: str = "/etc/NetworkManager/dnsmasq.d"

    # Backups of files falcon replaces
    state_dir: str = "/var/lib/falcon"

    # Escalate helper commands with sudo when not running as root
    use_sudo: bool = True

    # Seconds to wait before resubscribing to a dropped event stream
    event_backoff: float = 2.0

    # Override platform detection ("darwin" or "linux")
    platform: str = ""

    class Config:
        env_prefix = "FALCON_"
