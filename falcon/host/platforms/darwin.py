"""macOS host networking.

macOS resolves ``*.<domain>`` through a per-domain file in /etc/resolver
pointing at the loopback alias, where the dnsmasq container answers. The
alias itself is what makes inter-container traffic work: requests to
``*.<domain>`` land on an address that routes back out through the host to
the proxy instead of looping back into the calling container.
"""

from __future__ import annotations

import logging
import os
import re

from falcon.host.platforms.base import HostPlatformAdapter, Step

logger = logging.getLogger(__name__)


class DarwinAdapter(HostPlatformAdapter):
    name = "darwin"
    default_loopback_interface = "lo0"
    alias_absent_re = re.compile(r"SIOCDIFADDR|Can't assign requested address")

    @property
    def resolver_path(self) -> str:
        return os.path.join(self.settings.resolver_dir, self.settings.domain)

    @property
    def resolver_content(self) -> str:
        return f"nameserver {self.settings.loopback_address}\n"

    def configure_steps(self) -> list[Step]:
        return [
            Step("add resolver override", self.add_resolver),
            Step("add loopback alias", self.add_loopback_alias),
        ]

    def restore_steps(self) -> list[Step]:
        return [
            Step("remove loopback alias", self.remove_loopback_alias),
            Step("remove resolver override", self.remove_resolver),
        ]

    def add_resolver(self) -> bool:
        changed = self.store.ensure_file(self.resolver_path, self.resolver_content)
        if changed:
            logger.info(f"Wrote {self.resolver_path}")
        return changed

    def remove_resolver(self) -> bool:
        changed = self.store.ensure_absent(self.resolver_path)
        if changed:
            logger.info(f"Removed {self.resolver_path}")
        return changed

    def loopback_alias_present(self) -> bool:
        result = self.store.run(["ifconfig", self.loopback_interface])
        if not result.ok:
            return False
        pattern = rf"\binet {re.escape(self.settings.loopback_address)}\b"
        return re.search(pattern, result.stdout) is not None

    def _add_alias_argv(self) -> list[str]:
        return ["ifconfig", self.loopback_interface, "alias", self.settings.loopback_address]

    def _remove_alias_argv(self) -> list[str]:
        return ["ifconfig", self.loopback_interface, "-alias", self.settings.loopback_address]
