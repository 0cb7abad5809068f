"""Linux host networking via NetworkManager's dnsmasq plugin.

NetworkManager is told to run its own dnsmasq (``dns=dnsmasq``) and to own
/etc/resolv.conf, and a dnsmasq snippet maps ``*.<domain>`` to the loopback
alias. The original resolv.conf is moved aside so ``restore`` can put it
back exactly as it was, symlink or not.

Order matters: the NetworkManager.conf change is written (and fsynced)
before resolv.conf is handed over, and NetworkManager is reloaded last so it
picks up all of it at once.
"""

from __future__ import annotations

import logging
import os
import re

from falcon.host import nm_config
from falcon.host.platforms.base import HostPlatformAdapter, Step

logger = logging.getLogger(__name__)


class LinuxAdapter(HostPlatformAdapter):
    name = "linux"
    default_loopback_interface = "lo"
    alias_absent_re = re.compile(r"Cannot assign requested address")

    @property
    def alias_cidr(self) -> str:
        return f"{self.settings.loopback_address}/{self.settings.loopback_prefix}"

    @property
    def mapping_path(self) -> str:
        return os.path.join(self.settings.dnsmasq_dir, f"{self.settings.domain}.conf")

    @property
    def mapping_content(self) -> str:
        return f"address=/{self.settings.domain}/{self.settings.loopback_address}\n"

    @property
    def resolv_backup_path(self) -> str:
        return os.path.join(self.settings.state_dir, "resolv.conf.backup")

    @property
    def resolv_absent_marker(self) -> str:
        """Records that there was no resolv.conf to back up."""
        return os.path.join(self.settings.state_dir, "resolv.conf.absent")

    @property
    def reload_marker_path(self) -> str:
        return os.path.join(self.settings.state_dir, "reload-pending")

    def configure_steps(self) -> list[Step]:
        return [
            Step("add loopback alias", self.add_loopback_alias),
            Step("enable NetworkManager dnsmasq", self.enable_dnsmasq),
            Step("hand resolv.conf to NetworkManager", self.manage_resolv),
            Step("write dnsmasq domain mapping", self.add_mapping),
        ]

    def restore_steps(self) -> list[Step]:
        return [
            Step("restore resolv.conf", self.unmanage_resolv),
            Step("remove dnsmasq domain mapping", self.remove_mapping),
            Step("disable NetworkManager dnsmasq", self.disable_dnsmasq),
            Step("remove loopback alias", self.remove_loopback_alias),
        ]

    def reload_step(self) -> Step:
        return Step("reload NetworkManager", self.reload_network_manager)

    # ------------------------------------------------------------------
    # NetworkManager.conf
    # ------------------------------------------------------------------

    def enable_dnsmasq(self) -> bool:
        path = self.settings.manager_config_path
        text = self.store.read_text(path) or ""
        patched = nm_config.add_directive(text, path)
        for line in nm_config.conflicting_settings(patched):
            logger.warning(
                f"{path} also sets '{line}' in [main], which overrides "
                f"{nm_config.DNSMASQ_DIRECTIVE}; remove it for *.{self.settings.domain} to resolve"
            )
        if patched == text:
            return False
        self.store.write_atomic(path, patched)
        logger.info(f"Enabled {nm_config.DNSMASQ_DIRECTIVE} in {path}")
        return True

    def disable_dnsmasq(self) -> bool:
        path = self.settings.manager_config_path
        text = self.store.read_text(path)
        if text is None:
            return False
        patched = nm_config.remove_directive(text)
        if patched == text:
            return False
        self.store.write_atomic(path, patched)
        logger.info(f"Removed {nm_config.DNSMASQ_DIRECTIVE} from {path}")
        return True

    # ------------------------------------------------------------------
    # resolv.conf
    # ------------------------------------------------------------------

    def _resolv_is_managed(self) -> bool:
        resolv = self.settings.resolv_conf_path
        return (
            self.store.is_symlink(resolv)
            and self.store.readlink(resolv) == self.settings.manager_resolv_path
        )

    def manage_resolv(self) -> bool:
        resolv = self.settings.resolv_conf_path
        backup = self.resolv_backup_path
        if self._resolv_is_managed():
            return False

        if self.store.exists(backup):
            # A previous run already saved the original; whatever is at
            # resolv.conf now was recreated since and is not worth keeping.
            logger.warning(f"Keeping existing backup {backup}, replacing {resolv}")
            self.store.delete(resolv)
        elif self.store.exists(resolv):
            self.store.move(resolv, backup)
            logger.info(f"Backed up {resolv} to {backup}")
        elif not self.store.exists(self.resolv_absent_marker):
            self.store.ensure_file(self.resolv_absent_marker, "")

        self.store.symlink(self.settings.manager_resolv_path, resolv)
        logger.info(f"Linked {resolv} to {self.settings.manager_resolv_path}")
        return True

    def unmanage_resolv(self) -> bool:
        """Undo ``manage_resolv``.

        The link to NetworkManager's resolv.conf is only removed when falcon
        made it, i.e. when a backup or the absent marker exists.
        """
        resolv = self.settings.resolv_conf_path
        backup = self.resolv_backup_path
        absent_marker = self.resolv_absent_marker
        has_backup = self.store.exists(backup)
        had_no_resolv = self.store.exists(absent_marker)
        if not has_backup and not had_no_resolv:
            return False

        removed_link = self._resolv_is_managed()
        if removed_link:
            self.store.delete(resolv)

        if has_backup:
            if self.store.exists(resolv):
                logger.warning(f"Replacing {resolv} with the original from {backup}")
                self.store.delete(resolv)
            self.store.move(backup, resolv)
            logger.info(f"Restored {resolv} from {backup}")
        elif removed_link:
            logger.info(f"Removed {resolv}, there was none before falcon")
        self.store.ensure_absent(absent_marker)
        return True

    # ------------------------------------------------------------------
    # dnsmasq mapping
    # ------------------------------------------------------------------

    def add_mapping(self) -> bool:
        changed = self.store.ensure_file(self.mapping_path, self.mapping_content)
        if changed:
            logger.info(f"Wrote {self.mapping_path}")
        return changed

    def remove_mapping(self) -> bool:
        changed = self.store.ensure_absent(self.mapping_path)
        if changed:
            logger.info(f"Removed {self.mapping_path}")
        return changed

    # ------------------------------------------------------------------
    # Loopback alias
    # ------------------------------------------------------------------

    def loopback_alias_present(self) -> bool:
        result = self.store.run(
            ["ip", "-4", "-o", "addr", "show", "dev", self.loopback_interface]
        )
        if not result.ok:
            return False
        pattern = rf"\binet {re.escape(self.alias_cidr)}(\s|$)"
        return re.search(pattern, result.stdout) is not None

    def _add_alias_argv(self) -> list[str]:
        return ["ip", "addr", "add", self.alias_cidr, "dev", self.loopback_interface]

    def _remove_alias_argv(self) -> list[str]:
        return ["ip", "addr", "del", self.alias_cidr, "dev", self.loopback_interface]

    # ------------------------------------------------------------------
    # Reload
    # ------------------------------------------------------------------

    def reload_network_manager(self) -> bool:
        self.store.run_privileged(["systemctl", "reload", "NetworkManager"])
        logger.info("Reloaded NetworkManager")
        return True
