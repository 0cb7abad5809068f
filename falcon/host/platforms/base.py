"""Host platform abstraction for falcon's network configuration."""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable

from falcon.config import Settings
from falcon.errors import AlreadyAbsentError, CommandFailedError
from falcon.host.store import HostConfigStore


@dataclass(frozen=True)
class Step:
    """One idempotent host mutation.

    ``apply`` inspects the host, acts only if needed, and returns True when
    it changed something.
    """

    name: str
    apply: Callable[[], bool]


class HostPlatformAdapter(ABC):
    """Configure/restore step sequences for one operating system.

    Concrete adapters only describe steps; running them in order, stopping
    or continuing on failure, and reloading afterwards is the configurator's
    job.
    """

    name: str = ""
    default_loopback_interface: str = ""
    # Output of a failed alias removal that means "was never there"
    alias_absent_re: re.Pattern[str] = re.compile(r"$^")

    def __init__(self, settings: Settings, store: HostConfigStore):
        self.settings = settings
        self.store = store

    @property
    def loopback_interface(self) -> str:
        return self.settings.loopback_interface or self.default_loopback_interface

    @abstractmethod
    def configure_steps(self) -> list[Step]:
        """Steps that take the host from unconfigured to configured, in order."""

    @abstractmethod
    def restore_steps(self) -> list[Step]:
        """Steps that undo configure_steps, in order."""

    def reload_step(self) -> Step | None:
        """Step run after the others when a change has not been reloaded yet."""
        return None

    # ------------------------------------------------------------------
    # Pending reload
    # ------------------------------------------------------------------

    @property
    def reload_marker_path(self) -> str | None:
        """File that exists while a change is waiting for ``reload_step``.

        It outlives the process, so a run that died before reloading is
        finished by the next configure or restore.
        """
        return None

    def reload_pending(self) -> bool:
        path = self.reload_marker_path
        return path is not None and self.store.exists(path)

    def mark_reload_pending(self) -> None:
        path = self.reload_marker_path
        if path is not None:
            self.store.ensure_file(path, "")

    def clear_reload_pending(self) -> None:
        path = self.reload_marker_path
        if path is not None:
            self.store.ensure_absent(path)

    # ------------------------------------------------------------------
    # Loopback alias
    # ------------------------------------------------------------------

    @abstractmethod
    def loopback_alias_present(self) -> bool:
        """Whether the loopback alias is currently bound."""

    @abstractmethod
    def _add_alias_argv(self) -> list[str]:
        ...

    @abstractmethod
    def _remove_alias_argv(self) -> list[str]:
        ...

    def add_loopback_alias(self) -> bool:
        if self.loopback_alias_present():
            return False
        self.store.run_privileged(self._add_alias_argv())
        return True

    def remove_loopback_alias(self) -> bool:
        """Unbind the alias.

        Raises:
            AlreadyAbsentError: the OS reports the address is not bound
        """
        if not self.loopback_alias_present():
            return False
        try:
            self.store.run_privileged(self._remove_alias_argv())
        except CommandFailedError as e:
            if self.alias_absent_re.search(e.output):
                raise AlreadyAbsentError(
                    f"Loopback alias {self.settings.loopback_address} already removed"
                ) from e
            raise
        return True
