"""Configure and restore host networking for falcon.

Both directions are an ordered list of idempotent steps supplied by the
platform adapter. Each step checks the live host state before acting, so
running either direction twice, or restoring after a configure that died
halfway, is safe.

- ``configure`` stops at the first failure: later steps depend on earlier
  ones, and a half-configured host must not be reported as ready.
- ``restore`` keeps going after a failure so as much as possible is undone,
  then reports every step that failed.

A change that needs the adapter's reload step is recorded on disk before
the reload runs and cleared once it succeeds. A run that failed or died
before reloading therefore gets its reload from the next configure or
restore, even though every other step is already satisfied by then.
"""

from __future__ import annotations

import logging

from falcon.config import Settings
from falcon.errors import AlreadyAbsentError, RestoreError, StepFailedError
from falcon.host.platforms import HostPlatformAdapter, Step, select_adapter
from falcon.host.store import HostConfigStore

logger = logging.getLogger(__name__)


class HostNetworkConfigurator:
    """Runs the adapter's configure/restore sequences."""

    def __init__(self, adapter: HostPlatformAdapter):
        self.adapter = adapter

    @classmethod
    def for_host(cls, settings: Settings) -> HostNetworkConfigurator:
        store = HostConfigStore(use_sudo=settings.use_sudo)
        return cls(select_adapter(settings, store))

    def configure(self) -> list[str]:
        """Bring the host to the configured state.

        Returns:
            Names of the steps that changed something

        Raises:
            StepFailedError: naming the first step that failed
        """
        logger.info(f"Configuring {self.adapter.name} host networking")
        changed: list[str] = []
        for step in self.adapter.configure_steps():
            try:
                if self._apply(step):
                    changed.append(step.name)
            except Exception as e:
                logger.error(f"Configure step '{step.name}' failed: {e}")
                raise StepFailedError(step.name, e) from e

        reload = self._pending_reload()
        if reload is not None:
            try:
                self._reload(reload)
            except Exception as e:
                logger.error(f"Configure step '{reload.name}' failed: {e}")
                raise StepFailedError(reload.name, e) from e
            changed.append(reload.name)

        if not changed:
            logger.info("Host networking already configured")
        return changed

    def restore(self) -> list[str]:
        """Return the host to its unconfigured state.

        Every step is attempted even if an earlier one fails.

        Returns:
            Names of the steps that changed something

        Raises:
            RestoreError: listing each step that failed
        """
        logger.info(f"Restoring {self.adapter.name} host networking")
        changed: list[str] = []
        failures: list[tuple[str, Exception]] = []
        for step in self.adapter.restore_steps():
            try:
                if self._apply(step):
                    changed.append(step.name)
            except Exception as e:
                logger.error(f"Restore step '{step.name}' failed: {e}")
                failures.append((step.name, e))

        reload = self._pending_reload()
        if reload is not None:
            try:
                self._reload(reload)
                changed.append(reload.name)
            except Exception as e:
                logger.error(f"Restore step '{reload.name}' failed: {e}")
                failures.append((reload.name, e))

        if failures:
            raise RestoreError(failures)
        if not changed:
            logger.info("Host networking already restored")
        return changed

    def _apply(self, step: Step) -> bool:
        changed = self._run_step(step)
        if changed and self.adapter.reload_step() is not None:
            self.adapter.mark_reload_pending()
        return changed

    def _pending_reload(self) -> Step | None:
        reload = self.adapter.reload_step()
        if reload is None or not self.adapter.reload_pending():
            return None
        return reload

    def _reload(self, reload: Step) -> None:
        self._run_step(reload)
        self.adapter.clear_reload_pending()

    @staticmethod
    def _run_step(step: Step) -> bool:
        try:
            changed = step.apply()
        except AlreadyAbsentError as e:
            logger.debug(f"Step '{step.name}': {e}")
            return False
        logger.debug(f"Step '{step.name}' {'applied' if changed else 'already satisfied'}")
        return changed
