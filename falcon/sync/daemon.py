"""Background daemon that keeps the proxy in sync with Docker networks.

The daemon listens for network connect/disconnect events and runs one
reconcile per wake-up. Docker's event stream is a blocking iterator, so it
is read in a worker thread and fed into an asyncio queue; a single sync task
consumes that queue, which guarantees reconciles never overlap. Events that
pile up while a sync is running are drained and answered with one more sync.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from falcon.errors import RuntimeSyncError
from falcon.runtime import RuntimeClient
from falcon.sync.reconciler import MembershipReconciler

logger = logging.getLogger(__name__)

# Queued in place of an event when a sync is needed for another reason.
_FORCE_SYNC = None


class SyncDaemon:
    """Runs MembershipReconciler on startup and on every network event."""

    def __init__(
        self,
        reconciler: MembershipReconciler,
        runtime: RuntimeClient,
        event_backoff: float = 2.0,
    ):
        self._reconciler = reconciler
        self._runtime = runtime
        self._event_backoff = event_backoff
        self._stream: Any = None
        self._queue: asyncio.Queue | None = None
        self._listener: asyncio.Task | None = None
        self._worker: asyncio.Task | None = None
        self._stopping = False
        # Reconcile running in a worker thread; cancelling the task that
        # awaits it does not stop the thread.
        self._in_flight: asyncio.Task | None = None
        self.sync_count = 0
        self.failed_syncs = 0

    @property
    def running(self) -> bool:
        return self._worker is not None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Run the initial sync, then start listening for events.

        Subscribing first means nothing that happens during the initial sync
        is missed. If the initial sync fails the subscription is closed and
        the error is raised.
        """
        if self._worker is not None:
            return

        self._stopping = False
        self._queue = asyncio.Queue()
        self._stream = self._runtime.subscribe_network_events()
        try:
            await asyncio.to_thread(self._reconciler.reconcile)
        except BaseException:
            self._close_stream()
            self._queue = None
            raise
        self.sync_count += 1

        self._listener = asyncio.create_task(self._listen())
        self._worker = asyncio.create_task(self._sync_loop())
        logger.info(
            "SyncDaemon started (container=%s)", self._reconciler.container_name
        )

    async def stop(self) -> None:
        """Close the event subscription and stop both background tasks."""
        if self._worker is None and self._listener is None:
            return

        self._stopping = True
        self._close_stream()
        tasks = [t for t in (self._listener, self._worker) if t is not None]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        in_flight, self._in_flight = self._in_flight, None
        if in_flight is not None and not in_flight.done():
            logger.info("Waiting for the running network sync to finish")
            await asyncio.gather(in_flight, return_exceptions=True)
        self._listener = None
        self._worker = None
        self._queue = None
        logger.info("SyncDaemon stopped")

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _close_stream(self) -> None:
        stream, self._stream = self._stream, None
        if stream is None:
            return
        close = getattr(stream, "close", None)
        if close is not None:
            try:
                close()
            except Exception:
                logger.debug("Error closing event stream", exc_info=True)

    def _pump(self, stream: Any, loop: asyncio.AbstractEventLoop, queue: asyncio.Queue) -> None:
        """Blocking: forward every event from ``stream`` into ``queue``."""
        for event in stream:
            if self._stopping:
                return
            loop.call_soon_threadsafe(queue.put_nowait, event)

    async def _listen(self) -> None:
        """Read the event stream until stopped, resubscribing if it drops."""
        loop = asyncio.get_running_loop()
        queue = self._queue
        while not self._stopping:
            try:
                await asyncio.to_thread(self._pump, self._stream, loop, queue)
            except asyncio.CancelledError:
                raise
            except Exception:
                if self._stopping:
                    break
                logger.exception("Docker event stream failed")
            if self._stopping:
                break

            logger.warning(
                "Docker event stream ended, resubscribing in %.1fs", self._event_backoff
            )
            await asyncio.sleep(self._event_backoff)
            try:
                self._stream = self._runtime.subscribe_network_events()
            except RuntimeSyncError as e:
                logger.error(f"Unable to resubscribe to Docker events: {e}")
                self._stream = iter(())
                continue
            # Events may have been missed while disconnected
            queue.put_nowait(_FORCE_SYNC)

    async def _sync_loop(self) -> None:
        """Run one reconcile per batch of queued events."""
        queue = self._queue
        while True:
            event = await queue.get()
            coalesced = 0
            while not queue.empty():
                queue.get_nowait()
                coalesced += 1
            if event is not _FORCE_SYNC:
                logger.debug(
                    "Network %s event for %s (%d more coalesced)",
                    event.get("Action", "?"),
                    event.get("Actor", {}).get("ID", "?")[:12],
                    coalesced,
                )
            await self._sync_once()

    async def _sync_once(self) -> None:
        try:
            self._in_flight = asyncio.create_task(
                asyncio.to_thread(self._reconciler.reconcile)
            )
            diff = await asyncio.shield(self._in_flight)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.failed_syncs += 1
            logger.error(f"Network sync failed: {e}")
            return
        self.sync_count += 1
        if not diff.empty:
            logger.info(
                "Network sync joined %d and left %d network(s)",
                len(diff.to_join),
                len(diff.to_leave),
            )
