"""falcon command line."""

from __future__ import annotations

import asyncio
import logging
import signal

import click

from falcon import __version__
from falcon.config import Settings
from falcon.errors import FalconError, RestoreError, StepFailedError
from falcon.host import HostNetworkConfigurator
from falcon.logging_config import setup_logging
from falcon.runtime import RuntimeClient
from falcon.sync import MembershipReconciler, SyncDaemon

logger = logging.getLogger(__name__)


def build_daemon(settings: Settings) -> SyncDaemon:
    runtime = RuntimeClient.from_settings(settings)
    reconciler = MembershipReconciler(runtime, settings.proxy_container_name)
    return SyncDaemon(reconciler, runtime, event_backoff=settings.event_backoff)


async def run_daemon(daemon: SyncDaemon) -> None:
    """Run the daemon until SIGINT or SIGTERM."""
    await daemon.start()

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop_event.set)

    logger.info("Keeping the proxy in sync with Docker networks. Press Ctrl+C to stop.")
    try:
        await stop_event.wait()
    finally:
        logger.info("Shutting down...")
        await daemon.stop()


def _configure(settings: Settings) -> None:
    try:
        HostNetworkConfigurator.for_host(settings).configure()
    except StepFailedError as e:
        raise click.ClickException(
            f"Couldn't configure host networking at step '{e.step}': {e.cause}"
        ) from e
    except FalconError as e:
        raise click.ClickException(f"Couldn't configure host networking: {e}") from e


def _restore(settings: Settings) -> None:
    try:
        HostNetworkConfigurator.for_host(settings).restore()
    except RestoreError as e:
        lines = [f"  {step}: {exc}" for step, exc in e.failures]
        raise click.ClickException(
            "Couldn't fully restore host networking:\n" + "\n".join(lines)
        ) from e
    except FalconError as e:
        raise click.ClickException(f"Couldn't restore host networking: {e}") from e


def _sync(settings: Settings) -> None:
    try:
        daemon = build_daemon(settings)
        asyncio.run(run_daemon(daemon))
    except FalconError as e:
        raise click.ClickException(f"Unable to sync the proxy with Docker networks: {e}") from e


@click.group()
@click.version_option(__version__, prog_name="falcon")
@click.option("--debug", is_flag=True, default=None, help="Verbose logging [FALCON_DEBUG].")
@click.pass_context
def main(ctx: click.Context, debug: bool | None) -> None:
    """Wildcard DNS for local Docker containers."""
    settings = Settings() if debug is None else Settings(debug=debug)
    setup_logging(settings.debug)
    ctx.obj = settings


@main.command()
@click.pass_obj
def up(settings: Settings) -> None:
    """Configure host networking, then keep the proxy on every network that needs it."""
    _configure(settings)
    _sync(settings)


@main.command()
@click.pass_obj
def down(settings: Settings) -> None:
    """Restore host networking to how it was before `falcon up`.

    The loopback alias, and on Linux the dns=dnsmasq line in
    NetworkManager.conf, are removed even if they existed before falcon
    configured the host.
    """
    _restore(settings)


@main.command()
@click.pass_obj
def sync(settings: Settings) -> None:
    """Keep the proxy in sync with Docker networks without touching host networking."""
    _sync(settings)


@main.command()
@click.pass_obj
def configure(settings: Settings) -> None:
    """Configure host networking only."""
    _configure(settings)


if __name__ == "__main__":
    main()
