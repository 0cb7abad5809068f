"""Logging setup for the falcon CLI."""

from __future__ import annotations

import logging

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(debug: bool = False) -> None:
    """Configure root logging for a CLI invocation."""
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format=LOG_FORMAT,
        force=True,
    )
    # The docker SDK and urllib3 are chatty at DEBUG
    for name in ("docker", "urllib3"):
        logging.getLogger(name).setLevel(logging.INFO if debug else logging.WARNING)
