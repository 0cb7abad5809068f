"""Helper command execution for host configuration."""

from __future__ import annotations

import logging
import os
import re
import subprocess
from dataclasses import dataclass

logger = logging.getLogger(__name__)

# sudo refusing to escalate, or the kernel refusing an unprivileged caller
PERMISSION_DENIED_RE = re.compile(
    r"sudo: .*(password is required|incorrect password|not in the sudoers|"
    r"terminal is required|not allowed to execute)"
    r"|Operation not permitted|Permission denied",
    re.IGNORECASE,
)


@dataclass(frozen=True)
class CommandResult:
    argv: list[str]
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @property
    def output(self) -> str:
        return (self.stderr.strip() + "\n" + self.stdout.strip()).strip()


def run_cmd(argv: list[str], input: str | None = None) -> CommandResult:
    """Run a command and capture its output.

    Args:
        argv: Command and arguments as list
        input: Optional text fed to stdin

    Returns:
        CommandResult; a missing executable is reported as exit code 127
    """
    logger.debug(f"Running: {' '.join(argv)}")
    try:
        result = subprocess.run(
            argv,
            input=input,
            capture_output=True,
            text=True,
        )
    except FileNotFoundError:
        return CommandResult(list(argv), 127, "", f"{argv[0]}: command not found")
    return CommandResult(list(argv), result.returncode, result.stdout, result.stderr)


def privileged_argv(argv: list[str], use_sudo: bool = True) -> list[str]:
    """Prefix ``argv`` with sudo when escalation is wanted and we are not root."""
    if use_sudo and os.geteuid() != 0:
        return ["sudo", *argv]
    return list(argv)


def is_permission_denied(result: CommandResult) -> bool:
    return not result.ok and bool(PERMISSION_DENIED_RE.search(result.output))
