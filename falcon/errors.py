"""Exception hierarchy for falcon."""

from __future__ import annotations


class FalconError(Exception):
    """Base class for all falcon errors."""


# ---------------------------------------------------------------------------
# Container runtime
# ---------------------------------------------------------------------------


class RuntimeSyncError(FalconError):
    """A Docker API call failed.

    Never retried in place; the next event or sync starts over.
    """


class NotFoundError(RuntimeSyncError):
    """A container or network does not exist."""


class ContainerNotFoundError(NotFoundError):
    def __init__(self, name: str):
        super().__init__(f"Container '{name}' not found")
        self.name = name


# ---------------------------------------------------------------------------
# Host configuration
# ---------------------------------------------------------------------------


class AlreadyAbsentError(FalconError):
    """The thing being removed is already gone. Callers treat this as success."""


class UnsupportedPlatformError(FalconError):
    def __init__(self, platform: str):
        super().__init__(f"Host networking is not supported on platform '{platform}'")
        self.platform = platform


class HostConfigError(FalconError):
    """Base class for host network configuration failures."""


class CommandFailedError(HostConfigError):
    """An external helper command exited non-zero."""

    def __init__(self, argv: list[str], returncode: int, output: str = ""):
        self.argv = list(argv)
        self.returncode = returncode
        self.output = output
        message = f"Command '{' '.join(self.argv)}' failed with exit code {returncode}"
        if output.strip():
            message += f": {output.strip()}"
        super().__init__(message)


class PermissionDeniedError(CommandFailedError):
    """Privilege escalation was refused or the operation was not permitted."""


class MissingSectionError(HostConfigError):
    """A config file lacks the section a patch must be anchored to."""

    def __init__(self, path: str, section: str):
        super().__init__(
            f"{path} has no {section} section; add one and run falcon again"
        )
        self.path = path
        self.section = section


class StepFailedError(HostConfigError):
    """A configure step failed. Later steps were not attempted."""

    def __init__(self, step: str, cause: Exception):
        super().__init__(f"Step '{step}' failed: {cause}")
        self.step = step
        self.cause = cause


class RestoreError(HostConfigError):
    """One or more restore steps failed. Every step was still attempted."""

    def __init__(self, failures: list[tuple[str, Exception]]):
        self.failures = list(failures)
        details = "; ".join(f"{step}: {exc}" for step, exc in self.failures)
        super().__init__(f"{len(self.failures)} restore step(s) failed: {details}")
