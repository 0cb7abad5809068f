"""Host file and command access for network configuration.

Every operation acts on the filesystem directly when it can. When the
process lacks permission for a path, the same operation is retried through
a privileged helper command (``sudo tee``, ``sudo mv`` ...), so falcon only
asks for elevation when it actually needs it.

Nothing here remembers earlier calls: the ``ensure_*`` helpers inspect the
target first and report whether they changed it.
"""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
import uuid
from pathlib import Path
from typing import Callable

from falcon.errors import CommandFailedError, HostConfigError, PermissionDeniedError
from falcon.host.cmd import CommandResult, is_permission_denied, privileged_argv, run_cmd

logger = logging.getLogger(__name__)

Runner = Callable[..., CommandResult]


class HostConfigStore:
    """Reads and mutates host configuration files and runs helper commands."""

    def __init__(self, use_sudo: bool = True, runner: Runner = run_cmd):
        self.use_sudo = use_sudo
        self._runner = runner

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def run(self, argv: list[str], input: str | None = None) -> CommandResult:
        """Run an unprivileged command. Never raises on non-zero exit."""
        return self._runner(argv, input=input)

    def run_privileged(self, argv: list[str], input: str | None = None) -> CommandResult:
        """Run a command with elevated privileges.

        Raises:
            PermissionDeniedError: escalation was refused or not permitted
            CommandFailedError: the command exited non-zero
        """
        full_argv = privileged_argv(argv, self.use_sudo)
        result = self._runner(full_argv, input=input)
        if result.ok:
            return result
        if is_permission_denied(result):
            raise PermissionDeniedError(full_argv, result.returncode, result.output)
        raise CommandFailedError(full_argv, result.returncode, result.output)

    # ------------------------------------------------------------------
    # Inspection
    # ------------------------------------------------------------------

    def exists(self, path: str) -> bool:
        """True if anything (including a dangling symlink) is at ``path``."""
        return os.path.lexists(path)

    def is_symlink(self, path: str) -> bool:
        return os.path.islink(path)

    def readlink(self, path: str) -> str | None:
        try:
            return os.readlink(path)
        except OSError:
            return None

    def read_text(self, path: str) -> str | None:
        """Return the file's contents, or None if it does not exist."""
        try:
            return Path(path).read_text()
        except FileNotFoundError:
            return None
        except PermissionError:
            return self.run_privileged(["cat", path]).stdout

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def write_atomic(self, path: str, content: str) -> None:
        """Replace ``path`` with ``content`` via write-temp-then-rename.

        The temp file is fsynced before the rename so the new contents are
        durable by the time this returns.
        """
        target = Path(path)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=target.parent, prefix=f".{target.name}.")
            try:
                with os.fdopen(fd, "w") as tmp:
                    tmp.write(content)
                    tmp.flush()
                    os.fsync(tmp.fileno())
                if target.exists():
                    shutil.copymode(target, tmp_path)
                else:
                    os.chmod(tmp_path, 0o644)
                os.replace(tmp_path, target)
            except BaseException:
                if os.path.exists(tmp_path):
                    os.unlink(tmp_path)
                raise
        except PermissionError:
            logger.debug(f"No write access to {path}, using privileged helpers")
            tmp_path = str(target.parent / f".{target.name}.{uuid.uuid4().hex[:8]}")
            self.run_privileged(["mkdir", "-p", str(target.parent)])
            self.run_privileged(["tee", tmp_path], input=content)
            self.run_privileged(["chmod", "644", tmp_path])
            self.run_privileged(["mv", "-f", tmp_path, path])

    def delete(self, path: str) -> bool:
        """Remove a file or symlink. Returns False if nothing was there."""
        if not self.exists(path):
            return False
        try:
            os.unlink(path)
        except FileNotFoundError:
            return False
        except PermissionError:
            self.run_privileged(["rm", "-f", path])
        return True

    def move(self, src: str, dst: str) -> None:
        """Move ``src`` to ``dst``, keeping symlinks as symlinks."""
        try:
            Path(dst).parent.mkdir(parents=True, exist_ok=True)
            shutil.move(src, dst)
        except PermissionError:
            self.run_privileged(["mkdir", "-p", str(Path(dst).parent)])
            self.run_privileged(["mv", "-f", src, dst])

    def symlink(self, target: str, link: str) -> None:
        try:
            os.symlink(target, link)
        except PermissionError:
            self.run_privileged(["ln", "-s", target, link])

    # ------------------------------------------------------------------
    # Idempotent primitives
    # ------------------------------------------------------------------

    def ensure_file(self, path: str, content: str) -> bool:
        """Make ``path`` hold exactly ``content``. Returns True if it changed."""
        if self.read_text(path) == content:
            return False
        self.write_atomic(path, content)
        return True

    def ensure_absent(self, path: str) -> bool:
        """Make sure nothing is at ``path``. Returns True if it changed."""
        return self.delete(path)

    def ensure_symlink(self, link: str, target: str) -> bool:
        """Make ``link`` a symlink to ``target``. Returns True if it changed.

        Refuses to replace anything that is not already a symlink.
        """
        if self.is_symlink(link):
            if self.readlink(link) == target:
                return False
            self.delete(link)
        elif self.exists(link):
            raise HostConfigError(f"{link} exists and is not a symlink")
        self.symlink(target, link)
        return True
