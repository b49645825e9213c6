"""Removal of artifact directories, with sudo fallback."""

from __future__ import annotations

import logging
import shutil
import subprocess
from dataclasses import dataclass, field
from pathlib import Path

# Substring / suffixes that mark a directory as not plainly disposable
UNUSUAL_NAME_MARKERS = ("bundle",)
UNUSUAL_SUFFIXES = (".exe", ".bin")

DELETE_ONE = "delete-one"
CLEAR_ALL = "clear-all"


@dataclass
class RemovalResult:
    """Result of a removal attempt."""

    path: Path
    success: bool
    action: str  # "deleted", "refused", "needs_privilege", "error"
    error: str | None = None


@dataclass
class PendingPrivilegedAction:
    """A deletion waiting for the operator's sudo password."""

    kind: str  # DELETE_ONE or CLEAR_ALL
    paths: list[str] = field(default_factory=list)


def has_unusual_files(path: Path) -> bool:
    """Check whether a directory directly holds executable or bundle-like files.

    Args:
        path: Artifact directory.

    Returns:
        True if any entry name looks like something other than build output.

    """
    try:
        names = [entry.name.lower() for entry in path.iterdir()]
    except OSError:
        return False

    return any(
        any(marker in name for marker in UNUSUAL_NAME_MARKERS) or name.endswith(UNUSUAL_SUFFIXES)
        for name in names
    )


class ArtifactRemover:
    """Deletes artifact directories, escalating to sudo when needed."""

    def __init__(self, logger: logging.Logger, sudo: str = "sudo") -> None:
        """Initialize the remover.

        Args:
            logger: Logger instance.
            sudo: Elevation program to run for privileged removal.

        """
        self.logger = logger
        self.sudo = sudo

    def remove(self, path: Path) -> RemovalResult:
        """Delete a directory without asking for credentials.

        Tries a plain recursive delete, then ``sudo -n`` which fails
        instead of prompting.

        Args:
            path: Directory to delete.

        Returns:
            RemovalResult; ``needs_privilege`` means a password is required.

        """
        if has_unusual_files(path):
            self.logger.warning("Refusing to delete %s: contains unusual files", path)
            return RemovalResult(
                path=path,
                success=False,
                action="refused",
                error="Directory contains unusual files",
            )

        if not path.exists():
            return RemovalResult(path=path, success=True, action="deleted")

        try:
            shutil.rmtree(path)
            self.logger.info("Deleted artifact: %s", path)
            return RemovalResult(path=path, success=True, action="deleted")
        except OSError as e:
            self.logger.info("Plain delete failed for %s: %s", path, e)

        if self._run_sudo([self.sudo, "-n", "rm", "-rf", str(path)]):
            self.logger.info("Deleted artifact with sudo -n: %s", path)
            return RemovalResult(path=path, success=True, action="deleted")

        return RemovalResult(
            path=path,
            success=False,
            action="needs_privilege",
            error="Permission denied",
        )

    def remove_privileged(self, path: Path, password: str) -> RemovalResult:
        """Delete a directory with sudo, feeding ``password`` on stdin.

        Args:
            path: Directory to delete.
            password: The operator's sudo password.

        Returns:
            RemovalResult for the attempt.

        """
        if self._run_sudo([self.sudo, "-S", "-p", "", "rm", "-rf", str(path)], password):
            self.logger.info("Deleted artifact with sudo: %s", path)
            return RemovalResult(path=path, success=True, action="deleted")

        self.logger.error("Sudo delete failed for %s", path)
        return RemovalResult(
            path=path,
            success=False,
            action="error",
            error="Sudo delete failed",
        )

    def _run_sudo(self, command: list[str], password: str | None = None) -> bool:
        """Run an elevation command; only the exit status is read."""
        try:
            result = subprocess.run(
                command,
                input=f"{password}\n" if password is not None else None,
                stdin=None if password is not None else subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                text=True,
                check=False,
            )
        except (subprocess.SubprocessError, OSError) as e:
            self.logger.error("Cannot run %s: %s", command[0], e)
            return False
        return result.returncode == 0
