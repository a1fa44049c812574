"""
Command Runner — external process execution.

Wraps the package-management tools the store shells out to (apt-cache,
dpkg-query, pkexec, flatpak). Both a blocking and an asyncio variant are
provided; every invocation carries a timeout.
"""

import asyncio
import logging
import subprocess
from dataclasses import dataclass

logger = logging.getLogger(__name__)


class ObisionStoreError(Exception):
    """Base class for store errors."""


class CommandError(ObisionStoreError):
    """Raised when a command cannot be started or does not finish in time."""


@dataclass(frozen=True)
class CommandResult:
    """Captured output of a finished command."""

    stdout: str
    stderr: str
    returncode: int | None = 0

    @property
    def ok(self) -> bool:
        """Exit status 0; without an exit status, no "error" marker on stderr."""
        if self.returncode is None:
            return "error" not in self.stderr
        return self.returncode == 0


class CommandRunner:
    """Runs commands and captures their decoded stdout/stderr."""

    def __init__(self, timeout: float = 60.0):
        self.timeout = timeout

    def run(self, command: str, args: list[str] | None = None, timeout: float | None = None) -> CommandResult:
        """Run a command, blocking the caller until it exits."""
        argv = [command, *(args or [])]
        logger.debug(f"$ {' '.join(argv)}")
        try:
            proc = subprocess.run(
                argv,
                capture_output=True,
                timeout=timeout or self.timeout,
                check=False,
            )
        except FileNotFoundError as e:
            raise CommandError(f"Command not found: {command}") from e
        except OSError as e:
            raise CommandError(f"Cannot run {command}: {e}") from e
        except subprocess.TimeoutExpired as e:
            raise CommandError(f"Command timed out: {' '.join(argv)}") from e

        return CommandResult(
            stdout=proc.stdout.decode("utf-8", errors="replace"),
            stderr=proc.stderr.decode("utf-8", errors="replace"),
            returncode=proc.returncode,
        )

    async def run_async(
        self, command: str, args: list[str] | None = None, timeout: float | None = None
    ) -> CommandResult:
        """Run a command as a subprocess of the event loop."""
        argv = [command, *(args or [])]
        logger.debug(f"$ {' '.join(argv)}")
        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as e:
            raise CommandError(f"Command not found: {command}") from e
        except OSError as e:
            raise CommandError(f"Cannot run {command}: {e}") from e

        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout or self.timeout)
        except asyncio.TimeoutError as e:
            proc.kill()
            await proc.wait()
            raise CommandError(f"Command timed out: {' '.join(argv)}") from e

        return CommandResult(
            stdout=stdout.decode("utf-8", errors="replace"),
            stderr=stderr.decode("utf-8", errors="replace"),
            returncode=proc.returncode,
        )
