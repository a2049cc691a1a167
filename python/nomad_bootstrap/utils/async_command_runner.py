"""
nomad_bootstrap/utils/async_command_runner.py

Runs local commands (package managers, useradd, systemctl) in a subprocess,
asynchronously. Failures surface as CommandError carrying the exit code.

Commands run exactly once: none of them is network-bound, so a failure is
fatal for the caller.

Usage example:
    from nomad_bootstrap.utils.async_command_runner import run_command, CommandError

    try:
        await run_command(["systemctl", "daemon-reload"])
    except CommandError as err:
        logger.error("systemd reload failed: %s", err)
"""

from __future__ import annotations

import asyncio
import logging
import shutil
from typing import List, Optional

from nomad_bootstrap.errors import BootstrapError

logger = logging.getLogger(__name__)


class CommandError(BootstrapError):
    """Represents a failure when executing a command.

    Attributes:
        message (str): The error message describing the command failure.
        return_code (Optional[int]): The exit code if available.
    """

    def __init__(self, message: str, return_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.return_code = return_code


def command_exists(name: str) -> bool:
    """Return True if `name` resolves on the command search path."""
    return shutil.which(name) is not None


async def run_command(command: List[str]) -> str:
    """
    Executes a local command and returns its stripped stdout.

    Args:
        command (List[str]): The command and arguments to execute.

    Returns:
        str: The captured stdout of the command on success.

    Raises:
        CommandError: If the command cannot be started or exits non-zero.
            The message includes the command line and its stdout/stderr.
    """
    logger.debug("Running: %s", " ".join(command))
    try:
        proc = await asyncio.create_subprocess_exec(
            *command,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except FileNotFoundError as exc:
        raise CommandError(f"Command not found: {command[0]}") from exc

    stdout_bytes, stderr_bytes = await proc.communicate()
    stdout_str = stdout_bytes.decode(errors="replace").strip()
    stderr_str = stderr_bytes.decode(errors="replace").strip()

    if proc.returncode != 0:
        raise CommandError(
            f"Command failed with return code {proc.returncode}."
            f"\nCommand: {' '.join(command)}"
            f"\nStdout: {stdout_str}"
            f"\nStderr: {stderr_str}",
            proc.returncode,
        )

    return stdout_str
