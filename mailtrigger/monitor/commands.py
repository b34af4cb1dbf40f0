"""Trigger command execution.

Commands run under /bin/sh with the inherited environment plus four
EMAIL_* variables describing the message. The message text body is
written to the command's stdin.
"""

import asyncio
import os
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Protocol

from mailtrigger.errors import CommandExecutionError

from .message import FetchedMessage


@dataclass
class CommandResult:
    """Outcome of one finished command."""

    returncode: int
    stdout: bytes = b""
    stderr: bytes = b""

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class CommandRunner(Protocol):
    """Runs a shell command to completion."""

    async def run(
        self, command: str, env: Mapping[str, str], stdin: bytes
    ) -> CommandResult: ...


class ShellCommandRunner:
    """CommandRunner backed by asyncio subprocesses."""

    async def run(
        self, command: str, env: Mapping[str, str], stdin: bytes
    ) -> CommandResult:
        """Run command through the shell and wait for it to exit.

        Args:
            command: Shell command line.
            env: Complete environment for the child.
            stdin: Bytes written to the child's standard input.

        Returns:
            Exit status and captured output.

        Raises:
            CommandExecutionError: If the shell can't be started.
        """
        try:
            proc = await asyncio.create_subprocess_shell(
                command,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=dict(env),
            )
        except OSError as e:
            raise CommandExecutionError(f"error executing command {command!r}: {e}") from e

        try:
            stdout, stderr = await proc.communicate(stdin)
        except asyncio.CancelledError:
            # Don't leave orphans behind on shutdown
            if proc.returncode is None:
                proc.kill()
            raise

        return CommandResult(returncode=proc.returncode, stdout=stdout, stderr=stderr)


def build_command_env(
    message: FetchedMessage, base: Mapping[str, str] | None = None
) -> dict[str, str]:
    """Build the environment for a trigger command.

    Args:
        message: The message that matched.
        base: Environment to extend. Defaults to os.environ.

    Returns:
        base plus EMAIL_FROM, EMAIL_SUBJECT, EMAIL_DATE and EMAIL_UID.
    """
    env = dict(os.environ if base is None else base)
    env["EMAIL_FROM"] = message.sender
    env["EMAIL_SUBJECT"] = message.subject
    env["EMAIL_DATE"] = message.timestamp
    env["EMAIL_UID"] = str(message.uid)
    return env
