"""Host command execution with streamed standard output."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
import signal
from typing import AsyncIterator, Optional, Union

from .. import constants
from .errors import DescriptorError, SpawnFailure

LOGGER = logging.getLogger(__name__)

CommandText = Union[str, bytes]


class CommandOutput:
    """Live standard output of a running command.

    Owned by the executor until handed to the response streamer, which
    reads it to end-of-stream.
    """

    def __init__(
        self, process: asyncio.subprocess.Process, stream: asyncio.StreamReader
    ) -> None:
        self._process = process
        self.stream = stream

    @property
    def pid(self) -> int:
        return self._process.pid

    @property
    def returncode(self) -> Optional[int]:
        return self._process.returncode

    async def chunks(
        self, size: int = constants.DEFAULT_READ_CHUNK_SIZE
    ) -> AsyncIterator[bytes]:
        while True:
            chunk = await self.stream.read(size)
            if not chunk:
                return
            yield chunk


@contextlib.asynccontextmanager
async def run_command(
    command: CommandText, *, shell: Optional[str] = None
) -> AsyncIterator[CommandOutput]:
    """Spawn ``command`` through the shell and yield its output.

    Only stdout is piped; stderr and stdin are inherited from this process.
    The child runs in its own session and is always reaped on exit. If the
    block exits with an error or is cancelled while the child is still
    running, its whole process group is killed first.
    """

    try:
        process = await asyncio.create_subprocess_shell(
            command,
            stdout=asyncio.subprocess.PIPE,
            executable=shell,
            start_new_session=True,
        )
    except (OSError, ValueError) as exc:
        raise SpawnFailure(f"could not start command interpreter: {exc}") from exc

    LOGGER.debug("Spawned command pid=%s", process.pid)

    try:
        if process.stdout is None:
            raise DescriptorError("command output stream is unavailable")
        yield CommandOutput(process, process.stdout)
    except BaseException:
        _kill(process)
        raise
    finally:
        await _reap(process)


def _kill(process: asyncio.subprocess.Process) -> None:
    if process.returncode is not None:
        return
    # The command runs in its own session; take down anything it spawned.
    try:
        os.killpg(process.pid, signal.SIGKILL)
    except (ProcessLookupError, PermissionError):
        with contextlib.suppress(ProcessLookupError):
            process.kill()


async def _reap(process: asyncio.subprocess.Process) -> None:
    try:
        returncode = await process.wait()
    except asyncio.CancelledError:
        _kill(process)
        raise
    LOGGER.debug("Command pid=%s exited with status %s", process.pid, returncode)


class CommandExecutor:
    """Runs command text through the host command interpreter."""

    def __init__(self, shell: Optional[str] = None) -> None:
        self.shell = shell

    def execute(self, command: CommandText):
        """Return an async context manager yielding the command's output."""

        return run_command(command, shell=self.shell)
