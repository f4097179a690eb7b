"""Tests for the shell command executor."""

import asyncio
import errno
import os
from types import SimpleNamespace

import pytest

from iotexec.core.errors import DescriptorError, SpawnFailure
from iotexec.core.executor import CommandExecutor, run_command


async def _collect(output, size=8192) -> bytes:
    data = bytearray()
    async for chunk in output.chunks(size):
        data.extend(chunk)
    return bytes(data)


def _process_exists(pid: int) -> bool:
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    return True


@pytest.mark.asyncio
async def test_run_command_streams_stdout():
    async with run_command(b"echo hello") as output:
        data = await _collect(output)

    assert data == b"hello\n"
    assert output.returncode == 0


@pytest.mark.asyncio
async def test_run_command_accepts_text_commands():
    async with CommandExecutor().execute("printf 'a b c'") as output:
        data = await _collect(output)

    assert data == b"a b c"


@pytest.mark.asyncio
async def test_run_command_does_not_capture_stderr():
    async with run_command("echo out; echo err 1>&2") as output:
        data = await _collect(output)

    assert data == b"out\n"


@pytest.mark.asyncio
async def test_non_zero_exit_still_yields_output():
    async with run_command("echo partial; exit 3") as output:
        data = await _collect(output)

    assert data == b"partial\n"
    assert output.returncode == 3


@pytest.mark.asyncio
async def test_false_produces_empty_output():
    async with run_command("false") as output:
        data = await _collect(output)

    assert data == b""
    assert output.returncode == 1


@pytest.mark.asyncio
async def test_output_is_read_in_chunks():
    chunks = []
    async with run_command("head -c 10000 /dev/zero") as output:
        async for chunk in output.chunks(1024):
            chunks.append(chunk)

    assert sum(len(chunk) for chunk in chunks) == 10000
    assert all(len(chunk) <= 1024 for chunk in chunks)
    assert len(chunks) >= 10


@pytest.mark.asyncio
async def test_missing_interpreter_raises_spawn_failure():
    executor = CommandExecutor(shell="/nonexistent/interpreter")

    with pytest.raises(SpawnFailure) as excinfo:
        async with executor.execute("echo hello"):
            pass

    assert excinfo.value.errno == errno.ENOTSUP


@pytest.mark.asyncio
async def test_missing_stdout_raises_descriptor_error(monkeypatch):
    waited = []

    class _Process:
        pid = 4242
        returncode = 0
        stdout = None

        async def wait(self):
            waited.append(True)
            return self.returncode

    async def _spawn(*args, **kwargs):
        return _Process()

    monkeypatch.setattr(
        "iotexec.core.executor.asyncio.create_subprocess_shell", _spawn
    )

    with pytest.raises(DescriptorError):
        async with run_command("echo hello"):
            pass

    assert waited == [True]


@pytest.mark.asyncio
async def test_error_inside_block_kills_and_reaps_child():
    pid = None
    with pytest.raises(RuntimeError):
        async with run_command("sleep 30") as output:
            pid = output.pid
            raise RuntimeError("send failed")

    assert pid is not None
    assert output.returncode is not None
    assert not _process_exists(pid)


@pytest.mark.asyncio
async def test_cancellation_kills_and_reaps_child():
    started = asyncio.Event()
    holder = SimpleNamespace(output=None)

    async def _runner():
        async with run_command("sleep 30") as output:
            holder.output = output
            started.set()
            await _collect(output)

    task = asyncio.create_task(_runner())
    await asyncio.wait_for(started.wait(), timeout=5)
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task

    assert holder.output.returncode is not None
    assert not _process_exists(holder.output.pid)
