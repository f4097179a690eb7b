"""Error taxonomy for the command execution pipeline."""

from __future__ import annotations

import errno as _errno
from typing import Optional


class ExecError(RuntimeError):
    """Base class for failures contained within a single request cycle."""

    code = "exec_error"
    errno = _errno.EINVAL

    def __init__(self, message: str, *, errno: Optional[int] = None) -> None:
        super().__init__(message)
        if errno is not None:
            self.errno = errno


class DecodeError(ExecError):
    """Raised when an inbound envelope cannot be turned into a command."""

    code = "decode_error"


class OversizedMessage(DecodeError):
    """Raised when header plus body reaches the configured size ceiling."""

    code = "oversized_message"
    errno = _errno.EMSGSIZE

    def __init__(self, size: int, limit: int) -> None:
        super().__init__(f"message size {size} exceeds limit of {limit - 1} bytes")
        self.size = size
        self.limit = limit


class SpawnFailure(ExecError):
    """Raised when the command interpreter cannot be started."""

    code = "spawn_failure"
    errno = _errno.ENOTSUP


class DescriptorError(ExecError):
    """Raised when the child's standard output cannot be read."""

    code = "descriptor_error"
    errno = _errno.EBADF


class CommandTimeout(ExecError):
    """Raised when a command outlives the configured per-command deadline."""

    code = "command_timeout"
    errno = _errno.ETIMEDOUT


class TransportSendError(ExecError):
    """Raised when the response could not be delivered to the transport."""

    code = "transport_send_error"
    errno = _errno.EIO


class TransportReceiveFatal(ExecError):
    """Raised when the inbound channel is unusable; ends the process."""

    code = "transport_receive_fatal"
    errno = _errno.ECONNREFUSED
