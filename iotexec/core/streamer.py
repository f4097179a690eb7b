"""Response construction and streaming towards the transport."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from .. import constants
from .errors import ExecError, TransportSendError
from .executor import CommandOutput
from .protocols import TransportSender

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class OutboundHeaders:
    items: List[Tuple[str, str]] = field(default_factory=list)

    def get(self, key: str) -> Optional[str]:
        for name, value in self.items:
            if name == key:
                return value
        return None

    def render(self) -> str:
        return "\n".join(f"{key}:{value}" for key, value in self.items)


def build_outbound_headers(correlation_id: Optional[str] = None) -> OutboundHeaders:
    """Build the response header block for one request.

    A fresh instance is returned on every call.
    """

    headers = OutboundHeaders(
        [
            ("source", constants.RESPONSE_SOURCE),
            ("messagetype", constants.RESPONSE_MESSAGE_TYPE),
        ]
    )
    if correlation_id is not None:
        headers.items.append((constants.CORRELATION_ID_HEADER, correlation_id))
    return headers


class ResponseStreamer:
    """Forwards command output to the transport as a single message."""

    def __init__(
        self,
        sender: TransportSender,
        *,
        chunk_size: int = constants.DEFAULT_READ_CHUNK_SIZE,
    ) -> None:
        self._sender = sender
        self._chunk_size = max(1, chunk_size)

    async def stream(self, headers: OutboundHeaders, output: CommandOutput) -> None:
        LOGGER.debug("Streaming response with headers %r", headers.render())
        try:
            await self._sender.send(headers, output.chunks(self._chunk_size))
        except ExecError:
            raise
        except Exception as exc:
            raise TransportSendError(f"response delivery failed: {exc}") from exc
