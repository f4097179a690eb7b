"""Protocol definitions for the transport collaborators."""

from __future__ import annotations

from typing import TYPE_CHECKING, AsyncIterator, Protocol

if TYPE_CHECKING:
    from .envelope import Envelope
    from .streamer import OutboundHeaders


class TransportReceiver(Protocol):
    """Source of inbound envelopes for this service."""

    async def receive(self) -> "Envelope":
        """Wait for the next envelope.

        Raises:
            TransportReceiveFatal: If the inbound channel is no longer usable.
        """
        ...


class TransportSender(Protocol):
    """Sink for outbound response messages."""

    async def send(
        self, headers: "OutboundHeaders", body: AsyncIterator[bytes]
    ) -> None:
        """Deliver one message whose body is read from ``body`` to exhaustion.

        Raises:
            TransportSendError: If the message could not be delivered.
        """
        ...
