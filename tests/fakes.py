"""Test doubles shared by the pipeline tests."""

import asyncio
from typing import AsyncIterator, List, Optional, Tuple

from iotexec.core.envelope import Envelope
from iotexec.core.errors import TransportReceiveFatal
from iotexec.core.streamer import OutboundHeaders


class FakeReceiver:
    """Hands out queued envelopes, then blocks or fails once drained."""

    def __init__(self, envelopes: Optional[List[Envelope]] = None) -> None:
        self._queue: asyncio.Queue[Envelope] = asyncio.Queue()
        for envelope in envelopes or []:
            self._queue.put_nowait(envelope)
        self.fail_when_empty = False

    def put(self, envelope: Envelope) -> None:
        self._queue.put_nowait(envelope)

    async def receive(self) -> Envelope:
        if self.fail_when_empty and self._queue.empty():
            raise TransportReceiveFatal("receiver closed")
        return await self._queue.get()


class FakeSender:
    """Collects sent messages, consuming the body stream chunk by chunk."""

    def __init__(self, *, error: Optional[BaseException] = None) -> None:
        self.sent: List[Tuple[OutboundHeaders, bytes]] = []
        self.chunk_counts: List[int] = []
        self.error = error

    async def send(self, headers: OutboundHeaders, body: AsyncIterator[bytes]) -> None:
        data = bytearray()
        count = 0
        async for chunk in body:
            data.extend(chunk)
            count += 1
        if self.error is not None:
            raise self.error
        self.sent.append((headers, bytes(data)))
        self.chunk_counts.append(count)


class FakeTransport(FakeReceiver, FakeSender):
    def __init__(self, envelopes: Optional[List[Envelope]] = None) -> None:
        FakeReceiver.__init__(self, envelopes)
        FakeSender.__init__(self)
        self.started = False
        self.closed = False
        self.start_error: Optional[BaseException] = None

    async def start(self) -> None:
        if self.start_error is not None:
            raise self.start_error
        self.started = True

    async def close(self) -> None:
        self.closed = True


def make_envelope(body: bytes, header: bytes = b"") -> Envelope:
    return Envelope(header=header, body=body)
