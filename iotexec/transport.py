"""MQTT-backed transport receiver and sender."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import AsyncIterator, Protocol

from . import constants
from .adapters.mqtt import (
    MQTTConnectionError,
    UserProperties,
    build_user_properties,
)
from .config import ExecAppConfig
from .core.envelope import Envelope
from .core.errors import TransportReceiveFatal, TransportSendError
from .core.streamer import OutboundHeaders

LOGGER = logging.getLogger(__name__)


class MQTTTransportClient(Protocol):
    def subscribe(self, topic: str, qos: int = 1) -> None: ...

    def unsubscribe(self, topic: str) -> None: ...

    async def publish_and_wait(
        self,
        topic: str,
        payload: bytes,
        qos: int = 1,
        *,
        properties=None,
        timeout: float = 30.0,
    ) -> None: ...

    def set_message_handler(self, handler): ...

    def register_connect_handler(self, handler) -> None: ...


@dataclass(slots=True)
class TransportSettings:
    command_topic: str
    response_topic: str
    qos: int = 1
    max_pending_messages: int = constants.MAX_PENDING_MESSAGES
    publish_timeout_seconds: float = 30.0

    @classmethod
    def from_config(cls, config: ExecAppConfig) -> "TransportSettings":
        return cls(
            command_topic=config.command_topic,
            response_topic=config.response_topic,
            qos=config.exec.qos,
            max_pending_messages=config.exec.max_pending_messages,
            publish_timeout_seconds=config.exec.publish_timeout_seconds,
        )


def render_header(items: UserProperties) -> bytes:
    return "".join(f"{key}:{value}\n" for key, value in items).encode("utf-8")


class MQTTTransport:
    """Receives command envelopes and publishes responses over MQTT.

    Inbound MQTT v5 user properties become the envelope header block and the
    payload becomes its body. Pending envelopes are held in a bounded queue;
    messages arriving while it is full are dropped.
    """

    def __init__(self, client: MQTTTransportClient, settings: TransportSettings) -> None:
        self._client = client
        self._settings = settings
        self._queue: asyncio.Queue[Envelope] = asyncio.Queue(
            maxsize=max(1, settings.max_pending_messages)
        )
        self._started = False
        self._closed = False
        self._closed_event = asyncio.Event()
        self.dropped_count = 0

    @property
    def pending_count(self) -> int:
        return self._queue.qsize()

    async def start(self) -> None:
        if self._started:
            raise RuntimeError("MQTTTransport already started")
        if self._closed:
            raise TransportReceiveFatal("transport has been closed")

        self._client.set_message_handler(self._handle_message)
        self._client.register_connect_handler(self._on_connect)
        try:
            self._client.subscribe(self._settings.command_topic, qos=self._settings.qos)
        except (MQTTConnectionError, RuntimeError) as exc:
            self._client.set_message_handler(None)
            raise TransportReceiveFatal(
                f"cannot subscribe to {self._settings.command_topic}: {exc}"
            ) from exc

        self._started = True
        LOGGER.info("Receiving commands on %s", self._settings.command_topic)

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._closed_event.set()

        if not self._started:
            return
        try:
            self._client.unsubscribe(self._settings.command_topic)
        except (MQTTConnectionError, RuntimeError) as exc:
            LOGGER.debug("Unsubscribe during close failed: %s", exc)
        finally:
            self._client.set_message_handler(None)
            self._started = False

    async def receive(self) -> Envelope:
        if self._closed:
            raise TransportReceiveFatal("transport has been closed")
        if not self._queue.empty():
            return self._queue.get_nowait()

        getter = asyncio.ensure_future(self._queue.get())
        closer = asyncio.ensure_future(self._closed_event.wait())
        try:
            await asyncio.wait({getter, closer}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            closer.cancel()
            if not getter.done():
                getter.cancel()

        if getter.done() and not getter.cancelled():
            return getter.result()
        raise TransportReceiveFatal("transport has been closed")

    async def send(self, headers: OutboundHeaders, body: AsyncIterator[bytes]) -> None:
        # A PUBLISH packet carries one payload, so the chunks meet here.
        payload = bytearray()
        async for chunk in body:
            payload.extend(chunk)

        try:
            await self._client.publish_and_wait(
                self._settings.response_topic,
                bytes(payload),
                qos=self._settings.qos,
                properties=build_user_properties(headers.items),
                timeout=self._settings.publish_timeout_seconds,
            )
        except (MQTTConnectionError, RuntimeError) as exc:
            raise TransportSendError(str(exc)) from exc

        LOGGER.debug(
            "Published %d byte response to %s",
            len(payload),
            self._settings.response_topic,
        )

    async def _handle_message(
        self, topic: str, payload: bytes, user_properties: UserProperties
    ) -> None:
        if self._closed:
            return

        envelope = Envelope(header=render_header(user_properties), body=bytes(payload))
        try:
            self._queue.put_nowait(envelope)
        except asyncio.QueueFull:
            self.dropped_count += 1
            LOGGER.warning(
                "Pending message limit (%d) reached; dropping message from %s",
                self._queue.maxsize,
                topic,
            )

    def _on_connect(self, rc: int) -> None:
        if not self._started or self._closed:
            return
        try:
            self._client.subscribe(self._settings.command_topic, qos=self._settings.qos)
        except (MQTTConnectionError, RuntimeError) as exc:
            LOGGER.error(
                "Failed to resubscribe to %s: %s", self._settings.command_topic, exc
            )
