"""MQTT adapter encapsulating paho-mqtt client usage."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, List, Optional, Sequence, Tuple

import paho.mqtt.client as mqtt
from paho.mqtt.packettypes import PacketTypes
from paho.mqtt.properties import Properties

from ..config import CloudConfig

LOGGER = logging.getLogger(__name__)
PAHO_LOGGER = logging.getLogger("paho.mqtt.client")
PUBLISH_POLL_INTERVAL = 0.05

UserProperties = List[Tuple[str, str]]
MessageHandler = Callable[[str, bytes, UserProperties], Awaitable[None] | None]


class MQTTConnectionError(RuntimeError):
    """Raised when the MQTT client fails to establish a connection."""


def _reason_value(reason_code: Any) -> int:
    value = getattr(reason_code, "value", reason_code)
    try:
        return int(value)
    except (TypeError, ValueError):
        return -1


def build_user_properties(items: Sequence[Tuple[str, str]]) -> Properties:
    properties = Properties(PacketTypes.PUBLISH)
    if items:
        properties.UserProperty = [(str(key), str(value)) for key, value in items]
    return properties


def extract_user_properties(properties: Any) -> UserProperties:
    if properties is None:
        return []
    values = getattr(properties, "UserProperty", None) or []
    return [(str(key), str(value)) for key, value in values]


async def _wait_published(
    info: mqtt.MQTTMessageInfo, interval: float = PUBLISH_POLL_INTERVAL
) -> None:
    # is_published raises once paho gives up on the message.
    while not info.is_published():
        await asyncio.sleep(interval)


class MQTTClient:
    """Async-friendly wrapper over the threaded paho-mqtt client."""

    def __init__(
        self,
        config: CloudConfig,
        *,
        client_id: str,
        keepalive: Optional[int] = None,
    ) -> None:
        self.config = config
        self.client_id = client_id
        self.keepalive = keepalive if keepalive is not None else config.keepalive

        self._client: Optional[mqtt.Client] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._connected_event: Optional[asyncio.Event] = None
        self._disconnect_event: Optional[asyncio.Event] = None
        self._message_handler: Optional[MessageHandler] = None
        self._last_connect_rc: Optional[int] = None
        self._connected: bool = False
        self._disconnect_handlers: List[Callable[[int], None]] = []
        self._connect_handlers: List[Callable[[int], None]] = []

    async def connect(self, timeout: float = 30.0) -> None:
        """Connect to the MQTT broker and wait for acknowledgement."""

        self._loop = asyncio.get_running_loop()
        self._connected_event = asyncio.Event()
        self._disconnect_event = asyncio.Event()
        self._last_connect_rc = None

        client = mqtt.Client(
            callback_api_version=mqtt.CallbackAPIVersion.VERSION2,
            client_id=self.client_id,
            protocol=mqtt.MQTTv5,
        )
        client.enable_logger(PAHO_LOGGER)

        if self.config.username:
            client.username_pw_set(self.config.username, self.config.password)

        client.on_connect = self._on_connect
        client.on_disconnect = self._on_disconnect
        client.on_message = self._on_message

        self._client = client

        LOGGER.info(
            "Connecting to MQTT broker %s:%s",
            self.config.broker_host,
            self.config.broker_port,
        )

        try:
            client.connect_async(
                self.config.broker_host, self.config.broker_port, self.keepalive
            )
        except (OSError, ValueError) as exc:
            self._client = None
            raise MQTTConnectionError(f"Invalid MQTT broker address: {exc}") from exc
        client.loop_start()

        try:
            await asyncio.wait_for(self._connected_event.wait(), timeout=timeout)
            if self._last_connect_rc is None or self._last_connect_rc != 0:
                raise MQTTConnectionError(
                    f"MQTT broker rejected connection (rc={self._last_connect_rc})"
                )
        except asyncio.TimeoutError as exc:
            client.loop_stop()
            self._client = None
            raise MQTTConnectionError("Timed out connecting to MQTT broker") from exc
        except MQTTConnectionError:
            client.loop_stop()
            self._client = None
            raise

    async def disconnect(self, timeout: float = 5.0) -> None:
        """Gracefully disconnect from the broker."""

        if not self._client:
            return

        assert self._disconnect_event is not None

        self._client.disconnect()

        try:
            await asyncio.wait_for(self._disconnect_event.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            LOGGER.warning("Timed out waiting for MQTT disconnect acknowledgement")
        finally:
            self._client.loop_stop()
            self._client = None
        self._connected = False

    def publish(
        self,
        topic: str,
        payload: bytes,
        qos: int = 1,
        retain: bool = False,
        *,
        properties: Optional[Properties] = None,
    ) -> mqtt.MQTTMessageInfo:
        if not self._client:
            raise RuntimeError("MQTT client not connected")

        info = self._client.publish(
            topic, payload, qos=qos, retain=retain, properties=properties
        )
        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            raise MQTTConnectionError(f"Publish failed with rc={info.rc}")
        return info

    async def publish_and_wait(
        self,
        topic: str,
        payload: bytes,
        qos: int = 1,
        *,
        properties: Optional[Properties] = None,
        timeout: float = 30.0,
    ) -> None:
        """Publish and wait until paho reports the message as delivered.

        For QoS 0 this means written to the socket, otherwise acknowledged
        by the broker. The wait runs on the event loop, so cancelling the
        caller abandons it immediately.
        """

        info = self.publish(topic, payload, qos=qos, properties=properties)
        try:
            await asyncio.wait_for(_wait_published(info), timeout)
        except asyncio.TimeoutError as exc:
            raise MQTTConnectionError(
                f"Publish not acknowledged within {timeout:.0f}s"
            ) from exc
        except (RuntimeError, ValueError) as exc:
            raise MQTTConnectionError(f"Publish was not delivered: {exc}") from exc

    def subscribe(self, topic: str, qos: int = 1) -> None:
        if not self._client:
            raise RuntimeError("MQTT client not connected")
        result, _ = self._client.subscribe(topic, qos=qos)
        if result != mqtt.MQTT_ERR_SUCCESS:
            raise MQTTConnectionError(f"Subscribe failed with rc={result}")

    def unsubscribe(self, topic: str) -> None:
        if not self._client:
            raise RuntimeError("MQTT client not connected")

        result, _ = self._client.unsubscribe(topic)
        if result != mqtt.MQTT_ERR_SUCCESS:
            raise MQTTConnectionError(f"Unsubscribe failed with rc={result}")

    def set_message_handler(self, handler: Optional[MessageHandler]) -> None:
        self._message_handler = handler

    def register_disconnect_handler(self, handler: Callable[[int], None]) -> None:
        self._disconnect_handlers.append(handler)

    def register_connect_handler(self, handler: Callable[[int], None]) -> None:
        self._connect_handlers.append(handler)

    def is_connected(self) -> bool:
        return self._connected

    # ------------------------------------------------------------------
    # Internal callbacks bridging the threaded paho callbacks into asyncio
    # ------------------------------------------------------------------
    def _on_connect(
        self, client: mqtt.Client, userdata, flags, reason_code, properties=None
    ) -> None:
        rc = _reason_value(reason_code)
        self._last_connect_rc = rc
        if rc == 0:
            LOGGER.info("Connected to MQTT broker")
            self._connected = True
            if self._loop:
                if self._connected_event:
                    self._loop.call_soon_threadsafe(self._connected_event.set)
                for handler in self._connect_handlers:
                    self._loop.call_soon_threadsafe(handler, rc)
        else:
            LOGGER.error("MQTT connection failed with rc=%s", rc)
            self._connected = False
            if self._loop and self._connected_event:
                self._loop.call_soon_threadsafe(self._connected_event.set)

    def _on_disconnect(
        self, client: mqtt.Client, userdata, flags, reason_code, properties=None
    ) -> None:
        rc = _reason_value(reason_code)
        LOGGER.info("Disconnected from MQTT broker (rc=%s)", rc)
        self._connected = False
        if self._loop:
            if self._disconnect_event:
                self._loop.call_soon_threadsafe(self._disconnect_event.set)
            for handler in self._disconnect_handlers:
                self._loop.call_soon_threadsafe(handler, rc)

    def _on_message(
        self, client: mqtt.Client, userdata, message: mqtt.MQTTMessage
    ) -> None:
        handler = self._message_handler
        loop = self._loop
        if not handler or not loop:
            return

        user_properties = extract_user_properties(getattr(message, "properties", None))
        try:
            result = handler(message.topic, message.payload, user_properties)
            if asyncio.iscoroutine(result):
                asyncio.run_coroutine_threadsafe(result, loop)
        except Exception:  # pragma: no cover - defensive logging
            LOGGER.exception("MQTT message handler raised an exception")
