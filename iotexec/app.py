"""Main application entry-point for iotexec."""

from __future__ import annotations

import asyncio
import logging
import os
import signal
from typing import Optional

from . import constants
from .adapters import MQTTClient, MQTTConnectionError
from .config import ExecAppConfig, load_config
from .core.envelope import EnvelopeDecoder
from .core.errors import TransportReceiveFatal
from .core.executor import CommandExecutor
from .core.streamer import ResponseStreamer
from .health import HealthReporter, HealthServer
from .logging import configure_logging
from .loop import MessageLoop
from .transport import MQTTTransport, TransportSettings

LOGGER = logging.getLogger(__name__)

_SHUTDOWN_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class ExecApp:
    """Owns the transport connection and drives the message loop.

    All long-lived state lives on the instance. Termination signals cancel
    the running task, which abandons the in-flight message, reaps any child
    process and closes the transport before :meth:`run` returns.
    """

    def __init__(
        self,
        config: Optional[ExecAppConfig] = None,
        *,
        transport: Optional[MQTTTransport] = None,
        verbose: bool = False,
    ) -> None:
        self._config = config or load_config()
        self._verbose = verbose
        self._transport = transport
        self._mqtt_client: Optional[MQTTClient] = None
        self._health = HealthReporter()
        self._health_server: Optional[HealthServer] = None
        self._loop_runner: Optional[MessageLoop] = None
        self._task: Optional[asyncio.Task] = None
        self._shutdown_signal: Optional[signal.Signals] = None

    @property
    def health(self) -> HealthReporter:
        return self._health

    @property
    def message_loop(self) -> Optional[MessageLoop]:
        return self._loop_runner

    @classmethod
    def start(cls, config: Optional[ExecAppConfig] = None, *, verbose: bool = False) -> int:
        instance = cls(config=config, verbose=verbose)
        configure_logging(
            instance._config.logging.level,
            log_path=instance._config.logging.path,
            log_network=instance._config.logging.log_network,
            verbose=verbose,
        )
        try:
            return asyncio.run(instance.run())
        except KeyboardInterrupt:
            LOGGER.error("Abnormal termination of %s", constants.APP_NAME)
            return 1

    async def run(self) -> int:
        self._task = asyncio.current_task()
        self._install_signal_handlers()

        LOGGER.info("%s starting with config: %s", constants.APP_NAME, self._config.path)
        try:
            try:
                await self._start_services()
            except TransportReceiveFatal as exc:
                LOGGER.error("Cannot create command receiver: %s", exc)
                await self._health.update("mqtt", False, str(exc))
                return exc.errno or 1

            assert self._loop_runner is not None
            try:
                await self._loop_runner.run()
            except TransportReceiveFatal as exc:
                LOGGER.error("Command receiver failed: %s", exc)
                return exc.errno or 1
        except asyncio.CancelledError:
            if self._shutdown_signal is None:
                raise
            LOGGER.error(
                "Abnormal termination of %s (%s)",
                constants.APP_NAME,
                self._shutdown_signal.name,
            )
            return 1
        finally:
            await self._stop_services()
            self._remove_signal_handlers()

        return 0

    def request_shutdown(self, signum: signal.Signals) -> None:
        if self._shutdown_signal is not None:
            return
        self._shutdown_signal = signum
        LOGGER.info("Received %s; shutting down", signum.name)
        if self._task is not None and not self._task.done():
            self._task.cancel()

    def _install_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        for signum in _SHUTDOWN_SIGNALS:
            try:
                loop.add_signal_handler(signum, self.request_shutdown, signum)
            except (NotImplementedError, RuntimeError, ValueError):
                LOGGER.debug("Signal handler for %s unavailable", signum.name)

    def _remove_signal_handlers(self) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        for signum in _SHUTDOWN_SIGNALS:
            try:
                loop.remove_signal_handler(signum)
            except (NotImplementedError, RuntimeError, ValueError):
                pass

    async def _start_services(self) -> None:
        exec_config = self._config.exec

        await self._health.update("mqtt", False, "initialising")
        await self._health.update("exec", False, "awaiting transport")

        if self._transport is None:
            self._transport = await self._connect_transport()

        await self._transport.start()
        await self._health.update("mqtt", True, None)

        streamer = ResponseStreamer(
            self._transport, chunk_size=exec_config.read_chunk_size
        )
        self._loop_runner = MessageLoop(
            self._transport,
            EnvelopeDecoder(exec_config.max_message_size),
            CommandExecutor(shell=exec_config.shell),
            streamer,
            command_timeout=exec_config.command_timeout,
            health=self._health,
        )
        await self._health.update("exec", True, "ready")
        await self._start_health_server()

    async def _connect_transport(self) -> MQTTTransport:
        client = MQTTClient(
            self._config.cloud, client_id=_build_client_id(self._config.device_id)
        )
        client.register_disconnect_handler(self._on_mqtt_disconnect)
        client.register_connect_handler(self._on_mqtt_connect)
        try:
            await client.connect()
        except MQTTConnectionError as exc:
            raise TransportReceiveFatal(str(exc)) from exc

        self._mqtt_client = client
        return MQTTTransport(client, TransportSettings.from_config(self._config))

    async def _start_health_server(self) -> None:
        health = self._config.health
        if not health.enabled or health.port <= 0:
            return

        server = HealthServer(self._health, health.host, health.port)
        try:
            await server.start()
        except OSError as exc:
            LOGGER.error("Failed to start health endpoint: %s", exc)
            await self._health.update("health-endpoint", False, str(exc))
        else:
            self._health_server = server
            await self._health.update("health-endpoint", True, None)

    async def _stop_services(self) -> None:
        if self._health_server is not None:
            await self._health_server.stop()
            self._health_server = None

        if self._transport is not None:
            await self._transport.close()

        if self._mqtt_client is not None:
            try:
                await self._mqtt_client.disconnect()
            except MQTTConnectionError as exc:
                LOGGER.debug("MQTT disconnect failed: %s", exc)
            self._mqtt_client = None
            await self._health.update("mqtt", False, "shutdown")

    def _on_mqtt_disconnect(self, rc: int) -> None:
        asyncio.ensure_future(
            self._health.update("mqtt", False, f"disconnected (rc={rc})")
        )

    def _on_mqtt_connect(self, rc: int) -> None:
        asyncio.ensure_future(self._health.update("mqtt", True, None))


def _build_client_id(device_id: Optional[str]) -> str:
    suffix = device_id or str(os.getpid())
    return f"{constants.APP_NAME}-{suffix}"
