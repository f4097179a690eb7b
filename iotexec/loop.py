"""Sequential message loop driving decode, execute and stream."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .core.envelope import Envelope, EnvelopeDecoder
from .core.errors import CommandTimeout, DecodeError, ExecError
from .core.executor import CommandExecutor
from .core.protocols import TransportReceiver
from .core.streamer import ResponseStreamer, build_outbound_headers
from .health import HealthReporter

LOGGER = logging.getLogger(__name__)


class LoopState(str, Enum):
    WAITING_FOR_MESSAGE = "waiting_for_message"
    PROCESSING = "processing"


class OutcomeStatus(str, Enum):
    SENT = "sent"
    DROPPED = "dropped"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class MessageOutcome:
    status: OutcomeStatus
    correlation_id: Optional[str] = None
    error: Optional[str] = None
    returncode: Optional[int] = None


class MessageLoop:
    """Processes one envelope at a time, in arrival order.

    Every per-message failure is contained in :meth:`process`; only an
    error raised while waiting for the next envelope, or cancellation,
    ends :meth:`run`.
    """

    def __init__(
        self,
        receiver: TransportReceiver,
        decoder: EnvelopeDecoder,
        executor: CommandExecutor,
        streamer: ResponseStreamer,
        *,
        command_timeout: Optional[float] = None,
        health: Optional[HealthReporter] = None,
    ) -> None:
        self._receiver = receiver
        self._decoder = decoder
        self._executor = executor
        self._streamer = streamer
        self._command_timeout = command_timeout
        self._health = health
        self.state = LoopState.WAITING_FOR_MESSAGE
        self.processed_count = 0

    async def run(self) -> None:
        while True:
            await self._set_state(LoopState.WAITING_FOR_MESSAGE)
            envelope = await self._receiver.receive()

            await self._set_state(LoopState.PROCESSING)
            try:
                await self.process(envelope)
            finally:
                self.processed_count += 1

    async def process(self, envelope: Envelope) -> MessageOutcome:
        LOGGER.debug(
            "Received message: header (%d): %r body (%d): %r",
            len(envelope.header),
            envelope.header,
            len(envelope.body),
            envelope.body,
        )

        try:
            message = self._decoder.decode(envelope)
        except DecodeError as exc:
            LOGGER.info("Dropping message: %s", exc)
            return await self._finish(
                MessageOutcome(OutcomeStatus.DROPPED, error=exc.code)
            )

        correlation_id = message.correlation_id
        try:
            returncode = await self._run_with_deadline(message.command, correlation_id)
        except ExecError as exc:
            LOGGER.info(
                "Command failed (correlationId=%s): %s", correlation_id, exc
            )
            return await self._finish(
                MessageOutcome(
                    OutcomeStatus.FAILED, correlation_id=correlation_id, error=exc.code
                )
            )
        except Exception:
            LOGGER.exception(
                "Unexpected error processing command (correlationId=%s)",
                correlation_id,
            )
            return await self._finish(
                MessageOutcome(
                    OutcomeStatus.FAILED,
                    correlation_id=correlation_id,
                    error="internal_error",
                )
            )

        return await self._finish(
            MessageOutcome(
                OutcomeStatus.SENT,
                correlation_id=correlation_id,
                returncode=returncode,
            )
        )

    async def _run_with_deadline(
        self, command: bytes, correlation_id: Optional[str]
    ) -> Optional[int]:
        if self._command_timeout is None:
            return await self._execute(command, correlation_id)

        try:
            return await asyncio.wait_for(
                self._execute(command, correlation_id), timeout=self._command_timeout
            )
        except asyncio.TimeoutError as exc:
            raise CommandTimeout(
                f"command did not finish within {self._command_timeout:g}s"
            ) from exc

    async def _execute(
        self, command: bytes, correlation_id: Optional[str]
    ) -> Optional[int]:
        LOGGER.debug(
            "Processing command: %s", command.decode("utf-8", errors="replace")
        )
        headers = build_outbound_headers(correlation_id)

        async with self._executor.execute(command) as output:
            await self._streamer.stream(headers, output)

        return output.returncode

    async def _finish(self, outcome: MessageOutcome) -> MessageOutcome:
        if self._health is not None:
            detail = outcome.status.value
            if outcome.error:
                detail = f"{detail}: {outcome.error}"
            await self._health.record_outcome(outcome.status.value, detail)
        return outcome

    async def _set_state(self, state: LoopState) -> None:
        self.state = state
        if self._health is not None:
            await self._health.set_loop_state(state.value)
