"""Core request/response pipeline primitives."""

from .envelope import (
    DecodedMessage,
    Envelope,
    EnvelopeDecoder,
    HeaderMap,
    parse_header_lines,
)
from .errors import (
    CommandTimeout,
    DecodeError,
    DescriptorError,
    ExecError,
    OversizedMessage,
    SpawnFailure,
    TransportReceiveFatal,
    TransportSendError,
)
from .executor import CommandExecutor, CommandOutput, run_command
from .protocols import TransportReceiver, TransportSender
from .streamer import OutboundHeaders, ResponseStreamer, build_outbound_headers

__all__ = [
    "CommandExecutor",
    "CommandOutput",
    "CommandTimeout",
    "DecodeError",
    "DecodedMessage",
    "DescriptorError",
    "Envelope",
    "EnvelopeDecoder",
    "ExecError",
    "HeaderMap",
    "OutboundHeaders",
    "OversizedMessage",
    "ResponseStreamer",
    "SpawnFailure",
    "TransportReceiveFatal",
    "TransportReceiver",
    "TransportSendError",
    "TransportSender",
    "build_outbound_headers",
    "parse_header_lines",
    "run_command",
]
