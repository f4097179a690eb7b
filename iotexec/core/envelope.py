"""Inbound envelope decoding."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Iterator, List, Optional, Tuple

from .. import constants
from .errors import OversizedMessage

LOGGER = logging.getLogger(__name__)

_KEY_PATTERN = re.compile(r"^[!#$%&'*+.^_`|~0-9A-Za-z-]+$")


@dataclass(frozen=True, slots=True)
class Envelope:
    """One inbound transport message."""

    header: bytes
    body: bytes

    @property
    def size(self) -> int:
        return len(self.header) + len(self.body)


@dataclass(slots=True)
class HeaderMap:
    """Ordered ``key:value`` pairs parsed from an envelope header.

    Lookups are case-sensitive and return the first matching entry.
    Malformed lines are skipped and described in ``warnings``.
    """

    items: List[Tuple[str, str]] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        for name, value in self.items:
            if name == key:
                return value
        return default

    def __contains__(self, key: object) -> bool:
        return any(name == key for name, _ in self.items)

    def __iter__(self) -> Iterator[Tuple[str, str]]:
        return iter(self.items)

    def __len__(self) -> int:
        return len(self.items)


@dataclass(frozen=True, slots=True)
class DecodedMessage:
    headers: HeaderMap
    body: bytes
    command: bytes
    correlation_id: Optional[str] = None


def parse_header_lines(data: bytes) -> HeaderMap:
    """Parse a header block leniently.

    Never raises: lines that cannot be understood are dropped and recorded
    as warnings so the caller can proceed with whatever was recovered.
    """

    headers = HeaderMap()
    if not data:
        return headers

    try:
        text = data.decode("ascii")
    except UnicodeDecodeError:
        text = data.decode("utf-8", errors="replace")
        headers.warnings.append("header contains non-ASCII bytes")

    for number, raw_line in enumerate(text.split("\n"), start=1):
        line = raw_line.rstrip("\r")
        if not line.strip():
            continue

        key, sep, value = line.partition(":")
        key = key.strip()
        if not sep:
            headers.warnings.append(f"line {number}: missing ':' separator")
            continue
        if not _KEY_PATTERN.match(key):
            headers.warnings.append(f"line {number}: invalid key {key!r}")
            continue

        headers.items.append((key, value))

    return headers


class EnvelopeDecoder:
    """Splits envelopes into headers and a command body."""

    def __init__(self, max_message_size: int = constants.MAX_MESSAGE_LENGTH) -> None:
        self.max_message_size = max_message_size

    def decode(self, envelope: Envelope) -> DecodedMessage:
        size = envelope.size
        if size >= self.max_message_size:
            raise OversizedMessage(size, self.max_message_size)

        headers = parse_header_lines(envelope.header)
        for warning in headers.warnings:
            LOGGER.warning("Malformed message header: %s", warning)

        correlation_id = headers.get(constants.MESSAGE_ID_HEADER)
        if correlation_id is not None:
            LOGGER.debug("messageId = %s", correlation_id)

        command, nul, _ = envelope.body.partition(b"\0")
        if nul:
            LOGGER.warning(
                "Command body contains NUL; truncated to %d bytes", len(command)
            )

        return DecodedMessage(
            headers=headers,
            body=envelope.body,
            command=command,
            correlation_id=correlation_id,
        )
