"""Constants used across the iotexec package."""

from __future__ import annotations

from pathlib import Path

APP_NAME = "iotexec"
DEFAULT_CONFIG_FILENAME = f"{APP_NAME}.cfg"
DEFAULT_CONFIG_PATH = Path("/etc") / APP_NAME / DEFAULT_CONFIG_FILENAME

DEFAULT_BROKER_HOST = "localhost"
DEFAULT_BROKER_PORT = 1883

DEFAULT_SERVICE_NAME = "exec"
DEFAULT_TOPIC_ROOT = "iot/devices"

# Inbound envelopes at or above this size are rejected.
MAX_MESSAGE_LENGTH = 4096

# Pending inbound messages held by the transport before new ones are dropped.
MAX_PENDING_MESSAGES = 10

# Matches BUFSIZ on most libc builds.
DEFAULT_READ_CHUNK_SIZE = 8192

RESPONSE_SOURCE = "exec"
RESPONSE_MESSAGE_TYPE = "cmdresp"
MESSAGE_ID_HEADER = "messageId"
CORRELATION_ID_HEADER = "correlationId"
