"""Configuration loader for iotexec."""

from __future__ import annotations

import socket
from configparser import ConfigParser
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from . import constants


@dataclass(slots=True)
class CloudConfig:
    broker_host: str = constants.DEFAULT_BROKER_HOST
    broker_port: int = constants.DEFAULT_BROKER_PORT
    username: Optional[str] = None
    password: Optional[str] = None
    device_id: Optional[str] = None
    keepalive: int = 60


@dataclass(slots=True)
class ExecConfig:
    service: str = constants.DEFAULT_SERVICE_NAME
    command_topic: Optional[str] = None
    response_topic: Optional[str] = None
    max_message_size: int = constants.MAX_MESSAGE_LENGTH
    max_pending_messages: int = constants.MAX_PENDING_MESSAGES
    qos: int = 1
    shell: Optional[str] = None
    read_chunk_size: int = constants.DEFAULT_READ_CHUNK_SIZE
    command_timeout_seconds: float = 0.0  # 0 disables the per-command deadline
    publish_timeout_seconds: float = 30.0

    @property
    def command_timeout(self) -> Optional[float]:
        if self.command_timeout_seconds <= 0:
            return None
        return self.command_timeout_seconds


@dataclass(slots=True)
class LoggingConfig:
    level: str = "WARNING"
    path: Optional[Path] = None
    log_network: bool = False


@dataclass(slots=True)
class HealthConfig:
    enabled: bool = False
    host: str = "127.0.0.1"
    port: int = 0


@dataclass(slots=True)
class ExecAppConfig:
    cloud: CloudConfig
    exec: ExecConfig
    logging: LoggingConfig
    health: HealthConfig
    raw: ConfigParser
    path: Path

    @property
    def device_id(self) -> str:
        return resolve_device_id(self.cloud)

    @property
    def command_topic(self) -> str:
        if self.exec.command_topic:
            return self.exec.command_topic
        return f"{constants.DEFAULT_TOPIC_ROOT}/{self.device_id}/{self.exec.service}"

    @property
    def response_topic(self) -> str:
        if self.exec.response_topic:
            return self.exec.response_topic
        return f"{constants.DEFAULT_TOPIC_ROOT}/{self.device_id}/messages"


def resolve_device_id(cloud: CloudConfig) -> str:
    if cloud.device_id:
        return cloud.device_id

    username = cloud.username
    if username and ":" in username:
        return username.split(":", 1)[1]

    return socket.gethostname()


def _optional(parser: ConfigParser, section: str, option: str) -> Optional[str]:
    value = parser.get(section, option, fallback="").strip()
    return value or None


def load_config(path: Optional[Path] = None) -> ExecAppConfig:
    """Load configuration from disk, applying defaults where necessary."""

    config_path = path or constants.DEFAULT_CONFIG_PATH
    parser = ConfigParser()
    parser.read_dict(
        {
            "cloud": {
                "broker_host": constants.DEFAULT_BROKER_HOST,
                "broker_port": str(constants.DEFAULT_BROKER_PORT),
                "keepalive": "60",
            },
            "exec": {
                "service": constants.DEFAULT_SERVICE_NAME,
                "max_message_size": str(constants.MAX_MESSAGE_LENGTH),
                "max_pending_messages": str(constants.MAX_PENDING_MESSAGES),
                "qos": "1",
                "read_chunk_size": str(constants.DEFAULT_READ_CHUNK_SIZE),
                "command_timeout_seconds": "0",
                "publish_timeout_seconds": "30",
            },
            "logging": {
                "level": "WARNING",
                "log_network": "false",
            },
            "health": {
                "enabled": "false",
                "host": "127.0.0.1",
                "port": "0",
            },
        }
    )

    if config_path.exists():
        parser.read(config_path)

    broker_host_value = parser.get("cloud", "broker_host")
    broker_port_value = parser.getint(
        "cloud", "broker_port", fallback=constants.DEFAULT_BROKER_PORT
    )

    if ":" in broker_host_value:
        host_part, port_part = broker_host_value.rsplit(":", 1)
        try:
            parsed_port = int(port_part)
        except ValueError:
            pass
        else:
            broker_host_value = host_part
            broker_port_value = parsed_port
            parser.set("cloud", "broker_host", host_part)
            parser.set("cloud", "broker_port", str(parsed_port))

    cloud = CloudConfig(
        broker_host=broker_host_value,
        broker_port=broker_port_value,
        username=_optional(parser, "cloud", "username"),
        password=_optional(parser, "cloud", "password"),
        device_id=_optional(parser, "cloud", "device_id"),
        keepalive=max(5, parser.getint("cloud", "keepalive", fallback=60)),
    )

    exec_config = ExecConfig(
        service=parser.get("exec", "service") or constants.DEFAULT_SERVICE_NAME,
        command_topic=_optional(parser, "exec", "command_topic"),
        response_topic=_optional(parser, "exec", "response_topic"),
        max_message_size=max(
            1,
            parser.getint(
                "exec", "max_message_size", fallback=constants.MAX_MESSAGE_LENGTH
            ),
        ),
        max_pending_messages=max(
            1,
            parser.getint(
                "exec",
                "max_pending_messages",
                fallback=constants.MAX_PENDING_MESSAGES,
            ),
        ),
        qos=max(0, min(2, parser.getint("exec", "qos", fallback=1))),
        shell=_optional(parser, "exec", "shell"),
        read_chunk_size=max(
            1,
            parser.getint(
                "exec", "read_chunk_size", fallback=constants.DEFAULT_READ_CHUNK_SIZE
            ),
        ),
        command_timeout_seconds=max(
            0.0, parser.getfloat("exec", "command_timeout_seconds", fallback=0.0)
        ),
        publish_timeout_seconds=max(
            1.0, parser.getfloat("exec", "publish_timeout_seconds", fallback=30.0)
        ),
    )

    log_path_value = _optional(parser, "logging", "path")
    logging_config = LoggingConfig(
        level=parser.get("logging", "level", fallback="WARNING"),
        path=Path(log_path_value).expanduser() if log_path_value else None,
        log_network=parser.getboolean("logging", "log_network", fallback=False),
    )

    health = HealthConfig(
        enabled=parser.getboolean("health", "enabled", fallback=False),
        host=parser.get("health", "host", fallback="127.0.0.1"),
        port=parser.getint("health", "port", fallback=0),
    )

    return ExecAppConfig(
        cloud=cloud,
        exec=exec_config,
        logging=logging_config,
        health=health,
        raw=parser,
        path=config_path,
    )
