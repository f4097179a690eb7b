from pathlib import Path

from iotexec import constants
from iotexec.config import CloudConfig, load_config, resolve_device_id


def test_load_config_defaults(tmp_path: Path) -> None:
    config_path = tmp_path / "iotexec.cfg"
    config = load_config(config_path)

    assert config.cloud.broker_host == "localhost"
    assert config.cloud.broker_port == 1883
    assert config.exec.service == "exec"
    assert config.exec.max_message_size == 4096
    assert config.exec.max_pending_messages == 10
    assert config.exec.qos == 1
    assert config.exec.shell is None
    assert config.exec.command_timeout is None
    assert config.logging.level == "WARNING"
    assert config.logging.path is None
    assert config.health.enabled is False
    assert config.path == config_path


def test_load_config_parses_broker_host_with_port(tmp_path: Path) -> None:
    config_path = tmp_path / "iotexec.cfg"
    config_path.write_text("[cloud]\nbroker_host = broker.local:8884\n", encoding="utf-8")

    config = load_config(config_path)

    assert config.cloud.broker_host == "broker.local"
    assert config.cloud.broker_port == 8884
    assert config.raw.get("cloud", "broker_host") == "broker.local"
    assert config.raw.get("cloud", "broker_port") == "8884"


def test_load_config_overrides_defaults(tmp_path: Path) -> None:
    config_file = tmp_path / "iotexec.cfg"
    config_file.write_text(
        """
[cloud]
broker_host = mqtt.example.com
username = tenant-1:device-9
password = secret

[exec]
service = shell
max_pending_messages = 3
qos = 7
shell = /bin/bash
command_timeout_seconds = 12.5

[logging]
level = DEBUG
path = ~/iotexec.log

[health]
enabled = true
port = 8099
"""
    )

    config = load_config(config_file)

    assert config.cloud.password == "secret"
    assert config.device_id == "device-9"
    assert config.exec.max_pending_messages == 3
    assert config.exec.qos == 2
    assert config.exec.shell == "/bin/bash"
    assert config.exec.command_timeout == 12.5
    assert config.command_topic == "iot/devices/device-9/shell"
    assert config.response_topic == "iot/devices/device-9/messages"
    assert config.logging.level == "DEBUG"
    assert config.logging.path == Path("~/iotexec.log").expanduser()
    assert config.health.enabled is True
    assert config.health.port == 8099


def test_explicit_topics_take_precedence(tmp_path: Path) -> None:
    config_file = tmp_path / "iotexec.cfg"
    config_file.write_text(
        "[cloud]\ndevice_id = gw-1\n\n"
        "[exec]\ncommand_topic = c2d/gw-1\nresponse_topic = d2c/gw-1\n",
        encoding="utf-8",
    )

    config = load_config(config_file)

    assert config.command_topic == "c2d/gw-1"
    assert config.response_topic == "d2c/gw-1"


def test_limits_are_clamped(tmp_path: Path) -> None:
    config_file = tmp_path / "iotexec.cfg"
    config_file.write_text(
        "[exec]\nmax_message_size = 0\nmax_pending_messages = -4\n"
        "read_chunk_size = 0\ncommand_timeout_seconds = -1\n",
        encoding="utf-8",
    )

    config = load_config(config_file)

    assert config.exec.max_message_size == 1
    assert config.exec.max_pending_messages == 1
    assert config.exec.read_chunk_size == 1
    assert config.exec.command_timeout is None


def test_resolve_device_id_falls_back_to_hostname(monkeypatch) -> None:
    monkeypatch.setattr("iotexec.config.socket.gethostname", lambda: "edge-box")

    assert resolve_device_id(CloudConfig(device_id="dev-1")) == "dev-1"
    assert resolve_device_id(CloudConfig(username="tenant:dev-2")) == "dev-2"
    assert resolve_device_id(CloudConfig(username="plain")) == "edge-box"
    assert constants.DEFAULT_TOPIC_ROOT == "iot/devices"
