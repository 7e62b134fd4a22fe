import pytest

from pydantic import ValidationError

from garage_bridge.core.config import BridgeConfig, Settings
from garage_bridge.core.config_loader import ConfigLoader, load_bridge_config
from garage_bridge.core.errors import ConfigurationError


def make_settings(tmp_path, **values):
    values.setdefault("CONFIG_FILE", str(tmp_path / "missing.yaml"))
    return Settings(_env_file=None, **values)


def test_environment_values_without_overlay(tmp_path):
    config = load_bridge_config(make_settings(tmp_path, MQTT_HOST="broker.local", MQTT_TOPIC="home/garage"))

    assert config.broker_host == "broker.local"
    assert config.broker_port == 8883
    assert config.topic == "home/garage"
    assert config.payload == "1"
    assert config.client_id == "garage-mqtt-bridge"
    assert config.keepalive == 30
    assert config.qos == 1
    assert config.ca_cert == "/certs/ca.crt"
    assert config.http_port == 8080


def test_yaml_overlay_overrides_environment(tmp_path):
    overlay = tmp_path / "bridge.yaml"
    overlay.write_text(
        "mqtt:\n"
        "  host: overlay.example\n"
        "  port: 1883\n"
        "ssl:\n"
        "  ca_cert: /etc/bridge/ca.pem\n"
        "trigger:\n"
        "  payload: OPEN\n"
        "reconnect:\n"
        "  max_delay: 30\n",
        encoding="utf-8",
    )
    config = load_bridge_config(make_settings(tmp_path, MQTT_HOST="env.example", CONFIG_FILE=str(overlay)))

    assert config.broker_host == "overlay.example"
    assert config.broker_port == 1883
    assert config.ca_cert == "/etc/bridge/ca.pem"
    assert config.payload == "OPEN"
    assert config.reconnect_max_delay == 30


def test_snapshot_is_immutable(tmp_path):
    config = load_bridge_config(make_settings(tmp_path))
    with pytest.raises(Exception):
        config.topic = "other"


def test_invalid_backoff_bounds(tmp_path):
    settings = make_settings(tmp_path, RECONNECT_BASE_DELAY=10.0, RECONNECT_MAX_DELAY=1.0)
    with pytest.raises(ConfigurationError):
        load_bridge_config(settings)


def test_invalid_port(tmp_path):
    with pytest.raises(ConfigurationError):
        load_bridge_config(make_settings(tmp_path, MQTT_PORT=70000))


def test_malformed_yaml(tmp_path):
    overlay = tmp_path / "bridge.yaml"
    overlay.write_text("mqtt: [unclosed\n", encoding="utf-8")
    with pytest.raises(ConfigurationError):
        ConfigLoader(make_settings(tmp_path, CONFIG_FILE=str(overlay))).load_overrides()


def test_section_must_be_mapping(tmp_path):
    overlay = tmp_path / "bridge.yaml"
    overlay.write_text("mqtt: broker.example\n", encoding="utf-8")
    with pytest.raises(ConfigurationError):
        ConfigLoader(make_settings(tmp_path, CONFIG_FILE=str(overlay))).load_overrides()


def test_config_file_is_a_directory(tmp_path):
    directory = tmp_path / "bridge.yaml"
    directory.mkdir()
    with pytest.raises(ConfigurationError, match="无法读取配置文件"):
        ConfigLoader(make_settings(tmp_path, CONFIG_FILE=str(directory))).load_overrides()


def test_snapshot_model_is_frozen(tmp_path):
    config = load_bridge_config(make_settings(tmp_path))

    assert BridgeConfig.model_config.get("frozen") is True
    with pytest.raises(ValidationError):
        config.topic = "other"
