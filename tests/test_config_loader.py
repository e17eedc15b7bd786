import pytest
import yaml

from mtsio_bridge.adapter_config import AdapterConfigStore, fetch_topic_root
from mtsio_bridge.config_loader import Settings, load_config

"""
Tests for the YAML configuration loader and the adapter config store.
"""

def test_missing_config_file_yields_defaults(tmp_path):
    config = load_config(str(tmp_path / "missing.yaml"))

    assert config == {}
    settings = Settings.from_config(config)
    assert settings.topic_root == "wayside/mtsio"
    assert settings.port == 1883
    assert settings.command_program == "mts-io-sysfs"
    assert settings.auth_retry_interval == 60.0
    assert settings.subscribe_retry_interval == 30.0


def test_config_values_are_coerced(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(yaml.safe_dump({
        "mqtt": {"host": "broker.local", "port": "8883", "username": "dev", "qos": "1"},
        "topic_root": "site/9/mtsio",
        "adapter": {"name": "mtsIoAdapter2", "config_collection": "rows.yaml"},
        "command": {"timeout": "2.5"},
        "retry": {"auth_interval": 1, "subscribe_interval": 2},
        "logging": {"level": "debug"},
    }))

    settings = Settings.from_config(load_config(str(path)))

    assert settings.host == "broker.local"
    assert settings.port == 8883
    assert settings.qos == 1
    assert settings.username == "dev"
    assert settings.topic_root == "site/9/mtsio"
    assert settings.adapter_name == "mtsIoAdapter2"
    assert settings.adapter_config_collection == "rows.yaml"
    assert settings.command_timeout == 2.5
    assert settings.auth_retry_interval == 1.0
    assert settings.log_level == "DEBUG"


def test_broken_config_file_raises(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("mqtt: [unclosed")

    with pytest.raises(yaml.YAMLError):
        load_config(str(path))


def test_topic_root_override_from_matching_row(tmp_path):
    path = tmp_path / "adapters.yaml"
    path.write_text(yaml.safe_dump([
        {"adapter_name": "serialAdapter", "topic_root": "wayside/serial"},
        {"adapter_name": "mtsIoAdapter", "topic_root": "wayside/io"},
    ]))

    assert fetch_topic_root(AdapterConfigStore(str(path)), "mtsIoAdapter", "wayside/mtsio") == "wayside/io"


@pytest.mark.parametrize("rows", [
    [],
    [{"adapter_name": "mtsIoAdapter"}],
    [{"adapter_name": "mtsIoAdapter", "topic_root": None}],
    [{"adapter_name": "other", "topic_root": "x"}],
])
def test_topic_root_defaults_when_row_has_nothing(tmp_path, rows):
    path = tmp_path / "adapters.yaml"
    path.write_text(yaml.safe_dump(rows))

    assert fetch_topic_root(AdapterConfigStore(str(path)), "mtsIoAdapter", "wayside/mtsio") == "wayside/mtsio"


def test_topic_root_defaults_silently_on_store_errors(tmp_path):
    missing = AdapterConfigStore(str(tmp_path / "nope.yaml"))
    not_a_list = tmp_path / "bad.yaml"
    not_a_list.write_text("adapter_name: mtsIoAdapter\n")

    assert fetch_topic_root(missing, "mtsIoAdapter", "wayside/mtsio") == "wayside/mtsio"
    assert fetch_topic_root(AdapterConfigStore(str(not_a_list)), "mtsIoAdapter", "wayside/mtsio") == "wayside/mtsio"
    assert fetch_topic_root(None, "mtsIoAdapter", "wayside/mtsio") == "wayside/mtsio"
