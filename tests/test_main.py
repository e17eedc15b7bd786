import pytest
import asyncio
from unittest.mock import patch, AsyncMock, MagicMock

# Import the function we want to test
from mtsio_bridge.main import main_application_runner, run, shutdown
from mtsio_bridge.mqtt import SessionInitError

@pytest.fixture
def mock_config():
    """Provides a fake configuration dictionary."""
    return {
        "mqtt": {"host": "localhost", "port": 1883},
        "adapter": {"config_collection": "adapters.yaml"},
        "command": {"program": "/usr/sbin/mts-io-sysfs", "timeout": 3},
    }

@pytest.mark.asyncio
# We use @patch to replace the real classes with fake ones ONLY during this test
@patch('mtsio_bridge.main.load_config')
@patch('mtsio_bridge.main.AdapterConfigStore')
@patch('mtsio_bridge.main.MQTTManager')
async def test_main_orchestrates_startup_and_wiring(
    MockMQTTManager,
    MockAdapterConfigStore,
    mock_load_config,
    mock_config
):
    """
    Tests that main_application_runner builds the executor, the config store
    and the MQTTManager from the configuration, then waits on the manager.
    """
    mock_load_config.return_value = mock_config

    mock_mqtt_instance = MagicMock()
    mock_mqtt_instance.start = AsyncMock()
    mock_mqtt_instance.join = AsyncMock()
    MockMQTTManager.return_value = mock_mqtt_instance

    await main_application_runner("bridge.yaml")

    mock_load_config.assert_called_once_with("bridge.yaml")
    MockAdapterConfigStore.assert_called_once_with("adapters.yaml")

    _, kwargs = MockMQTTManager.call_args
    assert kwargs['config_store'] is MockAdapterConfigStore.return_value
    assert kwargs['executor'].program == "/usr/sbin/mts-io-sysfs"
    assert kwargs['executor'].timeout == 3.0
    assert kwargs['settings'].host == "localhost"

    mock_mqtt_instance.start.assert_awaited_once()
    mock_mqtt_instance.join.assert_awaited_once()


@pytest.mark.asyncio
@patch('mtsio_bridge.main.load_config', return_value={})
@patch('mtsio_bridge.main.MQTTManager')
async def test_main_without_adapter_collection_skips_config_store(MockMQTTManager, _mock_load_config):
    mock_mqtt_instance = MagicMock()
    mock_mqtt_instance.start = AsyncMock()
    mock_mqtt_instance.join = AsyncMock()
    MockMQTTManager.return_value = mock_mqtt_instance

    await main_application_runner()

    _, kwargs = MockMQTTManager.call_args
    assert kwargs['config_store'] is None


@pytest.mark.asyncio
async def test_shutdown_sequence():
    """
    Tests that the shutdown handler stops the MQTT manager.
    """
    mock_mqtt = MagicMock()
    mock_mqtt.stop = AsyncMock()

    await shutdown("SIGINT", mock_mqtt)

    mock_mqtt.stop.assert_awaited_once()


@patch('mtsio_bridge.main.main_application_runner', new=MagicMock())
@patch('mtsio_bridge.main.asyncio.run', side_effect=SessionInitError("no client"))
def test_run_exits_when_mqtt_cannot_be_initialized(_mock_run):
    with pytest.raises(SystemExit) as excinfo:
        run()
    assert excinfo.value.code == 1
