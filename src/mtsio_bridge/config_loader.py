"""
Configuration Loader.

Responsible for reading the config.yaml file and turning it into
typed settings with sensible defaults.
"""
import yaml
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Any, Optional

from mtsio_bridge.commands import DEFAULT_TIMEOUT, MTSIO_CMD
from mtsio_bridge.session import DEFAULT_TOPIC_ROOT

logger = logging.getLogger(__name__)

DEFAULT_ADAPTER_NAME = "mtsIoAdapter"


def load_config(config_path: str = "config.yaml") -> Dict[str, Any]:
    """
    Loads the YAML configuration file.
    """
    path = Path(config_path)
    if not path.exists():
        logger.warning(f"Config file not found at {path}. Using defaults.")
        return {}

    try:
        with open(path, 'r') as f:
            config = yaml.safe_load(f) or {}
            logger.info(f"Loaded configuration from {path}")
            return config
    except Exception as e:
        logger.error(f"Failed to parse config file: {e}")
        raise


@dataclass(frozen=True)
class Settings:
    host: str = "localhost"
    port: int = 1883
    client_id: str = "mtsIoAdapter_client"
    username: Optional[str] = None
    password: Optional[str] = None
    keepalive: int = 30
    qos: int = 0
    topic_root: str = DEFAULT_TOPIC_ROOT
    adapter_name: str = DEFAULT_ADAPTER_NAME
    adapter_config_collection: Optional[str] = None
    command_program: str = MTSIO_CMD
    command_timeout: float = DEFAULT_TIMEOUT
    auth_retry_interval: float = 60.0
    subscribe_retry_interval: float = 30.0
    log_level: str = "INFO"

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "Settings":
        """Extracts settings from a loaded config dict, falling back to defaults."""
        mqtt_conf = config.get('mqtt', {}) or {}
        adapter_conf = config.get('adapter', {}) or {}
        command_conf = config.get('command', {}) or {}
        retry_conf = config.get('retry', {}) or {}
        logging_conf = config.get('logging', {}) or {}

        return cls(
            host=mqtt_conf.get('host', cls.host),
            port=int(mqtt_conf.get('port', cls.port)), # Must be int
            client_id=mqtt_conf.get('client_id', cls.client_id),
            username=mqtt_conf.get('username'),
            password=mqtt_conf.get('password'),
            keepalive=int(mqtt_conf.get('keepalive', cls.keepalive)),
            qos=int(mqtt_conf.get('qos', cls.qos)),
            topic_root=config.get('topic_root', cls.topic_root),
            adapter_name=adapter_conf.get('name', cls.adapter_name),
            adapter_config_collection=adapter_conf.get('config_collection'),
            command_program=command_conf.get('program', cls.command_program),
            command_timeout=float(command_conf.get('timeout', cls.command_timeout)),
            auth_retry_interval=float(retry_conf.get('auth_interval', cls.auth_retry_interval)),
            subscribe_retry_interval=float(retry_conf.get('subscribe_interval', cls.subscribe_retry_interval)),
            log_level=str(logging_conf.get('level', cls.log_level)).upper(),
        )
