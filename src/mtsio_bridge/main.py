"""
Main entry point for the mts-io MQTT bridge.

This module is responsible for:
- Configuring logging.
- Loading the configuration (YAML file).
- Wiring the CommandExecutor, the adapter config store and the MQTTManager.
- Managing the overall application lifecycle (start, signal handling, stop).
"""

import asyncio
import logging
import os
import signal
import sys

from typing import Dict, Any, Optional

from mtsio_bridge.adapter_config import AdapterConfigStore
from mtsio_bridge.commands import CommandExecutor
from mtsio_bridge.config_loader import Settings, load_config
from mtsio_bridge.mqtt import MQTTManager, SessionInitError

CONFIG_ENV = "MTSIO_BRIDGE_CONFIG"

def setup_logging(level: str = "INFO"):
    """
    Configures the global logging settings for the entire application.
    This should be called as early as possible during startup.
    """
    logging.basicConfig(
        level=level,
        format='%(asctime)s [%(levelname)-8s] %(name)s.%(funcName)s: %(message)s'
    )

logger = logging.getLogger(__name__)

async def shutdown(signal_name: str, mqtt_manager: MQTTManager):
    """Graceful shutdown handler."""
    logger.info(f"Received exit signal {signal_name}...")

    # Stopping the manager also stops (and waits for) the dispatch worker
    await mqtt_manager.stop()

async def main_application_runner(config_path: Optional[str] = None):
    setup_logging()
    logger.info("Starting mtsioAdapter...")

    # Load config
    config_path = config_path or os.environ.get(CONFIG_ENV, "config.yaml")
    config: Dict[str, Any] = load_config(config_path)
    settings = Settings.from_config(config)
    logging.getLogger().setLevel(settings.log_level)

    executor = CommandExecutor(program=settings.command_program, timeout=settings.command_timeout)
    config_store = None
    if settings.adapter_config_collection:
        config_store = AdapterConfigStore(settings.adapter_config_collection)

    mqtt_manager = MQTTManager(settings=settings, executor=executor, config_store=config_store)
    await mqtt_manager.start()

    # Setup Signal Handlers for OS interrupts
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
         loop.add_signal_handler(
             sig,
             lambda s=sig: asyncio.create_task(shutdown(s.name, mqtt_manager))
         )

    logger.info("mtsioAdapter is running. Press Ctrl+C to exit.")

    # Returns once the manager is stopped, raises if it failed to initialize
    await mqtt_manager.join()

def run():
    try:
        asyncio.run(main_application_runner())
    except SessionInitError as e:
        logger.critical(f"Unable to initialize MQTT client. Exiting. ({e})")
        sys.exit(1)
    except KeyboardInterrupt:
        # Handled by the signal handler, but good to catch here just in case.
        pass

if __name__ == "__main__":
    run()
