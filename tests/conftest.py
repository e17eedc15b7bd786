"""
Pytest Configuration and Fixtures for the mtsio_bridge project.

Provides a fake CommandExecutor so request handling can be tested on any
development machine, without mts-io-sysfs installed.
"""

import sys
from unittest.mock import MagicMock
import pytest
import logging

from mtsio_bridge.commands import CommandExecutor


@pytest.fixture(scope="session", autouse=True)
def setup_test_logging():
    """
    Configures the Python logging framework globally for all tests.
    Because tests bypass main.py, this ensures our logs are formatted
    and visible exactly how we want them during test runs.
    """
    formatter = logging.Formatter(fmt="%(levelname)-8s %(message)s - %(funcName)s:%(lineno)d ")
    handler = logging.StreamHandler(stream=sys.stdout)
    handler.setFormatter(formatter)
    logger = logging.getLogger()
    logger.setLevel(logging.DEBUG)
    logger.addHandler(handler)


@pytest.fixture
def fake_executor():
    """A CommandExecutor whose execute() never launches anything."""
    executor = MagicMock(spec=CommandExecutor)
    executor.execute.return_value = ""
    return executor


@pytest.fixture
def published():
    """Collects every MQTTMessage handed to the publish callback."""
    return []
