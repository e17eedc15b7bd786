"""
Adapter configuration store.

The adapter configuration is kept as a collection of rows, one per
adapter, stored in a YAML file:

    - adapter_name: mtsIoAdapter
      topic_root: wayside/mtsio

It is queried exactly once at startup. Anything going wrong here must
never keep the bridge from running, so `fetch_topic_root` falls back to
the default topic root on every kind of failure.
"""
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

logger = logging.getLogger(__name__)


class AdapterConfigStore:
    path: Path

    def __init__(self, path: str):
        self.path = Path(path)

    def query(self, adapter_name: str) -> List[Dict[str, Any]]:
        """Returns every row whose adapter_name matches."""
        with open(self.path, 'r') as f:
            rows = yaml.safe_load(f) or []
        if not isinstance(rows, list):
            raise ValueError(f"Adapter config collection {self.path} must be a list of rows")
        return [row for row in rows if isinstance(row, dict) and row.get("adapter_name") == adapter_name]


def fetch_topic_root(store: Optional[AdapterConfigStore], adapter_name: str, default: str) -> str:
    """Looks up the topic root override for this adapter."""
    if store is None:
        logger.debug("No adapter config collection configured. Using defaults")
        return default

    logger.info("Retrieving adapter config")
    try:
        rows = store.query(adapter_name)
    except Exception as e:
        logger.debug(f"Adapter configuration could not be retrieved. Using defaults. Error: {e}")
        return default

    if not rows:
        logger.debug("No rows returned. Using defaults")
        return default

    topic_root = rows[0].get("topic_root")
    if not isinstance(topic_root, str) or not topic_root:
        logger.debug(f"Topic root is not set. Using default value {default}")
        return default

    logger.debug(f"Setting topic root to {topic_root}")
    return topic_root
