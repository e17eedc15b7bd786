"""
The Dispatch Worker and the Async/Sync Bridge.

This module contains the `DispatchWorker` class, the synchronous half of
the concurrency model. It is responsible for:
- Holding the inbound message queue (network -> utility).
- Running the single, dedicated worker thread that processes requests
  strictly one at a time, in arrival order.
- Classifying requests by topic suffix and dropping unknown ones.
- Handing responses back to the asyncio loop via `loop.call_soon_threadsafe`.
"""
import asyncio
import functools
import logging as log
import queue
import threading
from typing import Callable, Optional, Tuple

from mtsio_bridge.commands import CommandExecutor
from mtsio_bridge.models import MQTTMessage, Operation
from mtsio_bridge.processor import RequestProcessor

logger = log.getLogger(__name__)

_STOP = None # sentinel placed on the queue to unblock the worker


class DispatchWorker:
    async_loop: asyncio.AbstractEventLoop # the loop that owns the MQTT client
    processor: RequestProcessor

    # A blocking queue.Queue lets the worker block on get() while the asyncio
    # side keeps enqueueing messages without ever blocking.
    inbound_queue: queue.Queue

    _worker_thread: Optional[threading.Thread]
    _worker_running: threading.Event

    """
    Consumes request messages on a dedicated thread and runs them through the RequestProcessor.
    """
    def __init__(self, async_loop: asyncio.AbstractEventLoop, executor: CommandExecutor, topic_root: str,
                 publish_callback: Callable[[MQTTMessage], None], qos: int = 0):
        self.async_loop = async_loop
        # Responses are produced on the worker thread but must be published on the loop
        threadsafe_publish = functools.partial(self.async_loop.call_soon_threadsafe, publish_callback)
        self.processor = RequestProcessor(executor, topic_root, threadsafe_publish, qos=qos)
        self.inbound_queue = queue.Queue()
        self._worker_thread = None
        self._worker_running = threading.Event()

    @property
    def is_running(self) -> bool:
        return self._worker_thread is not None and self._worker_thread.is_alive()

    def submit(self, topic: str, payload: bytes):
        """Enqueues an inbound message. Safe to call from the event loop."""
        self.inbound_queue.put((topic, payload))

    def start(self):
        """
        Starts the worker thread if it's not already running.
        """
        if self.is_running:
            logger.warning("Attempted to start dispatch worker, but it's already running.")
            return
        self._worker_running.set()
        self._worker_thread = threading.Thread(target=self._worker_loop, name="DispatchWorker", daemon=True)
        self._worker_thread.start()
        logger.info("Dispatch worker thread started.")

    def stop(self, timeout: Optional[float] = None):
        """
        Signals the worker thread to stop and waits for it to finish.

        The request being processed when stop() is called runs to completion;
        messages still waiting in the queue are dropped. Returning from this
        method is the acknowledgment that no request is in flight anymore.
        """
        if not self.is_running:
            logger.warning("Attempted to stop dispatch worker, but it was not running.")
            return
        self._worker_running.clear()
        self.inbound_queue.put(_STOP)
        self._worker_thread.join(timeout)
        if self._worker_thread.is_alive():
            logger.error("Dispatch worker did not stop in time.")
            return

        dropped = 0
        while True:
            try:
                item = self.inbound_queue.get_nowait()
            except queue.Empty:
                break
            if item is not _STOP:
                dropped += 1
        if dropped:
            logger.warning(f"Dropped {dropped} pending request(s) while stopping.")
        logger.info("Dispatch worker thread stopped.")

    def _worker_loop(self):
        """
        The main loop of the worker thread.
        Pulls messages from the inbound queue and dispatches them one by one.
        """
        logger.debug("Starting dispatch worker loop")

        while self._worker_running.is_set():
            item: Optional[Tuple[str, bytes]] = self.inbound_queue.get()
            if item is _STOP or not self._worker_running.is_set():
                logger.info("Dispatch worker received stop signal.")
                break
            topic, payload = item
            try:
                self.dispatch(topic, payload)
            except Exception as e:
                logger.exception(f"Error handling message on topic {topic}: {e}")

        logger.info("Dispatch worker loop has stopped.")

    def dispatch(self, topic: str, payload: bytes):
        """Classifies one message by topic suffix and processes it synchronously."""
        operation = Operation.from_topic(topic)
        if operation is None:
            logger.debug(f"Unknown request received: topic = {topic}, payload = {payload!r}")
            return
        logger.debug(f"{operation.topic_segment.capitalize()} request received, executing mts-io-sysfs {operation.token}")
        self.processor.process(operation, payload)
