"""
MQTT Session Lifecycle Management.

This module is responsible for:
- Connecting (authenticating) to the broker, retrying on a fixed interval.
- Fetching the adapter configuration once, right after the first connect.
- Subscribing to the request topics, retrying on a fixed interval.
- Starting exactly one DispatchWorker per active session and stopping it
  (and waiting for it) whenever the session ends.
- Publishing the responses the worker hands back through the outbound queue.

Sessions are clean: nothing survives a reconnect, so every reconnect goes
through the full authenticate/subscribe cycle again.
"""
import asyncio
import logging
from typing import Callable, Optional

from aiomqtt import Client as MQTTClient, MqttError, ProtocolVersion
from paho.mqtt.enums import MQTTErrorCode

from mtsio_bridge.adapter_config import AdapterConfigStore, fetch_topic_root
from mtsio_bridge.commands import CommandExecutor
from mtsio_bridge.config_loader import Settings
from mtsio_bridge.models import MQTTMessage
from mtsio_bridge.session import SessionContext, SessionEvent, SessionState, next_state
from mtsio_bridge.worker import DispatchWorker

logger = logging.getLogger(__name__)


class SessionInitError(RuntimeError):
    """The MQTT client could not be initialized. Fatal."""


def create_client(settings: Settings) -> MQTTClient:
    return MQTTClient(settings.host,
                      settings.port,
                      protocol=ProtocolVersion.V5,
                      identifier=settings.client_id,
                      username=settings.username,
                      password=settings.password,
                      keepalive=settings.keepalive,
                      clean_start=True)


def _connection_lost(error: MqttError) -> bool:
    return getattr(error, "rc", None) == MQTTErrorCode.MQTT_ERR_NO_CONN


class MQTTManager:
    settings: Settings
    executor: CommandExecutor
    config_store: Optional[AdapterConfigStore]
    outbound_queue: asyncio.Queue
    state: SessionState
    context: SessionContext
    _client_factory: Callable[[Settings], MQTTClient]
    _config_fetched: bool
    _main_task: Optional[asyncio.Task]

    """
    Owns the broker connection and drives the session state machine.
    """
    def __init__(self, settings: Settings, executor: CommandExecutor,
                 config_store: Optional[AdapterConfigStore] = None,
                 client_factory: Optional[Callable[[Settings], MQTTClient]] = None):
        self.settings = settings
        self.executor = executor
        self.config_store = config_store
        self._client_factory = client_factory or create_client

        # Survives reconnects, responses queued while offline go out on the next session
        self.outbound_queue = asyncio.Queue()

        self.state = SessionState.DISCONNECTED
        self.context = SessionContext(topic_root=settings.topic_root)
        self._config_fetched = False
        self._main_task = None

    async def start(self):
        """
        Launches the session loop in the background.
        """
        logger.info(f"Starting MQTT Manager, connecting to {self.settings.host}:{self.settings.port}...")
        self._main_task = asyncio.create_task(self._main_loop())

    async def stop(self):
        """
        Cancels the session loop, which stops the worker and closes the connection.
        """
        if self._main_task:
            logger.info("Stopping MQTT Manager...")
            self._main_task.cancel()
            try:
                await self._main_task
            except asyncio.CancelledError:
                logger.info("MQTT Manager stopped gracefully.")
            except Exception as e:
                logger.error(f"Error during MQTT stop: {e}")

    async def join(self):
        """
        Waits until the session loop ends. Re-raises SessionInitError.
        """
        if self._main_task:
            try:
                await self._main_task
            except asyncio.CancelledError:
                pass

    def publish_response(self, message: MQTTMessage):
        """
        The gateway the DispatchWorker uses to send responses out.
        Must run on the event loop, the worker reaches it through
        loop.call_soon_threadsafe.
        """
        logger.debug(f"Request to publish to {message.topic}")
        self.outbound_queue.put_nowait(message)

    async def _transition(self, event: SessionEvent):
        previous = self.state
        self.state = next_state(previous, event)
        logger.debug(f"Session {previous.value} --{event.value}--> {self.state.value}")

        if self.state is SessionState.ACTIVE:
            self.context.worker.start()
        elif previous is SessionState.ACTIVE:
            await self._stop_worker()

    async def _stop_worker(self):
        worker = self.context.worker
        if worker is None:
            return
        # join() happens off the loop; returning means the old worker is gone
        await asyncio.to_thread(worker.stop)
        self.context = self.context.cleared()

    async def _main_loop(self):
        """
        The persistent connection loop.
        aiomqtt does not reconnect on its own, every pass through this
        loop is one connection attempt.
        """
        try:
            while True:
                await self._transition(SessionEvent.CONNECT)
                try:
                    client = self._client_factory(self.settings)
                except Exception as e:
                    logger.critical(f"Unable to initialize MQTT connection with {self.settings.host}: {e}")
                    raise SessionInitError(str(e)) from e

                try:
                    # The connection is ONLY valid inside this block
                    async with client:
                        await self._transition(SessionEvent.AUTH_OK)
                        logger.info(f"Connected to MQTT broker as {self.settings.client_id}")
                        await self._load_adapter_config()
                        await self._subscribe(client)
                        await self._run_session(client)
                except MqttError as e:
                    if self.state is SessionState.AUTHENTICATING:
                        interval = self.settings.auth_retry_interval
                        logger.error(f"Error authenticating with {self.settings.host}: {e}")
                        logger.error(f"Will retry in {interval} seconds...")
                        await self._transition(SessionEvent.AUTH_FAIL)
                        await asyncio.sleep(interval)
                    else:
                        logger.info(f"Connection to broker was lost: {e}")
                        await self._transition(SessionEvent.DISCONNECTED)
        finally:
            await self._stop_worker()

    async def _load_adapter_config(self):
        if self._config_fetched:
            return
        topic_root = await asyncio.to_thread(
            fetch_topic_root, self.config_store, self.settings.adapter_name, self.context.topic_root)
        self.context = self.context.with_topic_root(topic_root)
        self._config_fetched = True

    async def _subscribe(self, client: MQTTClient):
        """Subscribes to the request topics, retrying until it works."""
        interval = self.settings.subscribe_retry_interval
        topic = self.context.request_topic
        while True:
            await self._transition(SessionEvent.SUBSCRIBE)
            try:
                logger.debug(f"Subscribing to topic {topic}")
                await client.subscribe(topic, qos=self.settings.qos)
                break
            except MqttError as e:
                if _connection_lost(e):
                    raise
                logger.error(f"Error subscribing to MQTT: {e}")
                logger.error(f"Will retry in {interval} seconds...")
                await self._transition(SessionEvent.SUB_FAIL)
                await asyncio.sleep(interval)

        logger.debug(f"Successfully subscribed to {topic}")
        worker = DispatchWorker(async_loop=asyncio.get_running_loop(),
                                executor=self.executor,
                                topic_root=self.context.topic_root,
                                publish_callback=self.publish_response,
                                qos=self.settings.qos)
        self.context = self.context.subscribed(topic, worker)
        await self._transition(SessionEvent.SUB_OK)

    async def _run_session(self, client: MQTTClient):
        """Runs the reader and the publisher until one of them loses the connection."""
        reader = asyncio.create_task(self._reader_loop(client))
        publisher = asyncio.create_task(self._publisher_loop(client))
        try:
            done, _ = await asyncio.wait({reader, publisher}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in (reader, publisher):
                task.cancel()
            await asyncio.gather(reader, publisher, return_exceptions=True)

        for task in done:
            task.result()

    async def _reader_loop(self, client: MQTTClient):
        async for message in client.messages:
            payload = message.payload
            if not isinstance(payload, (bytes, bytearray)):
                payload = str(payload if payload is not None else "").encode('utf-8')
            self.context.worker.submit(str(message.topic), bytes(payload))
        raise MqttError("Message stream ended")

    async def _publisher_loop(self, client: MQTTClient):
        """The background worker that pushes responses to the world."""
        while True:
            message: MQTTMessage = await self.outbound_queue.get()
            try:
                await client.publish(**message.to_aiomqtt_args())
                logger.debug(f"Published response to topic '{message.topic}'")
            except MqttError as e:
                logger.error(f"ERROR publishing to topic {message.topic}: {e}")
                raise
            finally:
                self.outbound_queue.task_done()
