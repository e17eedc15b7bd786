"""
Request Processing.

Turns one inbound payload into one response:
- Decodes and validates the JSON payload into a typed `Request`.
- Runs one mts-io-sysfs command per object, in order.
- Stops at the first failing object and reports its error.
- Serializes the response and hands it to the publish callback.

Every per-request error ends up in a failure response. Nothing raised
here should ever reach the dispatch worker except programming errors.
"""
import json
import logging
import math
from typing import Any, Callable, Dict, Optional, Union

from mtsio_bridge.codec import decode
from mtsio_bridge.commands import CommandError, CommandExecutor, translate
from mtsio_bridge.models import MQTTMessage, Operation, PayloadError, Request, ResponsePayload

logger = logging.getLogger(__name__)


def _reject_constant(name: str):
    raise ValueError(f"invalid character '{name}' looking for beginning of value")


def _parse_finite_float(text: str) -> float:
    value = float(text)
    if not math.isfinite(value):
        raise ValueError(f"number {text} is out of range")
    return value


def _parse_bounded_int(text: str) -> int:
    value = int(text)
    try:
        float(value)
    except OverflowError:
        raise ValueError(f"number {text} is out of range") from None
    return value


def _loads(raw_payload: bytes) -> Any:
    """json.loads restricted to strict JSON: no NaN/Infinity, no numbers a double cannot hold."""
    return json.loads(raw_payload, parse_constant=_reject_constant,
                      parse_float=_parse_finite_float, parse_int=_parse_bounded_int)


class RequestProcessor:
    executor: CommandExecutor
    topic_root: str
    publish_callback: Callable[[MQTTMessage], None]
    qos: int

    """
    Executes read/write requests against the utility and publishes the result.
    """
    def __init__(self, executor: CommandExecutor, topic_root: str,
                 publish_callback: Callable[[MQTTMessage], None], qos: int = 0):
        self.executor = executor
        self.topic_root = topic_root
        self.publish_callback = publish_callback
        self.qos = qos

    def response_topic(self, operation: Operation) -> str:
        return f"{self.topic_root}/{operation.topic_segment}/response"

    def process(self, operation: Union[Operation, str, None], raw_payload: bytes) -> Optional[bytes]:
        """
        Handles one request and publishes the response.

        `operation` comes from the inbound topic, never from the payload.
        Returns the serialized response, or None when it could not be
        serialized (nothing is published in that case).
        """
        logger.debug(f"Json payload received: {raw_payload!r}")
        resolved = self._coerce_operation(operation)
        response = self._build_response(operation, resolved, raw_payload)
        return self._publish(resolved, response)

    @staticmethod
    def _coerce_operation(operation: Union[Operation, str, None]) -> Optional[Operation]:
        if not operation:
            return None
        try:
            return Operation(operation)
        except ValueError:
            return None

    def _build_response(self, operation: Union[Operation, str, None], resolved: Optional[Operation],
                        raw_payload: bytes) -> ResponsePayload:
        # Validation order matters: the first failure wins
        try:
            payload = _loads(raw_payload)
            if not isinstance(payload, dict):
                raise ValueError(f"expected a JSON object, got {type(payload).__name__}")
        except ValueError as e:
            logger.error(f"Error encountered unmarshalling json: {e}")
            return ResponsePayload.failed(f"Error encountered unmarshalling json: {e}")

        if not operation:
            logger.error("Operation not specified")
            return ResponsePayload.failed("Operation is required", payload)
        if resolved is None:
            logger.error(f"Invalid operation specified: {operation}")
            return ResponsePayload.failed("Invalid operation specified", payload)

        return self._execute(resolved, payload)

    def _execute(self, operation: Operation, payload: Dict[str, Any]) -> ResponsePayload:
        try:
            request = Request.from_dict(payload)
        except PayloadError as e:
            logger.error(f"Invalid request payload: {e}")
            return ResponsePayload.failed(str(e), payload)

        resolved = []
        for obj in request.objects:
            try:
                args = translate(operation, request.port_name, obj)
            except (TypeError, OverflowError) as e:
                logger.error(f"Cannot encode value of object {obj.name}: {e}")
                return ResponsePayload.failed(f"Invalid value for object '{obj.name}': {e}", payload)
            try:
                output = self.executor.execute(args)
            except CommandError as e:
                logger.error(f"ERROR executing mts-io-sysfs command {args}: {e}")
                # Partial progress is discarded, the request's objects are echoed as sent
                return ResponsePayload.failed(str(e), payload)

            if operation is Operation.READ:
                obj = obj.with_value(decode(output))
            resolved.append(obj)

        return ResponsePayload.succeeded(Request(request.port_name, resolved, request.extras))

    def _publish(self, operation: Optional[Operation], response: ResponsePayload) -> Optional[bytes]:
        try:
            body = response.to_bytes()
        except (TypeError, ValueError) as e:
            logger.error(f"ERROR marshalling json response: {e}")
            return None

        if operation is None:
            # No read/write topic to answer on
            logger.warning(f"Dropping response without a valid operation: {body!r}")
            return body

        topic = self.response_topic(operation)
        logger.debug(f"Publishing response {body!r} to topic {topic}")
        self.publish_callback(MQTTMessage(topic=topic, message=body, qos=self.qos))
        return body
