"""
Data Models for Requests, Responses and MQTT Envelopes.

Inbound payloads are decoded once into typed `Request` values so the
rest of the pipeline never has to poke around in raw dictionaries.
Responses follow the same "Letter inside an Envelope" split the
publisher expects: a payload object that knows how to serialize itself,
wrapped in an `MQTTMessage` carrying the topic.
"""
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
import json
from typing import Any, Dict, List, Optional, Union

from enum import Enum

JSONScalar = Union[str, int, float, bool]


class PayloadError(ValueError):
    """Raised when an inbound payload does not match the request schema."""


class Operation(str, Enum):
    """
    Device operations understood by mts-io-sysfs.

    The value of each member is the literal keyword the utility expects
    on its command line.
    """
    READ = "show"
    WRITE = "store"

    @property
    def token(self) -> str:
        return self.value

    @property
    def topic_segment(self) -> str:
        return "read" if self is Operation.READ else "write"

    @classmethod
    def from_topic(cls, topic: str) -> Optional["Operation"]:
        """Classifies a request topic by its suffix. Returns None for anything unknown."""
        for operation in cls:
            if topic.endswith(f"{operation.topic_segment}/request"):
                return operation
        return None


def utc_timestamp() -> str:
    """Current UTC time as an RFC3339 string with second precision."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


# --- Request side ---

@dataclass(frozen=True)
class ObjectSpec:
    """One addressable signal within a port, e.g. a digital output line."""
    name: str
    value: Optional[JSONScalar] = None
    extras: Dict[str, Any] = field(default_factory=dict)
    # An explicit "value": null is echoed back as null
    has_value: bool = False

    @classmethod
    def from_dict(cls, raw: Any) -> "ObjectSpec":
        if not isinstance(raw, dict):
            raise PayloadError("Each entry in objects must be an object")
        name = raw.get("name")
        if not isinstance(name, str) or not name:
            raise PayloadError("Each object requires a name")
        value = raw.get("value")
        if value is not None and not isinstance(value, (str, int, float, bool)):
            raise PayloadError(f"Unsupported value type for object '{name}'")
        extras = {k: v for k, v in raw.items() if k not in ("name", "value")}
        return cls(name=name, value=value, extras=extras, has_value="value" in raw)

    def with_value(self, value: JSONScalar) -> "ObjectSpec":
        return replace(self, value=value, has_value=True)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {**self.extras, "name": self.name}
        if self.has_value or self.value is not None:
            data["value"] = self.value
        return data


@dataclass(frozen=True)
class Request:
    """A validated read/write request for a single port."""
    port_name: str
    objects: List[ObjectSpec]
    extras: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "Request":
        """
        Builds a Request from a decoded JSON object.

        Presence checks run first and in a fixed order so that clients
        always get the same error for the same mistake:
        objects, then portName, then the shape of each field.
        """
        if payload.get("objects") is None:
            raise PayloadError("The objects array is required")
        if payload.get("portName") is None:
            raise PayloadError("portName is required")

        port_name = payload["portName"]
        if not isinstance(port_name, str):
            raise PayloadError("portName must be a string")
        raw_objects = payload["objects"]
        if not isinstance(raw_objects, list):
            raise PayloadError("objects must be an array")

        objects = [ObjectSpec.from_dict(raw) for raw in raw_objects]
        extras = {k: v for k, v in payload.items() if k not in ("portName", "objects")}
        return cls(port_name=port_name, objects=objects, extras=extras)

    def to_dict(self) -> Dict[str, Any]:
        return {
            **self.extras,
            "portName": self.port_name,
            "objects": [obj.to_dict() for obj in self.objects],
        }


# --- Response side ---

@dataclass(frozen=True, kw_only=True)
class BasePayload:
    """Base class for all JSON payloads sent over MQTT."""
    timestamp: str = field(default_factory=utc_timestamp)

    def to_dict(self) -> Dict[str, Any]:
        return {"timestamp": self.timestamp}

    def to_json(self) -> str:
        """
        Converts the object to a JSON string.
        Raises ValueError for values JSON cannot carry (NaN, infinities).
        """
        return json.dumps(self.to_dict(), allow_nan=False, sort_keys=True)

    def to_bytes(self) -> bytes:
        """Converts the object to UTF-8 encoded bytes for MQTT."""
        return self.to_json().encode('utf-8')


@dataclass(frozen=True, kw_only=True)
class ResponsePayload(BasePayload):
    """
    Outcome of one request.

    `fields` holds whatever is echoed back to the requester: the full
    resolved request on success, or the raw portName/objects on failure.
    """
    success: bool
    error: Optional[str] = None
    fields: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def succeeded(cls, request: Request) -> "ResponsePayload":
        return cls(success=True, fields=request.to_dict())

    @classmethod
    def failed(cls, error: str, raw_payload: Optional[Dict[str, Any]] = None) -> "ResponsePayload":
        echoed = {}
        if raw_payload:
            echoed = {k: raw_payload[k] for k in ("portName", "objects") if k in raw_payload}
        return cls(success=False, error=error, fields=echoed)

    def to_dict(self) -> Dict[str, Any]:
        data = {**self.fields, "success": self.success, "timestamp": self.timestamp}
        if not self.success:
            data["error"] = self.error
        return data


# --- The "Envelope" (The MQTT Context) ---

@dataclass(frozen=True)
class MQTTMessage:
    """
    A serialized response together with the topic it goes to.
    This is what the publisher loop hands to aiomqtt.
    """
    topic: str
    message: bytes
    qos: int = 0
    retain: bool = False

    def to_aiomqtt_args(self) -> Dict[str, Any]:
        """Returns dict suitable for client.publish(**args)"""
        return {
            "topic": self.topic,
            "payload": self.message, # aiomqtt uses 'payload', not 'message'
            "qos": self.qos,
            "retain": self.retain,
        }
