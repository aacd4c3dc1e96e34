"""Core wasmbus types: entities, links, host data, invocations and the Actor service."""

from __future__ import annotations

import base64
import binascii
import json
import sys
from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, TextIO

from .common import (
    Context,
    DeserializationError,
    InvalidParameter,
    Message,
    MessageDispatch,
    MethodNotHandled,
    RpcError,
    RpcFailure,
    Transport,
    deserialize,
    serialize,
)

SMITHY_VERSION = "1.0"

URL_SCHEME = "wasmbus"
"""URL scheme for wasmbus protocol messages."""

TEST_HARNESS = "_TEST_"
"""Host id used when a provider runs under a test harness."""

DEFAULT_NATS_ADDR = "nats://127.0.0.1:4222"
"""NATS address used when the host does not provide one."""

_MISSING = object()


def _mapping(data: Any, owner: str) -> Mapping[str, Any]:
    if not isinstance(data, Mapping):
        raise DeserializationError(f"{owner}: expected a map, got {type(data).__name__}")
    return data


def _get(data: Mapping[str, Any], key: str, kind: Any, owner: str, default: Any = _MISSING) -> Any:
    if key not in data:
        if default is _MISSING:
            raise DeserializationError(f"{owner}: missing field `{key}`")
        return default
    value = data[key]
    if not isinstance(value, kind):
        raise DeserializationError(
            f"{owner}: field `{key}` has invalid type {type(value).__name__}"
        )
    return value


def _optional_str(data: Mapping[str, Any], key: str, owner: str) -> str | None:
    return _get(data, key, (str, type(None)), owner, None)


def _bytes(data: Mapping[str, Any], key: str, owner: str) -> bytes:
    return bytes(_get(data, key, (bytes, bytearray), owner, b""))


def _str_map(data: Mapping[str, Any], key: str, owner: str) -> dict[str, str]:
    value = _get(data, key, Mapping, owner)
    if not all(isinstance(k, str) and isinstance(v, str) for k, v in value.items()):
        raise DeserializationError(f"{owner}: field `{key}` must map strings to strings")
    return dict(value)


def _str_list(data: Mapping[str, Any], key: str, owner: str) -> list[str]:
    value = _get(data, key, (list, tuple), owner)
    if not all(isinstance(item, str) for item in value):
        raise DeserializationError(f"{owner}: field `{key}` must be a list of strings")
    return list(value)


@dataclass
class WasmCloudEntity:
    """An actor or capability provider that can send or receive messages."""

    public_key: str = ""
    link_name: str = ""
    contract_id: str = ""

    @classmethod
    def new_actor(cls, public_key: Any) -> WasmCloudEntity:
        """Build an actor entity; the public key may not be empty."""
        public_key = str(public_key)
        if not public_key:
            raise InvalidParameter("public_key may not be empty")
        return cls(public_key=public_key)

    @classmethod
    def new_provider(cls, contract_id: Any, link_name: Any) -> WasmCloudEntity:
        """Build a capability provider entity; both parameters are required."""
        contract_id = str(contract_id)
        if not contract_id:
            raise InvalidParameter("contract_id may not be empty")
        link_name = str(link_name)
        if not link_name:
            raise InvalidParameter("link_name may not be empty")
        return cls(public_key="", link_name=link_name, contract_id=contract_id)

    def url(self) -> str:
        """Return the wasmbus URL of the entity."""
        if self.public_key.upper().startswith("M"):
            return f"{URL_SCHEME}://{self.public_key}"
        contract = self.contract_id.replace(":", "/").replace(" ", "_").lower()
        link = self.link_name.replace(" ", "_").lower()
        return f"{URL_SCHEME}://{contract}/{link}/{self.public_key}"

    def is_actor(self) -> bool:
        """Return True if this entity refers to an actor."""
        return not self.link_name or not self.contract_id

    def is_provider(self) -> bool:
        """Return True if this entity refers to a provider."""
        return not self.is_actor()

    def __str__(self) -> str:
        return self.url()

    def to_dict(self) -> dict[str, Any]:
        return {
            "public_key": self.public_key,
            "link_name": self.link_name,
            "contract_id": self.contract_id,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> WasmCloudEntity:
        owner = "WasmCloudEntity"
        data = _mapping(data, owner)
        return cls(
            public_key=_get(data, "public_key", str, owner, ""),
            link_name=_get(data, "link_name", str, owner, ""),
            contract_id=_get(data, "contract_id", str, owner),
        )


@dataclass
class LinkDefinition:
    """Link definition binding an actor to a provider."""

    actor_id: str = ""
    provider_id: str = ""
    link_name: str = ""
    contract_id: str = ""
    values: dict[str, str] = field(default_factory=dict)

    def actor_entity(self) -> WasmCloudEntity:
        """Return the entity of the linked actor."""
        return WasmCloudEntity(public_key=self.actor_id)

    def provider_entity(self) -> WasmCloudEntity:
        """Return the entity of the linked provider."""
        return WasmCloudEntity(
            public_key=self.provider_id,
            contract_id=self.contract_id,
            link_name=self.link_name,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "actor_id": self.actor_id,
            "provider_id": self.provider_id,
            "link_name": self.link_name,
            "contract_id": self.contract_id,
            "values": dict(self.values),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> LinkDefinition:
        owner = "LinkDefinition"
        data = _mapping(data, owner)
        return cls(
            actor_id=_get(data, "actor_id", str, owner, ""),
            provider_id=_get(data, "provider_id", str, owner, ""),
            link_name=_get(data, "link_name", str, owner, ""),
            contract_id=_get(data, "contract_id", str, owner, ""),
            values=_str_map(data, "values", owner),
        )


@dataclass
class HealthCheckRequest:
    """Health check request parameter."""

    def to_dict(self) -> dict[str, Any]:
        return {}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> HealthCheckRequest:
        _mapping(data, "HealthCheckRequest")
        return cls()


@dataclass
class HealthCheckResponse:
    """Health status returned by actors and providers."""

    healthy: bool = False
    message: str | None = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"healthy": self.healthy}
        if self.message is not None:
            out["message"] = self.message
        return out

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> HealthCheckResponse:
        owner = "HealthCheckResponse"
        data = _mapping(data, owner)
        return cls(
            healthy=_get(data, "healthy", bool, owner, False),
            message=_optional_str(data, "message", owner),
        )


@dataclass
class HostData:
    """Initialization data passed by the host to a capability provider."""

    host_id: str = ""
    lattice_rpc_prefix: str = ""
    link_name: str = ""
    lattice_rpc_user_jwt: str = ""
    lattice_rpc_user_seed: str = ""
    lattice_rpc_url: str = ""
    provider_key: str = ""
    invocation_seed: str = ""
    env_values: dict[str, str] = field(default_factory=dict)
    instance_id: str = ""
    link_definitions: list[LinkDefinition] = field(default_factory=list)
    cluster_issuers: list[str] = field(default_factory=list)
    config_json: str | None = None

    _STRING_FIELDS = (
        "host_id",
        "lattice_rpc_prefix",
        "link_name",
        "lattice_rpc_user_jwt",
        "lattice_rpc_user_seed",
        "lattice_rpc_url",
        "provider_key",
        "invocation_seed",
        "instance_id",
    )

    def is_test(self) -> bool:
        """Return True if the provider is running under a test harness."""
        return self.host_id == TEST_HARNESS

    def nats_url(self) -> str:
        """Return the NATS address from the host, or the default one."""
        return self.lattice_rpc_url or DEFAULT_NATS_ADDR

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "host_id": self.host_id,
            "lattice_rpc_prefix": self.lattice_rpc_prefix,
            "link_name": self.link_name,
            "lattice_rpc_user_jwt": self.lattice_rpc_user_jwt,
            "lattice_rpc_user_seed": self.lattice_rpc_user_seed,
            "lattice_rpc_url": self.lattice_rpc_url,
            "provider_key": self.provider_key,
            "invocation_seed": self.invocation_seed,
            "env_values": dict(self.env_values),
            "instance_id": self.instance_id,
            "link_definitions": [ld.to_dict() for ld in self.link_definitions],
            "cluster_issuers": list(self.cluster_issuers),
        }
        if self.config_json is not None:
            out["config_json"] = self.config_json
        return out

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> HostData:
        owner = "HostData"
        data = _mapping(data, owner)
        strings = {name: _get(data, name, str, owner, "") for name in cls._STRING_FIELDS}
        links = _get(data, "link_definitions", (list, tuple), owner)
        return cls(
            **strings,
            env_values=_str_map(data, "env_values", owner),
            link_definitions=[LinkDefinition.from_dict(ld) for ld in links],
            cluster_issuers=_str_list(data, "cluster_issuers", owner),
            config_json=_optional_str(data, "config_json", owner),
        )


@dataclass
class Invocation:
    """An rpc message to an actor or capability provider."""

    origin: WasmCloudEntity = field(default_factory=WasmCloudEntity)
    target: WasmCloudEntity = field(default_factory=WasmCloudEntity)
    operation: str = ""
    msg: bytes = b""
    id: str = ""
    encoded_claims: str = ""
    host_id: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "origin": self.origin.to_dict(),
            "target": self.target.to_dict(),
            "operation": self.operation,
            "msg": bytes(self.msg),
            "id": self.id,
            "encoded_claims": self.encoded_claims,
            "host_id": self.host_id,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Invocation:
        owner = "Invocation"
        data = _mapping(data, owner)
        return cls(
            origin=WasmCloudEntity.from_dict(_get(data, "origin", Mapping, owner)),
            target=WasmCloudEntity.from_dict(_get(data, "target", Mapping, owner)),
            operation=_get(data, "operation", str, owner, ""),
            msg=_bytes(data, "msg", owner),
            id=_get(data, "id", str, owner, ""),
            encoded_claims=_get(data, "encoded_claims", str, owner, ""),
            host_id=_get(data, "host_id", str, owner, ""),
        )


@dataclass
class InvocationResponse:
    """Response to an invocation."""

    msg: bytes = b""
    invocation_id: str = ""
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"msg": bytes(self.msg), "invocation_id": self.invocation_id}
        if self.error is not None:
            out["error"] = self.error
        return out

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> InvocationResponse:
        owner = "InvocationResponse"
        data = _mapping(data, owner)
        return cls(
            msg=_bytes(data, "msg", owner),
            invocation_id=_get(data, "invocation_id", str, owner, ""),
            error=_optional_str(data, "error", owner),
        )


class Actor(ABC):
    """The Actor service."""

    @abstractmethod
    async def health_request(
        self, ctx: Context, arg: HealthCheckRequest
    ) -> HealthCheckResponse:
        """Perform a health check; called at regular intervals by the host."""


class ActorReceiver(MessageDispatch, Actor):
    """Receives messages defined by the Actor service and routes them to handlers."""

    async def dispatch(self, ctx: Context, message: Message) -> Message:
        if message.method == "HealthRequest":
            try:
                value = HealthCheckRequest.from_dict(deserialize(message.arg))
            except RpcError as exc:
                raise DeserializationError(f"message '{message.method}': {exc}") from exc
            resp = await self.health_request(ctx, value)
            return Message(method="Actor.HealthRequest", arg=serialize(resp))
        raise MethodNotHandled(f"Actor::{message.method}")


class ActorSender(Actor):
    """Client that sends Actor service messages through a transport."""

    def __init__(self, transport: Transport) -> None:
        self.transport = transport

    def set_timeout(self, interval: timedelta) -> None:
        """Set the timeout of the underlying transport."""
        self.transport.set_timeout(interval)

    async def health_request(
        self, ctx: Context, arg: HealthCheckRequest
    ) -> HealthCheckResponse:
        buf = serialize(arg)
        resp = await self.transport.send(
            ctx, Message(method="Actor.HealthRequest", arg=buf), None
        )
        try:
            return HealthCheckResponse.from_dict(deserialize(resp))
        except RpcError as exc:
            raise DeserializationError(f"response to HealthRequest: {exc}") from exc


def parse_host_data(line: str) -> HostData:
    """Decode host data given as one line of base64-encoded JSON."""
    line = line.strip()
    if not line:
        raise RpcFailure("stdin is empty - expecting host data configuration")
    try:
        raw = base64.b64decode(line.encode("ascii"), validate=True)
    except (binascii.Error, UnicodeEncodeError) as exc:
        raise RpcFailure(
            "host data configuration passed through stdin has invalid encoding "
            f"(expected base64): {exc}"
        ) from exc
    text = raw.decode("utf-8", errors="replace")
    try:
        return HostData.from_dict(json.loads(raw))
    except (ValueError, RpcError) as exc:
        raise RpcFailure(f"parsing host data: {exc}:\n{text}") from exc


def load_host_data(stream: TextIO | None = None) -> HostData:
    """Read one line of host data from ``stream`` (standard input by default)."""
    source = sys.stdin if stream is None else stream
    try:
        line = source.readline()
    except OSError as exc:
        raise RpcFailure(
            f"failed to read host data configuration from stdin: {exc}"
        ) from exc
    return parse_host_data(line)