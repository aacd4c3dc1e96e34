"""Messages, context, transports, serialization and rpc errors."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from datetime import timedelta
from typing import Any

import msgpack


class RpcError(Exception):
    """Cross-cutting error that can occur while processing any rpc."""

    template = "{}"

    def __init__(self, detail: str = "") -> None:
        super().__init__(detail)
        self.detail = detail

    def __str__(self) -> str:
        return self.template.format(self.detail)


class DeadlineExceeded(RpcError):
    """The request exceeded its deadline."""

    template = "the request exceeded its deadline: {}"


class NotInitialized(RpcError):
    """A capability provider was called before it was configured."""

    template = "the capability provider has not been initialized: {}"


class MethodNotHandled(RpcError):
    """The receiver does not handle the requested method."""

    template = "method not handled {}"


class MethodNotImplemented(RpcError):
    """An optional interface method is not implemented by the server."""

    template = "method not implemented"


class HostError(RpcError):
    """The host failed to send a message."""

    template = "Host send error {}"


class DeserializationError(RpcError):
    """A payload could not be decoded."""

    template = "deserialization: {}"


class SerializationError(RpcError):
    """A value could not be encoded."""

    template = "serialization: {}"


class RpcFailure(RpcError):
    """The remote side reported an rpc error."""

    template = "rpc: {}"


class NatsError(RpcError):
    """The message bus reported an error."""

    template = "nats: {}"


class InvalidParameter(RpcError):
    """A parameter was invalid."""

    template = "invalid parameter: {}"


class ActorHandlerError(RpcError):
    """An error occurred in an actor's rpc handler."""

    template = "actor: {}"


class ProviderInitError(RpcError):
    """An error occurred during provider initialization or put-link."""

    template = "provider initialization or put-link: {}"


class RpcTimeout(RpcError):
    """A timeout occurred."""

    template = "timeout: {}"


class OtherError(RpcError):
    """Any other error."""

    template = "{}"


@dataclass
class Message:
    """An rpc message: a method name such as 'Trait.method' and its encoded argument."""

    method: str
    arg: bytes = b""


@dataclass
class Context:
    """Message-passing metadata used by actors and capability providers."""

    actor: str | None = None
    span: str | None = None


@dataclass(frozen=True)
class SendOpts:
    """Hints a transport may use when sending a message."""

    idempotent: bool = False
    read_only: bool = False

    def with_idempotent(self, val: bool) -> SendOpts:
        """Return a copy with the idempotent flag set to ``val``."""
        return replace(self, idempotent=val)

    def with_read_only(self, val: bool) -> SendOpts:
        """Return a copy with the read-only flag set to ``val``."""
        return replace(self, read_only=val)


class Transport(ABC):
    """Determines how messages are sent."""

    @abstractmethod
    async def send(
        self, ctx: Context, req: Message, opts: SendOpts | None = None
    ) -> bytes:
        """Send ``req`` and return the encoded response."""

    @abstractmethod
    def set_timeout(self, interval: timedelta) -> None:
        """Set the rpc timeout."""


class MessageDispatch(ABC):
    """Routes an incoming message to its handler."""

    @abstractmethod
    async def dispatch(self, ctx: Context, message: Message) -> Message:
        """Handle ``message`` and return the response message."""


def _encode_default(obj: Any) -> Any:
    to_dict = getattr(obj, "to_dict", None)
    if callable(to_dict):
        return to_dict()
    raise TypeError(f"cannot serialize object of type {type(obj).__name__}")


def serialize(data: Any) -> bytes:
    """Encode ``data`` as msgpack; objects with ``to_dict`` are encoded as maps."""
    try:
        return msgpack.packb(data, default=_encode_default, use_bin_type=True)
    except (TypeError, ValueError, OverflowError) as exc:
        raise SerializationError(str(exc)) from exc


def deserialize(buf: bytes) -> Any:
    """Decode a msgpack payload into plain Python values."""
    try:
        return msgpack.unpackb(buf, raw=False)
    except (ValueError, TypeError, msgpack.exceptions.UnpackException) as exc:
        raise DeserializationError(str(exc) or type(exc).__name__) from exc