"""Client for sending wasmbus rpc messages over a NATS-style connection."""

from __future__ import annotations

import asyncio
import hashlib
import logging
import time
import uuid
from collections.abc import Mapping
from datetime import timedelta
from typing import Any, Protocol

from .common import (
    DeserializationError,
    InvalidParameter,
    Message,
    NatsError,
    RpcError,
    RpcFailure,
    RpcTimeout,
    deserialize,
    serialize,
)
from .core import Invocation, InvocationResponse, WasmCloudEntity

logger = logging.getLogger(__name__)

DEFAULT_RPC_TIMEOUT = timedelta(milliseconds=2000)


class _Connection(Protocol):
    async def request(self, subject: str, data: bytes, timeout: float | None = None) -> Any:
        ...

    async def publish(self, subject: str, data: bytes) -> None:
        ...


class _Signer(Protocol):
    def public_key(self) -> str:
        ...

    def encode_claims(self, claims: Mapping[str, Any]) -> str:
        ...


def rpc_topic(entity: WasmCloudEntity, lattice_prefix: str) -> str:
    """Return the rpc subject for sending to an actor or provider."""
    if entity.link_name:
        return f"wasmbus.rpc.{lattice_prefix}.{entity.public_key}.{entity.link_name}"
    return f"wasmbus.rpc.{lattice_prefix}.{entity.public_key}"


def invocation_hash(target_url: str, origin_url: str, method: str, args: bytes) -> str:
    """Return the upper-case hex SHA-256 of origin, target, method and args."""
    digest = hashlib.sha256()
    digest.update(origin_url.encode())
    digest.update(target_url.encode())
    digest.update(method.encode())
    digest.update(bytes(args))
    return digest.hexdigest().upper()


def make_uuid() -> str:
    """Return a new random uuid as 32 lower-case hex digits."""
    return uuid.uuid4().hex


def _to_entity(target: WasmCloudEntity | str) -> WasmCloudEntity:
    if isinstance(target, WasmCloudEntity):
        return target
    if isinstance(target, str):
        return WasmCloudEntity.new_actor(target)
    raise InvalidParameter(f"invalid target: {target!r}")


class RpcClient:
    """Sends wasmbus rpc messages wrapped in signed invocations.

    ``nats`` is a connection with async ``request(subject, data, timeout=None)``
    and ``publish(subject, data)``; ``key`` signs invocation claims through
    ``public_key()`` and ``encode_claims(claims)``. The client does not
    subscribe to rpc topics.
    """

    def __init__(
        self,
        nats: _Connection,
        lattice_prefix: str,
        key: _Signer,
        host_id: str,
        timeout: timedelta | None = None,
    ) -> None:
        self.connection = nats
        self.lattice_prefix = lattice_prefix
        self.key = key
        self.host_id = host_id
        self.timeout = timeout

    def set_timeout(self, timeout: timedelta | None) -> None:
        """Replace the default timeout; None removes it."""
        self.timeout = timeout

    async def send_json(
        self,
        origin: WasmCloudEntity,
        target: WasmCloudEntity | str,
        method: str,
        data: Any,
    ) -> Any:
        """Send a JSON-like value as the argument and return the decoded response."""
        message = Message(method=method, arg=serialize(data))
        resp = await self.send(origin, target, message)
        return deserialize(resp)

    async def send(
        self, origin: WasmCloudEntity, target: WasmCloudEntity | str, message: Message
    ) -> bytes:
        """Send a message and wait for the response, using the client's timeout."""
        return await self._inner_rpc(origin, target, message, True, self.timeout)

    async def send_timeout(
        self,
        origin: WasmCloudEntity,
        target: WasmCloudEntity | str,
        message: Message,
        timeout: timedelta,
    ) -> bytes:
        """Send a message and wait at most ``timeout`` for the response."""
        return await self._inner_rpc(origin, target, message, True, timeout)

    async def post(
        self, origin: WasmCloudEntity, target: WasmCloudEntity | str, message: Message
    ) -> None:
        """Send a message without waiting for a response."""
        await self._inner_rpc(origin, target, message, False, None)

    async def _inner_rpc(
        self,
        origin: WasmCloudEntity,
        target: WasmCloudEntity | str,
        message: Message,
        expect_response: bool,
        timeout: timedelta | None,
    ) -> bytes:
        target = _to_entity(target)
        origin_url = origin.url()
        subject = make_uuid()
        target_url = f"{target.url()}/{message.method}"
        logger.debug("rpc_client sending to %s", target_url)
        claims = {
            "iss": self.key.public_key(),
            "sub": subject,
            "iat": int(time.time()),
            "target_url": target_url,
            "origin_url": origin_url,
            "hash": invocation_hash(target_url, origin_url, message.method, message.arg),
        }
        topic = rpc_topic(target, self.lattice_prefix)
        invocation = Invocation(
            origin=origin,
            target=target,
            operation=message.method,
            msg=bytes(message.arg),
            id=subject,
            encoded_claims=self.key.encode_claims(claims),
            host_id=self.host_id,
        )
        body = serialize(invocation)

        if not expect_response:
            try:
                await self.publish(topic, body)
            except NatsError as exc:
                raise NatsError(f"rpc send error: {target_url}: {exc}") from exc
            return b""

        try:
            if timeout is not None:
                payload = await asyncio.wait_for(
                    self.request(topic, body), timeout.total_seconds()
                )
            else:
                payload = await self.request(topic, body)
        except asyncio.TimeoutError as exc:
            logger.error("rpc timeout: sending to %s: deadline has elapsed", target_url)
            raise RpcTimeout(f"sending to {target_url}: deadline has elapsed") from exc
        except NatsError as exc:
            raise NatsError(f"rpc send error: {target_url}: {exc}") from exc

        try:
            response = InvocationResponse.from_dict(deserialize(payload))
        except RpcError as exc:
            raise DeserializationError(f"response to {message.method}: {exc}") from exc
        if response.error is not None:
            logger.error("rpc error response from %s: %s", target_url, response.error)
            raise RpcFailure(response.error)
        return response.msg

    async def request(self, subject: str, data: bytes) -> bytes:
        """Send a message and wait for the reply, honouring the client's timeout."""
        try:
            if self.timeout is not None:
                resp = await self.connection.request(
                    subject, bytes(data), timeout=self.timeout.total_seconds()
                )
            else:
                resp = await self.connection.request(subject, bytes(data))
        except Exception as exc:
            raise NatsError(str(exc) or type(exc).__name__) from exc
        return bytes(getattr(resp, "data", resp))

    async def publish(self, subject: str, data: bytes) -> None:
        """Send a message with no reply subject."""
        try:
            await self.connection.publish(subject, bytes(data))
        except Exception as exc:
            raise NatsError(str(exc) or type(exc).__name__) from exc