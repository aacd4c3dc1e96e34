from datetime import timedelta

import pytest

from wasmbus.common import (
    ActorHandlerError,
    Context,
    DeadlineExceeded,
    DeserializationError,
    HostError,
    InvalidParameter,
    Message,
    MessageDispatch,
    MethodNotHandled,
    MethodNotImplemented,
    NatsError,
    NotInitialized,
    OtherError,
    ProviderInitError,
    RpcError,
    RpcFailure,
    RpcTimeout,
    SendOpts,
    SerializationError,
    Transport,
    deserialize,
    serialize,
)


@pytest.mark.parametrize(
    "cls",
    [
        DeadlineExceeded,
        NotInitialized,
        MethodNotHandled,
        MethodNotImplemented,
        HostError,
        DeserializationError,
        SerializationError,
        RpcFailure,
        NatsError,
        InvalidParameter,
        ActorHandlerError,
        ProviderInitError,
        RpcTimeout,
        OtherError,
    ],
)
def test_errors_are_rpc_errors(cls):
    err = cls("detail")
    assert err.detail == "detail"
    assert isinstance(err, RpcError)
    assert isinstance(err, Exception)


@pytest.mark.parametrize(
    "cls",
    [DeadlineExceeded, NotInitialized, HostError, RpcFailure, NatsError, RpcTimeout],
)
def test_error_message_ends_with_detail(cls):
    assert str(cls("xyz")).endswith("xyz")


def test_error_messages():
    assert str(MethodNotImplemented()) == "method not implemented"
    assert str(InvalidParameter("public_key may not be empty")) == (
        "invalid parameter: public_key may not be empty"
    )
    assert str(OtherError("plain")) == "plain"


def test_send_opts_defaults_and_builders():
    opts = SendOpts()
    assert (opts.idempotent, opts.read_only) == (False, False)
    built = opts.with_idempotent(True).with_read_only(True)
    assert (built.idempotent, built.read_only) == (True, True)
    assert (opts.idempotent, opts.read_only) == (False, False)


def test_context_defaults():
    ctx = Context()
    assert ctx.actor is None and ctx.span is None


def test_message_default_arg():
    assert Message(method="Actor.HealthRequest").arg == b""


def test_serialize_round_trip():
    value = {"name": "x", "count": 3, "data": b"\x00\x01", "list": [1, 2, 3], "flag": True}
    assert deserialize(serialize(value)) == value


def test_serialize_wire_format():
    assert serialize({}) == b"\x80"
    assert serialize(None) == b"\xc0"


def test_serialize_object_with_to_dict():
    class Thing:
        def to_dict(self):
            return {"a": 1}

    assert deserialize(serialize(Thing())) == {"a": 1}


def test_serialize_unsupported():
    with pytest.raises(SerializationError):
        serialize(object())


def test_deserialize_empty():
    with pytest.raises(DeserializationError):
        deserialize(b"")


def test_deserialize_truncated():
    with pytest.raises(DeserializationError):
        deserialize(b"\x92\x01")


class _EchoTransport(Transport):
    def __init__(self):
        self.timeout = None

    async def send(self, ctx, req, opts=None):
        return req.method.encode() + req.arg

    def set_timeout(self, interval):
        self.timeout = interval


class _Dispatcher(MessageDispatch):
    async def dispatch(self, ctx, message):
        if message.method != "Echo":
            raise MethodNotHandled(message.method)
        return Message(method="Echo", arg=message.arg)


@pytest.mark.asyncio
async def test_transport_subclass():
    transport = _EchoTransport()
    transport.set_timeout(timedelta(seconds=2))
    assert transport.timeout == timedelta(seconds=2)
    result = await transport.send(Context(), Message("M", b"!"), SendOpts())
    assert result == b"M!"


@pytest.mark.asyncio
async def test_dispatch_subclass():
    dispatcher = _Dispatcher()
    resp = await dispatcher.dispatch(Context(), Message("Echo", b"abc"))
    assert resp.arg == b"abc"
    with pytest.raises(MethodNotHandled):
        await dispatcher.dispatch(Context(), Message("Other"))


def test_abstract_transport_not_instantiable():
    with pytest.raises(TypeError):
        Transport()