import base64
import io
import json
from datetime import timedelta

import pytest

from wasmbus.common import (
    Context,
    DeserializationError,
    InvalidParameter,
    Message,
    MethodNotHandled,
    RpcFailure,
    Transport,
    deserialize,
    serialize,
)
from wasmbus.core import (
    DEFAULT_NATS_ADDR,
    ActorReceiver,
    ActorSender,
    HealthCheckRequest,
    HealthCheckResponse,
    HostData,
    Invocation,
    InvocationResponse,
    LinkDefinition,
    WasmCloudEntity,
    load_host_data,
    parse_host_data,
)


def _encode(obj):
    return base64.b64encode(json.dumps(obj).encode()).decode()


def _host_json(**extra):
    data = {
        "host_id": "NHOST",
        "lattice_rpc_prefix": "default",
        "provider_key": "VPROVIDER",
        "env_values": {"A": "1"},
        "link_definitions": [
            {
                "actor_id": "MACTOR",
                "provider_id": "VPROVIDER",
                "link_name": "default",
                "contract_id": "wasmcloud:httpserver",
                "values": {"PORT": "8080"},
            }
        ],
        "cluster_issuers": ["CISSUER"],
    }
    data.update(extra)
    return data


def test_new_actor_rejects_empty():
    with pytest.raises(InvalidParameter) as info:
        WasmCloudEntity.new_actor("")
    assert str(info.value) == "invalid parameter: public_key may not be empty"


def test_new_provider_rejects_empty_fields():
    with pytest.raises(InvalidParameter, match="contract_id may not be empty"):
        WasmCloudEntity.new_provider("", "default")
    with pytest.raises(InvalidParameter, match="link_name may not be empty"):
        WasmCloudEntity.new_provider("wasmcloud:httpserver", "")


def test_actor_url_and_kind():
    entity = WasmCloudEntity.new_actor("MACTOR")
    assert entity.url() == "wasmbus://MACTOR"
    assert str(entity) == entity.url()
    assert entity.is_actor()
    assert not entity.is_provider()


def test_provider_url_and_kind():
    entity = WasmCloudEntity(
        public_key="VPROV", link_name="Default Link", contract_id="wasmcloud:http server"
    )
    assert entity.url() == "wasmbus://wasmcloud/http_server/default_link/VPROV"
    assert entity.is_provider()
    assert not entity.is_actor()


def test_new_provider_has_empty_key():
    entity = WasmCloudEntity.new_provider("wasmcloud:keyvalue", "default")
    assert entity.public_key == ""
    assert entity.contract_id == "wasmcloud:keyvalue"
    assert entity.is_provider()


def test_entity_round_trip_and_required_contract():
    entity = WasmCloudEntity.new_provider("wasmcloud:keyvalue", "default")
    assert WasmCloudEntity.from_dict(entity.to_dict()) == entity
    with pytest.raises(DeserializationError):
        WasmCloudEntity.from_dict({"public_key": "MX"})


def test_link_definition_entities():
    ld = LinkDefinition.from_dict(_host_json()["link_definitions"][0])
    assert ld.actor_entity() == WasmCloudEntity(public_key="MACTOR")
    provider = ld.provider_entity()
    assert provider.public_key == "VPROVIDER"
    assert provider.link_name == ld.link_name
    assert provider.contract_id == ld.contract_id
    assert LinkDefinition.from_dict(ld.to_dict()) == ld


def test_link_definition_requires_values():
    with pytest.raises(DeserializationError):
        LinkDefinition.from_dict({"actor_id": "MACTOR"})


def test_health_response_round_trip_through_msgpack():
    resp = HealthCheckResponse(healthy=True, message="fine")
    assert HealthCheckResponse.from_dict(deserialize(serialize(resp))) == resp
    bare = HealthCheckResponse(healthy=False)
    assert "message" not in bare.to_dict()
    assert HealthCheckResponse.from_dict({}) == bare


def test_invocation_round_trip_through_msgpack():
    inv = Invocation(
        origin=WasmCloudEntity.new_actor("MACTOR"),
        target=WasmCloudEntity.new_provider("wasmcloud:keyvalue", "default"),
        operation="KeyValue.Get",
        msg=b"\x00\x01\xff",
        id="abc",
        encoded_claims="claims",
        host_id="NHOST",
    )
    assert Invocation.from_dict(deserialize(serialize(inv))) == inv


def test_invocation_response_round_trip():
    resp = InvocationResponse(msg=b"data", invocation_id="id1", error="boom")
    assert InvocationResponse.from_dict(deserialize(serialize(resp))) == resp
    ok = InvocationResponse(msg=b"data", invocation_id="id1")
    assert "error" not in ok.to_dict()


def test_parse_host_data():
    hd = parse_host_data("  " + _encode(_host_json()) + "\n")
    assert hd.host_id == "NHOST"
    assert hd.env_values == {"A": "1"}
    assert hd.cluster_issuers == ["CISSUER"]
    assert hd.link_definitions[0].values == {"PORT": "8080"}
    assert hd.config_json is None
    assert HostData.from_dict(hd.to_dict()) == hd


def test_host_data_nats_url_and_is_test():
    hd = parse_host_data(_encode(_host_json()))
    assert hd.nats_url() == DEFAULT_NATS_ADDR
    assert not hd.is_test()
    other = parse_host_data(
        _encode(_host_json(host_id="_TEST_", lattice_rpc_url="nats://10.0.0.1:4222"))
    )
    assert other.is_test()
    assert other.nats_url() == "nats://10.0.0.1:4222"


def test_parse_host_data_empty():
    with pytest.raises(RpcFailure) as info:
        parse_host_data("   \n")
    assert "stdin is empty - expecting host data configuration" in str(info.value)


def test_parse_host_data_bad_base64():
    with pytest.raises(RpcFailure, match="expected base64"):
        parse_host_data("not*base64")


def test_parse_host_data_bad_json_and_missing_fields():
    with pytest.raises(RpcFailure, match="parsing host data"):
        parse_host_data(base64.b64encode(b"{nope").decode())
    data = _host_json()
    del data["cluster_issuers"]
    with pytest.raises(RpcFailure, match="cluster_issuers"):
        parse_host_data(_encode(data))


def test_load_host_data_reads_first_line():
    stream = io.StringIO(_encode(_host_json()) + "\nsecond line\n")
    hd = load_host_data(stream)
    assert hd.provider_key == "VPROVIDER"
    assert stream.readline() == "second line\n"


def test_load_host_data_read_error():
    class Broken:
        def readline(self):
            raise OSError("closed")

    with pytest.raises(RpcFailure, match="failed to read host data"):
        load_host_data(Broken())


class _Healthy(ActorReceiver):
    async def health_request(self, ctx, arg):
        return HealthCheckResponse(healthy=True, message=ctx.actor)


@pytest.mark.asyncio
async def test_receiver_dispatch_health_request():
    msg = Message(method="HealthRequest", arg=serialize(HealthCheckRequest()))
    resp = await _Healthy().dispatch(Context(actor="MACTOR"), msg)
    assert resp.method == "Actor.HealthRequest"
    assert HealthCheckResponse.from_dict(deserialize(resp.arg)) == HealthCheckResponse(
        healthy=True, message="MACTOR"
    )


@pytest.mark.asyncio
async def test_receiver_unknown_method():
    with pytest.raises(MethodNotHandled) as info:
        await _Healthy().dispatch(Context(), Message(method="Other", arg=b""))
    assert str(info.value) == "method not handled Actor::Other"


@pytest.mark.asyncio
async def test_receiver_bad_argument():
    with pytest.raises(DeserializationError, match="message 'HealthRequest'"):
        await _Healthy().dispatch(Context(), Message(method="HealthRequest", arg=b"\xc1"))


class _FakeTransport(Transport):
    def __init__(self, reply):
        self.reply = reply
        self.sent = []
        self.timeout = None

    async def send(self, ctx, req, opts=None):
        self.sent.append((req, opts))
        return self.reply

    def set_timeout(self, interval):
        self.timeout = interval


@pytest.mark.asyncio
async def test_sender_health_request():
    expected = HealthCheckResponse(healthy=True, message="up")
    transport = _FakeTransport(serialize(expected))
    result = await ActorSender(transport).health_request(Context(), HealthCheckRequest())
    assert result == expected
    req, opts = transport.sent[0]
    assert req.method == "Actor.HealthRequest"
    assert deserialize(req.arg) == {}
    assert opts is None


@pytest.mark.asyncio
async def test_sender_bad_response():
    sender = ActorSender(_FakeTransport(serialize([1, 2])))
    with pytest.raises(DeserializationError, match="response to HealthRequest"):
        await sender.health_request(Context(), HealthCheckRequest())


def test_sender_set_timeout_forwards():
    transport = _FakeTransport(b"")
    ActorSender(transport).set_timeout(timedelta(seconds=3))
    assert transport.timeout == timedelta(seconds=3)