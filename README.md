# wasmbus

Runtime support for wasmbus rpc messages: the data types exchanged between
actors and capability providers, msgpack serialization, a timestamp type,
a queue-backed logger for multi-threaded programs, and an rpc client that
wraps messages in signed invocations.

## Installation

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

## Overview

| Module                 | Contents |
|------------------------|----------|
| `wasmbus.timestamp`    | `Timestamp`: UTC seconds and nanoseconds since the Unix epoch |
| `wasmbus.common`       | `Message`, `Context`, `SendOpts`, the abstract `Transport` and `MessageDispatch`, `serialize`, `deserialize` and the `RpcError` family |
| `wasmbus.model`        | Model types: `CodegenRust`, `Extends`, `RenameItem`, `Serialization`, `Synonym`, `UnsignedInt`, `Wasmbus`, `WasmbusData` |
| `wasmbus.core`         | `WasmCloudEntity`, `LinkDefinition`, `HealthCheckRequest`, `HealthCheckResponse`, `HostData`, `Invocation`, `InvocationResponse`, the `Actor` service with `ActorReceiver` and `ActorSender`, and `parse_host_data` / `load_host_data` |
| `wasmbus.channel_log`  | Queue-backed logging: `LogRec`, `ChannelLogger`, `init_logger`, `init_receiver`, `stop_receiver` |
| `wasmbus.rpc_client`   | `RpcClient`, `rpc_topic`, `invocation_hash`, `make_uuid` |

## Timestamps

```python
from wasmbus.timestamp import Timestamp

start = Timestamp(sec=2_000_000_000, nsec=100_000)
dt = start.to_datetime()            # aware UTC datetime, microsecond precision
assert Timestamp.from_datetime(dt) == start
assert Timestamp.from_dict(start.to_dict()) == start

now = Timestamp.now()
```

Timestamps order by seconds first and nanoseconds second. A naive datetime
given to `from_datetime` is taken as UTC; `to_datetime` raises `ValueError`
for a timestamp that cannot be represented.

## Serialization

Payloads are encoded with msgpack, using field names. Objects that have a
`to_dict()` method are encoded as maps:

```python
from wasmbus.common import serialize, deserialize
from wasmbus.core import HealthCheckResponse

buf = serialize(HealthCheckResponse(healthy=True))
assert deserialize(buf) == {"healthy": True}
assert HealthCheckResponse.from_dict(deserialize(buf)).healthy
```

Failures raise `SerializationError` or `DeserializationError`. Every error
class in `wasmbus.common` derives from `RpcError`; its string form carries a
fixed prefix per kind, e.g. `InvalidParameter("x")` prints as
`invalid parameter: x`.

## Entities and topics

```python
from wasmbus.core import WasmCloudEntity
from wasmbus.rpc_client import rpc_topic

actor = WasmCloudEntity.new_actor("MACTOR")
print(actor.url())                   # wasmbus://MACTOR
print(rpc_topic(actor, "default"))   # wasmbus.rpc.default.MACTOR

provider = WasmCloudEntity.new_provider("wasmcloud:httpserver", "default")
assert provider.is_provider()
```

Empty identifiers raise `InvalidParameter`. `LinkDefinition.actor_entity()`
and `LinkDefinition.provider_entity()` build the two ends of a link.

## The Actor service

Subclass `ActorReceiver` and implement `health_request`; its `dispatch`
decodes a `HealthRequest` message, calls the handler and returns an
`Actor.HealthRequest` message with the encoded response. Any other method
raises `MethodNotHandled`.

`ActorSender(transport)` sends the same request through any `Transport`
implementation and decodes the `HealthCheckResponse`.

## Host data

A capability provider receives its configuration from the host as one line
of base64-encoded JSON:

```python
import sys
from wasmbus.core import load_host_data

host_data = load_host_data(sys.stdin)
print(host_data.nats_url(), host_data.is_test())
```

`parse_host_data(line)` decodes a line that has already been read. Empty
input, bad base64 and bad JSON all raise `RpcFailure`. `nats_url()` falls
back to `nats://127.0.0.1:4222` when the host gave no address, and
`is_test()` is true when the host id is `_TEST_`.

## Logging

```python
import logging
import sys
from wasmbus.channel_log import init_logger, init_receiver, stop_receiver

log_rx = init_logger()               # root logger by default
thread = init_receiver(log_rx, sys.stderr)
logging.getLogger("app").info("started")
stop_receiver()
thread.join()
```

`init_logger` attaches a `ChannelLogger` handler that puts records on a
queue of at most 50 entries, and sets the level from the `WASMBUS_LOG`
environment variable (`off`, `error`, `warn`, `info`, `debug`, `trace`;
`info` otherwise). Calling it a second time raises `RuntimeError`.
Each line is written as ` LEVEL target > message` followed by `\r\n`, with
targets padded to the widest seen so far.

## Rpc client

`RpcClient(nats, lattice_prefix, key, host_id, timeout=None)` takes:

- `nats`: any object with async `request(subject, data, timeout=None)` and
  `publish(subject, data)` methods;
- `key`: any object with `public_key()` and `encode_claims(claims)` methods.

`send`, `send_timeout`, `send_json` and `post` wrap a `Message` in an
`Invocation` carrying a claims hash from `invocation_hash`, publish it on
the subject given by `rpc_topic`, and decode the `InvocationResponse`.
A remote error raises `RpcFailure`, an expired timeout `RpcTimeout`, and a
connection failure `NatsError`. A plain string target is treated as an
actor's public key.

## What this package does not do

- It contains no NATS client and no claims-signing key implementation;
  `RpcClient` works with whatever connection and signer objects it is given.
- It does not run a capability provider: there is no process entry point,
  no subscription to rpc topics and no host bridge. It supplies the types,
  host data loading and logging such a provider would use.
- It has no command-line commands.