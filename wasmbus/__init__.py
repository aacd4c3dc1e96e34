"""Types, msgpack serialization, queue-backed logging and an rpc client for wasmbus messages."""

__version__ = "0.1.0"

__all__ = ["channel_log", "common", "core", "model", "rpc_client", "timestamp"]