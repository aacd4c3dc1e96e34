"""Shared model types: integer aliases and code-generation traits."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from .common import DeserializationError

SMITHY_VERSION = "1.0"

CapabilityContractId = str
"""Capability contract id, e.g. 'wasmcloud:httpserver'."""

I8 = int
I16 = int
I32 = int
I64 = int
U8 = int
U16 = int
U32 = int
U64 = int
N = int
"""Field sequence number."""

NonEmptyString = str
IdentifierList = list[str]


def _mapping(data: Any, name: str) -> Mapping[str, Any]:
    if not isinstance(data, Mapping):
        raise DeserializationError(f"{name}: expected a map, got {type(data).__name__}")
    return data


@dataclass
class CodegenRust:
    """Code generation switches."""

    no_derive_default: bool = False
    no_derive_eq: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {"noDeriveDefault": self.no_derive_default, "noDeriveEq": self.no_derive_eq}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> CodegenRust:
        data = _mapping(data, "CodegenRust")
        return cls(
            no_derive_default=bool(data.get("noDeriveDefault", False)),
            no_derive_eq=bool(data.get("noDeriveEq", False)),
        )


@dataclass
class Extends:
    """Indicates that a trait or class extends one or more bases."""

    base: list[str] | None = None

    def to_dict(self) -> dict[str, Any]:
        return {} if self.base is None else {"base": list(self.base)}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Extends:
        data = _mapping(data, "Extends")
        base = data.get("base")
        return cls(base=None if base is None else list(base))


@dataclass
class RenameItem:
    """The name of an item in a target language."""

    lang: str = ""
    name: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {"lang": self.lang, "name": self.name}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> RenameItem:
        data = _mapping(data, "RenameItem")
        return cls(lang=data.get("lang", ""), name=data.get("name", ""))


Rename = list[RenameItem]


@dataclass
class Serialization:
    """Overrides for serializer and deserializer field names."""

    name: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {} if self.name is None else {"name": self.name}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Serialization:
        data = _mapping(data, "Serialization")
        return cls(name=data.get("name"))


@dataclass
class Synonym:
    """Marks a type as a synonym."""

    def to_dict(self) -> dict[str, Any]:
        return {}


@dataclass
class UnsignedInt:
    """Marks a number type as unsigned."""

    def to_dict(self) -> dict[str, Any]:
        return {}


@dataclass
class Wasmbus:
    """Protocol settings for how a client and server communicate."""

    actor_receive: bool = False
    contract_id: CapabilityContractId | None = None
    provider_receive: bool = False

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"actorReceive": self.actor_receive}
        if self.contract_id is not None:
            out["contractId"] = self.contract_id
        out["providerReceive"] = self.provider_receive
        return out

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Wasmbus:
        data = _mapping(data, "Wasmbus")
        return cls(
            actor_receive=bool(data.get("actorReceive", False)),
            contract_id=data.get("contractId"),
            provider_receive=bool(data.get("providerReceive", False)),
        )


@dataclass
class WasmbusData:
    """Marks data sent via wasmbus."""

    def to_dict(self) -> dict[str, Any]:
        return {}