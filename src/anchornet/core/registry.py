"""
Type / metadata registry.

The registry is the configuration artifact that tells the client how to
encode call targets, how to decode module errors, and how to read the events
a block emits. It is a JSON document:

    {
      "addressType": "MultiAddress",
      "calls": {
        "mtype.anchor": {"index": [40, 0], "args": ["Hash"]},
        ...
      },
      "modules": {
        "40": {"section": "mtype", "errors": [{"name": "...", "documentation": ["..."]}]}
      },
      "events": {
        "0": {"section": "system", "events": [{"name": "ExtrinsicSuccess", "args": ["DispatchInfo"]}, ...]}
      },
      "types": {"DispatchInfo": ["Weight", "u8", "u8"], "Balance": "u128", ...}
    }

"events" lists each pallet's events in variant order with their field types.
"types" maps a type name to an alias (string) or to the field types of a
struct (list). A "Hash" entry of the form "[u8; N]" sets the width of Hash
arguments, 256 bits when absent.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple, Union

from jsonschema import Draft202012Validator, ValidationError

from anchornet.protocol.errors import InvalidParameter, RegistryError
from anchornet.protocol.models import DecodedError, RawDispatchError

ARG_TYPES = ("Hash", "Option<Hash>", "Vec<Call>", "Bytes", "u32", "u64", "Compact", "bool")

ADDRESS_TYPES = ("MultiAddress", "AccountId")

DEFAULT_HASH_WIDTH = 256

_BYTE_ARRAY_RE = re.compile(r"^\[u8;\s*(\d+)\]$")

_NAMED_LIST = {
    "type": "array",
    "items": {
        "type": "object",
        "required": ["name"],
        "properties": {
            "name": {"type": "string"},
            "documentation": {"type": "array", "items": {"type": "string"}},
            "args": {"type": "array", "items": {"type": "string"}},
        },
    },
}

REGISTRY_SCHEMA: Dict[str, Any] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "type": "object",
    "required": ["calls"],
    "properties": {
        "addressType": {"enum": list(ADDRESS_TYPES)},
        "calls": {
            "type": "object",
            "additionalProperties": {
                "type": "object",
                "required": ["index"],
                "properties": {
                    "index": {
                        "type": "array",
                        "items": {"type": "integer", "minimum": 0, "maximum": 255},
                        "minItems": 2,
                        "maxItems": 2,
                    },
                    "args": {"type": "array", "items": {"enum": list(ARG_TYPES)}},
                },
            },
        },
        "modules": {
            "type": "object",
            "additionalProperties": {
                "type": "object",
                "required": ["section"],
                "properties": {"section": {"type": "string"}, "errors": _NAMED_LIST},
            },
        },
        "events": {
            "type": "object",
            "additionalProperties": {
                "type": "object",
                "required": ["section"],
                "properties": {"section": {"type": "string"}, "events": _NAMED_LIST},
            },
        },
        "types": {
            "type": "object",
            "additionalProperties": {
                "oneOf": [
                    {"type": "string"},
                    {"type": "array", "items": {"type": "string"}},
                ],
            },
        },
    },
}

_VALIDATOR = Draft202012Validator(REGISTRY_SCHEMA)


DEFAULT_REGISTRY: Dict[str, Any] = {
    "addressType": "MultiAddress",
    "calls": {
        "utility.batch": {"index": [1, 0], "args": ["Vec<Call>"]},
        "mtype.anchor": {"index": [40, 0], "args": ["Hash"]},
        "mark.anchor": {"index": [41, 0], "args": ["Hash", "Hash", "Option<Hash>"]},
    },
    "modules": {
        "1": {
            "section": "utility",
            "errors": [
                {"name": "TooManyCalls", "documentation": ["Too many calls batched."]},
            ],
        },
        "40": {
            "section": "mtype",
            "errors": [
                {"name": "HashAlreadyAnchored", "documentation": ["The type hash is already anchored."]},
            ],
        },
        "41": {
            "section": "mark",
            "errors": [
                {"name": "MarkAlreadyAnchored", "documentation": ["The mark hash is already anchored."]},
                {"name": "TypeNotFound", "documentation": ["The parent type hash is not anchored."]},
            ],
        },
    },
    "events": {
        "0": {
            "section": "system",
            "events": [
                {"name": "ExtrinsicSuccess", "args": ["DispatchInfo"]},
                {"name": "ExtrinsicFailed", "args": ["DispatchError", "DispatchInfo"]},
                {"name": "CodeUpdated", "args": []},
                {"name": "NewAccount", "args": ["AccountId"]},
                {"name": "KilledAccount", "args": ["AccountId"]},
                {"name": "Remarked", "args": ["AccountId", "Hash"]},
            ],
        },
        "1": {
            "section": "utility",
            "events": [
                {"name": "BatchInterrupted", "args": ["u32", "DispatchError"]},
                {"name": "BatchCompleted", "args": []},
                {"name": "BatchCompletedWithErrors", "args": []},
                {"name": "ItemCompleted", "args": []},
                {"name": "ItemFailed", "args": ["DispatchError"]},
            ],
        },
        "5": {
            "section": "balances",
            "events": [
                {"name": "Endowed", "args": ["AccountId", "Balance"]},
                {"name": "DustLost", "args": ["AccountId", "Balance"]},
                {"name": "Transfer", "args": ["AccountId", "AccountId", "Balance"]},
                {"name": "BalanceSet", "args": ["AccountId", "Balance"]},
                {"name": "Reserved", "args": ["AccountId", "Balance"]},
                {"name": "Unreserved", "args": ["AccountId", "Balance"]},
                {"name": "ReserveRepatriated", "args": ["AccountId", "AccountId", "Balance", "u8"]},
                {"name": "Deposit", "args": ["AccountId", "Balance"]},
                {"name": "Withdraw", "args": ["AccountId", "Balance"]},
                {"name": "Slashed", "args": ["AccountId", "Balance"]},
            ],
        },
        "6": {
            "section": "transactionPayment",
            "events": [
                {"name": "TransactionFeePaid", "args": ["AccountId", "Balance", "Balance"]},
            ],
        },
        "40": {
            "section": "mtype",
            "events": [{"name": "Anchored", "args": ["Hash", "AccountId"]}],
        },
        "41": {
            "section": "mark",
            "events": [{"name": "Anchored", "args": ["Hash", "AccountId"]}],
        },
    },
    "types": {
        "Balance": "u128",
        "Weight": ["Compact", "Compact"],
        "DispatchInfo": ["Weight", "u8", "u8"],
        "ModuleError": ["u8", "[u8; 4]"],
    },
}

TypeDefinition = Union[str, Tuple[str, ...]]


@dataclass(frozen=True)
class CallSpec:
    target: str
    pallet_index: int
    call_index: int
    args: Tuple[str, ...] = ()

    @property
    def index_bytes(self) -> bytes:
        return bytes([self.pallet_index, self.call_index])


@dataclass(frozen=True)
class EventSpec:
    section: str
    name: str
    args: Tuple[str, ...] = ()

    def __str__(self) -> str:
        return f"{self.section}.{self.name}"


@dataclass
class ModuleErrors:
    section: str
    errors: List[DecodedError] = field(default_factory=list)


@dataclass
class ModuleEvents:
    section: str
    events: List[EventSpec] = field(default_factory=list)


def _module_index(key: str) -> int:
    try:
        return int(key)
    except ValueError as e:
        raise RegistryError(f"module keys must be integer indices, got {key!r}") from e


def _hash_width(types: Dict[str, Any]) -> int:
    definition = types.get("Hash")
    if definition is None:
        return DEFAULT_HASH_WIDTH
    match = _BYTE_ARRAY_RE.match(definition) if isinstance(definition, str) else None
    if match is None or int(match.group(1)) == 0:
        raise RegistryError(f"Hash must be defined as [u8; N], got {definition!r}")
    return int(match.group(1)) * 8


class MetadataRegistry:
    """
    Resolves call targets to their on-chain indices and argument shapes,
    module error indices to {section, name, documentation}, and
    (pallet, variant) pairs to event layouts.
    """

    def __init__(
        self,
        calls: Dict[str, CallSpec],
        modules: Optional[Dict[int, ModuleErrors]] = None,
        *,
        events: Optional[Dict[int, ModuleEvents]] = None,
        address_type: str = "MultiAddress",
        types: Optional[Dict[str, Any]] = None,
    ) -> None:
        self._calls = dict(calls)
        self._modules = dict(modules or {})
        self._events = dict(events or {})
        self.address_type = address_type
        self.types = dict(types or {})

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------
    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MetadataRegistry":
        try:
            _VALIDATOR.validate(data)
        except ValidationError as e:
            raise RegistryError(f"invalid registry document: {e.message}") from e

        calls: Dict[str, CallSpec] = {}
        for target, spec in data["calls"].items():
            if "." not in target:
                raise RegistryError(f"call target must be '<section>.<method>', got {target!r}")
            pallet_index, call_index = spec["index"]
            calls[target] = CallSpec(target, pallet_index, call_index, tuple(spec.get("args", [])))

        modules: Dict[int, ModuleErrors] = {}
        for key, module in (data.get("modules") or {}).items():
            modules[_module_index(key)] = ModuleErrors(
                section=module["section"],
                errors=[
                    DecodedError(module["section"], err["name"], tuple(err.get("documentation", [])))
                    for err in module.get("errors", [])
                ],
            )

        events: Dict[int, ModuleEvents] = {}
        for key, module in (data.get("events") or {}).items():
            events[_module_index(key)] = ModuleEvents(
                section=module["section"],
                events=[
                    EventSpec(module["section"], ev["name"], tuple(ev.get("args", [])))
                    for ev in module.get("events", [])
                ],
            )

        _hash_width(data.get("types") or {})

        return cls(
            calls,
            modules,
            events=events,
            address_type=data.get("addressType", "MultiAddress"),
            types=data.get("types"),
        )

    @classmethod
    def from_file(cls, path: str) -> "MetadataRegistry":
        with open(path, "r", encoding="utf-8") as f:
            try:
                data = json.load(f)
            except json.JSONDecodeError as e:
                raise RegistryError(f"registry file {path} is not valid JSON: {e}") from e
        return cls.from_dict(data)

    @classmethod
    def default(cls) -> "MetadataRegistry":
        return cls.from_dict(DEFAULT_REGISTRY)

    # ------------------------------------------------------------------
    # Calls
    # ------------------------------------------------------------------
    def call_spec(self, target: str) -> CallSpec:
        try:
            return self._calls[target]
        except KeyError:
            raise InvalidParameter(f"unknown call target {target!r}") from None

    def call_index(self, target: str) -> Tuple[int, int]:
        spec = self.call_spec(target)
        return spec.pallet_index, spec.call_index

    def call_args(self, target: str) -> Tuple[str, ...]:
        return self.call_spec(target).args

    def has_call(self, target: str) -> bool:
        return target in self._calls

    @property
    def targets(self) -> List[str]:
        return sorted(self._calls)

    # ------------------------------------------------------------------
    # Types and events
    # ------------------------------------------------------------------
    @property
    def hash_width(self) -> int:
        """Width in bits of Hash arguments and event fields."""
        return _hash_width(self.types)

    def type_definition(self, name: str) -> Optional[TypeDefinition]:
        definition = self.types.get(name)
        if isinstance(definition, list):
            return tuple(definition)
        return definition

    def event_spec(self, pallet_index: int, variant: int) -> Optional[EventSpec]:
        module = self._events.get(pallet_index)
        if module is None or variant >= len(module.events):
            return None
        return module.events[variant]

    # ------------------------------------------------------------------
    # Errors
    # ------------------------------------------------------------------
    def find_meta_error(self, raw: RawDispatchError) -> Optional[DecodedError]:
        """
        Decode a module dispatch error, or None when the registry cannot
        resolve it (non-module error, unknown module, index out of range).
        """
        if not raw.is_module:
            return None
        module = self._modules.get(raw.module_index)
        if module is None or raw.error_index >= len(module.errors):
            return None
        return module.errors[raw.error_index]

    def describe(self, raw: RawDispatchError) -> str:
        decoded = self.find_meta_error(raw)
        return str(decoded) if decoded is not None else str(raw)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "addressType": self.address_type,
            "calls": {
                t: {"index": [c.pallet_index, c.call_index], "args": list(c.args)}
                for t, c in self._calls.items()
            },
            "modules": {
                str(i): {
                    "section": m.section,
                    "errors": [
                        {"name": e.name, "documentation": list(e.documentation)} for e in m.errors
                    ],
                }
                for i, m in self._modules.items()
            },
            "events": {
                str(i): {
                    "section": m.section,
                    "events": [{"name": e.name, "args": list(e.args)} for e in m.events],
                }
                for i, m in self._events.items()
            },
            "types": dict(self.types),
        }
