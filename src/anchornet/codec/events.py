"""
System.Events decoding.

    Vec<EventRecord>
    EventRecord = phase || pallet index (u8) || variant (u8) || fields || topics (Vec<Hash>)
    phase       = 0x00 ApplyExtrinsic(u32) | 0x01 Finalization | 0x02 Initialization

Field layouts come from the registry's "events" and "types" sections.
find_outcome() stops at the ExtrinsicSuccess / ExtrinsicFailed event of the
requested extrinsic, so only the events emitted before it need a layout.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Optional, Tuple

from anchornet.codec.scale import decode_compact
from anchornet.protocol.errors import RegistryError
from anchornet.protocol.models import RawDispatchError

if TYPE_CHECKING:
    from anchornet.core.registry import MetadataRegistry

_UINT_BYTES = {"u8": 1, "u16": 2, "u32": 4, "u64": 8, "u128": 16}

_BYTE_ARRAY_RE = re.compile(r"^\[u8;\s*(\d+)\]$")
_WRAPPED_RE = re.compile(r"^(Option|Vec)<(.+)>$")

# frame_support DispatchError variants, in order
DISPATCH_ERROR_KINDS = (
    "other",
    "cannot_lookup",
    "bad_origin",
    "module",
    "consumer_remaining",
    "no_providers",
    "too_many_consumers",
    "token",
    "arithmetic",
    "transactional",
    "exhausted",
    "corruption",
    "unavailable",
    "root_not_allowed",
)

_NESTED_ERRORS = {
    "token": (
        "FundsUnavailable", "OnlyProvider", "BelowMinimum", "CannotCreate", "UnknownAsset",
        "Frozen", "Unsupported", "CannotCreateHold", "NotExpendable", "Blocked",
    ),
    "arithmetic": ("Underflow", "Overflow", "DivisionByZero"),
    "transactional": ("LimitReached", "NoLayer"),
}

# Used when the registry does not define ModuleError
DEFAULT_MODULE_ERROR = ("u8", "[u8; 4]")

PHASE_APPLY_EXTRINSIC = 0
MAX_TYPE_DEPTH = 32


@dataclass(frozen=True)
class EventRecord:
    extrinsic_index: Optional[int]
    section: str
    name: str
    args: Tuple[Any, ...] = ()


@dataclass(frozen=True)
class ExtrinsicOutcome:
    """
    What happened to one extrinsic of a block.

    interrupted_at is set when a utility batch stopped at that item; the
    extrinsic itself still succeeded, dispatch_error carries the item's error.
    """
    extrinsic_index: int
    success: bool
    dispatch_error: Optional[RawDispatchError] = None
    interrupted_at: Optional[int] = None


class EventReader:
    def __init__(self, data: bytes, registry: "MetadataRegistry", offset: int = 0) -> None:
        self._data = data
        self._registry = registry
        self.offset = offset

    def _take(self, size: int) -> bytes:
        end = self.offset + size
        if end > len(self._data):
            raise RegistryError(
                f"event data ended at byte {len(self._data)}, needed {end}; the registry's event layouts "
                f"do not match the chain"
            )
        chunk = self._data[self.offset:end]
        self.offset = end
        return chunk

    def _compact(self) -> int:
        if self.offset >= len(self._data):
            self._take(1)
        value, consumed = decode_compact(self._data, self.offset)
        self._take(consumed)
        return value

    def read(self, type_name: str, depth: int = 0) -> Any:
        if depth > MAX_TYPE_DEPTH:
            raise RegistryError(f"type {type_name!r} nests too deeply (alias loop?)")
        type_name = type_name.strip()

        if type_name in _UINT_BYTES:
            return int.from_bytes(self._take(_UINT_BYTES[type_name]), "little")
        if type_name == "bool":
            return self._take(1) != b"\x00"
        if type_name == "Compact":
            return self._compact()
        if type_name == "Bytes":
            return self._take(self._compact())
        if type_name == "Hash":
            return "0x" + self._take(self._registry.hash_width // 8).hex()
        if type_name == "AccountId":
            return self._take(32)
        if type_name == "DispatchError":
            return self.read_dispatch_error(depth)

        match = _BYTE_ARRAY_RE.match(type_name)
        if match:
            return self._take(int(match.group(1)))

        match = _WRAPPED_RE.match(type_name)
        if match:
            wrapper, inner = match.groups()
            if wrapper == "Option":
                return None if self._take(1) == b"\x00" else self.read(inner, depth + 1)
            return [self.read(inner, depth + 1) for _ in range(self._compact())]

        definition = self._registry.type_definition(type_name)
        if definition is None and type_name == "ModuleError":
            definition = DEFAULT_MODULE_ERROR
        if definition is None:
            raise RegistryError(f"no layout for type {type_name!r}")
        if isinstance(definition, str):
            return self.read(definition, depth + 1)
        return tuple(self.read(field_type, depth + 1) for field_type in definition)

    def read_dispatch_error(self, depth: int = 0) -> RawDispatchError:
        variant = self._take(1)[0]
        if variant >= len(DISPATCH_ERROR_KINDS):
            raise RegistryError(f"unknown DispatchError variant {variant}")
        kind = DISPATCH_ERROR_KINDS[variant]

        if kind == "module":
            index, error = self.read("ModuleError", depth + 1)
            # The error field is a u8 on older runtimes, [u8; 4] on newer ones
            error_index = error[0] if isinstance(error, bytes) else int(error)
            return RawDispatchError.module(index, error_index)

        if kind in _NESTED_ERRORS:
            names = _NESTED_ERRORS[kind]
            nested = self._take(1)[0]
            return RawDispatchError(kind, detail=names[nested] if nested < len(names) else str(nested))

        return RawDispatchError(kind)

    def read_record(self) -> EventRecord:
        phase = self._take(1)[0]
        extrinsic_index = None
        if phase == PHASE_APPLY_EXTRINSIC:
            extrinsic_index = self.read("u32")

        pallet_index, variant = self._take(2)
        spec = self._registry.event_spec(pallet_index, variant)
        if spec is None:
            raise RegistryError(f"no event layout for pallet {pallet_index} variant {variant}")
        args = tuple(self.read(arg) for arg in spec.args)

        self.read("Vec<Hash>")  # topics
        return EventRecord(extrinsic_index, spec.section, spec.name, args)


def find_outcome(
    data: bytes,
    extrinsic_index: int,
    registry: "MetadataRegistry",
) -> Optional[ExtrinsicOutcome]:
    """
    Outcome of the extrinsic at `extrinsic_index` in a block, given the raw
    System.Events storage value of that block. None when the events hold no
    outcome for it.
    """
    reader = EventReader(data, registry)
    count = reader.read("Compact")
    interrupted: Optional[Tuple[int, RawDispatchError]] = None

    for _ in range(count):
        record = reader.read_record()
        if record.extrinsic_index != extrinsic_index:
            continue

        if (record.section, record.name) == ("utility", "BatchInterrupted"):
            interrupted = (record.args[0], record.args[1])
        elif (record.section, record.name) == ("system", "ExtrinsicFailed"):
            return ExtrinsicOutcome(extrinsic_index, False, record.args[0])
        elif (record.section, record.name) == ("system", "ExtrinsicSuccess"):
            if interrupted is not None:
                return ExtrinsicOutcome(extrinsic_index, True, interrupted[1], interrupted[0])
            return ExtrinsicOutcome(extrinsic_index, True)
    return None
