"""
Minimal SCALE codec.

Only the shapes the anchoring calls need are covered: compact and
fixed-width integers, length-prefixed bytes, hashes (256-bit unless the
registry says otherwise), Option<Hash>, and Vec<Call> (for utility.batch).
Call layouts come from the MetadataRegistry, never from this module.
Event decoding lives in anchornet.codec.events.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Tuple

from anchornet.protocol.errors import InvalidParameter
from anchornet.protocol.models import Batch, ContentHash, Operation, Submittable

if TYPE_CHECKING:
    from anchornet.core.registry import MetadataRegistry

HASH_BYTES = 32


# ----------------------------------------------------------------------
# Primitives
# ----------------------------------------------------------------------

def encode_compact(value: int) -> bytes:
    if value < 0:
        raise InvalidParameter(f"compact integers are unsigned, got {value}")
    if value < 1 << 6:
        return bytes([value << 2])
    if value < 1 << 14:
        return ((value << 2) | 0b01).to_bytes(2, "little")
    if value < 1 << 30:
        return ((value << 2) | 0b10).to_bytes(4, "little")

    raw = value.to_bytes((value.bit_length() + 7) // 8, "little")
    if len(raw) > 67:
        raise InvalidParameter(f"compact integer too large: {value}")
    return bytes([((len(raw) - 4) << 2) | 0b11]) + raw


def decode_compact(data: bytes, offset: int = 0) -> Tuple[int, int]:
    """Return (value, bytes consumed)."""
    mode = data[offset] & 0b11
    if mode == 0b00:
        return data[offset] >> 2, 1
    if mode == 0b01:
        return int.from_bytes(data[offset:offset + 2], "little") >> 2, 2
    if mode == 0b10:
        return int.from_bytes(data[offset:offset + 4], "little") >> 2, 4
    length = (data[offset] >> 2) + 4
    return int.from_bytes(data[offset + 1:offset + 1 + length], "little"), length + 1


def encode_u32(value: int) -> bytes:
    return value.to_bytes(4, "little")


def encode_u64(value: int) -> bytes:
    return value.to_bytes(8, "little")


def decode_u32(data: bytes, offset: int = 0) -> int:
    return int.from_bytes(data[offset:offset + 4], "little")


def decode_u64(data: bytes, offset: int = 0) -> int:
    return int.from_bytes(data[offset:offset + 8], "little")


def encode_bytes(value: bytes) -> bytes:
    return encode_compact(len(value)) + value


def encode_hash(value: Any, size: int = HASH_BYTES) -> bytes:
    if isinstance(value, ContentHash):
        digest = value.digest
    elif isinstance(value, (bytes, bytearray)):
        digest = bytes(value)
    else:
        raise InvalidParameter(f"expected a hash, got {type(value).__name__}")

    if len(digest) != size:
        raise InvalidParameter(f"Hash arguments are {size * 8} bits, got {len(digest) * 8}")
    return digest


# ----------------------------------------------------------------------
# Calls
# ----------------------------------------------------------------------

def encode_arg(type_name: str, value: Any, registry: "MetadataRegistry") -> bytes:
    if type_name == "Hash":
        return encode_hash(value, registry.hash_width // 8)
    if type_name == "Option<Hash>":
        return b"\x00" if value is None else b"\x01" + encode_hash(value, registry.hash_width // 8)
    if type_name == "Vec<Call>":
        calls = list(value)
        return encode_compact(len(calls)) + b"".join(encode_call(c, registry) for c in calls)
    if type_name == "Bytes":
        raw = value.encode("utf-8") if isinstance(value, str) else bytes(value)
        return encode_bytes(raw)
    if type_name == "u32":
        return encode_u32(value)
    if type_name == "u64":
        return encode_u64(value)
    if type_name == "Compact":
        return encode_compact(value)
    if type_name == "bool":
        return b"\x01" if value else b"\x00"
    raise InvalidParameter(f"unsupported argument type {type_name!r}")


def encode_call(call: Submittable, registry: "MetadataRegistry") -> bytes:
    """
    Encode a call as pallet index, call index, then its arguments in
    declaration order.
    """
    op: Operation = call.as_operation() if isinstance(call, Batch) else call
    spec = registry.call_spec(op.target)

    if len(op.args) != len(spec.args):
        raise InvalidParameter(
            f"{op.target} takes {len(spec.args)} arguments, got {len(op.args)}"
        )

    return spec.index_bytes + b"".join(
        encode_arg(type_name, value, registry) for type_name, value in zip(spec.args, op.args)
    )
